from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from tablecase.core.files import ensure_directory, remove_file
from tablecase.domain.models.endpoint import EndpointInfo
from tablecase.domain.models.export import CsvConfig

logger = logging.getLogger(__name__)

DOWNLOAD_DIRNAME = "Download"


@dataclass(frozen=True, slots=True)
class ExportTarget:
    endpoint: EndpointInfo
    table_id: str
    config: CsvConfig


class ExportPathPolicy:
    """Maps an export target to its CSV path under ``<save_dir>/Download``.

    Layout: ``Download/<app_id>/<table_id>/<link|data>_<formatted|unformatted>.csv``.

    The ``link``/``data`` and ``formatted``/``unformatted`` name parts are
    local conventions: ``link`` marks an export that carries the row
    metadata columns, and ``formatted`` marks whitespace-collapsed values.
    """

    def __init__(self, save_dir: Path) -> None:
        self.save_dir = save_dir

    def table_dir(self, target: ExportTarget) -> Path:
        return self.save_dir / DOWNLOAD_DIRNAME / _safe_segment(target.endpoint.app_id) / _safe_segment(target.table_id)

    def resolve_csv_path(self, target: ExportTarget) -> Path:
        kind = "link" if target.config.include_metadata else "data"
        style = "formatted" if target.config.formatted else "unformatted"
        return self.table_dir(target) / f"{kind}_{style}.csv"

    def exists(self, target: ExportTarget) -> bool:
        return self.resolve_csv_path(target).exists()

    def delete(self, target: ExportTarget) -> None:
        path = self.resolve_csv_path(target)
        if remove_file(path):
            logger.info("Deleted previous export %s", path)

    def create_dirs(self, target: ExportTarget) -> None:
        ensure_directory(self.table_dir(target))


def _safe_segment(value: str) -> str:
    cleaned = value.strip().replace("/", "_").replace("\\", "_")
    if cleaned in {"", ".", ".."}:
        return "_"
    return cleaned
