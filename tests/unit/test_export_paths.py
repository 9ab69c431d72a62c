from pathlib import Path

from tablecase.domain.models.endpoint import EndpointInfo
from tablecase.domain.models.export import CsvConfig
from tablecase.infrastructure.files.export_paths import ExportPathPolicy, ExportTarget


def _target(config: CsvConfig, table_id: str = "census") -> ExportTarget:
    return ExportTarget(
        endpoint=EndpointInfo(server_url="https://sync.example.org", app_id="survey"),
        table_id=table_id,
        config=config,
    )


def test_csv_path_reflects_config(tmp_path: Path) -> None:
    policy = ExportPathPolicy(tmp_path)

    assert policy.resolve_csv_path(_target(CsvConfig())) == (
        tmp_path / "Download" / "survey" / "census" / "data_unformatted.csv"
    )
    assert policy.resolve_csv_path(_target(CsvConfig(include_metadata=True, formatted=True))).name == (
        "link_formatted.csv"
    )


def test_table_id_cannot_escape_download_dir(tmp_path: Path) -> None:
    policy = ExportPathPolicy(tmp_path)
    path = policy.resolve_csv_path(_target(CsvConfig(), table_id="../../etc"))
    assert path.parent.name == ".._.._etc"
    assert tmp_path in path.parents


def test_exists_delete_and_create_dirs(tmp_path: Path) -> None:
    policy = ExportPathPolicy(tmp_path)
    target = _target(CsvConfig())

    assert policy.exists(target) is False
    policy.create_dirs(target)
    policy.resolve_csv_path(target).write_text("id\r\n", encoding="utf-8")
    assert policy.exists(target) is True

    policy.delete(target)
    assert policy.exists(target) is False
    policy.delete(target)
