from __future__ import annotations

from dataclasses import dataclass

from rich.console import Console

from tablecase.core.config import AppPaths, EndpointSettings


@dataclass(slots=True)
class CLIContext:
    paths: AppPaths
    settings: EndpointSettings
    console: Console
