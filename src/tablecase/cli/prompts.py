from __future__ import annotations

from rich.console import Console
from rich.prompt import Confirm

PROMPTS = {
    "overwrite_csv": "A CSV export already exists for this table. Overwrite it?",
}


class ConsoleConfirmer:
    def __init__(self, console: Console) -> None:
        self.console = console

    def confirm(self, prompt_key: str, interactive: bool, default_if_non_interactive: bool) -> bool:
        if not interactive:
            return default_if_non_interactive
        question = PROMPTS.get(prompt_key, prompt_key)
        return Confirm.ask(question, console=self.console, default=False)

