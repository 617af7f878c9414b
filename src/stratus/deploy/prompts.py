"""Operator prompts.

The orchestrator and conflict handlers only see the :class:`Prompter`
protocol. :class:`ConsolePrompter` asks on the terminal with rich;
:class:`AutoPrompter` answers from configuration for unattended runs.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol

from rich.console import Console
from rich.prompt import Confirm, Prompt
from rich.table import Table

from stratus.core.errors import OrchestrationError


class Prompter(Protocol):
    def choose(self, title: str, options: Sequence[str]) -> int:
        """Return the 0-based index of the selected option."""
        ...

    def confirm(self, message: str, default: bool = False) -> bool: ...

    def show_resources(self, resources: Sequence[Any]) -> None: ...


def parse_choice(answer: str, count: int) -> int | None:
    """1-based menu answer to a 0-based index, or None when invalid."""
    answer = answer.strip()
    if not answer.isdecimal():
        return None
    number = int(answer)
    if 1 <= number <= count:
        return number - 1
    return None


class ConsolePrompter:
    """Interactive prompts on a rich console."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def choose(self, title: str, options: Sequence[str]) -> int:
        self.console.print(f"\n[bold yellow]{title}[/]")
        for number, option in enumerate(options, start=1):
            self.console.print(f"  {number}. {option}")
        while True:
            answer = Prompt.ask(f"Select an option [1-{len(options)}]", console=self.console)
            index = parse_choice(answer, len(options))
            if index is not None:
                return index
            self.console.print(f"[red]Invalid choice '{answer}'. Enter a number from 1 to {len(options)}.[/]")

    def confirm(self, message: str, default: bool = False) -> bool:
        return Confirm.ask(message, default=default, console=self.console)

    def show_resources(self, resources: Sequence[Any]) -> None:
        table = Table(title="Resources to delete")
        table.add_column("Category")
        table.add_column("Name", style="bold")
        table.add_column("Resource group")
        table.add_column("Created")
        for res in resources:
            table.add_row(res.category.label, res.name, res.resource_group, res.created_at.strftime("%H:%M:%S"))
        self.console.print(table)


class AutoPrompter:
    """Non-interactive answers for CI.

    ``choice`` answers every menu (0-based). Without one, a menu is an error
    because guessing a destructive option is never safe.
    """

    def __init__(self, choice: int | None = None, approve: bool = False) -> None:
        self.choice = choice
        self.approve = approve

    def choose(self, title: str, options: Sequence[str]) -> int:
        if self.choice is None or not 0 <= self.choice < len(options):
            raise OrchestrationError(f"Operator input required but running non-interactively: {title}")
        return self.choice

    def confirm(self, message: str, default: bool = False) -> bool:
        return self.approve

    def show_resources(self, resources: Sequence[Any]) -> None:
        return None


__all__ = ["AutoPrompter", "ConsolePrompter", "Prompter", "parse_choice"]
