"""Terminal prompts for interactive repair.

The repair pipeline only knows the `FixPrompter` protocol. `TerminalPrompter`
implements it on top of an `InteractivePrompt`, which is the one piece that
touches the terminal; tests swap in a scripted one.
"""

from typing import Protocol

import typer
from rich.console import Console

from bowerbird.audit.fix import Decision, FixProposal

SKIP = "(skip)"
QUIT = "(quit)"


class InteractivePrompt(Protocol):
    """Terminal input. Every method returns None when the user cancels."""

    def select(self, message: str, choices: list[str], default: str | None = None) -> str | None: ...

    def input(self, message: str, default: str | None = None) -> str | None: ...


class TyperPrompt:
    """`InteractivePrompt` backed by typer's prompts and a rich console."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console(stderr=True)

    def select(self, message: str, choices: list[str], default: str | None = None) -> str | None:
        for number, choice in enumerate(choices, start=1):
            marker = " [green](default)[/green]" if choice == default else ""
            self.console.print(f"  [cyan]{number}[/cyan]. {choice}{marker}")

        default_number = str(choices.index(default) + 1) if default in choices else None
        while True:
            try:
                answer = typer.prompt(message, default=default_number, show_default=False)
            except typer.Abort:
                return None
            answer = str(answer).strip()
            if answer in choices:
                return answer
            if answer.isdigit() and 1 <= int(answer) <= len(choices):
                return choices[int(answer) - 1]
            self.console.print(f"[red]Choose 1-{len(choices)}[/red]")

    def input(self, message: str, default: str | None = None) -> str | None:
        try:
            return typer.prompt(message, default=default or "", show_default=bool(default))
        except typer.Abort:
            return None


class TerminalPrompter:
    """Asks about one issue at a time and turns the answer into a `Decision`."""

    def __init__(self, prompt: InteractivePrompt | None = None, console: Console | None = None):
        self.console = console or Console(stderr=True)
        self.prompt_ui = prompt or TyperPrompt(self.console)

    def _describe(self, proposal: FixProposal) -> None:
        issue = proposal.issue
        color = "red" if issue.severity.value == "error" else "yellow"
        self.console.print(f"\n[bold]{issue.file}[/bold]")
        self.console.print(f"  [{color}]{issue.code.value}[/{color}] {issue.message}")
        if proposal.current_value is not None:
            self.console.print(f"  current value: {proposal.current_value!r}")

    def prompt(self, proposal: FixProposal) -> Decision:
        self._describe(proposal)

        if proposal.confirm_only:
            answer = self.prompt_ui.select(proposal.question, ["apply", SKIP, QUIT], default="apply")
            if answer is None or answer == QUIT:
                return Decision.abort()
            return Decision.apply() if answer == "apply" else Decision.skip()

        if proposal.choices:
            answer = self.prompt_ui.select(
                proposal.question, [*proposal.choices, SKIP, QUIT], default=proposal.default
            )
            if answer is None or answer == QUIT:
                return Decision.abort()
            return Decision.skip() if answer == SKIP else Decision.apply(answer)

        answer = self.prompt_ui.input(f"{proposal.question} (empty to skip)", proposal.default)
        if answer is None:
            return Decision.abort()
        answer = answer.strip()
        return Decision.apply(answer) if answer else Decision.skip()
