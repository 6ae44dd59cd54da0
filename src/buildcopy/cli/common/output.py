"""Output formatting utilities for the CLI."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import questionary
from rich.console import Console
from rich.table import Table
from rich.theme import Theme

from buildcopy.cli.common.tui_style import (
    QUESTIONARY_STYLE_CONFIRM,
    QUESTIONARY_STYLE_SELECT,
)
from buildcopy.core.builds import Build, BuildResult

_THEME = Theme(
    {
        "ok": "bold green",
        "warn": "yellow",
        "err": "bold red",
        "title": "bold cyan",
        "meta": "dim",
    }
)

_RESULT_STYLES = {
    BuildResult.SUCCESS: "ok",
    BuildResult.UNSTABLE: "warn",
}

console = Console(theme=_THEME)


@dataclass(frozen=True)
class Out:
    """Output formatter for CLI messages and tables."""

    def _q(self, message: str) -> str:
        """Prefix Questionary prompts to be consistent."""
        return f"[buildcopy] {message}"

    def info(self, msg: str) -> None:
        """Print an info message."""
        console.print(f"[title]›[/] {msg}")

    @contextmanager
    def status(self, msg: str):
        """Show a transient status spinner while work is in progress."""
        with console.status(msg, spinner="dots"):
            yield

    def success(self, msg: str) -> None:
        """Print a success message."""
        console.print(f"[ok]✓[/] {msg}")

    def warn(self, msg: str) -> None:
        """Print a warning message."""
        console.print(f"[warn]⚠[/] {msg}")

    def error(self, msg: str) -> None:
        """Print an error message."""
        console.print(f"[err]✗[/] {msg}")

    def header(self, title: str) -> None:
        """Print a header message."""
        console.print(f"[title]{title}[/]")

    def kv(self, items: Mapping[str, Any]) -> None:
        """Print key-value pairs."""
        for k, v in items.items():
            console.print(f"[meta]{k}[/]: {v}")

    def select_one(self, message: str, choices: list[questionary.Choice]) -> Any:
        """
        Prompt the user to select a single item from a list (radio list).

        Returns:
            The value of the selected choice, or None if cancelled.
        """
        if not choices:
            return None

        return questionary.select(
            self._q(message),
            choices=choices,
            style=QUESTIONARY_STYLE_SELECT,
            qmark="✦",
            instruction="Use ↑/↓ then Enter",
            pointer="❯",
        ).ask()

    def confirm(self, message: str, *, default: bool = False) -> bool:
        """
        Ask the user for confirmation using a standardized Questionary prompt.

        Args:
            message: Confirmation question shown to the user.
            default: Default answer if the user just presses enter.

        Returns:
            True if the user confirms, False otherwise.
        """
        console.print("[meta]Use y/n then Enter[/]")
        prompt = questionary.confirm(
            self._q(message),
            default=default,
            style=QUESTIONARY_STYLE_CONFIRM,
            qmark="✦",
            auto_enter=False,
        )
        return bool(prompt.ask())

    def builds_table(self, builds: Iterable[Build], title: str = "Builds") -> None:
        """Render builds with their result and provenance-relevant flags."""
        t = Table(title=title, show_lines=False)
        t.add_column("#", style="ok", no_wrap=True, justify="right")
        t.add_column("Display name")
        t.add_column("Result")
        t.add_column("Kept", style="meta")
        t.add_column("Artifacts", style="meta")
        t.add_column("Causes", style="meta")

        for b in builds:
            if b.result is None:
                result = "[meta]running[/]"
            else:
                style = _RESULT_STYLES.get(b.result, "err")
                result = f"[{style}]{b.result.value}[/{style}]"
            causes = ", ".join(
                f"{c.upstream_project}#{c.upstream_build}" if hasattr(c, "upstream_project") else f"user:{c.user}"
                for c in b.causes
            )
            t.add_row(
                str(b.number),
                b.display_name or "",
                result,
                "yes" if b.keep_forever else "",
                "yes" if b.has_artifacts else "",
                causes,
            )

        console.print(t)

    def copied_table(self, copied: Iterable[tuple[str, int, list[str]]], title: str = "Copied files") -> None:
        """Render (job, build number, files) provenance entries."""
        t = Table(title=title, show_lines=False)
        t.add_column("Job", style="ok")
        t.add_column("#", justify="right")
        t.add_column("Files", style="meta")

        for job, number, files in copied:
            t.add_row(job, str(number), "\n".join(files))

        console.print(t)

    def fingerprints_table(self, fingerprints: Mapping[str, str], title: str = "Fingerprints") -> None:
        """Render filename to MD5 digest associations."""
        t = Table(title=title, show_lines=False)
        t.add_column("File", style="ok")
        t.add_column("MD5", style="meta", no_wrap=True)

        for filename, digest in sorted(fingerprints.items()):
            t.add_row(filename, digest)

        console.print(t)


out = Out()
