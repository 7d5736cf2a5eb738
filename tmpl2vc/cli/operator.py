# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# tmpl2vc/cli/operator.py
"""
Interactive operator: line-oriented prompts and status output on a rich console.
"""
from __future__ import annotations

from typing import Mapping, Optional, Sequence, TextIO

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

YES_ANSWERS = ("y", "yes")


def is_yes(answer: Optional[str]) -> bool:
    """Anything other than y/yes is a decline."""
    return (answer or "").strip().lower() in YES_ANSWERS


def parse_choice(answer: Optional[str], options: Sequence[str]) -> Optional[str]:
    """
    Resolve a selection answer: a 1-based index into `options` or an exact
    option name. Anything else (including empty input) selects nothing.
    """
    s = (answer or "").strip()
    if not s:
        return None
    if s.isdigit():
        idx = int(s)
        if 1 <= idx <= len(options):
            return options[idx - 1]
        return None
    return s if s in options else None


class ConsoleOperator:
    def __init__(self, console: Optional[Console] = None, stream: Optional[TextIO] = None):
        self.console = console or Console(stderr=True, highlight=False)
        # Input stream for prompts; None reads from the terminal.
        self.stream = stream

    def _ask(self, prompt: str, *, password: bool = False) -> str:
        try:
            answer = Prompt.ask(
                prompt,
                console=self.console,
                password=password,
                default="",
                show_default=False,
                stream=self.stream,
            )
        except EOFError:
            # Closed stdin (pipe, cron) answers nothing: a decline or no selection.
            self.console.print()
            return ""
        return (answer or "").strip()

    # Input

    def ask(self, prompt: str) -> str:
        return self._ask(f"[bold cyan]{escape(prompt)}[/]")

    def secret(self, prompt: str) -> str:
        return self._ask(f"[bold cyan]{escape(prompt)}[/]", password=True)

    def confirm(self, prompt: str) -> bool:
        return is_yes(self._ask(f"[bold yellow]{escape(prompt)}[/] \\[y/n]"))

    def choose(self, prompt: str, options: Sequence[str]) -> Optional[str]:
        table = Table(title=prompt, show_lines=False)
        table.add_column("#", justify="right", style="cyan")
        table.add_column("Template", style="bold")
        for i, name in enumerate(options, start=1):
            table.add_row(str(i), name)
        self.console.print(table)
        return parse_choice(self._ask(f"Enter number (1-{len(options)}), empty to cancel"), options)

    # Output

    def summary(self, title: str, rows: Mapping[str, str]) -> None:
        table = Table(show_header=False, box=None, pad_edge=False)
        table.add_column(style="cyan")
        table.add_column()
        for k, v in rows.items():
            table.add_row(k, str(v))
        self.console.print(Panel(table, title=title, expand=False))

    def progress(self, reached: int, total: int, label: str) -> None:
        bar = "■" * reached + "□" * max(0, total - reached)
        self.console.print(f"[green]{bar}[/] [{reached}/{total}] {label}")

    def info(self, msg: str) -> None:
        self.console.print(msg)

    def success(self, msg: str) -> None:
        self.console.print(Panel(f"[bold green]✓ {msg}[/]", expand=False))

    def error(self, msg: str) -> None:
        self.console.print(f"[bold red]✗ {msg}[/]")
