"""Console output helpers.

Provides consistent formatting for CLI output messages, including error
panels with "Why" and "How to fix" sections for JobForge errors.
"""

from __future__ import annotations

import traceback
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

# Shared console instance
_console: Console | None = None

# Verbose mode flag (set by CLI --verbose flag)
_verbose_mode: bool = False


def get_console() -> Console:
    """Get shared console instance (lazy-loaded)."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_verbose_mode(enabled: bool) -> None:
    """Enable or disable full tracebacks in error output."""
    global _verbose_mode
    _verbose_mode = enabled


def is_verbose_mode() -> bool:
    return _verbose_mode


def tip(message: str) -> None:
    """Display a tip message in dim styling."""
    get_console().print(f"  [dim]Tip: {message}[/dim]")


class ErrorRenderer:
    """Renders exceptions as panels with cause and fix suggestions.

    Example
    -------
        try:
            service.submit(document_id="")
        except JobForgeError as e:
            ErrorRenderer.render(e)
            raise typer.Exit(1)
    """

    @staticmethod
    def render(
        exc: BaseException,
        context: str = "",
        show_traceback: Optional[bool] = None,
    ) -> None:
        """Render an exception as an error panel.

        Args:
            exc: Exception to render
            context: Optional context line (e.g., "While processing report.pdf")
            show_traceback: Override for verbose mode (None = use global setting)
        """
        from jobforge.core.exceptions import JobForgeError, get_root_cause

        if isinstance(exc, JobForgeError):
            error_code = exc.error_code
            why = exc.why_it_happened
            how_to_fix = list(exc.how_to_fix)
        else:
            error_code = "JF-ERR-999"
            why = "An unexpected error occurred"
            how_to_fix = ["Run with --verbose for the full traceback"]

        root_cause = get_root_cause(exc)
        root_message = str(root_cause) if root_cause is not exc else None

        content = ErrorRenderer._build_error_content(
            message=str(exc),
            context=context,
            why=why,
            how_to_fix=how_to_fix,
            root_message=root_message,
        )
        panel = Panel(
            content,
            title=f"[bold red]Error: {error_code}[/bold red]",
            border_style="red",
            padding=(1, 2),
        )
        get_console().print(panel)

        should_show_traceback = (
            show_traceback if show_traceback is not None else is_verbose_mode()
        )
        if should_show_traceback:
            get_console().print(
                "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
                style="dim",
                markup=False,
            )

    @staticmethod
    def _build_error_content(
        message: str,
        context: str,
        why: str,
        how_to_fix: List[str],
        root_message: Optional[str],
    ) -> Text:
        content = Text()
        if context:
            content.append(f"{context}\n\n", style="italic")
        content.append(message, style="bold")
        if root_message and root_message != message:
            content.append(f"\nCaused by: {root_message}", style="dim")

        content.append("\n\nWhy it happened:\n", style="bold yellow")
        content.append(why)

        content.append("\n\nHow to fix:", style="bold green")
        for step in how_to_fix:
            content.append(f"\n  - {step}")
        return content
