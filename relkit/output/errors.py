"""Error presentation utilities.

Centralized release error formatting for consistent UX.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from relkit.output.console import Style

if TYPE_CHECKING:
    from relkit.output.console import ConsoleProtocol
    from relkit.release.errors import ReleaseError
    from relkit.release.state import Phase

__all__ = ["error_to_dict", "print_release_error"]


def print_release_error(
    error: ReleaseError,
    console: ConsoleProtocol,
    *,
    verbose: bool = False,
    phase: Phase | None = None,
) -> None:
    """Print the failing phase, the error and, when verbose, what to do next."""
    where = f" during {phase.value.replace('_', ' ')}" if phase is not None else ""
    console.error(f"{error.category}.{error.kind}{where}: {error.message}")
    if error.hint:
        console.print(f"hint: {error.hint}", Style.DIM)
    if not error.recoverable:
        console.print("this error is not recoverable", Style.DIM)

    if verbose:
        console.print("suggestions:", Style.BOLD)
        for suggestion in error.suggestions():
            console.print(f"  - {suggestion}")
    else:
        console.print("run with --verbose for suggestions", Style.DIM)


def error_to_dict(error: ReleaseError) -> dict[str, object]:
    return {
        "category": error.category,
        "kind": error.kind,
        "message": error.message,
        "hint": error.hint,
        "recoverable": error.recoverable,
        "retry_after": error.retry_after,
        "suggestions": list(error.suggestions()),
    }
