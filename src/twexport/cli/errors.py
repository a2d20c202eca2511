"""
Exit codes and error output shared by the twexport commands.
"""

from enum import IntEnum

from rich.console import Console

console = Console()


class ExitCode(IntEnum):
    SUCCESS = 0
    # Includes a sync run that left some buckets failed
    GENERAL_ERROR = 1
    # Bad input or missing configuration
    USER_ERROR = 2
    SIGINT = 130


def print_error(problem: str, *, reason: str | None = None, solution: str | None = None) -> None:
    """
    Report a failure as a red headline, an optional dim explanation and an
    optional hint line.

        >>> print_error("Vault API token not configured", solution="export TWEXPORT_VAULT_TOKEN=...")
    """
    lines = [f"[red]Error:[/red] {problem}"]
    if reason:
        lines.append(f"[dim]{reason}[/dim]")
    if solution:
        lines.append(f"[cyan]→ Try:[/cyan] {solution}")
    for line in lines:
        console.print(line)


def print_missing_token_error() -> None:
    print_error(
        "Vault API token not configured",
        reason="Vault requests are sent with an Authorization: Bearer header",
        solution="export TWEXPORT_VAULT_TOKEN=<token>  # or vault.token in config.json",
    )


def print_database_error(path: object) -> None:
    print_error(
        f"Cannot open capture database at {path}",
        reason="The file may be unreadable or created by a newer twexport",
        solution="twexport --debug db count  # shows the underlying error",
    )
