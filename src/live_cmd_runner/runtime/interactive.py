"""Heuristic for commands that will probably wait on a terminal."""

from __future__ import annotations

__all__ = ["INTERACTIVE_WARNING", "is_interactive_command"]

INTERACTIVE_WARNING = (
    "[WARNING] This command may require interactive input (like passwords).\n"
    "[WARNING] Interactive input is not supported. The command may hang or fail.\n"
    "[TIP] For sudo, use: sudo -S (reads password from stdin) "
    "or configure NOPASSWD in sudoers.\n\n"
)


def is_interactive_command(command: str) -> bool:
    """Guess whether a command expects a TTY (password prompts and such).

    Plain substring checks. The result only decides whether a warning is
    printed; the command runs either way.
    """
    if "sudo" in command and "-S" not in command and "NOPASSWD" not in command:
        return True
    return "ssh" in command or "passwd" in command or "su " in command
