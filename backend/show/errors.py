"""
Show state errors.

Only failures the requesting client must hear about are exceptions.
Missing mutation targets are reported through MutationResult instead.
"""

from __future__ import annotations


class ShowStateError(Exception):
    """Base class for rejected show state mutations."""


class NameConflict(ShowStateError):
    """
    Raised when a rename collides (case-insensitively) with the display
    name of another currently connected user.
    """

    def __init__(self, name: str) -> None:
        super().__init__(f'The name "{name}" is already taken by another user')
        self.name = name


class InvalidName(ShowStateError):
    """Raised when a requested display name is empty or not a string."""

    def __init__(self) -> None:
        super().__init__("Name cannot be empty")
