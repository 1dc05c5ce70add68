from __future__ import annotations


class SequenceAllocationError(RuntimeError):
    """Raised when a counter value cannot be issued."""

    def __init__(self, name: str, message: str | None = None) -> None:
        self.name = name
        super().__init__(message or f"Failed to allocate next value for sequence '{name}'")
