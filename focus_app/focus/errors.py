"""Error kinds raised by the focus timer core."""
from __future__ import annotations


class FocusError(Exception):
    """Base class for every error raised by the core."""


class NotFound(FocusError):
    def __init__(self, kind: str, item_id: object) -> None:
        super().__init__(f"{kind} {item_id!r} not found")
        self.kind = kind
        self.item_id = item_id


class InvalidInput(FocusError):
    pass


class MalformedImport(FocusError):
    pass


class PersistenceFailure(FocusError):
    """The store could not be written; in-memory state is still authoritative."""
