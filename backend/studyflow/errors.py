"""
Error types shared by the guest store, remote clients and session controller.
"""


class StorageDecodeError(ValueError):
    """A persisted guest collection could not be decoded.

    Never escapes LocalGuestStore: the collection is treated as empty.
    """


class StorageWriteError(RuntimeError):
    """Local persistence rejected a write (quota exceeded, disk unavailable...)."""


class RemoteWriteError(RuntimeError):
    """The remote store refused or failed an operation."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SessionError(RuntimeError):
    """A data operation was attempted while no session is active."""
