from __future__ import annotations


class SyncError(RuntimeError):
    pass


class AuthenticationFailure(SyncError):
    """The cloud backend rejected the configured credentials."""


class FetchFailure(SyncError):
    """Listing a collection failed on the local or the remote side."""

    def __init__(self, collection: str, side: str, cause: BaseException):
        super().__init__(f"fetch_failed: collection={collection} side={side} error={cause}")
        self.collection = collection
        self.side = side


class WriteFailure(SyncError):
    """A record write was rejected; other writes of the same join may have landed."""

    def __init__(self, collection: str, direction: str, cause: BaseException):
        super().__init__(f"write_failed: collection={collection} direction={direction} error={cause}")
        self.collection = collection
        self.direction = direction
