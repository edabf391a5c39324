from .collection import CollectionSyncer
from .errors import AuthenticationFailure, FetchFailure, SyncError, WriteFailure
from .events import SyncEvents, SyncObserver
from .records import COLLECTION_NAMES, CollectionSyncResult, PassResult, Record
from .scheduler import SyncScheduler, SyncStat

__all__ = [
    "COLLECTION_NAMES",
    "AuthenticationFailure",
    "CollectionSyncResult",
    "CollectionSyncer",
    "FetchFailure",
    "PassResult",
    "Record",
    "SyncError",
    "SyncEvents",
    "SyncObserver",
    "SyncScheduler",
    "SyncStat",
    "WriteFailure",
]
