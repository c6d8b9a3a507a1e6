"""Rule database synchronization."""

from urlpurifier.sync.synchronizer import RulesetSynchronizer, SyncResult

__all__ = [
    "RulesetSynchronizer",
    "SyncResult",
]
