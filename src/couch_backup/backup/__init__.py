"""
Backup module for the couch backup system.

This module provides the poll loop, the per-dataset backup provider and the
components of a backup batch.
"""

from .backup_manager import BackupManager
from .backup_provider import DatasetBackupProvider
from .change_feed import ChangeFeedReader
from .checkpoint_manager import CheckpointManager
from .dataset_enumerator import DatasetEnumerator
from .revision_copier import RevisionCopier
from .target_resolver import BackupTargetResolver, DesignDocumentDeployer

__all__ = [
    "BackupManager",
    "DatasetBackupProvider",
    "ChangeFeedReader",
    "CheckpointManager",
    "DatasetEnumerator",
    "RevisionCopier",
    "BackupTargetResolver",
    "DesignDocumentDeployer",
]
