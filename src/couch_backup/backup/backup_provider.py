"""
Backup provider implementation for the couch backup system.

This module runs one dataset batch: it resolves the backup store, reads the
change feed since the checkpoint, copies every change concurrently and
advances the checkpoint.
"""

from typing import List, Optional

from ..audit.logger import BackupLogger
from ..config.models import (
    BackupSystemConfig,
    ChangeEntry,
    CopyResult,
    CopyStatus,
    Dataset,
    DatasetResult,
)
from ..couch_operations import CouchOperations
from ..exceptions import BackupError
from ..providers.base_provider import BaseProvider
from ..utils import sequence_greater, utc_now
from .change_feed import ChangeFeedReader
from .checkpoint_manager import CheckpointManager
from .revision_copier import RevisionCopier
from .target_resolver import BackupTargetResolver


class DatasetBackupProvider(BaseProvider):
    """Provider backing up the changes of one dataset."""

    def __init__(
        self,
        couch_ops: CouchOperations,
        logger: BackupLogger,
        run_id: str,
        dataset: Dataset,
        config: BackupSystemConfig,
        resolver: BackupTargetResolver,
        feed_reader: Optional[ChangeFeedReader] = None,
        copier: Optional[RevisionCopier] = None,
        checkpoints: Optional[CheckpointManager] = None,
    ):
        super().__init__(
            couch_ops,
            logger,
            run_id,
            dataset,
            config.retry,
            config.concurrency.max_copy_workers,
            config.concurrency.timeout_seconds,
        )
        self.config = config
        self.resolver = resolver
        self.logger = logger.bind(dataset_id=dataset.id, run_id=run_id)
        self.feed_reader = feed_reader or ChangeFeedReader(
            couch_ops,
            self.logger,
            style=config.backup.changes_style,
            limit=config.backup.changes_limit,
        )
        self.copier = copier or RevisionCopier(
            couch_ops, self.logger, config.retry, config.backup.revision_mode
        )
        self.checkpoints = checkpoints or CheckpointManager(
            couch_ops,
            self.logger,
            config.catalog.database,
            config.checkpoint.max_conflict_retries,
            config.backup.advance_past_failures,
        )
        self.target_db = resolver.target_name(dataset.id)

    def get_operation_name(self) -> str:
        """Get the name of the operation for logging purposes."""
        return "backup"

    def process_entry(self, entry: ChangeEntry) -> CopyResult:
        """Copy a single change into the backup store."""
        return self.copier.copy_entry(self.dataset.id, self.target_db, entry)

    def process_dataset(self) -> DatasetResult:
        """
        Back up every change of the dataset recorded since its checkpoint.

        Errors never escape: they are logged and reported in the result.

        Returns:
            DatasetResult for this batch
        """
        start_time = utc_now()
        dataset_id = self.dataset.id
        target_created = False
        previous: Optional[object] = None

        try:
            resolution = self.resolver.resolve(dataset_id)
            target_created = resolution.created

            previous = self.checkpoints.load(dataset_id)
            entries = self.feed_reader.read_changes(dataset_id, previous)

            if not entries:
                self.logger.debug(f"No changes in {dataset_id} since {previous}")
                return self._create_result(
                    "idle", start_time, previous, previous, target_created
                )

            results = self.process_entries_concurrently(entries)
            new_seq = self.checkpoints.compute_checkpoint(entries, results)

            if self.cancelled:
                error_msg = (
                    f"Backup of dataset {dataset_id} was abandoned after timing out, "
                    f"checkpoint left at {previous}"
                )
                self.logger.warning(error_msg)
                return self._create_result(
                    "failed", start_time, previous, previous, target_created, error_msg
                )

            checkpoint = previous
            if sequence_greater(new_seq, previous):
                checkpoint = self.checkpoints.advance(dataset_id, new_seq)

            return self._summarize_batch(
                entries, results, start_time, previous, checkpoint, target_created
            )

        except BackupError as e:
            error_msg = f"Backup of dataset {dataset_id} failed: {str(e)}"
            self.logger.error(
                error_msg,
                extra={"run_id": self.run_id, "operation": "backup", "error_type": type(e).__name__},
            )
        except Exception as e:
            error_msg = f"Backup of dataset {dataset_id} failed: {str(e)}"
            self.logger.error(
                error_msg,
                extra={"run_id": self.run_id, "operation": "backup"},
                exc_info=True,
            )

        return self._create_result(
            "failed", start_time, previous, previous, target_created, error_msg
        )

    def _summarize_batch(
        self,
        entries: List[ChangeEntry],
        results: List[CopyResult],
        start_time,
        previous,
        checkpoint,
        target_created: bool,
    ) -> DatasetResult:
        copied = sum(1 for r in results if r.status == CopyStatus.SUCCESS)
        retryable = sum(1 for r in results if r.status == CopyStatus.RETRYABLE)
        fatal = sum(1 for r in results if r.status == CopyStatus.FATAL)
        status = "success" if copied == len(entries) else "partial"

        if fatal:
            self.logger.error(
                f"{fatal} changes of {self.dataset.id} cannot be copied and were skipped",
                extra={"run_id": self.run_id, "operation": "backup"},
            )

        self.logger.info(
            f"Completed backup batch for {self.dataset.id}: "
            f"{copied}/{len(entries)} changes copied, checkpoint {previous} -> {checkpoint}",
            extra={"run_id": self.run_id, "operation": "backup"},
        )

        result = self._create_result(
            status, start_time, previous, checkpoint, target_created
        )
        result.entries_total = len(entries)
        result.entries_copied = copied
        result.retryable_failures = retryable
        result.fatal_failures = fatal
        result.unresolved = self.checkpoints.unresolved_entries(entries, results)
        return result

    def _create_result(
        self,
        status: str,
        start_time,
        previous,
        checkpoint,
        target_created: bool,
        error_message: Optional[str] = None,
    ) -> DatasetResult:
        return DatasetResult(
            dataset_id=self.dataset.id,
            target_db=self.target_db,
            status=status,
            start_time=start_time.isoformat(),
            end_time=utc_now().isoformat(),
            previous_checkpoint=previous,
            checkpoint=checkpoint,
            target_created=target_created,
            error_message=error_message,
        )
