"""
Revision copier.

Copies the revision(s) named by a change entry from a dataset store into its
backup store under the key documentId-revisionId.
"""

from typing import List, Optional

from ..audit.logger import BackupLogger
from ..config.models import (
    ChangeEntry,
    CopyResult,
    CopyStatus,
    RetryConfig,
    RevisionMode,
)
from ..couch_operations import CouchOperations
from ..exceptions import RevisionUnavailableError
from ..utils import retry_with_logging, utc_now


def backup_key(doc_id: str, rev: str) -> str:
    """Key of one revision inside a backup store."""
    return f"{doc_id}-{rev}"


class RevisionCopier:
    """Streams document revisions from a source store to a backup store."""

    def __init__(
        self,
        couch_ops: CouchOperations,
        logger: BackupLogger,
        retry: Optional[RetryConfig] = None,
        revision_mode: RevisionMode = RevisionMode.LATEST,
    ):
        self.couch_ops = couch_ops
        self.logger = logger
        self.retry = retry if retry else RetryConfig(max_attempts=1, retry_delay_seconds=0)
        self.revision_mode = revision_mode

    def revisions_to_copy(self, source_db: str, entry: ChangeEntry) -> List[str]:
        """
        Revisions of the entry's document that belong in the backup.

        In history mode every revision the source still holds is included,
        falling back to the entry's own descriptor for deleted documents.
        """
        if self.revision_mode == RevisionMode.HISTORY and not entry.deleted:
            history = self.couch_ops.get_revision_history(source_db, entry.doc_id)
            if history:
                return history
        return [entry.latest_revision]

    def copy_entry(self, source_db: str, target_db: str, entry: ChangeEntry) -> CopyResult:
        """
        Copy one change entry. Failures are reported in the result, never raised.

        Args:
            source_db: Dataset store name
            target_db: Backup store name
            entry: Change to copy

        Returns:
            CopyResult with status success, retryable or fatal
        """
        start_time = utc_now()
        copied: List[str] = []

        @retry_with_logging(self.retry, self.logger)
        def copy_operation():
            for rev in self.revisions_to_copy(source_db, entry):
                if rev in copied:
                    continue
                self.couch_ops.stream_revision(
                    source_db, entry.doc_id, rev, target_db, backup_key(entry.doc_id, rev)
                )
                copied.append(rev)
            return True

        result, last_exception, attempt, max_attempts = copy_operation()
        end_time = utc_now()

        if result:
            self.logger.debug(
                f"Copied {entry.doc_id} ({', '.join(copied)}) to {target_db}",
                extra={"seq": entry.seq},
            )
            return CopyResult(
                doc_id=entry.doc_id,
                seq=entry.seq,
                status=CopyStatus.SUCCESS,
                revisions_copied=copied,
                start_time=start_time.isoformat(),
                end_time=end_time.isoformat(),
                attempt_number=attempt,
                max_attempts=max_attempts,
            )

        # Only a revision the source no longer holds may be skipped
        status = (
            CopyStatus.FATAL
            if isinstance(last_exception, RevisionUnavailableError)
            else CopyStatus.RETRYABLE
        )
        error_msg = (
            f"Failed to copy {source_db}/{entry.doc_id} to {target_db} "
            f"after {attempt}/{max_attempts} attempts: {last_exception}"
        )
        self.logger.error(error_msg, extra={"seq": entry.seq, "status": status.value})

        return CopyResult(
            doc_id=entry.doc_id,
            seq=entry.seq,
            status=status,
            revisions_copied=copied,
            start_time=start_time.isoformat(),
            end_time=end_time.isoformat(),
            error_message=error_msg,
            attempt_number=attempt,
            max_attempts=max_attempts,
        )
