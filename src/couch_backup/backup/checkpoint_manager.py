"""
Checkpoint manager.

The checkpoint of a dataset is the lastBackupSeq field of its metadata
document in the catalog database. It only ever moves forward, and it is
written with the document's revision so concurrent writers are detected
instead of overwritten.
"""

from typing import List, Optional, Sequence

from ..audit.logger import BackupLogger
from ..config.models import ChangeEntry, CopyResult, CopyStatus, SequenceToken
from ..couch_operations import CouchOperations
from ..exceptions import CheckpointConflictError, DocumentConflictError
from ..utils import sequence_greater

CHECKPOINT_FIELD = "lastBackupSeq"


class CheckpointManager:
    """Reads, computes and persists per-dataset checkpoints."""

    def __init__(
        self,
        couch_ops: CouchOperations,
        logger: BackupLogger,
        metadata_db: str,
        max_conflict_retries: int = 5,
        advance_past_failures: bool = False,
    ):
        """
        Initialize the checkpoint manager.

        Args:
            couch_ops: Store operations helper
            logger: Logger instance
            metadata_db: Database holding one metadata document per dataset
            max_conflict_retries: Re-reads allowed after a conflicting write
            advance_past_failures: Count every finished copy, failed or not,
                toward the checkpoint (legacy behaviour; loses failed revisions)
        """
        self.couch_ops = couch_ops
        self.logger = logger
        self.metadata_db = metadata_db
        self.max_conflict_retries = max_conflict_retries
        self.advance_past_failures = advance_past_failures

    def load(self, dataset_id: str) -> Optional[SequenceToken]:
        """Return the persisted checkpoint of a dataset, None if it has none."""
        doc = self.couch_ops.get_document(self.metadata_db, dataset_id) or {}
        return doc.get(CHECKPOINT_FIELD)

    def compute_checkpoint(
        self, entries: Sequence[ChangeEntry], results: Sequence[CopyResult]
    ) -> Optional[SequenceToken]:
        """
        Sequence up to which a finished batch is safely backed up.

        Entries must be in feed order. Retryable failures, which include
        authorization errors and failed writes to the backup store, hold the
        checkpoint just before them so they are read again next cycle. Fatal
        failures are revisions the source no longer holds; they cannot
        succeed on a later attempt and do not hold it back.
        """
        if not entries:
            return None

        if self.advance_past_failures:
            return entries[-1].seq

        status_by_seq = {}
        for result in results:
            status_by_seq[(result.doc_id, str(result.seq))] = result.status

        checkpoint = None
        for entry in entries:
            status = status_by_seq.get((entry.doc_id, str(entry.seq)))
            if status not in (CopyStatus.SUCCESS, CopyStatus.FATAL):
                break
            checkpoint = entry.seq
        return checkpoint

    def unresolved_entries(
        self, entries: Sequence[ChangeEntry], results: Sequence[CopyResult]
    ) -> List[ChangeEntry]:
        """Entries of a batch whose copy did not succeed."""
        succeeded = {
            (result.doc_id, str(result.seq))
            for result in results
            if result.status == CopyStatus.SUCCESS
        }
        return [
            entry for entry in entries if (entry.doc_id, str(entry.seq)) not in succeeded
        ]

    def advance(self, dataset_id: str, new_seq: SequenceToken) -> SequenceToken:
        """
        Persist new_seq as the dataset checkpoint if it moves the checkpoint forward.

        Returns:
            The checkpoint stored once the call returns

        Raises:
            CheckpointConflictError: If every attempt lost to a concurrent writer
        """
        attempts = self.max_conflict_retries + 1
        for attempt in range(1, attempts + 1):
            doc = self.couch_ops.get_document(self.metadata_db, dataset_id) or {
                "_id": dataset_id
            }
            stored = doc.get(CHECKPOINT_FIELD)
            if not sequence_greater(new_seq, stored):
                return stored

            doc[CHECKPOINT_FIELD] = new_seq
            try:
                self.couch_ops.put_document(self.metadata_db, dataset_id, doc)
            except DocumentConflictError:
                self.logger.warning(
                    f"Checkpoint write for {dataset_id} conflicted "
                    f"(attempt {attempt}/{attempts}), re-reading metadata"
                )
                continue

            self.logger.info(
                f"Checkpoint for {dataset_id} advanced to {new_seq}",
                extra={"previous": stored},
            )
            return new_seq

        raise CheckpointConflictError(
            f"Checkpoint for {dataset_id} not written after {attempts} conflicting attempts"
        )
