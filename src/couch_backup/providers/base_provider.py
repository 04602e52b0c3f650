"""
Base provider class for dataset operations.

This module provides shared functionality for providers that process one
dataset per cycle: concurrent processing of change entries and consistent
failure results.
"""

import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime
from typing import List, Optional

from ..audit.logger import BackupLogger
from ..config.models import (
    ChangeEntry,
    CopyResult,
    CopyStatus,
    Dataset,
    DatasetResult,
    RetryConfig,
)
from ..couch_operations import CouchOperations
from ..utils import utc_now


class BaseProvider(ABC):
    """Base provider class with shared functionality for dataset operations."""

    def __init__(
        self,
        couch_ops: CouchOperations,
        logger: BackupLogger,
        run_id: str,
        dataset: Dataset,
        retry: Optional[RetryConfig] = None,
        max_workers: int = 8,
        timeout_seconds: int = 3600,
    ):
        """
        Initialize the base provider.

        Args:
            couch_ops: Store operations helper
            logger: Logger instance
            run_id: Unique run identifier
            dataset: Dataset processed by this provider
            retry: Retry configuration
            max_workers: Maximum number of concurrent entry workers
            timeout_seconds: Timeout for the whole batch of entries
        """
        self.couch_ops = couch_ops
        self.logger = logger
        self.run_id = run_id
        self.dataset = dataset
        self.retry = (
            retry if retry else RetryConfig(max_attempts=1, retry_delay_seconds=0)
        )
        self.max_workers = max_workers
        self.timeout_seconds = timeout_seconds
        self.cancel_event = threading.Event()

    def cancel(self) -> None:
        """Mark the batch as abandoned by its caller."""
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    @abstractmethod
    def process_dataset(self) -> DatasetResult:
        """
        Process the dataset for this cycle.
        Must be implemented by subclasses.

        Returns:
            DatasetResult describing the batch
        """

    @abstractmethod
    def process_entry(self, entry: ChangeEntry) -> CopyResult:
        """
        Process a single change entry.
        Must be implemented by subclasses.

        Args:
            entry: Change entry

        Returns:
            CopyResult for the entry
        """

    @abstractmethod
    def get_operation_name(self) -> str:
        """
        Get the name of the operation for logging purposes.
        Must be implemented by subclasses.
        """

    def process_entries_concurrently(self, entries: List[ChangeEntry]) -> List[CopyResult]:
        """
        Process all entries of a batch concurrently using ThreadPoolExecutor.

        Every entry yields exactly one result: entries whose worker raised or
        did not finish within the batch timeout are reported as retryable
        failures.

        Args:
            entries: Change entries to process

        Returns:
            List of CopyResult objects, one per entry
        """
        results: List[CopyResult] = []
        if not entries:
            return results

        start_time = utc_now()
        self.logger.info(
            f"Starting concurrent {self.get_operation_name()} of {len(entries)} changes "
            f"in {self.dataset.id} using {self.max_workers} workers"
        )

        executor = ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix=f"{self.get_operation_name()}-{self.dataset.id}",
        )
        future_to_entry = {
            executor.submit(self.process_entry, entry): entry for entry in entries
        }
        try:
            for future in as_completed(future_to_entry, timeout=self.timeout_seconds):
                entry = future_to_entry[future]
                try:
                    results.append(future.result())
                except Exception as e:
                    error_msg = (
                        f"Failed to process change {entry.doc_id} "
                        f"in {self.dataset.id}: {str(e)}"
                    )
                    self.logger.error(error_msg, exc_info=True)
                    results.append(self._create_failed_result(entry, error_msg, start_time))
        except FutureTimeoutError:
            finished = {(r.doc_id, str(r.seq)) for r in results}
            for future, entry in future_to_entry.items():
                if (entry.doc_id, str(entry.seq)) in finished:
                    continue
                future.cancel()
                error_msg = (
                    f"Change {entry.doc_id} in {self.dataset.id} did not finish "
                    f"within {self.timeout_seconds}s"
                )
                self.logger.error(error_msg)
                results.append(self._create_failed_result(entry, error_msg, start_time))
        finally:
            executor.shutdown(wait=False)

        return results

    def _create_failed_result(
        self,
        entry: ChangeEntry,
        error_msg: str,
        start_time: Optional[datetime] = None,
        status: CopyStatus = CopyStatus.RETRYABLE,
    ) -> CopyResult:
        """
        Create a failed CopyResult object with consistent structure.

        Args:
            entry: Change entry that failed
            error_msg: Error message
            start_time: Operation start time
            status: Failure status

        Returns:
            CopyResult object with a failed status
        """
        if start_time is None:
            start_time = utc_now()

        return CopyResult(
            doc_id=entry.doc_id,
            seq=entry.seq,
            status=status,
            start_time=start_time.isoformat(),
            end_time=utc_now().isoformat(),
            error_message=error_msg,
        )
