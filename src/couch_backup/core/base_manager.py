"""
Base manager class with common functionality for backup operations.

This module provides shared functionality for managers that run cycles of
dataset operations: result logging, audit trail and cycle summaries.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from ..audit.audit_logger import AuditLogger
from ..audit.logger import BackupLogger
from ..config.models import BackupSystemConfig, CycleSummary, DatasetResult
from ..couch_operations import CouchOperations
from ..utils import utc_now


class BaseManager:
    """Base manager class with common functionality for backup operations."""

    def __init__(
        self,
        config: BackupSystemConfig,
        couch_ops: CouchOperations,
        logger: BackupLogger,
        run_id: Optional[str] = None,
    ):
        """
        Initialize the base manager.

        Args:
            config: System configuration
            couch_ops: Store operations helper
            logger: Logger instance
            run_id: Optional run identifier
        """
        self.config = config
        self.couch_ops = couch_ops
        self.logger = logger
        self.run_id = run_id or str(uuid.uuid4())
        self.audit_logger = None
        if config.audit_config.audit_db:
            self.audit_logger = AuditLogger(
                couch_ops,
                logger,
                self.run_id,
                config.audit_config.audit_db,
                vhost=config.couch.vhost,
            )

    def log_run_result(self, result: DatasetResult) -> None:
        """
        Log a DatasetResult to the audit database.

        Args:
            result: DatasetResult object to log
        """
        if self.audit_logger is None:
            return
        try:
            self.audit_logger.log_operation(
                operation_type=result.operation_type,
                dataset_id=result.dataset_id,
                status=result.status,
                start_time=result.start_time,
                end_time=result.end_time,
                error_message=result.error_message,
                details=result.model_dump(
                    mode="json",
                    exclude={"operation_type", "dataset_id", "status", "error_message"},
                ),
            )
        except Exception as e:
            self.logger.error(f"Failed to log run result: {str(e)}", exc_info=True)

    def log_run_results(self, results: List[DatasetResult]) -> None:
        """
        Log multiple DatasetResult objects to the audit database.

        Args:
            results: List of DatasetResult objects to log
        """
        for result in results:
            self.log_run_result(result)

    def create_summary(
        self,
        cycle: int,
        start_time: datetime,
        results: List[DatasetResult],
        operation_type: str = "backup",
        error_message: Optional[str] = None,
    ) -> CycleSummary:
        """
        Create a cycle summary object.

        Args:
            cycle: Cycle number within this run
            start_time: Cycle start time
            results: List of dataset results
            operation_type: Type of operation
            error_message: Error that aborted the cycle, if any
        """
        end_time = utc_now()
        duration = (end_time - start_time).total_seconds()

        successful = sum(1 for r in results if r.status == "success")
        idle = sum(1 for r in results if r.status == "idle")
        failed = sum(1 for r in results if r.status in ("failed", "partial"))
        copied = sum(r.entries_copied for r in results)
        entries_failed = sum(r.retryable_failures + r.fatal_failures for r in results)

        if error_message:
            status = "failed"
        elif failed == 0:
            status = "completed"
        else:
            status = "completed_with_failures"

        summary_text = (
            f"{operation_type.title()} cycle {cycle} completed in {duration:.1f}s. "
            f"Processed {len(results)} datasets: {successful} backed up, {idle} idle, "
            f"{failed} with failures. Copied {copied} changes, {entries_failed} failed"
        )

        return CycleSummary(
            run_id=self.run_id,
            cycle=cycle,
            start_time=start_time.isoformat(),
            end_time=end_time.isoformat(),
            duration=duration,
            status=status,
            total_datasets=len(results),
            successful_datasets=successful,
            idle_datasets=idle,
            failed_datasets=failed,
            entries_copied=copied,
            entries_failed=entries_failed,
            summary=summary_text,
            error_message=error_message,
        )

    def log_run_summary(self, summary: CycleSummary, operation_type: str = "backup") -> None:
        """
        Log cycle summary to the audit database.

        Args:
            summary: Cycle summary to log
            operation_type: Type of operation for audit logging
        """
        if self.audit_logger is None:
            return
        try:
            self.audit_logger.log_operation(
                operation_type=f"{operation_type}_cycle_summary",
                dataset_id="ALL",
                status=summary.status,
                start_time=summary.start_time,
                end_time=summary.end_time,
                error_message=summary.error_message,
                details={"cycle": summary.cycle, "summary": summary.summary},
            )
        except Exception as e:
            self.logger.error(f"Failed to log run summary: {str(e)}", exc_info=True)
