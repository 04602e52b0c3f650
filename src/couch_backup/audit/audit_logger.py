"""
Audit logger for backup operations.

This module writes one audit document per dataset batch and per poll cycle
into a dedicated audit database.
"""

from typing import Any, Dict, Optional

from ..couch_operations import CouchOperations
from ..exceptions import StoreRequestError
from ..utils import utc_now
from .logger import BackupLogger


class AuditLogger:
    """Audit logger for logging operations to an audit database."""

    def __init__(
        self,
        couch_ops: CouchOperations,
        logger: BackupLogger,
        run_id: str,
        audit_db: str,
        vhost: Optional[str] = None,
    ):
        """
        Initialize the audit logger and create the audit database.

        Args:
            couch_ops: Store operations helper
            logger: Logger instance for standard logging
            run_id: Unique run identifier
            audit_db: Name of the audit database
            vhost: Virtual host of the deployment, recorded on every entry
        """
        self.couch_ops = couch_ops
        self.logger = logger
        self.run_id = run_id
        self.audit_db = audit_db
        self.vhost = vhost

        # Create audit database during instantiation
        self.create_audit_db()

    def create_audit_db(self) -> None:
        """Create the audit database if it does not exist."""
        if self.couch_ops.database_exists(self.audit_db):
            return
        try:
            self.couch_ops.create_database(self.audit_db)
            self.logger.debug(f"Created/verified audit database: {self.audit_db}")
        except StoreRequestError as e:
            # Fallback to standard logging if the audit database is unavailable
            self.logger.warning(f"Could not create audit database {self.audit_db}: {str(e)}")

    def log_operation(
        self,
        operation_type: str,
        dataset_id: str,
        status: str,
        start_time: str,
        end_time: str,
        error_message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Log operation to the audit database.

        Args:
            operation_type: Type of operation (backup, backup_cycle_summary)
            dataset_id: Dataset id, or ALL for cycle summaries
            status: Operation status
            start_time: Operation start time (ISO format)
            end_time: Operation end time (ISO format)
            error_message: Error message if failed
            details: Additional details about the operation
        """
        audit_doc = {
            "type": "audit",
            "run_id": self.run_id,
            "logging_time": utc_now().isoformat(),
            "operation_type": operation_type,
            "dataset_id": dataset_id,
            "status": status,
            "start_time": start_time,
            "end_time": end_time,
            "error_message": error_message,
            "details": details or {},
            "vhost": self.vhost,
        }

        try:
            self.couch_ops.post_document(self.audit_db, audit_doc)
        except StoreRequestError as e:
            # Fallback to standard logging if audit logging fails
            self.logger.warning(f"Failed to log to audit database {self.audit_db}: {str(e)}")
