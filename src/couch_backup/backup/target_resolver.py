"""
Backup target resolution and bootstrap deployment.

A backup store is checked every cycle. When it is missing it is created and
the bootstrap application is deployed into it before any revision lands.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel

from ..audit.logger import BackupLogger
from ..couch_operations import CouchOperations
from ..exceptions import (
    BootstrapDeploymentError,
    DocumentConflictError,
    StoreRequestError,
    TargetCreationError,
)


class TargetResolution(BaseModel):
    """Outcome of resolving a backup target."""

    target_db: str
    created: bool = False


class DesignDocumentDeployer:
    """
    Deploys a bootstrap application made of design documents.

    The application path is either one JSON design document or a directory
    of them. Existing design documents are overwritten.
    """

    def __init__(
        self,
        couch_ops: CouchOperations,
        logger: BackupLogger,
        app_path: Optional[Union[str, Path]] = None,
    ):
        self.couch_ops = couch_ops
        self.logger = logger
        self.app_path = Path(app_path) if app_path else None

    def load_documents(self) -> List[Dict[str, Any]]:
        """Read the design documents making up the application."""
        if self.app_path is None:
            return []
        if not self.app_path.exists():
            raise BootstrapDeploymentError(
                f"Bootstrap application not found: {self.app_path}"
            )

        paths = (
            sorted(self.app_path.glob("*.json"))
            if self.app_path.is_dir()
            else [self.app_path]
        )
        documents = []
        for path in paths:
            try:
                doc = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                raise BootstrapDeploymentError(
                    f"Unreadable bootstrap document {path}: {e}"
                ) from e
            doc.setdefault("_id", f"_design/{path.stem}")
            if not doc["_id"].startswith("_design/"):
                raise BootstrapDeploymentError(
                    f"Bootstrap document {path} is not a design document: {doc['_id']}"
                )
            documents.append(doc)
        return documents

    def deploy(self, target_db: str) -> None:
        """Push every design document into target_db."""
        documents = self.load_documents()
        if not documents:
            self.logger.info(
                f"No bootstrap application configured, skipping deployment to {target_db}"
            )
            return

        for doc in documents:
            doc = {k: v for k, v in doc.items() if k != "_rev"}
            try:
                try:
                    self.couch_ops.put_document(target_db, doc["_id"], doc)
                except DocumentConflictError:
                    current = self.couch_ops.get_document(target_db, doc["_id"]) or {}
                    if current.get("_rev"):
                        doc["_rev"] = current["_rev"]
                    self.couch_ops.put_document(target_db, doc["_id"], doc)
            except StoreRequestError as e:
                raise BootstrapDeploymentError(
                    f"Failed to deploy {doc['_id']} to {target_db}: {e}"
                ) from e

        self.logger.info(
            f"Deployed bootstrap application to {target_db}",
            extra={"documents": [doc["_id"] for doc in documents]},
        )


class BackupTargetResolver:
    """Ensures the backup store of a dataset exists before copying into it."""

    def __init__(
        self,
        couch_ops: CouchOperations,
        logger: BackupLogger,
        deployer,
        suffix: str = "-backup",
    ):
        """
        Initialize the resolver.

        Args:
            couch_ops: Store operations helper
            logger: Logger instance
            deployer: Object with a deploy(target_db) method
            suffix: Suffix appended to the dataset id to name its backup store
        """
        self.couch_ops = couch_ops
        self.logger = logger
        self.deployer = deployer
        self.suffix = suffix

    def target_name(self, dataset_id: str) -> str:
        return f"{dataset_id}{self.suffix}"

    def resolve(self, dataset_id: str) -> TargetResolution:
        """
        Probe the backup store, creating and bootstrapping it when missing.

        Raises:
            TargetCreationError: If the store cannot be created
            BootstrapDeploymentError: If the bootstrap application fails to
                deploy; a store created by this call is removed again
        """
        target_db = self.target_name(dataset_id)

        if self.couch_ops.database_exists(target_db):
            return TargetResolution(target_db=target_db, created=False)

        self.logger.info(f"Backup store {target_db} is missing, creating it")
        try:
            created = self.couch_ops.create_database(target_db)
        except StoreRequestError as e:
            raise TargetCreationError(
                f"Failed to create backup store {target_db}: {e}"
            ) from e

        if not created:
            self.logger.info(f"Backup store {target_db} already existed")

        try:
            self.deployer.deploy(target_db)
        except Exception:
            if created:
                self._discard(target_db)
            raise
        return TargetResolution(target_db=target_db, created=True)

    def _discard(self, target_db: str) -> None:
        """Drop a store left without its bootstrap application so the next cycle recreates it."""
        try:
            self.couch_ops.delete_database(target_db)
            self.logger.warning(
                f"Removed backup store {target_db} after its bootstrap deployment failed"
            )
        except StoreRequestError as e:
            self.logger.error(
                f"Backup store {target_db} is left without its bootstrap application: {e}"
            )
