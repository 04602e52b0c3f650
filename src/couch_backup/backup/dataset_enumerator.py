"""
Dataset enumeration from the catalog view.
"""

from typing import Dict, List, Optional

from ..audit.logger import BackupLogger
from ..config.models import CatalogConfig, Dataset
from ..couch_operations import CouchOperations
from ..exceptions import CatalogError, StoreRequestError


class DatasetEnumerator:
    """Lists the datasets known to the catalog."""

    def __init__(
        self,
        couch_ops: CouchOperations,
        catalog_config: CatalogConfig,
        logger: BackupLogger,
        include_datasets: Optional[List[str]] = None,
        exclude_datasets: Optional[List[str]] = None,
    ):
        self.couch_ops = couch_ops
        self.catalog_config = catalog_config
        self.logger = logger
        self.include_datasets = set(include_datasets or [])
        self.exclude_datasets = set(exclude_datasets or [])

    def list_datasets(self) -> Dict[str, Dataset]:
        """
        Return the current mapping of dataset id to dataset.

        Raises:
            CatalogError: If the catalog cannot be queried
        """
        try:
            rows = self.couch_ops.query_view(
                self.catalog_config.database, self.catalog_config.view
            )
        except StoreRequestError as e:
            raise CatalogError(
                f"Failed to list datasets from {self.catalog_config.database}: {e}"
            ) from e

        datasets: Dict[str, Dataset] = {}
        for row in rows:
            dataset_id = row.get("id")
            if not dataset_id or dataset_id in datasets:
                continue
            if self.include_datasets and dataset_id not in self.include_datasets:
                continue
            if dataset_id in self.exclude_datasets:
                continue
            key = row.get("key")
            datasets[dataset_id] = Dataset(
                id=dataset_id,
                user=key if isinstance(key, str) else None,
                metadata=row.get("doc") or {},
            )

        self.logger.debug(
            f"Catalog listed {len(datasets)} datasets",
            extra={"catalog": self.catalog_config.database},
        )
        return datasets
