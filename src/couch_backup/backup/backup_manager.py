"""
Backup manager with concurrent execution and a self-rescheduling poll loop.

This module drives the whole pipeline: every cycle it enumerates datasets,
backs them up concurrently, waits for every dataset batch to finish, then
sleeps a fixed interval before the next cycle.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Dict, List, Optional

from ..audit.logger import BackupLogger
from ..config.models import (
    BackupSystemConfig,
    CycleSummary,
    Dataset,
    DatasetResult,
    DatasetState,
)
from ..core.base_manager import BaseManager
from ..couch_operations import CouchOperations
from ..exceptions import CatalogError
from ..utils import utc_now
from .backup_provider import DatasetBackupProvider
from .dataset_enumerator import DatasetEnumerator
from .target_resolver import BackupTargetResolver, DesignDocumentDeployer


class BackupManager(BaseManager):
    """Manager coordinating backup cycles across all datasets."""

    def __init__(
        self,
        config: BackupSystemConfig,
        couch_ops: CouchOperations,
        logger: BackupLogger,
        run_id: Optional[str] = None,
        deployer=None,
        stop_event: Optional[threading.Event] = None,
    ):
        super().__init__(config, couch_ops, logger, run_id)
        self.enumerator = DatasetEnumerator(
            couch_ops,
            config.catalog,
            logger,
            include_datasets=config.backup.include_datasets,
            exclude_datasets=config.backup.exclude_datasets,
        )
        self.resolver = BackupTargetResolver(
            couch_ops,
            logger,
            deployer
            or DesignDocumentDeployer(couch_ops, logger, config.backup.bootstrap_app_path),
            suffix=config.backup.suffix,
        )
        self.stop_event = stop_event or threading.Event()
        self.cycles_run = 0
        # Only the thread running cycles touches these maps
        self._states: Dict[str, DatasetState] = {}
        self._abandoned: Dict[str, Future] = {}

    @property
    def states(self) -> Dict[str, DatasetState]:
        """Snapshot of the per-dataset state."""
        return {k: v.model_copy(deep=True) for k, v in self._states.items()}

    def stop(self) -> None:
        """Ask the poll loop to stop before its next cycle."""
        self.stop_event.set()

    def create_provider(self, dataset: Dataset) -> DatasetBackupProvider:
        return DatasetBackupProvider(
            self.couch_ops, self.logger, self.run_id, dataset, self.config, self.resolver
        )

    def run_forever(self, max_cycles: Optional[int] = None) -> List[CycleSummary]:
        """
        Run backup cycles until stopped.

        Args:
            max_cycles: Optional number of cycles after which to return

        Returns:
            Summaries of the cycles run
        """
        interval = self.config.scheduler.poll_interval_seconds
        summaries: List[CycleSummary] = []

        self.logger.info(
            f"Starting backup poll loop (run_id: {self.run_id}, interval: {interval}s)",
            extra={"vhost": self.config.couch.vhost},
        )

        while not self.stop_event.is_set():
            summaries.append(self.run_cycle())
            if max_cycles is not None and len(summaries) >= max_cycles:
                break
            if self.stop_event.wait(interval):
                break

        self.logger.info(f"Backup poll loop stopped after {len(summaries)} cycles")
        return summaries

    def run_cycle(self) -> CycleSummary:
        """
        Run one backup cycle over every dataset.

        Returns:
            CycleSummary with the cycle results
        """
        self.cycles_run += 1
        cycle = self.cycles_run
        start_time = utc_now()

        try:
            datasets = self.enumerator.list_datasets()
        except CatalogError as e:
            error_msg = f"Backup cycle {cycle} aborted: {str(e)}"
            self.logger.error(error_msg)
            summary = self.create_summary(cycle, start_time, [], "backup", error_msg)
            self.log_run_summary(summary, "backup")
            return summary

        if not datasets:
            self.logger.info("No datasets listed in the catalog")

        results = self._run_backup_operations(list(datasets.values()))
        for result in results:
            self._apply_result(result)

        summary = self.create_summary(cycle, start_time, results, "backup")
        self.logger.info(summary.summary, extra={"run_id": self.run_id, "status": summary.status})

        self.log_run_results(results)
        self.log_run_summary(summary, "backup")
        return summary

    def _run_backup_operations(self, datasets: List[Dataset]) -> List[DatasetResult]:
        """Back up datasets concurrently and wait for every batch."""
        results: List[DatasetResult] = []
        if not datasets:
            return results

        max_workers = self.config.concurrency.max_workers
        timeout = self.config.concurrency.timeout_seconds
        start_time = utc_now()

        for dataset_id, future in list(self._abandoned.items()):
            if future.done():
                del self._abandoned[dataset_id]

        runnable = []
        for dataset in datasets:
            if dataset.id in self._abandoned:
                error_msg = (
                    f"Skipping dataset {dataset.id}: its abandoned batch from an "
                    f"earlier cycle is still running"
                )
                self.logger.warning(error_msg)
                results.append(self._create_failed_result(dataset, error_msg, start_time))
            else:
                runnable.append(dataset)
        if not runnable:
            return results

        executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="dataset")
        providers = {dataset.id: self.create_provider(dataset) for dataset in runnable}
        future_to_dataset = {
            executor.submit(providers[dataset.id].process_dataset): dataset
            for dataset in runnable
        }
        try:
            for future in as_completed(future_to_dataset, timeout=timeout):
                dataset = future_to_dataset[future]
                try:
                    results.append(future.result())
                except Exception as e:
                    error_msg = f"Backup failed for dataset {dataset.id}: {str(e)}"
                    self.logger.error(error_msg, exc_info=True)
                    results.append(self._create_failed_result(dataset, error_msg, start_time))
        except FutureTimeoutError:
            finished = {r.dataset_id for r in results}
            for future, dataset in future_to_dataset.items():
                if dataset.id in finished:
                    continue
                providers[dataset.id].cancel()
                if not future.cancel():
                    self._abandoned[dataset.id] = future
                error_msg = (
                    f"Backup of dataset {dataset.id} did not finish within {timeout}s; "
                    f"the batch is abandoned and will not advance its checkpoint"
                )
                self.logger.error(error_msg)
                results.append(self._create_failed_result(dataset, error_msg, start_time))
        finally:
            executor.shutdown(wait=False)

        return results

    def _create_failed_result(self, dataset: Dataset, error_msg: str, start_time) -> DatasetResult:
        return DatasetResult(
            dataset_id=dataset.id,
            target_db=self.resolver.target_name(dataset.id),
            status="failed",
            start_time=start_time.isoformat(),
            end_time=utc_now().isoformat(),
            error_message=error_msg,
        )

    def _apply_result(self, result: DatasetResult) -> None:
        """Fold a dataset result into the scheduler-owned state."""
        state = self._states.get(result.dataset_id) or DatasetState(
            dataset_id=result.dataset_id
        )

        if result.status == "failed":
            state.consecutive_failures += 1
            if result.checkpoint is not None:
                state.checkpoint = result.checkpoint
        else:
            state.consecutive_failures = 0
            state.checkpoint = result.checkpoint
            state.unresolved = list(result.unresolved)

        state.last_status = result.status
        state.last_run_id = self.run_id
        self._states[result.dataset_id] = state

        if state.consecutive_failures > 1:
            self.logger.warning(
                f"Dataset {result.dataset_id} failed {state.consecutive_failures} cycles in a row",
                extra={"error": result.error_message},
            )
