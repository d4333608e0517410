"""
Download Orchestrator
=====================

Synchronize registered datasets with a local target directory.

A sync run:
1. selects every dataset, or the single requested label (an unknown label
   fails before any network activity)
2. asks the SlotResolver which slots need a fetch
3. runs one task per dataset, each fanning out one task per needed slot;
   slot tasks share one Fetcher (and its HTTP session) and a bounded
   file-level worker pool
4. validates and hashes every fetched file
5. merges successfully updated datasets back into a new Registry by label

Failure policy:
- any fetch or validation failure inside a dataset discards that dataset's
  whole update for this cycle; all of its slot errors are reported together
- other datasets are unaffected and still merged
- a 404 is a soft skip: the slot keeps its stored state and is not a failure

Usage:
    from refman.orchestrator import DownloadOrchestrator

    with DownloadOrchestrator() as orchestrator:
        result = orchestrator.sync(registry, label="hg38", target_dir=Path("/tmp/ref"))
    print(result.summary())
    store.save(result.registry)
"""

import copy
import logging
import threading
from concurrent.futures import Executor, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from .config import RefmanConfig
from .errors import DatasetSyncError, RefmanError, SlotTaskError
from .fetcher import Fetcher
from .models import Complete, Dataset, FileFormat, ValidatedFile
from .registry import Registry
from .resolver import FetchRequest, SlotResolver
from .validators import FormatValidator

logger = logging.getLogger(__name__)


class SlotStatus(Enum):
    """Outcome of one slot task."""
    FETCHED = "fetched"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass
class SlotOutcome:
    """Result of fetching and validating one slot."""
    label: str
    fmt: FileFormat
    uri: str
    status: SlotStatus
    validated: Optional[ValidatedFile] = None
    error: Optional[RefmanError] = None


@dataclass
class DatasetPlan:
    """The fetch requests computed for one dataset."""
    dataset: Dataset
    requests: List[FetchRequest] = field(default_factory=list)
    up_to_date: int = 0

    @property
    def label(self) -> str:
        return self.dataset.label


ProgressCallback = Callable[[str, FileFormat, SlotStatus, int, int], None]


@dataclass
class SyncProgress:
    """Thread-safe counters shared by every slot task of a sync."""
    total: int = 0
    done: int = 0
    fetched: int = 0
    not_found: int = 0
    failed: int = 0
    callback: Optional[ProgressCallback] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record(self, outcome: SlotOutcome) -> None:
        with self._lock:
            self.done += 1
            if outcome.status is SlotStatus.FETCHED:
                self.fetched += 1
            elif outcome.status is SlotStatus.NOT_FOUND:
                self.not_found += 1
            else:
                self.failed += 1
            done, total = self.done, self.total
        logger.debug(f"[{done}/{total}] {outcome.label}/{outcome.fmt.value}: {outcome.status.value}")
        if self.callback:
            self.callback(outcome.label, outcome.fmt, outcome.status, done, total)

    @property
    def percent(self) -> float:
        if self.total == 0:
            return 100.0
        return (self.done / self.total) * 100


@dataclass
class SyncResult:
    """Aggregated outcome of a sync run."""
    registry: Registry
    requested: int = 0
    fetched: int = 0
    up_to_date: int = 0
    not_found: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    failed: Dict[str, DatasetSyncError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> str:
        """Human-readable summary of the run."""
        lines = [
            f"Requested: {self.requested} file(s)",
            f"Downloaded and validated: {self.fetched}",
            f"Already up to date: {self.up_to_date}",
        ]
        if self.not_found:
            lines.append(f"Not found upstream (404): {len(self.not_found)}")
            lines.extend(f"  - {url}" for url in self.not_found)
        if self.updated:
            lines.append(f"Updated datasets: {', '.join(self.updated)}")
        if self.failed:
            lines.append(f"Failed datasets: {', '.join(self.failed)}")
            for error in self.failed.values():
                lines.append(error.message)
        return "\n".join(lines)


class DownloadOrchestrator:
    """
    Fan out fetch + validate work across datasets and merge the results.

    Collaborators default to ones built from ``config`` and may be injected
    for testing.
    """

    def __init__(
        self,
        config: Optional[RefmanConfig] = None,
        fetcher: Optional[Fetcher] = None,
        validator: Optional[FormatValidator] = None,
        resolver: Optional[SlotResolver] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.config = config or RefmanConfig()
        self._owns_fetcher = fetcher is None
        self.fetcher = fetcher or Fetcher(settings=self.config.download)
        self.validator = validator or FormatValidator()
        self.resolver = resolver or SlotResolver(strict_cache=self.config.strict_cache)
        self.progress_callback = progress_callback

    def __enter__(self) -> "DownloadOrchestrator":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_fetcher:
            self.fetcher.close()

    def plan(
        self,
        registry: Registry,
        label: Optional[str] = None,
        target_dir: Union[str, Path] = ".",
    ) -> List[DatasetPlan]:
        """
        Compute the fetch requests for the selected datasets.

        Raises:
            LabelNotFoundError: ``label`` is not registered
        """
        if label is not None:
            selected = [registry.get_dataset(label)]
        else:
            selected = list(registry.datasets)

        plans = []
        for dataset in selected:
            plan = DatasetPlan(dataset=dataset)
            for fmt, state in dataset.slots():
                request = self.resolver.resolve(fmt, state, target_dir)
                if request is None:
                    plan.up_to_date += 1
                else:
                    logger.debug(f"{dataset.label}/{fmt.value}: fetch needed ({request.reason})")
                    plan.requests.append(request)
            plans.append(plan)
        return plans

    def sync(
        self,
        registry: Registry,
        label: Optional[str] = None,
        target_dir: Union[str, Path] = ".",
    ) -> SyncResult:
        """
        Fetch everything that is missing or stale and merge the results.

        Args:
            registry: Current registry; it is not modified
            label: Restrict the sync to one dataset
            target_dir: Directory downloads are written into

        Returns:
            SyncResult whose ``registry`` holds the merged state

        Raises:
            LabelNotFoundError: ``label`` is not registered
        """
        target_dir = Path(target_dir)
        plans = self.plan(registry, label, target_dir)
        active = [plan for plan in plans if plan.requests]
        total = sum(len(plan.requests) for plan in active)

        result = SyncResult(
            registry=registry,
            requested=total,
            up_to_date=sum(plan.up_to_date for plan in plans),
        )
        if not active:
            logger.info("Every requested file is already downloaded and up to date")
            result.registry = registry.merge_datasets([])
            return result

        if label is not None:
            logger.info(f"Downloading {total} files for dataset labeled '{label}'...")
        else:
            logger.info(f"Downloading all {total} files listed in the refman registry...")

        progress = SyncProgress(total=total, callback=self.progress_callback)
        updated: List[Dataset] = []

        workers = self.config.download.max_workers
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="refman-file") as file_pool, \
                ThreadPoolExecutor(max_workers=len(active), thread_name_prefix="refman-dataset") as dataset_pool:
            futures = {
                dataset_pool.submit(self._sync_dataset, plan, target_dir, file_pool, progress): plan
                for plan in active
            }
            for future in as_completed(futures):
                plan = futures[future]
                try:
                    outcomes = future.result()
                except DatasetSyncError as e:
                    logger.warning(f"Failed to download files because of this error: {e.message}")
                    result.failed[plan.label] = e
                    continue

                dataset = self._apply_outcomes(plan.dataset, outcomes)
                result.not_found.extend(
                    o.uri for o in outcomes if o.status is SlotStatus.NOT_FOUND
                )
                if dataset is not None:
                    updated.append(dataset)

        result.fetched = progress.fetched
        result.registry = registry.merge_datasets(updated)
        updated_labels = {d.label for d in updated}
        result.updated = [name for name in registry.labels if name in updated_labels]

        logger.info(
            f"Done! {progress.fetched} of {total} files downloaded and validated into {target_dir}"
        )
        return result

    def _sync_dataset(
        self,
        plan: DatasetPlan,
        target_dir: Path,
        file_pool: Executor,
        progress: SyncProgress,
    ) -> List[SlotOutcome]:
        futures = [
            file_pool.submit(self._fetch_slot, plan.label, request, target_dir, progress)
            for request in plan.requests
        ]
        outcomes = [future.result() for future in as_completed(futures)]

        errors = [o.error for o in outcomes if o.status is SlotStatus.FAILED and o.error]
        if errors:
            raise DatasetSyncError(plan.label, errors)
        return outcomes

    def _fetch_slot(
        self,
        label: str,
        request: FetchRequest,
        target_dir: Path,
        progress: SyncProgress,
    ) -> SlotOutcome:
        outcome = SlotOutcome(label, request.fmt, request.uri, SlotStatus.FAILED)
        try:
            path = self.fetcher.fetch(request.uri, target_dir)
            if path is None:
                outcome.status = SlotStatus.NOT_FOUND
            else:
                outcome.validated = self.validator.validate(request.uri, path, request.fmt)
                outcome.status = SlotStatus.FETCHED
        except RefmanError as e:
            logger.error(f"{label}/{request.fmt.value}: {e.message}")
            outcome.error = e
        except Exception as e:
            logger.exception(f"{label}/{request.fmt.value}: unexpected failure")
            outcome.error = SlotTaskError(request.uri, e)
        progress.record(outcome)
        return outcome

    @staticmethod
    def _apply_outcomes(dataset: Dataset, outcomes: List[SlotOutcome]) -> Optional[Dataset]:
        fetched = [o for o in outcomes if o.status is SlotStatus.FETCHED]
        if not fetched:
            return None
        updated = copy.deepcopy(dataset)
        for outcome in fetched:
            updated.set_slot(outcome.fmt, Complete(outcome.validated))
        return updated
