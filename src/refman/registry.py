"""
Refman Registry
===============

The in-memory manifest of tracked datasets and its YAML persistence.

The Registry owns the label-uniqueness and non-empty invariants:
- registering an existing label merges slot by slot; unspecified slots keep
  their stored values
- removing a label never leaves the registry empty
- merging sync results replaces datasets by label and keeps list order

Usage:
    from refman.registry import RegistryStore
    from refman.models import Dataset

    store = RegistryStore(Path("refman.yaml"))
    registry = store.load()
    registry.register(Dataset.create("hg38", fasta="https://host/hg38.fa"))
    store.save(registry)
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlparse

import yaml

from .errors import (
    FinalEntryError,
    InvalidUrlError,
    LabelNotFoundError,
    RegistryAccessError,
    RegistryFormatError,
    RegistrySerializationError,
)
from .models import Dataset, FileFormat, format_timestamp, parse_timestamp, utc_now

logger = logging.getLogger(__name__)

REGISTRY_FILENAME = "refman.yaml"


@dataclass
class Registry:
    """
    Ordered collection of datasets plus project metadata.

    Mutating methods act in place and leave the registry untouched when
    they raise.
    """
    title: Optional[str] = None
    description: Optional[str] = None
    last_modified: datetime = field(default_factory=utc_now)
    is_global: bool = False
    datasets: List[Dataset] = field(default_factory=list)

    @property
    def labels(self) -> List[str]:
        return [dataset.label for dataset in self.datasets]

    def is_registered(self, label: str) -> bool:
        return any(dataset.label == label for dataset in self.datasets)

    def get_dataset(self, label: str) -> Dataset:
        """
        Look up a dataset by label.

        Raises:
            LabelNotFoundError: No dataset has this label
        """
        for dataset in self.datasets:
            if dataset.label == label:
                return dataset
        raise LabelNotFoundError(label)

    def dataset_urls(self, label: str) -> List[str]:
        return self.get_dataset(label).urls()

    def all_urls(self) -> List[str]:
        """
        Every URL tracked by the registry.

        Raises:
            InvalidUrlError: A stored URL is empty or not http(s)
        """
        urls = []
        for dataset in self.datasets:
            for url in dataset.urls():
                if urlparse(url).scheme not in ("http", "https"):
                    raise InvalidUrlError(url, "only http and https URLs are supported")
                urls.append(url)
        return urls

    def register(self, new_dataset: Dataset) -> "Registry":
        """
        Add a dataset, or merge it into the existing one with the same label.

        Only slots that are set on ``new_dataset`` overwrite stored slots.

        Returns:
            self, for chaining
        """
        for existing in self.datasets:
            if existing.label != new_dataset.label:
                continue
            for fmt, state in new_dataset.slots():
                logger.debug(f"Updating {fmt.value} slot of '{existing.label}'")
                existing.set_slot(fmt, state)
            logger.info(f"Updated dataset '{existing.label}'")
            return self

        self.datasets.append(new_dataset)
        logger.info(f"Registered new dataset '{new_dataset.label}'")
        return self

    def remove(self, label: str) -> "Registry":
        """
        Remove a dataset by label.

        Raises:
            LabelNotFoundError: No dataset has this label
            FinalEntryError: The label is the last remaining dataset
        """
        if not self.is_registered(label):
            raise LabelNotFoundError(label)
        if len(self.datasets) == 1:
            raise FinalEntryError(label)

        self.datasets = [d for d in self.datasets if d.label != label]
        logger.info(f"Removed dataset '{label}'")
        return self

    def merge_datasets(self, updated: Iterable[Dataset]) -> "Registry":
        """
        Reconcile updated datasets into a new Registry value.

        Datasets are matched by label; unmatched stored datasets keep their
        state and order. ``last_modified`` is refreshed only when at least
        one dataset was replaced.
        """
        by_label: Dict[str, Dataset] = {d.label: d for d in updated}
        merged = [by_label.get(d.label, d) for d in self.datasets]
        replaced = sum(1 for d in self.datasets if d.label in by_label)

        if not replaced:
            return replace(self, datasets=list(self.datasets))
        return replace(self, datasets=merged, last_modified=utc_now())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "title": self.title,
            "description": self.description,
            "last_modified": format_timestamp(self.last_modified),
            "global": self.is_global,
            "datasets": [d.to_dict() for d in self.datasets],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Registry":
        """Create from dictionary."""
        # manifests written by older releases nest everything under `project`
        if "project" in data and isinstance(data["project"], dict):
            data = data["project"]

        datasets = [Dataset.from_dict(d) for d in data.get("datasets") or []]
        seen = set()
        for dataset in datasets:
            if dataset.label in seen:
                raise ValueError(f"duplicate dataset label {dataset.label!r}")
            seen.add(dataset.label)

        return cls(
            title=data.get("title"),
            description=data.get("description"),
            last_modified=parse_timestamp(data.get("last_modified")) or utc_now(),
            is_global=bool(data.get("global", False)),
            datasets=datasets,
        )


class RegistryStore:
    """
    Load and save a Registry at a resolved manifest path.

    An absent or empty manifest loads as a fresh, empty Registry.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def init(
        self,
        title: Optional[str] = None,
        description: Optional[str] = None,
        is_global: bool = False,
    ) -> Registry:
        """Create an empty manifest unless one already exists."""
        if self.exists() and self.path.stat().st_size > 0:
            logger.info(
                f"A refman registry already exists at {self.path}. "
                "Start filling it with `refman register`."
            )
            return self.load()

        registry = Registry(title=title, description=description, is_global=is_global)
        self.save(registry)
        return registry

    def load(self) -> Registry:
        """
        Read the manifest.

        Raises:
            RegistryAccessError: The file exists but cannot be read
            RegistryFormatError: The file is not a valid manifest
        """
        if not self.path.exists():
            logger.debug(f"No registry at {self.path}; starting a fresh one")
            return Registry()

        try:
            text = self.path.read_text()
        except OSError as e:
            raise RegistryAccessError(self.path, e) from e

        if not text.strip():
            logger.debug(f"Registry at {self.path} is empty; starting a fresh one")
            return Registry()

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise RegistryFormatError(self.path, str(e)) from e

        if data is None:
            return Registry()
        if not isinstance(data, dict):
            raise RegistryFormatError(self.path, "top level is not a mapping")

        try:
            registry = Registry.from_dict(data)
        except (TypeError, ValueError) as e:
            raise RegistryFormatError(self.path, str(e)) from e

        logger.debug(f"Loaded {len(registry.datasets)} dataset(s) from {self.path}")
        return registry

    def save(self, registry: Registry) -> None:
        """
        Write the manifest, refreshing ``last_modified``.

        Raises:
            RegistryAccessError: The file cannot be written
            RegistrySerializationError: The registry cannot be represented as YAML
        """
        registry.last_modified = utc_now()
        try:
            text = yaml.safe_dump(registry.to_dict(), sort_keys=False, default_flow_style=False)
        except yaml.YAMLError as e:
            raise RegistrySerializationError(str(e)) from e

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_name(self.path.name + ".tmp")
            tmp_path.write_text(text)
            tmp_path.replace(self.path)
        except OSError as e:
            raise RegistryAccessError(self.path, e) from e

        logger.info(f"Wrote {len(registry.datasets)} dataset(s) to {self.path}")


def slot_summary(dataset: Dataset) -> Dict[str, Optional[str]]:
    """Map each format to its URL (or None) for display."""
    summary = {}
    for fmt in FileFormat:
        state = dataset.get_slot(fmt)
        summary[fmt.value] = state.uri if state is not None else None
    return summary
