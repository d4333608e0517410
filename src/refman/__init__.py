"""
Refman
======

Track, fetch and verify remote reference datasets (FASTA, Genbank, GFA,
GFF, GTF, BED) for a bioinformatics project.

A YAML manifest records, per labeled dataset, which files are wanted and
whether each has been downloaded and content-verified.

Quick Start:
    from pathlib import Path
    from refman import Dataset, DownloadOrchestrator, RegistryStore

    store = RegistryStore(Path("refman.yaml"))
    registry = store.load()
    registry.register(Dataset.create("hg38", fasta="https://host/hg38.fa"))

    with DownloadOrchestrator() as orchestrator:
        result = orchestrator.sync(registry, target_dir=Path("references"))
    store.save(result.registry)
"""

__version__ = "0.1.0"

from .errors import (
    RefmanError,
    ConfigError,
    EntryError,
    LabelButNoFilesError,
    AnnotationsWithoutSequenceError,
    LabelNotFoundError,
    FinalEntryError,
    InvalidUrlError,
    RegistryError,
    RegistryAccessError,
    RegistryFormatError,
    RegistrySerializationError,
    FetchError,
    NameExtractionError,
    ValidationError,
    InaccessibleFileError,
    InvalidFormatError,
    MultipleValidationErrors,
    SlotTaskError,
    DatasetSyncError,
)

from .models import (
    FileFormat,
    ValidatedFile,
    Pending,
    Complete,
    DownloadState,
    Dataset,
)

from .registry import (
    Registry,
    RegistryStore,
    REGISTRY_FILENAME,
)

from .config import (
    RefmanConfig,
    DownloadSettings,
)

from .hashing import hash_file
from .fetcher import Fetcher, uri_to_filename
from .validators import FormatValidator, validate_dataset
from .resolver import FetchRequest, SlotResolver

from .orchestrator import (
    DownloadOrchestrator,
    SyncProgress,
    SyncResult,
    SlotStatus,
)

__all__ = [
    "__version__",

    # Errors
    "RefmanError",
    "ConfigError",
    "EntryError",
    "LabelButNoFilesError",
    "AnnotationsWithoutSequenceError",
    "LabelNotFoundError",
    "FinalEntryError",
    "InvalidUrlError",
    "RegistryError",
    "RegistryAccessError",
    "RegistryFormatError",
    "RegistrySerializationError",
    "FetchError",
    "NameExtractionError",
    "ValidationError",
    "InaccessibleFileError",
    "InvalidFormatError",
    "MultipleValidationErrors",
    "SlotTaskError",
    "DatasetSyncError",

    # Models
    "FileFormat",
    "ValidatedFile",
    "Pending",
    "Complete",
    "DownloadState",
    "Dataset",

    # Registry
    "Registry",
    "RegistryStore",
    "REGISTRY_FILENAME",

    # Configuration
    "RefmanConfig",
    "DownloadSettings",

    # Sync engine
    "hash_file",
    "Fetcher",
    "uri_to_filename",
    "FormatValidator",
    "validate_dataset",
    "FetchRequest",
    "SlotResolver",
    "DownloadOrchestrator",
    "SyncProgress",
    "SyncResult",
    "SlotStatus",
]
