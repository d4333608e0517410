"""
Refman Errors
=============

Exception hierarchy for registry, entry, fetch and validation failures.

Every error carries a human-readable ``message`` so the CLI can report it
without a traceback. Entry and registry errors abort the current operation;
fetch and validation errors are isolated per dataset during a sync.
"""

from pathlib import Path
from typing import List, Optional, Sequence, Union


class RefmanError(Exception):
    """Base class for all refman errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigError(RefmanError):
    """A configuration file could not be read or has invalid values."""


# =============================================================================
# Entry Errors
# =============================================================================

class EntryError(RefmanError):
    """A dataset entry violates a registry invariant."""


class LabelButNoFilesError(EntryError):
    """A label was supplied without any files."""

    def __init__(self, label: str = ""):
        super().__init__(
            f"A label for a reference dataset{f' ({label!r})' if label else ''} "
            "was provided without any files. Please include at least one file per label."
        )
        self.label = label


class AnnotationsWithoutSequenceError(EntryError):
    """Annotation files were supplied without a FASTA or Genbank sequence."""

    def __init__(self, label: str):
        super().__init__(
            f"Annotations for `{label}` were registered or requested without an "
            "associated sequence in FASTA or Genbank format."
        )
        self.label = label


class LabelNotFoundError(EntryError):
    """The requested label is not in the registry."""

    def __init__(self, label: str):
        super().__init__(f"The provided label `{label}` is not present in the refman registry.")
        self.label = label


class FinalEntryError(EntryError):
    """Removing the label would leave the registry empty."""

    def __init__(self, label: str):
        super().__init__(
            f"The label `{label}` is the final entry in the refman registry, which "
            "would leave behind an invalid state. Delete the registry file instead."
        )
        self.label = label


class InvalidUrlError(EntryError):
    """A URL supplied for registration is malformed or unreachable."""

    def __init__(self, url: str, reason: str = ""):
        message = f"The URL `{url}` is invalid or does not point to a resource that exists"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.url = url
        self.reason = reason


# =============================================================================
# Registry Errors
# =============================================================================

class RegistryError(RefmanError):
    """The persisted manifest could not be read or written."""


class RegistryAccessError(RegistryError):
    """I/O or permission failure on the manifest file."""

    def __init__(self, path: Union[str, Path], cause: Optional[BaseException] = None):
        message = (
            f"The refman registry at `{path}` is inaccessible. Make sure the directory "
            "exists and that the current user has read and write permissions there"
        )
        if cause is not None:
            message += f" ({cause})"
        super().__init__(message)
        self.path = Path(path)
        self.cause = cause


class RegistryFormatError(RegistryError):
    """The manifest exists but could not be parsed."""

    def __init__(self, path: Union[str, Path], reason: str):
        super().__init__(
            f"The refman registry at `{path}` is malformed and could not be loaded: {reason}"
        )
        self.path = Path(path)
        self.reason = reason


class RegistrySerializationError(RegistryError):
    """The in-memory registry could not be serialized."""

    def __init__(self, reason: str):
        super().__init__(
            f"The internal registry representation could not be serialized: {reason}"
        )
        self.reason = reason


# =============================================================================
# Fetch Errors
# =============================================================================

class FetchError(RefmanError):
    """A download failed after exhausting its retries."""

    def __init__(self, url: str, attempts: int, cause: Optional[BaseException] = None):
        message = f"Failed to download {url} after {attempts} attempt(s)"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
        self.url = url
        self.attempts = attempts
        self.cause = cause


class NameExtractionError(FetchError):
    """No file name could be derived from the URL path."""

    def __init__(self, url: str):
        RefmanError.__init__(
            self,
            "Failed to extract a file name from the URL, which may be corrupted or "
            f"may not end with the name of a file: {url}",
        )
        self.url = url
        self.attempts = 0
        self.cause = None


# =============================================================================
# Validation Errors
# =============================================================================

class ValidationError(RefmanError):
    """A downloaded file failed validation."""


class InaccessibleFileError(ValidationError):
    """The file could not be opened or read."""

    def __init__(self, path: Union[str, Path], cause: Optional[BaseException] = None):
        message = (
            f"The file provided for validation, `{path}`, is inaccessible, either because "
            "of insufficient read permissions or because it does not exist"
        )
        if cause is not None:
            message += f" ({cause})"
        super().__init__(message)
        self.path = Path(path)
        self.cause = cause


class InvalidFormatError(ValidationError):
    """The file could not be parsed in its declared format."""

    def __init__(self, path: Union[str, Path], file_format: str, reason: str = ""):
        message = (
            f"The file provided as {file_format.upper()} format, `{path}`, could not be "
            "parsed and validated in that format"
        )
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.path = Path(path)
        self.file_format = file_format
        self.reason = reason


class MultipleValidationErrors(ValidationError):
    """Several validation failures collected into one report."""

    def __init__(self, errors: Sequence[RefmanError]):
        self.errors: List[RefmanError] = list(errors)
        lines = "\n".join(f"- {error.message}" for error in self.errors)
        super().__init__(f"Multiple validation errors occurred:\n{lines}")


class SlotTaskError(RefmanError):
    """An unexpected exception while fetching or validating one slot."""

    def __init__(self, url: str, cause: BaseException):
        super().__init__(
            f"Unexpected error while processing {url}: {type(cause).__name__}: {cause}"
        )
        self.url = url
        self.cause = cause


class DatasetSyncError(RefmanError):
    """One or more slots of a dataset failed during a sync."""

    def __init__(self, label: str, errors: Sequence[RefmanError]):
        self.label = label
        self.errors: List[RefmanError] = list(errors)
        lines = "\n".join(f"- {error.message}" for error in self.errors)
        super().__init__(f"Dataset `{label}` could not be synchronized:\n{lines}")
