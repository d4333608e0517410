"""
Refman Data Models
==================

Core data structures for tracked reference datasets.

A Dataset groups up to six file slots, one per supported format. Each slot
holds a DownloadState, which is either:

- Pending: the remote URL is known but no local artifact is trusted yet
- Complete: a previous fetch produced a file that passed format validation

Usage:
    from refman.models import Dataset, FileFormat

    dataset = Dataset.create("hg38", fasta="https://host/hg38.fa")
    for fmt, state in dataset.slots():
        print(fmt.value, state.uri)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from .errors import AnnotationsWithoutSequenceError, LabelButNoFilesError

logger = logging.getLogger(__name__)


class FileFormat(Enum):
    """Supported bioinformatics file formats, one slot each."""
    FASTA = "fasta"
    GENBANK = "genbank"
    GFA = "gfa"
    GFF = "gff"
    GTF = "gtf"
    BED = "bed"

    @property
    def is_sequence(self) -> bool:
        return self in SEQUENCE_FORMATS

    @property
    def is_annotation(self) -> bool:
        return self in ANNOTATION_FORMATS

    @property
    def display_name(self) -> str:
        return "Genbank" if self is FileFormat.GENBANK else self.value.upper()


SEQUENCE_FORMATS = (FileFormat.FASTA, FileFormat.GENBANK)
ANNOTATION_FORMATS = (FileFormat.GFF, FileFormat.GTF, FileFormat.BED)


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a persisted timestamp.

    Accepts datetime objects (PyYAML resolves ISO timestamps itself),
    ISO-8601 strings, and epoch seconds.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise ValueError(f"Unsupported timestamp value: {value!r}")


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class ValidatedFile:
    """
    A local artifact that passed format validation.

    A missing ``hash`` means the file was validated but never hashed, which
    is a degraded trust state.
    """
    uri: str
    validated: bool = True
    hash: Optional[str] = None
    last_validated: Optional[datetime] = None
    local_path: Optional[Path] = None

    def __post_init__(self):
        if isinstance(self.local_path, str):
            self.local_path = Path(self.local_path)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data: Dict[str, Any] = {
            "uri": self.uri,
            "validated": self.validated,
            "hash": self.hash,
            "last_validated": format_timestamp(self.last_validated),
        }
        if self.local_path is not None:
            data["local_path"] = str(self.local_path)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ValidatedFile":
        """Create from dictionary."""
        if "uri" not in data:
            raise ValueError("downloaded file entry is missing its `uri`")
        return cls(
            uri=str(data["uri"]),
            validated=bool(data.get("validated", False)),
            hash=data.get("hash"),
            last_validated=parse_timestamp(data.get("last_validated")),
            local_path=Path(data["local_path"]) if data.get("local_path") else None,
        )


@dataclass(frozen=True)
class Pending:
    """The remote URL is known; nothing local is trusted yet."""
    uri: str

    def __str__(self) -> str:
        return f"Not yet downloaded ({self.uri})"


@dataclass(frozen=True)
class Complete:
    """A previous fetch produced a validated local file."""
    file: ValidatedFile

    @property
    def uri(self) -> str:
        return self.file.uri

    def __str__(self) -> str:
        f = self.file
        stamp = format_timestamp(f.last_validated) or "never"
        return (
            f"Downloaded ({f.uri}; validated: {f.validated}; "
            f"hash: {f.hash or 'None'}; last validated: {stamp})"
        )


DownloadState = Union[Pending, Complete]


def state_to_dict(state: DownloadState) -> Dict[str, Any]:
    """Serialize a download state as a tagged mapping."""
    if isinstance(state, Pending):
        return {"status": "pending", "uri": state.uri}
    if isinstance(state, Complete):
        return {"status": "downloaded", **state.file.to_dict()}
    raise TypeError(f"Not a download state: {state!r}")


def state_from_dict(data: Any) -> DownloadState:
    """
    Deserialize a download state.

    Besides the tagged form written by ``state_to_dict``, the legacy untagged
    forms are accepted: a bare URL string, ``{"NotYetDownloaded": url}`` and
    ``{"Downloaded": {...}}``.
    """
    if isinstance(data, str):
        return Pending(data)
    if not isinstance(data, dict):
        raise ValueError(f"invalid slot entry: {data!r}")

    if "status" in data:
        status = data["status"]
        if status == "pending":
            if not data.get("uri"):
                raise ValueError("pending slot entry is missing its `uri`")
            return Pending(str(data["uri"]))
        if status == "downloaded":
            payload = {k: v for k, v in data.items() if k != "status"}
            return Complete(ValidatedFile.from_dict(payload))
        raise ValueError(f"unknown slot status {status!r}")

    if "NotYetDownloaded" in data:
        return Pending(str(data["NotYetDownloaded"]))
    if "Downloaded" in data and isinstance(data["Downloaded"], dict):
        return Complete(ValidatedFile.from_dict(data["Downloaded"]))
    raise ValueError(f"unrecognized slot entry: {data!r}")


@dataclass
class Dataset:
    """
    A labeled group of reference files.

    Use ``Dataset.create`` for new entries so the creation-time invariants
    are enforced; the constructor itself is used for already-stored data.
    """
    label: str
    fasta: Optional[DownloadState] = None
    genbank: Optional[DownloadState] = None
    gfa: Optional[DownloadState] = None
    gff: Optional[DownloadState] = None
    gtf: Optional[DownloadState] = None
    bed: Optional[DownloadState] = None

    @classmethod
    def create(
        cls,
        label: str,
        fasta: Optional[str] = None,
        genbank: Optional[str] = None,
        gfa: Optional[str] = None,
        gff: Optional[str] = None,
        gtf: Optional[str] = None,
        bed: Optional[str] = None,
    ) -> "Dataset":
        """
        Create a new dataset from URLs, enforcing the entry invariants.

        Args:
            label: Unique, case-sensitive dataset label
            fasta, genbank, gfa, gff, gtf, bed: Optional remote URLs

        Returns:
            Dataset whose supplied slots are Pending

        Raises:
            LabelButNoFilesError: No URL was supplied
            AnnotationsWithoutSequenceError: GFF/GTF/BED without FASTA or Genbank
        """
        urls = {
            FileFormat.FASTA: fasta,
            FileFormat.GENBANK: genbank,
            FileFormat.GFA: gfa,
            FileFormat.GFF: gff,
            FileFormat.GTF: gtf,
            FileFormat.BED: bed,
        }
        supplied = {fmt: url for fmt, url in urls.items() if url}

        if not supplied:
            raise LabelButNoFilesError(label)

        has_sequence = any(fmt.is_sequence for fmt in supplied)
        has_annotation = any(fmt.is_annotation for fmt in supplied)
        if has_annotation and not has_sequence:
            raise AnnotationsWithoutSequenceError(label)

        dataset = cls(label=label)
        for fmt, url in supplied.items():
            dataset.set_slot(fmt, Pending(url))
        return dataset

    def get_slot(self, fmt: FileFormat) -> Optional[DownloadState]:
        return getattr(self, fmt.value)

    def set_slot(self, fmt: FileFormat, state: Optional[DownloadState]) -> None:
        setattr(self, fmt.value, state)

    def slots(self) -> Iterator[Tuple[FileFormat, DownloadState]]:
        """Yield (format, state) for every filled slot, in format order."""
        for fmt in FileFormat:
            state = self.get_slot(fmt)
            if state is not None:
                yield fmt, state

    def urls(self) -> List[str]:
        """All URLs tracked by this dataset."""
        return [state.uri for _, state in self.slots()]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data: Dict[str, Any] = {"label": self.label}
        for fmt, state in self.slots():
            data[fmt.value] = state_to_dict(state)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Dataset":
        """Create from dictionary without re-checking creation invariants."""
        if not isinstance(data, dict) or not data.get("label"):
            raise ValueError(f"dataset entry without a label: {data!r}")
        dataset = cls(label=str(data["label"]))
        for fmt in FileFormat:
            raw = data.get(fmt.value)
            if raw is not None:
                dataset.set_slot(fmt, state_from_dict(raw))
        return dataset
