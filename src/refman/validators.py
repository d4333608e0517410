"""
Format Validation
=================

Post-download validation gate for reference files.

Each supported format has a structural checker that streams the file and
raises on the first malformed record:

- FASTA and Genbank are parsed with Biopython
- GFF3, GTF and BED rows are parsed into intervals with pybedtools
- GFA is checked line by line against its record rules

Gzip-compressed files are detected by their magic bytes and read
transparently. Open/read failures raise InaccessibleFileError; malformed
content raises InvalidFormatError, so callers can tell transient I/O
problems apart from genuinely bad files.

Usage:
    from refman.validators import FormatValidator
    from refman.models import FileFormat

    validator = FormatValidator()
    validated = validator.validate("https://host/hg38.fa", Path("ref/hg38.fa"), FileFormat.FASTA)
    print(validated.hash)
"""

import gzip
import itertools
import logging
import re
import zlib
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Optional, TextIO, Union

import pybedtools
from Bio import SeqIO
from Bio.SeqIO.FastaIO import SimpleFastaParser
from pybedtools.cbedtools import MalformedBedLineError

from .errors import (
    InaccessibleFileError,
    InvalidFormatError,
    MultipleValidationErrors,
    RefmanError,
)
from .fetcher import uri_to_filename
from .hashing import hash_file
from .models import Complete, Dataset, FileFormat, ValidatedFile, utc_now

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"

# GFA 1.x and 2.0 record types
GFA_RECORD_TYPES = {"H", "S", "L", "C", "P", "W", "J", "E", "F", "G", "O", "U"}
GFA_MIN_FIELDS = {"S": 3, "L": 6, "C": 7, "P": 4, "W": 7, "J": 6}
ORIENTATIONS = {"+", "-"}

SEQUENCE_CHARS = re.compile(r"^[A-Za-z*\-.]*$")
GFF_STRANDS = {"+", "-", ".", "?"}
GTF_STRANDS = {"+", "-", "."}
PHASES = {".", "0", "1", "2"}


class FormatProblem(ValueError):
    """A structural problem found while checking a file."""


def open_text(path: Path) -> TextIO:
    """Open a file for text reading, decompressing gzip transparently."""
    with open(path, "rb") as raw:
        magic = raw.read(2)
    if magic == GZIP_MAGIC:
        return gzip.open(path, "rt", encoding="utf-8")
    return open(path, "r", encoding="utf-8")


def _data_lines(handle: Iterable[str]) -> Iterator[tuple]:
    """Yield (line_number, stripped_line) for non-blank lines."""
    for number, line in enumerate(handle, 1):
        line = line.rstrip("\r\n")
        if line.strip():
            yield number, line


def _interval_lines(handle: Iterable[str], stop_marker: Optional[str] = None) -> Iterator[str]:
    for line in handle:
        if stop_marker and line.startswith(stop_marker):
            return
        yield line


def _intervals(
    handle: Iterable[str],
    file_types: set,
    stop_marker: Optional[str] = None,
) -> Iterator[pybedtools.Interval]:
    """
    Parse tab-separated rows into pybedtools intervals.

    Comment, track, browser and blank lines are skipped by pybedtools.
    Rows it cannot place (non-numeric or inverted coordinates) raise
    MalformedBedLineError.
    """
    for number, interval in enumerate(pybedtools.BedTool(_interval_lines(handle, stop_marker)), 1):
        if interval.file_type not in file_types:
            raise FormatProblem(
                f"interval {number}: row was detected as {interval.file_type.upper()}"
            )
        yield interval


# =============================================================================
# Per-format checkers; each returns the number of records seen
# =============================================================================

def check_fasta(handle: Iterable[str]) -> int:
    lines = iter(handle)
    first = next((line for line in lines if line.strip()), None)
    if first is None:
        return 0
    if not first.startswith(">"):
        raise FormatProblem("FASTA files must start with a '>' header line")

    count = 0
    for title, sequence in SimpleFastaParser(itertools.chain([first], lines)):
        if not title.strip():
            raise FormatProblem(f"record {count + 1} has an empty header")
        if not SEQUENCE_CHARS.match(sequence):
            raise FormatProblem(f"record '{title.split()[0]}' contains invalid sequence characters")
        count += 1
    return count


def check_genbank(handle: Iterable[str]) -> int:
    count = 0
    for record in SeqIO.parse(handle, "genbank"):
        if not record.id:
            raise FormatProblem(f"record {count + 1} has no identifier")
        count += 1
    return count


def check_gfa(handle: Iterable[str]) -> int:
    count = 0
    for number, line in _data_lines(handle):
        if line.startswith("#"):
            continue
        columns = line.split("\t")
        record_type = columns[0]
        if record_type not in GFA_RECORD_TYPES:
            raise FormatProblem(f"line {number}: unknown record type {record_type!r}")
        if len(columns) < GFA_MIN_FIELDS.get(record_type, 1):
            raise FormatProblem(
                f"line {number}: {record_type} record needs at least "
                f"{GFA_MIN_FIELDS[record_type]} tab-separated fields"
            )
        if record_type == "L" and (columns[2] not in ORIENTATIONS or columns[4] not in ORIENTATIONS):
            raise FormatProblem(f"line {number}: link orientations must be '+' or '-'")
        count += 1
    return count


def _check_feature(interval: pybedtools.Interval, number: int, strands: set) -> List[str]:
    columns = interval.fields
    if len(columns) != 9:
        raise FormatProblem(f"feature {number}: expected 9 tab-separated columns, found {len(columns)}")
    if int(columns[3]) < 1:
        raise FormatProblem(f"feature {number}: GFF coordinates start at 1")
    if columns[6] not in strands:
        raise FormatProblem(f"feature {number}: invalid strand {columns[6]!r}")
    if columns[7] not in PHASES:
        raise FormatProblem(f"feature {number}: invalid phase {columns[7]!r}")
    return columns


def check_gff(handle: Iterable[str]) -> int:
    count = 0
    for count, interval in enumerate(_intervals(handle, {"gff"}, stop_marker="##FASTA"), 1):
        _check_feature(interval, count, GFF_STRANDS)
    return count


def check_gtf(handle: Iterable[str]) -> int:
    count = 0
    for count, interval in enumerate(_intervals(handle, {"gff"}), 1):
        columns = _check_feature(interval, count, GTF_STRANDS)
        attributes = [a.strip() for a in columns[8].split(";") if a.strip()]
        if not attributes:
            raise FormatProblem(f"feature {count}: GTF records need at least one attribute")
        for attribute in attributes:
            if len(attribute.split(None, 1)) != 2:
                raise FormatProblem(f"feature {count}: malformed attribute {attribute!r}")
    return count


def check_bed(handle: Iterable[str]) -> int:
    # BED12 rows whose name and score columns are numeric are detected as GFF
    return sum(1 for _ in _intervals(handle, {"bed", "gff"}))


CHECKERS: Dict[FileFormat, Callable[[Iterable[str]], int]] = {
    FileFormat.FASTA: check_fasta,
    FileFormat.GENBANK: check_genbank,
    FileFormat.GFA: check_gfa,
    FileFormat.GFF: check_gff,
    FileFormat.GTF: check_gtf,
    FileFormat.BED: check_bed,
}


class FormatValidator:
    """
    Validate downloaded files and package them as ValidatedFile records.

    Custom checkers can be supplied per format, e.g. for stricter in-house
    rules.
    """

    def __init__(
        self,
        checkers: Optional[Dict[FileFormat, Callable[[Iterable[str]], int]]] = None,
        hasher: Callable[[Path], str] = hash_file,
    ):
        self.checkers = dict(CHECKERS)
        if checkers:
            self.checkers.update(checkers)
        self.hasher = hasher

    def check(self, path: Union[str, Path], fmt: FileFormat) -> None:
        """
        Check that a local file is well-formed for its declared format.

        Raises:
            InaccessibleFileError: The file cannot be opened or read
            InvalidFormatError: The content is malformed or has no records
        """
        path = Path(path)
        checker = self.checkers[fmt]
        try:
            with open_text(path) as handle:
                count = checker(handle)
        except (gzip.BadGzipFile, zlib.error) as e:
            raise InvalidFormatError(path, fmt.value, f"corrupt gzip stream ({e})") from e
        except OSError as e:
            raise InaccessibleFileError(path, e) from e
        except (FormatProblem, MalformedBedLineError) as e:
            raise InvalidFormatError(path, fmt.value, str(e)) from e
        except (ValueError, EOFError, IndexError, OverflowError, UnicodeDecodeError) as e:
            raise InvalidFormatError(path, fmt.value, str(e) or type(e).__name__) from e

        if count == 0:
            raise InvalidFormatError(path, fmt.value, "no records found")
        logger.debug(f"{path} is valid {fmt.display_name} with {count} record(s)")

    def validate(self, uri: str, path: Union[str, Path], fmt: FileFormat) -> ValidatedFile:
        """
        Run the validation gate: format check, then content hash.

        Returns:
            ValidatedFile stamped with the current time
        """
        path = Path(path)
        self.check(path, fmt)
        digest = self.hasher(path)
        logger.info(f"Validated {fmt.display_name} file {path.name}")
        return ValidatedFile(
            uri=uri,
            validated=True,
            hash=digest,
            last_validated=utc_now(),
            local_path=path,
        )


def validate_dataset(
    dataset: Dataset,
    validator: Optional[FormatValidator] = None,
    target_dir: Optional[Path] = None,
) -> None:
    """
    Re-check every downloaded slot of a dataset.

    Failures are collected rather than short-circuited, so one report shows
    every problem.

    Raises:
        MultipleValidationErrors: One or more slots failed
    """
    validator = validator or FormatValidator()
    errors: List[RefmanError] = []
    for fmt, state in dataset.slots():
        if not isinstance(state, Complete):
            continue
        path = state.file.local_path
        if path is None:
            if target_dir is None:
                continue
            try:
                path = Path(target_dir) / uri_to_filename(state.uri)
            except RefmanError as e:
                errors.append(e)
                continue
        try:
            validator.check(path, fmt)
        except RefmanError as e:
            errors.append(e)

    if errors:
        raise MultipleValidationErrors(errors)
