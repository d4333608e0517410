"""
Tests for Format Validation
===========================

Tests per-format structural checks, gzip transparency, error
classification, and dataset-wide re-validation.
"""

import gzip
import hashlib

import pytest

from refman.errors import (
    InaccessibleFileError,
    InvalidFormatError,
    MultipleValidationErrors,
)
from refman.hashing import hash_file
from refman.models import Complete, Dataset, FileFormat, Pending, ValidatedFile
from refman.validators import FormatValidator, validate_dataset

from conftest import BED_TEXT, FASTA_TEXT, GENBANK_TEXT, GFA_TEXT, GFF_TEXT, GTF_TEXT


@pytest.fixture
def validator():
    return FormatValidator()


# =============================================================================
# Well-formed files
# =============================================================================

class TestValidFiles:
    """Each format accepts a small well-formed sample."""

    @pytest.mark.parametrize("fmt,name,content", [
        (FileFormat.FASTA, "ref.fa", FASTA_TEXT),
        (FileFormat.GENBANK, "ref.gbk", GENBANK_TEXT),
        (FileFormat.GFA, "ref.gfa", GFA_TEXT),
        (FileFormat.GFF, "ref.gff3", GFF_TEXT),
        (FileFormat.GTF, "ref.gtf", GTF_TEXT),
        (FileFormat.BED, "ref.bed", BED_TEXT),
    ])
    def test_accepts_sample(self, validator, write_file, fmt, name, content):
        """Test a well-formed sample passes its format check."""
        validator.check(write_file(name, content), fmt)

    def test_gzipped_fasta(self, validator, write_file):
        """Test gzip-compressed files are read transparently."""
        path = write_file("ref.fa.gz", gzip.compress(FASTA_TEXT.encode()))
        validator.check(path, FileFormat.FASTA)

    def test_gzipped_bed(self, validator, write_file):
        """Test interval rows are parsed from a gzip-compressed file."""
        path = write_file("ref.bed.gz", gzip.compress(BED_TEXT.encode()))
        validator.check(path, FileFormat.BED)

    def test_gff_stops_at_embedded_fasta(self, validator, write_file):
        """Test sequence data after ##FASTA is not parsed as features."""
        path = write_file("ref.gff3", GFF_TEXT + "##FASTA\n>chr1\nACGT\n")
        validator.check(path, FileFormat.GFF)


# =============================================================================
# Malformed files
# =============================================================================

class TestInvalidFiles:
    """Malformed content raises InvalidFormatError."""

    @pytest.mark.parametrize("fmt,content", [
        (FileFormat.FASTA, "ACGT\n>late header\nACGT\n"),
        (FileFormat.FASTA, ">chr1\nAC GT!\n"),
        (FileFormat.GENBANK, "this is not a genbank record\n"),
        (FileFormat.GFA, "X\tbogus\n"),
        (FileFormat.GFA, "S\t1\tACGT\nL\t1\t?\t2\t+\t0M\n"),
        (FileFormat.GFF, "chr1\tsrc\tgene\t1\t10\n"),
        (FileFormat.GFF, "chr1\tsrc\tgene\t20\t10\t.\t+\t.\tID=g\n"),
        (FileFormat.GFF, "chr1\tsrc\tgene\t0\t10\t.\t+\t.\tID=g\n"),
        (FileFormat.GFF, "chr1\tsrc\tgene\t1\t10\t.\tx\t.\tID=g\n"),
        (FileFormat.GTF, "chr1\tsrc\texon\t1\t10\t.\t+\t.\tnot-an-attribute\n"),
        (FileFormat.GTF, "chr1\tsrc\texon\t1\t10\t.\t?\t.\tgene_id \"g1\";\n"),
        (FileFormat.BED, "chr1\tten\t20\n"),
        (FileFormat.BED, "chr1\t30\t20\n"),
        (FileFormat.BED, "chr1\n"),
        (FileFormat.BED, "chr1\t100\trs1\tA\tG\t.\tPASS\t.\n"),
    ])
    def test_rejects_malformed(self, validator, write_file, fmt, content):
        """Test malformed content is reported in its declared format."""
        path = write_file(f"bad.{fmt.value}", content)
        with pytest.raises(InvalidFormatError) as exc_info:
            validator.check(path, fmt)
        assert exc_info.value.file_format == fmt.value

    @pytest.mark.parametrize("fmt", list(FileFormat))
    def test_empty_file_rejected(self, validator, write_file, fmt):
        """Test an empty file fails every format."""
        path = write_file(f"empty.{fmt.value}", "")
        with pytest.raises(InvalidFormatError):
            validator.check(path, fmt)

    def test_empty_bed_has_no_records(self, validator, write_file):
        """Test blank lines alone do not count as records."""
        path = write_file("empty.bed", "\n\n")
        with pytest.raises(InvalidFormatError) as exc_info:
            validator.check(path, FileFormat.BED)
        assert "no records" in exc_info.value.message

    def test_comments_only_bed_has_no_records(self, validator, write_file):
        """Test track and comment lines alone do not count as records."""
        path = write_file("headers.bed", "track name=x\n# nothing else\n")
        with pytest.raises(InvalidFormatError):
            validator.check(path, FileFormat.BED)

    def test_truncated_gzip(self, validator, write_file):
        """Test a gzip stream cut short is invalid content."""
        data = gzip.compress((FASTA_TEXT * 50).encode())
        path = write_file("ref.fa.gz", data[: len(data) // 2])
        with pytest.raises(InvalidFormatError):
            validator.check(path, FileFormat.FASTA)

    def test_corrupt_deflate_stream(self, validator, write_file):
        """Test a valid gzip header followed by garbage is invalid content."""
        path = write_file("ref.fa.gz", gzip.compress(b"")[:10] + b"\xff" * 6)
        with pytest.raises(InvalidFormatError) as exc_info:
            validator.check(path, FileFormat.FASTA)
        assert "corrupt gzip stream" in exc_info.value.message


class TestInaccessibleFiles:
    """I/O failures are reported separately from bad content."""

    def test_missing_file(self, validator, tmp_path):
        """Test a missing file is inaccessible rather than invalid."""
        with pytest.raises(InaccessibleFileError):
            validator.check(tmp_path / "absent.fa", FileFormat.FASTA)

    def test_hash_missing_file(self, tmp_path):
        """Test hashing a missing file is inaccessible."""
        with pytest.raises(InaccessibleFileError):
            hash_file(tmp_path / "absent.fa")


# =============================================================================
# Validation gate
# =============================================================================

class TestValidate:
    """Tests for FormatValidator.validate."""

    def test_returns_hashed_record(self, validator, write_file):
        """Test a valid file yields a stamped and hashed ValidatedFile."""
        path = write_file("ref.fa", FASTA_TEXT)

        validated = validator.validate("https://example.com/ref.fa", path, FileFormat.FASTA)

        assert validated.uri == "https://example.com/ref.fa"
        assert validated.validated is True
        assert validated.hash == hashlib.md5(FASTA_TEXT.encode()).hexdigest()
        assert len(validated.hash) == 32
        assert validated.last_validated is not None
        assert validated.local_path == path

    def test_invalid_file_is_not_hashed(self, write_file):
        """Test hashing only runs after the format check passes."""
        calls = []
        validator = FormatValidator(hasher=lambda p: calls.append(p) or "x")
        path = write_file("bad.bed", "chr1\tx\ty\n")

        with pytest.raises(InvalidFormatError):
            validator.validate("https://example.com/bad.bed", path, FileFormat.BED)
        assert calls == []

    def test_custom_checker(self, write_file):
        """Test a supplied checker replaces the built-in one."""
        validator = FormatValidator(checkers={FileFormat.BED: lambda handle: 1})
        validator.check(write_file("anything.bed", "free text\n"), FileFormat.BED)


class TestValidateDataset:
    """Tests for dataset-wide re-validation."""

    def test_collects_every_failure(self, write_file):
        """Test every failing slot is reported in one error."""
        good = write_file("good.fa", FASTA_TEXT)
        bad_bed = write_file("bad.bed", "chr1\t9\t1\n")
        dataset = Dataset(
            label="mixed",
            fasta=Complete(ValidatedFile(uri="https://example.com/good.fa", local_path=good)),
            gtf=Complete(ValidatedFile(
                uri="https://example.com/absent.gtf", local_path=good.parent / "absent.gtf"
            )),
            bed=Complete(ValidatedFile(uri="https://example.com/bad.bed", local_path=bad_bed)),
        )

        with pytest.raises(MultipleValidationErrors) as exc_info:
            validate_dataset(dataset)

        errors = exc_info.value.errors
        assert len(errors) == 2
        assert isinstance(errors[0], InaccessibleFileError)
        assert isinstance(errors[1], InvalidFormatError)
        assert exc_info.value.message.startswith("Multiple validation errors occurred:")

    def test_pending_slots_skipped(self, write_file, tmp_path):
        """Test slots that were never downloaded are not checked."""
        dataset = Dataset(
            label="p",
            fasta=Complete(ValidatedFile(uri="https://example.com/ref.fa")),
            bed=Pending("https://example.com/ref.bed"),
        )
        write_file("ref.fa", FASTA_TEXT)

        validate_dataset(dataset, target_dir=tmp_path)
