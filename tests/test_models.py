"""
Tests for Refman Data Models
============================

Covers dataset creation invariants, slot access, and the serialized forms
of download states.
"""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from refman.errors import AnnotationsWithoutSequenceError, LabelButNoFilesError
from refman.models import (
    Complete,
    Dataset,
    FileFormat,
    Pending,
    ValidatedFile,
    parse_timestamp,
    state_from_dict,
    state_to_dict,
)


class TestFileFormat:
    """Tests for FileFormat categories."""

    def test_sequence_and_annotation_groups(self):
        """Test formats split into sequence and annotation groups."""
        assert FileFormat.FASTA.is_sequence
        assert FileFormat.GENBANK.is_sequence
        assert not FileFormat.GFA.is_sequence
        assert not FileFormat.GFA.is_annotation
        for fmt in (FileFormat.GFF, FileFormat.GTF, FileFormat.BED):
            assert fmt.is_annotation
            assert not fmt.is_sequence

    def test_display_names(self):
        """Test human-readable format names."""
        assert FileFormat.GENBANK.display_name == "Genbank"
        assert FileFormat.FASTA.display_name == "FASTA"
        assert FileFormat.BED.display_name == "BED"


class TestDatasetCreate:
    """Tests for Dataset.create invariants."""

    def test_fasta_and_gtf(self):
        """Test a sequence plus annotation is accepted."""
        dataset = Dataset.create(
            "hg38", fasta="https://example.com/hg38.fa", gtf="https://example.com/hg38.gtf"
        )

        assert dataset.label == "hg38"
        assert dataset.fasta == Pending("https://example.com/hg38.fa")
        assert dataset.gtf == Pending("https://example.com/hg38.gtf")
        assert dataset.genbank is None
        assert dataset.bed is None

    def test_no_files_rejected(self):
        """Test a dataset needs at least one file."""
        with pytest.raises(LabelButNoFilesError):
            Dataset.create("empty")

    def test_empty_strings_count_as_missing(self):
        """Test empty URLs count as absent files."""
        with pytest.raises(LabelButNoFilesError):
            Dataset.create("empty", fasta="", gff="")

    @pytest.mark.parametrize("slot", ["gff", "gtf", "bed"])
    def test_annotation_without_sequence_rejected(self, slot):
        """Test annotation slots need a sequence slot."""
        with pytest.raises(AnnotationsWithoutSequenceError) as exc_info:
            Dataset.create("ann", **{slot: "https://example.com/ann"})
        assert "ann" in exc_info.value.message

    def test_genbank_satisfies_sequence_requirement(self):
        """Test Genbank alone is a valid sequence."""
        dataset = Dataset.create(
            "gb", genbank="https://example.com/a.gbk", bed="https://example.com/a.bed"
        )
        assert dataset.bed == Pending("https://example.com/a.bed")

    def test_gfa_only_allowed(self):
        """A graph alone is a valid dataset."""
        dataset = Dataset.create("graph", gfa="https://example.com/pangenome.gfa")
        assert list(dataset.slots()) == [
            (FileFormat.GFA, Pending("https://example.com/pangenome.gfa"))
        ]


class TestDatasetSlots:
    """Tests for slot iteration and URL listing."""

    def test_slots_in_format_order(self):
        """Test slots are listed in format order."""
        dataset = Dataset.create(
            "x",
            bed="https://example.com/x.bed",
            fasta="https://example.com/x.fa",
            gfa="https://example.com/x.gfa",
        )

        assert [fmt for fmt, _ in dataset.slots()] == [
            FileFormat.FASTA, FileFormat.GFA, FileFormat.BED
        ]
        assert dataset.urls() == [
            "https://example.com/x.fa",
            "https://example.com/x.gfa",
            "https://example.com/x.bed",
        ]

    def test_complete_slot_uri(self):
        """Test a Complete slot exposes its file URI."""
        validated = ValidatedFile(uri="https://example.com/x.fa", hash="abc")
        dataset = Dataset(label="x", fasta=Complete(validated))

        assert dataset.urls() == ["https://example.com/x.fa"]
        assert dataset.get_slot(FileFormat.FASTA).file.hash == "abc"


class TestSerialization:
    """Tests for dict round-trips and legacy slot forms."""

    def test_pending_to_dict(self):
        """Test serializing a Pending slot."""
        assert state_to_dict(Pending("https://example.com/a.fa")) == {
            "status": "pending",
            "uri": "https://example.com/a.fa",
        }

    def test_complete_to_dict(self):
        """Test serializing a Complete slot."""
        stamp = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        state = Complete(ValidatedFile(
            uri="https://example.com/a.fa",
            hash="0123456789abcdef0123456789abcdef",
            last_validated=stamp,
            local_path=Path("ref/a.fa"),
        ))

        data = state_to_dict(state)

        assert data["status"] == "downloaded"
        assert data["hash"] == "0123456789abcdef0123456789abcdef"
        assert data["last_validated"] == "2024-05-01T12:00:00+00:00"
        assert data["local_path"] == "ref/a.fa"
        assert state_from_dict(data) == state

    def test_legacy_forms(self):
        """Test bare strings and untagged variants are still understood."""
        assert state_from_dict("https://example.com/a.fa") == Pending("https://example.com/a.fa")
        assert state_from_dict({"NotYetDownloaded": "https://example.com/b.fa"}) == Pending(
            "https://example.com/b.fa"
        )

        legacy = state_from_dict({
            "Downloaded": {
                "uri": "https://example.com/c.fa",
                "validated": True,
                "hash": None,
                "last_validated": "2024-01-02T03:04:05Z",
            }
        })
        assert isinstance(legacy, Complete)
        assert legacy.file.hash is None
        assert legacy.file.last_validated == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def test_unknown_status_rejected(self):
        """Test an unknown slot status raises ValueError."""
        with pytest.raises(ValueError):
            state_from_dict({"status": "exploded", "uri": "https://example.com/a"})

    def test_dataset_round_trip(self):
        """Test a dataset survives to_dict and from_dict."""
        dataset = Dataset.create(
            "hg38", fasta="https://example.com/hg38.fa", bed="https://example.com/hg38.bed"
        )

        data = dataset.to_dict()

        assert list(data) == ["label", "fasta", "bed"]
        assert Dataset.from_dict(data) == dataset

    def test_dataset_without_label_rejected(self):
        """Test a stored dataset needs a label."""
        with pytest.raises(ValueError):
            Dataset.from_dict({"fasta": "https://example.com/a.fa"})

    def test_parse_timestamp_variants(self):
        """Test accepted timestamp spellings."""
        assert parse_timestamp(None) is None
        assert parse_timestamp(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)
        naive = parse_timestamp(datetime(2024, 1, 1))
        assert naive.tzinfo is timezone.utc
