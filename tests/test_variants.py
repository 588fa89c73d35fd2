"""
Test Suite for Stop-Sequence Variants
=====================================
Covers trace snapping, metro canonicalization and subsumption filtering.
"""

import pytest

from route_topology.core.records import StopRecord, TraceRecord
from route_topology.engine.stops import SpatialStopIndex
from route_topology.engine.variants import (
    MetroCanonicalizer,
    SubsumptionFilter,
    TraceVariantExtractor,
    collapse_repeats,
    is_subsequence,
)


@pytest.fixture
def stop_index() -> SpatialStopIndex:
    """
    Four stops along latitude 48.0, a tenth of a degree of longitude apart.

    Trace points are (lon, lat): (2.1, 48.0) snaps onto A.
    """
    return SpatialStopIndex.from_records([
        StopRecord(id="A", name="Alpha", coordinate=(48.0, 2.1)),
        StopRecord(id="B", name="Bravo", coordinate=(48.0, 2.2)),
        StopRecord(id="C", name="Charlie", coordinate=(48.0, 2.3)),
        StopRecord(id="D", name="Delta", coordinate=(48.0, 2.4)),
    ])


def trace(route_id: str, *segments, short_name: str = "") -> TraceRecord:
    return TraceRecord(
        route_id=route_id,
        short_name=short_name,
        segments=tuple(tuple(segment) for segment in segments),
    )


class TestTraceVariantExtractor:
    """Test suite for TraceVariantExtractor."""

    def test_snaps_points_in_order(self, stop_index):
        """Test that matched points form the stop sequence in trace order."""
        extractor = TraceVariantExtractor(stop_index)
        segment = [(2.1, 48.0), (2.15, 48.0), (2.2, 48.0), (2.3, 48.0)]

        assert extractor.extract_segment(segment) == ("A", "B", "C")

    def test_collapses_consecutive_matches(self, stop_index):
        """Test that repeated matches of one stop are appended once."""
        extractor = TraceVariantExtractor(stop_index)
        # Unmatched points in between do not reset continuity
        segment = [(2.1, 48.0), (2.10001, 48.0), (2.17, 48.0), (2.1, 48.0), (2.2, 48.0)]

        assert extractor.extract_segment(segment) == ("A", "B")

    def test_revisit_after_other_stop_is_kept(self, stop_index):
        """Test that A B A keeps both visits of A."""
        extractor = TraceVariantExtractor(stop_index)
        segment = [(2.1, 48.0), (2.2, 48.0), (2.1, 48.0)]

        assert extractor.extract_segment(segment) == ("A", "B", "A")

    def test_short_sequences_discarded(self, stop_index):
        """Test that fewer than two distinct stops yields nothing."""
        extractor = TraceVariantExtractor(stop_index)

        assert extractor.extract_segment([(2.1, 48.0), (2.1, 48.0)]) is None
        assert extractor.extract_segment([(9.0, 9.0), (2.1, 48.0)]) is None
        assert extractor.extract_segment([]) is None

    def test_extract_groups_by_route(self, stop_index):
        """Test that every segment of every trace lands under its route."""
        extractor = TraceVariantExtractor(stop_index)
        traces = [
            trace("R1", [(2.1, 48.0), (2.2, 48.0)], [(2.3, 48.0), (2.4, 48.0)], short_name="1"),
            trace("R2", [(2.1, 48.0)], short_name="2"),
            trace("R1", [(2.4, 48.0), (2.3, 48.0)], short_name="1bis"),
        ]

        result = extractor.extract(traces)

        assert result.variants == {
            "R1": [("A", "B"), ("C", "D"), ("D", "C")],
        }
        # Short names are recorded even for routes without variants
        assert result.short_names == {"R1": "1bis", "R2": "2"}
        assert result.route_ids() == ["R1"]

    def test_extract_returns_fresh_value(self, stop_index):
        """Test that extraction does not accumulate across calls."""
        extractor = TraceVariantExtractor(stop_index)
        traces = [trace("R1", [(2.1, 48.0), (2.2, 48.0)])]

        first = extractor.extract(traces)
        second = extractor.extract(traces)

        assert first.variants == second.variants == {"R1": [("A", "B")]}
        assert first is not second


class TestMetroCanonicalizer:
    """Test suite for MetroCanonicalizer."""

    NAMES = {
        "N1": "Châtelet", "N2": "Châtelet",
        "L1": "Louvre", "L2": "Louvre",
        "P1": "Palais Royal", "P2": "Palais Royal",
        "X": "",
    }

    def canonicalizer(self) -> MetroCanonicalizer:
        return MetroCanonicalizer(lambda stop_id: self.NAMES.get(stop_id) or None)

    def test_longest_sequence_binds_canonical_ids(self):
        """Test that IDs from the longest sequence become canonical."""
        sequences = [
            ("P2", "L2"),
            ("N1", "L1", "P1"),
        ]

        result = self.canonicalizer().canonicalize(sequences)

        assert result == [("N1", "L1", "P1"), ("P1", "L1")]

    def test_every_shared_name_has_one_id(self):
        """Test that after rewriting one ID represents each name."""
        sequences = [
            ("N2", "L2"),
            ("N1", "L1", "P1"),
            ("P2", "L2", "N2"),
        ]

        result = self.canonicalizer().canonicalize(sequences)

        seen = {stop_id for sequence in result for stop_id in sequence}
        assert seen == {"N1", "L1", "P1"}

    def test_equal_length_keeps_encounter_order(self):
        """Test that ties are broken by encounter order."""
        bindings = self.canonicalizer().bindings([("N2", "L2"), ("L1", "N1")])

        assert bindings == {"Châtelet": "N2", "Louvre": "L2"}

    def test_rewrite_collapses_and_drops(self):
        """Test that merged neighbours collapse and short results are dropped."""
        sequences = [
            ("N1", "L1", "P1"),
            ("N2", "N1"),  # Both platforms of one station
            ("N2", "X", "N1"),
        ]

        result = self.canonicalizer().canonicalize(sequences)

        assert result == [("N1", "L1", "P1"), ("N1", "X", "N1")]

    def test_unnamed_stops_are_untouched(self):
        """Test that stops without a display name keep their ID."""
        result = self.canonicalizer().canonicalize([("X", "Y")])

        assert result == [("X", "Y")]


class TestSubsumptionFilter:
    """Test suite for SubsumptionFilter."""

    def test_subsequence_rejected(self):
        """Test the worked example: A,C is covered by A,B,C."""
        variants = SubsumptionFilter().filter("R", [("A", "B", "C"), ("A", "C")])

        assert [v.stops for v in variants] == [["A", "B", "C"]]
        assert variants[0].id == "R_0"

    def test_contiguous_run_rejected(self):
        """Test that a run inside a longer sequence is rejected."""
        variants = SubsumptionFilter().filter("R", [("B", "C"), ("A", "B", "C", "D")])

        assert [v.stops for v in variants] == [["A", "B", "C", "D"]]

    def test_express_pattern_subsumed(self):
        """Test that a pattern skipping intermediate stops is not kept."""
        variants = SubsumptionFilter().filter("R", [("A", "D"), ("A", "B", "C", "D"), ("D", "A")])

        assert [v.stops for v in variants] == [["A", "B", "C", "D"], ["D", "A"]]

    def test_duplicates_rejected(self):
        """Test that identical sequences are kept once."""
        variants = SubsumptionFilter().filter("R", [("A", "B"), ("C", "D"), ("A", "B")])

        assert [v.stops for v in variants] == [["A", "B"], ["C", "D"]]
        assert [v.id for v in variants] == ["R_0", "R_1"]

    def test_longest_first_with_stable_ties(self):
        """Test survival order: by descending length, then input order."""
        sequences = [("X", "Y"), ("A", "B", "C"), ("D", "E"), ("B", "C")]

        variants = SubsumptionFilter().filter("IDFM:C1", sequences)

        assert [v.stops for v in variants] == [["A", "B", "C"], ["X", "Y"], ["D", "E"]]
        assert [v.id for v in variants] == ["IDFM:C1_0", "IDFM:C1_1", "IDFM:C1_2"]

    def test_reverse_direction_is_distinct(self):
        """Test that the opposite direction is not subsumed."""
        variants = SubsumptionFilter().filter("R", [("A", "B", "C"), ("C", "B")])

        assert len(variants) == 2

    def test_kept_variants_are_pairwise_independent(self):
        """Test the filter invariant on a noisy input."""
        sequences = [
            ("A", "B"), ("A", "B", "C", "D"), ("B", "C"), ("C", "D", "E"),
            ("A", "B", "C", "D"), ("D", "E"), ("E", "D", "C"), ("D", "C"),
        ]

        kept = SubsumptionFilter().select(sequences)

        assert len(set(kept)) == len(kept)
        for first in kept:
            for second in kept:
                assert not is_subsequence(first, second)


class TestSequenceHelpers:
    """Test suite for sequence helpers."""

    def test_is_subsequence(self):
        """Test element-wise ordered containment."""
        assert is_subsequence(("B", "C"), ("A", "B", "C", "D"))
        assert is_subsequence(("A", "C"), ("A", "B", "C"))
        assert not is_subsequence(("C", "A"), ("A", "B", "C"))
        assert not is_subsequence(("A", "B"), ("A", "B"))
        assert not is_subsequence(("A", "B", "C"), ("A", "B"))

    def test_ids_containing_delimiters(self):
        """Test that IDs containing separators cannot fake a match."""
        master = ("X|A", "B|Y")
        assert not is_subsequence(("A|B",), master)
        assert not is_subsequence(("A", "B"), ("A,B", "C"))

    def test_collapse_repeats(self):
        """Test consecutive duplicate removal."""
        assert collapse_repeats(["A", "A", "B", "B", "A"]) == ("A", "B", "A")
        assert collapse_repeats([]) == ()
