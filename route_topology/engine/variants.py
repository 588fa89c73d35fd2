"""
Module B: Stop-Sequence Variants
================================
Turns line traces into stop-sequence patterns ("variants") for each route.

Pipeline for one route:
1. TraceVariantExtractor snaps every trace segment onto stops, giving raw
   stop-ID sequences (duplicates and partial runs included).
2. MetroCanonicalizer (metro routes only) merges the per-direction platform
   IDs of a station onto one canonical ID, chosen by display name.
3. SubsumptionFilter keeps the maximal, distinct sequences.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import structlog

from route_topology.core.records import TraceRecord
from route_topology.engine.stops import SpatialStopIndex

logger = structlog.get_logger(__name__)

RawVariant = Tuple[str, ...]
MIN_VARIANT_LENGTH = 2


@dataclass
class Variant:
    """A kept stop-sequence pattern of a route."""

    id: str
    stops: List[str]

    def to_dict(self) -> Dict[str, object]:
        return {"id": self.id, "stops": list(self.stops)}


@dataclass
class RouteRawVariantSet:
    """Raw sequences and short names collected per route."""

    variants: Dict[str, List[RawVariant]] = field(default_factory=dict)
    short_names: Dict[str, str] = field(default_factory=dict)

    def route_ids(self) -> List[str]:
        """Route IDs in code point order (byte order for UTF-8)."""
        return sorted(self.variants)


def collapse_repeats(stop_ids: Iterable[str]) -> RawVariant:
    """Drop consecutive duplicates: A A B B A -> A B A."""
    collapsed: List[str] = []
    for stop_id in stop_ids:
        if not collapsed or collapsed[-1] != stop_id:
            collapsed.append(stop_id)
    return tuple(collapsed)


def by_descending_length(sequences: Iterable[RawVariant]) -> List[RawVariant]:
    """Stable sort, longest first; ties keep encounter order."""
    return sorted(sequences, key=len, reverse=True)


class TraceVariantExtractor:
    """
    Extracts raw stop sequences from line traces.

    Each point of a segment is looked up in the spatial index; a match is
    appended unless it equals the last appended stop. Unmatched points are
    skipped without breaking continuity.
    """

    def __init__(self, stop_index: SpatialStopIndex) -> None:
        self.stop_index = stop_index

    def extract_segment(self, segment: Sequence[Tuple[float, float]]) -> Optional[RawVariant]:
        """
        Snap one segment of (lon, lat) points onto stops.

        Returns:
            The stop sequence, or None when fewer than two stops matched.
        """
        stops: List[str] = []
        for lon, lat in segment:
            stop_id = self.stop_index.lookup(lat, lon)
            if stop_id is not None and (not stops or stops[-1] != stop_id):
                stops.append(stop_id)

        if len(stops) < MIN_VARIANT_LENGTH:
            return None
        return tuple(stops)

    def extract(self, traces: Iterable[TraceRecord]) -> RouteRawVariantSet:
        """Fold trace records into a fresh RouteRawVariantSet."""
        result = RouteRawVariantSet()
        segments_seen = 0

        for trace in traces:
            if not trace.route_id:
                continue
            result.short_names[trace.route_id] = trace.short_name

            for segment in trace.segments:
                segments_seen += 1
                sequence = self.extract_segment(segment)
                if sequence is not None:
                    result.variants.setdefault(trace.route_id, []).append(sequence)

        logger.info(
            "raw_variants_extracted",
            routes=len(result.variants),
            segments=segments_seen,
            sequences=sum(len(v) for v in result.variants.values())
        )
        return result


class MetroCanonicalizer:
    """
    Merges metro platforms that share a station name onto one stop ID.

    Metro stations expose one stop ID per direction. Scanning the route's
    sequences longest first, the first ID met for each display name becomes
    that name's canonical ID.
    """

    def __init__(self, name_of: Callable[[str], Optional[str]]) -> None:
        """
        Args:
            name_of: Stop ID -> display name lookup (None when unnamed).
        """
        self.name_of = name_of

    def bindings(self, sequences: Sequence[RawVariant]) -> Dict[str, str]:
        """Display name -> canonical stop ID for one route."""
        canonical: Dict[str, str] = {}
        for sequence in by_descending_length(sequences):
            for stop_id in sequence:
                name = self.name_of(stop_id)
                if name and name not in canonical:
                    canonical[name] = stop_id
        return canonical

    def canonicalize(self, sequences: Sequence[RawVariant]) -> List[RawVariant]:
        """
        Rewrite a route's sequences onto canonical stop IDs.

        The result is ordered longest first, consecutive repeats introduced by
        the rewrite are collapsed, and sequences left with fewer than two
        stops are dropped.
        """
        canonical = self.bindings(sequences)

        def rewrite(stop_id: str) -> str:
            name = self.name_of(stop_id)
            return canonical.get(name, stop_id) if name else stop_id

        rewritten = []
        for sequence in by_descending_length(sequences):
            normalized = collapse_repeats(rewrite(stop_id) for stop_id in sequence)
            if len(normalized) >= MIN_VARIANT_LENGTH:
                rewritten.append(normalized)
        return rewritten


def is_subsequence(candidate: Sequence[str], master: Sequence[str]) -> bool:
    """
    True when candidate is strictly shorter than master and master visits
    all of its stops in the same order. Contiguous runs (B C in A B C D) and
    partial traces skipping stops (A C in A B C) both qualify. Express
    patterns are therefore subsumed as well: A D is not kept beside A B C D.

    Stops are compared element by element, never as joined strings.
    """
    if len(candidate) >= len(master):
        return False
    remaining = iter(master)
    return all(stop_id in remaining for stop_id in candidate)


class SubsumptionFilter:
    """
    Reduces a route's raw sequences to its maximal distinct variants.

    A short run, or a partial trace over a longer path, is not reported as a
    pattern of its own.
    """

    @staticmethod
    def signature(sequence: Sequence[str]) -> RawVariant:
        return tuple(sequence)

    def select(self, sequences: Sequence[RawVariant]) -> List[RawVariant]:
        """Kept sequences, in survival order."""
        kept: List[RawVariant] = []
        signatures = set()

        for candidate in by_descending_length(sequences):
            signature = self.signature(candidate)
            if signature in signatures:
                continue
            if any(is_subsequence(candidate, master) for master in kept):
                continue
            kept.append(candidate)
            signatures.add(signature)
        return kept

    def filter(self, route_id: str, sequences: Sequence[RawVariant]) -> List[Variant]:
        """Kept sequences as Variant records with ``{route_id}_{n}`` IDs."""
        return [
            Variant(id=f"{route_id}_{index}", stops=list(stops))
            for index, stops in enumerate(self.select(sequences))
        ]
