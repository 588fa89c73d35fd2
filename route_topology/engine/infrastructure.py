"""
Module C: Infrastructure Graph
==============================
Derives the physical adjacency graph of a route from its raw sequences.

Every consecutive stop pair of every sequence is a candidate edge. A
candidate (A, B) is a "jump" when some sequence visits both A and B with at
least one stop between them: that sequence proves an intermediate station
exists, so A and B are not directly linked.

The builder is fed the unfiltered sequences; a variant removed by the
subsumption filter still carries adjacency evidence.
"""

from typing import Dict, Iterable, List, Sequence, Set, Tuple

import structlog

logger = structlog.get_logger(__name__)

Edge = Tuple[str, str]


def edge_key(stop_a: str, stop_b: str) -> Edge:
    """Canonical (sorted) form of an undirected edge."""
    return (stop_a, stop_b) if stop_a <= stop_b else (stop_b, stop_a)


def _positions(sequence: Sequence[str]) -> Dict[str, List[int]]:
    positions: Dict[str, List[int]] = {}
    for index, stop_id in enumerate(sequence):
        positions.setdefault(stop_id, []).append(index)
    return positions


def _widest_distance(first: List[int], second: List[int]) -> int:
    return max(abs(a - b) for a in first for b in second)


class InfrastructureGraphBuilder:
    """
    Builds the jump-filtered, deduplicated edge set of a route.

    Usage:
        edges = InfrastructureGraphBuilder().build(sequences)
        # [("A", "B"), ("B", "C")]
    """

    def candidate_edges(self, sequences: Iterable[Sequence[str]]) -> Set[Edge]:
        """All distinct consecutive pairs observed in the sequences."""
        candidates: Set[Edge] = set()
        for sequence in sequences:
            for stop_a, stop_b in zip(sequence, sequence[1:]):
                if stop_a != stop_b:
                    candidates.add(edge_key(stop_a, stop_b))
        return candidates

    def build(self, sequences: Sequence[Sequence[str]]) -> List[Edge]:
        """
        Compute the route's infrastructure edges.

        When a stop occurs more than once in a sequence (loops), every pair
        of occurrences counts: the edge is a jump if any pair of positions of
        A and B is more than one apart.

        Args:
            sequences: Raw sequences of one route, after canonicalization.

        Returns:
            Surviving edges sorted by key.
        """
        indexed = [_positions(sequence) for sequence in sequences]
        candidates = self.candidate_edges(sequences)

        edges = []
        for stop_a, stop_b in sorted(candidates):
            is_jump = False
            for positions in indexed:
                if stop_a in positions and stop_b in positions:
                    if _widest_distance(positions[stop_a], positions[stop_b]) > 1:
                        is_jump = True
                        break
            if not is_jump:
                edges.append((stop_a, stop_b))

        if len(edges) < len(candidates):
            logger.debug(
                "jump_edges_rejected",
                candidates=len(candidates),
                rejected=len(candidates) - len(edges)
            )
        return edges
