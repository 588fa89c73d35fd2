"""
Module D: Route Topology Assembler
==================================
Combines variants and infrastructure into the final per-route records.

Routes are sorted by route ID and numbered densely from 1 in that order. The
numbering is a stability contract for consumers of optimized_routes.json:
identical inputs always yield identical IDs.

Per-route work (canonicalization, filtering, graph building) depends only on
the route's own sequences and the read-only indices, so it may run on a
thread pool. Numbering happens afterwards, over the sorted route list.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import AbstractSet, Any, Dict, List, Optional, Sequence

import structlog
from tqdm import tqdm

from route_topology.engine.infrastructure import Edge, InfrastructureGraphBuilder
from route_topology.engine.stops import SpatialStopIndex
from route_topology.engine.variants import (
    MetroCanonicalizer,
    RawVariant,
    RouteRawVariantSet,
    SubsumptionFilter,
    Variant,
)

logger = structlog.get_logger(__name__)


@dataclass
class RouteTopology:
    """Variants and edges of one route, before numbering."""

    route_id: str
    variants: List[Variant]
    infrastructure: List[Edge]


@dataclass
class OptimizedRoute:
    """
    Final record of one route in optimized_routes.json.

    numeric_id is dense and 1-based, following the route_id sort order.
    """

    numeric_id: int
    route_id: str
    short_name: str
    variants: List[Variant]
    infrastructure: List[Edge]

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready representation."""
        return {
            "id": self.numeric_id,
            "route_id": self.route_id,
            "short_name": self.short_name,
            "variants": [variant.to_dict() for variant in self.variants],
            "infrastructure": [[stop_a, stop_b] for stop_a, stop_b in self.infrastructure],
        }


class RouteTopologyAssembler:
    """
    Builds OptimizedRoute records from extracted raw variants.

    Usage:
        assembler = RouteTopologyAssembler(stop_index, metro_route_ids)
        routes = assembler.assemble(raw_variant_set)
    """

    def __init__(
        self,
        stop_index: SpatialStopIndex,
        metro_route_ids: AbstractSet[str] = frozenset(),
        workers: int = 1,
        show_progress: bool = False
    ) -> None:
        """
        Args:
            stop_index: Index providing stop display names.
            metro_route_ids: Route IDs whose stops are canonicalized by name.
            workers: Threads used for per-route work; 1 runs sequentially.
            show_progress: Display a tqdm progress bar.
        """
        self.metro_route_ids = frozenset(metro_route_ids)
        self.workers = max(1, workers)
        self.show_progress = show_progress
        self._canonicalizer = MetroCanonicalizer(stop_index.name_of)
        self._subsumption = SubsumptionFilter()
        self._graph = InfrastructureGraphBuilder()

    def build_route(self, route_id: str, sequences: Sequence[RawVariant]) -> RouteTopology:
        """Canonicalize (metro only), then filter variants and build edges."""
        if route_id in self.metro_route_ids:
            sequences = self._canonicalizer.canonicalize(sequences)

        return RouteTopology(
            route_id=route_id,
            variants=self._subsumption.filter(route_id, sequences),
            infrastructure=self._graph.build(sequences),
        )

    def _build_all(self, raw: RouteRawVariantSet, route_ids: List[str]) -> List[RouteTopology]:
        progress: Optional[tqdm] = None
        if self.show_progress:
            progress = tqdm(total=len(route_ids), desc="Building route topology")

        def build(route_id: str) -> RouteTopology:
            topology = self.build_route(route_id, raw.variants[route_id])
            if progress is not None:
                progress.update(1)
            return topology

        try:
            if self.workers == 1:
                return [build(route_id) for route_id in route_ids]
            # map() yields in input order, so results stay in route_id order
            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                return list(executor.map(build, route_ids))
        finally:
            if progress is not None:
                progress.close()

    def assemble(self, raw: RouteRawVariantSet) -> List[OptimizedRoute]:
        """
        Produce the complete, numbered route list.

        Args:
            raw: Raw sequences and short names per route.

        Returns:
            One OptimizedRoute per route, ordered by route_id.
        """
        route_ids = raw.route_ids()
        topologies = self._build_all(raw, route_ids)

        routes = [
            OptimizedRoute(
                numeric_id=numeric_id,
                route_id=topology.route_id,
                short_name=raw.short_names.get(topology.route_id, ""),
                variants=topology.variants,
                infrastructure=topology.infrastructure,
            )
            for numeric_id, topology in enumerate(topologies, start=1)
        ]

        logger.info(
            "routes_assembled",
            routes=len(routes),
            metro_routes=sum(1 for r in routes if r.route_id in self.metro_route_ids),
            variants=sum(len(r.variants) for r in routes),
            edges=sum(len(r.infrastructure) for r in routes)
        )
        return routes
