#!/usr/bin/env python3
"""
Route Topology Converter
========================
Builds optimized_routes.json from the IDFM stop referential and line traces.

For every route the output holds:
- variants: the maximal, distinct stop sequences observed on its traces
- infrastructure: stop pairs that are directly linked, jump edges removed

Processing steps:
1. Index stops by quantized coordinate (4 decimals, ~11 m)
2. Snap every trace segment onto stops
3. Merge per-direction metro platforms by station name
4. Filter subsumed variants, build the adjacency graph
5. Number routes in route_id order and write the file atomically

The previous output is backed up before the run and restored on failure.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import AbstractSet, Any, List, Optional

from tqdm import tqdm

from route_topology.core.errors import EmptyInputError, TopologyError
from route_topology.core.records import (
    TraceRecord,
    parse_records,
    parse_stop_record,
    parse_trace_record,
)
from route_topology.engine.stops import SpatialStopIndex
from route_topology.engine.topology import OptimizedRoute, RouteTopologyAssembler
from route_topology.engine.variants import TraceVariantExtractor
from route_topology.ingestion.harvester import STOPS_URL, TRACES_URL, DatasetHarvester
from route_topology.ingestion.lines import load_metro_route_ids
from route_topology.tools.backup import BackupGuard, write_json_atomic

DEFAULT_ROUTES_OUTPUT = Path("optimized_routes.json")
DEFAULT_LINES_FILE = Path("lines.json")

logger = logging.getLogger(__name__)


class RouteTopologyConverter:
    """
    Converts stop and trace datasets into optimized route topology.

    This class handles the complete conversion process:
    1. Loading stops (HTTP export or local GTFS stops.txt) and traces
    2. Extracting and canonicalizing raw stop sequences
    3. Assembling numbered route records
    4. Writing the output behind a backup guard
    """

    def __init__(
        self,
        harvester: DatasetHarvester,
        output_path: Path = DEFAULT_ROUTES_OUTPUT,
        metro_route_ids: AbstractSet[str] = frozenset(),
        stops_url: str = STOPS_URL,
        traces_url: str = TRACES_URL,
        stops_file: Optional[Path] = None,
        raw_stops: Optional[List[Any]] = None,
        route_id_prefix: str = "IDFM:",
        workers: int = 1,
        show_progress: bool = True
    ):
        """
        Initialize the converter.

        Args:
            harvester: Dataset harvester used for HTTP exports.
            output_path: Path of optimized_routes.json.
            metro_route_ids: Routes whose stops are merged by station name.
            stops_url: Stop referential export URL.
            traces_url: Line traces export URL.
            stops_file: Local GTFS stops.txt used instead of stops_url.
            raw_stops: Already fetched stop referential, reused as is.
            route_id_prefix: Prefix qualifying trace line identifiers.
            workers: Threads used for per-route work.
            show_progress: Display tqdm progress bars.
        """
        self.harvester = harvester
        self.output_path = output_path
        self.metro_route_ids = frozenset(metro_route_ids)
        self.stops_url = stops_url
        self.traces_url = traces_url
        self.stops_file = stops_file
        self.raw_stops = raw_stops
        self.route_id_prefix = route_id_prefix
        self.workers = workers
        self.show_progress = show_progress

    def load_stop_index(self) -> SpatialStopIndex:
        """
        Build the spatial stop index.

        Raises:
            EmptyInputError: If no stop could be indexed.
        """
        if self.stops_file is not None:
            logger.info(f"📂 Using local stops file: {self.stops_file}")
            index = SpatialStopIndex.from_stops_file(str(self.stops_file))
        else:
            raw_stops = self.raw_stops
            if raw_stops is None:
                raw_stops = self.harvester.fetch("stops", self.stops_url)
            records = parse_records(raw_stops, parse_stop_record)
            index = SpatialStopIndex.from_records(records)

        if len(index) == 0:
            raise EmptyInputError("stops")

        logger.info(f"  ✓ Indexed {len(index):,} stop coordinates")
        return index

    def load_traces(self) -> List[TraceRecord]:
        """
        Fetch and parse line traces.

        Raises:
            EmptyInputError: If no trace record is usable.
        """
        raw_traces = self.harvester.fetch("traces", self.traces_url)
        traces = parse_records(raw_traces, parse_trace_record, route_id_prefix=self.route_id_prefix)

        if not traces:
            raise EmptyInputError("traces")

        skipped = len(raw_traces) - len(traces)
        logger.info(f"  ✓ Parsed {len(traces):,} traces ({skipped:,} skipped)")
        return traces

    def generate_routes(
        self,
        stop_index: SpatialStopIndex,
        traces: List[TraceRecord]
    ) -> List[OptimizedRoute]:
        """Run extraction and assembly over in-memory inputs."""
        logger.info("🌐 Generating route topology...")

        extractor = TraceVariantExtractor(stop_index)
        records = tqdm(traces, desc="Snapping traces") if self.show_progress else traces
        raw = extractor.extract(records)

        assembler = RouteTopologyAssembler(
            stop_index,
            metro_route_ids=self.metro_route_ids,
            workers=self.workers,
            show_progress=self.show_progress
        )
        return assembler.assemble(raw)

    def write_output(self, routes: List[OptimizedRoute]) -> None:
        """Write the whole route array in one atomic replace."""
        logger.info(f"💾 Writing output to {self.output_path}...")

        payload: List[Any] = [route.to_dict() for route in routes]
        size = write_json_atomic(self.output_path, payload)

        logger.info(f"  ✓ Wrote {size / (1024 * 1024):.2f} MB to {self.output_path}")

    def convert(self) -> List[OptimizedRoute]:
        """
        Execute the complete conversion.

        Returns:
            The routes written to disk.

        Raises:
            TopologyError: On fetch failure or empty input; the previous
                output file is restored first.
        """
        with BackupGuard(self.output_path):
            stop_index = self.load_stop_index()
            traces = self.load_traces()

            routes = self.generate_routes(stop_index, traces)
            if not routes:
                raise EmptyInputError("routes")

            self.write_output(routes)

        logger.info(f"✅ {len(routes):,} routes processed, adjacency infrastructure generated")
        return routes


def main() -> None:
    """
    CLI entry point for the route topology converter.
    """
    parser = argparse.ArgumentParser(
        description="Build optimized route topology (variants + infrastructure) from IDFM open data",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --output optimized_routes.json
  %(prog)s --stops-file gtfs/stops.txt --lines-file lines.json --workers 4

Output Format:
  [
    {
      "id": 1,
      "route_id": "IDFM:C01371",
      "short_name": "1",
      "variants": [{"id": "IDFM:C01371_0", "stops": ["...", "..."]}],
      "infrastructure": [["stop_a", "stop_b"]]
    }
  ]
        """
    )

    parser.add_argument(
        '--output',
        type=Path,
        default=DEFAULT_ROUTES_OUTPUT,
        help=f'Path to output JSON file (default: {DEFAULT_ROUTES_OUTPUT})'
    )
    parser.add_argument(
        '--lines-file',
        type=Path,
        default=DEFAULT_LINES_FILE,
        help=f'lines.json used to flag metro routes (default: {DEFAULT_LINES_FILE})'
    )
    parser.add_argument(
        '--stops-url',
        default=STOPS_URL,
        help='Stop referential export URL'
    )
    parser.add_argument(
        '--traces-url',
        default=TRACES_URL,
        help='Line traces export URL'
    )
    parser.add_argument(
        '--stops-file',
        type=Path,
        help='Local GTFS stops.txt used instead of --stops-url'
    )
    parser.add_argument(
        '--workers',
        type=int,
        default=1,
        help='Threads used for per-route processing (default: 1)'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(message)s',
        stream=sys.stdout
    )

    try:
        with DatasetHarvester() as harvester:
            converter = RouteTopologyConverter(
                harvester=harvester,
                output_path=args.output,
                metro_route_ids=load_metro_route_ids(args.lines_file),
                stops_url=args.stops_url,
                traces_url=args.traces_url,
                stops_file=args.stops_file,
                workers=args.workers
            )
            converter.convert()
    except (TopologyError, FileNotFoundError, ValueError) as e:
        print(f"❌ Error during conversion: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
