"""
Data Preparation Tool
=====================
Refreshes every derived file from the IDFM open data platform:

- stops.json: flattened stop/line referential
- lines.json: line referential with detected transport modes
- optimized_routes.json: route variants and adjacency infrastructure

Each export runs behind its own backup guard. A failing export restores its
previous file and does not prevent the following exports from running; the
routes export then falls back to the lines.json already on disk.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional

from route_topology.core.errors import TopologyError
from route_topology.ingestion.harvester import LINES_URL, STOPS_URL, TRACES_URL, DatasetHarvester
from route_topology.ingestion.lines import build_line_catalog, load_metro_route_ids, metro_route_ids
from route_topology.ingestion.stops import build_stop_catalog
from route_topology.tools.backup import BackupGuard, write_json_atomic
from route_topology.tools.build_routes import RouteTopologyConverter

DEFAULT_OUTPUT_DIR = Path(".")


@dataclass
class PreparationReport:
    """Outcome of one refresh: which exports succeeded."""

    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class DataPreparationTool:
    """
    Runs the stops, lines and routes exports in order.

    Usage:
        with DatasetHarvester() as harvester:
            report = DataPreparationTool(harvester, output_dir=Path("data")).prepare()
    """

    def __init__(
        self,
        harvester: DatasetHarvester,
        output_dir: Path = DEFAULT_OUTPUT_DIR,
        stops_url: str = STOPS_URL,
        traces_url: str = TRACES_URL,
        lines_url: str = LINES_URL,
        stops_output: Optional[Path] = None,
        lines_output: Optional[Path] = None,
        routes_output: Optional[Path] = None,
        gtfs_stops_file: Optional[Path] = None,
        route_id_prefix: str = "IDFM:",
        workers: int = 1,
        show_progress: bool = True
    ):
        """
        Initialize the data preparation tool.

        Args:
            harvester: Dataset harvester shared by every export.
            output_dir: Directory for generated files.
            stops_output: Path for stops.json (overrides output_dir).
            lines_output: Path for lines.json (overrides output_dir).
            routes_output: Path for optimized_routes.json (overrides output_dir).
            gtfs_stops_file: Local GTFS stops.txt for stop matching.
            route_id_prefix: Prefix qualifying line identifiers.
            workers: Threads used for per-route work.
        """
        self.harvester = harvester
        self.output_dir = output_dir
        self.stops_url = stops_url
        self.traces_url = traces_url
        self.lines_url = lines_url

        self.stops_output = stops_output or (output_dir / "stops.json")
        self.lines_output = lines_output or (output_dir / "lines.json")
        self.routes_output = routes_output or (output_dir / "optimized_routes.json")

        self.gtfs_stops_file = gtfs_stops_file
        self.route_id_prefix = route_id_prefix
        self.workers = workers
        self.show_progress = show_progress

        self.logger = logging.getLogger(__name__)

        self._raw_stops: Optional[List[Any]] = None
        self._metro_route_ids: Optional[FrozenSet[str]] = None

    def export_stops(self) -> None:
        """Fetch the stop referential and write stops.json."""
        self.logger.info(f"📍 Exporting stops to {self.stops_output}...")

        with BackupGuard(self.stops_output):
            self._raw_stops = self.harvester.fetch("stops", self.stops_url)
            catalog = build_stop_catalog(self._raw_stops)
            write_json_atomic(self.stops_output, catalog)

        self.logger.info(f"  ✓ {len(catalog):,} stops written")

    def export_lines(self) -> None:
        """Fetch the line referential and write lines.json."""
        self.logger.info(f"🚇 Exporting lines to {self.lines_output}...")

        with BackupGuard(self.lines_output):
            raw_lines = self.harvester.fetch("lines", self.lines_url)
            lines = build_line_catalog(raw_lines, self.route_id_prefix)
            write_json_atomic(self.lines_output, [line.to_dict() for line in lines])

        self._metro_route_ids = metro_route_ids(lines)
        self.logger.info(
            f"  ✓ {len(lines):,} lines written ({len(self._metro_route_ids)} metro)"
        )

    def export_routes(self) -> None:
        """Build optimized_routes.json."""
        self.logger.info(f"🌐 Exporting routes to {self.routes_output}...")

        metro = self._metro_route_ids
        if metro is None:
            metro = load_metro_route_ids(self.lines_output)

        converter = RouteTopologyConverter(
            harvester=self.harvester,
            output_path=self.routes_output,
            metro_route_ids=metro,
            stops_url=self.stops_url,
            traces_url=self.traces_url,
            stops_file=self.gtfs_stops_file,
            raw_stops=self._raw_stops,
            route_id_prefix=self.route_id_prefix,
            workers=self.workers,
            show_progress=self.show_progress
        )
        converter.convert()

    def prepare(self) -> PreparationReport:
        """
        Execute every export.

        Returns:
            Which exports succeeded and why the others failed.
        """
        report = PreparationReport()

        steps = [
            ("stops", self.export_stops),
            ("lines", self.export_lines),
            ("routes", self.export_routes),
        ]
        for name, step in steps:
            try:
                step()
                report.succeeded.append(name)
            except TopologyError as e:
                self.logger.error(f"  ✗ {name} export failed: {e}")
                report.failed[name] = str(e)
            except Exception as e:
                self.logger.error(f"  ✗ {name} export failed: {e}", exc_info=True)
                report.failed[name] = str(e)

        if report.ok:
            self.logger.info("✅ Data preparation completed successfully!")
        return report
