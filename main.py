#!/usr/bin/env python3
"""
IDFM Route Topology - Main Entry Point
======================================
Refreshes stops.json, lines.json and optimized_routes.json from the
Île-de-France Mobilités open data platform.

This is the orchestrator that brings together:
- Configuration (config/config.yaml with environment substitution)
- Structured logging
- Dataset harvesting with retry
- The stops, lines and routes exports
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

import structlog

from route_topology.core.config import DEFAULT_CONFIG_PATH, load_config
from route_topology.ingestion.harvester import DatasetHarvester
from route_topology.tools.prepare_data import DataPreparationTool, PreparationReport


class RouteTopologyUpdater:
    """
    Main orchestrator for a full data refresh.

    This class owns the configuration and logging setup, and runs the
    DataPreparationTool with a harvester configured from the sources section.
    """

    def __init__(self, config_path: str = DEFAULT_CONFIG_PATH) -> None:
        """
        Initialize the updater.

        Args:
            config_path: Path to configuration file.
        """
        self.config = load_config(config_path)
        self._setup_logging()

        self.logger = structlog.get_logger(__name__)
        self.logger.info(
            "route_topology_initializing",
            version=self.config['application']['version']
        )

    def _setup_logging(self) -> None:
        """Setup structured logging."""
        log_level = str(self.config.get('logging', {}).get('level', 'INFO')).upper()

        logging.basicConfig(
            format="%(message)s",
            stream=sys.stdout,
            level=getattr(logging, log_level, logging.INFO)
        )

        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                structlog.processors.JSONRenderer()
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

    def build_tool(self, harvester: DatasetHarvester) -> DataPreparationTool:
        """Create the DataPreparationTool described by the configuration."""
        sources = self.config['sources']
        output = self.config['output']
        topology = self.config['topology']

        output_dir = Path(output['directory'])
        gtfs_stops_file = sources.get('stops_file')

        return DataPreparationTool(
            harvester=harvester,
            output_dir=output_dir,
            stops_url=sources['stops_url'],
            traces_url=sources['traces_url'],
            lines_url=sources['lines_url'],
            stops_output=output_dir / output['stops_file'],
            lines_output=output_dir / output['lines_file'],
            routes_output=output_dir / output['routes_file'],
            gtfs_stops_file=Path(gtfs_stops_file) if gtfs_stops_file else None,
            route_id_prefix=topology.get('route_id_prefix') or '',
            workers=int(topology.get('workers', 1))
        )

    def run(self, harvester: Optional[DatasetHarvester] = None) -> PreparationReport:
        """
        Run a complete refresh.

        Args:
            harvester: Optional harvester; one is built from the configuration
                otherwise.
        """
        print("\n" + "=" * 80)
        print("🚦 IDFM ROUTE TOPOLOGY - data refresh")
        print("=" * 80 + "\n")

        sources = self.config['sources']
        own_harvester = harvester is None
        if harvester is None:
            harvester = DatasetHarvester(
                timeout=float(sources['timeout']),
                retries=int(sources['retries']),
                backoff_factor=float(sources['backoff_factor'])
            )

        try:
            report = self.build_tool(harvester).prepare()
        finally:
            if own_harvester:
                harvester.close()

        self.logger.info(
            "route_topology_refresh_finished",
            succeeded=report.succeeded,
            failed=sorted(report.failed)
        )
        return report


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Refresh IDFM stops, lines and optimized route topology"
    )
    parser.add_argument(
        '--config',
        default=DEFAULT_CONFIG_PATH,
        help=f'Path to configuration file (default: {DEFAULT_CONFIG_PATH})'
    )
    args = parser.parse_args()

    updater = RouteTopologyUpdater(config_path=args.config)
    report = updater.run()

    if report.ok:
        print("\n✅ All exports completed.")
        sys.exit(0)

    for name, reason in report.failed.items():
        print(f"❌ {name}: {reason}", file=sys.stderr)
    sys.exit(1)


if __name__ == "__main__":
    main()
