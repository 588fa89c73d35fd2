"""
Line referential: transport mode detection and the metro route set.
"""

import json
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Union

import structlog

from route_topology.core.records import LineRecord, parse_line_record, parse_records, prefixed_route_id

logger = structlog.get_logger(__name__)


class TransportMode(str, Enum):
    RER = "rer"
    METRO = "metro"
    TRANSILIEN = "transilien"
    TER = "ter"
    NAVETTE = "navette"
    BUS = "bus"
    CABLEWAY = "cableway"
    TRAMWAY = "tramway"


RAIL_SUBMODES = {
    "suburbanRailway": TransportMode.TRANSILIEN,
    "local": TransportMode.RER,
    "regionalRail": TransportMode.TER,
    "railShuttle": TransportMode.NAVETTE,
}

DIRECT_MODES = {
    "metro": TransportMode.METRO,
    "tramway": TransportMode.TRAMWAY,
    "bus": TransportMode.BUS,
    "cableway": TransportMode.CABLEWAY,
}


def detect_mode(transport_mode: str, transport_submode: str) -> Union[TransportMode, str]:
    """
    Map the referential's (transportmode, transportsubmode) to a mode.

    Unknown modes are returned unchanged as plain strings.
    """
    if transport_mode == "rail":
        return RAIL_SUBMODES.get(transport_submode, TransportMode.TRANSILIEN)
    return DIRECT_MODES.get(transport_mode, transport_mode)


@dataclass
class LineData:
    """Entry of lines.json."""

    id: str
    name: str
    mode: str
    background_color: str
    text_color: str

    @classmethod
    def from_record(cls, record: LineRecord, route_id_prefix: str = "") -> "LineData":
        mode = detect_mode(record.transport_mode, record.transport_submode)
        return cls(
            id=prefixed_route_id(record.id, route_id_prefix),
            name=record.name,
            mode=mode.value if isinstance(mode, TransportMode) else mode,
            background_color=record.background_color,
            text_color=record.text_color,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def build_line_catalog(raw_lines: List[Any], route_id_prefix: str = "") -> List[LineData]:
    """Parse the line referential, skipping records without ``id_line``."""
    lines = [
        LineData.from_record(record, route_id_prefix)
        for record in parse_records(raw_lines, parse_line_record)
    ]
    logger.info("line_catalog_built", lines=len(lines), skipped=len(raw_lines) - len(lines))
    return lines


def metro_route_ids(lines: Iterable[LineData]) -> FrozenSet[str]:
    """Route IDs of every metro line."""
    return frozenset(line.id for line in lines if line.mode == TransportMode.METRO.value)


def load_metro_route_ids(lines_path: Path) -> FrozenSet[str]:
    """
    Read the metro route set back from a previously written lines.json.

    A missing or unreadable file yields an empty set: every route is then
    processed without canonicalization.
    """
    if not lines_path.exists():
        logger.warning("lines_file_not_found", path=str(lines_path))
        return frozenset()

    try:
        with open(lines_path, 'r', encoding='utf-8') as f:
            entries = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("lines_file_unreadable", path=str(lines_path), error=str(e))
        return frozenset()

    if not isinstance(entries, list):
        return frozenset()

    return frozenset(
        str(entry["id"])
        for entry in entries
        if isinstance(entry, dict) and entry.get("id") and entry.get("mode") == TransportMode.METRO.value
    )
