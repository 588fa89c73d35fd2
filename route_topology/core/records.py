"""
Source Record Parsing
=====================
Typed, option-returning parsing layer for the loosely structured JSON records
exported by the IDFM open data platform.

Every ``parse_*`` function returns a frozen dataclass or ``None``. Malformed
input raises ``SourceFormatError`` internally and is absorbed here, at the
parse boundary, so the transform code only ever sees well-typed values.

Null-like values are treated as absent: ``None``, empty strings, and the
``"<nil>"`` / ``"None"`` / ``"null"`` placeholders some exports contain.
"""

import math
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple

import structlog

from route_topology.core.errors import SourceFormatError

logger = structlog.get_logger(__name__)

PLACEHOLDER_VALUES = frozenset({"", "<nil>", "None", "none", "null", "NULL"})

# (longitude, latitude), the GeoJSON point order
Point = Tuple[float, float]


@dataclass(frozen=True)
class StopRecord:
    """A stop from the stop/line referential."""

    id: str
    name: str
    coordinate: Optional[Tuple[float, float]]  # (lat, lon), None when unusable


@dataclass(frozen=True)
class TraceRecord:
    """One line trace: a route and its polyline segments."""

    route_id: str
    short_name: str
    segments: Tuple[Tuple[Point, ...], ...]


@dataclass(frozen=True)
class LineRecord:
    """A line from the line referential, before mode detection."""

    id: str
    name: str
    transport_mode: str
    transport_submode: str
    background_color: str
    text_color: str


def optional_text(raw: Mapping[str, Any], key: str) -> Optional[str]:
    """
    Read a scalar field as text.

    Strings are stripped; integers are rendered in decimal. Anything else
    (nested objects, booleans, placeholders) is absent.
    """
    value = raw.get(key)
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        value = str(value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    if value in PLACEHOLDER_VALUES:
        return None
    return value


def optional_float(value: Any) -> Optional[float]:
    """Read a number or numeric string; non-finite values are absent."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def prefixed_route_id(raw_id: str, prefix: str) -> str:
    """Qualify a bare line identifier with the network prefix."""
    if not prefix or raw_id.startswith(prefix):
        return raw_id
    return prefix + raw_id


def _stop_coordinate(raw: Mapping[str, Any]) -> Optional[Tuple[float, float]]:
    geo = raw.get("pointgeo")
    if isinstance(geo, Mapping):
        lat = optional_float(geo.get("lat"))
        lon = optional_float(geo.get("lon"))
    else:
        lat = optional_float(raw.get("stop_lat"))
        lon = optional_float(raw.get("stop_lon"))

    # A zero latitude is how the referential marks "no coordinate"
    if lat is None or lon is None or lat == 0:
        return None
    return (lat, lon)


def parse_stop_record(raw: Any) -> Optional[StopRecord]:
    """
    Parse one stop record.

    Returns ``None`` only when the record has no stop identifier. A record
    without a usable coordinate is still returned (its name is useful for
    metro canonicalization) with ``coordinate=None``.
    """
    if not isinstance(raw, Mapping):
        logger.debug("stop_record_skipped", reason="not an object")
        return None

    stop_id = optional_text(raw, "stop_id")
    if stop_id is None:
        return None

    return StopRecord(
        id=stop_id,
        name=optional_text(raw, "stop_name") or "",
        coordinate=_stop_coordinate(raw),
    )


def _parse_point(value: Any) -> Point:
    if not isinstance(value, (list, tuple)) or len(value) < 2:
        raise SourceFormatError(f"point is not a coordinate pair: {value!r}")
    lon = optional_float(value[0])
    lat = optional_float(value[1])
    if lon is None or lat is None:
        raise SourceFormatError(f"point has non-numeric coordinates: {value!r}")
    return (lon, lat)


def _parse_segment(value: Any) -> Tuple[Point, ...]:
    if not isinstance(value, (list, tuple)):
        raise SourceFormatError("segment is not a point list")
    return tuple(_parse_point(point) for point in value)


def _geometry_segments(raw: Mapping[str, Any]) -> List[Any]:
    """Locate the list of raw segments inside a trace record."""
    shape = raw.get("shape")
    if not isinstance(shape, Mapping):
        raise SourceFormatError("missing shape")

    geometry = shape.get("geometry", shape)
    if not isinstance(geometry, Mapping):
        raise SourceFormatError("missing shape geometry")

    coordinates = geometry.get("coordinates")
    if not isinstance(coordinates, list):
        raise SourceFormatError("geometry has no coordinate list")

    if geometry.get("type") == "LineString":
        return [coordinates]
    return coordinates


def parse_trace_record(raw: Any, route_id_prefix: str = "") -> Optional[TraceRecord]:
    """
    Parse one line trace record.

    A malformed segment is dropped on its own; the record is skipped when it
    has no route identifier, no geometry, or no well-formed segment.

    Args:
        raw: Decoded JSON object from the trace dataset.
        route_id_prefix: Prefix applied to the ``id_ilico`` field.

    Returns:
        The parsed record, or ``None`` when the record is unusable.
    """
    if not isinstance(raw, Mapping):
        logger.debug("trace_record_skipped", reason="not an object")
        return None

    raw_id = optional_text(raw, "id_ilico")
    if raw_id is None:
        logger.debug("trace_record_skipped", reason="missing id_ilico")
        return None
    route_id = prefixed_route_id(raw_id, route_id_prefix)

    try:
        raw_segments = _geometry_segments(raw)
    except SourceFormatError as e:
        logger.debug("trace_record_skipped", route_id=route_id, reason=str(e))
        return None

    segments = []
    for index, raw_segment in enumerate(raw_segments):
        try:
            segments.append(_parse_segment(raw_segment))
        except SourceFormatError as e:
            logger.debug(
                "trace_segment_skipped",
                route_id=route_id,
                segment=index,
                reason=str(e)
            )

    if not segments:
        return None

    return TraceRecord(
        route_id=route_id,
        short_name=optional_text(raw, "route_short_name") or "",
        segments=tuple(segments),
    )


def parse_line_record(raw: Any) -> Optional[LineRecord]:
    """Parse one line referential record; ``None`` without ``id_line``."""
    if not isinstance(raw, Mapping):
        return None

    line_id = optional_text(raw, "id_line")
    if line_id is None:
        return None

    return LineRecord(
        id=line_id,
        name=optional_text(raw, "name_line") or "",
        transport_mode=optional_text(raw, "transportmode") or "",
        transport_submode=optional_text(raw, "transportsubmode") or "",
        background_color=optional_text(raw, "colourweb_hexa") or "",
        text_color=optional_text(raw, "textcolourweb_hexa") or "",
    )


def parse_records(raw_records: List[Any], parser, **kwargs) -> List[Any]:
    """Apply a ``parse_*`` function to a dataset, dropping unusable records."""
    parsed = []
    for raw in raw_records:
        record = parser(raw, **kwargs)
        if record is not None:
            parsed.append(record)
    return parsed
