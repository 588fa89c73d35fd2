"""
Stop referential export (stops.json).

The IDFM ``arrets-lignes`` dataset has one row per (stop, line) pair. The
export keeps that granularity and only renames fields.
"""

from typing import Any, Dict, List, Mapping

import structlog

from route_topology.core.records import optional_text

logger = structlog.get_logger(__name__)


def flatten_stop(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """One stops.json entry; absent text fields become empty strings."""
    geo = raw.get("pointgeo")
    return {
        "ID": optional_text(raw, "stop_id") or "",
        "LineID": optional_text(raw, "id") or "",
        "name": optional_text(raw, "stop_name") or "",
        "city": optional_text(raw, "nom_commune") or "",
        "geom": dict(geo) if isinstance(geo, Mapping) else None,
    }


def build_stop_catalog(raw_stops: List[Any]) -> List[Dict[str, Any]]:
    """Flatten every object record of the stop referential."""
    catalog = [flatten_stop(raw) for raw in raw_stops if isinstance(raw, Mapping)]
    logger.info("stop_catalog_built", stops=len(catalog))
    return catalog
