"""
Module A: Spatial Stop Index
============================
Snaps trace points onto stops by quantized coordinate.

Coordinates are rounded independently to four decimal digits (about 11 m)
and formatted into a string key. The key doubles as a cheap stand-in for a
geodesic nearest-stop search: two points that round to the same key resolve
to the same stop, whatever order they are visited in.

Key Features:
- Build from the IDFM stop/line referential or from a GTFS stops.txt
- O(1) lookup of a stop ID from a (lat, lon) pair
- Stop ID -> display name map for metro canonicalization
- Read-only after construction, safe for concurrent readers

Key collisions between distinct stops are resolved last-write-wins.
"""

import csv
from pathlib import Path
from typing import Dict, Iterable, Optional

import structlog

from route_topology.core.records import StopRecord, optional_float

logger = structlog.get_logger(__name__)

COORDINATE_PRECISION = 4


def coordinate_key(lat: float, lon: float, precision: int = COORDINATE_PRECISION) -> str:
    """Format the fixed-precision key of a latitude/longitude pair."""
    return f"{lat:.{precision}f},{lon:.{precision}f}"


class SpatialStopIndex:
    """
    Quantized coordinate -> stop ID index, plus stop ID -> name map.

    Usage:
        index = SpatialStopIndex.from_records(stop_records)
        stop_id = index.lookup(48.8584, 2.3470)
        if stop_id:
            name = index.name_of(stop_id)
    """

    def __init__(self, precision: int = COORDINATE_PRECISION) -> None:
        """
        Create an empty index.

        Args:
            precision: Number of decimal digits kept in coordinate keys.
        """
        self.precision = precision
        self._stops_by_key: Dict[str, str] = {}  # coordinate key -> stop_id
        self._names: Dict[str, str] = {}  # stop_id -> display name
        self._collisions = 0

    @classmethod
    def from_records(
        cls,
        records: Iterable[StopRecord],
        precision: int = COORDINATE_PRECISION
    ) -> "SpatialStopIndex":
        """Build the index from parsed stop records."""
        index = cls(precision=precision)
        for record in records:
            index._add(record)

        logger.info(
            "stop_index_built",
            indexed_keys=len(index._stops_by_key),
            named_stops=len(index._names),
            key_collisions=index._collisions
        )
        return index

    @classmethod
    def from_stops_file(
        cls,
        file_path: str,
        precision: int = COORDINATE_PRECISION
    ) -> "SpatialStopIndex":
        """
        Build the index from a GTFS static stops.txt file.

        https://gtfs.org/schedule/reference/#stopstxt

        Rows with a missing stop_id or unparseable coordinates are skipped.

        Args:
            file_path: Path to stops.txt.

        Raises:
            FileNotFoundError: If the file does not exist.
            ValueError: If the file lacks stop_id, stop_lat or stop_lon.
        """
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Stops file not found: {file_path}")

        records = []
        with open(path, 'r', encoding='utf-8-sig') as f:
            reader = csv.DictReader(f)

            fieldnames = reader.fieldnames or []
            if not all(col in fieldnames for col in ['stop_id', 'stop_lat', 'stop_lon']):
                raise ValueError(
                    f"{file_path} missing required columns (stop_id, stop_lat, stop_lon)"
                )

            for row in reader:
                stop_id = (row.get('stop_id') or '').strip()
                lat = optional_float(row.get('stop_lat'))
                lon = optional_float(row.get('stop_lon'))

                if not stop_id or lat is None or lon is None:
                    logger.warning(
                        "stop_row_skipped",
                        stop_id=stop_id,
                        lat=row.get('stop_lat'),
                        lon=row.get('stop_lon')
                    )
                    continue

                records.append(StopRecord(
                    id=stop_id,
                    name=(row.get('stop_name') or '').strip(),
                    coordinate=(lat, lon) if lat != 0 else None,
                ))

        return cls.from_records(records, precision=precision)

    def _add(self, record: StopRecord) -> None:
        if record.coordinate is not None:
            key = coordinate_key(*record.coordinate, precision=self.precision)
            previous = self._stops_by_key.get(key)
            if previous is not None and previous != record.id:
                self._collisions += 1
                logger.debug(
                    "stop_key_collision",
                    key=key,
                    replaced=previous,
                    stop_id=record.id
                )
            self._stops_by_key[key] = record.id

        if record.name:
            self._names[record.id] = record.name

    def lookup(self, lat: float, lon: float) -> Optional[str]:
        """
        Find the stop at a coordinate.

        Args:
            lat: Latitude in degrees.
            lon: Longitude in degrees.

        Returns:
            The stop ID whose quantized key matches, or None.
        """
        return self._stops_by_key.get(coordinate_key(lat, lon, precision=self.precision))

    def name_of(self, stop_id: str) -> Optional[str]:
        """Display name of a stop, None when unnamed or unknown."""
        return self._names.get(stop_id)

    @property
    def names(self) -> Dict[str, str]:
        """Copy of the stop ID -> display name map."""
        return dict(self._names)

    def __len__(self) -> int:
        return len(self._stops_by_key)
