"""
Tests for the Spatial Stop Index
"""

import pytest

from route_topology.core.records import StopRecord
from route_topology.engine.stops import SpatialStopIndex, coordinate_key


def test_coordinate_key_rounds_to_four_decimals():
    """Test that keys keep four decimals for both components."""
    assert coordinate_key(48.85661, 2.35219) == "48.8566,2.3522"
    assert coordinate_key(48.8, 2.3) == "48.8000,2.3000"


def test_lookup_matches_nearby_points():
    """Test that points rounding to the same key resolve to the same stop."""
    index = SpatialStopIndex.from_records([
        StopRecord(id="STOP_001", name="Châtelet", coordinate=(48.85840, 2.34700)),
    ])

    assert index.lookup(48.85840, 2.34700) == "STOP_001"
    assert index.lookup(48.858404, 2.347003) == "STOP_001"
    assert index.lookup(48.85850, 2.34700) is None


def test_lookup_is_independent_of_visitation_order():
    """Test that lookups are pure: the order points are queried in is irrelevant."""
    index = SpatialStopIndex.from_records([
        StopRecord(id="A", name="", coordinate=(48.1000, 2.1000)),
        StopRecord(id="B", name="", coordinate=(48.2000, 2.2000)),
    ])
    points = [(48.10001, 2.10002), (48.20003, 2.19998), (48.09999, 2.10001)]

    forward = [index.lookup(*p) for p in points]
    backward = [index.lookup(*p) for p in reversed(points)]

    assert forward == ["A", "B", "A"]
    assert backward == list(reversed(forward))


def test_collision_last_write_wins():
    """Test that the later stop wins when two stops share a key."""
    index = SpatialStopIndex.from_records([
        StopRecord(id="FIRST", name="Gare A", coordinate=(48.85661, 2.35221)),
        StopRecord(id="SECOND", name="Gare B", coordinate=(48.85659, 2.35219)),
    ])

    assert len(index) == 1
    assert index.lookup(48.8566, 2.3522) == "SECOND"
    # Names are kept for both stops
    assert index.name_of("FIRST") == "Gare A"
    assert index.name_of("SECOND") == "Gare B"


def test_records_without_coordinate_keep_their_name():
    """Test that stops without a usable coordinate are named but not indexed."""
    index = SpatialStopIndex.from_records([
        StopRecord(id="NO_COORD", name="Nation", coordinate=None),
        StopRecord(id="UNNAMED", name="", coordinate=(48.8, 2.3)),
    ])

    assert len(index) == 1
    assert index.name_of("NO_COORD") == "Nation"
    assert index.name_of("UNNAMED") is None
    assert index.names == {"NO_COORD": "Nation"}


def test_from_stops_file(tmp_path):
    """Test loading a GTFS stops.txt file."""
    stops_file = tmp_path / "stops.txt"
    stops_file.write_text(
        "stop_id,stop_name,stop_lat,stop_lon\n"
        "STOP_001,Central Station,48.8566,2.3522\n"
        "STOP_002,Bad Data,not_a_number,2.3550\n"
        " STOP_003 ,North Station,48.8800,2.3550\n"
        "STOP_004,Nowhere,0,0\n",
        encoding="utf-8-sig"
    )

    index = SpatialStopIndex.from_stops_file(str(stops_file))

    assert len(index) == 2
    assert index.lookup(48.8566, 2.3522) == "STOP_001"
    assert index.lookup(48.8800, 2.3550) == "STOP_003"
    assert index.name_of("STOP_004") == "Nowhere"
    assert index.name_of("STOP_002") is None


def test_from_stops_file_missing_file(tmp_path):
    """Test that a missing stops.txt raises."""
    with pytest.raises(FileNotFoundError):
        SpatialStopIndex.from_stops_file(str(tmp_path / "missing.txt"))


def test_from_stops_file_missing_columns(tmp_path):
    """Test that stops.txt without coordinates is rejected."""
    stops_file = tmp_path / "stops.txt"
    stops_file.write_text("stop_id,stop_name\nSTOP_001,Central Station\n")

    with pytest.raises(ValueError, match="missing required columns"):
        SpatialStopIndex.from_stops_file(str(stops_file))
