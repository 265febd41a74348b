import pytest
from pydantic import ValidationError

from models import Coordinate, Direction
from services.geometry import OCTANTS, as_coordinate, bearing_octant, distance_km, initial_bearing

from conftest import HISAR, north_of

ORIGIN = Coordinate(latitude=0, longitude=0)


def test_distance_is_symmetric_and_zero_on_identity():
    other = Coordinate(latitude=28.6139, longitude=77.2090)

    assert distance_km(HISAR, other) == distance_km(other, HISAR)
    assert distance_km(HISAR, HISAR) == 0
    assert distance_km(other, other) == 0


TRIANGLES = [
    (HISAR, Coordinate(latitude=28.6139, longitude=77.2090), Coordinate(latitude=19.0760, longitude=72.8777)),
    (ORIGIN, Coordinate(latitude=0, longitude=90), Coordinate(latitude=45, longitude=45)),
    (Coordinate(latitude=89.9, longitude=0), Coordinate(latitude=-89.9, longitude=180), Coordinate(latitude=0, longitude=-179.9)),
    (HISAR, north_of(HISAR, 1), north_of(HISAR, 2)),
]


@pytest.mark.parametrize("a, b, c", TRIANGLES)
def test_triangle_inequality(a, b, c):
    for x, y, z in [(a, b, c), (b, c, a), (c, a, b)]:
        assert distance_km(x, z) <= distance_km(x, y) + distance_km(y, z) + 1e-9


@pytest.mark.parametrize("a, b, c", TRIANGLES)
def test_symmetry_is_exact(a, b, c):
    for x, y in [(a, b), (b, c), (a, c)]:
        assert distance_km(x, y) == distance_km(y, x)


def test_small_latitude_offset_is_under_two_km():
    """0.01 degree of latitude is about 1.1 km."""
    shifted = Coordinate(latitude=HISAR.latitude + 0.01, longitude=HISAR.longitude)

    d = distance_km(HISAR, shifted)

    assert 1.0 < d < 2.0


def test_distance_scale_matches_earth_radius():
    assert distance_km(HISAR, north_of(HISAR, 7)) == pytest.approx(7, rel=1e-6)


def test_distance_accepts_tuples_and_dicts():
    expected = distance_km(HISAR, ORIGIN)

    assert distance_km((HISAR.latitude, HISAR.longitude), {"latitude": 0, "longitude": 0}) == pytest.approx(expected)


@pytest.mark.parametrize(
    "target, expected",
    [
        ((1, 0), Direction.N),
        ((1, 1), Direction.NE),
        ((0, 1), Direction.E),
        ((-1, 1), Direction.SE),
        ((-1, 0), Direction.S),
        ((-1, -1), Direction.SW),
        ((0, -1), Direction.W),
        ((1, -1), Direction.NW),
    ],
)
def test_bearing_octant_covers_all_eight_labels(target, expected):
    assert bearing_octant(ORIGIN, target) == expected


def test_bearing_octant_is_always_one_of_eight_labels():
    targets = [(10, 3), (-45, 170), (89, -179), (-89.5, 0.1), (0.0001, 0.0002)]

    for target in targets:
        assert bearing_octant(HISAR, target) in OCTANTS
    assert len(set(OCTANTS)) == 8


def test_initial_bearing_is_normalized():
    bearing = initial_bearing(ORIGIN, (0, -1))

    assert 0 <= bearing < 360
    assert bearing == pytest.approx(270)


def test_identical_points_report_north():
    assert bearing_octant(HISAR, HISAR) == Direction.N


@pytest.mark.parametrize("lat, lon", [(91, 0), (-90.5, 0), (0, 180.1), (0, -181)])
def test_out_of_range_coordinates_are_rejected(lat, lon):
    with pytest.raises(ValidationError):
        as_coordinate((lat, lon))
    with pytest.raises(ValidationError):
        distance_km({"latitude": lat, "longitude": lon}, ORIGIN)


def test_unchecked_coordinate_is_revalidated():
    bogus = Coordinate.model_construct(latitude=120.0, longitude=0.0)

    with pytest.raises(ValidationError):
        distance_km(bogus, ORIGIN)
