import math
import pytest

from app.core.exceptions import InvalidCoordinate
from app.services.distance import Coordinate, distance_km, display_km, is_valid_coordinate

DELHI = Coordinate(28.7041, 77.1025)
MUMBAI = Coordinate(19.0760, 72.8777)
BANGALORE = Coordinate(12.9716, 77.5946)


class TestDistance:

    @pytest.mark.parametrize("a,b", [
        (DELHI, MUMBAI),
        (MUMBAI, BANGALORE),
        (Coordinate(-33.8688, 151.2093), Coordinate(51.5074, -0.1278)),
        (Coordinate(0.0, 179.9), Coordinate(0.0, -179.9)),
    ])
    def test_symmetric(self, a, b):
        assert abs(distance_km(a, b) - distance_km(b, a)) < 1e-6

    @pytest.mark.parametrize("point", [DELHI, MUMBAI, Coordinate(90.0, 0.0), Coordinate(-90.0, 180.0)])
    def test_same_point_is_zero(self, point):
        assert distance_km(point, point) == 0

    def test_known_distance(self):
        # Delhi to Mumbai is roughly 1150 km as the crow flies
        assert 1140 < distance_km(DELHI, MUMBAI) < 1160

    def test_full_precision_kept(self):
        d = distance_km(DELHI, MUMBAI)
        assert display_km(d) == round(d, 2)
        assert d != display_km(d)

    @pytest.mark.parametrize("lat,lon", [
        (90.1, 0.0),
        (-91.0, 0.0),
        (0.0, 180.5),
        (0.0, -181.0),
        (math.nan, 10.0),
    ])
    def test_invalid_coordinate_rejected(self, lat, lon):
        with pytest.raises(InvalidCoordinate):
            distance_km(Coordinate(lat, lon), DELHI)
        with pytest.raises(InvalidCoordinate):
            distance_km(DELHI, Coordinate(lat, lon))

    @pytest.mark.parametrize("lat,lon,expected", [
        (None, 10.0, False),
        ("12.5", "77.1", True),
        ("north", 77.1, False),
        (-90, -180, True),
    ])
    def test_is_valid_coordinate(self, lat, lon, expected):
        assert is_valid_coordinate(lat, lon) is expected
