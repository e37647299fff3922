import sys
from pathlib import Path

import pytest

# Ensure project root is on sys.path for imports like `services.*`
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from models import PersonnelClass, Scenario, Zone  # noqa: E402


def make_zone(zone_id, depth, current, hazard=2.0, ac=20.0, lat=None, lon=None, population=10000.0):
    return Zone(
        zone_id=zone_id,
        name=f"Zone {zone_id}",
        hazard_level=hazard,
        flood_depth_ft=depth,
        exposure=1.0,
        adaptive_capacity=ac,
        current=tuple(current),
        lat=lat,
        lon=lon,
        population=population,
    )


@pytest.fixture
def classes():
    return (
        PersonnelClass(class_id="SAR", name="Search and Rescue", demand_weight=1.0, supply=40.0),
        PersonnelClass(class_id="EMS", name="Emergency Medical Services", demand_weight=0.8, supply=20.0),
    )


@pytest.fixture
def scenario(classes):
    zones = (
        make_zone("Z1", 6.0, (8, 4), hazard=3.0, lat=14.6568, lon=121.0996, population=12000),
        make_zone("Z2", 3.0, (6, 3), hazard=2.0, lat=14.6543, lon=121.1085, population=8000),
        make_zone("Z3", 1.0, (5, 2), hazard=1.0, lat=14.6363, lon=121.0971, population=5000),
    )
    return Scenario(zones=zones, classes=classes)


@pytest.fixture
def zone_factory():
    return make_zone
