import pytest

from services.exceptions import ScenarioError
from utils.data_loader import hazard_split_ratios, hazard_text_to_level, load_scenario

CLASSES_CSV = """class_id,class_name,lambda,supply
SAR,Search and Rescue,1.0,50
EMS,Emergency Medical Services,,20
"""


def write(tmp_path, zones_csv, classes_csv=CLASSES_CSV):
    zones = tmp_path / "zones.csv"
    classes = tmp_path / "classes.csv"
    zones.write_text(zones_csv, encoding="utf-8")
    classes.write_text(classes_csv, encoding="utf-8")
    return zones, classes


@pytest.mark.parametrize(
    "text, level",
    [("High", 3.0), ("medium", 2.0), ("Med-High", 2.0), ("low ", 1.0), ("unknown", 1.0), (None, 1.0)],
)
def test_hazard_text_to_level(text, level):
    assert hazard_text_to_level(text) == level


def test_hazard_split_ratios():
    assert hazard_split_ratios(3.0, 2) == [0.85, 0.15]
    assert hazard_split_ratios(2.0, 2) == [0.75, 0.25]
    assert hazard_split_ratios(1.0, 2) == [0.65, 0.35]
    assert hazard_split_ratios(3.0, 4) == [0.25] * 4


def test_per_class_current_columns_are_used(tmp_path):
    zones, classes = write(
        tmp_path,
        "id,name,hazard_level_text,flood_depth_ft,population,exposure,total_personnel,sar_current,ems_current,lat,lon\n"
        "Z1,North,High,6.0,1000,1.5,10,7,3,14.65,121.10\n"
        "Z2,South,Low,0.5,3000,0.5,20,12,8,14.63,121.08\n",
    )
    scenario = load_scenario(zones, classes)

    assert scenario.num_zones == 2
    assert scenario.num_classes == 2
    assert scenario.zones[0].current == (7.0, 3.0)
    assert scenario.zones[0].hazard_level == 3.0
    assert scenario.zones[1].exposure == 0.5
    assert scenario.lat is not None
    assert scenario.classes[1].demand_weight == 1.0
    assert scenario.supply.tolist() == [50.0, 20.0]


def test_fallbacks_for_missing_values(tmp_path):
    zones, classes = write(
        tmp_path,
        "id,name,hazard_level_text,flood_depth_ft,population,exposure,total_personnel\n"
        "Z1,North,High,6.0,1000,,10\n"
        "Z2,South,Low,0.5,3000,,\n",
    )
    scenario = load_scenario(zones, classes)
    north, south = scenario.zones

    # exposure from population relative to the mean population
    assert north.exposure == pytest.approx(0.5)
    assert south.exposure == pytest.approx(1.5)
    # capacity from the population share of the provided totals
    assert north.adaptive_capacity == 10.0
    assert south.adaptive_capacity == pytest.approx(7.5)
    # current staffing split by hazard level
    assert north.current == pytest.approx((8.5, 1.5))
    assert south.current == pytest.approx((7.5 * 0.65, 7.5 * 0.35))
    assert scenario.lat is None


def test_latitude_longitude_aliases(tmp_path):
    zones, classes = write(
        tmp_path,
        "id,name,hazard_level_text,flood_depth_ft,population,exposure,total_personnel,latitude,longitude\n"
        "Z1,North,High,6.0,1000,1,10,14.65,121.10\n"
        "Z2,South,Low,0.5,3000,1,20,,121.08\n",
    )
    scenario = load_scenario(zones, classes)
    assert scenario.zones[0].lat == 14.65
    assert scenario.zones[1].lat is None and scenario.zones[1].lon is None
    assert scenario.lat is None


def test_missing_column_raises(tmp_path):
    zones, classes = write(
        tmp_path,
        "id,name,flood_depth_ft,population,exposure,total_personnel\nZ1,North,6.0,1000,1,10\n",
    )
    with pytest.raises(ScenarioError, match="hazard_level_text"):
        load_scenario(zones, classes)


def test_empty_file_raises(tmp_path):
    zones, classes = write(tmp_path, "")
    with pytest.raises(ScenarioError):
        load_scenario(zones, classes)


def test_missing_file_raises(tmp_path):
    with pytest.raises(ScenarioError):
        load_scenario(tmp_path / "zones.csv", tmp_path / "classes.csv")
