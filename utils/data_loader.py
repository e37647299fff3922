import logging
import math
from pathlib import Path
from typing import List, Optional, Union

import numpy as np
import pandas as pd

from models import PersonnelClass, Scenario, Zone
from services.exceptions import ScenarioError

logger = logging.getLogger(__name__)

ZONE_COLUMNS = [
    "id",
    "name",
    "hazard_level_text",
    "flood_depth_ft",
    "population",
    "exposure",
    "total_personnel",
]
CLASS_COLUMNS = ["class_id", "class_name", "lambda", "supply"]


def hazard_text_to_level(text: Optional[str]) -> float:
    s = "" if text is None or (isinstance(text, float) and math.isnan(text)) else str(text).strip().lower()
    if s.startswith("low"):
        return 1.0
    if s.startswith("med"):
        return 2.0
    if s.startswith("high"):
        return 3.0
    return 1.0


def hazard_split_ratios(level: float, num_classes: int) -> List[float]:
    """
    Share of a zone's personnel per class. With two classes (search-and-rescue
    first, medical second) the split follows the hazard level:
    high 85/15, medium 75/25, low 65/35. Any other class count splits evenly.
    """
    if num_classes != 2:
        return [1.0 / num_classes] * num_classes if num_classes else []
    if level >= 2.5:
        return [0.85, 0.15]
    if level >= 1.5:
        return [0.75, 0.25]
    return [0.65, 0.35]


def _read_csv(path: Union[str, Path], required: List[str]) -> pd.DataFrame:
    try:
        df = pd.read_csv(path, skipinitialspace=True)
    except (OSError, pd.errors.EmptyDataError) as e:
        raise ScenarioError(f"Cannot read {path}: {e}") from e
    df.columns = [str(c).strip().lower() for c in df.columns]
    df = df.dropna(how="all")
    if df.empty:
        raise ScenarioError(f"Empty CSV file: {path}")
    for col in required:
        if col not in df.columns:
            raise ScenarioError(f"Missing column: {col} in {path}")
    return df


def _numeric(df: pd.DataFrame, col: str) -> pd.Series:
    if col not in df.columns:
        return pd.Series(np.nan, index=df.index)
    return pd.to_numeric(df[col], errors="coerce")


def load_classes(path: Union[str, Path]) -> List[PersonnelClass]:
    df = _read_csv(path, CLASS_COLUMNS)
    lam = _numeric(df, "lambda").fillna(1.0)
    supply = _numeric(df, "supply").fillna(0.0)
    return [
        PersonnelClass(
            class_id=str(row["class_id"]).strip(),
            name=str(row["class_name"]).strip(),
            demand_weight=float(lam[idx]),
            supply=float(supply[idx]),
        )
        for idx, row in df.iterrows()
    ]


def load_zones(path: Union[str, Path], classes: List[PersonnelClass]) -> List[Zone]:
    df = _read_csv(path, ZONE_COLUMNS)
    n_classes = len(classes)

    r = df["hazard_level_text"].map(hazard_text_to_level).astype(float)
    depth = _numeric(df, "flood_depth_ft").fillna(0.0)
    population = _numeric(df, "population")
    exposure = _numeric(df, "exposure")
    total_personnel = _numeric(df, "total_personnel")

    # Exposure: given value, else population relative to the mean, else 1.0
    pop_mean = population.mean() if population.notna().any() else 1.0
    E = exposure.where(exposure > 0)
    if pop_mean > 0:
        E = E.fillna(population / pop_mean)
    E = E.fillna(1.0)

    # Adaptive capacity: given total, else population share of the provided totals
    provided_total = total_personnel.sum(skipna=True)
    fallback_total = provided_total if provided_total > 0 else 1.0
    pop_sum = population.sum(skipna=True)
    AC = total_personnel.copy()
    if pop_sum > 0:
        AC = AC.fillna(population / pop_sum * fallback_total)
    AC = AC.fillna(0.0)

    current_cols = [f"{c.class_id.lower()}_current" for c in classes]
    current_frame = pd.DataFrame({col: _numeric(df, col) for col in current_cols}, index=df.index)

    lat = _numeric(df, "lat") if "lat" in df.columns else _numeric(df, "latitude")
    lon = _numeric(df, "lon") if "lon" in df.columns else _numeric(df, "longitude")

    zones = []
    for idx, row in df.iterrows():
        given = current_frame.loc[idx]
        if n_classes and given.notna().all():
            current = [float(v) for v in given]
        elif AC[idx] > 0:
            current = [ratio * float(AC[idx]) for ratio in hazard_split_ratios(r[idx], n_classes)]
        else:
            current = [0.0] * n_classes

        zlat, zlon = lat[idx], lon[idx]
        has_coords = bool(np.isfinite(zlat) and np.isfinite(zlon))
        pop = population[idx]
        zones.append(
            Zone(
                zone_id=str(row["id"]).strip(),
                name=str(row["name"]).strip(),
                hazard_level=float(r[idx]),
                flood_depth_ft=float(depth[idx]),
                exposure=float(E[idx]),
                adaptive_capacity=max(0.0, float(AC[idx])),
                current=tuple(current),
                lat=float(zlat) if has_coords else None,
                lon=float(zlon) if has_coords else None,
                population=float(pop) if pd.notna(pop) else None,
            )
        )
    return zones


def load_scenario(zones_path: Union[str, Path], classes_path: Union[str, Path]) -> Scenario:
    classes = load_classes(classes_path)
    zones = load_zones(zones_path, classes)
    logger.info("Loaded scenario: %d zones, %d personnel classes", len(zones), len(classes))
    return Scenario(zones=tuple(zones), classes=tuple(classes))
