"""
Benchmark validation of an allocation against a population-responder ratio
of 1:500 and a hazard-based split of responders between classes.
"""

import logging
from typing import Dict, List, Optional

import numpy as np
from pydantic import BaseModel, Field, computed_field

from models import AllocationResult, Scenario
from utils.data_loader import hazard_split_ratios

logger = logging.getLogger(__name__)

PEOPLE_PER_RESPONDER = 500
METRICS = ("population_score", "population_closeness", "hazard_closeness", "combined_closeness")


class ZoneValidation(BaseModel):
    zone_id: str
    zone_name: str
    population: int
    hazard_level: str
    ideal_total: int
    ideal_per_class: Dict[str, int]
    actual_total: int
    actual_per_class: Dict[str, int]
    population_closeness: float
    class_closeness: Dict[str, float]
    hazard_closeness: float
    combined_closeness: float
    population_score: int


class OverallStats(BaseModel):
    total_zones: int
    average_population_score: float
    average_population_closeness: float
    average_hazard_closeness: float
    average_combined_closeness: float

    @computed_field
    @property
    def quality_rating(self) -> str:
        if self.average_combined_closeness >= 90:
            return "Excellent"
        if self.average_combined_closeness >= 80:
            return "Strong"
        if self.average_combined_closeness >= 70:
            return "Good"
        if self.average_combined_closeness >= 60:
            return "Moderate"
        return "Needs Improvement"


class ValidationReport(BaseModel):
    baseline: str = "1:500 population-responder ratio"
    zones: List[ZoneValidation] = Field(default_factory=list)
    overall: Optional[OverallStats] = None
    interpretation: Optional[str] = None
    error: Optional[str] = None


class MetricSummary(BaseModel):
    mean: float
    std: float
    min: float
    max: float
    cv: float


class MultiRunValidation(BaseModel):
    runs: int = 0
    metrics: Dict[str, MetricSummary] = Field(default_factory=dict)


def depth_hazard_level(depth_ft: float) -> str:
    if depth_ft > 4.92126:  # > 1.5 m
        return "High"
    if depth_ft > 1.64042:  # 0.5 m - 1.5 m
        return "Medium"
    if depth_ft >= 0.656168:  # 0.2 m - 0.5 m
        return "Low"
    return "Medium"


_LEVEL_VALUE = {"High": 3.0, "Medium": 2.0, "Low": 1.0}


def population_score(population: float, responders: int) -> int:
    if responders == 0:
        return 0
    people_per_responder = population / responders
    if people_per_responder <= 500:
        return 4
    if people_per_responder <= 1000:
        return 3
    if people_per_responder <= 2000:
        return 2
    if people_per_responder <= 3000:
        return 1
    return 0


def _round_half_up(value: float) -> int:
    return int(np.floor(value + 0.5))


def _round2(value: float) -> float:
    return _round_half_up(value * 100.0) / 100.0


def _percent(ratio: float) -> float:
    return _round2(ratio * 100.0)


def validate_allocations(scenario: Scenario, allocations: List[AllocationResult]) -> ValidationReport:
    report = ValidationReport()
    if not allocations:
        report.error = "No allocations available for validation"
        logger.warning(report.error)
        return report
    if all(z.population is None for z in scenario.zones):
        report.error = "Population data not available for validation"
        logger.warning(report.error)
        return report

    for zone, allocation in zip(scenario.zones, allocations):
        population = zone.population or 0.0
        if population <= 0:
            continue
        level = depth_hazard_level(zone.flood_depth_ft)
        ratios = hazard_split_ratios(_LEVEL_VALUE[level], scenario.num_classes)

        ideal_total = _round_half_up(population / PEOPLE_PER_RESPONDER)
        ideal_per_class = {cls.name: _round_half_up(ideal_total * ratio) for cls, ratio in zip(scenario.classes, ratios)}
        class_closeness = {
            name: _percent(allocation.personnel.get(name, 0) / ideal if ideal > 0 else 1.0)
            for name, ideal in ideal_per_class.items()
        }
        population_closeness = _percent(allocation.total / ideal_total) if ideal_total > 0 else 100.0
        hazard_closeness = _round2(float(np.mean(list(class_closeness.values())))) if class_closeness else 100.0

        report.zones.append(
            ZoneValidation(
                zone_id=zone.zone_id,
                zone_name=zone.name,
                population=int(population),
                hazard_level=level,
                ideal_total=ideal_total,
                ideal_per_class=ideal_per_class,
                actual_total=allocation.total,
                actual_per_class=dict(allocation.personnel),
                population_closeness=population_closeness,
                class_closeness=class_closeness,
                hazard_closeness=hazard_closeness,
                combined_closeness=_round2((population_closeness + hazard_closeness) / 2.0),
                population_score=population_score(population, allocation.total),
            )
        )

    if report.zones:
        n = len(report.zones)
        report.overall = OverallStats(
            total_zones=n,
            average_population_score=_round2(sum(z.population_score for z in report.zones) / n),
            average_population_closeness=_round2(sum(z.population_closeness for z in report.zones) / n),
            average_hazard_closeness=_round2(sum(z.hazard_closeness for z in report.zones) / n),
            average_combined_closeness=_round2(sum(z.combined_closeness for z in report.zones) / n),
        )
        report.interpretation = (
            f"Across {n} zones, the allocation achieved an average compliance score of "
            f"{report.overall.average_combined_closeness:.1f}% relative to the population-responder "
            f"ratio and hazard-based class distribution. This indicates "
            f"{report.overall.quality_rating.lower()} alignment with the benchmark."
        )
    return report


def summarize_validations(reports: List[ValidationReport]) -> MultiRunValidation:
    """Mean, sample standard deviation, range and coefficient of variation across runs."""
    overall = [r.overall for r in reports if r.error is None and r.overall is not None]
    summary = MultiRunValidation(runs=len(overall))
    if not overall:
        return summary

    for metric in METRICS:
        values = np.array([getattr(o, f"average_{metric}") for o in overall], dtype=float)
        mean = float(values.mean())
        std = float(values.std(ddof=1)) if values.size > 1 else 0.0
        summary.metrics[metric] = MetricSummary(
            mean=mean,
            std=std,
            min=float(values.min()),
            max=float(values.max()),
            cv=std / mean if mean != 0 else 0.0,
        )
    return summary
