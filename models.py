import math
from typing import Dict, List, Optional, Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class Zone(BaseModel):
    model_config = ConfigDict(frozen=True)

    zone_id: str
    name: str
    hazard_level: float = Field(ge=0)  # 1 low, 2 medium, 3 high
    flood_depth_ft: float
    exposure: float
    adaptive_capacity: float = Field(ge=0)  # total personnel the zone can host
    current: Tuple[float, ...]  # pre-disaster staffing, one entry per class
    lat: Optional[float] = None
    lon: Optional[float] = None
    population: Optional[float] = None

    @model_validator(mode="after")
    def _coordinates_paired(self) -> "Zone":
        has_lat = self.lat is not None
        has_lon = self.lon is not None
        if has_lat != has_lon:
            raise ValueError(f"zone {self.zone_id}: lat and lon must be given together")
        if has_lat and not (math.isfinite(self.lat) and math.isfinite(self.lon)):
            raise ValueError(f"zone {self.zone_id}: coordinates must be finite")
        return self


class PersonnelClass(BaseModel):
    model_config = ConfigDict(frozen=True)

    class_id: str
    name: str
    demand_weight: float = 1.0  # lambda
    supply: float = Field(default=0.0, ge=0)


class Scenario(BaseModel):
    """
    Immutable snapshot of zones and personnel classes.

    Array accessors return fresh numpy arrays in zone order (and class order),
    which is the layout every optimizer component works with.
    """

    model_config = ConfigDict(frozen=True)

    zones: Tuple[Zone, ...]
    classes: Tuple[PersonnelClass, ...]

    @model_validator(mode="after")
    def _staffing_matches_classes(self) -> "Scenario":
        n_classes = len(self.classes)
        for z in self.zones:
            if len(z.current) != n_classes:
                raise ValueError(
                    f"zone {z.zone_id}: expected {n_classes} current staffing values, got {len(z.current)}"
                )
        return self

    @property
    def num_zones(self) -> int:
        return len(self.zones)

    @property
    def num_classes(self) -> int:
        return len(self.classes)

    @property
    def dimensions(self) -> int:
        return self.num_zones * self.num_classes

    @property
    def r(self) -> np.ndarray:
        return np.array([z.hazard_level for z in self.zones], dtype=float)

    @property
    def f(self) -> np.ndarray:
        return np.array([z.flood_depth_ft for z in self.zones], dtype=float)

    @property
    def E(self) -> np.ndarray:
        return np.array([z.exposure for z in self.zones], dtype=float)

    @property
    def AC(self) -> np.ndarray:
        return np.array([z.adaptive_capacity for z in self.zones], dtype=float)

    @property
    def current(self) -> np.ndarray:
        """Current staffing as a (Z, C) matrix."""
        return np.array([z.current for z in self.zones], dtype=float).reshape(self.num_zones, self.num_classes)

    @property
    def lam(self) -> np.ndarray:
        return np.array([c.demand_weight for c in self.classes], dtype=float)

    @property
    def supply(self) -> np.ndarray:
        return np.array([c.supply for c in self.classes], dtype=float)

    @property
    def lat(self) -> Optional[np.ndarray]:
        if any(z.lat is None for z in self.zones):
            return None
        return np.array([z.lat for z in self.zones], dtype=float)

    @property
    def lon(self) -> Optional[np.ndarray]:
        if any(z.lon is None for z in self.zones):
            return None
        return np.array([z.lon for z in self.zones], dtype=float)


class FAParams(BaseModel):
    """
    Baseline firefly parameters. Out-of-range values fail on construction with
    a validation error naming the field and the violated bound. Request bodies
    use camelCase (numFireflies, alphaFinal, ...).
    """

    model_config = ConfigDict(validate_assignment=True, alias_generator=to_camel, populate_by_name=True)

    generations: int = Field(default=300, ge=10, le=500)
    num_fireflies: int = Field(default=50, ge=10, le=150)
    alpha0: float = Field(default=0.6, ge=0.01, le=1.0)
    alpha_final: float = Field(default=0.05, ge=0.01, le=1.0)
    beta0: float = Field(default=1.0, ge=0.1, le=10.0)
    gamma: float = Field(default=1.0, ge=0.1, le=10.0)
    seed: Optional[int] = Field(default=None, ge=0)


class EFAParams(FAParams):
    beta_min: float = Field(default=0.2, ge=0.1, le=0.5)

    @model_validator(mode="after")
    def _beta_floor_below_base(self) -> "EFAParams":
        if self.beta_min > self.beta0:
            raise ValueError("betaMin cannot be greater than beta0")
        return self


class ObjectiveSettings(BaseModel):
    eps: float = 1e-6
    supply_weight: float = 10.0
    target_total: Optional[float] = None
    budget_weight: float = 1.0
    distance_weight: float = 0.01
    use_distance_penalty: bool = True


class IterationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    generation: int
    fitness: float  # maximization view, -best_value
    best_value: float  # minimized objective, non-increasing
    reinitialized: int = 0
    diagnostics: Dict[str, float] = Field(default_factory=dict)  # EFA step, beta and walk statistics


class AllocationResult(BaseModel):
    zone_id: str
    zone_name: str
    personnel: Dict[str, int]
    total: int


class FlowResult(BaseModel):
    class_id: str
    class_name: str
    from_zone_id: str
    from_zone_name: str
    to_zone_id: str
    to_zone_name: str
    units: int


class RunStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str = "idle"  # idle, running, completed, stopped, failed
    running: bool = False
    mode: str = "single"
    current_iteration: int = 0
    total_iterations: int = 0
    progress: float = 0.0
    current_run: int = 0
    total_runs: int = 1
    completed_runs: int = 0
    failed_runs: int = 0
    total_duration_ms: Optional[float] = None
    errors: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    stopped: bool = False
    completed: bool = False


class KPIs(BaseModel):
    fitness_maximization: float
    fitness_minimization: float
    total_iterations: int
    execution_time_ms: float


class Plan(BaseModel):
    algorithm: str
    kpis: KPIs
    best_solution: List[float]
    allocations: List[AllocationResult]
    flows: List[FlowResult]
    rationales: List[str] = Field(default_factory=list)
