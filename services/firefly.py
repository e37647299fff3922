"""
Firefly Algorithm (Yang, 2008) over a bounded continuous search space.

Minimization convention: a candidate's brightness is its objective value and
lower is better. The best found vector is refined each generation by a
hill-climbing random walk that is only accepted when it improves.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, Optional

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationSnapshot:
    generation: int  # 1-based
    best_value: float
    best_solution: np.ndarray
    reinitialized: int = 0
    diagnostics: Dict[str, float] = field(default_factory=dict)


class FireflyAlgorithm:
    def __init__(
        self,
        function: Callable[[np.ndarray], float],
        num_fireflies: int,
        lower_bound: np.ndarray,
        upper_bound: np.ndarray,
        gamma: float,
        beta0: float,
        alpha0: float,
        alpha_final: float,
        generations: int,
        rng: Optional[np.random.Generator] = None,
    ):
        lower_bound = np.asarray(lower_bound, dtype=float)
        upper_bound = np.asarray(upper_bound, dtype=float)
        if lower_bound.shape != upper_bound.shape:
            raise ValueError(
                f"Lower bound array length ({lower_bound.size}) must equal upper bound array length ({upper_bound.size})"
            )

        self.function = function
        self.num_fireflies = num_fireflies
        self.dimensions = lower_bound.size
        self.gamma = gamma
        self.beta0 = beta0
        self.alpha0 = alpha0
        self.alpha_final = alpha_final
        self.generations = generations
        self.rng = rng if rng is not None else np.random.default_rng()

        self.lower_bound = lower_bound.copy()
        self.upper_bound = upper_bound.copy()

        self.fireflies = np.zeros((num_fireflies, self.dimensions))
        self.brightness = np.zeros(num_fireflies)
        self.best_solution = np.zeros(self.dimensions)
        self.best_value = float("inf")
        self.alpha = alpha0

        self._initialize_population()

    def _random_position(self) -> np.ndarray:
        span = self.upper_bound - self.lower_bound
        return self._clamp(self.lower_bound + self.rng.random(self.dimensions) * span)

    def _initialize_population(self) -> None:
        for i in range(self.num_fireflies):
            self.fireflies[i] = self._random_position()
            self.brightness[i] = self._evaluate_firefly(i)
            self._update_best(self.fireflies[i], self.brightness[i])
        self.alpha = self.alpha0

    def _clamp(self, x: np.ndarray) -> np.ndarray:
        return np.clip(x, self.lower_bound, self.upper_bound)

    def _noise(self) -> np.ndarray:
        return self.rng.random(self.dimensions) - 0.5

    def _noise_scale(self) -> float:
        return self.alpha

    def distance(self, a: np.ndarray, b: np.ndarray) -> float:
        return float(np.linalg.norm(a - b))

    def attractiveness(self, r: float) -> float:
        """β(r) = β0 * exp(-γ r²)."""
        return self.beta0 * np.exp(-self.gamma * r * r)

    def _move_firefly(self, i: int, j: int) -> None:
        r = self.distance(self.fireflies[i], self.fireflies[j])
        beta = self.attractiveness(r)
        xi = self.fireflies[i]
        self.fireflies[i] = self._clamp(xi + beta * (self.fireflies[j] - xi) + self._noise_scale() * self._noise())

    def _random_walk(self, i: int) -> None:
        self.fireflies[i] = self._clamp(self.fireflies[i] + self._noise_scale() * self._noise())

    def _random_walk_best(self) -> None:
        candidate = self._clamp(self.best_solution + self._noise_scale() * self._noise())
        self._update_best(candidate, self._score(candidate))

    def _score(self, x: np.ndarray) -> float:
        return self.function(x)

    def _evaluate_firefly(self, i: int) -> float:
        return self._score(self.fireflies[i])

    def _update_firefly(self, i: int) -> None:
        for j in range(self.num_fireflies):
            if self.brightness[i] > self.brightness[j]:  # move i toward brighter j
                self._move_firefly(i, j)
            else:
                self._random_walk(i)
        self.brightness[i] = self._evaluate_firefly(i)
        self._update_best(self.fireflies[i], self.brightness[i])

    def _update_best(self, candidate: np.ndarray, value: float) -> None:
        if value < self.best_value:
            self.best_value = float(value)
            self.best_solution = np.array(candidate, dtype=float, copy=True)

    def _decay_alpha(self, gen: int) -> None:
        self.alpha = self.alpha_final + (self.alpha0 - self.alpha_final) * np.exp(-0.1 * gen)

    def iterate(self) -> Iterator[GenerationSnapshot]:
        """Run generation by generation, yielding the best-so-far after each one."""
        for gen in range(self.generations):
            for i in range(self.num_fireflies):
                self._update_firefly(i)

            self._random_walk_best()
            self._decay_alpha(gen)

            yield GenerationSnapshot(
                generation=gen + 1,
                best_value=self.best_value,
                best_solution=self.best_solution.copy(),
            )

    def optimize(self) -> np.ndarray:
        for _ in self.iterate():
            pass
        logger.debug("Best value = %s", self.best_value)
        return self.best_solution
