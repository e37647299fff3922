"""
Extended Firefly Algorithm (EFA).

Additions over the baseline:
- Objective filtering: candidates failing the feasibility check get +inf
  wherever they are scored, so the global best is always feasible.
- Diversity control: near-duplicate candidates (Hamming distance of their
  quantized positions) are reinitialized.
- Self-adaptation: inertia weight w_t and step factor c_t scale the noise.
- Scale-invariant attraction: normalized RMS distance and a floor on β.
"""

import logging
from typing import Callable, Iterator, Optional

import numpy as np

from services.firefly import FireflyAlgorithm, GenerationSnapshot
from services.objective import NON_FINITE_SENTINEL

logger = logging.getLogger(__name__)

BASELINE_DIMENSION = 50.0  # D0 in the dimension-compensated theta


class ExtendedFireflyAlgorithm(FireflyAlgorithm):
    def __init__(
        self,
        function: Callable[[np.ndarray], float],
        feasible: Callable[[np.ndarray], bool],
        num_fireflies: int,
        lower_bound: np.ndarray,
        upper_bound: np.ndarray,
        gamma: float,
        beta0: float,
        beta_min: float,
        alpha0: float,
        alpha_final: float,
        generations: int,
        rng: Optional[np.random.Generator] = None,
        bits_per_dimension: int = 8,
        diversity_constant: float = 5.0,
    ):
        self.feasible = feasible
        self.beta_min = beta_min

        self.inertia_w1 = 0.9  # exploration end
        self.inertia_w2 = 0.4  # exploitation end
        self.inertia_b = 1.0
        self.theta = 0.9

        self.current_inertia = 1.0
        self.current_step_factor = 0.0

        self.bits_per_dimension = bits_per_dimension
        self.diversity_constant = diversity_constant

        self._reset_diagnostics()
        super().__init__(
            function,
            num_fireflies,
            lower_bound,
            upper_bound,
            gamma,
            beta0,
            alpha0,
            alpha_final,
            generations,
            rng=rng,
        )
        self.string_length = self.dimensions * bits_per_dimension
        self._range = np.maximum(1e-12, self.upper_bound - self.lower_bound)
        if not np.isfinite(self.best_value):
            # no feasible start yet; any feasible vector found later replaces this
            self.best_value = NON_FINITE_SENTINEL

    def tune_gamma_by_influence_radius(self, r0: float, tau: float) -> float:
        """
        Pick γ so that β(r0) = τ·β0 on the normalized distance scale:
        γ = -ln(τ) / r0². For r0=1, τ=0.6 this gives γ ≈ 0.5108.
        """
        rr = max(1e-9, r0)
        tt = min(0.999999, max(1e-9, tau))
        self.gamma = -np.log(tt) / (rr * rr)
        return self.gamma

    @staticmethod
    def compute_self_adaptive_inertia_weight(t: int, T: int, w1: float, w2: float, b: float) -> float:
        """w_t moves from w1 toward w2 along log(t)/log(T), clamped between them."""
        if np.isnan(w1) or np.isnan(w2) or np.isnan(b):
            return float("nan")
        t_max = max(1, T)
        tt = min(max(1, t), t_max)

        log_den = np.log(t_max)
        if log_den > 0.0:
            progress = np.log(tt) / log_den
        else:
            progress = 1.0 if t_max == 1 else (tt - 1) / (t_max - 1)

        wt = w1 - b * (w1 - w2) * progress
        return float(min(max(wt, min(w1, w2)), max(w1, w2)))

    def compute_dynamic_step_factor(self, t: int, T: int, theta: float, D: int) -> float:
        """c_t = θ_eff^D · T · exp(-t/T), floored at 0.1% of the mean bound range."""
        if np.isnan(theta):
            return float("nan")
        t_max = max(1, T)
        tt = min(max(1, t), t_max)
        dim = max(0, D)

        th_raw = max(0.0, min(1.0, theta))
        th = th_raw ** (BASELINE_DIMENSION / max(1.0, float(dim)))
        decay = np.exp(-tt / t_max)
        c = (th ** dim) * t_max * decay

        avg_range = float(np.mean(np.maximum(0.0, self.upper_bound - self.lower_bound))) if self.dimensions else 0.0
        if avg_range > 0.0:
            c = max(c, 0.001 * avg_range * decay)

        if not np.isfinite(c) or c < 0:
            c = 0.0
        return float(c)

    def _noise_scale(self) -> float:
        return self.current_inertia * self.current_step_factor + 0.25 * self.alpha

    def distance(self, a: np.ndarray, b: np.ndarray) -> float:
        """Normalized RMS distance: each axis divided by its bound range."""
        diff = (a - b) / self._range
        return float(np.sqrt(np.sum(diff * diff) / max(1, self.dimensions)))

    def attractiveness(self, r: float) -> float:
        return max(self.beta0 * np.exp(-self.gamma * r * r), self.beta_min)

    def _move_firefly(self, i: int, j: int) -> None:
        r = self.distance(self.fireflies[i], self.fireflies[j])
        raw = self.beta0 * np.exp(-self.gamma * r * r)
        if raw < self.beta_min:
            self._beta_floored += 1
        beta = self.attractiveness(r)

        old = self.fireflies[i].copy()
        self.fireflies[i] = self._clamp(old + beta * (self.fireflies[j] - old) + self._noise_scale() * self._noise())
        self._record_step(old, self.fireflies[i])
        self._beta_sum += beta
        self._beta_count += 1
        self._moves_toward += 1

    def _random_walk(self, i: int) -> None:
        old = self.fireflies[i].copy()
        super()._random_walk(i)
        self._record_step(old, self.fireflies[i])
        self._random_walks += 1

    def _score(self, x: np.ndarray) -> float:
        if not self.feasible(x):
            return float("inf")
        return self.function(x)

    def _encode(self, positions: np.ndarray) -> np.ndarray:
        """Quantize each dimension to bits_per_dimension bits over its normalized range."""
        max_value = (1 << self.bits_per_dimension) - 1
        normalized = (positions - self.lower_bound) / self._range
        ints = np.floor(normalized * max_value + 0.5).astype(np.int64)
        shifts = np.arange(self.bits_per_dimension)
        bits = (ints[..., None] >> shifts) & 1
        return bits.reshape(*positions.shape[:-1], self.string_length)

    def hamming_distance(self, a: np.ndarray, b: np.ndarray) -> int:
        return int(np.count_nonzero(self._encode(a) != self._encode(b)))

    def _reinitialize_firefly(self, index: int) -> None:
        self.fireflies[index] = self._random_position()
        self.brightness[index] = self._evaluate_firefly(index)
        self._update_best(self.fireflies[index], self.brightness[index])

    def apply_diversity_control(self, generation: int) -> int:
        """Reinitialize one member of every too-similar pair; returns how many were reset."""
        c = (self.diversity_constant * 0.05) * np.exp(-0.001 * generation)
        threshold = c * self.string_length
        reinitialized = np.zeros(self.num_fireflies, dtype=bool)
        bits = self._encode(self.fireflies)
        count = 0

        for i in range(self.num_fireflies):
            if reinitialized[i]:
                continue
            for j in range(i + 1, self.num_fireflies):
                if reinitialized[j]:
                    continue
                if np.count_nonzero(bits[i] != bits[j]) < threshold:
                    target = j if self.rng.random() < 0.5 else i
                    if not reinitialized[target]:
                        self._reinitialize_firefly(target)
                        bits[target] = self._encode(self.fireflies[target])
                        reinitialized[target] = True
                        count += 1
        if count:
            logger.debug("Generation %d: reinitialized %d fireflies (threshold %.1f bits)", generation, count, threshold)
        return count

    def _reset_diagnostics(self) -> None:
        self._step_sum = 0.0
        self._step_count = 0
        self._beta_sum = 0.0
        self._beta_count = 0
        self._beta_floored = 0
        self._moves_toward = 0
        self._random_walks = 0

    def _record_step(self, old: np.ndarray, new: np.ndarray) -> None:
        diff = new - old
        self._step_sum += float(np.sqrt(np.sum(diff * diff) / max(1, self.dimensions)))
        self._step_count += 1

    def _diagnostics(self) -> dict:
        return {
            "inertia": self.current_inertia,
            "step_factor": self.current_step_factor,
            "avg_step": self._step_sum / self._step_count if self._step_count else 0.0,
            "avg_beta": self._beta_sum / self._beta_count if self._beta_count else 0.0,
            "floored_beta_rate": self._beta_floored / self._beta_count if self._beta_count else 0.0,
            "moves_toward": self._moves_toward,
            "random_walks": self._random_walks,
        }

    def iterate(self) -> Iterator[GenerationSnapshot]:
        for gen in range(self.generations):
            t = gen + 1
            self.current_inertia = self.compute_self_adaptive_inertia_weight(
                t, self.generations, self.inertia_w1, self.inertia_w2, self.inertia_b
            )
            self.current_step_factor = self.compute_dynamic_step_factor(t, self.generations, self.theta, self.dimensions)
            self._reset_diagnostics()

            for i in range(self.num_fireflies):
                self._update_firefly(i)

            reinitialized = self.apply_diversity_control(gen)
            self._random_walk_best()
            self._decay_alpha(gen)

            yield GenerationSnapshot(
                generation=t,
                best_value=self.best_value,
                best_solution=self.best_solution.copy(),
                reinitialized=reinitialized,
                diagnostics=self._diagnostics(),
            )
