"""
External oracles consulted by the simulation.

The core only relies on the two Protocols below. LinearRiskOracle is a small
stand-in that implements both, so a run can exercise model-driven
nominations and recourse without a trained classifier.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, Sequence
import logging
import math

from .recourse import FeatureSpace

logger = logging.getLogger(__name__)


class OracleFailure(RuntimeError):
    """An external classifier or recommender failed for one agent."""


class NominationOracle(Protocol):
    def predict(self, vector: Sequence[float]) -> bool:
        """True when the agent is scored as high risk."""
        ...


class RecourseOracle(Protocol):
    def recommend(self, vector: Sequence[float], target: int) -> List[float]:
        """Signed per-feature deltas; positive means increase the feature."""
        ...


def _round_from_zero(x: float) -> float:
    return float(math.ceil(x)) if x > 0 else float(math.floor(x))


class LinearRiskOracle:
    """
    Linear risk score with a fixed decision threshold.

    score = bias + sum(w_i * x_i); label 1 (high risk) when score > threshold.
    Recommendations move the score across the threshold by changing the most
    influential mutable feature first, within its domain, rounding each
    change away from zero.
    """
    def __init__(self, space: FeatureSpace, weights: Dict[str, float], bias: float = 0.0,
                 threshold: float = 0.0, margin: float = 1e-6, max_attempts: int = 10):
        self.space = space
        self.weights: List[float] = [float(weights.get(name, 0.0)) for name in space.names]
        self.bias = float(bias)
        self.threshold = float(threshold)
        self.margin = float(margin)
        self.max_attempts = int(max_attempts)

    @classmethod
    def from_config(cls, space: FeatureSpace, cfg: Dict[str, Any]) -> "LinearRiskOracle":
        return cls(
            space,
            weights=cfg.get("weights", {}) or {},
            bias=float(cfg.get("bias", 0.0)),
            threshold=float(cfg.get("threshold", 0.0)),
            max_attempts=int(cfg.get("max_attempts", 10)),
        )

    def _check(self, vector: Sequence[float]) -> None:
        if len(vector) != len(self.weights):
            raise OracleFailure(f"expected {len(self.weights)} features, got {len(vector)}")

    def score(self, vector: Sequence[float]) -> float:
        self._check(vector)
        return self.bias + sum(w * float(x) for w, x in zip(self.weights, vector))

    def predict(self, vector: Sequence[float]) -> bool:
        return self.score(vector) > self.threshold

    def _movable(self, i: int, direction: float) -> bool:
        mut = self.space.mutability[i]
        if mut == "none" or self.weights[i] == 0.0:
            return False
        if mut == "increase" and direction < 0:
            return False
        if mut == "decrease" and direction > 0:
            return False
        return True

    def recommend(self, vector: Sequence[float], target: int) -> List[float]:
        self._check(vector)
        want_high = bool(target)
        result = [float(x) for x in vector]
        for _ in range(self.max_attempts):
            if self.predict(result) == want_high:
                return [r - float(x) for r, x in zip(result, vector)]
            order = sorted(range(len(result)), key=lambda i: -abs(self.weights[i]))
            for i in order:
                if self.predict(result) == want_high:
                    break
                w = self.weights[i]
                if w == 0.0:
                    continue
                # Score change needed to land just across the threshold
                goal = self.threshold + self.margin if want_high else self.threshold - self.margin
                direction = (goal - self.score(result)) / w
                if not self._movable(i, direction):
                    continue
                low, high = self.space.domain[i]
                target_value = min(high, max(low, result[i] + direction))
                delta = _round_from_zero(target_value - result[i])
                if result[i] + delta > high or result[i] + delta < low:
                    delta = target_value - result[i]
                if delta == 0:
                    continue
                result[i] += delta
        if self.predict(result) == want_high:
            return [r - float(x) for r, x in zip(result, vector)]
        raise OracleFailure("no counterfactual found within the attempt budget")


def build_oracle(space: Optional[FeatureSpace], cfg: Optional[Dict[str, Any]]) -> Optional[LinearRiskOracle]:
    """Construct the configured oracle, or None when oracles are disabled."""
    cfg = cfg or {}
    if space is None or not cfg or not cfg.get("enabled", True):
        return None
    kind = str(cfg.get("kind", "linear")).lower()
    if kind != "linear":
        raise ValueError(f"unknown oracle kind {kind!r}")
    oracle = LinearRiskOracle.from_config(space, cfg)
    logger.info(f"Using linear risk oracle over {len(space)} features (threshold={oracle.threshold}).")
    return oracle
