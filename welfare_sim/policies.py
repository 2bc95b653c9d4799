"""
Selection policies shared by the stage behaviours.

- select_transition : weighted choice of the next stage, with banned destinations
- nominate_random   : uniform-random nomination for investigation
- nominate_model    : nomination by the external risk oracle
- request_recommendation : recourse vector from the external recourse oracle

Every probabilistic decision takes the RNG explicitly and consumes a fixed
number of draws, so trajectories are reproducible for a given seed and agent
order.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional
import logging

from .oracles import OracleFailure

logger = logging.getLogger(__name__)

DEFAULT_P_RANDOM_NOMINATION = 0.175


class NoViableTransition(RuntimeError):
    """The banned destinations leave a stage with nowhere to go."""


def select_transition(edges: Dict[int, float], excluded: Iterable[int] = (), rng=None) -> int:
    """
    Draw the next node from `edges` (node -> weight) after removing `excluded`.

    Remaining weights are renormalised; exactly one value is drawn from `rng`.
    Banning as many destinations as there are edges is treated as a topology
    error rather than something to recover from.
    """
    banned = set(excluded)
    if not edges or len(banned) >= len(edges):
        raise NoViableTransition(
            f"cannot choose among {sorted(edges)} with {sorted(banned)} excluded"
        )
    choices = [(node, w) for node, w in edges.items() if node not in banned]
    if not choices:
        raise NoViableTransition(f"all destinations {sorted(edges)} are excluded")

    total = float(sum(w for _, w in choices))
    r = rng.random()
    acc = 0.0
    for node, w in choices:
        acc += w / total
        if r < acc:
            return node
    # Floating-point slack on the last bucket
    return choices[-1][0]


def nominate_random(p: float, rng) -> bool:
    """One uniform draw compared against p."""
    return rng.random() < p


def nominate_model(agent, model) -> bool:
    """
    Ask the nomination oracle whether the agent is high risk.

    Returns False without consulting anything when no oracle is configured.
    Oracle errors count as no nomination for this tick.
    """
    oracle = model.nomination_oracle
    if oracle is None:
        return False
    try:
        return bool(oracle.predict(list(agent.vector)))
    except Exception as exc:
        model.record_oracle_failure(agent, "nomination", exc)
        return False


def request_recommendation(agent, model) -> Optional[List[float]]:
    """
    Ask the recourse oracle for a signed delta vector toward `model.target`.

    Returns None when the oracle fails or answers with the wrong shape.
    """
    oracle = model.recourse_oracle
    if oracle is None:
        return None
    try:
        rec = [float(v) for v in oracle.recommend(list(agent.vector), model.target)]
        if len(rec) != len(agent.vector):
            raise OracleFailure(
                f"recommendation has {len(rec)} entries for {len(agent.vector)} features"
            )
        return rec
    except Exception as exc:
        model.record_oracle_failure(agent, "recourse", exc)
        return None
