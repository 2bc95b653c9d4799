"""
Feature space of the investigation model and the dynamics of implementing
algorithmic recourse.

Agents carry two views of themselves: the eligibility record (Features) and
a numeric vector indexed by FeatureSpace, which is what the nomination and
recourse oracles see. A recommendation is a signed delta over that vector
that the agent works through a little at a time.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import logging
import math

import yaml

logger = logging.getLogger(__name__)

MUTABILITY = {"both", "increase", "decrease", "none"}
KINDS = {"continuous", "categorical"}


def _parse_bound(v: Any) -> float:
    """Domain bounds may be written as Inf/-Inf strings."""
    if isinstance(v, str):
        return float(v.strip())
    if v is None:
        return math.inf
    return float(v)


@dataclass
class FeatureSpace:
    """Ordered classifier features after exclusions."""
    names: List[str] = field(default_factory=list)
    categorical: List[List[int]] = field(default_factory=list)
    continuous: List[int] = field(default_factory=list)
    domain: List[Tuple[float, float]] = field(default_factory=list)
    mutability: List[str] = field(default_factory=list)
    difficulty: List[float] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.names)

    def index(self, name: Optional[str]) -> Optional[int]:
        if name is None:
            return None
        try:
            return self.names.index(name)
        except ValueError:
            return None


def build_feature_space(entries: List[Dict[str, Any]]) -> FeatureSpace:
    """
    Build a FeatureSpace from per-feature records.

    Excluded features are dropped from every derived list and the remaining
    features keep their original relative order. Categorical features that
    share a `group` form one one-hot block.
    """
    space = FeatureSpace()
    groups: Dict[str, List[int]] = {}
    group_order: List[str] = []
    for pos, entry in enumerate(entries):
        name = str(entry.get("name") or f"feature_{pos}")
        kind = str(entry.get("kind", "continuous")).lower()
        if kind not in KINDS:
            raise ValueError(f"feature {name!r}: unknown kind {kind!r}")
        mut = str(entry.get("mutability", "both")).lower()
        if mut not in MUTABILITY:
            raise ValueError(f"feature {name!r}: unknown mutability {mut!r}")
        difficulty = float(entry.get("difficulty", 0.0))
        if not 0.0 <= difficulty <= 1.0:
            raise ValueError(f"feature {name!r}: difficulty {difficulty} outside [0, 1]")
        if bool(entry.get("exclude", False)):
            continue

        idx = len(space.names)
        space.names.append(name)
        low, high = entry.get("domain", ["-Inf", "Inf"])
        space.domain.append((_parse_bound(low), _parse_bound(high)))
        space.mutability.append(mut)
        space.difficulty.append(difficulty)
        if kind == "continuous":
            space.continuous.append(idx)
        else:
            group = str(entry.get("group") or name)
            if group not in groups:
                groups[group] = []
                group_order.append(group)
            groups[group].append(idx)
    space.categorical = [groups[g] for g in group_order]
    return space


def load_feature_space(path: Optional[str]) -> Optional[FeatureSpace]:
    """Load a feature-constraint YAML (or JSON) file; None when no path is given."""
    if not path:
        return None
    p = Path(path)
    if not p.exists():
        logger.warning(f"Feature config not found: {p}")
        return None
    with p.open("r", encoding="utf-8") as f:
        doc = yaml.safe_load(f) or {}
    entries = doc.get("features", []) if isinstance(doc, dict) else doc
    space = build_feature_space(list(entries or []))
    logger.info(f"Loaded feature space: {len(space)} features from {p}")
    return space


@dataclass
class FeatureRules:
    """
    Cross-feature rules applied while agents implement recommendations.

    step_sizes        : per-feature change per tick (default 1)
    cost_sharer_count : feature holding the number of cost sharers
    cost_sharer_flag  : boolean feature derived from the count; never edited directly
    linked_fields     : vector feature -> eligibility attribute kept in sync
    """
    step_sizes: Dict[str, float] = field(default_factory=dict)
    cost_sharer_count: Optional[str] = None
    cost_sharer_flag: Optional[str] = None
    linked_fields: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_config(cls, cfg: Optional[Dict[str, Any]]) -> "FeatureRules":
        cfg = cfg or {}
        return cls(
            step_sizes={str(k): float(v) for k, v in (cfg.get("step_sizes") or {}).items()},
            cost_sharer_count=cfg.get("cost_sharer_count_feature"),
            cost_sharer_flag=cfg.get("cost_sharer_flag_feature"),
            linked_fields={str(k): str(v) for k, v in (cfg.get("linked_fields") or {}).items()},
        )

    def step_for(self, name: str) -> float:
        return self.step_sizes.get(name, 1.0)


def has_pending(recommendation: Optional[List[float]]) -> bool:
    return recommendation is not None and any(v != 0 for v in recommendation)


def attempt_recourse(agent, space: FeatureSpace, rules: FeatureRules, rng) -> int:
    """
    Work one tick on the agent's pending recommendation.

    Entries are visited in order; each one still nonzero when reached is
    attempted unless the agent fails to act on it (probability =
    difficulty) or it is the derived cost-sharer flag. An
    attempted entry moves one step toward zero without changing sign and the
    feature moves by the same signed step; decreasing features never go below
    zero. Returns how many of the entries that were nonzero before the pass
    are still nonzero.
    """
    rec = agent.properties.recommendation
    vector = agent.vector
    pending = [i for i, v in enumerate(rec) if v != 0]
    count_idx = space.index(rules.cost_sharer_count)
    flag_idx = space.index(rules.cost_sharer_flag)
    updated = 0

    for i in range(len(rec)):
        # Zero check happens on arrival; the count feature can set or clear
        # the flag slot earlier in this pass. No draw for zero entries.
        if rec[i] == 0 or rng.random() < space.difficulty[i]:
            continue
        if i == flag_idx:
            continue

        name = space.names[i]
        step = rules.step_for(name)
        if rec[i] > 0:
            rec[i] = max(rec[i] - step, 0)
            vector[i] = vector[i] + step
        else:
            rec[i] = min(rec[i] + step, 0)
            vector[i] = max(vector[i] - step, 0)

        linked = rules.linked_fields.get(name)
        if linked is not None and hasattr(agent.features, linked):
            setattr(agent.features, linked, int(round(vector[i])))

        if i == count_idx and flag_idx is not None:
            has_sharer = vector[i] > 0
            vector[flag_idx] = 1 if has_sharer else 0
            rec[flag_idx] = 1 if has_sharer else 0

        updated += 1

    remaining = sum(1 for i in pending if rec[i] != 0)
    if remaining > 0:
        logger.debug(f"Agent {agent.unique_id} updated {updated} features ({remaining} remaining).")
    else:
        logger.debug(f"Agent {agent.unique_id} fully implemented the recommendation.")
    return remaining
