"""
Helpers to load the agent population.

- load_population       : eligibility features per agent from CSV
- load_feature_vectors  : classifier feature vectors per agent from CSV
- synthesize_features   : draw a plausible feature record when no data is given
"""
from __future__ import annotations

import csv
from dataclasses import fields
from pathlib import Path
from typing import Dict, List, Optional
import logging

from .eligibility import Features
from .evolution import draw_income, truncated_geometric
from .recourse import FeatureRules, FeatureSpace

logger = logging.getLogger(__name__)

_TRUE = {"true", "1", "yes", "y", "t"}


def _read_csv(path: Optional[str]) -> List[Dict[str, str]]:
    if not path:
        return []
    p = Path(path)
    if not p.exists():
        logger.warning(f"CSV not found: {p}")
        return []
    with p.open("r", encoding="utf-8", errors="ignore") as f:
        reader = csv.DictReader(f)
        return [dict(row) for row in reader]


def _coerce_bool(raw: str) -> bool:
    return str(raw).strip().lower() in _TRUE


def _coerce_int(raw: str) -> int:
    try:
        return int(round(float(raw)))
    except (TypeError, ValueError):
        return 0


def features_from_row(row: Dict[str, str]) -> Features:
    """Build a Features record from a CSV row; unknown columns are ignored."""
    f = Features()
    for fld in fields(Features):
        raw = row.get(fld.name)
        if raw is None or str(raw).strip() == "":
            continue
        if isinstance(getattr(f, fld.name), bool):
            setattr(f, fld.name, _coerce_bool(raw))
        else:
            setattr(f, fld.name, _coerce_int(raw))
    return f


def load_population(path: Optional[str]) -> List[Features]:
    rows = _read_csv(path)
    population = [features_from_row(r) for r in rows]
    if population:
        logger.info(f"Loaded population: {len(population)} rows from {path}")
    return population


def load_feature_vectors(path: Optional[str], names: List[str]) -> List[List[float]]:
    """Read classifier vectors, keeping only `names` in FeatureSpace order."""
    rows = _read_csv(path)
    vectors: List[List[float]] = []
    for row in rows:
        vec = []
        for name in names:
            try:
                vec.append(float(row.get(name) or 0.0))
            except ValueError:
                vec.append(0.0)
        vectors.append(vec)
    if vectors:
        missing = [n for n in names if n not in rows[0]]
        if missing:
            logger.warning(f"Feature vectors in {path} lack columns {missing}; filled with 0.")
        logger.info(f"Loaded feature vectors: {len(vectors)} rows from {path}")
    return vectors


def default_vector(features: Features, space: FeatureSpace, rules: FeatureRules) -> List[float]:
    """
    Vector for an agent without recorded model features: linked features
    mirror the eligibility record, everything else starts at its lower bound
    (or 0 when unbounded).
    """
    vec: List[float] = []
    for i, name in enumerate(space.names):
        linked = rules.linked_fields.get(name)
        if linked is not None and hasattr(features, linked):
            vec.append(float(getattr(features, linked)))
            continue
        low, _ = space.domain[i]
        vec.append(float(low) if low > float("-inf") else 0.0)
    flag_idx = space.index(rules.cost_sharer_flag)
    count_idx = space.index(rules.cost_sharer_count)
    if flag_idx is not None and count_idx is not None:
        vec[flag_idx] = 1.0 if vec[count_idx] > 0 else 0.0
    return vec


def synthesize_features(rng) -> Features:
    """
    Draw one resident. Distributions are coarse estimates of the Dutch
    population, with incomes and assets scaled down so that a meaningful
    share of agents qualifies for assistance.
    """
    has_local_address = rng.random() < 0.995
    current_age = int(round(min(100.0, rng.gammavariate(5, 9))))
    married = rng.random() < 0.442
    work_obligation_exemption = rng.random() < 0.318
    other_adults = truncated_geometric(rng, 0.32, 10)
    children = truncated_geometric(rng, 0.4, 20)
    cohabiting = False if married else rng.random() < 0.264
    has_partner = married or cohabiting
    dutch_nationality = rng.random() < 0.86
    residence_permit = False if dutch_nationality else rng.random() < 0.995

    own_income = draw_income(rng, scale=0.25)
    partner_income = draw_income(rng, scale=0.25) if has_partner else 0
    total_assets = int(round(rng.gammavariate(4, 10500) * 0.5))
    first_home_equity = 0
    if rng.random() < 0.1:
        first_home_equity = int(round(max(100000.0, rng.gauss(366000.0, 80000.0))))

    return Features(
        has_local_address=has_local_address,
        documented_residence=dutch_nationality or residence_permit,
        current_age=current_age,
        own_income=own_income,
        total_income=own_income + partner_income,
        total_assets=total_assets,
        first_home_equity=first_home_equity,
        eligible_other_assistance=False,
        imprisoned_or_detained=rng.random() < 0.002,
        work_obligation_exemption=work_obligation_exemption,
        other_adults_in_household=other_adults,
        children=children,
        has_partner=has_partner,
    )
