"""
Feature evolution independent of the stage an agent is in.

The simulation runs in monthly ticks; features change once per
`evolution_period` ticks (a year by default). Rates are rough yearly
estimates for the Dutch population: macro-economic growth of income, assets
and home equity, births, children coming of age, break-ups, new partners,
job loss, new jobs and moving house.
"""
from __future__ import annotations

import math

from .eligibility import Status

P_BIRTH = 0.019
P_CHILD_ADULT = 0.055
P_PARTNER_LOSS = 0.0075
P_NEW_PARTNER = 0.02
P_JOB_LOSS = 0.025
P_NEW_JOB = 0.025
P_MOVE = 0.05
P_EMPLOYED = 0.75

INCOME_GROWTH = 1.05
ASSET_GROWTH = 1.10
EQUITY_GROWTH = 1.13


def truncated_geometric(rng, p: float, upper: int) -> int:
    """
    Number of failures before the first success, conditioned on <= upper.

    Drawn by inverting the truncated CDF with a single uniform.
    """
    q = 1.0 - p
    u = rng.random() * (1.0 - q ** (upper + 1))
    # Smallest k with 1 - q^(k+1) > u
    k = int(math.floor(math.log(1.0 - u) / math.log(q)))
    return max(0, min(upper, k))


def draw_income(rng, scale: float = 1.0) -> int:
    """Monthly income of a possibly employed person."""
    if rng.random() < P_EMPLOYED:
        return int(round(rng.gammavariate(4, 800) * scale))
    return 0


def _shift_linked(agent, model, field_name: str, delta: float) -> None:
    idx = model.linked_index(field_name)
    if idx is not None:
        agent.vector[idx] += delta


def _set_linked(agent, model, field_name: str, value: float) -> None:
    idx = model.linked_index(field_name)
    if idx is not None:
        agent.vector[idx] = value


def move_house(agent, model, rng) -> None:
    """Draw a new household; the cost-sharer flag follows the new count."""
    adults = truncated_geometric(rng, 0.32, 10)
    agent.features.other_adults_in_household = adults
    _set_linked(agent, model, "other_adults_in_household", adults)
    if model.feature_space is not None:
        flag_idx = model.feature_space.index(model.rules.cost_sharer_flag)
        if flag_idx is not None:
            agent.vector[flag_idx] = 1 if adults > 0 else 0


def update_features(agent, model) -> None:
    """Advance one agent's features for the current tick."""
    if agent.status == Status.ACCEPTED:
        agent.properties.cycles_since_investigation += 1

    tick = model.tick
    if tick <= 0 or tick % model.evolution_period != 0:
        return

    f = agent.features
    rng = model.random

    f.current_age += 1
    _shift_linked(agent, model, "current_age", 1)

    f.total_income = int(round(f.total_income * INCOME_GROWTH))
    if f.total_assets > 0:
        f.total_assets = int(round(f.total_assets * ASSET_GROWTH))
    if f.first_home_equity > 0:
        f.first_home_equity = int(round(f.first_home_equity * EQUITY_GROWTH))

    if rng.random() < P_BIRTH:
        f.children += 1
        _shift_linked(agent, model, "children", 1)
    if f.children > 0 and rng.random() < P_CHILD_ADULT:
        f.children -= 1
        _shift_linked(agent, model, "children", -1)

    # Large purchases; Beta(12, 2) is skewed toward keeping most assets
    f.total_assets -= int(round(f.total_assets * (1.0 - rng.betavariate(12, 2))))

    if f.has_partner and rng.random() < P_PARTNER_LOSS:
        f.has_partner = False
        f.total_income = f.own_income
        f.total_assets = int(round(f.total_assets * rng.uniform(0.5, 1.0)))

    if not f.has_partner and rng.random() < P_NEW_PARTNER:
        f.has_partner = True
        f.total_income = draw_income(rng, scale=0.5)
        f.total_assets = int(round(f.total_assets * rng.uniform(1.0, 2.0)))

    if f.own_income > 0 and rng.random() < P_JOB_LOSS:
        f.total_income -= f.own_income
        f.own_income = 0

    offer = int(round(rng.gammavariate(4, 800)))
    if rng.random() < P_NEW_JOB and offer > f.own_income:
        f.own_income = offer
        f.total_income += f.own_income

    if f.first_home_equity == 0 and rng.random() < P_MOVE:
        move_house(agent, model, rng)
