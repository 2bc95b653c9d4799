"""
Eligibility rules for social assistance.

calculate_assistance() is a pure function of an agent's feature record. It
applies the hard requirements (residency, documentation, age, other
assistance, detention, home equity, assets), then computes the benefit from
the assistance standard minus income scaled by the cost-sharing standard.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple


class Status(Enum):
    ACCEPTED = "A"
    REJECTED = "R"
    UNSET = "U"


@dataclass
class Features:
    """Eligibility-relevant attributes of one agent."""
    has_local_address: bool = True
    documented_residence: bool = True
    current_age: int = 30
    own_income: int = 0
    total_income: int = 0
    total_assets: int = 0
    first_home_equity: int = 0
    eligible_other_assistance: bool = False
    imprisoned_or_detained: bool = False
    work_obligation_exemption: bool = False
    other_adults_in_household: int = 0
    children: int = 0
    has_partner: bool = False


MIN_AGE = 18
RETIREMENT_AGE = 67
HOME_EQUITY_LIMIT = 63900
ASSET_LIMIT_SHARED = 15150
ASSET_LIMIT_SINGLE_PARENT = 15150
ASSET_LIMIT_SINGLE = 7575

# (has_partner, reached retirement age) -> monthly assistance standard
ASSISTANCE_STANDARD = {
    (True, False): 1869,
    (False, False): 1308,
    (True, True): 1877,
    (False, True): 1457,
}

# Indexed by the number of cost sharers (other adults + the applicant), capped at 6.
COST_SHARING: List[float] = [1.0, 0.7, 0.5, 0.4333, 0.4, 0.38]


def cost_sharing_multiplier(other_adults_in_household: int) -> float:
    """Return the cost-sharing standard for a household."""
    cost_sharers = max(0, int(other_adults_in_household)) + 1
    index = min(cost_sharers, len(COST_SHARING))
    return COST_SHARING[index - 1]


def _passes_requirements(f: Features) -> bool:
    if not f.has_local_address:
        return False
    if not f.documented_residence:
        return False
    if f.current_age < MIN_AGE:
        return False
    if f.eligible_other_assistance:
        return False
    if f.imprisoned_or_detained:
        return False
    if f.first_home_equity >= HOME_EQUITY_LIMIT:
        return False
    if f.has_partner and f.total_assets > ASSET_LIMIT_SHARED:
        return False
    if not f.has_partner and f.children > 0 and f.total_assets > ASSET_LIMIT_SINGLE_PARENT:
        return False
    if not f.has_partner and f.children == 0 and f.total_assets > ASSET_LIMIT_SINGLE:
        return False
    return True


def calculate_assistance(features: Features) -> Tuple[Status, int]:
    """
    Return (status, monthly benefit) for the given features.

    A positive benefit is only ever paired with ACCEPTED; when the
    requirements fail or the computed amount is not positive the result is
    (REJECTED, 0).
    """
    standard = ASSISTANCE_STANDARD[(bool(features.has_partner), features.current_age >= RETIREMENT_AGE)]
    multiplier = cost_sharing_multiplier(features.other_adults_in_household)
    outcome = int(round(standard - features.total_income * multiplier))

    if not _passes_requirements(features) or outcome <= 0:
        return Status.REJECTED, 0
    return Status.ACCEPTED, outcome
