from __future__ import annotations

import pytest

from welfare_sim.eligibility import Features, Status, calculate_assistance, cost_sharing_multiplier

from .conftest import eligible_features


def test_minor_is_rejected_regardless_of_other_fields():
    assert calculate_assistance(eligible_features(current_age=17)) == (Status.REJECTED, 0)
    assert calculate_assistance(eligible_features(current_age=17, has_partner=True, children=3)) == (Status.REJECTED, 0)


def test_single_adult_over_asset_limit_is_rejected():
    assert calculate_assistance(eligible_features(total_assets=8000)) == (Status.REJECTED, 0)


def test_single_parent_has_higher_asset_limit():
    status, outcome = calculate_assistance(eligible_features(total_assets=8000, children=1))
    assert status == Status.ACCEPTED
    assert outcome == 1308


@pytest.mark.parametrize("overrides", [
    {"has_local_address": False},
    {"documented_residence": False},
    {"eligible_other_assistance": True},
    {"imprisoned_or_detained": True},
    {"first_home_equity": 63900},
    {"has_partner": True, "total_assets": 15151},
])
def test_hard_requirements(overrides):
    assert calculate_assistance(eligible_features(**overrides)) == (Status.REJECTED, 0)


@pytest.mark.parametrize("partner, age, standard", [
    (False, 30, 1308),
    (True, 30, 1869),
    (False, 67, 1457),
    (True, 70, 1877),
])
def test_assistance_standard(partner, age, standard):
    assert calculate_assistance(eligible_features(has_partner=partner, current_age=age)) == (Status.ACCEPTED, standard)


@pytest.mark.parametrize("other_adults, multiplier", [(0, 1.0), (1, 0.7), (2, 0.5), (5, 0.38), (10, 0.38)])
def test_cost_sharing_table(other_adults, multiplier):
    assert cost_sharing_multiplier(other_adults) == multiplier


def test_income_is_scaled_by_cost_sharing():
    status, outcome = calculate_assistance(eligible_features(total_income=1000, other_adults_in_household=1))
    assert status == Status.ACCEPTED
    assert outcome == 1308 - 700


def test_zero_benefit_is_rejected():
    assert calculate_assistance(eligible_features(total_income=1308)) == (Status.REJECTED, 0)
    assert calculate_assistance(eligible_features(total_income=5000)) == (Status.REJECTED, 0)


def test_calculation_is_pure():
    f = Features(current_age=40, total_income=300, children=2)
    assert calculate_assistance(f) == calculate_assistance(f)
    assert f == Features(current_age=40, total_income=300, children=2)
