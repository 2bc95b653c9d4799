from __future__ import annotations

import pytest

from welfare_sim.eligibility import Features
from welfare_sim.graph import StageGraph, parse_topology
from welfare_sim.model import WelfareModel
from welfare_sim.recourse import FeatureRules, build_feature_space

FULL_TOPOLOGY = """\
8
1 1 0.95
1 2 0.05
2 3 1.0
3 4 1.0
4 5 1.0
4 1 0.7
4 8 0.3
5 5 0.98
5 6 0.01
5 1 0.01
6 7 1.0
7 5 0.5
7 8 0.3
7 1 0.2
8 5 0.5
8 1 0.5
1 Idle
2 Application
3 Decision
4 PostDecision
5 ReceivingBenefits
6 Investigation
7 PostInvestigation
8 Recourse
"""


class ScriptedRng:
    """Returns pre-set uniforms in order and records how many were drawn."""
    def __init__(self, values):
        self.values = list(values)
        self.draws = 0

    def random(self) -> float:
        if not self.values:
            raise AssertionError("ScriptedRng ran out of values")
        self.draws += 1
        return self.values.pop(0)


class FixedOracle:
    """Nomination and recourse oracle with canned answers."""
    def __init__(self, high_risk=False, recommendation=None, fail=False):
        self.high_risk = high_risk
        self.recommendation = recommendation
        self.fail = fail
        self.predict_calls = 0
        self.recommend_calls = 0

    def predict(self, vector):
        self.predict_calls += 1
        if self.fail:
            raise RuntimeError("classifier unavailable")
        return self.high_risk

    def recommend(self, vector, target):
        self.recommend_calls += 1
        if self.fail:
            raise RuntimeError("recommender unavailable")
        return list(self.recommendation)


def eligible_features(**overrides) -> Features:
    """Single adult with no income or assets; eligible for the full standard."""
    f = Features(current_age=30, total_income=0, own_income=0, total_assets=0)
    for k, v in overrides.items():
        setattr(f, k, v)
    return f


@pytest.fixture
def full_graph() -> StageGraph:
    return StageGraph.from_spec(parse_topology(FULL_TOPOLOGY))


@pytest.fixture
def feature_space():
    return build_feature_space([
        {"name": "age", "kind": "continuous", "domain": [18, "Inf"], "mutability": "none", "difficulty": 1.0},
        {"name": "days_at_address", "kind": "continuous", "domain": [0, "Inf"], "mutability": "increase",
         "difficulty": 0.0},
        {"name": "cost_sharers", "kind": "continuous", "domain": [0, 10], "mutability": "both", "difficulty": 0.0},
        {"name": "has_cost_sharer", "kind": "categorical", "domain": [0, 1], "mutability": "none",
         "difficulty": 0.0},
        {"name": "caseworker_meetings", "kind": "continuous", "domain": [0, 24], "mutability": "both",
         "difficulty": 0.0},
    ])


@pytest.fixture
def rules() -> FeatureRules:
    return FeatureRules.from_config({
        "cost_sharer_count_feature": "cost_sharers",
        "cost_sharer_flag_feature": "has_cost_sharer",
        "step_sizes": {"days_at_address": 30, "age": 0},
        "linked_fields": {"age": "current_age", "cost_sharers": "other_adults_in_household"},
    })


@pytest.fixture
def make_model(full_graph, feature_space, rules):
    """Build a model around explicit agent records; agents start Idle."""
    def _make(features=None, graph=None, **kwargs):
        population = features if features is not None else [eligible_features()]
        kwargs.setdefault("feature_space", feature_space)
        kwargs.setdefault("rules", rules)
        kwargs.setdefault("seed", 7)
        return WelfareModel(graph or full_graph, population=population, **kwargs)
    return _make
