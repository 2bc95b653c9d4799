from __future__ import annotations

import pytest

from welfare_sim import stages
from welfare_sim.eligibility import Status
from welfare_sim.graph import StageGraph, parse_topology

from .conftest import FixedOracle, ScriptedRng, eligible_features

IDLE, APPLICATION, DECISION, POST_DECISION, BENEFITS, INVESTIGATION, POST_INVESTIGATION, RECOURSE = range(1, 9)


def _on_benefits(make_model, rng_values, features=None, cycles=1, **kwargs):
    model = make_model([features or eligible_features()], **kwargs)
    agent = model.cases[0]
    agent.node = BENEFITS
    agent.status, agent.outcome = Status.ACCEPTED, 1308
    agent.properties.cycles_since_investigation = cycles
    model.random = ScriptedRng(rng_values)
    return model, agent


def test_model_nomination_comes_first(make_model):
    oracle = FixedOracle(high_risk=True)
    model, agent = _on_benefits(make_model, [0.9], nomination_oracle=oracle)
    stages.receiving_benefits_logic(agent, model)
    assert agent.node == INVESTIGATION
    assert stages.RANDOM_NOMINATION not in agent.options
    assert agent.properties.model_investigations == 1
    assert model.metrics.model_nominations == 1
    # Only the self-evaluation draw; no random nomination draw
    assert model.random.draws == 1


def test_random_nomination_when_model_declines(make_model):
    oracle = FixedOracle(high_risk=False)
    model, agent = _on_benefits(make_model, [0.9, 0.1], nomination_oracle=oracle)
    stages.receiving_benefits_logic(agent, model)
    assert agent.node == INVESTIGATION
    assert stages.RANDOM_NOMINATION in agent.options
    assert oracle.predict_calls == 1
    assert model.metrics.random_nominations == 1
    assert model.random.draws == 2


def test_no_nomination_stays_on_benefits(make_model):
    model, agent = _on_benefits(make_model, [0.9, 0.5, 0.5])
    stages.receiving_benefits_logic(agent, model)
    assert agent.node == BENEFITS
    assert model.random.draws == 3


def test_frequency_blocks_nomination(make_model):
    oracle = FixedOracle(high_risk=True)
    model, agent = _on_benefits(make_model, [0.9, 0.5], cycles=0, nomination_oracle=oracle, investigation_freq=3)
    stages.receiving_benefits_logic(agent, model)
    assert agent.node == BENEFITS
    assert oracle.predict_calls == 0
    assert model.random.draws == 2


def test_self_evaluation_leaves_when_ineligible(make_model):
    model, agent = _on_benefits(make_model, [0.01], features=eligible_features(total_assets=10000))
    stages.receiving_benefits_logic(agent, model)
    assert agent.node == IDLE
    assert (agent.status, agent.outcome) == (Status.REJECTED, 0)


def test_failing_oracle_degrades_to_random_nomination(make_model):
    oracle = FixedOracle(fail=True)
    model, agent = _on_benefits(make_model, [0.9, 0.1], nomination_oracle=oracle)
    stages.receiving_benefits_logic(agent, model)
    assert agent.node == INVESTIGATION
    assert model.metrics.oracle_failures == 1
    assert model.metrics.failures_by_oracle == {"nomination": 1}


def test_random_nomination_rejected_goes_idle(make_model):
    model = make_model([eligible_features(total_assets=10000)])
    agent = model.cases[0]
    agent.node = INVESTIGATION
    agent.status, agent.outcome = Status.ACCEPTED, 1308
    agent.options.add(stages.RANDOM_NOMINATION)
    model.random = ScriptedRng([])

    stages.investigation_logic(agent, model)
    assert agent.node == POST_INVESTIGATION
    assert agent.status == Status.REJECTED
    assert agent.properties.total_investigations == 1
    assert agent.properties.cycles_since_investigation == 0

    stages.postinvestigation_logic(agent, model)
    assert agent.node == IDLE
    assert agent.options == set()


def test_random_nomination_unchanged_returns_to_benefits(make_model):
    model = make_model([eligible_features()])
    agent = model.cases[0]
    agent.node = INVESTIGATION
    agent.status, agent.outcome = Status.ACCEPTED, 1308
    agent.options.add(stages.RANDOM_NOMINATION)
    model.random = ScriptedRng([])

    stages.investigation_logic(agent, model)
    assert stages.NO_CHANGE in agent.options
    stages.postinvestigation_logic(agent, model)
    assert agent.node == BENEFITS
    assert agent.options == set()


@pytest.mark.parametrize("features, status, draw, expected", [
    # Accepted: Idle is banned, {Benefits: .5, Recourse: .3} renormalised
    (eligible_features(), Status.ACCEPTED, 0.7, RECOURSE),
    (eligible_features(), Status.ACCEPTED, 0.5, BENEFITS),
    # Rejected: Benefits is banned, {Recourse: .3, Idle: .2} renormalised
    (eligible_features(total_assets=10000), Status.REJECTED, 0.5, RECOURSE),
    (eligible_features(total_assets=10000), Status.REJECTED, 0.7, IDLE),
])
def test_model_nomination_postinvestigation_routing(make_model, features, status, draw, expected):
    model = make_model([features])
    agent = model.cases[0]
    agent.node = POST_INVESTIGATION
    agent.status = status
    model.random = ScriptedRng([draw])
    stages.postinvestigation_logic(agent, model)
    assert agent.node == expected


def test_recourse_stores_recommendation_and_routes(make_model):
    oracle = FixedOracle(recommendation=[0, 0, 0, 0, 2])
    model = make_model([eligible_features(total_assets=10000)], recourse_oracle=oracle)
    agent = model.cases[0]
    agent.node = RECOURSE
    agent.status = Status.REJECTED
    stages.recourse_logic(agent, model)
    assert agent.properties.recommendation == [0, 0, 0, 0, 2]
    assert model.metrics.recommendations_issued == 1
    assert agent.node == IDLE

    agent.node = RECOURSE
    agent.status = Status.ACCEPTED
    stages.recourse_logic(agent, model)
    assert agent.node == BENEFITS


def test_recourse_without_oracle(make_model):
    model = make_model()
    agent = model.cases[0]
    agent.node = RECOURSE
    agent.status = Status.REJECTED
    stages.recourse_logic(agent, model)
    assert agent.properties.recommendation is None
    assert agent.node == IDLE


@pytest.mark.parametrize("oracle", [FixedOracle(fail=True), FixedOracle(recommendation=[1, 2])])
def test_recourse_oracle_failure_is_absorbed(make_model, oracle):
    model = make_model(recourse_oracle=oracle)
    agent = model.cases[0]
    agent.node = RECOURSE
    agent.status = Status.REJECTED
    agent.properties.recommendation = [0, 0, 0, 0, 3]
    stages.recourse_logic(agent, model)
    assert agent.properties.recommendation is None
    assert model.metrics.oracle_failures == 1
    assert model.metrics.failures_by_oracle == {"recourse": 1}
    assert agent.node == IDLE


def test_idle_recourse_then_reapply(make_model):
    model = make_model()
    agent = model.cases[0]
    agent.properties.recommendation = [0, 0, 0, 0, 1]
    model.random = ScriptedRng([0.5])
    stages.idle_logic(agent, model)
    assert agent.vector[4] == 1
    assert model.metrics.recommendations_completed == 1
    assert agent.node == APPLICATION


def test_idle_recourse_stays_when_still_ineligible(make_model):
    model = make_model([eligible_features(total_assets=10000)])
    agent = model.cases[0]
    agent.properties.recommendation = [0, 0, 0, 0, 2]
    model.random = ScriptedRng([0.5])
    stages.idle_logic(agent, model)
    assert agent.node == IDLE
    assert agent.properties.recommendation == [0, 0, 0, 0, 1]
    assert model.random.draws == 1


def test_decision_records_status(make_model):
    model = make_model()
    agent = model.cases[0]
    agent.node = DECISION
    stages.decision_logic(agent, model)
    assert (agent.status, agent.outcome) == (Status.ACCEPTED, 1308)
    assert agent.node == POST_DECISION

    agent.properties.cycles_since_investigation = 5
    stages.postdecision_logic(agent, model)
    assert agent.node == BENEFITS
    assert agent.properties.cycles_since_investigation == 0


def test_rejected_postdecision_never_goes_to_benefits(make_model):
    model = make_model([eligible_features(current_age=17)])
    agent = model.cases[0]
    agent.node = POST_DECISION
    agent.status = Status.REJECTED
    model.random = ScriptedRng([0.99])
    stages.postdecision_logic(agent, model)
    assert agent.node == RECOURSE


def test_complaint_stage_has_no_behaviour():
    graph = StageGraph.from_spec(parse_topology("2\n1 2 1.0\n1 Idle\n2 Complaint\n"))

    class _Model:
        pass

    model = _Model()
    model.graph = graph

    class _Agent:
        node = 2

    with pytest.raises(NotImplementedError):
        stages.process(_Agent(), model)
