"""
Behaviour of each stage of the social assistance process.

One function per StageKind; STAGE_LOGIC maps a kind to its behaviour and
process() dispatches on the kind of the node the agent occupies. Every
behaviour ends with the agent staying put or moving to exactly one node.
"""
from __future__ import annotations

import logging

from .eligibility import Status, calculate_assistance
from .graph import StageKind
from .policies import nominate_model, nominate_random, request_recommendation, select_transition
from .recourse import attempt_recourse, has_pending

logger = logging.getLogger(__name__)

RANDOM_NOMINATION = "flagged-by-random"
NO_CHANGE = "no-change-on-reinvestigation"


def _default_move(agent, model, *banned: StageKind) -> None:
    """Move along the node's outgoing edges, excluding the given stage kinds."""
    excluded = [model.stage(kind) for kind in banned]
    next_node = select_transition(model.graph.outgoing(agent.node), excluded, model.random)
    if next_node != agent.node:
        model.move(agent, next_node)


def _work_on_recourse(agent, model) -> None:
    remaining = attempt_recourse(agent, model.feature_space, model.rules, model.random)
    if remaining == 0:
        model.metrics.on_recommendation_completed()


def idle_logic(agent, model) -> None:
    """Outside the process: work on pending recourse, or maybe apply."""
    if has_pending(agent.properties.recommendation) and model.feature_space is not None:
        _work_on_recourse(agent, model)
        # Only the decision stage records the status; here the agent just checks
        status, _ = calculate_assistance(agent.features)
        if status == Status.ACCEPTED:
            model.move(agent, model.stage(StageKind.APPLICATION))
        return
    _default_move(agent, model)


def application_logic(agent, model) -> None:
    _default_move(agent, model)


def decision_logic(agent, model) -> None:
    agent.status, agent.outcome = calculate_assistance(agent.features)
    model.move(agent, model.stage(StageKind.POST_DECISION))


def postdecision_logic(agent, model) -> None:
    if agent.status == Status.ACCEPTED:
        # Investigation frequency is counted from the moment of acceptance
        agent.properties.cycles_since_investigation = 0
        model.move(agent, model.stage(StageKind.RECEIVING_BENEFITS))
        return
    _default_move(agent, model, StageKind.RECEIVING_BENEFITS)


def receiving_benefits_logic(agent, model) -> None:
    """
    Stay on benefits unless the agent drops out or is nominated.

    Draw order per tick: recourse draws, self-evaluation draw, then (when the
    investigation frequency allows) the model nomination followed by the
    random nomination draw only if the model did not nominate, then the
    transition draw.
    """
    if has_pending(agent.properties.recommendation) and model.feature_space is not None:
        _work_on_recourse(agent, model)

    if model.random.random() < model.self_evaluation_p:
        status, outcome = calculate_assistance(agent.features)
        if status == Status.REJECTED:
            agent.status, agent.outcome = status, outcome
            model.move(agent, model.stage(StageKind.IDLE))
            return

    if agent.properties.cycles_since_investigation >= model.investigation_freq:
        if nominate_model(agent, model):
            logger.debug(f"Agent {agent.unique_id} nominated for investigation by the model.")
            agent.properties.model_investigations += 1
            model.metrics.on_nomination("model")
            model.move(agent, model.stage(StageKind.INVESTIGATION))
            return
        if nominate_random(model.p_random_nomination, model.random):
            logger.debug(f"Agent {agent.unique_id} nominated for investigation at random.")
            agent.options.add(RANDOM_NOMINATION)
            model.metrics.on_nomination("random")
            model.move(agent, model.stage(StageKind.INVESTIGATION))
            return

    _default_move(agent, model, StageKind.INVESTIGATION)


def investigation_logic(agent, model) -> None:
    status, outcome = calculate_assistance(agent.features)
    if status == agent.status and outcome == agent.outcome:
        agent.options.add(NO_CHANGE)
    agent.status, agent.outcome = status, outcome
    agent.properties.cycles_since_investigation = 0
    agent.properties.total_investigations += 1
    model.move(agent, model.stage(StageKind.POST_INVESTIGATION))


def postinvestigation_logic(agent, model) -> None:
    agent.options.discard(NO_CHANGE)

    if RANDOM_NOMINATION in agent.options:
        agent.options.discard(RANDOM_NOMINATION)
        if agent.status == Status.ACCEPTED:
            model.move(agent, model.stage(StageKind.RECEIVING_BENEFITS))
        else:
            model.move(agent, model.stage(StageKind.IDLE))
        return

    if agent.status == Status.ACCEPTED:
        # Unchanged after a model nomination; may still ask for recourse
        _default_move(agent, model, StageKind.IDLE)
    else:
        # Rejected: comply (Idle) or ask for recourse, but never straight back to benefits
        _default_move(agent, model, StageKind.RECEIVING_BENEFITS)


def recourse_logic(agent, model) -> None:
    if model.recourse_oracle is not None:
        rec = request_recommendation(agent, model)
        # A failed request replaces any earlier recommendation with none
        agent.properties.recommendation = rec
        if rec is not None:
            n_features = sum(1 for v in rec if v != 0)
            model.metrics.on_recommendation(n_features)
            logger.debug(f"Agent {agent.unique_id} received a recommendation on {n_features} features.")

    if agent.status == Status.ACCEPTED:
        model.move(agent, model.stage(StageKind.RECEIVING_BENEFITS))
    else:
        # Recourse is pursued from outside the process
        model.move(agent, model.stage(StageKind.IDLE))


STAGE_LOGIC = {
    StageKind.IDLE: idle_logic,
    StageKind.APPLICATION: application_logic,
    StageKind.DECISION: decision_logic,
    StageKind.POST_DECISION: postdecision_logic,
    StageKind.RECEIVING_BENEFITS: receiving_benefits_logic,
    StageKind.INVESTIGATION: investigation_logic,
    StageKind.POST_INVESTIGATION: postinvestigation_logic,
    StageKind.RECOURSE: recourse_logic,
}


def process(agent, model) -> None:
    """Run the behaviour of the stage the agent currently occupies."""
    kind = model.graph.kind_of(agent.node)
    logic = STAGE_LOGIC.get(kind)
    if logic is None:
        raise NotImplementedError(f"stage kind {kind.value} has no behaviour")
    logic(agent, model)
