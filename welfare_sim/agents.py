"""
Agent definitions for the ABM.

Each CaseAgent is one resident who may apply for social assistance, receive
benefits, be investigated and pursue algorithmic recourse. Agents are never
removed; leaving the process means returning to the Idle stage.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Set

from mesa import Agent

from . import evolution, stages
from .eligibility import Features, Status


@dataclass
class CaseProperties:
    """
    Per-agent bookkeeping across stages.

    recommendation : Optional[List[float]]
        Remaining signed deltas of the recourse recommendation, or None.
    cycles_since_investigation : int
        Ticks on benefits since acceptance or the last investigation.
    total_investigations, model_investigations : int
        Lifetime counters (all investigations / model-nominated ones).
    """
    recommendation: Optional[List[float]] = None
    cycles_since_investigation: int = 0
    total_investigations: int = 0
    model_investigations: int = 0


class CaseAgent(Agent):
    """
    A resident moving through the assistance process.
    Attributes
    ----------
    node : int
        Current node of the process graph.
    status : Status
        Last recorded eligibility decision.
    outcome : int
        Last recorded monthly benefit (0 unless accepted).
    options : set of str
        Transient tags passed from one stage to the next.
    features : Features
        Eligibility record, mutated by feature evolution and recourse.
    vector : list of float
        The agent as seen by the investigation model, indexed by the model's FeatureSpace.
    """
    def __init__(self, model, features: Features, vector: Optional[List[float]] = None, node: int = 1):
        super().__init__(model)
        self.node = int(node)
        self.status: Status = Status.UNSET
        self.outcome: int = 0
        self.options: Set[str] = set()
        self.properties = CaseProperties()
        self.features = features
        self.vector: List[float] = list(vector or [])

    @property
    def stage_name(self) -> str:
        return self.model.graph.kind_of(self.node).value

    def step(self) -> None:
        """
        One tick for this agent:
        1) Advance features that change regardless of stage.
        2) Run the behaviour of the current stage, which may move the agent.
        """
        evolution.update_features(self, self.model)
        stages.process(self, self.model)
