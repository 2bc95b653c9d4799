"""
Core Mesa model.
Owns the process graph, the agent population, the oracles and the shared
RNG stream, and exposes the helpers stage behaviours use to look up stages,
move agents and report oracle failures.
"""
from __future__ import annotations

from mesa import Model
from mesa.datacollection import DataCollector
from typing import List, Dict, Any, Optional
import logging
import time

from .agents import CaseAgent
from .data_loader import default_vector, load_feature_vectors, load_population, synthesize_features
from .eligibility import Features, Status, calculate_assistance
from .graph import MalformedTopology, StageGraph, StageKind
from .metrics import EventLogger, MetricTracker
from .oracles import NominationOracle, OracleFailure, RecourseOracle, build_oracle
from .policies import DEFAULT_P_RANDOM_NOMINATION
from .recourse import FeatureRules, FeatureSpace, load_feature_space

DEFAULT_STEPS = 24 + 12 * 20


class WelfareModel(Model):
    """
    ABM of a social assistance process with investigations and recourse.
    Parameters
    ----------
    graph : StageGraph
        Process topology; agents start at its Idle node.
    total_agents : int
        Population size. Ignored when `population` is given.
    investigation_freq : int
        Minimum ticks on benefits between two investigations of one agent.
    p_random_nomination : float
        Probability of random nomination once the frequency allows it.
    target : int
        Label the recourse oracle is asked to reach (0 = low risk).
    seed : int | None
        Seed of the single RNG stream shared by all agents.
    population : list of Features, optional
        Eligibility records, one per agent, in activation order.
    vectors : list of list of float, optional
        Classifier feature vectors aligned with `population`.
    feature_space, rules : FeatureSpace, FeatureRules
        Indexing, difficulty and cross-feature rules of the classifier features.
    nomination_oracle, recourse_oracle : optional
        External risk classifier and recommender.
    """
    def __init__(self,
                 graph: StageGraph,
                 total_agents: int = 100,
                 investigation_freq: int = 1,
                 p_random_nomination: float = DEFAULT_P_RANDOM_NOMINATION,
                 target: int = 0,
                 seed: int | None = None,
                 population: Optional[List[Features]] = None,
                 vectors: Optional[List[List[float]]] = None,
                 feature_space: Optional[FeatureSpace] = None,
                 rules: Optional[FeatureRules] = None,
                 nomination_oracle: Optional[NominationOracle] = None,
                 recourse_oracle: Optional[RecourseOracle] = None,
                 self_evaluation_p: float = 1.0 / 12.0,
                 evolution_period: int = 12,
                 events_path: Optional[str] = None):
        super().__init__(seed=seed)
        self._logger = logging.getLogger(__name__)

        # Model-level state
        self.graph = graph
        if not graph.has_kind(StageKind.IDLE):
            raise MalformedTopology("topology has no Idle stage for agents to start in")
        self.stages: Dict[StageKind, int] = graph.stage_lookup()
        self.investigation_freq = int(investigation_freq)
        self.p_random_nomination = float(p_random_nomination)
        self.target = int(target)
        self.self_evaluation_p = float(self_evaluation_p)
        self.evolution_period = max(1, int(evolution_period))
        self.feature_space = feature_space
        self.rules = rules or FeatureRules()
        self.nomination_oracle = nomination_oracle
        self.recourse_oracle = recourse_oracle
        self.tick = 0
        self.metrics = MetricTracker()
        self._events: Optional[EventLogger] = EventLogger(events_path) if events_path else None

        self._linked_index: Dict[str, int] = {}
        if feature_space is not None:
            for fname, field_name in self.rules.linked_fields.items():
                idx = feature_space.index(fname)
                if idx is not None:
                    self._linked_index[field_name] = idx

        # --- Create agents in a fixed activation order ---
        self.cases: List[CaseAgent] = []
        if population is None:
            self.populate(int(total_agents), None)
        else:
            self._add_agents(population, vectors)

        # Data collector for per-tick stage occupancy
        reporters = {
            f"stage_{kind.value}": (lambda m, k=kind: m.stage_counts().get(k.value, 0))
            for kind in StageKind if kind != StageKind.COMPLAINT
        }
        reporters["cum_investigations"] = lambda m: sum(a.properties.total_investigations for a in m.cases)
        reporters["cum_model_nominations"] = lambda m: m.metrics.model_nominations
        reporters["cum_random_nominations"] = lambda m: m.metrics.random_nominations
        self.datacollector: DataCollector = DataCollector(model_reporters=reporters)

        self._logger.info(
            f"Model: {len(self.cases)} agents, {graph.n_nodes} stages, "
            f"nomination oracle={'yes' if nomination_oracle is not None else 'no'}, "
            f"recourse oracle={'yes' if recourse_oracle is not None else 'no'}"
        )

    @classmethod
    def from_parameters(cls, params: Dict[str, Any], seed: int | None = None,
                        events_path: Optional[str] = None) -> "WelfareModel":
        """Build a model from a parameters.yaml dictionary."""
        model_cfg = params.get("model", {}) or {}
        data_cfg = params.get("data", {}) or {}
        graph = StageGraph.from_file(data_cfg.get("graph_path", "data/process_graph.txt"))
        space = load_feature_space(data_cfg.get("feature_config"))
        rules = FeatureRules.from_config(params.get("recourse", {}) or {})
        oracle = build_oracle(space, params.get("oracle", {}) or {})

        total_agents = int(model_cfg.get("total_agents", 100))
        population: Optional[List[Features]] = load_population(data_cfg.get("decision_csv")) or None
        vectors: Optional[List[List[float]]] = None
        if space is not None:
            vectors = load_feature_vectors(data_cfg.get("model_features_csv"), space.names) or None

        model = cls(
            graph=graph,
            total_agents=total_agents,
            investigation_freq=int(model_cfg.get("investigation_freq", 1)),
            p_random_nomination=float(model_cfg.get("p_random_nomination", DEFAULT_P_RANDOM_NOMINATION)),
            target=int(model_cfg.get("target", 0)),
            seed=seed if seed is not None else model_cfg.get("seed", 42),
            population=[],
            feature_space=space,
            rules=rules,
            nomination_oracle=oracle,
            recourse_oracle=oracle,
            self_evaluation_p=float(model_cfg.get("self_evaluation_p", 1.0 / 12.0)),
            evolution_period=int(model_cfg.get("evolution_period", 12)),
            events_path=events_path,
        )
        model.populate(total_agents, population, vectors)
        return model

    def populate(self, total_agents: int, population: Optional[List[Features]],
                 vectors: Optional[List[List[float]]] = None) -> None:
        """
        Add agents using the model's own RNG, so file sampling and synthesis
        are part of the seeded stream. Rows are sampled without replacement
        and kept in file order.
        """
        if population:
            if total_agents > len(population):
                raise ValueError(f"requested {total_agents} agents but data has {len(population)} rows")
            chosen = sorted(self.random.sample(range(len(population)), total_agents))
            records = [population[i] for i in chosen]
            rows = [vectors[i] for i in chosen] if vectors and len(vectors) == len(population) else None
        else:
            records = [synthesize_features(self.random) for _ in range(total_agents)]
            rows = None
        self._add_agents(records, rows)
        self._logger.info(f"Populated {len(records)} agents")

    def _add_agents(self, records: List[Features], vectors: Optional[List[List[float]]]) -> None:
        idle = self.stage(StageKind.IDLE)
        for i, features in enumerate(records):
            if vectors is not None and i < len(vectors):
                vec = list(vectors[i])
            elif self.feature_space is not None:
                vec = default_vector(features, self.feature_space, self.rules)
            else:
                vec = []
            self.cases.append(CaseAgent(self, features, vec, node=idle))

    # ---- Lookups used by stage behaviours ----
    def stage(self, kind: StageKind) -> int:
        try:
            return self.stages[kind]
        except KeyError:
            raise MalformedTopology(f"topology has no {kind.value} stage")

    def linked_index(self, field_name: str) -> Optional[int]:
        return self._linked_index.get(field_name)

    def move(self, agent: CaseAgent, node: int) -> None:
        src = agent.node
        agent.node = int(node)
        self.metrics.moves += 1
        self._logger.debug(
            f"Agent {agent.unique_id} moved {self.graph.kind_of(src).value} -> {self.graph.kind_of(node).value}."
        )
        if self._events:
            self._events.log_move(
                tick=self.tick,
                agent_id=agent.unique_id,
                from_stage=self.graph.kind_of(src).value,
                to_stage=self.graph.kind_of(node).value,
                status=agent.status.value,
                outcome=agent.outcome,
            )

    def record_oracle_failure(self, agent: CaseAgent, oracle: str, exc: Exception) -> None:
        """Count and log an oracle error; the caller treats the call as having no effect."""
        if not isinstance(exc, OracleFailure):
            exc = OracleFailure(f"{type(exc).__name__}: {exc}")
        self.metrics.on_oracle_failure(oracle)
        self._logger.warning(f"{oracle} oracle failed for agent {agent.unique_id} at tick {self.tick}: {exc}")

    # ---- Reporting helpers ----
    def stage_counts(self) -> Dict[str, int]:
        counts = {kind.value: 0 for kind in StageKind}
        for a in self.cases:
            counts[self.graph.kind_of(a.node).value] += 1
        return counts

    def agent_distribution(self) -> List[int]:
        """Number of agents at each node, in node order."""
        counts = [0] * self.graph.n_nodes
        for a in self.cases:
            counts[a.node - 1] += 1
        return counts

    def eligible_count(self) -> int:
        return sum(1 for a in self.cases if calculate_assistance(a.features)[0] == Status.ACCEPTED)

    # ---- Simulation loop ----
    def step(self) -> None:
        """
        One full model tick:
        - Step every agent once, in creation order.
        - Advance the tick counter and collect stage occupancy.
        """
        for agent in self.cases:
            agent.step()
        self.tick += 1
        self.datacollector.collect(self)

    def run(self, steps: int = DEFAULT_STEPS) -> Dict[str, Any]:
        """Run the model for a fixed number of steps and return a metrics summary."""
        start = time.perf_counter()
        self._logger.info(f"Simulation started ({steps} steps).")
        for _ in range(int(steps)):
            self.step()
        elapsed_ms = int((time.perf_counter() - start) * 1000)

        distribution = self.agent_distribution()
        self._logger.info(f"Distribution of agents over stages: {distribution}.")
        self._logger.info(f"Simulation completed after {elapsed_ms} ms.")
        if self._events:
            self._events.flush()
        summary = self.metrics.summary(self.cases, distribution, self.eligible_count())
        summary["computation_time_ms"] = elapsed_ms
        return summary
