"""
Process graph for the social assistance simulation.

The topology file is line-oriented:

    n               # number of nodes
    a b p           # edge "from" "to" "transition weight"
    k StageName     # stage kind assigned to node k

Node ids are 1-based, as written in the file.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple
import logging
import warnings

logger = logging.getLogger(__name__)


class MalformedTopology(ValueError):
    """Raised when a topology cannot be turned into a usable StageGraph."""


class ParseWarning(UserWarning):
    """A topology line that could not be parsed; parsing continues."""


class StageKind(Enum):
    IDLE = "Idle"
    APPLICATION = "Application"
    DECISION = "Decision"
    POST_DECISION = "PostDecision"
    RECEIVING_BENEFITS = "ReceivingBenefits"
    INVESTIGATION = "Investigation"
    POST_INVESTIGATION = "PostInvestigation"
    RECOURSE = "Recourse"
    # Declared in the process vocabulary but has no behaviour.
    COMPLAINT = "Complaint"

    @classmethod
    def from_name(cls, name: str) -> "StageKind":
        for kind in cls:
            if kind.value == name:
                return kind
        raise KeyError(name)


@dataclass
class StageNode:
    node_id: int
    kind: StageKind
    previous: List[int] = field(default_factory=list)
    next: Dict[int, float] = field(default_factory=dict)


@dataclass
class TopologySpec:
    """Raw result of parsing a topology description."""
    n_nodes: int
    edges: List[Tuple[int, int, float]] = field(default_factory=list)
    kinds: Dict[int, StageKind] = field(default_factory=dict)
    # Order in which kinds were declared, used for the reverse lookup.
    declared: List[Tuple[int, StageKind]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _warn(spec: TopologySpec, source: str, lineno: int, message: str) -> None:
    text = f"{source}:{lineno}: {message}"
    spec.warnings.append(text)
    logger.warning(text)
    warnings.warn(text, ParseWarning, stacklevel=3)


def parse_topology(text: str, source: str = "<topology>") -> TopologySpec:
    """
    Parse a topology description.

    Lines with an unexpected number of tokens, unparseable numbers or unknown
    stage names are reported as ParseWarning and skipped, so every problem in
    a file is surfaced in one pass. A bad node count is fatal.
    """
    lines = text.splitlines()
    # Skip leading blank lines before the node count
    idx = 0
    while idx < len(lines) and not lines[idx].strip():
        idx += 1
    if idx >= len(lines):
        raise MalformedTopology(f"{source}: empty topology")
    try:
        n_nodes = int(lines[idx].strip())
    except ValueError:
        raise MalformedTopology(f"{source}:{idx + 1}: node count must be an integer, got {lines[idx]!r}")
    if n_nodes <= 0:
        raise MalformedTopology(f"{source}:{idx + 1}: node count must be positive, got {n_nodes}")

    spec = TopologySpec(n_nodes=n_nodes)
    for lineno, raw in enumerate(lines[idx + 1:], start=idx + 2):
        tokens = raw.split()
        if not tokens:
            continue
        if len(tokens) == 3:
            try:
                src, dst, weight = int(tokens[0]), int(tokens[1]), float(tokens[2])
            except ValueError:
                _warn(spec, source, lineno, f"cannot parse edge {raw.strip()!r}")
                continue
            spec.edges.append((src, dst, weight))
        elif len(tokens) == 2:
            try:
                node = int(tokens[0])
            except ValueError:
                _warn(spec, source, lineno, f"cannot parse node id in {raw.strip()!r}")
                continue
            try:
                kind = StageKind.from_name(tokens[1])
            except KeyError:
                _warn(spec, source, lineno, f"unknown stage kind {tokens[1]!r}")
                continue
            spec.kinds[node] = kind
            spec.declared.append((node, kind))
        else:
            _warn(spec, source, lineno, f"expected 2 or 3 tokens, got {len(tokens)}: {raw.strip()!r}")
    return spec


class StageGraph:
    """
    Directed graph of process stages with weighted transitions.

    Built once before the first tick and read-only afterwards.
    """
    def __init__(self, n_nodes: int, edges, kinds: Dict[int, StageKind],
                 declared: Optional[List[Tuple[int, StageKind]]] = None):
        if n_nodes <= 0:
            raise MalformedTopology(f"node count must be positive, got {n_nodes}")
        self.n_nodes = int(n_nodes)
        missing = [n for n in range(1, self.n_nodes + 1) if n not in kinds]
        if missing:
            raise MalformedTopology(f"nodes without a stage kind: {missing}")
        extra = [n for n in kinds if not 1 <= n <= self.n_nodes]
        if extra:
            raise MalformedTopology(f"stage kind assigned to nonexistent nodes: {extra}")

        self.nodes: Dict[int, StageNode] = {
            n: StageNode(node_id=n, kind=kinds[n]) for n in range(1, self.n_nodes + 1)
        }
        for src, dst, weight in edges:
            if src not in self.nodes or dst not in self.nodes:
                raise MalformedTopology(f"edge {src}->{dst} references a nonexistent node")
            if not weight > 0:
                raise MalformedTopology(f"edge {src}->{dst} has non-positive weight {weight}")
            self.nodes[src].next[dst] = float(weight)
            self.nodes[dst].previous.append(src)

        # Kinds are not guaranteed unique; the first declared node wins.
        self._by_kind: Dict[StageKind, int] = {}
        order = declared if declared is not None else sorted(kinds.items())
        for node, kind in order:
            self._by_kind.setdefault(kind, node)

    @classmethod
    def from_spec(cls, spec: TopologySpec) -> "StageGraph":
        return cls(spec.n_nodes, spec.edges, spec.kinds, spec.declared)

    @classmethod
    def from_file(cls, path: str | Path) -> "StageGraph":
        p = Path(path)
        if not p.exists():
            raise MalformedTopology(f"topology file not found: {p}")
        spec = parse_topology(p.read_text(encoding="utf-8"), source=str(p))
        return cls.from_spec(spec)

    def outgoing(self, node: int) -> Dict[int, float]:
        return self.nodes[node].next

    def kind_of(self, node: int) -> StageKind:
        return self.nodes[node].kind

    def node_for(self, kind: StageKind) -> int:
        """Return the first declared node of the given kind."""
        try:
            return self._by_kind[kind]
        except KeyError:
            raise MalformedTopology(f"topology has no {kind.value} stage")

    def has_kind(self, kind: StageKind) -> bool:
        return kind in self._by_kind

    def stage_lookup(self) -> Dict[StageKind, int]:
        return dict(self._by_kind)
