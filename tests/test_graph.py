from __future__ import annotations

import pytest

from welfare_sim.graph import MalformedTopology, ParseWarning, StageGraph, StageKind, parse_topology

from .conftest import FULL_TOPOLOGY


def test_parse_full_topology():
    spec = parse_topology(FULL_TOPOLOGY)
    assert spec.n_nodes == 8
    assert len(spec.edges) == 16
    assert spec.warnings == []
    graph = StageGraph.from_spec(spec)
    assert graph.kind_of(1) == StageKind.IDLE
    assert graph.outgoing(4) == {5: 1.0, 1: 0.7, 8: 0.3}
    assert graph.nodes[5].previous == [4, 5, 7, 8]
    assert graph.node_for(StageKind.RECOURSE) == 8


def test_bad_lines_warn_and_parsing_continues():
    text = "3\n1 2 1.0\n1 2 3 4\nfoo Idle\n2 Nowhere\n1 Idle\n2 Application\n3 Decision\n"
    with pytest.warns(ParseWarning):
        spec = parse_topology(text, source="t.txt")
    assert len(spec.warnings) == 3
    assert spec.warnings[0].startswith("t.txt:3:")
    assert spec.kinds == {1: StageKind.IDLE, 2: StageKind.APPLICATION, 3: StageKind.DECISION}
    StageGraph.from_spec(spec)


def test_unassigned_node_is_malformed():
    with pytest.warns(ParseWarning):
        spec = parse_topology("2\n1 2 1.0\n1 Idle\n2 Mystery\n")
    with pytest.raises(MalformedTopology):
        StageGraph.from_spec(spec)


@pytest.mark.parametrize("text", ["", "zero\n", "0\n", "-3\n"])
def test_bad_node_count_is_fatal(text):
    with pytest.raises(MalformedTopology):
        parse_topology(text)


def test_edge_to_missing_node_is_malformed():
    spec = parse_topology("2\n1 3 1.0\n1 Idle\n2 Application\n")
    with pytest.raises(MalformedTopology):
        StageGraph.from_spec(spec)


def test_duplicate_kinds_resolve_to_first_declared():
    spec = parse_topology("3\n2 Idle\n1 Idle\n3 Application\n")
    graph = StageGraph.from_spec(spec)
    assert graph.node_for(StageKind.IDLE) == 2


def test_missing_kind_lookup_raises():
    graph = StageGraph.from_spec(parse_topology("1\n1 Idle\n"))
    assert not graph.has_kind(StageKind.RECOURSE)
    with pytest.raises(MalformedTopology):
        graph.node_for(StageKind.RECOURSE)


def test_from_file(tmp_path):
    path = tmp_path / "graph.txt"
    path.write_text(FULL_TOPOLOGY, encoding="utf-8")
    graph = StageGraph.from_file(path)
    assert graph.n_nodes == 8
    with pytest.raises(MalformedTopology):
        StageGraph.from_file(tmp_path / "missing.txt")
