"""Unit tests for followpaths.loader and the CSR snapshot."""

import json

import numpy as np
import pytest

from conftest import EDGES_FILE
from followpaths.errors import ValidationError
from followpaths.graph import CSRFollowGraph
from followpaths.loader import (
    build_graph_from_edges,
    build_graph_from_jsonl,
    read_follow_edges_jsonl,
)
from followpaths.validation import MAX_NODE_ID


@pytest.fixture
def graph():
    """Build a graph from the JSONL fixture."""
    return build_graph_from_jsonl(EDGES_FILE)


class TestBuildGraphFromJsonl:
    """Tests for build_graph_from_jsonl function."""

    def test_returns_csr_graph(self, graph):
        assert isinstance(graph, CSRFollowGraph)

    def test_loads_unique_nodes(self, graph):
        """Nodes: 1, 2, 3, 4, 5 and the largest valid id."""
        assert graph.num_nodes == 6
        assert graph.node_ids.tolist() == [1, 2, 3, 4, 5, MAX_NODE_ID]

    def test_drops_duplicates_and_self_loops(self, graph):
        """8 edge lines: one duplicate and one self-loop are dropped."""
        assert graph.num_edges == 6

    def test_string_and_number_ids_agree(self, graph):
        """"1" -> "4" is stored as the same node 1 as numeric rows."""
        assert graph.forward_neighbors({1}) == {1: [2, 4]}

    def test_reverse_csr(self, graph):
        assert graph.backward_neighbors({3}) == {3: [2, 4]}
        assert graph.backward_neighbors({1}) == {1: [MAX_NODE_ID]}

    def test_unknown_ids_map_to_empty(self, graph):
        assert graph.forward_neighbors({42, 5}) == {42: [], 5: []}
        assert graph.backward_neighbors({42}) == {42: []}

    def test_degrees(self, graph):
        idx = graph.get_node_idx(1)
        assert graph.degree(idx) == 2
        assert graph.in_degree(idx) == 1
        assert graph.get_node_id(idx) == 1
        assert graph.get_node_idx(42) is None

    def test_neighbor_indices(self, graph):
        idx = graph.get_node_idx(3)
        assert [graph.get_node_id(i) for i in graph.neighbors(idx)] == [5]
        assert [graph.get_node_id(i) for i in graph.incoming_neighbors(idx)] == [2, 4]

    def test_invalid_id_reports_line(self, tmp_path):
        path = tmp_path / "bad.jsonl"
        path.write_text(
            json.dumps({"source": 1, "target": 2}) + "\n"
            + json.dumps({"source": "-7", "target": 2}) + "\n"
        )
        with pytest.raises(ValidationError, match="line 2"):
            build_graph_from_jsonl(path)

    @pytest.mark.parametrize(
        "bad_line",
        ['{"source": 1, "target":', '[1, 2]', '"1 -> 2"'],
    )
    def test_malformed_line_reports_line(self, tmp_path, bad_line):
        path = tmp_path / "bad.jsonl"
        path.write_text(json.dumps({"source": 1, "target": 2}) + "\n" + bad_line + "\n")
        with pytest.raises(ValidationError, match="line 2"):
            list(read_follow_edges_jsonl(path))

    def test_read_edges_skips_blank_lines(self):
        edges = list(read_follow_edges_jsonl(EDGES_FILE))
        assert len(edges) == 8
        assert edges[2] == (1, 4)


class TestCSRFollowGraph:
    """Tests for building and persisting the CSR snapshot."""

    def test_empty_graph(self):
        graph = build_graph_from_edges([])
        assert graph.num_nodes == 0
        assert graph.num_edges == 0
        assert graph.forward_neighbors({1}) == {1: []}

    def test_offsets_are_consistent(self):
        graph = build_graph_from_edges([(5, 1), (1, 5), (1, 3), (3, 5)])
        assert graph.fwd_offsets[-1] == graph.num_edges
        assert graph.rev_offsets[-1] == graph.num_edges
        assert np.all(np.diff(graph.fwd_offsets) >= 0)

    def test_mismatched_arrays(self):
        with pytest.raises(ValueError):
            CSRFollowGraph.from_edges([1, 2], [3])

    def test_save_and_load_mmap(self, graph, tmp_path):
        """A reloaded snapshot answers the same lookups."""
        graph.save_mmap(tmp_path / "mmap")
        loaded = CSRFollowGraph.load_mmap(tmp_path / "mmap")

        assert loaded.num_nodes == graph.num_nodes
        assert loaded.num_edges == graph.num_edges
        ids = {1, 2, 3, 4, 5, MAX_NODE_ID, 42}
        assert loaded.forward_neighbors(ids) == graph.forward_neighbors(ids)
        assert loaded.backward_neighbors(ids) == graph.backward_neighbors(ids)

    def test_load_mmap_keeps_stdout_clean(self, graph, tmp_path, capsys):
        graph.save_mmap(tmp_path / "mmap")
        capsys.readouterr()

        CSRFollowGraph.load_mmap(tmp_path / "mmap")
        assert capsys.readouterr().out == ""
