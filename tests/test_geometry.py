"""Tests for connector geometry."""

import math
import pytest

from casework.core.geometry import (
    ARROW_PADDING,
    HALF_SIZE,
    Point,
    connector_radius,
    document_layout,
    edge_endpoints,
    node_center,
    preview_endpoints,
)
from casework.models import NodeType, Position, WorkflowDocument, WorkflowEdge, WorkflowNode


def make_node(node_id, node_type, x, y):
    return WorkflowNode(id=node_id, type=node_type, label=node_id, position=Position(x=x, y=y))


class TestConnectorRadius:

    def test_round_nodes_have_constant_radius(self):
        for angle in (0, math.pi / 4, math.pi / 2, 2.0):
            assert connector_radius(NodeType.TASK, angle) == HALF_SIZE

    def test_gateway_is_a_diamond(self):
        assert connector_radius(NodeType.GATEWAY, 0) == pytest.approx(HALF_SIZE)
        assert connector_radius(NodeType.GATEWAY, math.pi / 2) == pytest.approx(HALF_SIZE)
        assert connector_radius(NodeType.GATEWAY, math.pi / 4) == pytest.approx(HALF_SIZE / math.sqrt(2))


class TestEdgeEndpoints:

    def test_horizontal_edge(self):
        source = make_node("a", NodeType.START, 0, 0)
        target = make_node("b", NodeType.TASK, 200, 0)

        segment = edge_endpoints(source, target)

        assert node_center(source) == Point(48, 48)
        assert segment.start.x == pytest.approx(96)
        assert segment.start.y == pytest.approx(48)
        assert segment.end.x == pytest.approx(248 - HALF_SIZE - ARROW_PADDING)
        assert segment.end.y == pytest.approx(48)

    def test_diagonal_edge_from_gateway(self):
        source = make_node("g", NodeType.GATEWAY, 0, 0)
        target = make_node("t", NodeType.TASK, 100, 100)

        segment = edge_endpoints(source, target)

        assert segment.start.x == pytest.approx(72)
        assert segment.start.y == pytest.approx(72)
        expected_end = 148 - (HALF_SIZE + ARROW_PADDING) / math.sqrt(2)
        assert segment.end.x == pytest.approx(expected_end)
        assert segment.end.y == pytest.approx(expected_end)

    def test_coincident_nodes_have_no_segment(self):
        source = make_node("a", NodeType.TASK, 10, 10)
        target = make_node("b", NodeType.END, 10, 10)
        assert edge_endpoints(source, target) is None

    def test_preview_to_pointer(self):
        source = make_node("a", NodeType.TASK, 0, 0)

        segment = preview_endpoints(source, Point(148, 48))
        assert segment.start == Point(pytest.approx(96), pytest.approx(48))
        assert segment.end == Point(148, 48)

        assert preview_endpoints(source, Point(48, 48)) is None


class TestDocumentLayout:

    def test_default_workflow_layout(self, document):
        segments = document_layout(document)
        assert [s.edge_id for s in segments] == [edge.id for edge in document.edges]

    def test_dangling_edges_are_skipped(self):
        layout_document = WorkflowDocument(
            nodes=[make_node("a", NodeType.START, 0, 0), make_node("b", NodeType.END, 200, 0)],
            edges=[
                WorkflowEdge(id="ok", source="a", target="b"),
                WorkflowEdge(id="dangling", source="a", target="ghost"),
            ],
        )
        assert [s.edge_id for s in document_layout(layout_document)] == ["ok"]
