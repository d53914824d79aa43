"""Connector geometry for drawing workflow edges.

Nodes occupy a 96x96 box anchored at their position. Edges are drawn
between node boundaries rather than centres: round nodes have a constant
radius, Gateway nodes are diamonds whose radius at angle θ is
``L / (|cos θ| + |sin θ|)`` with ``L`` the half side of the box.
"""

import math
from typing import Dict, List, NamedTuple, Optional

from ..models.workflow import NodeType, WorkflowDocument, WorkflowNode

NODE_SIZE = 96
HALF_SIZE = NODE_SIZE / 2
ARROW_PADDING = 5


class Point(NamedTuple):
    x: float
    y: float


class Segment(NamedTuple):
    edge_id: str
    start: Point
    end: Point


def node_center(node: WorkflowNode, half_size: float = HALF_SIZE) -> Point:
    return Point(node.position.x + half_size, node.position.y + half_size)


def connector_radius(node_type: NodeType, angle: float, half_size: float = HALF_SIZE) -> float:
    """Distance from a node's centre to its boundary in direction ``angle`` (radians)."""
    if node_type == NodeType.GATEWAY:
        return half_size / (abs(math.cos(angle)) + abs(math.sin(angle)))
    return half_size


def edge_endpoints(source: WorkflowNode, target: WorkflowNode,
                   arrow_padding: float = ARROW_PADDING) -> Optional[Segment]:
    """Boundary-to-boundary segment between two nodes, or None if their centres coincide.

    The end point is pulled back by ``arrow_padding`` so an arrow head fits.
    """
    source_center = node_center(source)
    target_center = node_center(target)
    dx = target_center.x - source_center.x
    dy = target_center.y - source_center.y
    if dx == 0 and dy == 0:
        return None

    angle = math.atan2(dy, dx)
    distance = math.hypot(dx, dy)
    ux, uy = dx / distance, dy / distance

    source_radius = connector_radius(source.type, angle)
    target_radius = connector_radius(target.type, angle + math.pi)

    start = Point(source_center.x + ux * source_radius, source_center.y + uy * source_radius)
    end = Point(
        target_center.x - ux * (target_radius + arrow_padding),
        target_center.y - uy * (target_radius + arrow_padding),
    )
    return Segment("", start, end)


def preview_endpoints(source: WorkflowNode, pointer: Point) -> Optional[Segment]:
    """Segment from a node's boundary to the pointer while a connection is being dragged."""
    center = node_center(source)
    dx = pointer.x - center.x
    dy = pointer.y - center.y
    distance = math.hypot(dx, dy)
    if distance == 0:
        return None
    angle = math.atan2(dy, dx)
    radius = connector_radius(source.type, angle)
    start = Point(center.x + dx / distance * radius, center.y + dy / distance * radius)
    return Segment("", start, Point(pointer.x, pointer.y))


def document_layout(document: WorkflowDocument) -> List[Segment]:
    """Segments for every drawable edge; edges with missing or coincident nodes are skipped."""
    nodes: Dict[str, WorkflowNode] = {node.id: node for node in document.nodes}
    segments = []
    for edge in document.edges:
        source = nodes.get(edge.source)
        target = nodes.get(edge.target)
        if source is None or target is None:
            continue
        segment = edge_endpoints(source, target)
        if segment is not None:
            segments.append(segment._replace(edge_id=edge.id))
    return segments
