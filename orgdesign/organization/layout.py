"""
Cosmetic placement of newly created nodes.

Real layout belongs to an external auto-layout collaborator; this only
seeds a reasonable position so a fresh node does not land on top of an
existing one. Nothing here is an invariant.
"""

from dataclasses import dataclass
from typing import List

from orgdesign.organization.models import Organization, OrganizationNode, Position

RANK_SEPARATION = 160
MIN_HORIZONTAL_GAP = 60


@dataclass(frozen=True)
class PositionConflict:
    first_id: str
    second_id: str
    distance: float
    min_distance: float


def estimate_node_width(name: str) -> float:
    """Rough rendered width: 10px per character plus padding, 180px minimum."""
    return max(180, len(name) * 10 + 120)


def _right_of(node: OrganizationNode, new_width: float) -> float:
    return node.position.x + estimate_node_width(node.name) / 2 + MIN_HORIZONTAL_GAP + new_width / 2


def calculate_new_node_position(organization: Organization, parent: OrganizationNode, name: str) -> Position:
    """
    Place a new child one rank below ``parent``.

    The first child is centered under the parent; later children go to the
    right of the rightmost sibling and, when needed, to the right of any
    other node already occupying the same rank.
    """
    base_y = parent.position.y + RANK_SEPARATION
    siblings = [organization.nodes[cid] for cid in parent.child_ids if cid in organization.nodes]
    if not siblings:
        return Position(x=parent.position.x, y=base_y)

    new_width = estimate_node_width(name)
    rightmost = max(siblings, key=lambda n: n.position.x)
    x = _right_of(rightmost, new_width)

    conflicts = [
        node for node in organization.nodes.values()
        if abs(node.position.y - base_y) < RANK_SEPARATION / 2
        and node.id != parent.id
        and node.id not in parent.child_ids
    ]
    if conflicts:
        rightmost_conflict = max(conflicts, key=lambda n: n.position.x)
        x = max(x, _right_of(rightmost_conflict, new_width))

    return Position(x=x, y=base_y)


def find_position_conflicts(
    organization: Organization,
    node_width: float = 280,
    min_horizontal_spacing: float = 120,
    min_vertical_spacing: float = 160,
) -> List[PositionConflict]:
    """Pairs of non parent/child nodes closer than the minimum spacing."""
    conflicts: List[PositionConflict] = []
    nodes = list(organization.nodes.values())
    for i, first in enumerate(nodes):
        for second in nodes[i + 1:]:
            if first.parent_id == second.id or second.parent_id == first.id:
                continue
            dx = abs(first.position.x - second.position.x)
            dy = abs(first.position.y - second.position.y)
            if dy < min_vertical_spacing / 2 and dx < min_horizontal_spacing:
                conflicts.append(PositionConflict(first.id, second.id, dx, min_horizontal_spacing))
            if dx < node_width / 2 and dy < min_vertical_spacing:
                conflicts.append(PositionConflict(first.id, second.id, dy, min_vertical_spacing))
    return conflicts
