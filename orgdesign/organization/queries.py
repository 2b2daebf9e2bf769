"""
Read-only tree queries over an Organization.

These helpers never mutate their input. Ancestor walks are bounded by the
node count so that a corrupted (cyclic) graph terminates instead of looping.
"""

from typing import Dict, List, Optional, Set

from orgdesign.organization.models import NodeKind, Organization, OrganizationNode


def get_path(organization: Optional[Organization], node_id: str) -> List[OrganizationNode]:
    """Return the ordered path root -> ... -> node, or [] for unknown ids."""
    if organization is None or node_id not in organization.nodes:
        return []

    path: List[OrganizationNode] = []
    seen: Set[str] = set()
    current: Optional[OrganizationNode] = organization.nodes[node_id]
    while current is not None and current.id not in seen:
        seen.add(current.id)
        path.append(current)
        current = organization.nodes.get(current.parent_id) if current.parent_id else None
    path.reverse()
    return path


def get_nesting_level(organization: Optional[Organization], node_id: str) -> int:
    """Root is level 0; unknown nodes report 0."""
    return max(0, len(get_path(organization, node_id)) - 1)


def get_children(organization: Optional[Organization], node_id: str) -> List[OrganizationNode]:
    if organization is None or node_id not in organization.nodes:
        return []
    node = organization.nodes[node_id]
    return [organization.nodes[cid] for cid in node.child_ids if cid in organization.nodes]


def get_descendant_ids(organization: Organization, node_id: str) -> List[str]:
    """Depth-first list of every descendant id (excluding ``node_id``)."""
    collected: List[str] = []
    seen: Set[str] = {node_id}
    stack = list(reversed(organization.nodes[node_id].child_ids)) if node_id in organization.nodes else []
    while stack:
        current = stack.pop()
        if current in seen:
            continue
        seen.add(current)
        collected.append(current)
        node = organization.nodes.get(current)
        if node is not None:
            stack.extend(reversed(node.child_ids))
    return collected


def is_descendant(organization: Organization, ancestor_id: str, candidate_id: str) -> bool:
    """True when ``candidate_id`` sits somewhere below ``ancestor_id``."""
    seen: Set[str] = set()
    node = organization.nodes.get(candidate_id)
    while node is not None and node.parent_id and node.id not in seen:
        if node.parent_id == ancestor_id:
            return True
        seen.add(node.id)
        node = organization.nodes.get(node.parent_id)
    return False


def unit_subtree_depth(organization: Organization, node_id: str) -> int:
    """
    Deepest chain of units strictly below ``node_id``.

    Accounts are leaves and never add depth.
    """
    depths: Dict[str, int] = {}
    for descendant_id in reversed(get_descendant_ids(organization, node_id)):
        node = organization.nodes.get(descendant_id)
        if node is None or node.kind != NodeKind.UNIT:
            continue
        depths[descendant_id] = 1 + max((depths.get(cid, 0) for cid in node.child_ids), default=0)
    root = organization.nodes.get(node_id)
    if root is None:
        return 0
    return max((depths.get(cid, 0) for cid in root.child_ids), default=0)


def count_kind(organization: Optional[Organization], kind: NodeKind) -> int:
    if organization is None:
        return 0
    return sum(1 for node in organization.nodes.values() if node.kind == kind)


def find_cycle(organization: Organization) -> Optional[str]:
    """Return the id of a node that sits on a parent cycle, if any."""
    for node_id in organization.nodes:
        seen: Set[str] = set()
        current = organization.nodes.get(node_id)
        while current is not None and current.parent_id:
            if current.id in seen:
                return current.id
            seen.add(current.id)
            current = organization.nodes.get(current.parent_id)
    return None
