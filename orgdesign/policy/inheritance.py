"""
Policy attachment lookups and inheritance resolution.

All functions here are read-only views over the policy map, the attachment
list and the organization tree. Attachments whose policy no longer exists
are ignored.
"""

from typing import Dict, Iterable, List, Optional

from orgdesign.organization.models import Organization, OrganizationNode
from orgdesign.organization.queries import get_path
from orgdesign.policy.models import (
    InheritedPolicy, InheritedPolicyView, NodePolicyData, Policy,
    PolicyAttachment, PolicyKind, PolicyRef
)


def get_direct_policies(
    policies: Dict[str, Policy],
    attachments: Iterable[PolicyAttachment],
    node_id: str,
    kind: Optional[PolicyKind] = None,
) -> List[Policy]:
    """Policies attached directly to ``node_id`` in attachment order."""
    result = []
    for attachment in attachments:
        if attachment.node_id != node_id:
            continue
        policy = policies.get(attachment.policy_id)
        if policy is None:
            continue
        if kind is not None and policy.kind != kind:
            continue
        result.append(policy)
    return result


def is_attached(attachments: Iterable[PolicyAttachment], node_id: str, policy_id: str) -> bool:
    return any(a.node_id == node_id and a.policy_id == policy_id for a in attachments)


def resolve_inherited_view(
    organization: Optional[Organization],
    policies: Dict[str, Policy],
    attachments: List[PolicyAttachment],
    node_id: str,
) -> InheritedPolicyView:
    """
    Resolve the direct, inherited and effective policies of a node.

    Ancestors strictly above the node are visited from the root down to the
    parent. A policy is recorded once and attributed to the first (topmost)
    ancestor that carries it; closer ancestors holding the same policy do
    not change the attribution. Effective policies are the direct ones
    followed by inherited ones not already direct, deduplicated by id.

    Args:
        organization: Organization the node belongs to
        policies: All policies by ID
        attachments: All attachment records
        node_id: Node to resolve

    Returns:
        InheritedPolicyView for the node
    """
    path = get_path(organization, node_id)
    direct = get_direct_policies(policies, attachments, node_id)

    inherited: List[InheritedPolicy] = []
    recorded = set()
    for ancestor in path[:-1]:
        for policy in get_direct_policies(policies, attachments, ancestor.id):
            if policy.id in recorded:
                continue
            recorded.add(policy.id)
            inherited.append(InheritedPolicy(policy=policy, inherited_from=ancestor.id))

    effective: List[Policy] = []
    seen = set()
    for policy in direct + [item.policy for item in inherited]:
        if policy.id in seen:
            continue
        seen.add(policy.id)
        effective.append(policy)

    return InheritedPolicyView(node_id=node_id, direct=direct, inherited=inherited, effective=effective)


def _node_policy_data(
    node: OrganizationNode,
    policies: Dict[str, Policy],
    attachments: List[PolicyAttachment],
) -> Optional[NodePolicyData]:
    attached = get_direct_policies(policies, attachments, node.id)
    if not attached:
        return None
    grouped: Dict[PolicyKind, List[PolicyRef]] = {kind: [] for kind in PolicyKind}
    for policy in attached:
        grouped[policy.kind].append(PolicyRef(id=policy.id, name=policy.name))
    return NodePolicyData(node_id=node.id, policies=grouped)


def collect_node_policy_data(
    organization: Optional[Organization],
    policies: Dict[str, Policy],
    attachments: List[PolicyAttachment],
) -> List[NodePolicyData]:
    """Every node with at least one attached policy, for overlay rendering."""
    if organization is None:
        return []
    result = []
    for node in organization.nodes.values():
        data = _node_policy_data(node, policies, attachments)
        if data is not None:
            result.append(data)
    return result


def build_inheritance_trail(
    organization: Optional[Organization],
    policies: Dict[str, Policy],
    attachments: List[PolicyAttachment],
    node_id: str,
) -> List[NodePolicyData]:
    """Policy-carrying nodes on the path root -> node, the node included."""
    trail = []
    for node in get_path(organization, node_id):
        data = _node_policy_data(node, policies, attachments)
        if data is not None:
            trail.append(data)
    return trail
