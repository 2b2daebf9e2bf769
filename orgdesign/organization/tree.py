"""
Organization tree store.

Owns structural mutation of the node graph. Every mutation is validated
first and commits a fresh ModelState only on success, so a rejected call
leaves nodes, policies and attachments exactly as they were.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import uuid4

from orgdesign.core.state import StateStore
from orgdesign.organization import queries
from orgdesign.organization.layout import (
    PositionConflict, calculate_new_node_position, find_position_conflicts
)
from orgdesign.organization.models import (
    LayoutEdge, LayoutNode, LayoutView, NodeKind, Organization,
    OrganizationLimits, OrganizationNode, Position
)
from orgdesign.policy.defaults import build_default_attachments, build_default_policies
from orgdesign.validation import engine
from orgdesign.validation.models import OperationResult, ValidationErrorKind, ValidationResult, ValidationError

logger = logging.getLogger(__name__)


def generate_node_id() -> str:
    return f"node_{uuid4().hex}"


def generate_org_id() -> str:
    return f"org_{uuid4().hex}"


class TreeStore:
    """
    CRUD and query operations for organization nodes.

    Args:
        state_store: Shared state facade
        default_limits: Limits given to newly created organizations
    """

    def __init__(self, state_store: StateStore, default_limits: Optional[OrganizationLimits] = None):
        self.state_store = state_store
        self.default_limits = default_limits or OrganizationLimits()

    @property
    def organization(self) -> Optional[Organization]:
        return self.state_store.get_state().organization

    # ===== Mutations =====

    def create_organization(self, name: str) -> OperationResult:
        """
        Create a new organization with a root node and the default policies.

        The root sits at (0, 0), carries both default policies and becomes
        the selected node. Any previous organization is replaced.
        """
        root_id = generate_node_id()
        root = OrganizationNode(id=root_id, name=name, kind=NodeKind.ROOT, position=Position(x=0, y=0))
        organization = Organization(
            id=generate_org_id(),
            name=name,
            root_id=root_id,
            nodes={root_id: root},
            limits=self.default_limits.model_copy(deep=True),
        )
        self.state_store.set_state(
            organization=organization,
            policies=build_default_policies(),
            attachments=build_default_attachments(root_id),
            selected_node_id=root_id,
        )
        logger.info(f"Created organization '{name}' ({organization.id})")
        return OperationResult.accepted(subject_id=organization.id)

    def add_node(self, parent_id: str, kind: NodeKind, name: str) -> OperationResult:
        """
        Add a unit or account under ``parent_id``.

        Returns:
            OperationResult whose ``subject_id`` is the new node ID on success
        """
        kind = NodeKind(kind)
        if kind == NodeKind.ROOT:
            return OperationResult.rejected(ValidationResult.from_errors([ValidationError(
                kind=ValidationErrorKind.ROOT_PROTECTION,
                message="An organization has exactly one root node.",
                node_id=parent_id,
            )]))

        state = self.state_store.get_state()
        validation = engine.validate_node_creation(state, parent_id, kind)
        if not validation.is_valid:
            logger.info(f"Rejected {kind.value} '{name}' under {parent_id}: {validation.errors[0].kind.value}")
            return OperationResult.rejected(validation)

        organization = state.organization
        parent = organization.nodes[parent_id]
        now = datetime.now(timezone.utc)
        node = OrganizationNode(
            id=generate_node_id(),
            name=name,
            kind=kind,
            parent_id=parent_id,
            position=calculate_new_node_position(organization, parent, name),
            created_at=now,
            last_modified=now,
        )

        nodes = dict(organization.nodes)
        nodes[node.id] = node
        nodes[parent_id] = parent.model_copy(update={
            "child_ids": parent.child_ids + [node.id],
            "last_modified": now,
        })
        self.state_store.set_state(organization=organization.model_copy(update={"nodes": nodes}))
        logger.debug(f"Added {kind.value} '{name}' ({node.id}) under {parent_id}")
        return OperationResult.accepted(subject_id=node.id)

    def update_node(
        self,
        node_id: str,
        name: Optional[str] = None,
        position: Optional[Position] = None,
    ) -> OperationResult:
        """Update presentational fields of a node; structure is changed via move/delete."""
        state = self.state_store.get_state()
        validation = engine.validate_node_exists(state, node_id)
        if not validation.is_valid:
            return OperationResult.rejected(validation, subject_id=node_id)
        organization = state.organization

        updates: Dict[str, object] = {"last_modified": datetime.now(timezone.utc)}
        if name is not None:
            validation = engine.validate_node_name(name)
            if not validation.is_valid:
                return OperationResult.rejected(validation, subject_id=node_id)
            updates["name"] = name.strip()
        if position is not None:
            updates["position"] = position

        nodes = dict(organization.nodes)
        nodes[node_id] = nodes[node_id].model_copy(update=updates)
        self.state_store.set_state(organization=organization.model_copy(update={"nodes": nodes}))
        return OperationResult.accepted(subject_id=node_id)

    def rename_node(self, node_id: str, new_name: str) -> OperationResult:
        return self.update_node(node_id, name=new_name)

    def update_node_position(self, node_id: str, x: float, y: float) -> OperationResult:
        """Position callback for the layout collaborator."""
        return self.update_node(node_id, position=Position(x=x, y=y))

    def delete_node(self, node_id: str) -> OperationResult:
        """
        Delete a node together with its whole subtree.

        Attachments referencing any removed node are dropped in the same
        commit. The root cannot be deleted.
        """
        state = self.state_store.get_state()
        validation = engine.validate_node_deletion(state, node_id)
        if not validation.is_valid:
            return OperationResult.rejected(validation, subject_id=node_id)

        organization = state.organization
        node = organization.nodes[node_id]
        removed = {node_id, *queries.get_descendant_ids(organization, node_id)}

        nodes = {nid: n for nid, n in organization.nodes.items() if nid not in removed}
        parent = nodes.get(node.parent_id) if node.parent_id else None
        if parent is not None:
            nodes[parent.id] = parent.model_copy(update={
                "child_ids": [cid for cid in parent.child_ids if cid != node_id],
                "last_modified": datetime.now(timezone.utc),
            })

        attachments = [a for a in state.attachments if a.node_id not in removed]
        selected = state.selected_node_id
        if selected is None or selected in removed:
            selected = None

        self.state_store.set_state(
            organization=organization.model_copy(update={"nodes": nodes}),
            attachments=attachments,
            selected_node_id=selected,
        )
        dropped = len(state.attachments) - len(attachments)
        logger.info(f"Deleted node {node_id} and {len(removed) - 1} descendant(s); dropped {dropped} attachment(s)")
        return OperationResult.accepted(subject_id=node_id)

    def move_node(self, node_id: str, new_parent_id: str) -> OperationResult:
        """Re-parent ``node_id`` under ``new_parent_id`` after cycle and limit checks."""
        state = self.state_store.get_state()
        validation = engine.validate_node_move(state, node_id, new_parent_id)
        if not validation.is_valid:
            logger.info(f"Rejected move of {node_id} under {new_parent_id}: {validation.errors[0].kind.value}")
            return OperationResult.rejected(validation, subject_id=node_id)

        organization = state.organization
        node = organization.nodes[node_id]
        old_parent_id = node.parent_id
        if old_parent_id == new_parent_id:
            return OperationResult.accepted(subject_id=node_id)

        now = datetime.now(timezone.utc)
        nodes = dict(organization.nodes)
        old_parent = nodes.get(old_parent_id)
        if old_parent is not None:
            nodes[old_parent_id] = old_parent.model_copy(update={
                "child_ids": [cid for cid in old_parent.child_ids if cid != node_id],
                "last_modified": now,
            })
        new_parent = nodes[new_parent_id]
        nodes[new_parent_id] = new_parent.model_copy(update={
            "child_ids": new_parent.child_ids + [node_id],
            "last_modified": now,
        })
        nodes[node_id] = node.model_copy(update={"parent_id": new_parent_id, "last_modified": now})

        self.state_store.set_state(organization=organization.model_copy(update={"nodes": nodes}))
        logger.debug(f"Moved {node_id} from {old_parent_id} to {new_parent_id}")
        return OperationResult.accepted(subject_id=node_id)

    def select_node(self, node_id: Optional[str]) -> None:
        self.state_store.set_state(selected_node_id=node_id)

    # ===== Queries =====

    def get_node(self, node_id: str) -> Optional[OrganizationNode]:
        organization = self.organization
        return organization.nodes.get(node_id) if organization else None

    def get_children(self, node_id: str) -> List[OrganizationNode]:
        return queries.get_children(self.organization, node_id)

    def get_path(self, node_id: str) -> List[OrganizationNode]:
        return queries.get_path(self.organization, node_id)

    def get_nesting_level(self, node_id: str) -> int:
        return queries.get_nesting_level(self.organization, node_id)

    def get_descendant_ids(self, node_id: str) -> List[str]:
        organization = self.organization
        return queries.get_descendant_ids(organization, node_id) if organization else []

    def is_descendant(self, ancestor_id: str, candidate_id: str) -> bool:
        organization = self.organization
        return queries.is_descendant(organization, ancestor_id, candidate_id) if organization else False

    def get_account_count(self) -> int:
        return queries.count_kind(self.organization, NodeKind.ACCOUNT)

    def get_unit_count(self) -> int:
        return queries.count_kind(self.organization, NodeKind.UNIT)

    def find_nodes_by_name(self, name: str) -> List[OrganizationNode]:
        organization = self.organization
        if organization is None:
            return []
        wanted = name.strip().lower()
        return [n for n in organization.nodes.values() if n.name.strip().lower() == wanted]

    def layout_view(self) -> LayoutView:
        """Node and edge read view for the auto-layout collaborator."""
        organization = self.organization
        if organization is None:
            return LayoutView()
        nodes = [
            LayoutNode(id=n.id, parent_id=n.parent_id, position=n.position.model_copy())
            for n in organization.nodes.values()
        ]
        edges = [
            LayoutEdge(source=n.parent_id, target=n.id)
            for n in organization.nodes.values()
            if n.parent_id
        ]
        return LayoutView(nodes=nodes, edges=edges)

    def find_position_conflicts(self) -> List[PositionConflict]:
        organization = self.organization
        return find_position_conflicts(organization) if organization else []
