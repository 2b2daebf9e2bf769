"""
Policy store.

Holds policy definitions and their attachments to organization nodes, and
keeps two display caches in step with the model: per-node policy data for
overlays and memoized inheritance trails.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from orgdesign.core.state import ModelState, StateStore
from orgdesign.policy.defaults import is_default_policy
from orgdesign.policy.inheritance import (
    build_inheritance_trail, collect_node_policy_data, get_direct_policies,
    is_attached, resolve_inherited_view
)
from orgdesign.policy.models import (
    InheritedPolicyView, NodePolicyData, Policy, PolicyAttachment, PolicyKind
)
from orgdesign.validation import engine
from orgdesign.validation.models import (
    OperationResult, ValidationError, ValidationErrorKind, ValidationResult
)

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = {"name", "content", "description"}


def generate_policy_id() -> str:
    return f"policy_{uuid4().hex}"


def _policy_not_found(policy_id: str) -> ValidationResult:
    return ValidationResult.from_errors([ValidationError(
        kind=ValidationErrorKind.POLICY_NOT_FOUND,
        message="Policy not found.",
        policy_id=policy_id,
    )])


class PolicyStore:
    """
    Policy CRUD, attachment management and inheritance queries.

    The store subscribes to the shared StateStore so that its display caches
    are rebuilt after any commit, including wholesale replacement by import,
    restore or clear.
    """

    def __init__(self, state_store: StateStore):
        self.state_store = state_store
        self.all_nodes_policy_data: List[NodePolicyData] = []
        self._trail_cache: Dict[str, List[NodePolicyData]] = {}
        self.refresh_all_nodes_policy_data()
        self._unsubscribe = state_store.subscribe(self._on_state_change)

    def _on_state_change(self, new: ModelState, previous: ModelState) -> None:
        if (
            new.organization is previous.organization
            and new.policies is previous.policies
            and new.attachments is previous.attachments
        ):
            return
        self.refresh_all_nodes_policy_data()
        self.clear_inheritance_trail_cache()

    def close(self) -> None:
        self._unsubscribe()

    @property
    def policies(self) -> Dict[str, Policy]:
        return self.state_store.get_state().policies

    @property
    def attachments(self) -> List[PolicyAttachment]:
        return self.state_store.get_state().attachments

    # ===== Policy definitions =====

    def create_policy(
        self,
        name: str,
        kind: PolicyKind,
        content: str,
        description: Optional[str] = None,
    ) -> str:
        """
        Create a policy and return its ID.

        Names and content are not validated here; callers run
        validate_policy_name / validate_policy_content first.
        """
        now = datetime.now(timezone.utc)
        policy = Policy(
            id=generate_policy_id(),
            name=name,
            kind=PolicyKind(kind),
            content=content,
            description=description,
            created_at=now,
            last_modified=now,
        )
        policies = dict(self.policies)
        policies[policy.id] = policy
        self.state_store.set_state(policies=policies)
        logger.debug(f"Created {policy.kind.value} policy '{name}' ({policy.id})")
        return policy.id

    def update_policy(self, policy_id: str, **fields: Any) -> OperationResult:
        """
        Update name, content or description of a policy.

        Raises:
            TypeError: If a field other than name, content or description is given.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise TypeError(f"Cannot update policy fields: {sorted(unknown)}")

        policy = self.policies.get(policy_id)
        if policy is None:
            return OperationResult.rejected(_policy_not_found(policy_id), subject_id=policy_id)

        fields["last_modified"] = datetime.now(timezone.utc)
        policies = dict(self.policies)
        policies[policy_id] = policy.model_copy(update=fields)
        self.state_store.set_state(policies=policies)
        return OperationResult.accepted(subject_id=policy_id)

    def delete_policy(self, policy_id: str) -> OperationResult:
        """Delete a policy and every attachment that references it."""
        if policy_id not in self.policies:
            return OperationResult.rejected(_policy_not_found(policy_id), subject_id=policy_id)
        if is_default_policy(policy_id):
            return OperationResult.rejected(ValidationResult.from_errors([ValidationError(
                kind=ValidationErrorKind.DEFAULT_POLICY_PROTECTION,
                message="Default policies cannot be deleted.",
                policy_id=policy_id,
            )]), subject_id=policy_id)

        policies = {pid: p for pid, p in self.policies.items() if pid != policy_id}
        attachments = [a for a in self.attachments if a.policy_id != policy_id]
        dropped = len(self.attachments) - len(attachments)
        self.state_store.set_state(policies=policies, attachments=attachments)
        logger.info(f"Deleted policy {policy_id}; dropped {dropped} attachment(s)")
        return OperationResult.accepted(subject_id=policy_id)

    # ===== Attachments =====

    def attach_policy(self, node_id: str, policy_id: str) -> OperationResult:
        state = self.state_store.get_state()
        validation = engine.validate_policy_attachment(state, node_id, policy_id)
        if not validation.is_valid:
            logger.info(f"Rejected attach of {policy_id} to {node_id}: {validation.errors[0].kind.value}")
            return OperationResult.rejected(validation, subject_id=policy_id)

        attachments = list(state.attachments)
        attachments.append(PolicyAttachment(policy_id=policy_id, node_id=node_id))
        self.state_store.set_state(attachments=attachments)
        logger.debug(f"Attached {policy_id} to {node_id}")
        return OperationResult.accepted(subject_id=policy_id)

    def detach_policy(self, node_id: str, policy_id: str) -> OperationResult:
        state = self.state_store.get_state()
        validation = engine.validate_policy_detachment(state, node_id, policy_id)
        if not validation.is_valid:
            logger.info(f"Rejected detach of {policy_id} from {node_id}: {validation.errors[0].kind.value}")
            return OperationResult.rejected(validation, subject_id=policy_id)

        attachments = [
            a for a in state.attachments
            if not (a.node_id == node_id and a.policy_id == policy_id)
        ]
        self.state_store.set_state(attachments=attachments)
        logger.debug(f"Detached {policy_id} from {node_id}")
        return OperationResult.accepted(subject_id=policy_id)

    # ===== Queries =====

    def get_policy(self, policy_id: str) -> Optional[Policy]:
        return self.policies.get(policy_id)

    def get_policies_by_kind(self, kind: PolicyKind) -> List[Policy]:
        kind = PolicyKind(kind)
        return [p for p in self.policies.values() if p.kind == kind]

    def get_direct_policies(self, node_id: str, kind: Optional[PolicyKind] = None) -> List[Policy]:
        return get_direct_policies(self.policies, self.attachments, node_id, kind)

    def get_direct_attachments(self, node_id: str) -> List[PolicyAttachment]:
        return [a for a in self.attachments if a.node_id == node_id]

    def is_attached(self, node_id: str, policy_id: str) -> bool:
        return is_attached(self.attachments, node_id, policy_id)

    def can_detach(self, node_id: str, policy_id: str) -> bool:
        return engine.validate_policy_detachment(self.state_store.get_state(), node_id, policy_id).is_valid

    def is_name_taken(self, name: str, kind: PolicyKind, exclude_policy_id: Optional[str] = None) -> bool:
        result = engine.validate_policy_name(self.state_store.get_state(), name, kind, exclude_policy_id)
        return result.has_kind(ValidationErrorKind.DUPLICATE_POLICY_NAME)

    def get_inherited_view(self, node_id: str) -> InheritedPolicyView:
        state = self.state_store.get_state()
        return resolve_inherited_view(state.organization, state.policies, state.attachments, node_id)

    # ===== Display caches =====

    def refresh_all_nodes_policy_data(self) -> List[NodePolicyData]:
        state = self.state_store.get_state()
        self.all_nodes_policy_data = collect_node_policy_data(state.organization, state.policies, state.attachments)
        return self.all_nodes_policy_data

    def get_inheritance_trail(self, node_id: str) -> List[NodePolicyData]:
        """Policy-carrying nodes from the root down to ``node_id``, memoized per node."""
        cached = self._trail_cache.get(node_id)
        if cached is not None:
            return cached
        state = self.state_store.get_state()
        trail = build_inheritance_trail(state.organization, state.policies, state.attachments, node_id)
        self._trail_cache[node_id] = trail
        return trail

    def clear_inheritance_trail_cache(self) -> None:
        self._trail_cache.clear()
