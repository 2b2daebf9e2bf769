"""
Validation engine.

Side-effect free checks that gate every structural and policy mutation.
Each function receives the current ModelState and returns a
ValidationResult; nothing here raises for a rejected proposal.
"""

import json
import logging
from collections import Counter
from typing import Dict, List, Optional

from orgdesign.core.state import ModelState
from orgdesign.organization.models import NodeKind, Organization
from orgdesign.organization.queries import (
    count_kind, find_cycle, get_nesting_level, is_descendant, unit_subtree_depth
)
from orgdesign.policy.defaults import DEFAULT_POLICY_IDS, get_policy_config, is_default_policy
from orgdesign.policy.inheritance import get_direct_policies, is_attached
from orgdesign.policy.models import PolicyKind
from orgdesign.validation.models import (
    ValidationError, ValidationErrorKind, ValidationResult
)

logger = logging.getLogger(__name__)

Kind = ValidationErrorKind


def _error(kind: ValidationErrorKind, message: str, **details) -> ValidationError:
    return ValidationError(kind=kind, message=message, **details)


def _missing_organization(**details) -> ValidationResult:
    return ValidationResult.from_errors([
        _error(Kind.ORGANIZATION_MISSING, "No organization exists. Create an organization first.", **details)
    ])


def _unknown_node(node_id: str) -> ValidationError:
    return _error(Kind.NODE_NOT_FOUND, f"Node '{node_id}' does not exist.", node_id=node_id)


# ===== Structural checks =====

def validate_node_creation(state: ModelState, parent_id: str, kind: NodeKind) -> ValidationResult:
    """
    Check whether a node of ``kind`` may be created under ``parent_id``.

    Only units are bounded by nesting depth; accounts are leaves and are
    always structurally permitted.
    """
    organization = state.organization
    if organization is None:
        return _missing_organization(node_id=parent_id)
    if parent_id not in organization.nodes:
        return ValidationResult.from_errors([_unknown_node(parent_id)])

    errors: List[ValidationError] = []
    limits = organization.limits

    if NodeKind(kind) == NodeKind.UNIT:
        parent_level = get_nesting_level(organization, parent_id)
        if parent_level >= limits.max_nesting_levels:
            errors.append(_error(
                Kind.NESTING_LIMIT_EXCEEDED,
                f"Cannot create organizational unit. Maximum nesting level reached "
                f"({limits.max_nesting_levels} levels under root).",
                node_id=parent_id,
                current_count=parent_level,
                max_allowed=limits.max_nesting_levels,
            ))

    return ValidationResult.from_errors(errors)


def validate_node_move(state: ModelState, node_id: str, new_parent_id: str) -> ValidationResult:
    """
    Check whether ``node_id`` may be re-parented under ``new_parent_id``.

    The move must not touch the root, must not create a cycle and must pass
    the same checks as creating a node of the moved kind under the new
    parent. A moved unit also carries its own unit descendants down with it.
    """
    organization = state.organization
    if organization is None:
        return _missing_organization(node_id=node_id)

    missing = [_unknown_node(nid) for nid in (node_id, new_parent_id) if nid not in organization.nodes]
    if missing:
        return ValidationResult.from_errors(missing)

    node = organization.nodes[node_id]
    if node.kind == NodeKind.ROOT:
        return ValidationResult.from_errors([
            _error(Kind.ROOT_PROTECTION, "The root node cannot be moved.", node_id=node_id)
        ])
    if node_id == new_parent_id or is_descendant(organization, node_id, new_parent_id):
        return ValidationResult.from_errors([
            _error(
                Kind.CYCLE_DETECTED,
                "A node cannot be moved under itself or one of its descendants.",
                node_id=node_id,
            )
        ])

    result = validate_node_creation(state, new_parent_id, node.kind)
    if not result.is_valid or node.kind != NodeKind.UNIT:
        return result

    limits = organization.limits
    deepest = get_nesting_level(organization, new_parent_id) + 1 + unit_subtree_depth(organization, node_id)
    if deepest > limits.max_nesting_levels:
        return ValidationResult.from_errors([
            _error(
                Kind.NESTING_LIMIT_EXCEEDED,
                f"Moving this organizational unit would nest its descendants {deepest} levels "
                f"under root (maximum {limits.max_nesting_levels}).",
                node_id=node_id,
                current_count=deepest,
                max_allowed=limits.max_nesting_levels,
            )
        ])
    return result


def validate_node_exists(state: ModelState, node_id: str) -> ValidationResult:
    if state.organization is None:
        return _missing_organization(node_id=node_id)
    if node_id not in state.organization.nodes:
        return ValidationResult.from_errors([_unknown_node(node_id)])
    return ValidationResult.success()


def validate_node_deletion(state: ModelState, node_id: str) -> ValidationResult:
    result = validate_node_exists(state, node_id)
    if not result.is_valid:
        return result
    node = state.organization.nodes[node_id]
    if node.kind == NodeKind.ROOT:
        return ValidationResult.from_errors([
            _error(Kind.ROOT_PROTECTION, "The root node cannot be deleted.", node_id=node_id)
        ])
    return ValidationResult.success()


def validate_node_name(name: str) -> ValidationResult:
    if not name or not name.strip():
        return ValidationResult.from_errors([_error(Kind.INVALID_NODE_NAME, "Node name cannot be empty.")])
    return ValidationResult.success()


# ===== Policy checks =====

def validate_policy_attachment(state: ModelState, node_id: str, policy_id: str) -> ValidationResult:
    """Check count and size limits before attaching ``policy_id`` to ``node_id``."""
    organization = state.organization
    if organization is None:
        return _missing_organization(node_id=node_id, policy_id=policy_id)

    policy = state.policies.get(policy_id)
    if policy is None:
        return ValidationResult.from_errors([
            _error(Kind.POLICY_NOT_FOUND, "Policy not found.", node_id=node_id, policy_id=policy_id)
        ])
    if node_id not in organization.nodes:
        return ValidationResult.from_errors([_unknown_node(node_id)])

    errors: List[ValidationError] = []
    limits = organization.limits
    abbreviation = get_policy_config(policy.kind).abbreviation

    if is_attached(state.attachments, node_id, policy_id):
        errors.append(_error(
            Kind.POLICY_LIMIT_EXCEEDED,
            "Policy is already attached to this node.",
            node_id=node_id,
            policy_id=policy_id,
        ))

    attached_count = len(get_direct_policies(state.policies, state.attachments, node_id, policy.kind))
    max_policies = limits.policies_per_node(policy.kind)
    if attached_count >= max_policies:
        errors.append(_error(
            Kind.POLICY_LIMIT_EXCEEDED,
            f"Cannot attach {abbreviation}. Maximum {abbreviation}s per node limit reached ({max_policies}).",
            node_id=node_id,
            policy_id=policy_id,
            current_count=attached_count,
            max_allowed=max_policies,
        ))

    if len(policy.content) > limits.max_policy_size:
        errors.append(_error(
            Kind.POLICY_SIZE_EXCEEDED,
            f"Policy content exceeds maximum size limit ({limits.max_policy_size} characters).",
            node_id=node_id,
            policy_id=policy_id,
            current_count=len(policy.content),
            max_allowed=limits.max_policy_size,
        ))

    return ValidationResult.from_errors(errors)


def validate_policy_detachment(state: ModelState, node_id: str, policy_id: str) -> ValidationResult:
    """Detachment requires an existing attachment and never strips a default from the root."""
    organization = state.organization
    if organization is None:
        return _missing_organization(node_id=node_id, policy_id=policy_id)
    if policy_id not in state.policies:
        return ValidationResult.from_errors([
            _error(Kind.POLICY_NOT_FOUND, "Policy not found.", node_id=node_id, policy_id=policy_id)
        ])

    errors: List[ValidationError] = []
    if not is_attached(state.attachments, node_id, policy_id):
        errors.append(_error(
            Kind.POLICY_NOT_ATTACHED,
            "Policy is not attached to this node.",
            node_id=node_id,
            policy_id=policy_id,
        ))

    if node_id == organization.root_id and is_default_policy(policy_id):
        errors.append(_error(
            Kind.DEFAULT_POLICY_PROTECTION,
            "Default policies cannot be removed from the root node",
            node_id=node_id,
            policy_id=policy_id,
        ))

    return ValidationResult.from_errors(errors)


def validate_policy_name(
    state: ModelState,
    name: str,
    kind: PolicyKind,
    exclude_policy_id: Optional[str] = None,
) -> ValidationResult:
    """Names are required and unique per kind (trimmed, case-insensitive)."""
    if not name or not name.strip():
        return ValidationResult.from_errors([_error(Kind.EMPTY_POLICY_NAME, "Policy name cannot be empty.")])

    normalized = name.strip().lower()
    kind = PolicyKind(kind)
    for policy in state.policies.values():
        if policy.kind != kind or policy.id == exclude_policy_id:
            continue
        if policy.name.strip().lower() == normalized:
            return ValidationResult.from_errors([_error(
                Kind.DUPLICATE_POLICY_NAME,
                f"A {get_policy_config(kind).name} with this name already exists. "
                f"Please choose a different name.",
                policy_id=policy.id,
            )])
    return ValidationResult.success()


def validate_policy_content(state: ModelState, content: str) -> ValidationResult:
    """Content must parse as JSON and fit the organization's size limit."""
    errors: List[ValidationError] = []
    try:
        json.loads(content)
    except (TypeError, ValueError):
        errors.append(_error(Kind.INVALID_POLICY_JSON, "Policy content must be valid JSON."))

    organization = state.organization
    if organization is not None and content is not None and len(content) > organization.limits.max_policy_size:
        errors.append(_error(
            Kind.POLICY_SIZE_EXCEEDED,
            f"Policy content exceeds maximum size limit ({organization.limits.max_policy_size} characters).",
            current_count=len(content),
            max_allowed=organization.limits.max_policy_size,
        ))
    return ValidationResult.from_errors(errors)


# ===== Whole-organization audits =====

def validate_account_limits(state: ModelState) -> ValidationResult:
    organization = state.organization
    if organization is None:
        return _missing_organization()
    current = count_kind(organization, NodeKind.ACCOUNT)
    maximum = organization.limits.max_accounts
    if current > maximum:
        return ValidationResult.from_errors([_error(
            Kind.ACCOUNT_LIMIT_EXCEEDED,
            f"Account limit exceeded. Current: {current}, Maximum: {maximum}.",
            current_count=current,
            max_allowed=maximum,
        )])
    return ValidationResult.success()


def validate_unit_limits(state: ModelState) -> ValidationResult:
    organization = state.organization
    if organization is None:
        return _missing_organization()
    current = count_kind(organization, NodeKind.UNIT)
    maximum = organization.limits.max_units
    if current > maximum:
        return ValidationResult.from_errors([_error(
            Kind.UNIT_LIMIT_EXCEEDED,
            f"Organizational Unit limit exceeded. Current: {current}, Maximum: {maximum}.",
            current_count=current,
            max_allowed=maximum,
        )])
    return ValidationResult.success()


def validate_nesting_limits(state: ModelState, node_id: str) -> ValidationResult:
    organization = state.organization
    if organization is None:
        return _missing_organization(node_id=node_id)
    node = organization.nodes.get(node_id)
    if node is None:
        return ValidationResult.from_errors([_unknown_node(node_id)])
    if node.kind != NodeKind.UNIT:
        return ValidationResult.success()

    level = get_nesting_level(organization, node_id)
    maximum = organization.limits.max_nesting_levels
    if level > maximum:
        return ValidationResult.from_errors([_error(
            Kind.NESTING_LIMIT_EXCEEDED,
            f"Nesting level limit exceeded for node. Current: {level}, Maximum: {maximum}.",
            node_id=node_id,
            current_count=level,
            max_allowed=maximum,
        )])
    return ValidationResult.success()


def validate_policy_limits(state: ModelState, node_id: str, kind: PolicyKind) -> ValidationResult:
    organization = state.organization
    if organization is None:
        return _missing_organization(node_id=node_id)
    kind = PolicyKind(kind)
    current = len(get_direct_policies(state.policies, state.attachments, node_id, kind))
    maximum = organization.limits.policies_per_node(kind)
    if current > maximum:
        abbreviation = get_policy_config(kind).abbreviation
        return ValidationResult.from_errors([_error(
            Kind.POLICY_LIMIT_EXCEEDED,
            f"{abbreviation} limit exceeded for node. Current: {current}, Maximum: {maximum}.",
            node_id=node_id,
            current_count=current,
            max_allowed=maximum,
        )])
    return ValidationResult.success()


def validate_default_policy_requirements(state: ModelState, node_id: str) -> ValidationResult:
    organization = state.organization
    if organization is None:
        return _missing_organization(node_id=node_id)
    if node_id != organization.root_id:
        return ValidationResult.success()

    errors = []
    for policy_id in sorted(DEFAULT_POLICY_IDS):
        if policy_id not in state.policies:
            errors.append(_error(
                Kind.DEFAULT_POLICY_PROTECTION,
                f"Default policy '{policy_id}' must be present in the organization.",
                node_id=node_id,
                policy_id=policy_id,
            ))
        elif not is_attached(state.attachments, node_id, policy_id):
            errors.append(_error(
                Kind.DEFAULT_POLICY_PROTECTION,
                f"Default policy '{policy_id}' must be attached to the root node.",
                node_id=node_id,
                policy_id=policy_id,
            ))
    return ValidationResult.from_errors(errors)


def validate_node_compliance(state: ModelState, node_id: str) -> ValidationResult:
    organization = state.organization
    if organization is None:
        return _missing_organization(node_id=node_id)
    if node_id not in organization.nodes:
        return ValidationResult.from_errors([_unknown_node(node_id)])

    errors: List[ValidationError] = []
    errors.extend(validate_nesting_limits(state, node_id).errors)
    for kind in PolicyKind:
        errors.extend(validate_policy_limits(state, node_id, kind).errors)
    errors.extend(validate_default_policy_requirements(state, node_id).errors)
    return ValidationResult.from_errors(errors)


def _tree_integrity_errors(organization: Organization) -> List[ValidationError]:
    errors: List[ValidationError] = []

    roots = [n.id for n in organization.nodes.values() if n.kind == NodeKind.ROOT]
    if roots != [organization.root_id]:
        errors.append(_error(
            Kind.INCONSISTENT_TREE,
            f"Organization must have exactly one root node '{organization.root_id}', found {roots}.",
        ))

    for node in organization.nodes.values():
        if node.kind != NodeKind.ROOT:
            parent = organization.nodes.get(node.parent_id) if node.parent_id else None
            if parent is None:
                errors.append(_error(
                    Kind.INCONSISTENT_TREE,
                    f"Node '{node.id}' references a missing parent.",
                    node_id=node.id,
                ))
            elif node.id not in parent.child_ids:
                errors.append(_error(
                    Kind.INCONSISTENT_TREE,
                    f"Node '{node.id}' is missing from its parent's children.",
                    node_id=node.id,
                ))
        for child_id in node.child_ids:
            child = organization.nodes.get(child_id)
            if child is None or child.parent_id != node.id:
                errors.append(_error(
                    Kind.INCONSISTENT_TREE,
                    f"Child '{child_id}' of node '{node.id}' does not point back to it.",
                    node_id=node.id,
                ))

    cycle_node = find_cycle(organization)
    if cycle_node is not None:
        errors.append(_error(
            Kind.CYCLE_DETECTED,
            "The organization tree contains a cycle.",
            node_id=cycle_node,
        ))
    return errors


def validate_organization_structure(state: ModelState) -> ValidationResult:
    """Audit the whole organization: counts, tree integrity and per-node compliance."""
    organization = state.organization
    if organization is None:
        return _missing_organization()

    errors: List[ValidationError] = []
    errors.extend(validate_account_limits(state).errors)
    errors.extend(validate_unit_limits(state).errors)
    errors.extend(_tree_integrity_errors(organization))
    for node_id in organization.nodes:
        errors.extend(validate_node_compliance(state, node_id).errors)

    warnings = []
    dangling = [a for a in state.attachments if a.node_id not in organization.nodes or a.policy_id not in state.policies]
    if dangling:
        warnings.append(f"{len(dangling)} attachment(s) reference missing nodes or policies.")

    result = ValidationResult.from_errors(errors, warnings)
    logger.debug(f"Organization audit: {len(errors)} error(s), {len(warnings)} warning(s)")
    return result


def summarize_errors(errors: List[ValidationError]) -> Dict[str, object]:
    """Total plus a per-kind count covering every known kind."""
    counts = Counter(error.kind for error in errors)
    return {
        "total": len(errors),
        "by_kind": {kind.value: counts.get(kind, 0) for kind in ValidationErrorKind},
    }
