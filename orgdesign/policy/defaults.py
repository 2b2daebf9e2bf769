"""
Shared policy configuration and the reserved default policies.

Every organization carries one protected full-access policy of each kind,
attached to its root. They use fixed IDs so that loaders can detect and
restore them.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List

from orgdesign.policy.models import Policy, PolicyAttachment, PolicyKind


@dataclass(frozen=True)
class PolicyConfig:
    name: str
    plural: str
    abbreviation: str
    default_content: str


POLICY_CONFIG: Dict[PolicyKind, PolicyConfig] = {
    PolicyKind.SCP: PolicyConfig(
        name="Service Control Policy",
        plural="Service Control Policies",
        abbreviation="SCP",
        default_content=(
            '{\n  "Version": "2012-10-17",\n  "Statement": [\n    {\n'
            '      "Effect": "Deny",\n      "Action": "*",\n      "Resource": "*"\n'
            "    }\n  ]\n}"
        ),
    ),
    PolicyKind.RCP: PolicyConfig(
        name="Resource Control Policy",
        plural="Resource Control Policies",
        abbreviation="RCP",
        default_content=(
            '{\n  "Version": "2012-10-17",\n  "Statement": [\n    {\n'
            '      "Effect": "Allow",\n      "Principal": "*",\n      "Action": "*",\n'
            '      "Resource": "*"\n    }\n  ]\n}'
        ),
    ),
}


def get_policy_config(kind: PolicyKind) -> PolicyConfig:
    return POLICY_CONFIG[PolicyKind(kind)]


DEFAULT_SCP_ID = "default-scp-full-access"
DEFAULT_RCP_ID = "default-rcp-full-access"

DEFAULT_POLICY_IDS = frozenset({DEFAULT_SCP_ID, DEFAULT_RCP_ID})

# Canonical definitions: id -> (name, kind, content)
_DEFAULT_POLICIES = {
    DEFAULT_SCP_ID: (
        "FullAWSAccess",
        PolicyKind.SCP,
        '{"Version": "2012-10-17","Statement": [{"Effect": "Allow","Action": "*","Resource": "*"}]}',
    ),
    DEFAULT_RCP_ID: (
        "RCPFullAWSAccess",
        PolicyKind.RCP,
        '{"Version": "2012-10-17","Statement": [{"Effect": "Allow","Principal": "*","Action": "*","Resource": "*"}]}',
    ),
}


def is_default_policy(policy_id: str) -> bool:
    return policy_id in DEFAULT_POLICY_IDS


def build_default_policy(policy_id: str) -> Policy:
    """Create a fresh instance of one of the reserved default policies."""
    name, kind, content = _DEFAULT_POLICIES[policy_id]
    now = datetime.now(timezone.utc)
    return Policy(id=policy_id, name=name, kind=kind, content=content, created_at=now, last_modified=now)


def build_default_policies() -> Dict[str, Policy]:
    return {policy_id: build_default_policy(policy_id) for policy_id in _DEFAULT_POLICIES}


def build_default_attachments(root_id: str) -> List[PolicyAttachment]:
    return [PolicyAttachment(policy_id=policy_id, node_id=root_id) for policy_id in _DEFAULT_POLICIES]
