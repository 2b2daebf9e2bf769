"""
Policy package for orgdesign.

This package provides:
- Pydantic models for policies, attachments and inheritance views
- The reserved default full-access policies
- Inheritance resolution over the organization tree
- The PolicyStore managing definitions and attachments
"""

from .models import (
    Policy, PolicyKind, PolicyAttachment, InheritedPolicy,
    InheritedPolicyView, NodePolicyData, PolicyRef
)
from .defaults import (
    DEFAULT_SCP_ID, DEFAULT_RCP_ID, DEFAULT_POLICY_IDS,
    get_policy_config, is_default_policy
)

__all__ = [
    "Policy", "PolicyKind", "PolicyAttachment", "InheritedPolicy",
    "InheritedPolicyView", "NodePolicyData", "PolicyRef", "DEFAULT_SCP_ID",
    "DEFAULT_RCP_ID", "DEFAULT_POLICY_IDS", "get_policy_config",
    "is_default_policy"
]
