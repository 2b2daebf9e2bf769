"""
Policy data models.

Policies are named JSON governance documents of one of two kinds. They are
linked to organization nodes through attachment records and inherited by
every descendant of the node they are attached to.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class PolicyKind(str, Enum):
    """Policy kind enumeration."""
    SCP = "scp"
    RCP = "rcp"


class Policy(BaseModel):
    """Service Control Policy or Resource Control Policy."""
    id: str = Field(description="Unique policy identifier")
    name: str = Field(description="Display name")
    kind: PolicyKind = Field(description="Policy kind")
    content: str = Field(description="JSON policy document text")
    description: Optional[str] = Field(default=None, description="Optional free text description")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_modified: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PolicyAttachment(BaseModel):
    """Direct link between one policy and one node."""
    policy_id: str = Field(description="Attached policy ID")
    node_id: str = Field(description="Target node ID")
    attached_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class InheritedPolicy(BaseModel):
    """A policy in effect on a node through one of its ancestors."""
    policy: Policy
    inherited_from: str = Field(description="ID of the topmost ancestor carrying the policy")


class InheritedPolicyView(BaseModel):
    """Direct, inherited and effective policies for a single node."""
    node_id: str
    direct: List[Policy] = Field(default_factory=list)
    inherited: List[InheritedPolicy] = Field(default_factory=list)
    effective: List[Policy] = Field(default_factory=list)

    def direct_of(self, kind: PolicyKind) -> List[Policy]:
        return [p for p in self.direct if p.kind == kind]

    def inherited_of(self, kind: PolicyKind) -> List[InheritedPolicy]:
        return [item for item in self.inherited if item.policy.kind == kind]

    def effective_of(self, kind: PolicyKind) -> List[Policy]:
        return [p for p in self.effective if p.kind == kind]

    def source_of(self, policy_id: str) -> Optional[str]:
        """Return the ancestor a policy is inherited from, if any."""
        for item in self.inherited:
            if item.policy.id == policy_id:
                return item.inherited_from
        return None


class PolicyRef(BaseModel):
    """Lightweight policy reference used by display caches."""
    id: str
    name: str


class NodePolicyData(BaseModel):
    """Policies directly attached to one node, grouped by kind."""
    node_id: str
    policies: Dict[PolicyKind, List[PolicyRef]] = Field(default_factory=dict)

    @property
    def scps(self) -> List[PolicyRef]:
        return self.policies.get(PolicyKind.SCP, [])

    @property
    def rcps(self) -> List[PolicyRef]:
        return self.policies.get(PolicyKind.RCP, [])
