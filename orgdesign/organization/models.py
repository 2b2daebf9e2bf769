"""
Organization data models.

Defines the node tree (root, organizational units and accounts), the
organization container and the structural and policy limits that bound it.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from orgdesign.policy.models import PolicyKind


class NodeKind(str, Enum):
    """Organization node kind."""
    ROOT = "root"
    UNIT = "unit"
    ACCOUNT = "account"


class Position(BaseModel):
    """Canvas position used by the layout collaborator."""
    x: float = 0.0
    y: float = 0.0


class OrganizationNode(BaseModel):
    """Single entry in the organization tree."""
    id: str = Field(description="Unique node identifier")
    name: str = Field(description="Display name")
    kind: NodeKind = Field(description="Node kind")
    parent_id: Optional[str] = Field(default=None, description="Parent node ID (None for root)")
    child_ids: List[str] = Field(default_factory=list, description="Ordered child node IDs")
    position: Position = Field(default_factory=Position)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_modified: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def _default_policy_limits() -> Dict[PolicyKind, int]:
    return {PolicyKind.SCP: 5, PolicyKind.RCP: 5}


class OrganizationLimits(BaseModel):
    """Structural and policy growth limits."""
    max_accounts: int = Field(default=10, ge=0)
    max_units: int = Field(default=2000, ge=0)
    max_nesting_levels: int = Field(default=5, ge=0, description="Maximum unit levels under root")
    max_policies_per_node: Dict[PolicyKind, int] = Field(default_factory=_default_policy_limits)
    max_policy_size: int = Field(default=5120, ge=0, description="Maximum policy content length")

    def policies_per_node(self, kind: PolicyKind) -> int:
        return self.max_policies_per_node.get(PolicyKind(kind), 0)

    @classmethod
    def from_settings(cls, settings) -> "OrganizationLimits":
        return cls(
            max_accounts=settings.MAX_ACCOUNTS,
            max_units=settings.MAX_UNITS,
            max_nesting_levels=settings.MAX_NESTING_LEVELS,
            max_policies_per_node={
                PolicyKind.SCP: settings.MAX_SCPS_PER_NODE,
                PolicyKind.RCP: settings.MAX_RCPS_PER_NODE,
            },
            max_policy_size=settings.MAX_POLICY_SIZE,
        )


class Organization(BaseModel):
    """Complete organization structure."""
    id: str
    name: str
    root_id: str
    nodes: Dict[str, OrganizationNode] = Field(default_factory=dict)
    limits: OrganizationLimits = Field(default_factory=OrganizationLimits)

    @property
    def root(self) -> Optional[OrganizationNode]:
        return self.nodes.get(self.root_id)


class LayoutNode(BaseModel):
    """Read view of a node for the external auto-layout collaborator."""
    id: str
    parent_id: Optional[str]
    position: Position


class LayoutEdge(BaseModel):
    source: str
    target: str


class LayoutView(BaseModel):
    nodes: List[LayoutNode] = Field(default_factory=list)
    edges: List[LayoutEdge] = Field(default_factory=list)
