"""Tool policy types for role-based tool access."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# Allowed-list entry that grants every tool.
WILDCARD_TOOL = "*"


@dataclass
class ToolPolicy:
    """Access rules for an agent role.

    Attributes:
        role: Role name (normalized to trimmed lower-case for storage keys).
        allowed: Tool names the role may use; ``*`` grants all tools.
        denied: Tool names the role may never use; wins over ``allowed``.
        description: Human-readable description.
    """

    role: str
    allowed: List[str] = field(default_factory=list)
    denied: List[str] = field(default_factory=list)
    description: Optional[str] = None

    @property
    def allows_all(self) -> bool:
        return WILDCARD_TOOL in self.allowed


def normalize_role(role: str) -> str:
    """Normalize a role name into its storage key."""
    return role.strip().lower()


def tool_policy_to_dict(policy: ToolPolicy) -> Dict[str, Any]:
    """Convert ToolPolicy to its persisted record shape."""
    data: Dict[str, Any] = {
        "role": policy.role,
        "allowed": list(policy.allowed),
        "denied": list(policy.denied),
    }
    if policy.description is not None:
        data["description"] = policy.description
    return data


def tool_policy_from_dict(data: Dict[str, Any]) -> ToolPolicy:
    """Parse ToolPolicy from a record that has already been validated."""
    return ToolPolicy(
        role=data["role"],
        allowed=list(data.get("allowed", [])),
        denied=list(data.get("denied", [])),
        description=data.get("description"),
    )
