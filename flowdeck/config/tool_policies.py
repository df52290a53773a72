"""Tool policy store for role-based agent tool access.

Provides:
1. Default policies for the standard agent roles
2. A file-backed store (one JSON record per role) with a read-through cache
3. Tool access resolution and session tool filters for a role

Policies are stored in: <policies_dir>/<role>.json, keyed by the trimmed,
lower-cased role name. Every record is validated against
``flowdeck/schemas/tool_policy.schema.json`` on save and on load, and a
policy's allowed and denied lists must not overlap.

Usage:
    from flowdeck.config.tool_policies import ToolPolicyStore

    store = ToolPolicyStore(Path(".flowdeck/tool-policies"))
    store.resolve_tool_access("planner", "Write")   # False
    store.tool_filter_for_role("reviewer")          # {"allowed": [...], "denied": [...]}
"""

from __future__ import annotations

import dataclasses
import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import jsonschema

from flowdeck.config.runtime_config import get_max_tool_policies, get_tool_policies_dir
from flowdeck.runtime.storage import atomic_write_text
from flowdeck.runtime.types import (
    WILDCARD_TOOL,
    ToolPolicy,
    normalize_role,
    tool_policy_from_dict,
    tool_policy_to_dict,
)

logger = logging.getLogger(__name__)

_SCHEMA_PATH = Path(__file__).parent.parent / "schemas" / "tool_policy.schema.json"
_POLICY_SCHEMA: Optional[Dict[str, Any]] = None

RECORD_SUFFIX = ".json"


# =============================================================================
# Error Types
# =============================================================================


class ToolPolicyError(Exception):
    """Base exception for tool policy store errors."""

    pass


class PolicyInvalidError(ToolPolicyError):
    """Raised when a policy (saved or loaded from disk) fails validation."""

    def __init__(self, message: str, role: Optional[str] = None):
        self.role = role
        super().__init__(f"Invalid tool policy: {message}")


class PolicyLimitExceededError(ToolPolicyError):
    """Raised when creating a new role would exceed the policy limit."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(
            f"Maximum policy limit ({limit}) reached. "
            "Delete unused policies before creating new ones."
        )


class PolicyProtectedError(ToolPolicyError):
    """Raised when deleting one of the default role policies."""

    def __init__(self, role: str):
        self.role = role
        super().__init__(
            f"Cannot delete default policy: {role}. "
            "Default policies can only be modified, not deleted."
        )


class PolicyNotFoundError(ToolPolicyError):
    """Raised when deleting a role that has no stored policy."""

    def __init__(self, role: str):
        self.role = role
        super().__init__(f"Tool policy not found: {role}")


# =============================================================================
# Default Policies
# =============================================================================

DEFAULT_POLICIES: List[ToolPolicy] = [
    ToolPolicy(
        role="planner",
        allowed=["Read", "web_search", "web_fetch", "browser", "image", "nodes"],
        denied=["Write", "Edit", "exec", "message"],
        description=(
            "Read-only access for planning and analysis. Can search and browse, "
            "but cannot modify files or execute commands."
        ),
    ),
    ToolPolicy(
        role="developer",
        allowed=[WILDCARD_TOOL],
        denied=[],
        description=(
            "Full access to all tools. Can read, write, execute commands, "
            "and use all available capabilities."
        ),
    ),
    ToolPolicy(
        role="reviewer",
        allowed=["Read", "exec", "web_search", "web_fetch", "browser", "image", "nodes"],
        denied=["Write", "Edit", "message"],
        description=(
            "Read and execute access for code review. Can run tests and checks, "
            "but cannot modify the code being reviewed."
        ),
    ),
    ToolPolicy(
        role="tester",
        allowed=["Read", "exec", "browser", "web_search", "web_fetch", "image", "nodes"],
        denied=["Write", "Edit", "message"],
        description=(
            "Read, execute, and browser access for testing. Can run tests and "
            "interact with UIs, but cannot modify source code."
        ),
    ),
    ToolPolicy(
        role="deployer",
        allowed=[WILDCARD_TOOL],
        denied=[],
        description=(
            "Full access for deployment operations. Can execute deployment scripts, "
            "modify configs, and interact with production systems."
        ),
    ),
]

DEFAULT_ROLES = frozenset(p.role for p in DEFAULT_POLICIES)


# =============================================================================
# Validation
# =============================================================================


def _load_policy_schema() -> Dict[str, Any]:
    """Load the tool policy JSON schema, caching result."""
    global _POLICY_SCHEMA
    if _POLICY_SCHEMA is None:
        with open(_SCHEMA_PATH, "r", encoding="utf-8") as f:
            _POLICY_SCHEMA = json.load(f)
    return _POLICY_SCHEMA


def validate_policy_record(data: Any) -> None:
    """Validate a policy record's structure and constraints.

    Checks the JSON schema (role 1-50 chars, string lists of at most 100
    entries, description at most 500 chars), that the role is not blank,
    and that no tool is both allowed and denied.

    Raises:
        PolicyInvalidError: Describing the first problem found. Overlaps
            list every overlapping tool name.
    """
    validator = jsonschema.Draft7Validator(_load_policy_schema())
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path))
    role = data.get("role") if isinstance(data, dict) else None
    if errors:
        first = errors[0]
        location = ".".join(str(p) for p in first.absolute_path) or "policy"
        raise PolicyInvalidError(f"{location}: {first.message}", role=role)

    if not data["role"].strip():
        raise PolicyInvalidError("Policy must have a role name", role=role)

    denied = set(data["denied"])
    overlap = [tool for tool in dict.fromkeys(data["allowed"]) if tool in denied]
    if overlap:
        raise PolicyInvalidError(
            f"Tools cannot be both allowed and denied: {', '.join(overlap)}", role=role
        )


# =============================================================================
# Store
# =============================================================================


def _copy_policy(policy: ToolPolicy) -> ToolPolicy:
    # Cached records are never shared with callers.
    return dataclasses.replace(policy, allowed=list(policy.allowed), denied=list(policy.denied))

class ToolPolicyStore:
    """File-backed store of tool policies with a read-through cache.

    Default role policies are cached and written to disk on construction
    unless a record already exists; existing records (user overrides of a
    default role) are left untouched and loaded lazily.

    Args:
        policies_dir: Directory for policy records. Defaults to the
            configured tool-policies directory.
        max_policies: Maximum number of distinct policy records. Defaults to
            the configured limit.
    """

    def __init__(self, policies_dir: Optional[Path] = None, max_policies: Optional[int] = None):
        self._policies_dir = Path(policies_dir) if policies_dir is not None else get_tool_policies_dir()
        self._max_policies = max_policies if max_policies is not None else get_max_tool_policies()
        self._cache: Dict[str, ToolPolicy] = {}
        self._lock = threading.RLock()

        self._policies_dir.mkdir(parents=True, exist_ok=True)
        self._load_defaults()

    @property
    def policies_dir(self) -> Path:
        return self._policies_dir

    def _record_path(self, normalized_role: str) -> Path:
        return self._policies_dir / f"{normalized_role}{RECORD_SUFFIX}"

    def _record_paths(self) -> List[Path]:
        return [p for p in self._policies_dir.iterdir() if p.is_file() and p.suffix == RECORD_SUFFIX]

    def _write_record(self, normalized_role: str, policy: ToolPolicy) -> None:
        content = json.dumps(tool_policy_to_dict(policy), indent=2, ensure_ascii=False) + "\n"
        atomic_write_text(self._record_path(normalized_role), content)

    def _load_defaults(self) -> None:
        """Cache default policies and persist any that have no record yet."""
        with self._lock:
            for policy in DEFAULT_POLICIES:
                if self._record_path(policy.role).exists():
                    continue
                self._write_record(policy.role, policy)
                self._cache[policy.role] = _copy_policy(policy)
                logger.info("Created default tool policy: %s", policy.role)

    def clear_cache(self) -> None:
        """Drop cached policies and re-run default bootstrapping (for testing)."""
        with self._lock:
            self._cache.clear()
            self._load_defaults()

    def get(self, role: str) -> Optional[ToolPolicy]:
        """Get the policy for a role.

        Args:
            role: Role name (case-insensitive, surrounding whitespace ignored).

        Returns:
            The ToolPolicy, or None if no record exists.

        Raises:
            PolicyInvalidError: If the stored record is malformed.
        """
        normalized = normalize_role(role)
        with self._lock:
            cached = self._cache.get(normalized)
            if cached is not None:
                return _copy_policy(cached)

            path = self._record_path(normalized)
            try:
                content = path.read_text(encoding="utf-8")
            except FileNotFoundError:
                logger.debug("Tool policy not found: %s", normalized)
                return None

            try:
                data = json.loads(content)
            except json.JSONDecodeError as e:
                logger.error("Failed to load tool policy %s from %s: %s", normalized, path, e)
                raise PolicyInvalidError(f"{path.name} is not valid JSON: {e}", role=normalized) from e

            validate_policy_record(data)
            policy = tool_policy_from_dict(data)
            self._cache[normalized] = policy
            logger.info("Tool policy loaded: %s", normalized)
            return _copy_policy(policy)

    def list(self) -> List[ToolPolicy]:
        """List all stored policies, in directory enumeration order.

        Raises:
            PolicyInvalidError: If any stored record is malformed.
        """
        policies: List[ToolPolicy] = []
        for path in self._record_paths():
            policy = self.get(path.stem)
            if policy is not None:
                policies.append(policy)

        logger.info("Listed %d tool policies", len(policies))
        return policies

    def save(self, policy: ToolPolicy) -> ToolPolicy:
        """Create or overwrite the policy for a role.

        Validation happens before anything is written, so a rejected policy
        leaves the stored record and the cache unchanged.

        Returns:
            The saved policy.

        Raises:
            PolicyInvalidError: If the policy fails validation.
            PolicyLimitExceededError: If the role is new and the store is full.
        """
        validate_policy_record(tool_policy_to_dict(policy))
        normalized = normalize_role(policy.role)

        with self._lock:
            path = self._record_path(normalized)
            is_new = normalized not in self._cache and not path.exists()
            if is_new and len(self._record_paths()) >= self._max_policies:
                raise PolicyLimitExceededError(self._max_policies)

            self._write_record(normalized, policy)
            self._cache[normalized] = _copy_policy(policy)

        logger.info("Tool policy saved: %s", normalized)
        return policy

    def delete(self, role: str) -> None:
        """Delete a custom policy.

        Raises:
            PolicyProtectedError: If the role is one of the default roles.
            PolicyNotFoundError: If no record exists for the role.
        """
        normalized = normalize_role(role)
        if normalized in DEFAULT_ROLES:
            raise PolicyProtectedError(normalized)

        with self._lock:
            try:
                self._record_path(normalized).unlink()
            except FileNotFoundError:
                self._cache.pop(normalized, None)
                raise PolicyNotFoundError(normalized) from None
            self._cache.pop(normalized, None)

        logger.info("Tool policy deleted: %s", normalized)

    def resolve_tool_access(self, role: str, tool: str) -> bool:
        """Decide whether a role may use a tool.

        Without a policy for the role every tool is allowed (and a warning
        is logged). With one, the denied list wins, then ``*``, then
        membership in the allowed list.
        """
        policy = self.get(role)
        if policy is None:
            logger.warning("No tool policy for role '%s' - allowing tool '%s'", role, tool)
            return True

        if tool in policy.denied:
            return False
        if policy.allows_all:
            return True
        return tool in policy.allowed

    def tool_filter_for_role(self, role: str) -> Dict[str, List[str]]:
        """Build the tool filter handed to the session runtime for a role.

        Returns:
            ``{}`` when the role has no policy. Otherwise ``denied`` is
            included when non-empty and ``allowed`` when non-empty and free
            of the ``*`` wildcard.
        """
        policy = self.get(role)
        if policy is None:
            return {}

        tool_filter: Dict[str, List[str]] = {}
        if policy.denied:
            tool_filter["denied"] = list(policy.denied)
        if policy.allowed and not policy.allows_all:
            tool_filter["allowed"] = list(policy.allowed)
        return tool_filter


__all__ = [
    "ToolPolicyStore",
    "ToolPolicyError",
    "PolicyInvalidError",
    "PolicyLimitExceededError",
    "PolicyProtectedError",
    "PolicyNotFoundError",
    "DEFAULT_POLICIES",
    "DEFAULT_ROLES",
    "validate_policy_record",
]
