"""
Tool policy endpoints for the flowdeck API.

Provides REST endpoints for:
- Listing, reading, saving and deleting role tool policies
- Resolving a role's session tool filter
- Checking whether a role may use a tool
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from flowdeck.config.tool_policies import (
    DEFAULT_ROLES,
    PolicyInvalidError,
    PolicyLimitExceededError,
    PolicyNotFoundError,
    PolicyProtectedError,
    ToolPolicyError,
    ToolPolicyStore,
)
from flowdeck.runtime.types import ToolPolicy, normalize_role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tool-policies", tags=["tool-policies"])


# =============================================================================
# Pydantic Models
# =============================================================================


class ToolPolicyModel(BaseModel):
    """A role's tool policy as returned by the API."""

    role: str
    allowed: List[str] = Field(default_factory=list)
    denied: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    is_default: bool = False


class ToolPolicyListResponse(BaseModel):
    """Response for GET /api/tool-policies."""

    policies: List[ToolPolicyModel]


class ToolPolicyUpdateRequest(BaseModel):
    """Request body for PUT /api/tool-policies/{role}."""

    allowed: List[str] = Field(default_factory=list, description="Tools the role may use ('*' for all)")
    denied: List[str] = Field(default_factory=list, description="Tools the role may never use")
    description: Optional[str] = Field(default=None, description="Human-readable description")


class ToolFilterResponse(BaseModel):
    """Response for GET /api/tool-policies/{role}/filter."""

    role: str
    filter: Dict[str, List[str]]


class ToolAccessResponse(BaseModel):
    """Response for GET /api/tool-policies/{role}/access/{tool}."""

    role: str
    tool: str
    allowed: bool


class DeletePolicyResponse(BaseModel):
    """Response for DELETE /api/tool-policies/{role}."""

    success: bool
    role: str


# =============================================================================
# Helper Functions
# =============================================================================


def _get_store(request: Request) -> ToolPolicyStore:
    return request.app.state.policy_store


def _to_model(policy: ToolPolicy) -> ToolPolicyModel:
    return ToolPolicyModel(
        role=policy.role,
        allowed=list(policy.allowed),
        denied=list(policy.denied),
        description=policy.description,
        is_default=normalize_role(policy.role) in DEFAULT_ROLES,
    )


_ERROR_STATUS = {
    PolicyInvalidError: (400, "policy_invalid"),
    PolicyProtectedError: (403, "policy_protected"),
    PolicyNotFoundError: (404, "policy_not_found"),
    PolicyLimitExceededError: (409, "policy_limit_exceeded"),
}


def _policy_http_error(e: ToolPolicyError, role: str) -> HTTPException:
    """Map a store error onto an HTTPException with the standard error body."""
    status_code, error = _ERROR_STATUS.get(type(e), (500, "policy_error"))
    return HTTPException(
        status_code=status_code,
        detail={
            "error": error,
            "message": str(e),
            "details": {"role": role},
        },
    )


def _not_found(role: str) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={
            "error": "policy_not_found",
            "message": f"Tool policy not found: {role}",
            "details": {"role": role},
        },
    )


# =============================================================================
# Endpoints
# =============================================================================


@router.get("", response_model=ToolPolicyListResponse)
async def list_policies(request: Request):
    """List every stored tool policy.

    Raises:
        400: If a stored policy record is malformed.
    """
    try:
        policies = _get_store(request).list()
    except ToolPolicyError as e:
        logger.error("Failed to list tool policies: %s", e, exc_info=True)
        raise _policy_http_error(e, role="*")

    return ToolPolicyListResponse(policies=[_to_model(p) for p in policies])


@router.get("/{role}", response_model=ToolPolicyModel)
async def get_policy(role: str, request: Request):
    """Get the tool policy for a role.

    Raises:
        404: If the role has no policy.
        400: If the stored record is malformed.
    """
    try:
        policy = _get_store(request).get(role)
    except ToolPolicyError as e:
        logger.error("Failed to load tool policy %s: %s", role, e, exc_info=True)
        raise _policy_http_error(e, role=role)

    if policy is None:
        raise _not_found(role)
    return _to_model(policy)


@router.put("/{role}", response_model=ToolPolicyModel)
async def save_policy(role: str, body: ToolPolicyUpdateRequest, request: Request):
    """Create or replace the tool policy for a role.

    Raises:
        400: If the policy fails validation (e.g. a tool both allowed and denied).
        409: If creating the role would exceed the policy limit.
    """
    policy = ToolPolicy(
        role=role,
        allowed=list(body.allowed),
        denied=list(body.denied),
        description=body.description,
    )
    try:
        saved = _get_store(request).save(policy)
    except ToolPolicyError as e:
        logger.error("Failed to save tool policy %s: %s", role, e, exc_info=True)
        raise _policy_http_error(e, role=role)

    return _to_model(saved)


@router.delete("/{role}", response_model=DeletePolicyResponse)
async def delete_policy(role: str, request: Request):
    """Delete a custom tool policy.

    Raises:
        403: If the role is one of the default roles.
        404: If the role has no policy.
    """
    try:
        _get_store(request).delete(role)
    except ToolPolicyError as e:
        logger.error("Failed to delete tool policy %s: %s", role, e, exc_info=True)
        raise _policy_http_error(e, role=role)

    return DeletePolicyResponse(success=True, role=normalize_role(role))


@router.get("/{role}/filter", response_model=ToolFilterResponse)
async def get_tool_filter(role: str, request: Request):
    """Get the tool filter a session for this role would receive."""
    try:
        tool_filter = _get_store(request).tool_filter_for_role(role)
    except ToolPolicyError as e:
        logger.error("Failed to resolve tool filter for %s: %s", role, e, exc_info=True)
        raise _policy_http_error(e, role=role)

    return ToolFilterResponse(role=normalize_role(role), filter=tool_filter)


@router.get("/{role}/access/{tool}", response_model=ToolAccessResponse)
async def check_tool_access(role: str, tool: str, request: Request):
    """Check whether a role may use a tool."""
    try:
        allowed = _get_store(request).resolve_tool_access(role, tool)
    except ToolPolicyError as e:
        logger.error("Failed to resolve tool access for %s/%s: %s", role, tool, e, exc_info=True)
        raise _policy_http_error(e, role=role)

    return ToolAccessResponse(role=normalize_role(role), tool=tool, allowed=allowed)
