"""
flowdeck API - FastAPI REST API for tool policies and run artifacts.

Endpoints:
    GET    /api/health                              - Health check
    GET    /api/tool-policies                       - List policies
    GET    /api/tool-policies/{role}                - Get policy
    PUT    /api/tool-policies/{role}                - Create or replace policy
    DELETE /api/tool-policies/{role}                - Delete custom policy
    GET    /api/tool-policies/{role}/filter         - Session tool filter for role
    GET    /api/tool-policies/{role}/access/{tool}  - Check tool access
    GET    /api/runs/{run_id}/progress              - Run progress log
    GET    /api/runs/{run_id}/step-outputs          - List step artifacts
    GET    /api/runs/{run_id}/step-outputs/{file}   - Read step artifact
"""

from .server import create_app

__all__ = ["create_app"]
