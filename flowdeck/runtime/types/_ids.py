"""ID types and generators for the types package.

Provides run ID generation plus type aliases.
"""

from __future__ import annotations

import secrets
import string
from datetime import datetime, timezone

# Type aliases
RunId = str
StepId = str


def generate_run_id() -> RunId:
    """Generate a unique workflow run ID.

    Creates IDs in the format: run-YYYYMMDD-HHMMSS-xxxxxx
    where xxxxxx is a random 6-character alphanumeric suffix. The format
    only uses filename-safe characters, so generated IDs always pass run ID
    sanitization.

    Returns:
        A unique run identifier string.

    Example:
        >>> run_id = generate_run_id()
        >>> run_id  # e.g., "run-20251208-143022-abc123"
    """
    now = datetime.now(timezone.utc)
    timestamp = now.strftime("%Y%m%d-%H%M%S")
    suffix = "".join(secrets.choice(string.ascii_lowercase + string.digits) for _ in range(6))
    return f"run-{timestamp}-{suffix}"
