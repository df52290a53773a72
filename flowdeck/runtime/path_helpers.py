"""Path helpers for per-run storage.

Provides filename sanitization and the path layout for run artifacts:

    <runs_dir>/
      <run_id>/
        progress.md            # append-only cumulative step log
        step-outputs/
          <step_id>.md         # one artifact per completed step (or declared filename)

Usage:
    from flowdeck.runtime.path_helpers import (
        sanitize_filename,
        ensure_safe_run_id,
        run_dir,
        progress_path,
        step_outputs_dir,
        step_output_path,
    )
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional

from .errors import InvalidRunIdError

# Directory and file names
PROGRESS_FILE = "progress.md"
STEP_OUTPUTS_DIR = "step-outputs"
STEP_OUTPUT_EXT = ".md"

# Maximum filename length in bytes (common filesystem limit)
MAX_FILENAME_BYTES = 255

_ILLEGAL_RE = re.compile(r'[/?<>\\:*|"]')
_CONTROL_RE = re.compile(r"[\x00-\x1f\x80-\x9f]")
_RESERVED_RE = re.compile(r"^\.+$")
_WINDOWS_RESERVED_RE = re.compile(r"^(con|prn|aux|nul|com[0-9]|lpt[0-9])(\..*)?$", re.IGNORECASE)
_WINDOWS_TRAILING_RE = re.compile(r"[. ]+$")


def sanitize_filename(name: str) -> str:
    """Strip characters and names that are unsafe as a single path component.

    Removes path separators and other reserved characters, control
    characters, dot-only names ("." and ".."), Windows device names and
    trailing dots/spaces, then truncates to 255 bytes. The result may be
    empty.

    Examples:
        >>> sanitize_filename("plan.yaml")
        'plan.yaml'
        >>> sanitize_filename("../../etc/passwd")
        '....etcpasswd'
        >>> sanitize_filename("..")
        ''
    """
    cleaned = _ILLEGAL_RE.sub("", name)
    cleaned = _CONTROL_RE.sub("", cleaned)
    cleaned = _RESERVED_RE.sub("", cleaned)
    cleaned = _WINDOWS_RESERVED_RE.sub("", cleaned)
    cleaned = _WINDOWS_TRAILING_RE.sub("", cleaned)

    encoded = cleaned.encode("utf-8")
    if len(encoded) > MAX_FILENAME_BYTES:
        cleaned = encoded[:MAX_FILENAME_BYTES].decode("utf-8", errors="ignore")
    return cleaned


def ensure_safe_run_id(run_id: str) -> str:
    """Return run_id unchanged if it is a safe directory name.

    Raises:
        InvalidRunIdError: If sanitization empties or alters the ID.
    """
    safe = sanitize_filename(run_id)
    if not safe or safe != run_id:
        raise InvalidRunIdError(run_id)
    return safe


def run_dir(runs_dir: Path, run_id: str) -> Path:
    """Get the directory for a run after validating its ID.

    Example:
        >>> run_dir(Path("/data/runs"), "run-20251208-143022-abc123")
        PosixPath('/data/runs/run-20251208-143022-abc123')
    """
    return Path(runs_dir) / ensure_safe_run_id(run_id)


def progress_path(runs_dir: Path, run_id: str) -> Path:
    """Path to a run's progress log: <runs_dir>/<run_id>/progress.md"""
    return run_dir(runs_dir, run_id) / PROGRESS_FILE


def step_outputs_dir(runs_dir: Path, run_id: str) -> Path:
    """Path to a run's step artifact directory: <runs_dir>/<run_id>/step-outputs"""
    return run_dir(runs_dir, run_id) / STEP_OUTPUTS_DIR


def step_output_filename(step_id: str, filename: Optional[str] = None) -> str:
    """Choose the artifact filename for a step.

    Uses the declared filename when given (only its final component), else
    ``<step_id>.md``. Falls back to the default when sanitization leaves
    nothing usable.
    """
    default = f"{step_id}{STEP_OUTPUT_EXT}"
    candidate = Path(filename).name if filename else default
    return sanitize_filename(candidate) or sanitize_filename(default) or "step-output.md"


def step_output_path(
    runs_dir: Path,
    run_id: str,
    step_id: str,
    filename: Optional[str] = None,
) -> Path:
    """Path to a step artifact: <runs_dir>/<run_id>/step-outputs/<file>"""
    return step_outputs_dir(runs_dir, run_id) / step_output_filename(step_id, filename)
