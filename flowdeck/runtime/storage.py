"""
storage.py - Disk I/O for per-run progress logs and step artifacts.

The storage layout is:

    <runs_dir>/
      <run_id>/
        progress.md          # append-only, size-bounded step log
        step-outputs/
          <file>             # one artifact per completed step

Progress entries have the shape:

    ## Step: <step_id> (<ISO timestamp>)

    <output>

    ---

Once progress.md grows past the size ceiling, further appends are skipped
with a warning instead of raising. The size check and the append are two
separate operations; that is only safe while a run has a single writer,
which the sequential step model guarantees.

Usage:
    from flowdeck.runtime.storage import (
        MAX_PROGRESS_FILE_SIZE,
        read_progress, append_progress,
        write_step_output, read_step_output, list_step_outputs,
    )
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

from .path_helpers import progress_path, step_output_path, step_outputs_dir
from .types import _datetime_to_iso, _utcnow

# Module logger
logger = logging.getLogger(__name__)

# Hard ceiling for progress.md (10 MiB)
MAX_PROGRESS_FILE_SIZE = 10 * 1024 * 1024

PROGRESS_ENTRY_TEMPLATE = "## Step: {step_id} ({timestamp})\n\n{output}\n\n---\n\n"


def _render_output(output: Any) -> str:
    """Text form of a step output: strings verbatim, everything else as indented JSON."""
    if isinstance(output, str):
        return output
    return json.dumps(output, indent=2, ensure_ascii=False, default=str)


def atomic_write_text(path: Path, content: str) -> None:
    """Write text to a file atomically.

    Uses a temporary file + os.replace so a killed process never leaves a
    half-written artifact behind.
    """
    parent = path.parent
    parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(suffix=".tmp", prefix=path.name + ".", dir=parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())

        os.replace(tmp_path, path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


# -----------------------------------------------------------------------------
# Progress log
# -----------------------------------------------------------------------------


def read_progress(run_id: str, runs_dir: Path) -> Optional[str]:
    """Read a run's progress log.

    Args:
        run_id: The run identifier (validated against path traversal).
        runs_dir: Base directory for runs.

    Returns:
        The log content, or None if nothing has been logged yet.

    Raises:
        InvalidRunIdError: If run_id is not a safe filename.
        OSError: For read failures other than a missing file.
    """
    path = progress_path(runs_dir, run_id)
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None


def format_progress_entry(step_id: str, output: Any, timestamp: Optional[datetime] = None) -> str:
    """Render one progress.md entry."""
    ts = _datetime_to_iso(timestamp or _utcnow())
    return PROGRESS_ENTRY_TEMPLATE.format(step_id=step_id, timestamp=ts, output=_render_output(output))


def append_progress(
    run_id: str,
    step_id: str,
    output: Any,
    runs_dir: Path,
    max_bytes: int = MAX_PROGRESS_FILE_SIZE,
) -> bool:
    """Append a timestamped step entry to a run's progress log.

    Args:
        run_id: The run identifier.
        step_id: The step whose output is being logged.
        output: Step output; non-string values are logged as JSON.
        runs_dir: Base directory for runs.
        max_bytes: Size ceiling; when the file is already larger, the
            append is skipped.

    Returns:
        True if the entry was appended, False if skipped at the ceiling.

    Raises:
        InvalidRunIdError: If run_id is not a safe filename.
        OSError: For stat/append failures other than a missing file.
    """
    path = progress_path(runs_dir, run_id)

    try:
        size = path.stat().st_size
    except FileNotFoundError:
        size = 0

    if size > max_bytes:
        logger.warning(
            "Progress file for run '%s' is %d bytes (limit %d) - skipping append for step '%s'",
            run_id,
            size,
            max_bytes,
            step_id,
        )
        return False

    entry = format_progress_entry(step_id, output)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        f.write(entry)

    logger.info("Progress file updated for run '%s' (step '%s')", run_id, step_id)
    return True


# -----------------------------------------------------------------------------
# Step artifacts
# -----------------------------------------------------------------------------


def write_step_output(
    run_id: str,
    step_id: str,
    output: Any,
    runs_dir: Path,
    filename: Optional[str] = None,
) -> Path:
    """Persist a step's output as an artifact.

    Args:
        run_id: The run identifier.
        step_id: The step identifier.
        output: Output to persist; strings are written verbatim, other
            values as indented JSON.
        runs_dir: Base directory for runs.
        filename: Optional declared filename (sanitized; defaults to
            ``<step_id>.md``).

    Returns:
        Path to the written artifact.

    Raises:
        InvalidRunIdError: If run_id is not a safe filename.
        OSError: If the artifact cannot be written.
    """
    path = step_output_path(runs_dir, run_id, step_id, filename)
    atomic_write_text(path, _render_output(output))

    logger.info("Step output saved for run '%s' step '%s' at %s", run_id, step_id, path)
    return path


def list_step_outputs(run_id: str, runs_dir: Path) -> List[str]:
    """List artifact filenames for a run, sorted by name."""
    outputs_dir = step_outputs_dir(runs_dir, run_id)
    if not outputs_dir.is_dir():
        return []
    return sorted(p.name for p in outputs_dir.iterdir() if p.is_file() and not p.name.endswith(".tmp"))


def read_step_output(run_id: str, filename: str, runs_dir: Path) -> Optional[str]:
    """Read a step artifact by filename, or None if it does not exist.

    Only names that appear in list_step_outputs() can be read; anything else
    (including traversal attempts) returns None.
    """
    if filename not in list_step_outputs(run_id, runs_dir):
        return None
    return (step_outputs_dir(runs_dir, run_id) / filename).read_text(encoding="utf-8")
