"""
acceptance.py - Acceptance criteria checks for step output.

Criteria are currently literal substrings that must appear in the raw
output. Criteria are checked in declaration order and the first unmet one
fails the step; there is no partial success.
"""

from __future__ import annotations

import logging
from typing import Any

from .errors import AcceptanceFailedError
from .types import WorkflowStep

logger = logging.getLogger(__name__)


def check_criterion(criterion: str, raw_output: str, parsed_output: Any = None) -> bool:
    """Check a single criterion against step output.

    ``parsed_output`` is accepted so richer criterion kinds can inspect
    structured data; substring checks only look at the raw text.
    """
    return criterion in raw_output


def validate_acceptance_criteria(step: WorkflowStep, raw_output: str, parsed_output: Any = None) -> None:
    """Validate step output against every declared acceptance criterion.

    Raises:
        AcceptanceFailedError: Naming the first criterion that is not met.
    """
    if not step.acceptance_criteria:
        return

    for criterion in step.acceptance_criteria:
        if not check_criterion(criterion, raw_output, parsed_output):
            logger.info("Step '%s' failed acceptance criterion %r", step.id, criterion)
            raise AcceptanceFailedError(step.id, criterion)

    logger.info("Step '%s': all %d acceptance criteria passed", step.id, len(step.acceptance_criteria))
