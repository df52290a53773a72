"""Tests for acceptance.py and step_output.py - output checks and parsing."""

import logging

import pytest

from flowdeck.runtime.acceptance import check_criterion, validate_acceptance_criteria
from flowdeck.runtime.errors import AcceptanceFailedError, StepExecutionError
from flowdeck.runtime.step_output import output_format, parse_step_output
from flowdeck.runtime.types import WorkflowStep


class TestAcceptanceCriteria:
    """Tests for validate_acceptance_criteria()."""

    def test_status_done_passes(self):
        step = WorkflowStep(id="plan", acceptance_criteria=["STATUS: done"])
        validate_acceptance_criteria(step, "work\nSTATUS: done\n")

    def test_missing_criterion_names_it(self):
        step = WorkflowStep(id="plan", acceptance_criteria=["STATUS: done"])

        with pytest.raises(AcceptanceFailedError) as exc_info:
            validate_acceptance_criteria(step, "STATUS: blocked")

        assert exc_info.value.criterion == "STATUS: done"
        assert exc_info.value.step_id == "plan"
        assert '"STATUS: done"' in str(exc_info.value)
        assert isinstance(exc_info.value, StepExecutionError)

    def test_first_unmet_criterion_reported(self):
        step = WorkflowStep(id="s", acceptance_criteria=["alpha", "beta", "gamma"])

        with pytest.raises(AcceptanceFailedError) as exc_info:
            validate_acceptance_criteria(step, "alpha only")

        assert exc_info.value.criterion == "beta"

    def test_no_criteria(self):
        validate_acceptance_criteria(WorkflowStep(id="s"), "")

    def test_check_is_case_sensitive_substring(self):
        assert check_criterion("done", "all done here") is True
        assert check_criterion("Done", "all done here") is False


class TestParseStepOutput:
    """Tests for parse_step_output()."""

    def test_yaml_hint(self):
        step = WorkflowStep(id="plan", output_file="plan.yaml")
        assert parse_step_output("files:\n  - a.py\n", step) == ({"files": ["a.py"]}, None)

    def test_yml_hint_case_insensitive(self):
        step = WorkflowStep(id="plan", output_file="PLAN.YML")
        assert output_format(step) == "yaml"

    def test_json_hint(self):
        step = WorkflowStep(id="plan", output_file="out/result.json")
        assert parse_step_output('{"ok": true}', step) == ({"ok": True}, None)

    def test_other_extension_returns_raw(self):
        step = WorkflowStep(id="plan", output_file="notes.md")
        assert parse_step_output("# Notes", step) == ("# Notes", None)

    def test_no_hint_returns_raw(self):
        assert parse_step_output("text", WorkflowStep(id="s")) == ("text", None)

    def test_empty_output_not_parsed(self):
        step = WorkflowStep(id="plan", output_file="plan.json")
        assert parse_step_output("", step) == ("", None)

    def test_parse_failure_falls_back_to_raw(self, caplog):
        step = WorkflowStep(id="plan", output_file="plan.json")

        with caplog.at_level(logging.WARNING):
            parsed, warning = parse_step_output("not json STATUS: done", step)

        assert parsed == "not json STATUS: done"
        assert "Failed to parse output of step 'plan' as json" in warning
        assert "using raw text" in caplog.text

    def test_yaml_failure_falls_back_to_raw(self):
        step = WorkflowStep(id="plan", output_file="plan.yaml")

        parsed, warning = parse_step_output("key: [unclosed", step)

        assert parsed == "key: [unclosed"
        assert warning is not None

    def test_yaml_constructor_error_falls_back_to_raw(self):
        """Output that scans as YAML but fails construction is kept as raw text."""
        step = WorkflowStep(id="plan", output_file="plan.yaml")
        raw = "released: 2024-13-45\nSTATUS: done"

        parsed, warning = parse_step_output(raw, step)

        assert parsed == raw
        assert "Failed to parse output of step 'plan' as yaml" in warning
