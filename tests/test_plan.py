"""Tests for plan models and parsing of planning responses."""

import pytest
from pydantic import ValidationError

from agentloop.core.exceptions import PlanningError
from agentloop.core.plan import ExecutionPlan, PlanStep, StepType
from agentloop.core.results import ExecutionResult, ExecutionStatus
from tests.mocks import plan_dict


class TestStepType:
    """Test step type parsing."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("code_execution", StepType.CODE_EXECUTION),
            ("CodeExecution", StepType.CODE_EXECUTION),
            ("FILE_READ", StepType.FILE_READ),
            ("file-write", StepType.FILE_WRITE),
            ("Analysis", StepType.ANALYSIS),
            ("UserInput", StepType.USER_INPUT),
        ],
    )
    def test_parse_spellings(self, value, expected):
        assert StepType.parse(value) == expected

    def test_parse_unknown(self):
        with pytest.raises(ValueError, match="Unknown step type"):
            StepType.parse("teleport")

    def test_parse_non_string(self):
        with pytest.raises(ValueError):
            StepType.parse(42)


class TestPlanStep:
    """Test PlanStep model."""

    def test_defaults(self):
        step = PlanStep(order=1, description="Load data")
        assert step.step_type == StepType.CODE_EXECUTION
        assert step.expected_output == ""
        assert step.dependencies == ()
        assert step.script_hint is None

    def test_script_hint_from_parameters(self):
        step = PlanStep(order=1, description="Chart", parameters={"script_hint": "matplotlib"})
        assert step.script_hint == "matplotlib"

    def test_is_immutable(self):
        step = PlanStep(order=1, description="Load data")
        with pytest.raises(ValidationError):
            step.description = "Changed"


class TestExecutionPlanFromDict:
    """Test building plans from backend responses."""

    def test_basic_plan(self):
        plan = ExecutionPlan.from_dict("Summarise sales", plan_dict(3, summary="Sales"))

        assert plan.original_request == "Summarise sales"
        assert plan.summary == "Sales"
        assert plan.version == 1
        assert [s.order for s in plan.steps] == [1, 2, 3]
        assert plan.steps[1].dependencies == (1,)

    def test_steps_are_sorted_by_order(self):
        plan = ExecutionPlan.from_dict("req", plan_dict(orders=[3, 1, 2]))
        assert [s.order for s in plan.steps] == [1, 2, 3]

    def test_alternate_field_names(self):
        data = {
            "summary": "Alt",
            "steps": [
                {
                    "step_number": 1,
                    "description": "Read the file",
                    "step_type": "FileRead",
                    "expectedOutput": "File contents",
                    "scriptHint": "use pathlib",
                }
            ],
        }
        plan = ExecutionPlan.from_dict("req", data)
        step = plan.steps[0]

        assert step.order == 1
        assert step.step_type == StepType.FILE_READ
        assert step.expected_output == "File contents"
        assert step.script_hint == "use pathlib"

    def test_complexity_is_clamped(self):
        data = plan_dict(1)
        data["complexity"] = 42
        assert ExecutionPlan.from_dict("req", data).complexity == 10

        data["complexity"] = "not a number"
        assert ExecutionPlan.from_dict("req", data).complexity == 5

    def test_missing_summary_gets_default(self):
        data = plan_dict(1)
        del data["summary"]
        assert ExecutionPlan.from_dict("req", data).summary == "Execution plan"

    def test_version_is_set(self):
        assert ExecutionPlan.from_dict("req", plan_dict(1), version=3).version == 3

    @pytest.mark.parametrize(
        "data",
        [
            [],
            {"summary": "no steps"},
            {"steps": "not a list"},
            {"steps": ["not an object"]},
            {"steps": [{"order": "one", "description": "x"}]},
            {"steps": [{"order": 1, "description": "x", "type": "teleport"}]},
            {"steps": [{"order": 1, "description": "x", "dependencies": 1}]},
            {"steps": [{"order": 1, "description": "x", "parameters": "abc"}]},
            {"steps": [{"order": 1, "description": "x", "parameters": [1, 2]}]},
        ],
    )
    def test_malformed_responses_raise(self, data):
        with pytest.raises(PlanningError) as exc_info:
            ExecutionPlan.from_dict("req", data)
        assert exc_info.value.request == "req"

    def test_get_step(self, sample_plan):
        assert sample_plan.get_step(2).order == 2
        assert sample_plan.get_step(99) is None

    def test_to_prompt_dict_round_trips(self, sample_plan):
        rebuilt = ExecutionPlan.from_dict(
            sample_plan.original_request, sample_plan.to_prompt_dict(), version=2
        )
        assert [s.description for s in rebuilt.steps] == [
            s.description for s in sample_plan.steps
        ]
        assert rebuilt.version == 2


class TestExecutionResult:
    """Test ExecutionResult helpers."""

    def test_success(self):
        result = ExecutionResult(step_order=1, status=ExecutionStatus.SUCCESS)
        assert result.success
        assert not result.can_retry

    def test_failure_factory(self):
        result = ExecutionResult.failure(2, "boom", status=ExecutionStatus.TIMED_OUT)
        assert result.step_order == 2
        assert result.error_message == "boom"
        assert not result.success
        assert result.can_retry

    def test_cancelled_is_not_retryable(self):
        result = ExecutionResult.failure(1, "stop", status=ExecutionStatus.CANCELLED)
        assert not result.can_retry
