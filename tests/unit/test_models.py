"""Unit tests for StackShift data models."""

from pathlib import Path

import pytest

from stackshift.errors import (
    ExtractionError,
    FileAccessError,
    FileWriteError,
    ParseError,
    StackShiftError,
    TemplateError,
    ValidationError,
)
from stackshift.markdown_parser import Heading
from stackshift.models import (
    STEPS,
    WORKFLOW_STEPS,
    AcceptanceCriterion,
    ConstitutionData,
    Feature,
    GovernanceRules,
    ImplementationPlan,
    ImplementationStatus,
    QualityMetric,
    Risk,
    Standard,
    Task,
    TechnicalRequirements,
    TechnicalStack,
    UserStory,
    WorkflowState,
)


class TestFeature:
    """Test cases for Feature model."""

    def test_feature_to_dict(self):
        """Test feature serialization."""
        feature = Feature(
            id="001",
            name="Login",
            slug="login",
            description="Users log in",
            user_stories=[UserStory(role="user", goal="to log in", benefit="access", raw="As a user...")],
            acceptance_criteria=[AcceptanceCriterion(description="Form exists", checked=True)],
            status=ImplementationStatus.PARTIAL,
            technical_requirements=TechnicalRequirements(endpoints=["POST /login"]),
            source_node=Heading(text="Login", line_number=7, level=3),
        )

        data = feature.to_dict()

        assert data["status"] == ImplementationStatus.PARTIAL.value
        assert data["line_number"] == 7
        assert data["user_stories"][0]["role"] == "user"
        assert data["acceptance_criteria"][0] == {"description": "Form exists", "checked": True, "testable": True}
        assert data["technical_requirements"]["endpoints"] == ["POST /login"]

    def test_feature_defaults(self):
        """Test a new feature is MISSING with no requirements."""
        feature = Feature(id="001", name="Login", slug="login", description="x")
        assert feature.status == ImplementationStatus.MISSING
        assert feature.to_dict()["technical_requirements"] is None
        assert feature.validate() == []

    def test_feature_validation(self):
        """Test required identity fields."""
        issues = Feature(id="", name="", slug="", description="").validate()
        assert len(issues) == 3

    def test_nested_round_trip(self):
        """Test stories and criteria rebuild from dictionaries."""
        story = UserStory(role="user", goal="g", benefit="b", raw="r")
        criterion = AcceptanceCriterion(description="d", checked=True)
        assert UserStory.from_dict(story.to_dict()) == story
        assert AcceptanceCriterion.from_dict(criterion.to_dict()) == criterion

    def test_requirements_is_empty(self):
        """Test emptiness of requirement buckets."""
        assert TechnicalRequirements().is_empty()
        assert not TechnicalRequirements(files=["src/app.py"]).is_empty()


class TestConstitutionData:
    """Test cases for constitution data."""

    def _constitution(self, **overrides):
        values = dict(
            purpose="A" * 60,
            values=["Simplicity", "Privacy", "Reliability"],
            development_standards=[
                Standard("code-quality", "Lint everything"),
                Standard("testing", "Test everything"),
                Standard("security", "Validate input"),
            ],
            quality_metrics=[
                QualityMetric("Latency", "< 200ms", "Monitoring"),
                QualityMetric("Uptime", "99.9%", "Monitoring"),
            ],
            governance=GovernanceRules(),
            route="greenfield",
        )
        values.update(overrides)
        return ConstitutionData(**values)

    def test_valid_constitution(self):
        """Test a constitution within all bounds."""
        assert self._constitution().validate() == []

    def test_bounds(self):
        """Test each bound is reported."""
        constitution = self._constitution(
            purpose="short",
            values=["one"],
            development_standards=[Standard("style", "x", "mandatory")],
            quality_metrics=[],
            route="brownfield",
        )
        issues = constitution.validate()
        assert any("Purpose" in issue for issue in issues)
        assert any("values" in issue for issue in issues)
        assert any("Technical stack" in issue for issue in issues)
        assert any("development standards" in issue for issue in issues)
        assert any("quality metrics" in issue for issue in issues)
        assert "Unknown standard category: style" in issues
        assert "Unknown enforcement level: mandatory" in issues

    def test_to_dict(self):
        """Test nested serialization."""
        stack = TechnicalStack(languages=["Python"])
        data = self._constitution(route="brownfield", technical_stack=stack).to_dict()
        assert data["technical_stack"]["languages"] == ["Python"]
        assert data["governance"]["change_approval"] == "Changes require code review and testing"
        assert data["quality_metrics"][0]["current"] is None

    def test_stack_is_empty(self):
        """Test stack emptiness."""
        assert TechnicalStack().is_empty()
        assert not TechnicalStack(databases=["SQLite"]).is_empty()


class TestImplementationPlan:
    """Test cases for implementation plans."""

    def test_total_hours_and_validation(self):
        """Test hour totals and task ordering checks."""
        plan = ImplementationPlan(
            feature_id="002",
            feature_name="Settlements",
            current_state="none",
            target_state="all",
            technical_approach="build it",
            tasks=[
                Task("T1", "Design", 2, "backend"),
                Task("T2", "Test", 3, "testing", ["T1", "T9"]),
                Task("T3", "Ship", 1.5, "deployment"),
            ],
            risks=[Risk("Slip", "medium", "extreme", "Plan")],
        )
        assert plan.total_hours == 6.5
        issues = plan.validate()
        assert "Task T2 depends on unknown or later task T9" in issues
        assert "Task T3 has unknown category: deployment" in issues
        assert "Risk has invalid level: Slip" in issues
        assert plan.to_dict()["tasks"][1]["dependencies"] == ["T1", "T9"]


class TestWorkflowState:
    """Test cases for workflow state serialization."""

    def test_new_state(self):
        """Test the initial state for a project."""
        state = WorkflowState.new(Path("/work/my-app"), "brownfield")
        assert state.current_step == "analyze"
        assert state.metadata.project_name == "my-app"
        assert state.metadata.route_description is not None
        assert state.step_details["analyze"]["status"] == "in_progress"
        assert state.progress_percentage() == 0

    def test_camel_case_round_trip(self):
        """Test persisted keys use camelCase and extras survive."""
        state = WorkflowState.new(Path("/work/my-app"))
        state.completed_steps.append("analyze")
        data = state.to_dict()
        data["auto_mode"] = False

        restored = WorkflowState.from_dict(data)

        assert "currentStep" in data and "completedSteps" in data and "stepDetails" in data
        assert "routeDescription" not in data["metadata"]
        assert restored.extra == {"auto_mode": False}
        assert restored.to_dict() == data
        assert restored.is_completed("analyze")

    def test_progress_percentage(self):
        """Test progress over the six steps."""
        state = WorkflowState.new(Path("/work/app"))
        state.completed_steps = list(STEPS[:3])
        assert state.progress_percentage() == 50

    def test_workflow_steps_match_step_ids(self):
        """Test step definitions follow the pipeline order."""
        assert [step.step_id for step in WORKFLOW_STEPS] == list(STEPS)
        assert [step.step_number for step in WORKFLOW_STEPS] == [1, 2, 3, 4, 5, 6]
        assert WORKFLOW_STEPS[0].to_dict()["tool_name"] == "stackshift_initialize"


class TestErrors:
    """Test error messages and structured details."""

    def test_parse_error_line(self):
        """Test the line number is appended."""
        error = ParseError("Unclosed code block", 12)
        assert str(error) == "Unclosed code block (line 12)"
        assert error.to_dict()["line_number"] == 12
        assert str(ParseError("Bad")) == "Bad"

    def test_extraction_error_phase(self):
        """Test phases are restricted."""
        error = ExtractionError("No features", "features")
        assert error.to_dict() == {
            "error_type": "ExtractionError",
            "message": "No features",
            "phase": "features",
            "details": {},
        }
        with pytest.raises(ValueError):
            ExtractionError("x", "deploy")

    def test_validation_error_lists_errors(self):
        """Test every violation appears in the message."""
        error = ValidationError("Invalid state file structure", ["a", "b"])
        assert str(error) == "Invalid state file structure:\n- a\n- b"
        assert isinstance(error, ValueError)

    def test_hierarchy(self):
        """Test all errors share the base class."""
        for error in (
            TemplateError("x", "tpl"),
            FileAccessError("x", "/p", FileAccessError.NOT_FOUND),
            FileWriteError("x", "/p", FileWriteError.INVALID),
        ):
            assert isinstance(error, StackShiftError)
        assert isinstance(FileWriteError("x", "/p", "invalid"), FileAccessError)
