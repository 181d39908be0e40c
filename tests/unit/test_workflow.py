"""Unit tests for the StackShift workflow manager."""

import json
from unittest.mock import patch

import pytest

from stackshift.config import FUNCTIONAL_SPEC_NAME, REVERSE_ENGINEERING_DIR, TECH_DEBT_NAME, Settings
from stackshift.errors import TemplateError
from stackshift.models import ImplementationStatus
from stackshift.stackshift_logging import observability_hooks
from stackshift.workflow import WorkflowManager


@pytest.fixture
def manager(project_dir):
    return WorkflowManager(project_dir, Settings())


class TestStateOperations:
    """Test state-related tool operations."""

    def test_initialize(self, manager):
        """Test initialization creates the state and is repeatable."""
        result = manager.initialize("greenfield")

        assert result["success"] is True
        assert result["already_initialized"] is False
        assert result["state"]["route"] == "greenfield"
        assert result["next_suggested_step"] == "reverse-engineer"

        again = manager.initialize("brownfield")
        assert again["already_initialized"] is True
        assert again["state"]["route"] == "greenfield"

    def test_initialize_invalid_route(self, manager):
        """Test invalid routes are reported, not raised."""
        result = manager.initialize("bluefield")
        assert result["success"] is False
        assert "suggestion" in result

    def test_get_state_before_initialize(self, manager):
        """Test reading state before initialize suggests initializing."""
        result = manager.get_state()
        assert result["success"] is False
        assert result["next_suggested_step"] == "stackshift_initialize"

    def test_get_state_corrupted(self, manager):
        """Test a corrupted state file is reported with a repair hint."""
        manager.initialize()
        manager.state.state_file.write_text("[]", encoding="utf-8")
        result = manager.get_state()
        assert result["success"] is False
        assert "Repair" in result["suggestion"]

    def test_set_route(self, manager):
        """Test route selection updates the stored state."""
        manager.initialize()
        result = manager.set_route("brownfield")
        assert result["success"] is True
        assert result["route"] == "brownfield"
        assert manager.get_state()["state"]["route"] == "brownfield"

        assert manager.set_route("bluefield")["success"] is False

    def test_set_route_without_state(self, manager):
        """Test route selection requires an initialized workflow."""
        result = manager.set_route("greenfield")
        assert result["success"] is False
        assert result["next_suggested_step"] == "stackshift_initialize"

    def test_complete_step(self, manager):
        """Test step completion advances and emits a workflow event."""
        received = []
        observability_hooks.register_hook("workflow_step_analyze", lambda **data: received.append(data))
        manager.initialize()

        result = manager.complete_step("analyze", {"detected": "python"})

        assert result["success"] is True
        assert result["current_step"] == "reverse-engineer"
        assert result["progress_percentage"] == 16
        assert received[0]["next_step"] == "reverse-engineer"
        state = manager.get_state()["state"]
        assert state["stepDetails"]["analyze"]["detected"] == "python"

    def test_complete_unknown_step(self, manager):
        """Test unknown steps list the valid ones."""
        manager.initialize()
        result = manager.complete_step("deploy")
        assert result["success"] is False
        assert "analyze" in result["suggestion"]

    def test_workflow_guide(self, manager):
        """Test the guide lists all steps and current progress."""
        guide = manager.get_workflow_guide()
        assert len(guide["steps"]) == 6
        assert "current_step" not in guide

        manager.initialize("greenfield")
        guide = manager.get_workflow_guide()
        assert guide["current_step"] == "analyze"
        assert guide["route"] == "greenfield"


class TestConstitution:
    """Test constitution generation."""

    def test_create_constitution(self, manager):
        """Test the constitution is rendered and written."""
        result = manager.create_constitution("greenfield")

        assert result["success"] is True, result
        path = manager.root / ".specify" / "memory" / "constitution.md"
        assert result["constitution_path"] == str(path)
        content = path.read_text(encoding="utf-8")
        assert "## Purpose" in content
        assert "- Simplicity first" in content
        assert "| Page load | under 2 seconds | Manual testing or monitoring |" in content
        assert "{{" not in content
        assert result["stats"]["values_count"] == 3
        phases = [entry["phase"] for entry in result["progress"]]
        assert phases[-1] == "writing"

    def test_brownfield_constitution_lists_stack(self, manager):
        """Test the prescriptive template includes the technical stack."""
        manager.create_constitution("brownfield")
        content = (manager.root / ".specify" / "memory" / "constitution.md").read_text(encoding="utf-8")
        assert "- **Languages:** TypeScript, Python" in content
        assert "- **Build tools:** Vite, Poetry" in content

    def test_route_from_state(self, manager):
        """Test the stored route is used when none is passed."""
        manager.initialize("brownfield")
        assert manager.create_constitution()["route"] == "brownfield"

    def test_route_required(self, manager):
        """Test generation fails without any route."""
        result = manager.create_constitution()
        assert result["success"] is False
        assert result["error_type"] == "ValueError"

    def test_custom_output_path(self, manager):
        """Test relative output paths resolve against the project root."""
        result = manager.create_constitution("greenfield", "docs/constitution.md")
        assert result["constitution_path"] == str(manager.root / "docs" / "constitution.md")

    def test_refused_output_path(self, manager):
        """Test unsafe output paths fail the operation."""
        result = manager.create_constitution("greenfield", "docs/constitution.txt")
        assert result["success"] is False
        assert result["error_type"] == "FileWriteError"

    def test_missing_functional_spec(self, manager):
        """Test a missing functional specification is reported."""
        (manager.root / REVERSE_ENGINEERING_DIR / FUNCTIONAL_SPEC_NAME).unlink()
        result = manager.create_constitution("greenfield")
        assert result["success"] is False
        assert "Run reverse-engineer first" in result["error"]
        assert result["progress"][-1]["status"] == "error"

    def test_extraction_failure(self, manager):
        """Test extraction bound violations surface as failures."""
        path = manager.root / REVERSE_ENGINEERING_DIR / FUNCTIONAL_SPEC_NAME
        path.write_text(path.read_text(encoding="utf-8").replace("## Security", "## Privacy"), encoding="utf-8")
        result = manager.create_constitution("greenfield")
        assert result["success"] is False
        assert result["error_type"] == "ExtractionError"


class TestFeatureSpecs:
    """Test feature specification generation."""

    def test_create_feature_specs(self, manager):
        """Test one spec per feature with detected statuses."""
        result = manager.create_feature_specs("brownfield")

        assert result["success"] is True, result
        assert result["features_count"] == 2
        assert result["specs_generated"] == 2
        assert result["stats"] == {"complete": 1, "partial": 1, "missing": 0}

        specs_dir = manager.root / ".specify" / "memory" / "specifications"
        assert sorted(p.name for p in specs_dir.iterdir()) == ["001-expense-tracking.md", "002-settlements.md"]

        settlements = (specs_dir / "002-settlements.md").read_text(encoding="utf-8")
        assert "# Feature Specification: Settlements" in settlements
        assert f"**Status:** {ImplementationStatus.PARTIAL.value}" in settlements
        assert "- [ ] Payment reduces the balance" in settlements
        assert "- As a member, I want to record a payment, so that my balance is cleared." in settlements
        assert "### Endpoints" in settlements
        assert "- Expense Tracking" in settlements

        expenses = (specs_dir / "001-expense-tracking.md").read_text(encoding="utf-8")
        assert "- [x] Expense form validates amounts" in expenses
        assert "## Technical Requirements" not in expenses

    def test_greenfield_omits_technical_requirements(self, manager):
        """Test greenfield specs stay technology agnostic."""
        manager.create_feature_specs("greenfield")
        path = manager.root / ".specify" / "memory" / "specifications" / "002-settlements.md"
        assert "## Technical Requirements" not in path.read_text(encoding="utf-8")

    def test_without_tech_debt(self, manager):
        """Test statuses fall back to checkboxes without the debt document."""
        (manager.root / REVERSE_ENGINEERING_DIR / TECH_DEBT_NAME).unlink()
        result = manager.create_feature_specs("greenfield")
        assert result["stats"] == {"complete": 1, "partial": 0, "missing": 1}

    def test_render_failure_skips_feature(self, manager):
        """Test a failing feature is reported while the others are written."""
        original = manager.templates.render
        calls = []

        def flaky(name, data):
            calls.append(data["feature_id"])
            if data["feature_id"] == "001":
                raise TemplateError("boom", name)
            return original(name, data)

        with patch.object(manager.templates, "render", side_effect=flaky):
            result = manager.create_feature_specs("greenfield")

        assert result["success"] is True
        assert result["specs_generated"] == 1
        assert calls == ["001", "002"]
        assert any(entry["status"] == "error" for entry in result["progress"])


class TestImplPlans:
    """Test implementation plan generation."""

    def test_create_impl_plans(self, manager):
        """Test plans are written for incomplete features only."""
        result = manager.create_impl_plans("greenfield")

        assert result["success"] is True, result
        assert result["plans_generated"] == 1
        plan = result["plans"][0]
        assert plan["feature_id"] == "002"
        assert plan["estimated_effort"] == "10 hours (2 days)"

        content = (manager.root / ".specify" / "memory" / "plans" / "002-settlements-impl-plan.md").read_text(
            encoding="utf-8"
        )
        assert "# Implementation Plan: Settlements" in content
        assert "- payment model" in content
        assert "### T1: Design Settlements architecture" in content
        assert "- **Depends On:** None" in content
        assert "- **Depends On:** T1, T2, T3" in content
        assert "- Implement required API endpoints" in content
        assert "Dependent features may not be complete" in content


class TestGenerateAllSpecs:
    """Test the full generation pipeline."""

    def test_generate_all_specs(self, manager):
        """Test all phases run and create-specs is completed."""
        manager.initialize("greenfield")

        result = manager.generate_all_specs()

        assert result["success"] is True, result
        assert result["step_completed"] is True
        assert result["summary"]["feature_specs"]["total"] == 2
        assert result["summary"]["impl_plans"]["total"] == 1
        state = json.loads(manager.state.state_file.read_text(encoding="utf-8"))
        assert "create-specs" in state["completedSteps"]
        assert state["currentStep"] == "gap-analysis"
        assert state["stepDetails"]["create-specs"]["specs_generated"] == 2

    def test_without_state_file(self, manager):
        """Test generation succeeds without marking a step."""
        result = manager.generate_all_specs("greenfield")
        assert result["success"] is True
        assert result["step_completed"] is False
        assert not manager.state.exists()

    def test_stops_at_first_failure(self, manager):
        """Test later phases do not run after a failure."""
        path = manager.root / REVERSE_ENGINEERING_DIR / FUNCTIONAL_SPEC_NAME
        path.write_text(path.read_text(encoding="utf-8").replace("## Security", "## Privacy"), encoding="utf-8")

        result = manager.generate_all_specs("greenfield")

        assert result["success"] is False
        assert list(result["partial_results"]) == ["constitution"]
        assert result["error"].startswith("Constitution generation failed")
        assert not (manager.root / ".specify" / "memory" / "specifications").exists()
