"""Workflow management for StackShift.

This module orchestrates the spec pipeline: it owns the project's state
store, loads the reverse-engineering documents, runs the spec generator and
renders the results into ``.specify/memory``. Public methods return plain
dictionaries for the tool surface; failures are logged with context and
reported in the result instead of being raised.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from .artifacts import (
    CONSTITUTION_TEMPLATES,
    FEATURE_SPEC_TEMPLATE,
    IMPL_PLAN_TEMPLATE,
    constitution_template_data,
    feature_template_data,
    plan_template_data,
)
from .config import (
    FUNCTIONAL_SPEC_NAME,
    REVERSE_ENGINEERING_DIR,
    SPECIFY_MEMORY_DIR,
    TECH_DEBT_NAME,
    Settings,
)
from .documents import load_document, load_optional_document
from .errors import FileAccessError, StackShiftError
from .file_utils import count_files
from .file_writer import FileWriter
from .markdown_parser import MarkdownParser
from .models import STEPS, WORKFLOW_STEPS, ImplementationStatus, MarkdownDocument
from .spec_generator import SpecGenerator
from .stackshift_logging import (
    log_artifact_written,
    log_error_with_context,
    log_operation,
    log_performance,
    log_step_completed,
    observability_hooks,
)
from .state_manager import VALID_ROUTES, StateManager
from .template_engine import TemplateEngine

logger = logging.getLogger("stackshift.workflow")


def _progress(progress: List[Dict[str, Any]], phase: str, status: str, message: str, **details: Any) -> None:
    entry: Dict[str, Any] = {"phase": phase, "status": status, "message": message}
    if details:
        entry["details"] = details
    progress.append(entry)


def _failure(operation: str, error: Exception, progress: List[Dict[str, Any]], **context: Any) -> Dict[str, Any]:
    """Log ``error`` and build the failed result of ``operation``."""
    log_error_with_context(error, {"operation": operation, **context})
    _progress(progress, "error", "error", str(error))
    return {
        "success": False,
        "error": str(error),
        "error_type": type(error).__name__,
        "progress": progress,
        "message": f"❌ Failed to {operation.replace('_', ' ')}: {error}",
    }


class WorkflowManager:
    """Manages the StackShift pipeline for one project directory."""

    def __init__(self, root: Path | str, settings: Optional[Settings] = None):
        self.root = Path(root).expanduser().resolve()
        self.settings = settings or Settings.from_env()
        self.state = StateManager(self.root, self.settings.max_state_bytes)
        self.parser = MarkdownParser()
        self.generator = SpecGenerator(self.parser)
        self.templates = TemplateEngine(
            self.settings.template_dir,
            max_depth=self.settings.template_max_depth,
            max_output_size=self.settings.template_max_output,
            trim_blocks=True,
        )
        self.writer = FileWriter(self.root / SPECIFY_MEMORY_DIR)

    @property
    def functional_spec_path(self) -> Path:
        return self.root / REVERSE_ENGINEERING_DIR / FUNCTIONAL_SPEC_NAME

    @property
    def tech_debt_path(self) -> Path:
        return self.root / REVERSE_ENGINEERING_DIR / TECH_DEBT_NAME

    # ------------------------------------------------------------------
    # State management
    # ------------------------------------------------------------------

    @log_performance("initialize")
    def initialize(self, route: Optional[str] = None) -> Dict[str, Any]:
        """Create the workflow state file (idempotent)."""
        try:
            existed = self.state.exists()
            with log_operation("initialize", root=str(self.root), route=route):
                state = self.state.initialize(route)

            observability_hooks.log_workflow_event("workflow_initialized", root=str(self.root), existed=existed)
            return {
                "success": True,
                "state_path": str(self.state.state_file),
                "state": state.to_dict(),
                "already_initialized": existed,
                "next_suggested_step": "reverse-engineer",
                "workflow_tip": "Next: produce docs/reverse-engineering/functional-specification.md",
                "message": (
                    f"Existing workflow state loaded from {self.state.state_file}"
                    if existed
                    else f"Workflow state created at {self.state.state_file}"
                ),
            }
        except Exception as e:
            log_error_with_context(e, {"operation": "initialize", "root": str(self.root)})
            return {
                "success": False,
                "error": f"Failed to initialize workflow state: {e}",
                "suggestion": "Check that the project root exists and is writable",
                "next_suggested_step": "stackshift_initialize",
                "message": f"Error: {e}",
            }

    def get_state(self) -> Dict[str, Any]:
        """Return the current workflow state and progress."""
        try:
            state = self.state.load()
        except FileAccessError as e:
            if e.reason != FileAccessError.NOT_FOUND:
                log_error_with_context(e, {"operation": "get_state", "root": str(self.root)})
            return {
                "success": False,
                "error": str(e),
                "suggestion": "Call stackshift_initialize to create the workflow state",
                "next_suggested_step": "stackshift_initialize",
                "message": f"Error: {e}",
            }
        except StackShiftError as e:
            log_error_with_context(e, {"operation": "get_state", "root": str(self.root)})
            return {
                "success": False,
                "error": str(e),
                "suggestion": "Repair or remove the corrupted state file, then initialize again",
                "message": f"Error: {e}",
            }

        return {
            "success": True,
            "state_path": str(self.state.state_file),
            "state": state.to_dict(),
            "progress_percentage": state.progress_percentage(),
            "artifacts": {
                "specifications": count_files(self.writer.specifications_dir, [".md"]),
                "plans": count_files(self.writer.plans_dir, ["-impl-plan.md"]),
            },
            "next_suggested_step": state.current_step,
            "message": (
                f"Current step: {state.current_step}"
                if state.current_step
                else "All workflow steps are complete"
            ),
        }

    @log_performance("set_route")
    def set_route(self, route: str) -> Dict[str, Any]:
        """Choose the greenfield or brownfield route."""
        if route not in VALID_ROUTES:
            return {
                "success": False,
                "error": f"Invalid route: {route}",
                "suggestion": 'Use "greenfield" or "brownfield"',
                "message": f"Error: invalid route {route}",
            }

        try:
            state = self.state.update_route(route)
        except Exception as e:
            log_error_with_context(e, {"operation": "set_route", "route": route})
            return {
                "success": False,
                "error": str(e),
                "suggestion": "Call stackshift_initialize before choosing a route",
                "next_suggested_step": "stackshift_initialize",
                "message": f"Error: {e}",
            }

        observability_hooks.log_workflow_event("route_set", route=route)
        return {
            "success": True,
            "route": state.route,
            "route_description": state.metadata.route_description,
            "state": state.to_dict(),
            "message": f"Route set to {route}: {state.metadata.route_description}",
        }

    @log_performance("complete_step")
    def complete_step(self, step_id: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Mark a pipeline step completed and advance to the next one."""
        try:
            state = self.state.complete_step(step_id, details)
        except Exception as e:
            log_error_with_context(e, {"operation": "complete_step", "step_id": step_id})
            return {
                "success": False,
                "error": str(e),
                "suggestion": f"Valid steps: {', '.join(STEPS)}",
                "message": f"Error: {e}",
            }

        log_step_completed(step_id, state.current_step)
        return {
            "success": True,
            "completed_step": step_id,
            "current_step": state.current_step,
            "completed_steps": list(state.completed_steps),
            "progress_percentage": state.progress_percentage(),
            "next_suggested_step": state.current_step,
            "message": (
                f"Step {step_id} completed. Next: {state.current_step}"
                if state.current_step
                else f"Step {step_id} completed. Workflow finished."
            ),
        }

    # ------------------------------------------------------------------
    # Spec generation
    # ------------------------------------------------------------------

    def _resolve_route(self, route: Optional[str]) -> str:
        if route is None and self.state.exists():
            route = self.state.load().route
        if route not in VALID_ROUTES:
            raise ValueError(
                'Route must be "greenfield" or "brownfield". '
                "Initialize the workflow with a route or pass the route parameter."
            )
        return route

    def _load_functional_spec(self) -> MarkdownDocument:
        path = self.functional_spec_path
        if not path.exists():
            raise FileAccessError(
                f"Functional specification not found at {path}. Run reverse-engineer first.",
                str(path),
                FileAccessError.NOT_FOUND,
            )
        return load_document(path, self.parser, self.settings.max_read_bytes)

    def _load_tech_debt(self) -> Optional[MarkdownDocument]:
        return load_optional_document(self.tech_debt_path, self.parser, self.settings.max_read_bytes)

    def _resolve_output_path(self, output_path: Optional[str]) -> Optional[Path]:
        if not output_path:
            return None
        path = Path(output_path).expanduser()
        return path if path.is_absolute() else self.root / path

    @log_performance("create_constitution")
    def create_constitution(self, route: Optional[str] = None, output_path: Optional[str] = None) -> Dict[str, Any]:
        """Generate ``.specify/memory/constitution.md`` from the functional specification."""
        progress: List[Dict[str, Any]] = []
        try:
            _progress(progress, "initialization", "starting", "Starting constitution generation")
            route = self._resolve_route(route)
            _progress(progress, "initialization", "completed", f"Using {route} route", route=route)

            with log_operation("create_constitution", route=route):
                _progress(progress, "loading", "starting", "Loading functional specification")
                doc = self._load_functional_spec()
                _progress(
                    progress, "loading", "completed", "Functional specification loaded",
                    file_path=str(doc.path), size=doc.metadata.file_size, nodes=len(doc.nodes),
                )

                _progress(progress, "extraction", "starting", "Extracting constitution data from specification")
                constitution = self.generator.extract_constitution(doc, route)
                _progress(
                    progress, "extraction", "completed", "Constitution data extracted successfully",
                    values_count=len(constitution.values),
                    standards_count=len(constitution.development_standards),
                    metrics_count=len(constitution.quality_metrics),
                    has_technical_stack=constitution.technical_stack is not None,
                )

                template_name = CONSTITUTION_TEMPLATES[route]
                content = self.templates.render(template_name, constitution_template_data(constitution))
                _progress(
                    progress, "templating", "completed", "Template populated successfully",
                    template_name=template_name, content_length=len(content),
                )

                target = self._resolve_output_path(output_path)
                if target is None:
                    result = self.writer.write_constitution(content)
                else:
                    result = self.writer.write_file(target, content)
                log_artifact_written(result.file_path, result.bytes_written, artifact="constitution")
                _progress(progress, "writing", "completed", "Constitution file written successfully", **result.to_dict())

            return {
                "success": True,
                "route": route,
                "constitution_path": result.file_path,
                "stats": {
                    "purpose": constitution.purpose[:150],
                    "values_count": len(constitution.values),
                    "standards_count": len(constitution.development_standards),
                    "metrics_count": len(constitution.quality_metrics),
                    "bytes_written": result.bytes_written,
                },
                "progress": progress,
                "next_suggested_step": "stackshift_create_feature_specs",
                "message": f"✅ Constitution generated successfully at {result.file_path}",
            }
        except Exception as e:
            return _failure("create_constitution", e, progress, root=str(self.root), route=route)

    @log_performance("create_feature_specs")
    def create_feature_specs(self, route: Optional[str] = None) -> Dict[str, Any]:
        """Generate one specification per feature in ``.specify/memory/specifications``."""
        progress: List[Dict[str, Any]] = []
        try:
            route = self._resolve_route(route)
            with log_operation("create_feature_specs", route=route):
                doc = self._load_functional_spec()
                debt_doc = self._load_tech_debt()
                _progress(
                    progress, "loading", "completed", "Documents loaded",
                    has_tech_debt=debt_doc is not None,
                )

                features = self.generator.extract_features(doc, debt_doc)
                _progress(progress, "extraction", "completed", f"Extracted {len(features)} features")

                specs = []
                for feature in features:
                    try:
                        content = self.templates.render(FEATURE_SPEC_TEMPLATE, feature_template_data(feature, route))
                        result = self.writer.write_spec(feature.id, feature.slug, content)
                    except StackShiftError as e:
                        log_error_with_context(e, {"operation": "create_feature_specs", "feature_id": feature.id})
                        _progress(progress, "generation", "error", f"Failed to generate spec for {feature.name}: {e}")
                        continue
                    log_artifact_written(result.file_path, result.bytes_written, artifact="feature_spec", feature_id=feature.id)
                    specs.append({
                        "feature": feature.name,
                        "feature_id": feature.id,
                        "path": result.file_path,
                        "status": feature.status.value,
                    })

                _progress(
                    progress, "generation", "completed", f"Generated {len(specs)} feature specifications",
                    output_dir=str(self.writer.specifications_dir), count=len(specs),
                )

            return {
                "success": True,
                "route": route,
                "features_count": len(features),
                "specs_generated": len(specs),
                "output_dir": str(self.writer.specifications_dir),
                "specs": specs,
                "stats": {
                    "complete": sum(1 for f in features if f.status == ImplementationStatus.COMPLETE),
                    "partial": sum(1 for f in features if f.status == ImplementationStatus.PARTIAL),
                    "missing": sum(1 for f in features if f.status == ImplementationStatus.MISSING),
                },
                "progress": progress,
                "next_suggested_step": "stackshift_create_impl_plans",
                "message": f"✅ Generated {len(specs)} feature specifications in {self.writer.specifications_dir}",
            }
        except Exception as e:
            return _failure("create_feature_specs", e, progress, root=str(self.root), route=route)

    @log_performance("create_impl_plans")
    def create_impl_plans(self, route: Optional[str] = None) -> Dict[str, Any]:
        """Generate implementation plans for PARTIAL and MISSING features."""
        progress: List[Dict[str, Any]] = []
        try:
            route = self._resolve_route(route)
            with log_operation("create_impl_plans", route=route):
                doc = self._load_functional_spec()
                debt_doc = self._load_tech_debt()
                features = self.generator.extract_features(doc, debt_doc)
                _progress(progress, "extraction", "completed", f"Extracted {len(features)} features")

                plans = self.generator.generate_plans(features, debt_doc)
                _progress(progress, "generation", "completed", f"Generated {len(plans)} implementation plans")

                slugs = {feature.id: feature.slug for feature in features}
                written = []
                for feature_id, plan in plans.items():
                    try:
                        content = self.templates.render(IMPL_PLAN_TEMPLATE, plan_template_data(plan))
                        result = self.writer.write_plan(feature_id, slugs[feature_id], content)
                    except StackShiftError as e:
                        log_error_with_context(e, {"operation": "create_impl_plans", "feature_id": feature_id})
                        _progress(progress, "writing", "error", f"Failed to write plan for {plan.feature_name}: {e}")
                        continue
                    log_artifact_written(result.file_path, result.bytes_written, artifact="impl_plan", feature_id=feature_id)
                    written.append({
                        "feature": plan.feature_name,
                        "feature_id": feature_id,
                        "path": result.file_path,
                        "estimated_effort": plan.estimated_effort,
                    })

                _progress(
                    progress, "writing", "completed", f"Wrote {len(written)} implementation plans",
                    output_dir=str(self.writer.plans_dir), count=len(written),
                )

            return {
                "success": True,
                "route": route,
                "plans_generated": len(written),
                "output_dir": str(self.writer.plans_dir),
                "plans": written,
                "progress": progress,
                "next_suggested_step": "gap-analysis",
                "message": f"✅ Generated {len(written)} implementation plans in {self.writer.plans_dir}",
            }
        except Exception as e:
            return _failure("create_impl_plans", e, progress, root=str(self.root), route=route)

    @log_performance("generate_all_specs")
    def generate_all_specs(self, route: Optional[str] = None) -> Dict[str, Any]:
        """Run constitution, feature spec and plan generation in order.

        Stops at the first failing phase and returns the results gathered so
        far. On success the ``create-specs`` step is marked completed when a
        workflow state exists.
        """
        start = time.perf_counter()
        results: Dict[str, Any] = {}
        progress: List[Dict[str, Any]] = []

        phases = (
            ("constitution", self.create_constitution),
            ("feature_specs", self.create_feature_specs),
            ("impl_plans", self.create_impl_plans),
        )
        for name, run in phases:
            result = run(route)
            results[name] = result
            progress.extend(result.get("progress", []))
            if not result["success"]:
                duration = f"{time.perf_counter() - start:.2f}s"
                return {
                    "success": False,
                    "duration": duration,
                    "error": f"{name.replace('_', ' ').capitalize()} generation failed: {result['error']}",
                    "partial_results": results,
                    "progress": progress,
                    "message": (
                        f"❌ Spec generation failed after {duration}: {result['error']}\n\n"
                        "Partial results available in 'partial_results' field."
                    ),
                }

        constitution = results["constitution"]
        feature_specs = results["feature_specs"]
        impl_plans = results["impl_plans"]
        summary = {
            "constitution": {
                "path": constitution["constitution_path"],
                "values_count": constitution["stats"]["values_count"],
            },
            "feature_specs": {"total": feature_specs["specs_generated"], **feature_specs["stats"]},
            "impl_plans": {"total": impl_plans["plans_generated"]},
        }

        step_completed = False
        if self.state.exists():
            try:
                state = self.state.complete_step("create-specs", {
                    "specs_generated": feature_specs["specs_generated"],
                    "plans_generated": impl_plans["plans_generated"],
                })
            except StackShiftError as e:
                log_error_with_context(e, {"operation": "generate_all_specs", "step_id": "create-specs"})
            else:
                log_step_completed("create-specs", state.current_step)
                step_completed = True

        duration = f"{time.perf_counter() - start:.2f}s"
        return {
            "success": True,
            "route": constitution["route"],
            "duration": duration,
            "summary": summary,
            "details": results,
            "progress": progress,
            "step_completed": step_completed,
            "next_suggested_step": "gap-analysis",
            "message": (
                f"✅ Successfully generated all specifications in {duration}\n\n"
                f"Constitution: {constitution['constitution_path']}\n"
                f"Feature Specs: {feature_specs['specs_generated']} generated\n"
                f"Implementation Plans: {impl_plans['plans_generated']} generated"
            ),
        }

    # ------------------------------------------------------------------
    # Guidance
    # ------------------------------------------------------------------

    def get_workflow_guide(self) -> Dict[str, Any]:
        """Describe the six pipeline steps, with progress when a state exists."""
        guide: Dict[str, Any] = {
            "workflow_overview": "StackShift pipeline from reverse engineering to implementation",
            "steps": [step.to_dict() for step in WORKFLOW_STEPS],
            "tips": [
                "Run stackshift_initialize first to create .stackshift-state.json",
                "Choose a route: greenfield for a tech-agnostic rebuild, brownfield to keep the current stack",
                "Write docs/reverse-engineering/functional-specification.md before generating specs",
                "Add technical-debt-analysis.md to detect PARTIAL and COMPLETE features",
            ],
        }

        if self.state.exists():
            try:
                state = self.state.load()
            except StackShiftError as e:
                logger.warning(f"Workflow guide could not read state: {e}")
            else:
                guide["current_step"] = state.current_step
                guide["completed_steps"] = list(state.completed_steps)
                guide["route"] = state.route
        return guide
