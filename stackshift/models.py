"""Data models for the StackShift spec pipeline.

This module contains the records produced by the spec generator (features,
constitution data, implementation plans), the markdown document wrapper and
the persisted workflow state with its step definitions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from .markdown_parser import MarkdownNode


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ImplementationStatus(str, Enum):
    COMPLETE = "✅ COMPLETE"
    PARTIAL = "⚠️ PARTIAL"
    MISSING = "❌ MISSING"


class Route(str, Enum):
    GREENFIELD = "greenfield"
    BROWNFIELD = "brownfield"


ROUTE_DESCRIPTIONS = {
    Route.GREENFIELD.value: "Build new app from business logic (tech-agnostic)",
    Route.BROWNFIELD.value: "Manage existing app with Spec Kit (tech-prescriptive)",
}

STANDARD_CATEGORIES = ("code-quality", "testing", "security", "documentation")
ENFORCEMENT_LEVELS = ("required", "recommended", "optional")
TASK_CATEGORIES = ("frontend", "backend", "database", "testing", "documentation")
RISK_LEVELS = ("low", "medium", "high")


# ----------------------------------------------------------------------
# Documents
# ----------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class DocumentMetadata:
    file_name: str
    file_size: int
    last_modified: str
    checksum: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "file_name": self.file_name,
            "file_size": self.file_size,
            "last_modified": self.last_modified,
            "checksum": self.checksum,
        }


@dataclass(frozen=True, slots=True)
class MarkdownDocument:
    """A parsed markdown file. Immutable after parse."""

    path: Path
    content: str
    nodes: tuple
    metadata: DocumentMetadata

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": str(self.path),
            "node_count": len(self.nodes),
            "metadata": self.metadata.to_dict(),
        }


# ----------------------------------------------------------------------
# Features
# ----------------------------------------------------------------------

@dataclass(slots=True)
class UserStory:
    """A story in the form "As a <role>, I want <goal>, so that <benefit>"."""

    role: str
    goal: str
    benefit: str
    raw: str

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary representation."""
        return {"role": self.role, "goal": self.goal, "benefit": self.benefit, "raw": self.raw}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserStory":
        """Create from dictionary representation."""
        return cls(
            role=data["role"],
            goal=data["goal"],
            benefit=data["benefit"],
            raw=data.get("raw", ""),
        )


@dataclass(slots=True)
class AcceptanceCriterion:
    description: str
    checked: bool = False
    testable: bool = True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {"description": self.description, "checked": self.checked, "testable": self.testable}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AcceptanceCriterion":
        return cls(
            description=data["description"],
            checked=bool(data.get("checked", False)),
            testable=bool(data.get("testable", True)),
        )


@dataclass(slots=True)
class TechnicalRequirements:
    """Technical requirement items bucketed by kind."""

    dependencies: List[str] = field(default_factory=list)
    endpoints: List[str] = field(default_factory=list)
    data_models: List[str] = field(default_factory=list)
    components: List[str] = field(default_factory=list)
    files: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.dependencies or self.endpoints or self.data_models or self.components or self.files)

    def to_dict(self) -> Dict[str, List[str]]:
        """Convert to dictionary representation."""
        return {
            "dependencies": list(self.dependencies),
            "endpoints": list(self.endpoints),
            "data_models": list(self.data_models),
            "components": list(self.components),
            "files": list(self.files),
        }


@dataclass(slots=True)
class Feature:
    """A single feature extracted from the functional specification."""

    id: str
    name: str
    slug: str
    description: str
    user_stories: List[UserStory] = field(default_factory=list)
    acceptance_criteria: List[AcceptanceCriterion] = field(default_factory=list)
    status: ImplementationStatus = ImplementationStatus.MISSING
    dependencies: List[str] = field(default_factory=list)
    technical_requirements: Optional[TechnicalRequirements] = None
    source_node: Optional[MarkdownNode] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "user_stories": [story.to_dict() for story in self.user_stories],
            "acceptance_criteria": [criterion.to_dict() for criterion in self.acceptance_criteria],
            "status": self.status.value,
            "dependencies": list(self.dependencies),
            "technical_requirements": self.technical_requirements.to_dict() if self.technical_requirements else None,
            "line_number": self.source_node.line_number if self.source_node else None,
        }

    def validate(self) -> List[str]:
        """Validate the feature and return any issues."""
        issues = []
        if not self.id:
            issues.append("Feature ID is required")
        if not self.name:
            issues.append("Feature name is required")
        if not self.slug:
            issues.append("Feature slug is required")
        return issues


# ----------------------------------------------------------------------
# Constitution
# ----------------------------------------------------------------------

@dataclass(slots=True)
class TechnicalStack:
    languages: List[str] = field(default_factory=list)
    frameworks: List[str] = field(default_factory=list)
    databases: List[str] = field(default_factory=list)
    infrastructure: List[str] = field(default_factory=list)
    build_tools: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.languages or self.frameworks or self.databases or self.infrastructure or self.build_tools)

    def to_dict(self) -> Dict[str, List[str]]:
        """Convert to dictionary representation."""
        return {
            "languages": list(self.languages),
            "frameworks": list(self.frameworks),
            "databases": list(self.databases),
            "infrastructure": list(self.infrastructure),
            "build_tools": list(self.build_tools),
        }


@dataclass(slots=True)
class Standard:
    category: str
    description: str
    enforcement_level: str = "required"

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary representation."""
        return {
            "category": self.category,
            "description": self.description,
            "enforcement_level": self.enforcement_level,
        }

    def validate(self) -> List[str]:
        issues = []
        if self.category not in STANDARD_CATEGORIES:
            issues.append(f"Unknown standard category: {self.category}")
        if self.enforcement_level not in ENFORCEMENT_LEVELS:
            issues.append(f"Unknown enforcement level: {self.enforcement_level}")
        if not self.description:
            issues.append("Standard description is required")
        return issues


@dataclass(slots=True)
class QualityMetric:
    name: str
    target: str
    measurement: str
    current: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "target": self.target,
            "current": self.current,
            "measurement": self.measurement,
        }


DEFAULT_GOVERNANCE = {
    "decision_making": "Decisions made collaboratively with stakeholder input",
    "change_approval": "Changes require code review and testing",
    "conflict_resolution": "Conflicts resolved through discussion and consensus",
}


@dataclass(slots=True)
class GovernanceRules:
    decision_making: str = DEFAULT_GOVERNANCE["decision_making"]
    change_approval: str = DEFAULT_GOVERNANCE["change_approval"]
    conflict_resolution: str = DEFAULT_GOVERNANCE["conflict_resolution"]

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary representation."""
        return {
            "decision_making": self.decision_making,
            "change_approval": self.change_approval,
            "conflict_resolution": self.conflict_resolution,
        }


PURPOSE_MIN_LENGTH = 50
PURPOSE_MAX_LENGTH = 500
VALUES_MIN = 3
VALUES_MAX = 10
STANDARDS_MIN = 3
METRICS_MIN = 2


@dataclass(slots=True)
class ConstitutionData:
    """Project principles extracted from the functional specification."""

    purpose: str
    values: List[str]
    development_standards: List[Standard]
    quality_metrics: List[QualityMetric]
    governance: GovernanceRules
    route: str
    technical_stack: Optional[TechnicalStack] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "purpose": self.purpose,
            "values": list(self.values),
            "technical_stack": self.technical_stack.to_dict() if self.technical_stack else None,
            "development_standards": [standard.to_dict() for standard in self.development_standards],
            "quality_metrics": [metric.to_dict() for metric in self.quality_metrics],
            "governance": self.governance.to_dict(),
            "route": self.route,
        }

    def validate(self) -> List[str]:
        """Validate the constitution bounds and return any issues."""
        issues = []

        if not PURPOSE_MIN_LENGTH <= len(self.purpose) <= PURPOSE_MAX_LENGTH:
            issues.append(
                f"Purpose must be {PURPOSE_MIN_LENGTH}-{PURPOSE_MAX_LENGTH} characters, got {len(self.purpose)}"
            )
        if not VALUES_MIN <= len(self.values) <= VALUES_MAX:
            issues.append(f"Expected {VALUES_MIN}-{VALUES_MAX} values, got {len(self.values)}")
        if self.route == Route.BROWNFIELD.value and self.technical_stack is None:
            issues.append("Technical stack is required for brownfield route")
        if len(self.development_standards) < STANDARDS_MIN:
            issues.append(
                f"Expected at least {STANDARDS_MIN} development standards, got {len(self.development_standards)}"
            )
        if len(self.quality_metrics) < METRICS_MIN:
            issues.append(f"Expected at least {METRICS_MIN} quality metrics, got {len(self.quality_metrics)}")
        for standard in self.development_standards:
            issues.extend(standard.validate())

        return issues


# ----------------------------------------------------------------------
# Implementation plans
# ----------------------------------------------------------------------

@dataclass(slots=True)
class Task:
    id: str
    description: str
    estimated_hours: float
    category: str
    dependencies: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "description": self.description,
            "estimated_hours": self.estimated_hours,
            "dependencies": list(self.dependencies),
            "category": self.category,
        }


@dataclass(slots=True)
class Risk:
    description: str
    probability: str
    impact: str
    mitigation: str

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary representation."""
        return {
            "description": self.description,
            "probability": self.probability,
            "impact": self.impact,
            "mitigation": self.mitigation,
        }


@dataclass(slots=True)
class ImplementationPlan:
    """Plan for bringing a PARTIAL or MISSING feature to completion."""

    feature_id: str
    feature_name: str
    current_state: str
    target_state: str
    technical_approach: str
    tasks: List[Task] = field(default_factory=list)
    risks: List[Risk] = field(default_factory=list)
    estimated_effort: str = ""
    dependencies: List[str] = field(default_factory=list)

    @property
    def total_hours(self) -> float:
        return sum(task.estimated_hours for task in self.tasks)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "feature_id": self.feature_id,
            "feature_name": self.feature_name,
            "current_state": self.current_state,
            "target_state": self.target_state,
            "technical_approach": self.technical_approach,
            "tasks": [task.to_dict() for task in self.tasks],
            "risks": [risk.to_dict() for risk in self.risks],
            "estimated_effort": self.estimated_effort,
            "dependencies": list(self.dependencies),
        }

    def validate(self) -> List[str]:
        """Validate the plan and return any issues."""
        issues = []
        known = set()
        for task in self.tasks:
            if task.category not in TASK_CATEGORIES:
                issues.append(f"Task {task.id} has unknown category: {task.category}")
            for dependency in task.dependencies:
                if dependency not in known:
                    issues.append(f"Task {task.id} depends on unknown or later task {dependency}")
            known.add(task.id)
        for risk in self.risks:
            if risk.probability not in RISK_LEVELS or risk.impact not in RISK_LEVELS:
                issues.append(f"Risk has invalid level: {risk.description}")
        return issues


# ----------------------------------------------------------------------
# Workflow state
# ----------------------------------------------------------------------

STATE_VERSION = "1.0.0"
STATE_KEYS = (
    "version",
    "created",
    "updated",
    "route",
    "currentStep",
    "completedSteps",
    "metadata",
    "stepDetails",
)

STEPS = (
    "analyze",
    "reverse-engineer",
    "create-specs",
    "gap-analysis",
    "complete-spec",
    "implement",
)


@dataclass(slots=True)
class WorkflowStep:
    """Represents a single step in the StackShift pipeline."""

    step_number: int
    step_id: str
    name: str
    description: str
    purpose: str
    tool_name: Optional[str] = None
    expected_output: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "step_number": self.step_number,
            "step_id": self.step_id,
            "name": self.name,
            "description": self.description,
            "purpose": self.purpose,
            "tool_name": self.tool_name,
            "expected_output": self.expected_output,
        }


WORKFLOW_STEPS = [
    WorkflowStep(
        step_number=1,
        step_id="analyze",
        name="Initial Analysis",
        description="Detect the tech stack and choose the greenfield or brownfield route",
        purpose="Establish project context and create the workflow state file",
        tool_name="stackshift_initialize",
        expected_output="State saved to .stackshift-state.json",
    ),
    WorkflowStep(
        step_number=2,
        step_id="reverse-engineer",
        name="Reverse Engineering",
        description="Produce functional documentation of the existing application",
        purpose="Capture business logic and current implementation details",
        expected_output="Documents in docs/reverse-engineering/",
    ),
    WorkflowStep(
        step_number=3,
        step_id="create-specs",
        name="Create Specifications",
        description="Generate the constitution, feature specs and implementation plans",
        purpose="Turn reverse-engineering documents into structured specifications",
        tool_name="stackshift_generate_all_specs",
        expected_output="Artifacts in .specify/memory/",
    ),
    WorkflowStep(
        step_number=4,
        step_id="gap-analysis",
        name="Gap Analysis",
        description="Compare specifications against the current implementation",
        purpose="Identify partial and missing features",
    ),
    WorkflowStep(
        step_number=5,
        step_id="complete-spec",
        name="Complete Specification",
        description="Resolve open clarifications in the specifications",
        purpose="Remove ambiguity before implementation",
    ),
    WorkflowStep(
        step_number=6,
        step_id="implement",
        name="Implementation",
        description="Build the missing and partial features from the plans",
        purpose="Bring the application to parity with its specification",
    ),
]


@dataclass(slots=True)
class StateMetadata:
    project_name: str
    project_path: str
    route_description: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted camelCase representation."""
        data: Dict[str, Any] = {**self.extra, "projectName": self.project_name, "projectPath": self.project_path}
        if self.route_description is not None:
            data["routeDescription"] = self.route_description
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StateMetadata":
        known = ("projectName", "projectPath", "routeDescription")
        return cls(
            project_name=data.get("projectName", ""),
            project_path=data.get("projectPath", ""),
            route_description=data.get("routeDescription"),
            extra={key: value for key, value in data.items() if key not in known},
        )


@dataclass(slots=True)
class WorkflowState:
    """Persisted progress of the six-step pipeline."""

    version: str
    created: str
    updated: str
    metadata: StateMetadata
    route: Optional[str] = None
    current_step: Optional[str] = None
    completed_steps: List[str] = field(default_factory=list)
    step_details: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    # Keys written by other tools (auto_mode, config, ...) round-trip untouched
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def new(cls, project_path: Path, route: Optional[str] = None) -> "WorkflowState":
        """Build the initial state for a freshly analyzed project."""
        now = utc_timestamp()
        return cls(
            version=STATE_VERSION,
            created=now,
            updated=now,
            route=route,
            current_step="analyze",
            completed_steps=[],
            metadata=StateMetadata(
                project_name=project_path.name,
                project_path=str(project_path),
                route_description=ROUTE_DESCRIPTIONS.get(route) if route else None,
            ),
            step_details={"analyze": {"started": now, "status": "in_progress"}},
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted camelCase representation."""
        return {
            "version": self.version,
            "created": self.created,
            "updated": self.updated,
            "route": self.route,
            "currentStep": self.current_step,
            "completedSteps": list(self.completed_steps),
            "metadata": self.metadata.to_dict(),
            "stepDetails": {key: dict(value) for key, value in self.step_details.items()},
            **self.extra,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowState":
        """Create from the persisted representation. Callers validate first."""
        return cls(
            version=data["version"],
            created=data["created"],
            updated=data["updated"],
            route=data.get("route"),
            current_step=data.get("currentStep"),
            completed_steps=list(data.get("completedSteps", [])),
            metadata=StateMetadata.from_dict(data.get("metadata", {})),
            step_details={key: dict(value) for key, value in data.get("stepDetails", {}).items()},
            extra={key: value for key, value in data.items() if key not in STATE_KEYS},
        )

    def is_completed(self, step_id: str) -> bool:
        return step_id in self.completed_steps

    def progress_percentage(self) -> int:
        return int(len(self.completed_steps) * 100 / len(STEPS))
