"""Extraction of structured specification data from parsed markdown.

The :class:`SpecGenerator` reads the functional specification (and,
optionally, the technical debt analysis) and produces constitution data,
feature definitions and implementation plans. Extraction is heuristic: it
relies on heading names, label paragraphs and a few sentence patterns.
"""

from __future__ import annotations

import math
import re
from typing import Dict, List, Optional, Protocol, Sequence

from .errors import ExtractionError
from .markdown_parser import (
    Heading,
    ListItem,
    MarkdownNode,
    MarkdownParser,
    Paragraph,
    Section,
)
from .models import (
    METRICS_MIN,
    PURPOSE_MAX_LENGTH,
    PURPOSE_MIN_LENGTH,
    STANDARDS_MIN,
    VALUES_MAX,
    VALUES_MIN,
    AcceptanceCriterion,
    ConstitutionData,
    Feature,
    GovernanceRules,
    ImplementationPlan,
    ImplementationStatus,
    MarkdownDocument,
    QualityMetric,
    Risk,
    Route,
    Standard,
    Task,
    TechnicalRequirements,
    TechnicalStack,
    UserStory,
)
from .stackshift_logging import (
    log_constitution_extracted,
    log_features_extracted,
    log_performance,
    log_plans_generated,
)

USER_STORY_PATTERN = re.compile(r"As (?:a|an) (.+?), I want (.+?), so that (.+?)\.?$", re.IGNORECASE)
CHECKBOX_PATTERN = re.compile(r"^\[([xX ])\]\s*(.+)$")
GENERIC_SECTION_PATTERN = re.compile(r"^(non-functional|technical|overview|summary|appendix)", re.IGNORECASE)
# "**Acceptance Criteria:**", "__Dependencies__", "Technical Requirements:"
LABEL_PATTERN = re.compile(r"^(?:\*\*|__)(.+?)(?:\*\*|__)\s*:?$|^([^:]{1,60}):$")
INLINE_DEPENDENCIES_PATTERN = re.compile(
    r"^(?:\*\*|__)?(?:Depends on|Dependencies)(?:\*\*|__)?\s*:\s*(?:\*\*|__)?\s*(.+)$",
    re.IGNORECASE,
)

ACCEPTANCE_LABEL = re.compile(r"Acceptance Criteria", re.IGNORECASE)
TECHNICAL_REQUIREMENTS_LABEL = re.compile(r"Technical Requirements", re.IGNORECASE)
DEPENDENCIES_LABEL = re.compile(r"^(Dependencies|Depends on)$", re.IGNORECASE)
KNOWN_LABEL = re.compile(r"^(Acceptance Criteria|Technical Requirements|Dependencies|Depends on)$", re.IGNORECASE)

CURRENT_STATE_PATTERNS = (
    re.compile(r"What exists:?\s*\n([\s\S]+?)(?:\nWhat's missing|\Z)", re.IGNORECASE),
    re.compile(r"What exists:?\s*\n([\s\S]+?)(?:\n\n|\Z)", re.IGNORECASE),
    re.compile(r"exists:?\s*\n([\s\S]{10,}?)(?:\nmissing|\Z)", re.IGNORECASE),
)

NO_DESCRIPTION = "No description available"
NO_IMPLEMENTATION = "No existing implementation"
PARTIAL_IMPLEMENTATION = "Partial implementation exists (details in technical debt analysis)"

STANDARD_SECTIONS = (
    (r"^(Code Quality|Quality Standards)$", "code-quality", "required"),
    (r"^Testing$", "testing", "required"),
    (r"^Security$", "security", "required"),
    (r"^Documentation$", "documentation", "recommended"),
)

STACK_PATTERNS = {
    "languages": r"(?:Languages?|Frontend|Backend):\s*(.+?)(?:\n|$)",
    "frameworks": r"Frameworks?:\s*(.+?)(?:\n|$)",
    "databases": r"Databases?:\s*(.+?)(?:\n|$)",
    "infrastructure": r"(?:Infrastructure|Deployment):\s*(.+?)(?:\n|$)",
    "build_tools": r"(?:Build Tools?|Tools):\s*(.+?)(?:\n|$)",
}

REQUIREMENT_BUCKETS = (
    ("dependencies", "dependency"),
    ("endpoints", "endpoint"),
    ("data_models", "database"),
    ("components", "component"),
    ("files", "file"),
)


def generate_slug(name: str) -> str:
    """Lowercase ``name`` and collapse every non-alphanumeric run into a hyphen."""
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def format_effort(total_hours: float) -> str:
    """Render a task hour total as a human readable estimate."""
    hours = f"{total_hours:g}"
    if total_hours <= 8:
        return f"{hours} hours (1 day)"
    if total_hours <= 40:
        return f"{hours} hours ({math.ceil(total_hours / 8)} days)"
    weeks = math.ceil(total_hours / 40)
    return f"{hours} hours ({weeks} {'week' if weeks == 1 else 'weeks'})"


def _label_text(node: MarkdownNode) -> Optional[str]:
    """Return the label a node introduces, if it is a heading or a label paragraph."""
    if isinstance(node, Heading):
        return node.text
    if isinstance(node, Paragraph):
        match = LABEL_PATTERN.match(node.text)
        if match:
            return (match.group(1) or match.group(2)).strip().rstrip(":").strip()
    return None


def _is_section_label(node: Paragraph) -> bool:
    """True for bold labels and the named feature sub-section labels."""
    match = LABEL_PATTERN.match(node.text)
    if match is None:
        return False
    if match.group(1) is not None:
        return True
    return KNOWN_LABEL.match(match.group(2).strip()) is not None


def _find_label(nodes: Sequence[MarkdownNode], pattern: re.Pattern) -> Optional[int]:
    for index, node in enumerate(nodes):
        label = _label_text(node)
        if label is not None and pattern.search(label):
            return index
    return None


def _items_after_label(nodes: Sequence[MarkdownNode], label_index: int) -> List[str]:
    """List items after a label, up to the next heading or label paragraph."""
    items: List[str] = []
    for node in nodes[label_index + 1:]:
        if _label_text(node) is not None:
            break
        if isinstance(node, ListItem):
            items.append(node.text)
    return items


class StatusStrategy(Protocol):
    """Classifies a feature's implementation status."""

    def detect(self, feature: Feature, debt_doc: Optional[MarkdownDocument] = None) -> ImplementationStatus:
        ...


class HeuristicStatusStrategy:
    """Status from debt-document markers, then prose hints, then checkbox progress.

    Precedence is strict: an explicit marker in the feature's debt section
    wins over "what exists" / "what's missing" phrases, which win over the
    acceptance criteria checkboxes. With no signal at all the feature is
    MISSING.
    """

    def __init__(self, parser: Optional[MarkdownParser] = None):
        self.parser = parser or MarkdownParser()

    def detect(self, feature: Feature, debt_doc: Optional[MarkdownDocument] = None) -> ImplementationStatus:
        if debt_doc is not None:
            section = self.parser.find_section(debt_doc.nodes, re.escape(feature.name))
            if section is not None:
                status = self._from_debt_section(section)
                if status is not None:
                    return status
        return self._from_criteria(feature)

    def _from_debt_section(self, section: Section) -> Optional[ImplementationStatus]:
        content = f"{section.title}\n{self.parser.section_text(section)}".lower()

        for status in (ImplementationStatus.COMPLETE, ImplementationStatus.PARTIAL, ImplementationStatus.MISSING):
            if status.value.lower() in content or f"status: {status.name.lower()}" in content:
                return status

        has_exists = "what exists" in content
        has_missing = "what's missing" in content
        if has_exists and has_missing:
            return ImplementationStatus.PARTIAL
        if has_exists:
            return ImplementationStatus.COMPLETE
        if has_missing:
            return ImplementationStatus.MISSING
        return None

    @staticmethod
    def _from_criteria(feature: Feature) -> ImplementationStatus:
        if not feature.acceptance_criteria:
            return ImplementationStatus.MISSING
        checked = sum(1 for criterion in feature.acceptance_criteria if criterion.checked)
        if checked == len(feature.acceptance_criteria):
            return ImplementationStatus.COMPLETE
        if checked > 0:
            return ImplementationStatus.PARTIAL
        return ImplementationStatus.MISSING


class SpecGenerator:
    """Extracts constitution data, features and plans from markdown documents."""

    def __init__(
        self,
        parser: Optional[MarkdownParser] = None,
        status_strategy: Optional[StatusStrategy] = None,
    ):
        self.parser = parser or MarkdownParser()
        self.status_strategy = status_strategy or HeuristicStatusStrategy(self.parser)

    # ------------------------------------------------------------------
    # Constitution
    # ------------------------------------------------------------------

    @log_performance("extract_constitution")
    def extract_constitution(self, doc: MarkdownDocument, route: str) -> ConstitutionData:
        """Extract project principles from the functional specification.

        Raises:
            ExtractionError: (phase ``constitution``) when a bound is violated:
                purpose length, value count, missing brownfield stack,
                standards count or metrics count.
        """
        route = Route(route).value
        nodes = doc.nodes

        purpose = self._extract_purpose(nodes)
        if not PURPOSE_MIN_LENGTH <= len(purpose) <= PURPOSE_MAX_LENGTH:
            raise ExtractionError(
                f"Purpose must be {PURPOSE_MIN_LENGTH}-{PURPOSE_MAX_LENGTH} characters",
                "constitution",
                {"purpose": purpose, "length": len(purpose)},
            )

        values = self._extract_values(nodes)
        if not VALUES_MIN <= len(values) <= VALUES_MAX:
            raise ExtractionError(
                f"Must have {VALUES_MIN}-{VALUES_MAX} core values",
                "constitution",
                {"count": len(values)},
            )

        technical_stack = None
        if route == Route.BROWNFIELD.value:
            technical_stack = self._extract_technical_stack(nodes)
            if technical_stack is None:
                raise ExtractionError("Technical stack required for brownfield route", "constitution")

        standards = self._extract_development_standards(nodes)
        if len(standards) < STANDARDS_MIN:
            raise ExtractionError(
                f"Must have at least {STANDARDS_MIN} development standards",
                "constitution",
                {"count": len(standards)},
            )

        metrics = self._extract_quality_metrics(nodes)
        if len(metrics) < METRICS_MIN:
            raise ExtractionError(
                f"Must have at least {METRICS_MIN} quality metrics",
                "constitution",
                {"count": len(metrics)},
            )

        constitution = ConstitutionData(
            purpose=purpose,
            values=values,
            technical_stack=technical_stack,
            development_standards=standards,
            quality_metrics=metrics,
            governance=self._extract_governance(nodes),
            route=route,
        )
        log_constitution_extracted(route, values=len(values), standards=len(standards), metrics=len(metrics))
        return constitution

    def _section_content(self, nodes: Sequence[MarkdownNode], pattern: str) -> Optional[str]:
        section = self.parser.find_section(nodes, pattern)
        if section is None:
            return None
        return self.parser.section_text(section)

    def _extract_purpose(self, nodes: Sequence[MarkdownNode]) -> str:
        return (self._section_content(nodes, r"^Purpose$") or "").strip()

    def _extract_values(self, nodes: Sequence[MarkdownNode]) -> List[str]:
        start = self.parser.find_heading_index(nodes, r"^(Core )?Values$")
        if start is None:
            return []

        values: List[str] = []
        for node in nodes[start + 1:]:
            if isinstance(node, Heading):
                break
            if isinstance(node, ListItem):
                values.append(node.text.strip())
            elif values:
                break
        return values

    def _extract_technical_stack(self, nodes: Sequence[MarkdownNode]) -> Optional[TechnicalStack]:
        content = self._section_content(nodes, r"^Technical Stack$")
        if content is None:
            return None

        def category(pattern: str) -> List[str]:
            match = re.search(pattern, content, re.IGNORECASE)
            if not match:
                return []
            return [item.strip() for item in match.group(1).split(",") if item.strip()]

        return TechnicalStack(**{name: category(pattern) for name, pattern in STACK_PATTERNS.items()})

    def _extract_development_standards(self, nodes: Sequence[MarkdownNode]) -> List[Standard]:
        standards = []
        for pattern, category, enforcement in STANDARD_SECTIONS:
            content = self._section_content(nodes, pattern)
            if content is not None:
                standards.append(Standard(
                    category=category,
                    description=content[:200],
                    enforcement_level=enforcement,
                ))
        return standards

    def _extract_quality_metrics(self, nodes: Sequence[MarkdownNode]) -> List[QualityMetric]:
        metrics: List[QualityMetric] = []

        performance = self._section_content(nodes, r"^Performance$")
        if performance:
            for line in performance.split("\n"):
                name, separator, target = line.partition(":")
                name = name.strip()
                if name.startswith("- "):
                    name = name[2:].strip()
                target = target.strip()
                if separator and name and target:
                    metrics.append(QualityMetric(
                        name=name,
                        target=target,
                        measurement="Manual testing or monitoring",
                    ))

        scalability = self._section_content(nodes, r"^Scalability$")
        if scalability:
            metrics.append(QualityMetric(name="Scalability", target=scalability[:100], measurement="Load testing"))

        return metrics

    def _extract_governance(self, nodes: Sequence[MarkdownNode]) -> GovernanceRules:
        rules = GovernanceRules()
        content = self._section_content(nodes, r"^Governance$")
        if content:
            rules.decision_making = content[:200]
        return rules

    # ------------------------------------------------------------------
    # Features
    # ------------------------------------------------------------------

    @log_performance("extract_features")
    def extract_features(self, doc: MarkdownDocument, debt_doc: Optional[MarkdownDocument] = None) -> List[Feature]:
        """Extract every feature listed under the ``Features`` heading.

        Raises:
            ExtractionError: (phase ``features``) when the document has no
                Features section or the section has no feature headings.
        """
        nodes = doc.nodes
        start = self.parser.find_heading_index(nodes, r"^Features$")
        if start is None:
            raise ExtractionError("No Features section found in document", "features")

        headings: List[int] = []
        end = len(nodes)
        for index in range(start + 1, len(nodes)):
            node = nodes[index]
            if not isinstance(node, Heading):
                continue
            if node.level == 1:
                end = index
                break
            if node.level == 2 and headings and GENERIC_SECTION_PATTERN.search(node.text):
                end = index
                break
            if node.level in (2, 3):
                headings.append(index)

        if not headings:
            raise ExtractionError("No feature headings found in Features section", "features")

        features = []
        for position, heading_index in enumerate(headings):
            heading = nodes[heading_index]
            span_end = headings[position + 1] if position + 1 < len(headings) else end
            span = nodes[heading_index + 1:span_end]

            feature_id = f"{position + 1:03d}"
            name = heading.text.strip()
            feature = Feature(
                id=feature_id,
                name=name,
                slug=generate_slug(name) or f"feature-{feature_id}",
                description=self._extract_description(span),
                user_stories=self._extract_user_stories(span),
                acceptance_criteria=self._extract_acceptance_criteria(span),
                dependencies=self._extract_dependencies(span),
                technical_requirements=self._extract_technical_requirements(span),
                source_node=heading,
            )
            feature.status = self.detect_status(feature, debt_doc)
            features.append(feature)

        log_features_extracted(len(features), with_debt_document=debt_doc is not None)
        return features

    def detect_status(self, feature: Feature, debt_doc: Optional[MarkdownDocument] = None) -> ImplementationStatus:
        """Classify ``feature`` with the configured status strategy."""
        return self.status_strategy.detect(feature, debt_doc)

    @staticmethod
    def _extract_description(span: Sequence[MarkdownNode]) -> str:
        for node in span:
            if isinstance(node, Paragraph) and not _is_section_label(node) and len(node.text.strip()) >= 20:
                return node.text.strip()
        return NO_DESCRIPTION

    @staticmethod
    def _extract_user_stories(span: Sequence[MarkdownNode]) -> List[UserStory]:
        stories = []
        for node in span:
            if not isinstance(node, (Paragraph, ListItem)):
                continue
            match = USER_STORY_PATTERN.search(node.text)
            if match:
                stories.append(UserStory(
                    role=match.group(1).strip(),
                    goal=match.group(2).strip(),
                    benefit=match.group(3).strip(),
                    raw=node.text.strip(),
                ))
        return stories

    @staticmethod
    def _extract_acceptance_criteria(span: Sequence[MarkdownNode]) -> List[AcceptanceCriterion]:
        label = _find_label(span, ACCEPTANCE_LABEL)
        if label is None:
            return []

        criteria = []
        for item in _items_after_label(span, label):
            checkbox = CHECKBOX_PATTERN.match(item)
            if checkbox:
                criteria.append(AcceptanceCriterion(
                    description=checkbox.group(2).strip(),
                    checked=checkbox.group(1).lower() == "x",
                ))
            else:
                criteria.append(AcceptanceCriterion(description=item.strip()))
        return criteria

    @staticmethod
    def _extract_technical_requirements(span: Sequence[MarkdownNode]) -> Optional[TechnicalRequirements]:
        label = _find_label(span, TECHNICAL_REQUIREMENTS_LABEL)
        if label is None:
            return None

        items = _items_after_label(span, label)
        if not items:
            return None

        buckets: Dict[str, List[str]] = {}
        for bucket, keyword in REQUIREMENT_BUCKETS:
            buckets[bucket] = [item for item in items if keyword in item.lower()]
        return TechnicalRequirements(**buckets)

    @staticmethod
    def _extract_dependencies(span: Sequence[MarkdownNode]) -> List[str]:
        for node in span:
            if isinstance(node, Paragraph):
                inline = INLINE_DEPENDENCIES_PATTERN.match(node.text)
                if inline:
                    return [item.strip() for item in inline.group(1).split(",") if item.strip()]

        label = _find_label(span, DEPENDENCIES_LABEL)
        if label is None:
            return []
        return [item.strip() for item in _items_after_label(span, label) if item.strip()]

    # ------------------------------------------------------------------
    # Implementation plans
    # ------------------------------------------------------------------

    @log_performance("generate_plans")
    def generate_plans(
        self,
        features: Sequence[Feature],
        debt_doc: Optional[MarkdownDocument] = None,
    ) -> Dict[str, ImplementationPlan]:
        """Build a plan for every feature that is not COMPLETE, keyed by feature id."""
        plans: Dict[str, ImplementationPlan] = {}
        for feature in features:
            if feature.status == ImplementationStatus.COMPLETE:
                continue
            plans[feature.id] = self.generate_plan(feature, debt_doc)

        log_plans_generated(len(plans), feature_count=len(features))
        return plans

    def generate_plan(self, feature: Feature, debt_doc: Optional[MarkdownDocument] = None) -> ImplementationPlan:
        tasks = self._generate_tasks(feature)
        return ImplementationPlan(
            feature_id=feature.id,
            feature_name=feature.name,
            current_state=self._current_state(feature, debt_doc),
            target_state=self._target_state(feature),
            technical_approach=self._technical_approach(feature),
            tasks=tasks,
            risks=self._generate_risks(feature),
            estimated_effort=format_effort(sum(task.estimated_hours for task in tasks)),
            dependencies=list(feature.dependencies),
        )

    def _current_state(self, feature: Feature, debt_doc: Optional[MarkdownDocument]) -> str:
        if debt_doc is None or feature.status != ImplementationStatus.PARTIAL:
            return NO_IMPLEMENTATION

        section = self.parser.find_section(debt_doc.nodes, re.escape(feature.name))
        if section is None:
            return NO_IMPLEMENTATION

        content = self.parser.section_text(section)
        for pattern in CURRENT_STATE_PATTERNS:
            match = pattern.search(content)
            if match and match.group(1).strip():
                return match.group(1).strip()
        return PARTIAL_IMPLEMENTATION

    @staticmethod
    def _target_state(feature: Feature) -> str:
        parts = [feature.description]
        if feature.user_stories:
            parts.append("\nUser Stories:")
            parts.extend(f"- {story.raw}" for story in feature.user_stories)
        if feature.acceptance_criteria:
            parts.append("\nAcceptance Criteria:")
            parts.extend(f"- {criterion.description}" for criterion in feature.acceptance_criteria)
        return "\n".join(parts)

    @staticmethod
    def _technical_approach(feature: Feature) -> str:
        approaches = []
        requirements = feature.technical_requirements
        if requirements is not None:
            if requirements.endpoints:
                approaches.append("Implement required API endpoints")
            if requirements.components:
                approaches.append("Build UI components")
            if requirements.data_models:
                approaches.append("Create database models and migrations")
            if requirements.dependencies:
                approaches.append("Integrate required dependencies")
            if requirements.files:
                approaches.append("Update affected files")

        if not approaches:
            approaches = [
                "Implement feature according to acceptance criteria",
                "Add comprehensive tests",
                "Update documentation",
            ]
        return "\n- ".join(approaches)

    @staticmethod
    def _generate_tasks(feature: Feature) -> List[Task]:
        tasks = [Task(
            id="T1",
            description=f"Design {feature.name} architecture",
            estimated_hours=2,
            category="backend",
        )]

        for story in feature.user_stories:
            tasks.append(Task(
                id=f"T{len(tasks) + 1}",
                description=f"Implement: {story.goal}",
                estimated_hours=4,
                dependencies=["T1"],
                category="backend",
            ))

        tasks.append(Task(
            id=f"T{len(tasks) + 1}",
            description=f"Write tests for {feature.name}",
            estimated_hours=3,
            dependencies=[task.id for task in tasks[1:]],
            category="testing",
        ))
        tasks.append(Task(
            id=f"T{len(tasks) + 1}",
            description=f"Update documentation for {feature.name}",
            estimated_hours=1,
            dependencies=[task.id for task in tasks],
            category="documentation",
        ))
        return tasks

    @staticmethod
    def _generate_risks(feature: Feature) -> List[Risk]:
        risks = [Risk(
            description="Implementation may be more complex than estimated",
            probability="medium",
            impact="medium",
            mitigation="Break down tasks further if complexity increases",
        )]
        if feature.dependencies:
            risks.append(Risk(
                description="Dependent features may not be complete",
                probability="medium",
                impact="high",
                mitigation="Verify dependency completion before starting",
            ))
        return risks
