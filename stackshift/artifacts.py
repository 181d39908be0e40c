"""Template data for the generated constitution, spec and plan documents."""

from __future__ import annotations

from typing import Any, Dict

from .models import ConstitutionData, Feature, ImplementationPlan, Route

CONSTITUTION_TEMPLATES = {
    Route.GREENFIELD.value: "constitution-agnostic-template",
    Route.BROWNFIELD.value: "constitution-prescriptive-template",
}
FEATURE_SPEC_TEMPLATE = "feature-spec-template"
IMPL_PLAN_TEMPLATE = "impl-plan-template"


def constitution_template_data(constitution: ConstitutionData) -> Dict[str, Any]:
    """Flatten constitution data into top-level template variables."""
    data: Dict[str, Any] = {
        "purpose": constitution.purpose,
        "values": list(constitution.values),
        "development_standards": [
            {
                "category": standard.category,
                "description": standard.description,
                "level": standard.enforcement_level,
            }
            for standard in constitution.development_standards
        ],
        "quality_metrics": [
            {"name": metric.name, "target": metric.target, "measurement": metric.measurement}
            for metric in constitution.quality_metrics
        ],
        "decision_making": constitution.governance.decision_making,
        "change_approval": constitution.governance.change_approval,
        "conflict_resolution": constitution.governance.conflict_resolution,
        "route": constitution.route,
    }

    stack = constitution.technical_stack
    data["has_technical_stack"] = constitution.route == Route.BROWNFIELD.value and stack is not None
    if stack is not None:
        data.update(stack.to_dict())
    return data


def feature_template_data(feature: Feature, route: str) -> Dict[str, Any]:
    requirements = feature.technical_requirements
    show_requirements = route == Route.BROWNFIELD.value and requirements is not None and not requirements.is_empty()

    data: Dict[str, Any] = {
        "feature_name": feature.name,
        "feature_id": feature.id,
        "description": feature.description,
        "status": feature.status.value,
        "user_stories": [
            {"role": story.role, "goal": story.goal, "benefit": story.benefit}
            for story in feature.user_stories
        ],
        "has_user_stories": bool(feature.user_stories),
        "acceptance_criteria": [
            {"description": criterion.description, "checked": criterion.checked}
            for criterion in feature.acceptance_criteria
        ],
        "has_acceptance_criteria": bool(feature.acceptance_criteria),
        "dependencies": list(feature.dependencies),
        "has_dependencies": bool(feature.dependencies),
        "has_technical_requirements": show_requirements,
    }

    if show_requirements:
        data.update({
            "endpoints": list(requirements.endpoints),
            "has_endpoints": bool(requirements.endpoints),
            "data_models": list(requirements.data_models),
            "has_data_models": bool(requirements.data_models),
            "components": list(requirements.components),
            "has_components": bool(requirements.components),
            "technical_dependencies": list(requirements.dependencies),
            "has_technical_dependencies": bool(requirements.dependencies),
            "files": list(requirements.files),
            "has_files": bool(requirements.files),
        })
    return data


def plan_template_data(plan: ImplementationPlan) -> Dict[str, Any]:
    return {
        "feature_name": plan.feature_name,
        "feature_id": plan.feature_id,
        "current_state": plan.current_state,
        "target_state": plan.target_state,
        "technical_approach": plan.technical_approach,
        "tasks": [
            {
                "id": task.id,
                "description": task.description,
                "category": task.category,
                "estimated_hours": task.estimated_hours,
                "depends_on": ", ".join(task.dependencies) if task.dependencies else "None",
            }
            for task in plan.tasks
        ],
        "risks": [risk.to_dict() for risk in plan.risks],
        "estimated_effort": plan.estimated_effort,
        "dependencies": list(plan.dependencies),
        "has_dependencies": bool(plan.dependencies),
        "total_hours": plan.total_hours,
    }
