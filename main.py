"""MCP server exposing the StackShift spec pipeline tools."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from stackshift.config import STATE_FILE_NAME, Settings
from stackshift.stackshift_logging import setup_logging
from stackshift.workflow import WorkflowManager

mcp = FastMCP("stackshift")


SERVER_ROOT = Path(__file__).resolve().parent


def _candidate_bases() -> List[Path]:
    cwd = Path.cwd().resolve()
    bases: List[Path] = [cwd]
    bases.extend(cwd.parents)
    if SERVER_ROOT not in bases:
        bases.append(SERVER_ROOT)
    for parent in SERVER_ROOT.parents:
        if parent not in bases:
            bases.append(parent)
    return bases


def _locate_project_root() -> Optional[Path]:
    for base in _candidate_bases():
        if (base / STATE_FILE_NAME).exists():
            return base
    return None


def _resolve_root(root: Optional[str], settings: Settings, *, allow_cwd: bool = False) -> Path:
    if root:
        resolved = Path(root).expanduser().resolve()
        if not resolved.is_dir():
            raise ValueError(f"Provided root '{root}' does not exist.")
        return resolved

    if settings.project_root is not None:
        env_path = settings.project_root.resolve()
        if not env_path.is_dir():
            raise ValueError(
                f"Environment variable STACKSHIFT_PROJECT_ROOT points to '{settings.project_root}', "
                "which does not exist."
            )
        return env_path

    detected_root = _locate_project_root()
    if detected_root:
        return detected_root

    if allow_cwd:
        return Path.cwd().resolve()

    raise ValueError(
        "Unable to determine project root automatically. Provide the 'root' argument when calling the tool "
        "or set the STACKSHIFT_PROJECT_ROOT environment variable."
    )


def _manager(root: Optional[str], *, allow_cwd: bool = False) -> WorkflowManager:
    settings = Settings.from_env()
    return WorkflowManager(_resolve_root(root, settings, allow_cwd=allow_cwd), settings)


@mcp.tool()
def stackshift_initialize(route: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 1: Create the workflow state file for the project (safe to call again).
    Optionally choose the route: "greenfield" (tech-agnostic rebuild) or
    "brownfield" (keep and document the existing stack)."""

    return _manager(root, allow_cwd=True).initialize(route)


@mcp.tool()
def stackshift_state(root: Optional[str] = None) -> Dict[str, Any]:
    """Return the current workflow state, completed steps and progress."""

    return _manager(root).get_state()


@mcp.tool()
def stackshift_set_route(route: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Choose the pipeline route: "greenfield" or "brownfield"."""

    return _manager(root).set_route(route)


@mcp.tool()
def stackshift_complete_step(
    step_id: str,
    details: Optional[Dict[str, Any]] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Mark a workflow step complete and advance to the next step.
    Steps: analyze, reverse-engineer, create-specs, gap-analysis, complete-spec, implement."""

    return _manager(root).complete_step(step_id, details)


@mcp.tool()
def stackshift_create_constitution(
    route: Optional[str] = None,
    output_path: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Generate .specify/memory/constitution.md from docs/reverse-engineering/functional-specification.md.
    Prerequisites: the functional specification exists and a route is set (or passed)."""

    return _manager(root).create_constitution(route, output_path)


@mcp.tool()
def stackshift_create_feature_specs(route: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """Generate one specification per feature in .specify/memory/specifications/.
    Uses technical-debt-analysis.md, when present, to detect implementation status."""

    return _manager(root).create_feature_specs(route)


@mcp.tool()
def stackshift_create_impl_plans(route: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """Generate implementation plans for PARTIAL and MISSING features in .specify/memory/plans/."""

    return _manager(root).create_impl_plans(route)


@mcp.tool()
def stackshift_generate_all_specs(route: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """Run constitution, feature spec and plan generation in order and mark create-specs complete.
    Stops at the first failure and returns partial results."""

    return _manager(root).generate_all_specs(route)


@mcp.tool()
def stackshift_workflow_guide(root: Optional[str] = None) -> Dict[str, Any]:
    """Get guidance on the StackShift pipeline steps and the project's current position."""

    return _manager(root, allow_cwd=True).get_workflow_guide()


@mcp.resource("stackshift://state")
def resource_state() -> str:
    """Resource view of the workflow state of the detected project."""

    try:
        manager = _manager(None)
    except ValueError:
        return (
            "No project root detected. Launch tools with a 'root' argument or set STACKSHIFT_PROJECT_ROOT."
        )

    result = manager.get_state()
    if not result["success"]:
        return result["message"]

    state = result["state"]
    lines = [
        "StackShift Workflow State",
        "",
        f"Project: {state['metadata']['projectName']}",
        f"Route: {state['route'] or 'not set'}",
        f"Current step: {state['currentStep'] or 'done'}",
        f"Progress: {result['progress_percentage']}%",
    ]
    if state["completedSteps"]:
        lines.append("")
        lines.append("Completed steps:")
        for step in state["completedSteps"]:
            lines.append(f"- {step}")

    return "\n".join(lines)


if __name__ == "__main__":
    settings = Settings.from_env()
    setup_logging(settings.log_level, settings.log_file)
    mcp.run(transport="stdio")
