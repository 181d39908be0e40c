"""Persistent workflow state for a project directory.

One :class:`StateManager` owns ``<directory>/.stackshift-state.json``. Every
mutation goes through :meth:`StateManager.update`, which loads and validates
the file, applies the change, stamps ``updated``, validates again and
replaces the file atomically. Readers never observe a partially written
file; concurrent writers from separate processes are last-writer-wins.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from .config import DEFAULT_MAX_BYTES, STATE_FILE_NAME
from .errors import FileAccessError, ValidationError
from .file_utils import FORBIDDEN_JSON_KEYS, read_json_safe
from .models import ROUTE_DESCRIPTIONS, STEPS, Route, WorkflowState, utc_timestamp

logger = logging.getLogger("stackshift.state")

VALID_ROUTES = (Route.GREENFIELD.value, Route.BROWNFIELD.value)

StateMutator = Callable[[WorkflowState], Optional[WorkflowState]]


def _non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


def validate_state_data(data: Any) -> List[str]:
    """Check a decoded state document and return every violation found."""
    if not isinstance(data, dict):
        return ["State must be a JSON object"]

    errors: List[str] = []

    forbidden = [key for key in FORBIDDEN_JSON_KEYS if key in data]
    if forbidden:
        errors.append(f"State contains dangerous properties ({', '.join(forbidden)})")

    if not _non_empty_string(data.get("version")):
        errors.append("Missing or invalid version")
    if not _non_empty_string(data.get("created")):
        errors.append("Missing or invalid created timestamp")
    if not _non_empty_string(data.get("updated")):
        errors.append("Missing or invalid updated timestamp")

    route = data.get("route")
    if route is not None and route not in VALID_ROUTES:
        errors.append(f'Invalid route: {route}. Must be null, "greenfield", or "brownfield"')

    current_step = data.get("currentStep")
    if current_step is not None and current_step not in STEPS:
        errors.append(f"Invalid currentStep: {current_step}")

    completed = data.get("completedSteps")
    if not isinstance(completed, list):
        errors.append("completedSteps must be an array")
    else:
        seen = set()
        for step in completed:
            if step not in STEPS:
                errors.append(f"Invalid step in completedSteps: {step}")
            elif step in seen:
                errors.append(f"Duplicate step in completedSteps: {step}")
            else:
                seen.add(step)

    metadata = data.get("metadata")
    if not isinstance(metadata, dict):
        errors.append("Missing or invalid metadata")
    else:
        if not _non_empty_string(metadata.get("projectName")):
            errors.append("Missing or invalid metadata.projectName")
        if not _non_empty_string(metadata.get("projectPath")):
            errors.append("Missing or invalid metadata.projectPath")
        description = metadata.get("routeDescription")
        if description is not None and not isinstance(description, str):
            errors.append("Invalid metadata.routeDescription")

    details = data.get("stepDetails")
    if not isinstance(details, dict):
        errors.append("Missing or invalid stepDetails")
    else:
        for step, record in details.items():
            if step not in STEPS:
                errors.append(f"Invalid step in stepDetails: {step}")
            elif not isinstance(record, dict):
                errors.append(f"stepDetails.{step} must be an object")

    return errors


def next_step(step_id: str) -> Optional[str]:
    """Step following ``step_id`` in the pipeline, or None after the last."""
    index = STEPS.index(step_id)
    return STEPS[index + 1] if index < len(STEPS) - 1 else None


class StateManager:
    """Owns the workflow state file of a single project directory."""

    def __init__(self, directory: Union[str, Path], max_bytes: int = DEFAULT_MAX_BYTES):
        self.directory = Path(directory).expanduser().resolve()
        self.state_file = self.directory / STATE_FILE_NAME
        self.max_bytes = max_bytes

    def exists(self) -> bool:
        return self.state_file.is_file()

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def load(self) -> WorkflowState:
        """Read and validate the state file.

        Raises:
            FileAccessError: the file is missing (``not_found``), larger than
                the size limit (``too_large``) or unreadable.
            ValidationError: the file is not valid UTF-8 JSON, carries a
                prototype-pollution key or breaks the schema.
        """
        if not self.exists():
            raise FileAccessError(
                "State file does not exist. Run analyze first.",
                str(self.state_file),
                FileAccessError.NOT_FOUND,
            )

        try:
            data = read_json_safe(self.state_file, self.max_bytes)
        except FileAccessError as e:
            if e.reason != FileAccessError.INVALID:
                raise
            raise ValidationError("Invalid state file structure", [str(e)])

        errors = validate_state_data(data)
        if errors:
            logger.warning(f"Rejected state file {self.state_file}: {len(errors)} validation error(s)")
            raise ValidationError("Invalid state file structure", errors)

        return WorkflowState.from_dict(data)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def initialize(self, route: Optional[str] = None) -> WorkflowState:
        """Create the state file, or return the existing state unchanged."""
        if self.exists():
            return self.load()

        if route is not None and route not in VALID_ROUTES:
            raise ValidationError("Invalid route", [f"Invalid route: {route}"])

        state = WorkflowState.new(self.directory, route)
        self._atomic_write(state.to_dict())
        logger.info(f"Initialized workflow state at {self.state_file}")
        return state

    def update(self, mutator: StateMutator) -> WorkflowState:
        """Load, mutate, stamp, validate and atomically persist the state."""
        state = self.load()
        new_state = mutator(state) or state
        new_state.updated = utc_timestamp()

        data = new_state.to_dict()
        errors = validate_state_data(data)
        if errors:
            raise ValidationError("Updated state is invalid", errors)

        self._atomic_write(data)
        return new_state

    def update_route(self, route: Optional[str]) -> WorkflowState:
        """Set the pipeline route and its human readable description."""

        def apply(state: WorkflowState) -> WorkflowState:
            state.route = route
            state.metadata.route_description = ROUTE_DESCRIPTIONS.get(route) if route else None
            return state

        return self.update(apply)

    def complete_step(self, step_id: str, details: Optional[Dict[str, Any]] = None) -> WorkflowState:
        """Mark ``step_id`` completed and advance the current step.

        Completing a step twice keeps a single entry in ``completedSteps``.
        """
        if step_id not in STEPS:
            raise ValidationError("Invalid step", [f"Unknown step: {step_id}"])

        def apply(state: WorkflowState) -> WorkflowState:
            if step_id not in state.completed_steps:
                state.completed_steps.append(step_id)
            state.current_step = next_step(step_id)
            record = dict(state.step_details.get(step_id, {}))
            record.update({"completed": utc_timestamp(), "status": "completed"})
            record.update(details or {})
            state.step_details[step_id] = record
            return state

        state = self.update(apply)
        logger.info(f"Completed step {step_id}; next step is {state.current_step}")
        return state

    def _atomic_write(self, data: Dict[str, Any]) -> None:
        payload = json.dumps(data, indent=2, ensure_ascii=False)
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=f"{STATE_FILE_NAME}.", suffix=".tmp", dir=self.directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_name, self.state_file)
        except BaseException:
            if os.path.exists(temp_name):
                os.unlink(temp_name)
            raise
