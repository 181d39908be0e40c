"""Runtime configuration for StackShift.

Settings are read from ``STACKSHIFT_*`` environment variables so the MCP
server and the tests can tune resource limits without code changes.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

DEFAULT_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

STATE_FILE_NAME = ".stackshift-state.json"
REVERSE_ENGINEERING_DIR = Path("docs") / "reverse-engineering"
FUNCTIONAL_SPEC_NAME = "functional-specification.md"
TECH_DEBT_NAME = "technical-debt-analysis.md"
SPECIFY_MEMORY_DIR = Path(".specify") / "memory"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got '{raw}'")
    if value <= 0:
        raise ValueError(f"Environment variable {name} must be positive, got {value}")
    return value


@dataclass(slots=True)
class Settings:
    """Resource limits and locations used across the pipeline."""

    project_root: Optional[Path] = None
    max_state_bytes: int = DEFAULT_MAX_BYTES
    max_read_bytes: int = DEFAULT_MAX_BYTES
    template_dir: Path = field(default_factory=lambda: DEFAULT_TEMPLATE_DIR)
    template_max_depth: int = 32
    template_max_output: int = DEFAULT_MAX_BYTES
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from ``STACKSHIFT_*`` environment variables."""
        project_root = os.getenv("STACKSHIFT_PROJECT_ROOT")
        template_dir = os.getenv("STACKSHIFT_TEMPLATE_DIR")
        log_file = os.getenv("STACKSHIFT_LOG_FILE")
        return cls(
            project_root=Path(project_root).expanduser() if project_root else None,
            max_state_bytes=_env_int("STACKSHIFT_MAX_STATE_BYTES", DEFAULT_MAX_BYTES),
            max_read_bytes=_env_int("STACKSHIFT_MAX_READ_BYTES", DEFAULT_MAX_BYTES),
            template_dir=Path(template_dir).expanduser() if template_dir else DEFAULT_TEMPLATE_DIR,
            template_max_depth=_env_int("STACKSHIFT_TEMPLATE_MAX_DEPTH", 32),
            template_max_output=_env_int("STACKSHIFT_TEMPLATE_MAX_OUTPUT", DEFAULT_MAX_BYTES),
            log_level=os.getenv("STACKSHIFT_LOG_LEVEL", "INFO").upper(),
            log_file=Path(log_file).expanduser() if log_file else None,
        )
