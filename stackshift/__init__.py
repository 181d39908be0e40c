"""StackShift library exports."""

from .errors import (
    ExtractionError,
    FileAccessError,
    FileWriteError,
    ParseError,
    StackShiftError,
    TemplateError,
    ValidationError,
)
from .markdown_parser import MarkdownParser
from .models import (
    STEPS,
    ConstitutionData,
    Feature,
    ImplementationPlan,
    ImplementationStatus,
    WorkflowState,
)
from .spec_generator import SpecGenerator
from .state_manager import StateManager
from .template_engine import TemplateEngine
from .workflow import WorkflowManager

__all__ = [
    "MarkdownParser",
    "SpecGenerator",
    "TemplateEngine",
    "StateManager",
    "WorkflowManager",
    "ConstitutionData",
    "Feature",
    "ImplementationPlan",
    "ImplementationStatus",
    "WorkflowState",
    "STEPS",
    "StackShiftError",
    "ParseError",
    "ExtractionError",
    "TemplateError",
    "ValidationError",
    "FileAccessError",
    "FileWriteError",
]
