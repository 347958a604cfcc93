"""
tmux-layout: compile declarative tmux session documents into tmux commands.

Pipeline: document text -> raw tree -> variable expansion -> Project model
-> pane geometry -> ordered, role-tagged command groups. The reverse
direction (freeze) turns a live session snapshot back into a Project.
"""

from .compiler import compile_file, compile_project, compile_text, freeze_listing, freeze_project
from .document import dump_document, parse_document, project_to_document
from .errors import (
    CompileError,
    Error,
    ErrorReport,
    ErrorType,
    ParseError,
    Result,
    ValidationError,
)
from .freeze import SNAPSHOT_FORMAT, freeze_snapshot, parse_snapshot
from .logging_config import configure_logging, setup_logger
from .models import (
    CommandGroup,
    CompiledSession,
    Pane,
    PaneSnapshot,
    Project,
    SessionSnapshot,
    SplitDirection,
    Window,
    WindowSnapshot,
)
from .normalizer import normalize_document
from .sequencer import sequence_project
from .variables import VariableContext, expand, expand_tree

__version__ = "0.1.0"

__all__ = [
    "SNAPSHOT_FORMAT",
    "CommandGroup",
    "CompileError",
    "CompiledSession",
    "Error",
    "ErrorReport",
    "ErrorType",
    "Pane",
    "PaneSnapshot",
    "ParseError",
    "Project",
    "Result",
    "SessionSnapshot",
    "SplitDirection",
    "ValidationError",
    "VariableContext",
    "Window",
    "WindowSnapshot",
    "compile_file",
    "compile_project",
    "compile_text",
    "configure_logging",
    "dump_document",
    "expand",
    "expand_tree",
    "freeze_listing",
    "freeze_project",
    "freeze_snapshot",
    "normalize_document",
    "parse_document",
    "parse_snapshot",
    "project_to_document",
    "sequence_project",
    "setup_logger",
]
