# =============================================================================
# Compilation Pipeline
# =============================================================================
# Entry points used by the collaborator (CLI, editor integration, tests).
# Every stage below raises CompileError; nothing here lets one escape, so
# callers only ever see a Result holding either complete output or an Error.

import time
from collections.abc import Mapping, Sequence
from pathlib import Path
from uuid import uuid4

from loguru import logger

from .config_loader import load_settings
from .document import dump_document, format_for_path, parse_document
from .errors import CompileError, Error, ErrorReport, ErrorType, Result
from .freeze import freeze_snapshot, parse_snapshot
from .logging_config import trace_id_var
from .models import CompiledSession, Project, SessionSnapshot
from .normalizer import normalize_document
from .sequencer import sequence_project
from .variables import VariableContext


def _settings(settings: dict | None) -> Result[dict]:
    if settings is not None:
        return Result.ok(settings)
    return load_settings()


def _failed(report: ErrorReport, operation: str, op_trace_id: str, start_time: float) -> Result:
    """Log the abort of a pipeline run whose report holds the failure."""
    error = report.errors[-1]
    logger.error(
        "Compilation aborted",
        operation=operation,
        status="failed",
        trace_id=op_trace_id,
        error_type=error.error_type.value,
        metrics={"duration_ms": int((time.perf_counter() - start_time) * 1000)}
    )
    report.log_summary(op_trace_id, operation=operation)
    return Result.err(error)


def compile_project(
    document,
    args: Sequence[str] = (),
    environ: Mapping[str, str] | None = None,
    project_name: str | None = None,
    force_attach: bool | None = None,
    settings: dict | None = None,
) -> Result[CompiledSession]:
    """
    Compile a raw document tree into the command sequence of its session.

    Flow:
    1. Build the variable context (environment + positional arguments)
    2. Expand and normalize the document
    3. Resolve geometry and sequence the commands

    Args:
        document: Raw tree as returned by parse_document
        args: Positional arguments for $1, $2, ...
        environ: Environment for variable expansion, defaults to os.environ
        project_name: Session name used when the document declares none
        force_attach: Overrides attach/detached when not None
        settings: Loaded settings, read from the config file when None

    Returns:
        Result[CompiledSession]: Ok with the full sequence, or Err describing
        the first parse/validation failure
    """
    op_trace_id = str(uuid4())
    token = trace_id_var.set(op_trace_id)
    start_time = time.perf_counter()
    try:
        logger.info(
            "Compiling project",
            operation="compile_project",
            status="started",
            trace_id=op_trace_id,
            project_name=project_name
        )

        report = ErrorReport()
        settings_result = _settings(settings)
        if not report.collect_result(settings_result):
            return _failed(report, "compile_project", op_trace_id, start_time)

        context = VariableContext.from_environment(args, environ)
        try:
            project = normalize_document(document, context, project_name, force_attach, report)
            compiled = sequence_project(project, settings_result.value["tmux"].get("command"))
        except CompileError as e:
            report.add_error(e.to_error())
            return _failed(report, "compile_project", op_trace_id, start_time)

        logger.info(
            "Project compiled",
            operation="compile_project",
            status="success",
            trace_id=op_trace_id,
            session_name=compiled.session_name,
            metrics={
                "groups": len(compiled.groups),
                "duration_ms": int((time.perf_counter() - start_time) * 1000),
            }
        )
        report.log_summary(op_trace_id, operation="compile_project")
        return Result.ok(compiled)
    finally:
        trace_id_var.reset(token)


def compile_text(text: str, fmt: str = "yaml", **kwargs) -> Result[CompiledSession]:
    """Parse document text, then compile_project it."""
    try:
        document = parse_document(text, fmt)
    except CompileError as e:
        error = e.to_error()
        ErrorReport().add_error(error)
        return Result.err(error)
    return compile_project(document, **kwargs)


def compile_file(path: Path, **kwargs) -> Result[CompiledSession]:
    """
    Compile a project file; the file stem is the default session name.

    The serialization is picked from the extension (.json, else YAML).
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        error = Error(
            error_type=ErrorType.FILE_NOT_FOUND,
            message=f"Project file not found: {path}",
            context={"project_path": str(path)},
            original_exception=e
        )
        ErrorReport().add_error(error)
        return Result.err(error)
    except PermissionError as e:
        error = Error(
            error_type=ErrorType.PERMISSION_ERROR,
            message=f"Project file is not readable: {path}",
            context={"project_path": str(path)},
            original_exception=e
        )
        ErrorReport().add_error(error)
        return Result.err(error)

    kwargs.setdefault("project_name", path.stem)
    return compile_text(text, format_for_path(path), **kwargs)


def freeze_project(snapshot: SessionSnapshot, settings: dict | None = None) -> Result[Project]:
    """
    Freeze a live session snapshot into a Project.

    Args:
        snapshot: Ordered windows/panes of the live session
        settings: Loaded settings (freeze.shell_commands), read when None
    """
    op_trace_id = str(uuid4())
    token = trace_id_var.set(op_trace_id)
    start_time = time.perf_counter()
    try:
        report = ErrorReport()
        settings_result = _settings(settings)
        if not report.collect_result(settings_result):
            return _failed(report, "freeze_project", op_trace_id, start_time)

        try:
            project = freeze_snapshot(
                snapshot, settings_result.value["freeze"]["shell_commands"])
        except CompileError as e:
            report.add_error(e.to_error())
            return _failed(report, "freeze_project", op_trace_id, start_time)

        logger.info(
            "Session frozen",
            operation="freeze_project",
            status="success",
            trace_id=op_trace_id,
            session_name=project.session_name,
            metrics={
                "windows": len(project.windows),
                "duration_ms": int((time.perf_counter() - start_time) * 1000),
            }
        )
        return Result.ok(project)
    finally:
        trace_id_var.reset(token)


def freeze_listing(text: str, session_name: str, settings: dict | None = None) -> Result[str]:
    """
    Freeze list-panes output (in freeze.SNAPSHOT_FORMAT) straight to document text.

    The serialization comes from the document.format setting.
    """
    settings_result = _settings(settings)
    if settings_result.is_err():
        return settings_result

    try:
        snapshot = parse_snapshot(text, session_name)
    except CompileError as e:
        error = e.to_error()
        ErrorReport().add_error(error)
        return Result.err(error)

    result = freeze_project(snapshot, settings_result.value)
    if result.is_err():
        return result
    return Result.ok(dump_document(result.value, settings_result.value["document"]["format"]))
