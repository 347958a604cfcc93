# =============================================================================
# Entity Normalizer
# =============================================================================
# Turns the loosely typed document tree (as parsed from YAML/JSON) into the
# frozen Project/Window/Pane model. Nothing loosely typed crosses this
# module's boundary: every public function returns model objects or raises
# ParseError/ValidationError.

from collections.abc import Mapping
from typing import Any

from loguru import logger

from .errors import Error, ErrorReport, ErrorType, ParseError, ValidationError
from .models import (
    DEFAULT_BASE_INDEX,
    DEFAULT_TMUX_COMMAND,
    Pane,
    Project,
    ResolvedPane,
    SplitDirection,
    Window,
)
from .path_utils import expand_working_dir, home_working_dir
from .variables import VariableContext, expand_tree

# =============================================================================
# Alias Tables
# =============================================================================
# (canonical field, accepted names in priority order). When a document uses
# several names of one field, the one listed first wins.

PROJECT_FIELDS = (
    ("session_name", ("session_name", "name")),
    ("tmux_command", ("tmux_command",)),
    ("tmux_options", ("tmux_options",)),
    ("tmux_socket", ("tmux_socket", "socket_name")),
    ("working_dir", ("working_dir", "root")),
    ("window_base_index", ("window_base_index",)),
    ("pane_base_index", ("pane_base_index",)),
    ("startup_window", ("startup_window",)),
    ("startup_pane", ("startup_pane",)),
    ("on_start", ("on_start", "on_project_start")),
    ("on_first_start", ("on_first_start", "on_project_first_start", "on_create")),
    ("on_restart", ("on_restart", "on_project_restart")),
    ("on_exit", ("on_exit", "on_project_exit")),
    ("on_stop", ("on_stop", "on_project_stop")),
    ("post_create", ("post_create",)),
    ("on_pane_create", ("on_pane_create",)),
    ("post_pane_create", ("post_pane_create",)),
    ("pane_commands", ("pane_commands", "pane_command", "pre_window", "pre")),
    ("attach", ("attach", "tmux_attached")),
    ("detached", ("detached", "tmux_detached")),
    ("windows", ("windows", "window")),
)

WINDOW_FIELDS = (
    ("name", ("name", "title")),
    ("working_dir", ("working_dir", "root")),
    ("layout", ("layout",)),
    ("on_create", ("on_create",)),
    ("post_create", ("post_create",)),
    ("on_pane_create", ("on_pane_create",)),
    ("post_pane_create", ("post_pane_create",)),
    ("pane_commands", ("pane_commands", "pane_command", "pre")),
    ("panes", ("panes",)),
)

PANE_FIELDS = (
    ("name", ("name", "title")),
    ("working_dir", ("working_dir", "root")),
    ("split", ("split",)),
    ("split_from", ("split_from",)),
    ("split_size", ("split_size",)),
    ("clear", ("clear",)),
    ("on_create", ("on_create",)),
    ("post_create", ("post_create",)),
    ("commands", ("commands", "command")),
)

# A project must declare at least one of these to be considered non-empty
PROJECT_CONTENT_FIELDS = (
    "session_name", "working_dir", "windows", "pane_commands",
    "on_start", "on_first_start", "on_restart", "on_exit", "on_stop",
    "post_create", "on_pane_create", "post_pane_create",
)

FORBIDDEN_NAME_CHARACTERS = ".:"

# Priority given to the entry name of a "name: value" shorthand mapping
_SHORTHAND_RANK = -1


def _keywords(table) -> dict[str, tuple[str, int]]:
    """Map every accepted field name to (canonical name, priority rank)."""
    return {alias: (canonical, rank)
            for canonical, aliases in table
            for rank, alias in enumerate(aliases)}


_PROJECT_KEYWORDS = _keywords(PROJECT_FIELDS)
_WINDOW_KEYWORDS = _keywords(WINDOW_FIELDS)
_PANE_KEYWORDS = _keywords(PANE_FIELDS)


# =============================================================================
# Scalar Coercion
# =============================================================================


def _is_scalar(value) -> bool:
    return isinstance(value, (str, int, float)) and not isinstance(value, bool)


def normalize_command(command: str) -> str:
    """Commands are single keystroke lines: drop CR, turn LF into a space."""
    return command.replace("\r", "").replace("\n", " ")


def command_list(value, path: str) -> tuple[str, ...]:
    """Accept a single command or a list of commands."""
    if value is None:
        return ()
    if _is_scalar(value):
        return (normalize_command(str(value)),)
    if isinstance(value, list):
        commands = []
        for position, item in enumerate(value):
            if not _is_scalar(item):
                raise ParseError(
                    f"expected a command string, got {type(item).__name__}",
                    path=f"{path}[{position}]"
                )
            commands.append(normalize_command(str(item)))
        return tuple(commands)
    raise ParseError(
        f"expected a command or a list of commands, got {type(value).__name__}",
        path=path
    )


def _optional_string(value, path: str) -> str | None:
    if value is None:
        return None
    if _is_scalar(value):
        return str(value)
    raise ParseError(f"expected a string, got {type(value).__name__}", path=path)


def _identifier(value, path: str, what: str) -> str | None:
    """
    Session/window names cannot contain tmux target separators.

    An empty name (e.g. "$UNSET" after expansion) counts as no name.
    """
    name = _optional_string(value, path) or None
    if name is not None and any(c in name for c in FORBIDDEN_NAME_CHARACTERS):
        raise ValidationError(
            f"{what} {name!r} cannot contain the following characters: {FORBIDDEN_NAME_CHARACTERS}",
            path=path,
            context={"name": name}
        )
    return name


def _working_dir(value, path: str) -> str:
    # An explicit null means "home", an absent field means "inherit"
    if value is None:
        return home_working_dir()
    if _is_scalar(value):
        return expand_working_dir(str(value))
    raise ParseError(f"expected a directory path, got {type(value).__name__}", path=path)


def _non_negative_int(value, path: str, default: int | None = None) -> int | None:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ParseError(f"expected a non-negative integer, got {value!r}", path=path)
    if value < 0:
        raise ValidationError(f"must be non-negative, got {value}", path=path)
    return value


def _optional_bool(value, path: str) -> bool | None:
    if value is None or isinstance(value, bool):
        return value
    raise ParseError(f"expected a boolean, got {value!r}", path=path)


def _split_direction(value, path: str) -> SplitDirection | None:
    if value is None:
        return None
    direction = SplitDirection.parse(value) if isinstance(value, str) else None
    if direction is None:
        raise ValidationError(
            f"expected split value {value!r} to match v|h|vertical|horizontal",
            path=path
        )
    return direction


def _split_size(value, path: str) -> str | None:
    """Cell counts and percentages are passed through as tmux "-l" values."""
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return str(value)
    if isinstance(value, str):
        stripped = value.strip()
        digits = stripped[:-1] if stripped.endswith("%") else stripped
        if digits.isdigit() and int(digits) > 0:
            return stripped
    raise ValidationError(
        f"expected split_size {value!r} to be a cell count or a percentage like \"30%\"",
        path=path
    )


def _clear_flag(value, path: str) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    raise ParseError(f"expected a boolean, got {value!r}", path=path)


# =============================================================================
# Alias Folding and Shorthand Detection
# =============================================================================


def fold_fields(
    pairs: list[tuple[Any, Any, int | None]],
    keywords: dict[str, tuple[str, int]],
    path: str,
    entity: str,
    report: ErrorReport,
) -> dict[str, Any]:
    """
    Collapse (key, value, rank override) pairs into {canonical: value}.

    Unknown keys are a validation error. When several accepted names of the
    same field are present, the highest-priority one wins and differing
    values are added to the report as warnings.
    """
    candidates: dict[str, list[tuple[int, str, Any]]] = {}
    for key, value, rank_override in pairs:
        if not isinstance(key, str) or key not in keywords:
            raise ValidationError(
                f"unknown {entity} field {key!r}",
                path=path,
                context={"field": str(key)}
            )
        canonical, rank = keywords[key]
        if rank_override is not None:
            rank = rank_override
        candidates.setdefault(canonical, []).append((rank, key, value))

    fields = {}
    for canonical, found in candidates.items():
        found.sort(key=lambda item: item[0])
        winner_rank, winner_key, winner_value = found[0]
        for _, loser_key, loser_value in found[1:]:
            if loser_value != winner_value:
                report.add_warning(Error(
                    error_type=ErrorType.VALIDATION_ERROR,
                    message=f"conflicting {entity} field aliases: keeping {winner_key!r}, ignoring {loser_key!r}",
                    context={"path": path, "field": canonical, "kept": winner_key, "ignored": loser_key}
                ))
        fields[canonical] = winner_value
    return fields


def _entry_pairs(
    mapping: Mapping,
    keywords: dict[str, tuple[str, int]],
    shorthand_field: str,
    path: str,
    entity: str,
) -> list[tuple[Any, Any, int | None]]:
    """
    Flatten a window/pane mapping into field pairs.

    If the first key is a field keyword the mapping is a plain definition.
    Otherwise the first key is the entry's name and its value is either a
    nested definition or the shorthand content (panes for a window, commands
    for a pane); every following key must then be a field keyword.
    """
    items = list(mapping.items())
    if not items:
        raise ValidationError(f"{entity} definition is empty", path=path)

    first_key, first_value = items[0]
    if isinstance(first_key, str) and first_key in keywords:
        return [(key, value, None) for key, value in items]

    pairs: list[tuple[Any, Any, int | None]] = []
    # A name that expanded to "" leaves the entry unnamed
    if first_key is not None and first_key != "":
        if not _is_scalar(first_key):
            raise ParseError(f"{entity} name must be a string, got {first_key!r}", path=path)
        pairs.append(("name", str(first_key), _SHORTHAND_RANK))

    if isinstance(first_value, Mapping):
        nested = list(first_value.items())
        for key, _ in nested:
            if not isinstance(key, str) or key not in keywords:
                raise ValidationError(
                    f"unknown {entity} field {key!r} in definition of {first_key!r}",
                    path=path,
                    context={"field": str(key)}
                )
        pairs.extend((key, value, None) for key, value in nested)
    elif isinstance(first_value, bool):
        raise ValidationError(
            f"ambiguous {entity} entry {first_key!r}: {first_value!r} is neither a field nor a command",
            path=path
        )
    elif first_value is not None:
        pairs.append((shorthand_field, first_value, _SHORTHAND_RANK))

    for key, value in items[1:]:
        if key is None:
            raise ValidationError(
                "null name can only be set as first element of the map",
                path=path
            )
        pairs.append((key, value, None))
    return pairs


# =============================================================================
# Pane / Window / Project Builders
# =============================================================================


def _build_pane(raw, position: int, pane_base_index: int, path: str,
                report: ErrorReport) -> Pane:
    index = pane_base_index + position
    if raw is None:
        return Pane(index=index)
    if _is_scalar(raw) or isinstance(raw, list):
        return Pane(index=index, commands=command_list(raw, path))
    if not isinstance(raw, Mapping):
        raise ParseError(f"invalid pane definition of type {type(raw).__name__}", path=path)

    pairs = _entry_pairs(raw, _PANE_KEYWORDS, "commands", path, "pane")
    fields = fold_fields(pairs, _PANE_KEYWORDS, path, "pane", report)

    return Pane(
        index=index,
        name=_optional_string(fields.get("name"), f"{path}.name") or None,
        working_dir=(_working_dir(fields["working_dir"], f"{path}.working_dir")
                     if "working_dir" in fields else None),
        split=_split_direction(fields.get("split"), f"{path}.split"),
        split_from=_non_negative_int(fields.get("split_from"), f"{path}.split_from"),
        split_size=_split_size(fields.get("split_size"), f"{path}.split_size"),
        clear=_clear_flag(fields.get("clear"), f"{path}.clear"),
        on_create=command_list(fields.get("on_create"), f"{path}.on_create"),
        post_create=command_list(fields.get("post_create"), f"{path}.post_create"),
        commands=command_list(fields.get("commands"), f"{path}.commands"),
    )


def _build_panes(raw, pane_base_index: int, path: str,
                 report: ErrorReport) -> tuple[Pane, ...]:
    if raw is None:
        return (Pane(index=pane_base_index),)
    # A single string or definition stands for a one-pane list
    entries = raw if isinstance(raw, list) else [raw]
    if not entries:
        raise ValidationError("window must have at least one pane", path=path)
    return tuple(
        _build_pane(entry, position, pane_base_index, f"{path}[{position}]", report)
        for position, entry in enumerate(entries)
    )


def _check_layout_conflicts(window: Window, path: str) -> None:
    if not window.has_layout:
        return
    for position, pane in enumerate(window.panes):
        for field_name in ("split", "split_size"):
            if getattr(pane, field_name) is not None:
                raise ValidationError(
                    f"pane cannot declare {field_name} because the window has layout {window.layout!r}",
                    path=f"{path}.panes[{position}].{field_name}",
                    context={
                        "window_index": window.index,
                        "pane_index": pane.index,
                        "field": field_name,
                    }
                )


def _build_window(raw, position: int, window_base_index: int, pane_base_index: int,
                  path: str, report: ErrorReport) -> Window:
    index = window_base_index + position
    if raw is None:
        return Window(index=index, panes=(Pane(index=pane_base_index),))
    if _is_scalar(raw) or isinstance(raw, list):
        # "cmd" or ["cmd1", "cmd2"]: one pane per command, nothing else set
        return Window(index=index, panes=_build_panes(raw, pane_base_index, f"{path}.panes", report))
    if not isinstance(raw, Mapping):
        raise ParseError(f"invalid window definition of type {type(raw).__name__}", path=path)

    pairs = _entry_pairs(raw, _WINDOW_KEYWORDS, "panes", path, "window")
    fields = fold_fields(pairs, _WINDOW_KEYWORDS, path, "window", report)

    layout = _optional_string(fields.get("layout"), f"{path}.layout")
    window = Window(
        index=index,
        name=_identifier(fields.get("name"), f"{path}.name", "window name"),
        working_dir=(_working_dir(fields["working_dir"], f"{path}.working_dir")
                     if "working_dir" in fields else None),
        layout=layout.strip() if layout and layout.strip() else None,
        on_create=command_list(fields.get("on_create"), f"{path}.on_create"),
        post_create=command_list(fields.get("post_create"), f"{path}.post_create"),
        on_pane_create=command_list(fields.get("on_pane_create"), f"{path}.on_pane_create"),
        post_pane_create=command_list(fields.get("post_pane_create"), f"{path}.post_pane_create"),
        pane_commands=command_list(fields.get("pane_commands"), f"{path}.pane_commands"),
        panes=_build_panes(fields.get("panes"), pane_base_index, f"{path}.panes", report),
    )
    _check_layout_conflicts(window, path)
    return window


def _build_windows(raw, window_base_index: int, pane_base_index: int,
                   report: ErrorReport) -> tuple[Window, ...]:
    if raw is None:
        return (Window(index=window_base_index, panes=(Pane(index=pane_base_index),)),)
    entries = raw if isinstance(raw, list) else [raw]
    if not entries:
        raise ValidationError("project must have at least one window", path="windows")
    return tuple(
        _build_window(entry, position, window_base_index, pane_base_index, f"windows[{position}]",
                      report)
        for position, entry in enumerate(entries)
    )


def _resolve_attach(fields: dict, force_attach: bool | None) -> bool:
    attach = _optional_bool(fields.get("attach"), "attach")
    detached = _optional_bool(fields.get("detached"), "detached")

    if attach is not None and detached is not None:
        raise ValidationError(
            "cannot set both 'attach' and 'detached' fields",
            path="attach",
            context={"attach": attach, "detached": detached}
        )

    if force_attach is not None:
        return force_attach
    if attach is not None:
        return attach
    if detached is not None:
        return not detached
    return True


def _check_startup_selection(project: Project) -> None:
    selector = project.startup_window
    window = project.window_by_selector(selector)
    if window is None:
        if isinstance(selector, int):
            message = f"there is no window with index {selector}"
        else:
            message = f"there is no window with name {selector!r}"
        raise ValidationError(message, path="startup_window")

    if project.startup_pane is not None:
        first = project.pane_base_index
        last = first + len(window.panes) - 1
        if not first <= project.startup_pane <= last:
            raise ValidationError(
                f"there is no pane with index {project.startup_pane} in window {window.index}",
                path="startup_pane",
                context={"window_index": window.index}
            )


def _startup_window(value) -> str | int | None:
    if value is None or (isinstance(value, int) and not isinstance(value, bool)):
        return value
    if isinstance(value, str):
        return int(value) if value.isdigit() else value
    raise ParseError(f"expected a window index or name, got {value!r}", path="startup_window")


def build_project(
    document,
    project_name: str | None = None,
    force_attach: bool | None = None,
    report: ErrorReport | None = None,
) -> Project:
    """
    Normalize an already-expanded document tree into a Project.

    Args:
        document: Raw tree (mappings, lists, scalars) rooted at a mapping
        project_name: Session name used when the document declares none
        force_attach: Overrides attach/detached when not None
        report: Collects alias conflict warnings, a fresh one when None

    Raises:
        ParseError: The tree does not have the expected shape
        ValidationError: A model invariant is violated
    """
    if document is None:
        raise ValidationError(
            "project is empty: set at least one of " + ", ".join(PROJECT_CONTENT_FIELDS)
        )
    if not isinstance(document, Mapping):
        raise ParseError(f"document root must be a mapping, got {type(document).__name__}")
    if report is None:
        report = ErrorReport()

    fields = fold_fields(
        [(key, value, None) for key, value in document.items()],
        _PROJECT_KEYWORDS, "", "project", report
    )
    if not any(name in fields for name in PROJECT_CONTENT_FIELDS):
        raise ValidationError(
            "project is empty: set at least one of " + ", ".join(PROJECT_CONTENT_FIELDS)
        )

    window_base_index = _non_negative_int(
        fields.get("window_base_index"), "window_base_index", DEFAULT_BASE_INDEX)
    pane_base_index = _non_negative_int(
        fields.get("pane_base_index"), "pane_base_index", DEFAULT_BASE_INDEX)

    session_name = _identifier(fields.get("session_name"), "session_name", "session name")
    if session_name is None and project_name:
        session_name = _identifier(project_name, "session_name", "session name")

    project = Project(
        session_name=session_name,
        tmux_command=_optional_string(fields.get("tmux_command"), "tmux_command"),
        tmux_options=_optional_string(fields.get("tmux_options"), "tmux_options"),
        tmux_socket=_optional_string(fields.get("tmux_socket"), "tmux_socket"),
        working_dir=(_working_dir(fields["working_dir"], "working_dir")
                     if "working_dir" in fields else None),
        window_base_index=window_base_index,
        pane_base_index=pane_base_index,
        startup_window=_startup_window(fields.get("startup_window")),
        startup_pane=_non_negative_int(fields.get("startup_pane"), "startup_pane"),
        on_start=command_list(fields.get("on_start"), "on_start"),
        on_first_start=command_list(fields.get("on_first_start"), "on_first_start"),
        on_restart=command_list(fields.get("on_restart"), "on_restart"),
        on_exit=command_list(fields.get("on_exit"), "on_exit"),
        on_stop=command_list(fields.get("on_stop"), "on_stop"),
        post_create=command_list(fields.get("post_create"), "post_create"),
        on_pane_create=command_list(fields.get("on_pane_create"), "on_pane_create"),
        post_pane_create=command_list(fields.get("post_pane_create"), "post_pane_create"),
        pane_commands=command_list(fields.get("pane_commands"), "pane_commands"),
        attach=_resolve_attach(fields, force_attach),
        windows=_build_windows(fields.get("windows"), window_base_index, pane_base_index, report),
    )
    _check_startup_selection(project)
    return project


def normalize_document(
    document,
    context: VariableContext,
    project_name: str | None = None,
    force_attach: bool | None = None,
    report: ErrorReport | None = None,
) -> Project:
    """Expand every string of the document, then normalize it."""
    logger.debug(
        "Normalizing document",
        operation="normalize_document",
        status="started",
        project_name=project_name
    )

    project = build_project(expand_tree(document, context), project_name, force_attach, report)

    logger.debug(
        "Document normalized",
        operation="normalize_document",
        status="success",
        session_name=project.session_name,
        metrics={
            "windows": len(project.windows),
            "panes": sum(len(window.panes) for window in project.windows),
        }
    )
    return project


# =============================================================================
# Inheritance
# =============================================================================


def tmux_command_for(project: Project, override: str | None = None) -> str:
    """Binary precedence: settings override, then project, then "tmux"."""
    return override or project.tmux_command or DEFAULT_TMUX_COMMAND


def window_working_dir(project: Project, window: Window) -> str | None:
    return window.working_dir or project.working_dir


def resolve_pane(project: Project, window: Window, pane: Pane) -> ResolvedPane:
    """
    Compute what a pane inherits.

    The working directory is overridden level by level; hook and command
    chains are concatenated project first, then window, then pane.
    """
    return ResolvedPane(
        pane=pane,
        working_dir=pane.working_dir or window_working_dir(project, window),
        on_create=project.on_pane_create + window.on_pane_create + pane.on_create,
        commands=project.pane_commands + window.pane_commands + pane.commands,
        post_create=project.post_pane_create + window.post_pane_create + pane.post_create,
    )
