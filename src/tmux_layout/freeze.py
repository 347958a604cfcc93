# =============================================================================
# Freeze Engine
# =============================================================================
# Reverse direction: a snapshot of a live session becomes a Project that,
# once compiled, recreates the same windows and panes.

import os

from loguru import logger

from .config_loader import DEFAULT_CONFIG
from .errors import ParseError, ValidationError
from .models import (
    Pane,
    PaneSnapshot,
    Project,
    SessionSnapshot,
    Window,
    WindowSnapshot,
)
from .normalizer import FORBIDDEN_NAME_CHARACTERS, normalize_command
from .path_utils import normalize_working_dir

SNAPSHOT_FIELDS = (
    "session_name",
    "window_index",
    "window_name",
    "window_layout",
    "pane_index",
    "pane_current_path",
    "pane_current_command",
)

# Pass to: tmux list-panes -a -F <SNAPSHOT_FORMAT>
SNAPSHOT_FORMAT = "\t".join(f"#{{{name}}}" for name in SNAPSHOT_FIELDS)

DEFAULT_SHELL_COMMANDS = tuple(DEFAULT_CONFIG["freeze"]["shell_commands"])


def _parse_index(value: str, line_number: int, field_name: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ParseError(
            f"expected an integer {field_name}, got {value!r}",
            path=f"line {line_number}"
        ) from None


def parse_snapshot(text: str, session_name: str) -> SessionSnapshot:
    """
    Build a SessionSnapshot from list-panes output in SNAPSHOT_FORMAT.

    Lines of other sessions are ignored, so the output of "list-panes -a"
    can be passed as is. Windows and panes keep the order tmux lists them in.

    Raises:
        ParseError: A line does not have the expected fields
        ValidationError: The session does not appear in the listing
    """
    windows: dict[int, dict] = {}
    field_count = len(SNAPSHOT_FIELDS)

    for line_number, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        parts = line.split("\t")
        if len(parts) < field_count:
            raise ParseError(
                f"expected {field_count} tab separated fields, got {len(parts)}",
                path=f"line {line_number}"
            )
        # A window name may itself contain tabs: everything extra belongs to it
        extra = len(parts) - field_count
        name_end = 3 + extra
        session = parts[0]
        window_name = "\t".join(parts[2:name_end])
        layout, pane_index, path, command = parts[name_end:]

        if session != session_name:
            continue

        window_index = _parse_index(parts[1], line_number, "window index")
        window = windows.setdefault(window_index, {
            "name": window_name or None,
            "layout": layout or None,
            "panes": [],
        })
        window["panes"].append(PaneSnapshot(
            index=_parse_index(pane_index, line_number, "pane index"),
            working_dir=path or None,
            command=command or None,
        ))

    if not windows:
        raise ValidationError(
            f"session {session_name!r} not found in listing",
            path="session_name",
            context={"session_name": session_name}
        )

    return SessionSnapshot(
        session_name=session_name,
        windows=tuple(
            WindowSnapshot(
                index=index,
                name=window["name"],
                layout=window["layout"],
                panes=tuple(window["panes"]),
            )
            for index, window in windows.items()
        ),
    )


def _running_commands(pane: PaneSnapshot, shell_commands) -> tuple[str, ...]:
    if not pane.command:
        return ()
    # Login shells show up as "-zsh"
    program = os.path.basename(pane.command.strip().lstrip("-"))
    if program in shell_commands:
        return ()
    return (normalize_command(pane.command),)


def _window_name(window: WindowSnapshot) -> str | None:
    name = window.name
    if name and any(c in name for c in FORBIDDEN_NAME_CHARACTERS):
        logger.warning(
            "Window name cannot be used as a target - dropping it",
            operation="freeze_snapshot",
            status="skip",
            window_index=window.index,
            window_name=name
        )
        return None
    return name or None


def _freeze_window(window: WindowSnapshot, index: int, pane_base_index: int,
                   inherited_dir: str | None, shell_commands) -> Window:
    window_dir = normalize_working_dir(window.panes[0].working_dir)
    effective_dir = window_dir or inherited_dir

    panes = []
    for position, pane in enumerate(window.panes):
        pane_dir = normalize_working_dir(pane.working_dir)
        panes.append(Pane(
            index=pane_base_index + position,
            working_dir=pane_dir if pane_dir != effective_dir else None,
            commands=_running_commands(pane, shell_commands),
        ))

    return Window(
        index=index,
        name=_window_name(window),
        working_dir=window_dir if window_dir != inherited_dir else None,
        layout=window.layout,
        panes=tuple(panes),
    )


def freeze_snapshot(snapshot: SessionSnapshot, shell_commands=DEFAULT_SHELL_COMMANDS) -> Project:
    """
    Turn a live session snapshot into a Project.

    The result carries no hooks and no pane_commands: only what is running
    right now can be recovered. Each window keeps its live layout string,
    which reproduces the pane geometry exactly. Working directories are
    hoisted: the first pane of the first window gives the project
    directory, the first pane of each window gives the window directory,
    and panes only record a directory that differs from their window's.

    Args:
        snapshot: Ordered windows and panes of the live session
        shell_commands: Foreground commands meaning "idle shell"

    Raises:
        ValidationError: The snapshot has no windows, or a window has no panes
    """
    if not snapshot.windows:
        raise ValidationError("snapshot has no windows", path="windows")
    for position, window in enumerate(snapshot.windows):
        if not window.panes:
            raise ValidationError("snapshot window has no panes", path=f"windows[{position}].panes")

    window_base_index = snapshot.windows[0].index
    pane_base_index = snapshot.windows[0].panes[0].index
    project_dir = normalize_working_dir(snapshot.windows[0].panes[0].working_dir)
    shells = frozenset(shell_commands)

    windows = tuple(
        _freeze_window(window, window_base_index + position, pane_base_index, project_dir, shells)
        for position, window in enumerate(snapshot.windows)
    )

    logger.debug(
        "Snapshot frozen",
        operation="freeze_snapshot",
        status="success",
        session_name=snapshot.session_name,
        metrics={
            "windows": len(windows),
            "panes": sum(len(window.panes) for window in windows),
        }
    )

    return Project(
        session_name=snapshot.session_name,
        working_dir=project_dir,
        window_base_index=window_base_index,
        pane_base_index=pane_base_index,
        windows=windows,
    )
