# =============================================================================
# Command Sequencer
# =============================================================================
# Emits the tmux command lines that build a session, grouped and tagged by
# role. Creation order is strict: a pane must exist before it is split,
# typed into or used by a hook, so everything here is a single ordered pass.

import shlex

from loguru import logger

from .errors import ValidationError
from .models import (
    DETACHED_ROLES,
    ROLE_ATTACH,
    ROLE_CREATE,
    ROLE_LAYOUT,
    ROLE_ON_CREATE,
    ROLE_ON_PANE_CREATE,
    ROLE_PANE_COMMANDS,
    ROLE_POST_CREATE,
    ROLE_POST_PANE_CREATE,
    ROLE_SELECT,
    ROLE_SPLIT,
    CommandGroup,
    CompiledSession,
    Project,
    Window,
    WindowGeometry,
)
from .normalizer import resolve_pane, tmux_command_for
from .panes import resolve_window_geometry

CLEAR_KEYS = "C-l"
ENTER_KEYS = "C-m"


def tmux_arguments(project: Project, tmux_command: str | None = None) -> tuple[str, ...]:
    """
    Argument vector that invokes the multiplexer for this project.

    The binary may carry its own flags ("tmux -2"); socket and options are
    appended after it.
    """
    command = tmux_command_for(project, tmux_command)
    try:
        args = shlex.split(command)
        if project.tmux_socket:
            args += ["-L", project.tmux_socket]
        if project.tmux_options:
            args += shlex.split(project.tmux_options)
    except ValueError as e:
        raise ValidationError(f"cannot parse tmux command line: {e}", path="tmux_options") from e

    if not args:
        raise ValidationError("tmux command cannot be empty", path="tmux_command")
    return tuple(args)


def substitute(command: str, tmux: str, session: str,
               window: str | None = None, pane: str | None = None) -> str:
    """Replace the hook-time placeholders that are defined for this scope."""
    command = command.replace("__TMUX__", tmux).replace("__SESSION__", session)
    if window is not None:
        command = command.replace("__WINDOW__", window)
    if pane is not None:
        command = command.replace("__PANE__", pane)
    return command


def _quote(value) -> str:
    return shlex.quote(str(value))


def _run_shell(command: str) -> str:
    # run-shell expands #{...} formats, so literal "#" must be doubled
    return f"run-shell {_quote(command.replace('#', '##'))}"


def _send_keys(target: str, *keys: str) -> str:
    return " ".join(["send-keys", "-t", _quote(target), *keys])


def _with_working_dir(parts: list[str], working_dir: str | None) -> list[str]:
    if working_dir:
        parts += ["-c", _quote(working_dir)]
    return parts


class _Sequencer:
    """Holds the per-compilation constants while groups are emitted."""

    def __init__(self, project: Project, tmux_args: tuple[str, ...]):
        self.project = project
        self.session = project.session_name
        self.tmux = shlex.join(tmux_args)
        self.groups: list[CommandGroup] = []

    def window_target(self, window: Window) -> str:
        return f"{self.session}:{window.index}"

    def pane_target(self, window: Window, live_index: int) -> str:
        return f"{self.window_target(window)}.{live_index}"

    def emit(self, role: str, commands: list[str], window: Window | None = None,
             pane_index: int | None = None) -> None:
        if not commands:
            return
        self.groups.append(CommandGroup(
            role=role,
            commands=tuple(commands),
            window_index=window.index if window is not None else None,
            pane_index=pane_index,
        ))

    def hooks(self, commands, window: Window | None = None, pane: str | None = None) -> list[str]:
        window_target = self.window_target(window) if window is not None else None
        return [
            _run_shell(substitute(command, self.tmux, self.session, window_target, pane))
            for command in commands
        ]

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def create_window(self, window: Window, first: bool) -> None:
        project = self.project
        first_pane = resolve_pane(project, window, window.panes[0])
        target = self.window_target(window)

        if first:
            parts = ["new-session", "-d", "-s", _quote(self.session)]
        else:
            parts = ["new-window", "-t", _quote(target)]
        if window.name is not None:
            parts += ["-n", _quote(window.name)]
        commands = [" ".join(_with_working_dir(parts, first_pane.working_dir))]

        if first:
            commands += [
                f"set-option -t {_quote(self.session)} base-index {project.window_base_index}",
                f"move-window -r -t {_quote(self.session)}",
            ]
        commands.append(
            f"set-option -w -t {_quote(target)} pane-base-index {project.pane_base_index}"
        )
        if window.panes[0].name is not None:
            commands.append(
                f"select-pane -t {_quote(self.pane_target(window, project.pane_base_index))} "
                f"-T {_quote(window.panes[0].name)}"
            )

        self.emit(ROLE_CREATE if first else ROLE_SPLIT, commands, window,
                  project.pane_base_index)

    def split_panes(self, window: Window, geometry: WindowGeometry) -> None:
        for split in geometry.splits:
            pane = window.panes[split.pane_position]
            resolved = resolve_pane(self.project, window, pane)

            parts = ["split-window", "-t", _quote(self.pane_target(window, split.source_target_index))]
            if split.direction is not None:
                parts.append(split.direction.flag)
            if split.size is not None:
                parts += ["-l", _quote(split.size)]
            commands = [" ".join(_with_working_dir(parts, resolved.working_dir))]

            if pane.name is not None:
                new_pane = self.pane_target(window, split.source_target_index + 1)
                commands.append(f"select-pane -t {_quote(new_pane)} -T {_quote(pane.name)}")

            self.emit(ROLE_SPLIT, commands, window, pane.index)

    def apply_layout(self, window: Window, geometry: WindowGeometry) -> None:
        if geometry.layout:
            self.emit(ROLE_LAYOUT, [
                f"select-layout -t {_quote(self.window_target(window))} {_quote(geometry.layout)}"
            ], window)

    # -------------------------------------------------------------------------
    # Hooks and typed commands
    # -------------------------------------------------------------------------

    def initialize_window(self, window: Window, geometry: WindowGeometry) -> None:
        self.emit(ROLE_ON_CREATE, self.hooks(window.on_create, window), window)

        for position, pane in enumerate(window.panes):
            resolved = resolve_pane(self.project, window, pane)
            target = self.pane_target(window, geometry.final_indices[position])
            window_target = self.window_target(window)

            self.emit(ROLE_ON_PANE_CREATE,
                      self.hooks(resolved.on_create, window, target), window, pane.index)

            typed = [
                _send_keys(target, _quote(substitute(
                    command, self.tmux, self.session, window_target, target)), ENTER_KEYS)
                for command in resolved.commands
            ]
            if pane.clear:
                typed.append(_send_keys(target, CLEAR_KEYS))
            self.emit(ROLE_PANE_COMMANDS, typed, window, pane.index)

            self.emit(ROLE_POST_PANE_CREATE,
                      self.hooks(resolved.post_create, window, target), window, pane.index)

        self.emit(ROLE_POST_CREATE, self.hooks(window.post_create, window), window)

    # -------------------------------------------------------------------------
    # Session tail
    # -------------------------------------------------------------------------

    def select_startup(self, geometries: dict[int, WindowGeometry]) -> None:
        project = self.project
        window = project.window_by_selector(project.startup_window)
        geometry = geometries[window.index]

        position = 0
        if project.startup_pane is not None:
            position = project.startup_pane - project.pane_base_index
        pane_target = self.pane_target(window, geometry.final_indices[position])

        self.emit(ROLE_SELECT, [
            f"select-window -t {_quote(self.window_target(window))}",
            f"select-pane -t {_quote(pane_target)}",
        ], window, window.panes[position].index)

    def detached_groups(self) -> dict[str, CommandGroup]:
        return {
            role: CommandGroup(
                role=role,
                commands=tuple(
                    substitute(command, self.tmux, self.session)
                    for command in getattr(self.project, role)
                ),
            )
            for role in DETACHED_ROLES
        }


def sequence_project(project: Project, tmux_command: str | None = None) -> CompiledSession:
    """
    Produce the full, ordered command sequence for a normalized project.

    Per window: creation, splits, layout, then on_create, the per-pane
    on_pane_create / typed commands / post_pane_create chains, and
    post_create. After all windows: session post_create, startup selection
    and the attach directive (left out when the project is detached).
    on_start/on_first_start/on_restart/on_exit/on_stop are returned
    separately because choosing among them depends on live state.

    Args:
        project: Normalized project
        tmux_command: Multiplexer binary override from settings

    Raises:
        ValidationError: Missing session name, unparsable tmux command line
            or invalid split_from. Raised before anything is returned.
    """
    if not project.session_name:
        raise ValidationError("session_name is required", path="session_name")

    tmux_args = tmux_arguments(project, tmux_command)

    # Resolve every window first so geometry errors abort before output
    geometries = {
        window.index: resolve_window_geometry(
            window, project.pane_base_index, f"windows[{position}]")
        for position, window in enumerate(project.windows)
    }

    sequencer = _Sequencer(project, tmux_args)
    for position, window in enumerate(project.windows):
        geometry = geometries[window.index]
        sequencer.create_window(window, first=position == 0)
        sequencer.split_panes(window, geometry)
        sequencer.apply_layout(window, geometry)
        sequencer.initialize_window(window, geometry)

        logger.debug(
            "Window sequenced",
            operation="sequence_project",
            window_index=window.index,
            window_name=window.name,
            metrics={"panes": len(window.panes)}
        )

    sequencer.emit(ROLE_POST_CREATE, sequencer.hooks(project.post_create))
    sequencer.select_startup(geometries)
    if project.attach:
        sequencer.emit(ROLE_ATTACH, [f"attach-session -t {_quote(project.session_name)}"])

    compiled = CompiledSession(
        session_name=project.session_name,
        tmux_args=tmux_args,
        groups=tuple(sequencer.groups),
        detached_groups=sequencer.detached_groups(),
    )

    logger.debug(
        "Project sequenced",
        operation="sequence_project",
        status="success",
        session_name=project.session_name,
        metrics={
            "groups": len(compiled.groups),
            "commands": sum(len(group.commands) for group in compiled.groups),
        }
    )
    return compiled
