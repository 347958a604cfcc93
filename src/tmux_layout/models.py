# =============================================================================
# Session Model
# =============================================================================
# Frozen entities produced by the normalizer (and by freeze). Hook and
# command lists are tuples so inherited chains are always built by
# concatenation, never by mutating a shared list.

from dataclasses import dataclass, field
from enum import Enum

DEFAULT_TMUX_COMMAND = "tmux"
DEFAULT_SPLIT_SIZE = "50%"
DEFAULT_BASE_INDEX = 1

NAMED_LAYOUTS = (
    "even-horizontal",
    "even-vertical",
    "main-horizontal",
    "main-vertical",
    "tiled",
)


class SplitDirection(Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"

    @property
    def flag(self) -> str:
        """split-window flag for this direction."""
        return "-h" if self is SplitDirection.HORIZONTAL else "-v"

    @classmethod
    def parse(cls, value: str) -> "SplitDirection | None":
        """Accept h/horizontal/v/vertical in any case, None otherwise."""
        lowered = value.strip().lower()
        if lowered in ("h", "horizontal"):
            return cls.HORIZONTAL
        if lowered in ("v", "vertical"):
            return cls.VERTICAL
        return None


@dataclass(frozen=True)
class Pane:
    index: int = DEFAULT_BASE_INDEX
    name: str | None = None
    working_dir: str | None = None
    split: SplitDirection | None = None
    split_from: int | None = None
    split_size: str | None = None
    clear: bool = False
    on_create: tuple[str, ...] = ()
    post_create: tuple[str, ...] = ()
    commands: tuple[str, ...] = ()


@dataclass(frozen=True)
class Window:
    index: int = DEFAULT_BASE_INDEX
    name: str | None = None
    working_dir: str | None = None
    layout: str | None = None
    on_create: tuple[str, ...] = ()
    post_create: tuple[str, ...] = ()
    on_pane_create: tuple[str, ...] = ()
    post_pane_create: tuple[str, ...] = ()
    pane_commands: tuple[str, ...] = ()
    panes: tuple[Pane, ...] = (Pane(),)

    @property
    def has_layout(self) -> bool:
        return bool(self.layout)

    @property
    def has_named_layout(self) -> bool:
        return self.layout in NAMED_LAYOUTS


@dataclass(frozen=True)
class Project:
    session_name: str | None = None
    tmux_command: str | None = None
    tmux_options: str | None = None
    tmux_socket: str | None = None
    working_dir: str | None = None
    window_base_index: int = DEFAULT_BASE_INDEX
    pane_base_index: int = DEFAULT_BASE_INDEX
    startup_window: str | int | None = None
    startup_pane: int | None = None
    on_start: tuple[str, ...] = ()
    on_first_start: tuple[str, ...] = ()
    on_restart: tuple[str, ...] = ()
    on_exit: tuple[str, ...] = ()
    on_stop: tuple[str, ...] = ()
    post_create: tuple[str, ...] = ()
    on_pane_create: tuple[str, ...] = ()
    post_pane_create: tuple[str, ...] = ()
    pane_commands: tuple[str, ...] = ()
    attach: bool = True
    windows: tuple[Window, ...] = (Window(),)

    def window_by_selector(self, selector: str | int | None) -> Window | None:
        """Find the window a startup_window value points at."""
        if selector is None:
            return self.windows[0] if self.windows else None
        for window in self.windows:
            if isinstance(selector, int) and window.index == selector:
                return window
            if isinstance(selector, str) and window.name == selector:
                return window
        return None


@dataclass(frozen=True)
class ResolvedPane:
    """A pane with everything it inherits from its window and project."""

    pane: Pane
    working_dir: str | None
    on_create: tuple[str, ...]
    commands: tuple[str, ...]
    post_create: tuple[str, ...]


# =============================================================================
# Layout geometry
# =============================================================================


@dataclass(frozen=True)
class SplitDirective:
    """How one pane is carved out of an existing pane of its window."""

    pane_position: int
    source_position: int
    source_target_index: int
    direction: SplitDirection | None = None
    size: str | None = None


@dataclass(frozen=True)
class WindowGeometry:
    splits: tuple[SplitDirective, ...] = ()
    layout: str | None = None
    # Live pane index of each declared pane, once every split has run
    final_indices: tuple[int, ...] = ()


# =============================================================================
# Sequencer output
# =============================================================================

# Roles of the creation sequence, in the order they can appear. A window
# after the first is opened by a "split" group: new-window adds one pane to
# the session just like split-window does.
ROLE_CREATE = "create"
ROLE_SPLIT = "split"
ROLE_LAYOUT = "layout"
ROLE_ON_CREATE = "hook:on_create"
ROLE_ON_PANE_CREATE = "hook:on_pane_create"
ROLE_PANE_COMMANDS = "pane_commands"
ROLE_POST_PANE_CREATE = "hook:post_pane_create"
ROLE_POST_CREATE = "hook:post_create"
ROLE_SELECT = "select"
ROLE_ATTACH = "attach"

# Groups the collaborator runs outside the creation sequence
DETACHED_ROLES = ("on_start", "on_first_start", "on_restart", "on_exit", "on_stop")


@dataclass(frozen=True)
class CommandGroup:
    role: str
    commands: tuple[str, ...]
    window_index: int | None = None
    pane_index: int | None = None


@dataclass(frozen=True)
class CompiledSession:
    session_name: str
    tmux_args: tuple[str, ...]
    groups: tuple[CommandGroup, ...]
    detached_groups: dict = field(default_factory=dict)

    def groups_with_role(self, role: str) -> list[CommandGroup]:
        return [group for group in self.groups if group.role == role]

    def source(self, include_attach: bool = False) -> str:
        """
        Render the creation sequence as a tmux source file.

        The attach group is left out by default: attaching needs a client,
        which a "tmux source -" invocation does not have.
        """
        lines = []
        for group in self.groups:
            if group.role == ROLE_ATTACH and not include_attach:
                continue
            lines.extend(group.commands)
        return "\n".join(lines) + "\n" if lines else ""


# =============================================================================
# Live session snapshot (input of freeze)
# =============================================================================


@dataclass(frozen=True)
class PaneSnapshot:
    index: int
    working_dir: str | None = None
    command: str | None = None


@dataclass(frozen=True)
class WindowSnapshot:
    index: int
    name: str | None = None
    layout: str | None = None
    panes: tuple[PaneSnapshot, ...] = ()


@dataclass(frozen=True)
class SessionSnapshot:
    session_name: str
    windows: tuple[WindowSnapshot, ...] = ()
