# =============================================================================
# Document Serialization (YAML / JSON)
# =============================================================================
# Text <-> raw tree. The raw tree is what the normalizer consumes; the
# compact tree produced from a Project is what freeze hands back to users.

import json
from pathlib import Path

import yaml

from .errors import ParseError
from .models import DEFAULT_BASE_INDEX, Pane, Project, Window
from .path_utils import contract_home

FORMAT_EXTENSIONS = {
    ".yml": "yaml",
    ".yaml": "yaml",
    ".json": "json",
}


def format_for_path(path: Path, default: str = "yaml") -> str:
    """Pick the serialization from a file extension."""
    return FORMAT_EXTENSIONS.get(Path(path).suffix.lower(), default)


def parse_document(text: str, fmt: str = "yaml"):
    """
    Parse document text into a raw tree of dicts, lists and scalars.

    Args:
        text: Document text
        fmt: "yaml" or "json"

    Raises:
        ParseError: Syntax error, with the line number when known
    """
    if fmt == "yaml":
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as e:
            mark = getattr(e, "problem_mark", None)
            path = f"line {mark.line + 1}" if mark is not None else ""
            problem = getattr(e, "problem", None) or str(e)
            raise ParseError(f"invalid YAML: {problem}", path=path) from e
    if fmt == "json":
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ParseError(f"invalid JSON: {e.msg}", path=f"line {e.lineno}") from e
    raise ParseError(f"unsupported document format {fmt!r}")


# =============================================================================
# Project -> compact tree
# =============================================================================


def _escape_tree(node):
    """Double every "$" so values survive variable expansion on reload."""
    if isinstance(node, str):
        return node.replace("$", "$$")
    if isinstance(node, dict):
        return {_escape_tree(key): _escape_tree(value) for key, value in node.items()}
    if isinstance(node, list):
        return [_escape_tree(item) for item in node]
    return node


def _commands(commands: tuple[str, ...]):
    """A single command is written as a plain string."""
    return commands[0] if len(commands) == 1 else list(commands)


def _put_commands(doc: dict, key: str, commands: tuple[str, ...]) -> None:
    if commands:
        doc[key] = _commands(commands)


def _split_size(size: str):
    return int(size) if size.isdigit() else size


def pane_to_document(pane: Pane):
    """Compact form of a pane: None, a bare command string, or a mapping."""
    doc = {}
    if pane.name is not None:
        doc["name"] = pane.name
    if pane.working_dir is not None:
        doc["working_dir"] = contract_home(pane.working_dir)
    if pane.split is not None:
        doc["split"] = pane.split.value
    if pane.split_from is not None:
        doc["split_from"] = pane.split_from
    if pane.split_size is not None:
        doc["split_size"] = _split_size(pane.split_size)
    if pane.clear:
        doc["clear"] = True
    _put_commands(doc, "on_create", pane.on_create)
    _put_commands(doc, "post_create", pane.post_create)

    if not doc:
        if not pane.commands:
            return None
        if len(pane.commands) == 1:
            return pane.commands[0]
    _put_commands(doc, "commands", pane.commands)
    return doc


def window_to_document(window: Window) -> dict | None:
    """Compact form of a window; None when everything has its default."""
    doc = {}
    if window.name is not None:
        doc["name"] = window.name
    if window.working_dir is not None:
        doc["working_dir"] = contract_home(window.working_dir)
    if window.layout is not None:
        doc["layout"] = window.layout
    _put_commands(doc, "on_create", window.on_create)
    _put_commands(doc, "post_create", window.post_create)
    _put_commands(doc, "on_pane_create", window.on_pane_create)
    _put_commands(doc, "post_pane_create", window.post_pane_create)
    _put_commands(doc, "pane_commands", window.pane_commands)

    panes = [pane_to_document(pane) for pane in window.panes]
    if panes != [None]:
        doc["panes"] = panes
    return doc or None


def project_to_document(project: Project) -> dict:
    """
    Compact raw tree for a Project; default-valued fields are left out.

    Parsing and normalizing the result gives back an equivalent Project;
    literal "$" are written as "$$" for that reason.
    """
    doc = {}
    for key in ("session_name", "tmux_command", "tmux_options", "tmux_socket"):
        value = getattr(project, key)
        if value is not None:
            doc[key] = value
    if project.working_dir is not None:
        doc["working_dir"] = contract_home(project.working_dir)
    if project.window_base_index != DEFAULT_BASE_INDEX:
        doc["window_base_index"] = project.window_base_index
    if project.pane_base_index != DEFAULT_BASE_INDEX:
        doc["pane_base_index"] = project.pane_base_index
    if project.startup_window is not None:
        doc["startup_window"] = project.startup_window
    if project.startup_pane is not None:
        doc["startup_pane"] = project.startup_pane
    for key in ("on_start", "on_first_start", "on_restart", "on_exit", "on_stop",
                "post_create", "on_pane_create", "post_pane_create", "pane_commands"):
        _put_commands(doc, key, getattr(project, key))
    if not project.attach:
        doc["attach"] = False

    doc["windows"] = [window_to_document(window) for window in project.windows]
    return _escape_tree(doc)


def dump_document(project: Project, fmt: str = "yaml") -> str:
    """Serialize a Project as YAML or JSON text."""
    doc = project_to_document(project)
    if fmt == "yaml":
        return yaml.safe_dump(doc, default_flow_style=False, sort_keys=False, allow_unicode=True)
    if fmt == "json":
        return json.dumps(doc, indent=2, ensure_ascii=False) + "\n"
    raise ParseError(f"unsupported document format {fmt!r}")
