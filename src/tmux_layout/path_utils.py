# =============================================================================
# Working Directory Utilities
# =============================================================================
# Centralized path handling so the normalizer and freeze agree on how
# working directories are spelled.

import os


def expand_working_dir(path: str) -> str:
    """Expand ~ in a working directory without resolving symlinks.

    Relative paths are kept relative: tmux resolves them against the
    directory it was started from.

    Args:
        path: Raw path string (may contain ~).

    Returns:
        Path with ~ expanded.
    """
    return os.path.expanduser(path)


def home_working_dir() -> str:
    """Directory used when a document sets working_dir to null."""
    return os.path.expanduser("~")


def normalize_working_dir(path: str | None) -> str | None:
    """Normalize a live pane path for comparison.

    Strips trailing slashes (keeping "/" itself) and collapses "." / ".."
    segments. No filesystem access: the path may not exist locally.
    """
    if not path:
        return None
    normalized = os.path.normpath(path)
    return normalized if normalized != "." else None


def contract_home(path: str | None) -> str | None:
    """Inverse of expand_working_dir, for readable frozen documents."""
    if path is None:
        return None
    home = home_working_dir().rstrip("/")
    if home and (path == home or path.startswith(home + "/")):
        return "~" + path[len(home):]
    return path
