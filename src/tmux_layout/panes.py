# =============================================================================
# Pane Geometry (Layout Resolver)
# =============================================================================

from loguru import logger

from .errors import ValidationError
from .models import (
    DEFAULT_SPLIT_SIZE,
    SplitDirection,
    SplitDirective,
    Window,
    WindowGeometry,
)


def resolve_window_geometry(window: Window, pane_base_index: int, path: str = "") -> WindowGeometry:
    """
    Work out how every pane of a window gets created.

    The first pane is the window's initial pane and never gets a split.
    Each following pane splits its split_from pane (default: the pane
    declared just before it). Windows with a layout get bare splits and a
    single layout directive; the others get direction and size per split.

    tmux places a new pane right after the pane it was split from, so the
    live index of a pane can differ from its declaration position. The
    returned geometry carries the live index of each split source and the
    final live index of every pane.

    Args:
        window: Normalized window
        pane_base_index: Index tmux gives to the first pane
        path: Locator prefix for error messages, e.g. "windows[2]"

    Returns:
        WindowGeometry for the window

    Raises:
        ValidationError: split_from does not name an already-created pane
    """
    # Declaration positions, in live index order
    live_order = [0]
    splits = []

    for position, pane in enumerate(window.panes[1:], start=1):
        source = pane.split_from if pane.split_from is not None else position - 1
        if source >= position:
            raise ValidationError(
                f"split_from: there is no pane with index {source} created before this pane "
                f"(pane indexes always start at 0)",
                path=f"{path}.panes[{position}].split_from" if path else f"panes[{position}].split_from",
                context={
                    "window_index": window.index,
                    "pane_index": pane.index,
                    "split_from": source,
                }
            )

        source_live = live_order.index(source)
        if window.has_layout:
            direction = None
            size = None
        else:
            direction = pane.split or SplitDirection.HORIZONTAL
            size = pane.split_size or DEFAULT_SPLIT_SIZE

        splits.append(SplitDirective(
            pane_position=position,
            source_position=source,
            source_target_index=pane_base_index + source_live,
            direction=direction,
            size=size,
        ))
        live_order.insert(source_live + 1, position)

    final_indices = [0] * len(window.panes)
    for live, position in enumerate(live_order):
        final_indices[position] = pane_base_index + live

    logger.debug(
        "Window geometry resolved",
        operation="resolve_window_geometry",
        status="success",
        window_index=window.index,
        layout=window.layout,
        named_layout=window.has_named_layout,
        metrics={"splits": len(splits)}
    )

    return WindowGeometry(
        splits=tuple(splits),
        layout=window.layout,
        final_indices=tuple(final_indices),
    )
