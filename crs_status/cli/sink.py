"""
Terminal presentation sink.

Renders presentation states with rich, standing in for a UI status bar.
"""

from typing import Optional

from rich.console import Group, RenderableType
from rich.markdown import Markdown
from rich.panel import Panel
from rich.text import Text

from crs_status.core.display import (
    ICON_ERROR,
    ICON_LOADING,
    ICON_READY,
    ICON_UNCONFIGURED,
    Emphasis,
    PresentationState,
    render_tooltip_markdown,
)

# Codicon tokens have no meaning in a terminal
TERMINAL_ICONS = {
    ICON_READY: "●",
    ICON_LOADING: "↻",
    ICON_ERROR: "✗",
    ICON_UNCONFIGURED: "⚙",
}


def terminal_text(text: str) -> str:
    """Replace host UI icon tokens with terminal glyphs."""
    for token, glyph in TERMINAL_ICONS.items():
        text = text.replace(token, glyph)
    return text


def render_state(state: PresentationState) -> RenderableType:
    """Render a presentation state as a status line over its tooltip."""
    style = "bold white on red" if state.emphasis == Emphasis.ERROR else "bold"
    status_line = Text(terminal_text(state.text), style=style)
    return Panel(
        Group(status_line, Markdown(render_tooltip_markdown(state.tooltip))),
        title="CRS Status",
        subtitle=f"click: {state.click_action.value}",
        border_style="red" if state.emphasis == Emphasis.ERROR else "cyan",
    )


class RichStatusSink:
    """Presentation sink that keeps the latest state and redraws a live view."""

    def __init__(self, live=None):
        """Initialize the sink.

        Args:
            live: Optional rich.live.Live to update on every state change
        """
        self.live = live
        self.state: Optional[PresentationState] = None

    def apply(self, state: PresentationState) -> None:
        self.state = state
        if self.live is not None:
            self.live.update(render_state(state))
