from typing import Any, NamedTuple


class RenderCommand(NamedTuple):
    """One update for the rendering surface: which element, and its data."""

    target: str
    payload: Any
