"""
Viewport state and the pan-drag gesture.

The editor never reads device state. UI code translates pointer events into
screen coordinates and either calls ``PanSession.move`` / ``PanSession.end``
directly or hands the session a ``PointerEvents`` source to subscribe to.
"""

import logging
from typing import Callable, Optional, Protocol
from pydantic import BaseModel, Field

from .models import Position

logger = logging.getLogger(__name__)

MOVE_EVENT = "pointermove"
RELEASE_EVENT = "pointerup"


class Viewport(BaseModel):
    """Pan position and zoom factor of the canvas."""
    position: Position = Field(default_factory=Position)
    zoom: float = Field(default=1.0, gt=0)

    def to_json_dict(self) -> dict:
        return {
            "position": {"x": self.position.x, "y": self.position.y},
            "zoom": self.zoom,
        }


class ContextMenu(BaseModel):
    """Visibility and screen position of the canvas context menu."""
    visible: bool = False
    position: Position = Field(default_factory=Position)


class PointerEvents(Protocol):
    """Listener registry of the surface the pointer moves over."""

    def add_listener(self, event: str, callback: Callable[..., None]) -> None:
        ...

    def remove_listener(self, event: str, callback: Callable[..., None]) -> None:
        ...


class PanSession:
    """
    One pan-drag gesture.

    Moves are applied as ``start position + (mouse - mouse start)``, unscaled
    by zoom. Listeners registered on start are removed by ``end()``, which is
    idempotent and also runs on context-manager exit.
    """

    def __init__(
        self,
        viewport: Viewport,
        mouse_x: float,
        mouse_y: float,
        on_move: Optional[Callable[[], None]] = None,
        events: Optional[PointerEvents] = None,
    ):
        self._viewport = viewport
        self._mouse_start = Position(x=mouse_x, y=mouse_y)
        self._editor_start = viewport.position.model_copy()
        self._on_move = on_move
        self._events = events
        self._active = True

        if events is not None:
            events.add_listener(MOVE_EVENT, self.move)
            events.add_listener(RELEASE_EVENT, self.end)

    @property
    def active(self) -> bool:
        return self._active

    def move(self, mouse_x: float, mouse_y: float) -> None:
        """Apply the current mouse position."""
        if not self._active:
            return
        self._viewport.position = Position(
            x=self._editor_start.x + mouse_x - self._mouse_start.x,
            y=self._editor_start.y + mouse_y - self._mouse_start.y,
        )
        if self._on_move is not None:
            self._on_move()

    def end(self, *_args) -> None:
        """Finish the gesture and detach listeners."""
        if not self._active:
            return
        self._active = False
        if self._events is not None:
            self._events.remove_listener(MOVE_EVENT, self.move)
            self._events.remove_listener(RELEASE_EVENT, self.end)
            self._events = None
        logger.debug(
            f"Pan finished at ({self._viewport.position.x}, {self._viewport.position.y})"
        )

    def __enter__(self) -> "PanSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.end()
