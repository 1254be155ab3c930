"""
Editor behavior settings.
"""

from pydantic import BaseModel, Field


class EditorSettings(BaseModel):
    """Behavior switches for a GraphEditor."""
    prevent_circular_connections: bool = True
    zoom_step: float = Field(default=0.1, gt=0)
    min_zoom: float = Field(default=0.1, gt=0)  # No upper bound on zoom
    initial_zoom: float = Field(default=1.0, gt=0)


DEFAULT_EDITOR_SETTINGS = EditorSettings()
