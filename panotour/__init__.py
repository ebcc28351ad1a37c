"""Panorama scene engine: scene graph, hotspot linking and tour manifest publishing."""

from panotour.engine import SceneEngine
from panotour.errors import EmptyGraphError, NotFoundError, SceneEngineError, ValidationError

__all__ = ["SceneEngine", "SceneEngineError", "ValidationError", "NotFoundError", "EmptyGraphError"]
