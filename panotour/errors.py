class SceneEngineError(Exception):
    code = "scene_engine_error"
    status = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"error": self.message, "code": self.code}


class ValidationError(SceneEngineError):
    """Missing or malformed input the caller can correct."""
    code = "validation_error"
    status = 400


class NotFoundError(SceneEngineError):
    code = "not_found"
    status = 404


class EmptyGraphError(SceneEngineError):
    """Publishing was attempted on a tour with no scenes."""
    code = "empty_graph"
    status = 400
