"""Error taxonomy shared by the orchestrator, the adapters and the HTTP layer.

Every pipeline failure is a ``PipelineError`` carrying the HTTP status the
route boundary should answer with. The message is passed through verbatim.
"""


class PipelineError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PipelineError):
    """A required field is missing or a parameter is out of range."""
    status_code = 400


class NotFoundError(PipelineError):
    """A referenced video, transcript or category does not exist."""
    status_code = 404


class AdapterError(PipelineError):
    """A managed service (storage, speech, scoring, hosting, rendering) failed."""
    status_code = 500

    def __init__(self, service: str, message: str):
        super().__init__(f"{service}: {message}")
        self.service = service


class StageError(PipelineError):
    """A pipeline stage could not finish; the cause text is kept verbatim."""
    status_code = 500

    def __init__(self, stage: str, cause: str):
        super().__init__(f"{stage} failed: {cause}")
        self.stage = stage
