"""Error taxonomy shared by the engine, the controller and the CLI."""


class QuizMasterError(Exception):
    """Base class for user-facing errors."""


class ValidationError(QuizMasterError):
    """Input rejected before any external call (short text, blank name, bad data)."""


class GenerationError(QuizMasterError):
    """The question generator failed or returned something unusable."""


class GenerationInProgressError(GenerationError):
    """A generation request for the same source is already in flight."""


class PreconditionError(QuizMasterError):
    """An operation was attempted from a state that does not allow it."""
