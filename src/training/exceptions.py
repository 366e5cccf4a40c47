"""Training engine error taxonomy.

Every error carries a stable ``code`` so HTTP callers see the kind of
failure, never a raw driver or transport error.
"""


class TrainingError(Exception):
    """Base training error."""

    def __init__(self, message: str, code: str = "training_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(TrainingError):
    """Referenced module, lesson, user or certificate does not exist."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, "not_found")


class NoActiveLessonsError(TrainingError):
    """Module has no active lessons, so there is nothing to approve."""

    def __init__(self, message: str = "Module has no active lessons"):
        super().__init__(message, "no_active_lessons")


class ModuleNotCompletedError(TrainingError):
    """User has not completed every active lesson of the module."""

    def __init__(self, message: str = "Module is not completed yet"):
        super().__init__(message, "module_not_completed")


class CertificateAlreadyExistsError(TrainingError):
    """A certificate exists and regeneration was not forced."""

    def __init__(
        self,
        message: str = "Certificate already generated, use force to issue a new one",
    ):
        super().__init__(message, "certificate_already_exists")


class GenerationFailedError(TrainingError):
    """Certificate document could not be rendered or stored."""

    def __init__(self, message: str = "Certificate generation failed"):
        super().__init__(message, "generation_failed")


class TransientStoreError(TrainingError):
    """Backing store was unreachable or timed out."""

    def __init__(self, message: str = "Training store temporarily unavailable"):
        super().__init__(message, "transient_store_failure")
