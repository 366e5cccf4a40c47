"""FastAPI dependencies for the training engine.

Provides:
- TrainingService / CompletionService dependency injection
- Training error to HTTPException conversion
"""

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from src.training.completion import CompletionService
from src.training.exceptions import TrainingError
from src.training.service import TrainingService


# ==============================================================================
# Service Getters (set by main.py)
# ==============================================================================

_training_service_getter: Callable[[], TrainingService] | None = None
_completion_service_getter: Callable[[], CompletionService] | None = None


def set_training_service_getter(getter: Callable[[], TrainingService]) -> None:
    """Set the training service getter function."""
    global _training_service_getter  # noqa: PLW0603 - Required for DI pattern
    _training_service_getter = getter


def set_completion_service_getter(getter: Callable[[], CompletionService]) -> None:
    """Set the completion service getter function."""
    global _completion_service_getter  # noqa: PLW0603 - Required for DI pattern
    _completion_service_getter = getter


def get_training_service(request: Request) -> TrainingService:
    if hasattr(request.app.state, "training_service"):
        return request.app.state.training_service
    if _training_service_getter is not None:
        return _training_service_getter()
    msg = "TrainingService not configured"
    raise RuntimeError(msg)


def get_completion_service(request: Request) -> CompletionService:
    if hasattr(request.app.state, "completion_service"):
        return request.app.state.completion_service
    if _completion_service_getter is not None:
        return _completion_service_getter()
    msg = "CompletionService not configured"
    raise RuntimeError(msg)


TrainingServiceDep = Annotated[TrainingService, Depends(get_training_service)]
CompletionServiceDep = Annotated[CompletionService, Depends(get_completion_service)]


# ==============================================================================
# Error Handlers
# ==============================================================================


def handle_training_error(error: TrainingError) -> HTTPException:
    """Convert training errors to HTTPException.

    The body names the error kind so clients can react to it.
    """
    status_map = {
        "not_found": status.HTTP_404_NOT_FOUND,
        "no_active_lessons": status.HTTP_409_CONFLICT,
        "module_not_completed": status.HTTP_409_CONFLICT,
        "certificate_already_exists": status.HTTP_409_CONFLICT,
        "generation_failed": status.HTTP_502_BAD_GATEWAY,
        "transient_store_failure": status.HTTP_503_SERVICE_UNAVAILABLE,
    }

    return HTTPException(
        status_code=status_map.get(error.code, status.HTTP_400_BAD_REQUEST),
        detail={"code": error.code, "message": error.message},
    )
