"""Training administration API endpoints.

Provides routes for:
- Catalog: modules and lessons (new lessons fan out notifications)
- Send training: assign a module to users, resend missed assignment emails
- Progress views over every assignment
- Completion overrides: approve/reset a lesson or a whole module
- Learner view of their own assigned modules
"""

from uuid import UUID

from fastapi import APIRouter, Query, status

from src.auth.dependencies import AdminUser, CurrentUser
from src.core.logging import get_logger
from src.notifications.schemas import DispatchReportResponse
from src.training.dependencies import (
    CompletionServiceDep,
    TrainingServiceDep,
    handle_training_error,
)
from src.training.exceptions import TrainingError
from src.training.schemas import (
    ApproveModuleRequest,
    AssignUsersRequest,
    AssignUsersResponse,
    CreateLessonRequest,
    CreateModuleRequest,
    LessonCreatedResponse,
    LessonResponse,
    ModuleResponse,
    ResendNotificationsResponse,
    UserLessonRequest,
    UserModuleStatusResponse,
    UserProgressView,
)


logger = get_logger(__name__)

router = APIRouter(
    prefix="/v1/admin/training",
    tags=["admin", "training"],
)

learner_router = APIRouter(prefix="/v1/training", tags=["training"])


# ==============================================================================
# Catalog
# ==============================================================================


@router.get(
    "/modules",
    response_model=list[ModuleResponse],
    summary="List training modules",
)
async def list_modules(
    _: AdminUser,
    service: TrainingServiceDep,
) -> list[ModuleResponse]:
    try:
        modules = await service.list_modules()
    except TrainingError as e:
        raise handle_training_error(e) from e
    return [ModuleResponse.from_entity(m) for m in modules]


@router.post(
    "/modules",
    response_model=ModuleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a training module",
)
async def create_module(
    body: CreateModuleRequest,
    _: AdminUser,
    service: TrainingServiceDep,
) -> ModuleResponse:
    try:
        module = await service.create_module(body)
    except TrainingError as e:
        raise handle_training_error(e) from e
    return ModuleResponse.from_entity(module)


@router.get(
    "/modules/{module_id}/lessons",
    response_model=list[LessonResponse],
    summary="List lessons of a module in display order",
)
async def list_lessons(
    module_id: UUID,
    _: AdminUser,
    service: TrainingServiceDep,
    active_only: bool = Query(default=False, description="Only active lessons"),
) -> list[LessonResponse]:
    try:
        lessons = await service.list_lessons(module_id, active_only=active_only)
    except TrainingError as e:
        raise handle_training_error(e) from e
    return [LessonResponse.from_entity(lesson) for lesson in lessons]


@router.post(
    "/modules/{module_id}/lessons",
    response_model=LessonCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a lesson and notify learners in the module",
)
async def create_lesson(
    module_id: UUID,
    body: CreateLessonRequest,
    _: AdminUser,
    service: TrainingServiceDep,
) -> LessonCreatedResponse:
    """Create a lesson.

    ``dispatch`` reports how many learners were notified; it is null when the
    notification fan-out did not run or failed. The lesson exists either way.
    """
    try:
        lesson, report = await service.create_lesson(module_id, body)
    except TrainingError as e:
        raise handle_training_error(e) from e

    return LessonCreatedResponse(
        lesson=LessonResponse.from_entity(lesson),
        dispatch=DispatchReportResponse.model_validate(report) if report else None,
    )


# ==============================================================================
# Send Training
# ==============================================================================


@router.post(
    "/modules/{module_id}/assignments",
    response_model=AssignUsersResponse,
    summary="Send a training module to users",
)
async def assign_users(
    module_id: UUID,
    body: AssignUsersRequest,
    admin: AdminUser,
    service: TrainingServiceDep,
) -> AssignUsersResponse:
    try:
        return await service.assign_users(
            module_id, body.user_ids, assigned_by=admin.id, due_date=body.due_date
        )
    except TrainingError as e:
        raise handle_training_error(e) from e


@router.post(
    "/notifications/resend",
    response_model=ResendNotificationsResponse,
    summary="Email assignees whose notice never went out",
)
async def resend_pending_notifications(
    _: AdminUser,
    service: TrainingServiceDep,
    module_id: UUID | None = Query(default=None, description="Limit to one module"),
) -> ResendNotificationsResponse:
    try:
        return await service.resend_pending_notifications(module_id)
    except TrainingError as e:
        raise handle_training_error(e) from e


# ==============================================================================
# Progress Views
# ==============================================================================


@router.get(
    "/progress",
    response_model=list[UserProgressView],
    summary="Progress of every assigned user",
)
async def list_progress(
    _: AdminUser,
    service: TrainingServiceDep,
    module_id: UUID | None = Query(default=None, description="Limit to one module"),
) -> list[UserProgressView]:
    try:
        return await service.get_progress_views(module_id)
    except TrainingError as e:
        raise handle_training_error(e) from e


@router.get(
    "/modules/{module_id}/users/{user_id}",
    response_model=UserModuleStatusResponse,
    summary="Completion state of one user on one module",
)
async def get_user_module_status(
    module_id: UUID,
    user_id: UUID,
    _: AdminUser,
    completion: CompletionServiceDep,
) -> UserModuleStatusResponse:
    try:
        return await completion.get_user_module_status(user_id, module_id)
    except TrainingError as e:
        raise handle_training_error(e) from e


# ==============================================================================
# Completion Overrides
# ==============================================================================


@router.post(
    "/lessons/{lesson_id}/approve",
    response_model=UserModuleStatusResponse,
    summary="Mark a lesson completed for a user",
)
async def approve_lesson(
    lesson_id: UUID,
    body: UserLessonRequest,
    admin: AdminUser,
    completion: CompletionServiceDep,
) -> UserModuleStatusResponse:
    try:
        lesson = await completion.approve_lesson(body.user_id, lesson_id)
        result = await completion.get_user_module_status(body.user_id, lesson.module_id)
    except TrainingError as e:
        raise handle_training_error(e) from e

    logger.info(
        "admin_lesson_approved",
        admin_id=str(admin.id),
        user_id=str(body.user_id),
        lesson_id=str(lesson_id),
    )
    return result


@router.post(
    "/lessons/{lesson_id}/reset",
    response_model=UserModuleStatusResponse,
    summary="Delete a user's progress on a lesson",
)
async def reset_lesson(
    lesson_id: UUID,
    body: UserLessonRequest,
    admin: AdminUser,
    completion: CompletionServiceDep,
) -> UserModuleStatusResponse:
    try:
        lesson = await completion.reset_lesson(body.user_id, lesson_id)
        result = await completion.get_user_module_status(body.user_id, lesson.module_id)
    except TrainingError as e:
        raise handle_training_error(e) from e

    logger.info(
        "admin_lesson_reset",
        admin_id=str(admin.id),
        user_id=str(body.user_id),
        lesson_id=str(lesson_id),
    )
    return result


@router.post(
    "/modules/{module_id}/approve",
    response_model=UserModuleStatusResponse,
    summary="Complete a whole module for a user",
)
async def approve_module(
    module_id: UUID,
    body: ApproveModuleRequest,
    admin: AdminUser,
    completion: CompletionServiceDep,
) -> UserModuleStatusResponse:
    """Approve every active lesson and complete the assignment.

    Creates the assignment if the user was never sent this training.
    """
    try:
        await completion.approve_module(body.user_id, module_id, approved_by=admin.id)
        return await completion.get_user_module_status(body.user_id, module_id)
    except TrainingError as e:
        raise handle_training_error(e) from e


@router.post(
    "/modules/{module_id}/reset",
    response_model=UserModuleStatusResponse,
    summary="Reset a user's progress on a whole module",
)
async def reset_module(
    module_id: UUID,
    body: UserLessonRequest,
    admin: AdminUser,
    completion: CompletionServiceDep,
) -> UserModuleStatusResponse:
    try:
        await completion.reset_module(body.user_id, module_id)
        result = await completion.get_user_module_status(body.user_id, module_id)
    except TrainingError as e:
        raise handle_training_error(e) from e

    logger.info(
        "admin_module_reset",
        admin_id=str(admin.id),
        user_id=str(body.user_id),
        module_id=str(module_id),
    )
    return result


# ==============================================================================
# Learner
# ==============================================================================


@learner_router.get(
    "/me",
    response_model=list[UserProgressView],
    summary="My assigned modules and progress",
)
async def my_training(
    current_user: CurrentUser,
    service: TrainingServiceDep,
) -> list[UserProgressView]:
    try:
        return await service.get_my_training(current_user.id)
    except TrainingError as e:
        raise handle_training_error(e) from e
