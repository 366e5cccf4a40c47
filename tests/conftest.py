"""Shared fixtures."""

import os
import tempfile
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest


# Settings are cached on first use, so the environment goes in before any import
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="learnhub-logs-"))

from fastapi.testclient import TestClient  # noqa: E402

from src.training.models import (  # noqa: E402
    TrainingLesson,
    TrainingModule,
    UserProfile,
)
from tests.fakes import (  # noqa: E402
    FakeEmailEvents,
    FakeNotificationService,
    InMemoryCertificateStore,
    InMemoryTrainingStore,
)


@pytest.fixture
def client() -> Iterator[TestClient]:
    """TestClient over the real app; the lifespan (Cassandra, Redis) is not run."""
    from src.main import app

    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def training_store() -> InMemoryTrainingStore:
    return InMemoryTrainingStore()


@pytest.fixture
def certificate_store() -> InMemoryCertificateStore:
    return InMemoryCertificateStore()


@pytest.fixture
def notification_service() -> FakeNotificationService:
    return FakeNotificationService()


@pytest.fixture
def email_events() -> FakeEmailEvents:
    return FakeEmailEvents()


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def module(training_store: InMemoryTrainingStore) -> TrainingModule:
    """Module with two active lessons (60s minimum each) and one inactive lesson."""
    module = training_store.add_module(
        TrainingModule(module_id=uuid4(), title="Safe Handling of Medicines")
    )
    base = datetime(2026, 1, 10, 9, 0, tzinfo=UTC)
    for position, title in enumerate(["Storage", "Dispensing"], start=1):
        training_store.add_lesson(
            TrainingLesson(
                lesson_id=uuid4(),
                module_id=module.module_id,
                title=title,
                position=position,
                min_time_seconds=60,
                created_at=base + timedelta(minutes=position),
            )
        )
    training_store.add_lesson(
        TrainingLesson(
            lesson_id=uuid4(),
            module_id=module.module_id,
            title="Retired lesson",
            position=3,
            min_time_seconds=60,
            is_active=False,
            created_at=base,
        )
    )
    return module


@pytest.fixture
def lessons(
    training_store: InMemoryTrainingStore, module: TrainingModule
) -> list[TrainingLesson]:
    """Active lessons of ``module`` in display order."""
    return sorted(
        (
            lesson
            for lesson in training_store.lessons.values()
            if lesson.module_id == module.module_id and lesson.is_active
        ),
        key=lambda lesson: lesson.sort_key,
    )


@pytest.fixture
def profile(training_store: InMemoryTrainingStore, user_id: UUID) -> UserProfile:
    return training_store.add_profile(
        UserProfile(
            user_id=user_id,
            email="maria@example.com",
            first_name="Maria",
            last_name="Silva",
            role="user",
        )
    )
