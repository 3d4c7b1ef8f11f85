# tests/conftest.py

from pathlib import Path

import pytest

from tracker.cache.layer import CacheLayer
from tracker.core.config import Settings
from tracker.core.security import hash_password
from tracker.database import build_engine, build_session_factory, create_db_and_tables
from tracker.models import User
from tracker.notifications.dispatcher import NotificationDispatcher
from tracker.notifications.worker import NotificationWorker
from tracker.services.project_service import ProjectService
from tracker.services.task_service import TaskService


class RecordingBroker:
    """
    Broker stand-in that keeps every message it is handed.

    ``fail`` makes every send raise, to check that delivery problems never
    reach the caller.
    """

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[str, dict]] = []

    def send(self, destination: str, message: dict) -> int:
        if self.fail:
            raise RuntimeError("broker down")
        self.sent.append((destination, message))
        return 1

    def to(self, destination: str) -> list[dict]:
        return [message for dest, message in self.sent if dest == destination]

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Real Settings pointed at a throwaway SQLite file, L1 cache only."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'tracker.db'}",
        redis_dsn=None,
        scheduler_enabled=False,
        jwt_secret_key="test-secret",
        log_level="WARNING",
    )


@pytest.fixture()
async def session_factory(settings: Settings):
    engine = build_engine(settings)
    await create_db_and_tables(engine)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture()
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
async def cache(settings: Settings):
    layer = CacheLayer(settings)
    await layer.init_cache()
    yield layer
    await layer.close()


@pytest.fixture()
def broker() -> RecordingBroker:
    return RecordingBroker()


@pytest.fixture()
def dispatcher(broker: RecordingBroker) -> NotificationDispatcher:
    return NotificationDispatcher(broker)


@pytest.fixture()
async def worker(dispatcher: NotificationDispatcher):
    w = NotificationWorker(dispatcher, maxsize=100)
    w.start()
    yield w
    await w.stop()


@pytest.fixture()
def project_service(session, cache, dispatcher) -> ProjectService:
    return ProjectService(session, cache, dispatcher)


@pytest.fixture()
def task_service(session, cache, dispatcher, settings) -> TaskService:
    return TaskService(session, cache, dispatcher, settings)


@pytest.fixture()
def make_user(session_factory):
    """Insert a user in its own session and return the detached row."""

    async def _make(email: str, full_name: str | None = None, password: str = "secret123") -> User:
        async with session_factory() as s:
            user = User(email=email, password=hash_password(password), full_name=full_name or email.split("@")[0])
            s.add(user)
            await s.commit()
            await s.refresh(user)
            return user

    return _make
