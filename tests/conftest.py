import time
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import studious.models  # noqa: F401
from studious.core.config import Settings
from studious.core.database import Base, enable_sqlite_foreign_keys, get_db
from studious.core.errors import StorageError
from studious.main import app
from studious.models.classroom import Classroom, ClassMember, MemberRole
from studious.models.user import AuthSession, User
from studious.services.cache import LookAsideCache
from studious.services.cascade import CascadeDeleter
from studious.services.container import Services, get_services
from studious.services.notifications import NotificationDispatcher, NotificationService
from studious.services.thumbnails import ThumbnailGenerator
from studious.services.uploads import UploadManager


class FakeBlobStore:
    """In-memory stand-in for BlobStore."""

    signed_url_ttl_seconds = 300

    def __init__(self):
        self.objects = {}
        self.deleted = []
        self.fail_paths = set()
        self.on_delete = None

    async def put(self, data, path, content_type):
        self.objects[path] = (data, content_type)

    async def issue_signed_url(self, path, action="read", content_type=None):
        return f"https://blobs.test/{path}?action={action}"

    async def delete_object(self, path):
        if self.on_delete is not None:
            self.on_delete(path)
        self.deleted.append(path)
        if path in self.fail_paths:
            raise StorageError(f"Failed to delete object {path}")
        self.objects.pop(path, None)

    async def object_exists(self, path):
        return path in self.objects

    def close(self):
        return None


class FakeRedis:
    def __init__(self):
        self._store = {}

    def set(self, key, value, ex=None):
        expires_at = time.time() + ex if ex else None
        self._store[key] = (value, expires_at)

    def get(self, key):
        value, expires_at = self._store.get(key, (None, None))
        if value is None:
            return None
        if expires_at is not None and time.time() >= expires_at:
            self._store.pop(key, None)
            return None
        return value

    def delete(self, *keys):
        for key in keys:
            self._store.pop(key, None)

    def ttl(self, key):
        value, expires_at = self._store.get(key, (None, None))
        if value is None:
            return -2
        if expires_at is None:
            return -1
        return int(expires_at - time.time())

    def close(self):
        return None


class RecordingNotificationService(NotificationService):
    """Captures fan-out calls; optionally fails like a broken store."""

    def __init__(self, session_factory=None, fail=False):
        super().__init__(session_factory)
        self.fail = fail
        self.calls = []

    def notify_many(self, recipient_ids, title, body, sender_id=None):
        if self.fail:
            raise RuntimeError("notification store unavailable")
        self.calls.append((list(recipient_ids), title, body, sender_id))
        return len(self.calls[-1][0])

    def notify_one(self, recipient_id, title, body, sender_id=None):
        return self.notify_many([recipient_id], title, body, sender_id)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def blob_store():
    return FakeBlobStore()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def make_user(db):
    def _make(username):
        user = User(username=username, email=f"{username}@example.com")
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def classroom(db, make_user):
    """A class with one teacher and three students."""
    teacher = make_user("teacher")
    students = [make_user(f"student{i}") for i in range(3)]
    cls = Classroom(name="Biology", created_by=teacher.id)
    db.add(cls)
    db.flush()
    db.add(ClassMember(class_id=cls.id, user_id=teacher.id, role=MemberRole.teacher))
    for student in students:
        db.add(ClassMember(class_id=cls.id, user_id=student.id, role=MemberRole.student))
    db.commit()
    db.refresh(cls)
    return SimpleNamespace(cls=cls, teacher=teacher, students=students)


@pytest.fixture
def auth_headers(db):
    def _headers(user):
        session = AuthSession(user_id=user.id)
        db.add(session)
        db.commit()
        return {"Authorization": f"Bearer {session.token}"}

    return _headers


@pytest.fixture
def scheduled_thumbnails():
    return []


@pytest.fixture
def notification_service(session_factory):
    return RecordingNotificationService(session_factory)


@pytest.fixture
def services(blob_store, fake_redis, scheduled_thumbnails, notification_service):
    settings = Settings(bulk_insert_batch_size=2, bulk_insert_pause_seconds=0)
    return Services(
        settings=settings,
        blob_store=blob_store,
        uploads=UploadManager("http://testserver", on_completed=scheduled_thumbnails.append),
        thumbnails=ThumbnailGenerator(blob_store),
        cascade=CascadeDeleter(blob_store),
        notifications=notification_service,
        dispatcher=NotificationDispatcher(notification_service),
        cache=LookAsideCache(fake_redis, ttl_seconds=600),
    )


@pytest.fixture
def client(session_factory, services):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_services] = lambda: services
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
