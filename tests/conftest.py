"""Pytest configuration and shared in-memory fakes."""

import copy
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx
import pytest

from xfactor_api.core.errors import NotFoundError, UpstreamError
from xfactor_api.models.lesson import Lesson
from xfactor_api.services.gamification import UserStats
from xfactor_api.services.progress_store import ProgressSnapshot, StaleProgressError

PDF_BYTES = b"%PDF-1.4\n1 0 obj <<>> endobj\ntrailer <<>>\n%%EOF\n"
STORAGE_HOST = "storage.test"

FILE_MATERIAL = {
    "id": "m-file",
    "type": "file",
    "name": "Workbook",
    "fileName": "חוברת עבודה.pdf",
    "fileSize": len(PDF_BYTES),
    "fileType": "application/pdf",
    "storageRef": "lesson_materials/1760000000000_ab12cd34_hvbrt_abvdh.pdf",
    "created_at": "2026-10-01T08:00:00Z",
}
LINK_MATERIAL = {
    "id": "m-link",
    "type": "link",
    "name": "Further reading",
    "url": "https://example.com/active-listening",
    "created_at": "2026-10-01T08:00:00Z",
}


def build_lesson(**overrides) -> Lesson:
    created = overrides.pop("created_at", datetime(2026, 10, 1, 8, 0, tzinfo=timezone.utc))
    values = dict(
        id=uuid.uuid4(),
        title="Active listening",
        description="Listening techniques for difficult conversations",
        vimeo_video_id="76979871",
        video_duration=540,
        thumbnail_url=None,
        category="communication",
        tags=["soft-skills"],
        lesson_topics=["listening", "feedback"],
        key_points=["Pause before answering"],
        support_materials=[],
        chapter_order=1,
        lesson_number=1,
        scheduled_date=None,
        is_published=True,
        created_at=created,
        updated_at=created,
    )
    values.update(overrides)
    return Lesson(**values)


class FakeLessonRepository:
    def __init__(self, lessons=()):
        self.lessons = {lesson.id: lesson for lesson in lessons}

    async def get(self, lesson_id):
        return self.lessons.get(lesson_id)

    async def recent(self, limit=10, published_only=True):
        items = sorted(self.lessons.values(), key=lambda lesson: lesson.created_at, reverse=True)
        if published_only:
            items = [lesson for lesson in items if lesson.is_published]
        return items[:limit]

    async def add(self, lesson):
        if lesson.id is None:
            lesson.id = uuid.uuid4()
        if lesson.created_at is None:
            lesson.created_at = datetime.now(timezone.utc)
        self.lessons[lesson.id] = lesson
        return lesson

    async def save(self, lesson):
        self.lessons[lesson.id] = lesson
        return lesson


class InMemoryProgressStore:
    """Versioned progress rows; ``lose_next_writes`` simulates concurrent writers."""

    def __init__(self):
        self.rows = {}
        self.saves = 0
        self.lose_next_writes = 0

    def add_user(self, user_id, stats=None, lesson_progress=None):
        self.rows[user_id] = {
            "lesson_progress": copy.deepcopy(lesson_progress or {}),
            "stats": stats or UserStats(),
            "version": 0,
        }

    def stats(self, user_id) -> UserStats:
        return self.rows[user_id]["stats"]

    def record(self, user_id, lesson_id) -> dict:
        return self.rows[user_id]["lesson_progress"].get(str(lesson_id), {})

    async def get(self, user_id):
        row = self.rows.get(user_id)
        if row is None:
            raise NotFoundError("User not found")
        return ProgressSnapshot(
            user_id=user_id,
            lesson_progress=copy.deepcopy(row["lesson_progress"]),
            stats=row["stats"],
            version=row["version"],
        )

    async def save(self, snapshot):
        row = self.rows[snapshot.user_id]
        if self.lose_next_writes:
            self.lose_next_writes -= 1
            row["version"] += 1
        if row["version"] != snapshot.version:
            raise StaleProgressError(str(snapshot.user_id))
        row["lesson_progress"] = copy.deepcopy(snapshot.lesson_progress)
        row["stats"] = snapshot.stats
        row["version"] += 1
        snapshot.version += 1
        self.saves += 1


class FakeStorage:
    bucket = "lesson-materials"

    def __init__(self):
        self.objects = {}
        self.deleted = []
        self.presigned = []
        self.fail_after = None

    async def ensure_bucket(self):
        return None

    async def bucket_ready(self):
        return True

    async def upload_bytes(self, data, object_name, content_type="application/pdf"):
        if self.fail_after is not None and len(self.objects) >= self.fail_after:
            raise UpstreamError("Failed to upload file to storage")
        self.objects[object_name] = data
        return object_name

    async def delete(self, object_name):
        self.deleted.append(object_name)
        self.objects.pop(object_name, None)
        return True

    async def presigned_url(self, object_name, expires):
        self.presigned.append((object_name, expires))
        return f"https://{STORAGE_HOST}/{self.bucket}/{object_name}?X-Amz-Expires={int(expires.total_seconds())}"


def storage_transport(storage: FakeStorage) -> httpx.MockTransport:
    """Serves the fake bucket over HTTP for the stream proxy."""
    prefix = f"/{storage.bucket}/"

    def handler(request: httpx.Request) -> httpx.Response:
        name = request.url.path[len(prefix):] if request.url.path.startswith(prefix) else None
        if request.url.host != STORAGE_HOST or name not in storage.objects:
            return httpx.Response(404, text="NoSuchKey")
        return httpx.Response(200, content=storage.objects[name], headers={"Content-Type": "application/pdf"})

    return httpx.MockTransport(handler)


def make_user(role="learner", **overrides) -> dict:
    user = {
        "id": uuid.uuid4(),
        "email": f"{role}@xfactor.test",
        "role": role,
        "first_name": "Noa",
        "last_name": "Cohen",
    }
    user.update(overrides)
    return user


@pytest.fixture
def learner():
    return make_user("learner")


@pytest.fixture
def admin():
    return make_user("admin", first_name="Dana", last_name="Levi")


@pytest.fixture
def published_lesson():
    return build_lesson(support_materials=[dict(FILE_MATERIAL), dict(LINK_MATERIAL)])


@pytest.fixture
def draft_lesson():
    return build_lesson(
        title="Negotiation basics (draft)",
        is_published=False,
        support_materials=[dict(FILE_MATERIAL)],
        created_at=datetime(2026, 10, 2, 8, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def lessons(published_lesson, draft_lesson):
    return FakeLessonRepository([published_lesson, draft_lesson])


@pytest.fixture
def progress_store(learner, admin):
    store = InMemoryProgressStore()
    store.add_user(learner["id"])
    store.add_user(admin["id"])
    return store


@pytest.fixture
def storage():
    fake = FakeStorage()
    fake.objects[FILE_MATERIAL["storageRef"]] = PDF_BYTES
    return fake


class _OfflineCache:
    client = None


@dataclass
class ApiHarness:
    client: object
    state: dict

    def act_as(self, user: dict) -> None:
        self.state["user"] = user


@pytest.fixture
def api(monkeypatch, lessons, progress_store, storage, learner):
    """TestClient with storage, datastore and auth replaced by in-memory fakes."""
    from fastapi.testclient import TestClient

    from xfactor_api.api import deps
    from xfactor_api.core import auth
    from xfactor_api.core.limiter import limiter
    from xfactor_api.main import app
    from xfactor_api.middleware import rate_limit

    async def _offline_cache():
        return _OfflineCache()

    monkeypatch.setattr(rate_limit, "get_redis_cache", _offline_cache)
    monkeypatch.setattr(limiter, "enabled", False)

    state = {"user": learner}
    app.dependency_overrides[deps.get_lesson_repository] = lambda: lessons
    app.dependency_overrides[deps.get_progress_store] = lambda: progress_store
    app.dependency_overrides[deps.get_storage] = lambda: storage
    app.dependency_overrides[deps.get_stream_transport] = lambda: storage_transport(storage)
    app.dependency_overrides[auth.get_current_user] = lambda: state["user"]
    app.dependency_overrides[auth.get_current_user_from_header_or_query] = lambda: state["user"]

    yield ApiHarness(client=TestClient(app), state=state)
    app.dependency_overrides.clear()


@pytest.fixture
def make_lesson():
    return build_lesson


@pytest.fixture
def pdf_transport(storage):
    return storage_transport(storage)
