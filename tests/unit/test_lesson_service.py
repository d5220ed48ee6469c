"""Lesson authoring: material/upload pairing, rollback, learner reads."""

import pytest

from tests.conftest import FILE_MATERIAL, PDF_BYTES
from xfactor_api.core.errors import AuthorizationError, NotFoundError, UpstreamError, ValidationError
from xfactor_api.schemas.lesson import LessonCreate, LessonUpdate
from xfactor_api.schemas.material import FileMaterial
from xfactor_api.services.gamification import UserStats
from xfactor_api.services.lesson_service import IncomingFile, LessonService, match_upload, validate_pdf


def pdf(field_name="file", file_name="workbook.pdf", data=PDF_BYTES, content_type="application/pdf"):
    return IncomingFile(field_name=field_name, file_name=file_name, content_type=content_type, data=data)


def file_material(**overrides):
    values = {"type": "file", "name": "Workbook", "fileName": "workbook.pdf"}
    values.update(overrides)
    return FileMaterial(**values)


class TestMatchUpload:
    def test_field_name_wins(self):
        files = [pdf("material_file_b", "b.pdf"), pdf("material_file_a", "a.pdf")]
        used = set()
        assert match_upload(file_material(id="a"), files, 2, used).file_name == "a.pdf"
        assert used == {1}

    def test_lone_file_pairs_with_lone_material(self):
        files = [pdf("upload", "scan.PDF.bin")]
        assert match_upload(file_material(id="x"), files, 1, set()) is files[0]

    def test_extension_fallback_skips_used_files(self):
        files = [pdf("f1", "one.pdf"), pdf("f2", "two.pdf")]
        used = set()
        first = match_upload(file_material(fileName="x.pdf"), files, 2, used)
        second = match_upload(file_material(fileName="y.pdf"), files, 2, used)
        assert (first.file_name, second.file_name) == ("one.pdf", "two.pdf")
        assert match_upload(file_material(fileName="z.pdf"), files, 2, used) is None


class TestValidatePdf:
    def test_rejects_non_pdf(self):
        with pytest.raises(ValidationError):
            validate_pdf(pdf(content_type="image/png"))

    def test_rejects_oversized(self):
        with pytest.raises(ValidationError):
            validate_pdf(pdf(data=b"0" * (10 * 1024 * 1024 + 1)))

    def test_accepts_limit(self):
        validate_pdf(pdf(data=b"0" * (10 * 1024 * 1024)))


class TestLessonService:
    @pytest.fixture(autouse=True)
    def setup(self, lessons, storage, progress_store, published_lesson, draft_lesson, learner, admin):
        self.lessons = lessons
        self.storage = storage
        self.progress = progress_store
        self.published = published_lesson
        self.draft = draft_lesson
        self.learner = learner
        self.admin = admin
        self.service = LessonService(lessons, storage, progress_store)

    @pytest.mark.asyncio
    async def test_create_uploads_matched_files(self):
        data = LessonCreate.model_validate({
            "title": "Feedback loops",
            "support_materials": [
                {"id": "w", "type": "file", "name": "Workbook", "fileName": "חוברת עבודה.pdf"},
                {"type": "link", "name": "Docs", "url": "https://example.com"},
            ],
        })
        lesson = await self.service.create(data, [pdf("material_file_w", "חוברת עבודה.pdf")])

        workbook, link = lesson["supportMaterials"]
        assert "storageRef" not in workbook
        assert workbook["fileSize"] == len(PDF_BYTES)
        assert link["id"]
        stored = next(iter(n for n in self.storage.objects if n != FILE_MATERIAL["storageRef"]))
        assert stored.startswith("lesson_materials/") and stored.endswith("_hvbrt_abvdh.pdf")
        assert lesson["isPublished"] is False

    @pytest.mark.asyncio
    async def test_file_material_without_upload_is_dropped(self):
        data = LessonCreate.model_validate({
            "title": "No files",
            "support_materials": [{"type": "file", "name": "Missing", "fileName": "missing.pdf"}],
        })
        lesson = await self.service.create(data, [])
        assert lesson["supportMaterials"] == []

    @pytest.mark.asyncio
    async def test_upload_failure_removes_earlier_objects(self):
        self.storage.fail_after = len(self.storage.objects) + 1
        data = LessonCreate.model_validate({
            "title": "Two files",
            "support_materials": [
                {"id": "a", "type": "file", "name": "A", "fileName": "a.pdf"},
                {"id": "b", "type": "file", "name": "B", "fileName": "b.pdf"},
            ],
        })
        with pytest.raises(UpstreamError, match="b.pdf"):
            await self.service.create(data, [pdf("material_file_a", "a.pdf"), pdf("material_file_b", "b.pdf")])

        assert len(self.storage.deleted) == 1
        assert list(self.storage.objects) == [FILE_MATERIAL["storageRef"]]
        assert len(self.lessons.lessons) == 2

    @pytest.mark.asyncio
    async def test_failed_save_removes_uploaded_objects(self, monkeypatch):
        async def failing_add(lesson):
            raise UpstreamError("Failed to save lesson")

        monkeypatch.setattr(self.lessons, "add", failing_add)
        data = LessonCreate.model_validate({
            "title": "Unsaved",
            "support_materials": [{"id": "a", "type": "file", "name": "A", "fileName": "a.pdf"}],
        })
        with pytest.raises(UpstreamError, match="save lesson"):
            await self.service.create(data, [pdf("material_file_a", "a.pdf")])

        assert len(self.storage.deleted) == 1
        assert list(self.storage.objects) == [FILE_MATERIAL["storageRef"]]
        assert len(self.lessons.lessons) == 2

    @pytest.mark.asyncio
    async def test_failed_update_keeps_previous_objects(self, monkeypatch):
        async def failing_save(lesson):
            raise UpstreamError("Failed to save lesson")

        monkeypatch.setattr(self.lessons, "save", failing_save)
        data = LessonUpdate.model_validate({
            "support_materials": [
                {"id": "n", "type": "file", "name": "New", "fileName": "new.pdf"},
                {"id": "m-file", "type": "file", "name": "Workbook", "fileName": "חוברת עבודה.pdf"},
            ],
        })
        with pytest.raises(UpstreamError):
            await self.service.update(self.published.id, data, [pdf("material_file_n", "new.pdf")])

        assert len(self.storage.deleted) == 1
        assert FILE_MATERIAL["storageRef"] not in self.storage.deleted
        assert list(self.storage.objects) == [FILE_MATERIAL["storageRef"]]

    @pytest.mark.asyncio
    async def test_update_keeps_existing_storage_ref(self):
        data = LessonUpdate.model_validate({
            "title": "Active listening II",
            "support_materials": [
                {"id": "m-file", "type": "file", "name": "Renamed", "fileName": "חוברת עבודה.pdf",
                 "storageRef": "lesson_materials/forged.pdf"},
            ],
        })
        await self.service.update(self.published.id, data, [])

        material = self.published.support_materials[0]
        assert material["storageRef"] == FILE_MATERIAL["storageRef"]
        assert material["name"] == "Renamed"
        assert self.published.title == "Active listening II"

    @pytest.mark.asyncio
    async def test_update_without_materials_leaves_them(self):
        before = list(self.published.support_materials)
        await self.service.update(self.published.id, LessonUpdate(is_published=False), [])
        assert self.published.support_materials == before
        assert self.published.is_published is False

    @pytest.mark.asyncio
    async def test_update_rejects_non_pdf(self):
        data = LessonUpdate.model_validate({"support_materials": []})
        with pytest.raises(ValidationError):
            await self.service.update(self.published.id, data, [pdf(content_type="text/plain")])

    @pytest.mark.asyncio
    async def test_today_prefers_first_uncompleted(self, make_lesson):
        from datetime import datetime, timezone

        newest = make_lesson(title="Newest", created_at=datetime(2026, 10, 5, tzinfo=timezone.utc))
        self.lessons.lessons[newest.id] = newest
        self.progress.add_user(
            self.learner["id"],
            stats=UserStats(),
            lesson_progress={str(newest.id): {"status": "completed", "completed_at": "2026-10-05T10:00:00Z"}},
        )
        today = await self.service.today(self.learner["id"])
        assert today["id"] == str(self.published.id)
        assert today["userProgress"]["status"] == "not_started"

    @pytest.mark.asyncio
    async def test_today_without_lessons(self, learner):
        self.lessons.lessons.clear()
        with pytest.raises(NotFoundError):
            await self.service.today(learner["id"])

    @pytest.mark.asyncio
    async def test_detail_gates_drafts(self):
        with pytest.raises(AuthorizationError):
            await self.service.detail(self.learner, self.draft.id)
        detail = await self.service.detail(self.admin, self.draft.id)
        assert detail["title"] == self.draft.title
