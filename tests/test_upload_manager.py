from datetime import datetime, timedelta, timezone
from urllib.parse import quote

import pytest

from studious.core.errors import NotFoundError, ValidationError
from studious.models.file_record import FileRecord, UploadStatus
from studious.services.uploads import (
    ALLOWED_FILE_TYPES,
    AttachTarget,
    FileMeta,
    UploadManager,
    build_storage_path,
    validate_file_type,
)

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def naive(dt):
    return dt.replace(tzinfo=None)


@pytest.fixture
def manager():
    return UploadManager("https://api.example.com", clock=lambda: NOW)


def test_slot_is_pending_with_fifteen_minute_expiry(db, make_user, manager):
    owner = make_user("alice")
    slot = manager.request_upload_slot(db, FileMeta("photo.png", "image/png", 1024), owner.id)

    assert naive(slot.upload_expires_at) == naive(NOW + timedelta(minutes=15))
    assert slot.upload_url == f"https://api.example.com/api/upload/{quote(slot.path, safe='')}"
    assert slot.path.endswith(".png")
    assert slot.upload_session_id

    record = db.get(FileRecord, slot.id)
    assert record.upload_status == UploadStatus.pending
    assert record.upload_progress == 0
    assert record.upload_retry_count == 0
    assert record.user_id == owner.id


def test_storage_paths_are_unique_and_keep_extension():
    first = build_storage_path("Report.PDF")
    second = build_storage_path("Report.PDF")
    assert first != second
    assert first.endswith(".pdf")
    assert build_storage_path("a.png", directory="thumbnails/").startswith("thumbnails/")


@pytest.mark.parametrize("extension", sorted(ALLOWED_FILE_TYPES))
def test_mismatched_type_rejected_for_every_known_extension(extension):
    with pytest.raises(ValidationError):
        validate_file_type(f"file.{extension}", "application/x-msdownload")


def test_known_extension_check_is_case_insensitive():
    validate_file_type("PHOTO.JPG", "IMAGE/JPEG")


def test_unknown_extension_accepts_any_type(db, make_user, manager):
    owner = make_user("alice")
    slot = manager.request_upload_slot(db, FileMeta("notes.xyz", "application/x-whatever", 10), owner.id)
    assert db.get(FileRecord, slot.id).mime_type == "application/x-whatever"


def test_rejected_slot_creates_no_record(db, make_user, manager):
    owner = make_user("alice")
    with pytest.raises(ValidationError):
        manager.request_upload_slot(db, FileMeta("cat.png", "image/jpeg", 10), owner.id)
    assert db.query(FileRecord).count() == 0


def test_batch_with_one_bad_file_persists_nothing(db, make_user, manager):
    owner = make_user("alice")
    files = [FileMeta(f"img{i}.png", "image/png", 100) for i in range(5)]
    files[2] = FileMeta("img2.gif", "image/png", 100)

    with pytest.raises(ValidationError):
        manager.request_upload_slots(db, files, owner.id)
    assert db.query(FileRecord).count() == 0


def test_batch_slots_share_owner_target(db, classroom, manager):
    from studious.models.folder import Folder

    folder = Folder(class_id=classroom.cls.id, name="Readings")
    db.add(folder)
    db.commit()

    slots = manager.request_upload_slots(
        db,
        [FileMeta("a.pdf", "application/pdf", 1), FileMeta("b.pdf", "application/pdf", 2)],
        classroom.teacher.id,
        AttachTarget(folder_id=folder.id),
    )
    assert len({slot.path for slot in slots}) == 2
    assert {db.get(FileRecord, slot.id).folder_id for slot in slots} == {folder.id}


def test_target_with_two_owners_is_rejected():
    with pytest.raises(ValidationError):
        AttachTarget(assignment_id=1, folder_id=2).columns()


@pytest.mark.parametrize("reported,stored", [(-10, 0), (150, 100), (55, 55)])
def test_progress_is_clamped(db, make_user, manager, reported, stored):
    owner = make_user("alice")
    slot = manager.request_upload_slot(db, FileMeta("a.png", "image/png", 1), owner.id)

    record = manager.report_progress(db, slot.id, reported)
    assert record.upload_progress == stored
    assert record.upload_status == UploadStatus.uploading


def test_progress_ignored_after_completion(db, make_user, manager):
    owner = make_user("alice")
    slot = manager.request_upload_slot(db, FileMeta("a.png", "image/png", 1), owner.id)
    manager.confirm_upload(db, slot.id, True)

    record = manager.report_progress(db, slot.id, 10)
    assert record.upload_status == UploadStatus.completed
    assert record.upload_progress == 100


def test_progress_for_unknown_file(db, manager):
    with pytest.raises(NotFoundError):
        manager.report_progress(db, 999, 50)


def test_confirm_success(db, make_user, manager):
    owner = make_user("alice")
    slot = manager.request_upload_slot(db, FileMeta("a.png", "image/png", 1), owner.id)

    record = manager.confirm_upload(db, slot.id, True)
    assert record.upload_status == UploadStatus.completed
    assert record.upload_progress == 100
    assert naive(record.uploaded_at) == naive(NOW)
    assert record.upload_error is None


def test_confirm_failure_records_error_and_counts_retry(db, make_user, manager):
    owner = make_user("alice")
    slot = manager.request_upload_slot(db, FileMeta("a.png", "image/png", 1), owner.id)

    record = manager.confirm_upload(db, slot.id, False, "network dropped")
    assert record.upload_status == UploadStatus.failed
    assert record.upload_progress == 0
    assert record.upload_error == "network dropped"
    assert record.upload_retry_count == 1


def test_confirm_unknown_file(db, manager):
    with pytest.raises(NotFoundError):
        manager.confirm_upload(db, 12345, True)


def test_confirm_schedules_thumbnail_and_survives_hook_failure(db, make_user):
    owner = make_user("alice")
    scheduled = []

    def broken_hook(file_id):
        scheduled.append(file_id)
        raise RuntimeError("broker down")

    manager = UploadManager("https://api.example.com", clock=lambda: NOW, on_completed=broken_hook)
    slot = manager.request_upload_slot(db, FileMeta("a.png", "image/png", 1), owner.id)

    record = manager.confirm_upload(db, slot.id, True)
    assert record.upload_status == UploadStatus.completed
    assert scheduled == [slot.id]


def test_retry_reopens_failed_upload_on_same_path(db, make_user):
    owner = make_user("alice")
    clock = {"now": NOW}
    manager = UploadManager("https://api.example.com", clock=lambda: clock["now"])
    slot = manager.request_upload_slot(db, FileMeta("a.png", "image/png", 1), owner.id)
    manager.confirm_upload(db, slot.id, False, "timeout")

    clock["now"] = NOW + timedelta(hours=1)
    retried = manager.retry_upload(db, slot.id)

    record = db.get(FileRecord, slot.id)
    assert retried.path == slot.path
    assert retried.upload_session_id != slot.upload_session_id
    assert naive(retried.upload_expires_at) == naive(clock["now"] + timedelta(minutes=15))
    assert record.upload_status == UploadStatus.uploading
    assert record.upload_error is None
    assert record.upload_retry_count == 1


def test_retry_requires_failed_status(db, make_user, manager):
    owner = make_user("alice")
    slot = manager.request_upload_slot(db, FileMeta("a.png", "image/png", 1), owner.id)
    with pytest.raises(ValidationError):
        manager.retry_upload(db, slot.id)


def test_slot_closes_at_expiry(db, make_user):
    owner = make_user("alice")
    clock = {"now": NOW}
    manager = UploadManager("https://api.example.com", clock=lambda: clock["now"])
    slot = manager.request_upload_slot(db, FileMeta("a.png", "image/png", 1), owner.id)
    record = db.get(FileRecord, slot.id)

    assert manager.slot_is_open(record)
    clock["now"] = NOW + timedelta(minutes=15)
    assert not manager.slot_is_open(record)
