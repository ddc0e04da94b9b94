import asyncio

import pytest

from studious.models.announcement import Announcement
from studious.models.assignment import Assignment, Submission
from studious.models.classroom import Classroom
from studious.models.file_record import FileRecord, UploadStatus
from studious.models.folder import Folder
from studious.services.cascade import CascadeDeleter


def add_file(db, name, status=UploadStatus.completed, with_thumbnail=False, **owner):
    thumbnail = None
    if with_thumbnail:
        thumbnail = FileRecord(
            name=f"{name}_thumb.jpg",
            mime_type="image/jpeg",
            size=1,
            path=f"thumbnails/{name}.jpg",
            upload_status=UploadStatus.completed,
            is_thumbnail=True,
        )
        db.add(thumbnail)
        db.flush()
    record = FileRecord(
        name=name,
        mime_type="image/png",
        size=1,
        path=f"blobs/{name}",
        upload_status=status,
        thumbnail_id=thumbnail.id if thumbnail else None,
        **owner,
    )
    db.add(record)
    db.flush()
    return record


@pytest.fixture
def assignment_tree(db, classroom):
    """Assignment with 2 attachments, and per student one attachment and one annotation, all thumbnailed."""
    assignment = Assignment(class_id=classroom.cls.id, teacher_id=classroom.teacher.id, title="Essay")
    db.add(assignment)
    db.flush()
    add_file(db, "brief.png", with_thumbnail=True, assignment_id=assignment.id)
    add_file(db, "rubric.png", with_thumbnail=True, assignment_id=assignment.id)
    for student in classroom.students:
        submission = Submission(assignment_id=assignment.id, student_id=student.id)
        db.add(submission)
        db.flush()
        add_file(db, f"essay-{student.id}.png", with_thumbnail=True, submission_id=submission.id)
        add_file(db, f"marks-{student.id}.png", with_thumbnail=True, annotation_submission_id=submission.id)
    db.commit()
    return assignment


def test_collect_gathers_attachments_submissions_and_annotations(db, blob_store, assignment_tree):
    cascade = CascadeDeleter(blob_store).collect(db, assignment_tree)

    assert len(cascade.files) == 8
    assert len(cascade.thumbnails) == 8
    assert len(cascade.records) == 16
    assert blob_store.deleted == []


def test_delete_purges_every_blob_then_rows_despite_one_failure(db, blob_store, assignment_tree):
    deleter = CascadeDeleter(blob_store)
    assignment_id = assignment_tree.id
    blob_store.fail_paths.add("blobs/rubric.png")

    report = asyncio.run(deleter.delete(db, assignment_tree))

    assert len(blob_store.deleted) == 16
    assert report.purge.failed == ["blobs/rubric.png"]
    assert report.files == 8
    assert db.get(Assignment, assignment_id) is None
    assert db.query(Submission).count() == 0
    assert db.query(FileRecord).count() == 0


def test_blobs_are_purged_before_rows_are_deleted(db, blob_store, assignment_tree, session_factory):
    assignment_id = assignment_tree.id
    rows_present = []

    def check_rows(path):
        probe = session_factory()
        try:
            rows_present.append(probe.get(Assignment, assignment_id) is not None)
        finally:
            probe.close()

    blob_store.on_delete = check_rows
    asyncio.run(CascadeDeleter(blob_store).delete(db, assignment_tree))

    assert rows_present and all(rows_present)


def test_only_completed_files_are_purged(db, classroom, blob_store):
    announcement = Announcement(class_id=classroom.cls.id, remarks="Field trip")
    db.add(announcement)
    db.flush()
    add_file(db, "done.png", announcement_id=announcement.id)
    add_file(db, "pending.png", status=UploadStatus.pending, announcement_id=announcement.id)
    add_file(db, "failed.png", status=UploadStatus.failed, announcement_id=announcement.id)
    db.commit()

    report = asyncio.run(CascadeDeleter(blob_store).delete(db, announcement))

    assert blob_store.deleted == ["blobs/done.png"]
    assert report.files == 3
    assert db.query(FileRecord).count() == 0


def test_folder_delete_includes_subfolders(db, classroom, blob_store):
    root = Folder(class_id=classroom.cls.id, name="Units")
    db.add(root)
    db.flush()
    child = Folder(class_id=classroom.cls.id, parent_id=root.id, name="Unit 1")
    db.add(child)
    db.flush()
    grandchild = Folder(class_id=classroom.cls.id, parent_id=child.id, name="Week 1")
    db.add(grandchild)
    db.flush()
    add_file(db, "syllabus.png", folder_id=root.id)
    add_file(db, "slides.png", folder_id=grandchild.id)
    db.commit()

    asyncio.run(CascadeDeleter(blob_store).delete(db, root))

    assert sorted(blob_store.deleted) == ["blobs/slides.png", "blobs/syllabus.png"]
    assert db.query(Folder).count() == 0
    assert db.query(FileRecord).count() == 0


def test_class_delete_covers_every_owner(db, classroom, blob_store, assignment_tree):
    announcement = Announcement(class_id=classroom.cls.id, remarks="Welcome")
    folder = Folder(class_id=classroom.cls.id, name="Handouts")
    db.add_all([announcement, folder])
    db.flush()
    add_file(db, "welcome.png", announcement_id=announcement.id)
    add_file(db, "handout.png", folder_id=folder.id)
    db.commit()
    class_id = classroom.cls.id

    report = asyncio.run(CascadeDeleter(blob_store).delete(db, classroom.cls))

    assert report.files == 10
    assert len(blob_store.deleted) == 18
    assert db.get(Classroom, class_id) is None
    assert db.query(FileRecord).count() == 0


def test_delete_files_removes_single_attachment_and_thumbnail(db, classroom, blob_store, assignment_tree):
    record = db.query(FileRecord).filter(FileRecord.name == "brief.png").one()
    thumbnail_path = record.thumbnail.path

    asyncio.run(CascadeDeleter(blob_store).delete_files(db, [record]))

    assert sorted(blob_store.deleted) == sorted(["blobs/brief.png", thumbnail_path])
    assert db.query(FileRecord).count() == 14
