"""Deletion of aggregate roots together with the blobs their files point to.

Every deletion follows the same protocol: collect the full set of owned
files, purge their blobs, then delete the rows. The database removes
dependent rows through ON DELETE CASCADE, so blobs must be gone before the
rows that name them.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union

from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session, joinedload

from studious.models.announcement import Announcement
from studious.models.assignment import Assignment, Submission
from studious.models.classroom import Classroom
from studious.models.file_record import FileRecord, UploadStatus
from studious.models.folder import Folder
from studious.services.blob_store import BlobStore

logger = logging.getLogger(__name__)

CascadeRoot = Union[Assignment, Submission, Announcement, Folder, Classroom]


@dataclass
class CascadeSet:
    """Files owned by a root, plus the thumbnails hanging off them."""

    files: List[FileRecord] = field(default_factory=list)
    thumbnails: List[FileRecord] = field(default_factory=list)

    @property
    def records(self) -> List[FileRecord]:
        return self.files + self.thumbnails


@dataclass
class PurgeReport:
    attempted: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


@dataclass
class DeletionReport:
    root_type: str
    root_id: Optional[int]
    files: int
    purge: PurgeReport


class CascadeDeleter:
    def __init__(self, blob_store: BlobStore):
        self.blob_store = blob_store

    # --- collection ---

    @staticmethod
    def _folder_ids(db: Session, root_ids: Sequence[int]) -> List[int]:
        """Ids of the given folders and all their descendants."""
        found = list(root_ids)
        frontier = list(root_ids)
        while frontier:
            children = db.execute(select(Folder.id).where(Folder.parent_id.in_(frontier))).scalars().all()
            frontier = [child for child in children if child not in found]
            found.extend(frontier)
        return found

    def _criteria(self, db: Session, root: CascadeRoot) -> list:
        if isinstance(root, Assignment):
            return self._assignment_criteria([root.id])
        if isinstance(root, Submission):
            return self._submission_criteria([root.id])
        if isinstance(root, Announcement):
            return [FileRecord.announcement_id == root.id]
        if isinstance(root, Folder):
            return [FileRecord.folder_id.in_(self._folder_ids(db, [root.id]))]
        if isinstance(root, Classroom):
            assignment_ids = select(Assignment.id).where(Assignment.class_id == root.id)
            announcement_ids = select(Announcement.id).where(Announcement.class_id == root.id)
            folder_ids = select(Folder.id).where(Folder.class_id == root.id)
            return self._assignment_criteria(assignment_ids) + [
                FileRecord.announcement_id.in_(announcement_ids),
                FileRecord.folder_id.in_(folder_ids),
            ]
        raise TypeError(f"Unsupported cascade root: {type(root).__name__}")

    def _assignment_criteria(self, assignment_ids) -> list:
        submission_ids = select(Submission.id).where(Submission.assignment_id.in_(assignment_ids))
        return [FileRecord.assignment_id.in_(assignment_ids)] + self._submission_criteria(submission_ids)

    @staticmethod
    def _submission_criteria(submission_ids) -> list:
        return [
            FileRecord.submission_id.in_(submission_ids),
            FileRecord.annotation_submission_id.in_(submission_ids),
        ]

    @staticmethod
    def _with_thumbnails(files: Sequence[FileRecord]) -> CascadeSet:
        thumbnails: Dict[int, FileRecord] = {}
        for record in files:
            if record.thumbnail is not None:
                thumbnails[record.thumbnail.id] = record.thumbnail
        return CascadeSet(files=list(files), thumbnails=list(thumbnails.values()))

    def collect(self, db: Session, root: CascadeRoot) -> CascadeSet:
        """Enumerate every file transitively owned by ``root``. Read-only."""
        files = (
            db.query(FileRecord)
            .options(joinedload(FileRecord.thumbnail))
            .filter(or_(*self._criteria(db, root)))
            .all()
        )
        return self._with_thumbnails(files)

    # --- purge ---

    async def _delete_blob(self, path: str, report: PurgeReport) -> None:
        try:
            await self.blob_store.delete_object(path)
        except Exception as e:
            logger.warning(f"Failed to delete blob {path}: {e}")
            report.failed.append(path)

    async def purge_blobs(self, files: Sequence[FileRecord]) -> PurgeReport:
        """Delete the blobs of COMPLETED files and their thumbnails.

        Deletions run concurrently; each failure is logged and counted and
        never stops the others.
        """
        report = PurgeReport()
        for record in files:
            if record.upload_status != UploadStatus.completed:
                continue
            report.attempted.append(record.path)
            if record.thumbnail is not None:
                report.attempted.append(record.thumbnail.path)

        await asyncio.gather(*(self._delete_blob(path, report) for path in report.attempted))
        if report.failed:
            logger.warning(f"{len(report.failed)} of {len(report.attempted)} blob deletions failed")
        return report

    # --- rows ---

    def _delete_thumbnail_rows(self, db: Session, cascade: CascadeSet) -> None:
        thumbnail_ids = [record.id for record in cascade.thumbnails]
        if thumbnail_ids:
            db.execute(delete(FileRecord).where(FileRecord.id.in_(thumbnail_ids)))

    def delete_root(self, db: Session, root: CascadeRoot, cascade: CascadeSet) -> None:
        """Delete collected thumbnails and the root row in one transaction."""
        model = type(root)
        try:
            self._delete_thumbnail_rows(db, cascade)
            db.execute(delete(model).where(model.id == root.id))
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.expire_all()

    async def delete(self, db: Session, root: CascadeRoot) -> DeletionReport:
        """collect -> purge blobs -> delete rows."""
        root_type = type(root).__name__
        root_id = root.id
        cascade = self.collect(db, root)
        purge = await self.purge_blobs(cascade.files)
        self.delete_root(db, root, cascade)
        logger.info(
            f"Deleted {root_type} {root_id} with {len(cascade.files)} file(s), "
            f"{len(purge.failed)} blob deletion failure(s)"
        )
        return DeletionReport(root_type=root_type, root_id=root_id, files=len(cascade.files), purge=purge)

    async def delete_files(self, db: Session, files: Sequence[FileRecord]) -> DeletionReport:
        """Remove individual attachments with the same purge-then-delete ordering."""
        cascade = self._with_thumbnails(files)
        purge = await self.purge_blobs(cascade.files)
        ids = [record.id for record in cascade.records]
        try:
            if ids:
                db.execute(delete(FileRecord).where(FileRecord.id.in_(ids)))
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.expire_all()
        logger.info(f"Deleted {len(cascade.files)} file(s), {len(purge.failed)} blob deletion failure(s)")
        return DeletionReport(root_type="FileRecord", root_id=None, files=len(cascade.files), purge=purge)
