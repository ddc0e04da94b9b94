import asyncio
import logging

from worker.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(bind=True)
def generate_thumbnail_task(self, file_id: int) -> dict:
    """Render, store and link the thumbnail of a completed upload."""
    # Import here to avoid circular imports and ensure DB connection
    from studious.core.config import get_settings
    from studious.core.database import SessionLocal
    from studious.services.blob_store import BlobStore
    from studious.services.container import build_thumbnail_generator

    settings = get_settings()
    blob_store = BlobStore.from_settings(settings)
    generator = build_thumbnail_generator(settings, blob_store)

    db = SessionLocal()
    try:
        thumbnail = asyncio.run(generator.attach_thumbnail(db, file_id))
        thumbnail_id = thumbnail.id if thumbnail is not None else None
    finally:
        db.close()
        blob_store.close()

    logger.info(f"Thumbnail task {self.request.id} for file {file_id}: {thumbnail_id}")
    return {"file_id": file_id, "thumbnail_id": thumbnail_id, "task_id": self.request.id}
