"""Process-wide services, built once at startup and closed at shutdown."""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Request

from studious.core.config import Settings
from studious.core.database import SessionLocal
from studious.services.blob_store import BlobStore
from studious.services.cache import LookAsideCache
from studious.services.cascade import CascadeDeleter
from studious.services.notifications import NotificationDispatcher, NotificationService
from studious.services.thumbnails import ThumbnailGenerator
from studious.services.uploads import UploadManager

logger = logging.getLogger(__name__)


def schedule_thumbnail(file_id: int) -> None:
    """Hand thumbnail generation to the Celery worker."""
    from worker.tasks import generate_thumbnail_task

    generate_thumbnail_task.delay(file_id)


@dataclass
class Services:
    settings: Settings
    blob_store: BlobStore
    uploads: UploadManager
    thumbnails: ThumbnailGenerator
    cascade: CascadeDeleter
    notifications: NotificationService
    dispatcher: NotificationDispatcher
    cache: LookAsideCache

    async def aclose(self) -> None:
        await self.dispatcher.drain()
        self.cache.close()
        self.blob_store.close()
        logger.info("Services shut down")


def build_thumbnail_generator(settings: Settings, blob_store: BlobStore) -> ThumbnailGenerator:
    return ThumbnailGenerator(
        blob_store,
        max_width=settings.thumbnail_max_width,
        max_height=settings.thumbnail_max_height,
        jpeg_quality=settings.thumbnail_jpeg_quality,
        pdf_dpi=settings.thumbnail_pdf_dpi,
    )


def build_services(
    settings: Settings,
    session_factory: Callable = SessionLocal,
    on_upload_completed: Optional[Callable[[int], None]] = schedule_thumbnail,
) -> Services:
    blob_store = BlobStore.from_settings(settings)
    notifications = NotificationService(session_factory)
    return Services(
        settings=settings,
        blob_store=blob_store,
        uploads=UploadManager(
            settings.backend_url,
            slot_ttl_seconds=settings.upload_slot_ttl_seconds,
            on_completed=on_upload_completed,
        ),
        thumbnails=build_thumbnail_generator(settings, blob_store),
        cascade=CascadeDeleter(blob_store),
        notifications=notifications,
        dispatcher=NotificationDispatcher(notifications),
        cache=LookAsideCache.from_url(settings.redis_url, settings.cache_ttl_seconds),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
