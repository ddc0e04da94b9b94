"""Upload proxy: the target of every upload slot URL.

The slot path is unguessable and expires, so possession of an open slot is
the only authorization required.
"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from studious.core.database import get_db
from studious.core.errors import NotFoundError, ValidationError
from studious.models.file_record import FileRecord
from studious.services.container import Services, get_services

logger = logging.getLogger(__name__)
router = APIRouter()


@router.api_route("/{file_path:path}", methods=["PUT", "POST"])
async def upload_blob(
    file_path: str,
    request: Request,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    record = db.query(FileRecord).filter(FileRecord.path == file_path).first()
    if record is None:
        raise NotFoundError("Upload slot not found")
    if not services.uploads.slot_is_open(record):
        raise ValidationError("Upload slot has expired or is already closed")

    body = await request.body()
    content_type = request.headers.get("content-type") or record.mime_type
    await services.blob_store.put(body, record.path, content_type)
    logger.info(f"Proxied upload of {len(body)} bytes to {record.path}")
    return {"path": record.path, "size": len(body)}
