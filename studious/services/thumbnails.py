"""Thumbnail rendering for uploaded files.

Images get a real preview decoded with Pillow and PDFs get their first page
rasterized with PyMuPDF. Documents, video and audio get a flat color-coded
icon; anything else gets no thumbnail. Every thumbnail is a JPEG that fits
inside the configured bounding box.
"""

import logging
import uuid
from datetime import datetime, timezone
from io import BytesIO
from typing import Optional

import fitz  # PyMuPDF
import httpx
from PIL import Image, ImageDraw
from sqlalchemy.orm import Session

from studious.models.file_record import FileRecord, UploadStatus
from studious.services.blob_store import BlobStore

logger = logging.getLogger(__name__)

SUPPORTED_IMAGE_TYPES = {
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/tiff",
    "image/bmp",
    "image/avif",
}

PDF_TYPE = "application/pdf"

DOCUMENT_TYPES = {
    PDF_TYPE,
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "text/plain",
    "text/csv",
    "application/json",
    "text/html",
    "text/javascript",
    "text/css",
}

VIDEO_TYPES = {"video/mp4", "video/webm", "video/ogg", "video/quicktime"}

AUDIO_TYPES = {"audio/mpeg", "audio/ogg", "audio/wav", "audio/webm"}

ICON_BACKGROUND = (245, 245, 245)
ICON_COLORS = {
    "document": (52, 152, 219),
    "video": (231, 76, 60),
    "audio": (46, 204, 113),
}
DEFAULT_ICON_COLOR = (200, 200, 200)

THUMBNAIL_MIME_TYPE = "image/jpeg"


def thumbnail_category(mime_type: str) -> Optional[str]:
    """Classify a MIME type: image, pdf, document, video, audio, or None."""
    mime_type = (mime_type or "").lower()
    if mime_type in SUPPORTED_IMAGE_TYPES:
        return "image"
    if mime_type == PDF_TYPE:
        return "pdf"
    if mime_type in DOCUMENT_TYPES:
        return "document"
    if mime_type in VIDEO_TYPES:
        return "video"
    if mime_type in AUDIO_TYPES:
        return "audio"
    return None


class ThumbnailGenerator:
    def __init__(
        self,
        blob_store: BlobStore,
        max_width: int = 200,
        max_height: int = 200,
        jpeg_quality: int = 80,
        pdf_dpi: int = 144,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        fetch_timeout: float = 30.0,
    ):
        self.blob_store = blob_store
        self.max_width = max_width
        self.max_height = max_height
        self.jpeg_quality = jpeg_quality
        self.pdf_dpi = pdf_dpi
        self._transport = transport
        self._fetch_timeout = fetch_timeout

    # --- rendering ---

    def _fit(self, image: Image.Image) -> Image.Image:
        """Flatten onto white RGB and shrink to the bounding box, never enlarging."""
        if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
            image = image.convert("RGBA")
            background = Image.new("RGB", image.size, (255, 255, 255))
            background.paste(image, mask=image.getchannel("A"))
            image = background
        elif image.mode != "RGB":
            image = image.convert("RGB")
        image.thumbnail((self.max_width, self.max_height))
        return image

    def _encode(self, image: Image.Image) -> bytes:
        buffer = BytesIO()
        image.save(buffer, format="JPEG", quality=self.jpeg_quality)
        return buffer.getvalue()

    def generic_icon(self, mime_type: str) -> bytes:
        """Flat icon colored by category: documents blue, video red, audio green, else gray."""
        category = thumbnail_category(mime_type)
        if category == "pdf":
            category = "document"
        color = ICON_COLORS.get(category, DEFAULT_ICON_COLOR)

        image = Image.new("RGB", (self.max_width, self.max_height), ICON_BACKGROUND)
        inset_x = self.max_width // 4
        inset_y = self.max_height // 4
        ImageDraw.Draw(image).rectangle(
            (inset_x, inset_y, self.max_width - inset_x - 1, self.max_height - inset_y - 1),
            fill=color,
        )
        return self._encode(image)

    def _render_image(self, data: bytes) -> bytes:
        with Image.open(BytesIO(data)) as image:
            image.seek(0)
            return self._encode(self._fit(image))

    def _render_pdf(self, data: bytes) -> bytes:
        try:
            with fitz.open(stream=data, filetype="pdf") as doc:
                pix = doc[0].get_pixmap(dpi=self.pdf_dpi, alpha=False)
            image = Image.frombytes("RGB", (pix.width, pix.height), pix.samples)
            return self._encode(self._fit(image))
        except Exception as e:
            logger.warning(f"PDF rasterization failed, using generic icon: {e}")
            return self.generic_icon(PDF_TYPE)

    def generate(self, data: bytes, mime_type: str) -> Optional[bytes]:
        """Render a thumbnail from raw bytes, or None for unsupported types.

        Undecodable images raise; PDFs that cannot be rasterized fall back
        to the generic icon.
        """
        category = thumbnail_category(mime_type)
        if category is None:
            return None
        if category == "image":
            return self._render_image(data)
        if category == "pdf":
            return self._render_pdf(data)
        return self.generic_icon(mime_type)

    # --- pipeline ---

    async def _fetch(self, path: str) -> bytes:
        url = await self.blob_store.issue_signed_url(path, "read")
        async with httpx.AsyncClient(timeout=self._fetch_timeout, transport=self._transport) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.content

    async def materialize(self, path: str, mime_type: str) -> Optional[bytes]:
        """Produce thumbnail bytes for the stored object at ``path``."""
        category = thumbnail_category(mime_type)
        if category is None:
            return None
        if category not in ("image", "pdf"):
            return self.generic_icon(mime_type)

        try:
            data = await self._fetch(path)
            return self.generate(data, mime_type)
        except Exception as e:
            logger.warning(f"Thumbnail rendering failed for {path}, using generic icon: {e}")
            return self.generic_icon(mime_type)

    async def persist(self, db: Session, thumbnail: bytes, original_name: str, owner_id: Optional[int]) -> int:
        """Store the JPEG and create its FileRecord. Returns the new record id."""
        path = f"thumbnails/{uuid.uuid4()}.jpg"
        await self.blob_store.put(thumbnail, path, THUMBNAIL_MIME_TYPE)

        record = FileRecord(
            name=f"{original_name}_thumb.jpg",
            mime_type=THUMBNAIL_MIME_TYPE,
            size=len(thumbnail),
            path=path,
            user_id=owner_id,
            upload_status=UploadStatus.completed,
            upload_progress=100,
            uploaded_at=datetime.now(timezone.utc),
            is_thumbnail=True,
        )
        db.add(record)
        db.commit()
        db.refresh(record)
        return record.id

    async def attach_thumbnail(self, db: Session, file_id: int) -> Optional[FileRecord]:
        """Generate, store and link the thumbnail of one completed upload."""
        record = db.get(FileRecord, file_id)
        if record is None:
            logger.warning(f"Skipping thumbnail for missing file {file_id}")
            return None
        if record.is_thumbnail or record.thumbnail_id is not None:
            return None
        if record.upload_status != UploadStatus.completed:
            logger.info(f"Skipping thumbnail for file {file_id} in status {record.upload_status.value}")
            return None

        thumbnail = await self.materialize(record.path, record.mime_type)
        if thumbnail is None:
            return None

        thumbnail_id = await self.persist(db, thumbnail, record.name, record.user_id)
        record.thumbnail_id = thumbnail_id
        db.commit()
        logger.info(f"Linked thumbnail {thumbnail_id} to file {file_id}")
        return db.get(FileRecord, thumbnail_id)
