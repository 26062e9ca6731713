import logging
import shutil
import uuid
from functools import partial
from pathlib import Path

from fastapi import UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.services import unitOfWork
from src.services.orderErrors import OrderValidationError

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = frozenset({"image/jpeg", "image/png", "image/webp", "image/heic"})


def _upload_dir() -> Path:
    path = Path(settings.upload_dir)
    path.mkdir(parents=True, exist_ok=True)
    return path


def validate_photo_batch(files: list[UploadFile]) -> None:
    """Reject an empty batch, more than the per-upload limit, or non-image parts."""
    if not files:
        raise OrderValidationError("At least one photo is required.", code="photos_required")
    if len(files) > settings.max_photos_per_upload:
        raise OrderValidationError(
            f"At most {settings.max_photos_per_upload} photos per upload.",
            code="too_many_photos",
        )
    for file in files:
        if file.content_type not in ALLOWED_CONTENT_TYPES:
            raise OrderValidationError(
                f"Unsupported photo type: {file.content_type}",
                code="invalid_photo_type",
            )


async def save_upload_file(file: UploadFile) -> str:
    """Save an uploaded file to the local filesystem and return its public path."""
    ext = Path(file.filename).suffix if file.filename else ""
    unique_name = f"{uuid.uuid4()}{ext}"
    file_path = _upload_dir() / unique_name

    with open(file_path, "wb") as buffer:
        shutil.copyfileobj(file.file, buffer)

    return f"/{settings.upload_dir}/{unique_name}"


async def save_photo_batch(files: list[UploadFile]) -> list[str]:
    validate_photo_batch(files)
    return [await save_upload_file(file) for file in files]


async def delete_uploads(paths: list[str]) -> None:
    """Remove previously saved uploads; already missing files are ignored."""
    upload_dir = _upload_dir()
    for path in paths:
        try:
            (upload_dir / Path(path).name).unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not delete upload %s", path, exc_info=True)


async def save_photo_batch_for(db: AsyncSession, files: list[UploadFile]) -> list[str]:
    """Save a batch whose files are removed again if ``db`` rolls back."""
    paths = await save_photo_batch(files)
    unitOfWork.on_rollback(db, partial(delete_uploads, paths))
    return paths
