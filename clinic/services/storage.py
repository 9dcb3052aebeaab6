"""
File uploads (insurance card images, documents) on Django's default storage.
"""
import logging
import os
import uuid
from typing import Optional

from django.conf import settings
from django.core.files.storage import default_storage
from rest_framework.exceptions import ValidationError

logger = logging.getLogger(__name__)


def _extension(upload) -> str:
    return os.path.splitext(upload.name or '')[1].lower()


def validation_error(upload, allowed_extensions) -> Optional[str]:
    if upload is None or not upload.size:
        return 'No file provided'
    if upload.size > settings.UPLOAD_MAX_MB * 1024 * 1024:
        return f'File size cannot exceed {settings.UPLOAD_MAX_MB}MB'
    if _extension(upload) not in allowed_extensions:
        return f"Only {', '.join(e.lstrip('.').upper() for e in allowed_extensions)} files are allowed"
    return None


def validate_image(upload) -> bool:
    return validation_error(upload, settings.ALLOWED_IMAGE_EXTENSIONS) is None


def validate_document(upload) -> bool:
    return validation_error(upload, settings.ALLOWED_DOCUMENT_EXTENSIONS) is None


def upload(upload, subfolder: str, *, images_only: bool = False) -> str:
    """Store ``upload`` under ``uploads/<subfolder>/`` with a random name and return its path."""
    if images_only:
        valid, allowed = validate_image(upload), settings.ALLOWED_IMAGE_EXTENSIONS
    else:
        valid, allowed = validate_document(upload), settings.ALLOWED_DOCUMENT_EXTENSIONS
    if not valid:
        raise ValidationError({'file': validation_error(upload, allowed)})
    name = f"uploads/{subfolder}/{uuid.uuid4().hex}{_extension(upload)}"
    path = default_storage.save(name, upload)
    logger.info('Stored upload %s (%s bytes)', path, upload.size)
    return path


def delete(path: str) -> bool:
    if not path:
        return False
    try:
        if default_storage.exists(path):
            default_storage.delete(path)
            return True
    except Exception:
        logger.exception('Failed to delete stored file %s', path)
    return False


def url(path: str) -> Optional[str]:
    return default_storage.url(path) if path else None
