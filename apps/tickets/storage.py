"""
Attachment file storage.

The ticket core only persists attachment metadata; bytes go to whatever
Django storage backend is configured as STORAGES["default"].
"""

from __future__ import annotations

import logging
from typing import Protocol

from django.core.files.storage import Storage, default_storage
from django.core.files.uploadedfile import UploadedFile

from apps.common.types import StoredPath

from .security import generate_secure_filename, get_secure_upload_path

logger = logging.getLogger(__name__)


class AttachmentStorage(Protocol):
    """Stores validated attachment bytes and returns a stable path"""

    def save(self, ticket_id: int, uploaded_file: UploadedFile) -> StoredPath: ...


class DjangoAttachmentStorage:
    """AttachmentStorage backed by a Django Storage instance"""

    def __init__(self, storage: Storage | None = None) -> None:
        self.storage = storage or default_storage

    def save(self, ticket_id: int, uploaded_file: UploadedFile) -> StoredPath:
        secure_name = generate_secure_filename(uploaded_file.name or "")
        uploaded_file.seek(0)
        stored_path = self.storage.save(get_secure_upload_path(ticket_id, secure_name), uploaded_file)
        logger.info(f"🔒 [Ticket Storage] Stored {uploaded_file.name} as {stored_path}")
        return stored_path
