"""
🔒 Ticket Security Module - Attachment Validation

Upload policy enforcement for ticket attachments:
- Batch size limit (whole batch rejected when exceeded)
- Per-file size limit
- Extension allowlist
- Declared MIME type allowlist
- Content sniffing against the extension to stop type spoofing
- Secure storage filenames and paths
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# Optional dependency for enhanced MIME type detection
try:
    import magic

    HAS_PYTHON_MAGIC = True
except ImportError:
    magic = None
    HAS_PYTHON_MAGIC = False

from django.conf import settings
from django.core.files.uploadedfile import UploadedFile
from django.utils import timezone

from apps.common.constants import (
    MAX_ATTACHMENT_SIZE_BYTES,
    MAX_ATTACHMENTS_PER_TICKET,
    MAX_FILENAME_LENGTH,
    SNIFF_HEADER_BYTES,
)

logger = logging.getLogger(__name__)

_DEFAULT_ALLOWED_EXTENSIONS = ("jpg", "jpeg", "png", "pdf", "doc", "docx")

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

_DEFAULT_ALLOWED_MIME_TYPES = (
    "image/jpeg",
    "image/png",
    "application/pdf",
    "application/msword",
    DOCX_MIME,
)

# Content types the sniffer may legitimately report for each extension.
# OLE and ZIP containers are reported generically by libmagic when the
# document body is minimal.
SNIFFED_TYPES_BY_EXTENSION: dict[str, frozenset[str]] = {
    "jpg": frozenset({"image/jpeg"}),
    "jpeg": frozenset({"image/jpeg"}),
    "png": frozenset({"image/png"}),
    "pdf": frozenset({"application/pdf"}),
    "doc": frozenset({"application/msword", "application/x-ole-storage", "application/CDFV2"}),
    "docx": frozenset({DOCX_MIME, "application/zip"}),
}

# Magic number signatures used when python-magic is unavailable
MAGIC_NUMBER_SIGNATURES: list[tuple[bytes, str]] = [
    (b"%PDF", "application/pdf"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1", "application/msword"),
    (b"PK\x03\x04", DOCX_MIME),
]


@dataclass(frozen=True)
class AttachmentPolicy:
    """Upload limits for one ticket"""

    max_files: int = MAX_ATTACHMENTS_PER_TICKET
    max_size_bytes: int = MAX_ATTACHMENT_SIZE_BYTES
    allowed_extensions: frozenset[str] = frozenset(_DEFAULT_ALLOWED_EXTENSIONS)
    allowed_mime_types: frozenset[str] = frozenset(_DEFAULT_ALLOWED_MIME_TYPES)

    @classmethod
    def from_settings(cls) -> AttachmentPolicy:
        """Build the policy from TICKET_ATTACHMENT_POLICY, falling back to defaults"""
        configured: dict[str, Any] = getattr(settings, "TICKET_ATTACHMENT_POLICY", {})
        return cls(
            max_files=int(configured.get("max_files", MAX_ATTACHMENTS_PER_TICKET)),
            max_size_bytes=int(configured.get("max_size_bytes", MAX_ATTACHMENT_SIZE_BYTES)),
            allowed_extensions=frozenset(
                ext.lower().lstrip(".") for ext in configured.get("allowed_extensions", _DEFAULT_ALLOWED_EXTENSIONS)
            ),
            allowed_mime_types=frozenset(configured.get("allowed_mime_types", _DEFAULT_ALLOWED_MIME_TYPES)),
        )

    @property
    def max_size_display(self) -> str:
        return f"{self.max_size_bytes // (1024 * 1024)}MB"


@dataclass
class AttachmentValidationResult:
    """Outcome of validating one batch"""

    accepted: list[UploadedFile] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    too_many_files: bool = False

    @property
    def is_valid(self) -> bool:
        return not self.errors


def sniff_mime_type(uploaded_file: UploadedFile) -> str:
    """Detect the MIME type from file content, never from the client supplied name"""
    try:
        uploaded_file.seek(0)
        file_header = uploaded_file.read(SNIFF_HEADER_BYTES)
        uploaded_file.seek(0)
    except (OSError, ValueError) as e:
        logger.error(f"🔥 [Ticket Security] Could not read upload for sniffing: {e}")
        return "application/octet-stream"

    if not file_header:
        return "application/x-empty"

    if HAS_PYTHON_MAGIC and magic:
        try:
            return str(magic.from_buffer(file_header, mime=True))
        except Exception as e:
            logger.error(f"🔥 [Ticket Security] MIME detection failed, using signatures: {e}")

    for signature, mime_type in MAGIC_NUMBER_SIGNATURES:
        if file_header.startswith(signature):
            return mime_type
    return "application/octet-stream"


class AttachmentValidator:
    """
    🔒 Validates a batch of uploads against an AttachmentPolicy.

    Messages are deterministic: files are reported in upload order, and for
    each file the checks run as size, extension, declared type, content.
    A batch larger than `max_files` yields a single error and no per-file checks.
    """

    def __init__(self, policy: AttachmentPolicy | None = None) -> None:
        self.policy = policy or AttachmentPolicy.from_settings()

    def validate(self, files: Sequence[UploadedFile] | None) -> AttachmentValidationResult:
        files = list(files or [])
        result = AttachmentValidationResult()

        if len(files) > self.policy.max_files:
            logger.warning(f"🚨 [Ticket Security] Rejected batch of {len(files)} files")
            result.too_many_files = True
            result.errors.append(f"Maximum {self.policy.max_files} files allowed")
            return result

        for uploaded_file in files:
            file_errors = list(self.validate_file(uploaded_file))
            if file_errors:
                result.errors.extend(file_errors)
            else:
                result.accepted.append(uploaded_file)

        if result.errors:
            result.accepted = []
        return result

    def validate_file(self, uploaded_file: UploadedFile) -> Iterable[str]:
        """Yield every policy violation for one file"""
        name = uploaded_file.name or ""
        extension = Path(name).suffix.lower().lstrip(".")

        if not self._is_safe_filename(name):
            yield f"File {name or '(unnamed)'} has an invalid name"
            return

        size = uploaded_file.size or 0
        if size > self.policy.max_size_bytes:
            yield f"File {name} exceeds maximum size of {self.policy.max_size_display}"
        elif size == 0:
            yield f"File {name} is empty"

        if extension not in self.policy.allowed_extensions:
            yield f"File {name}: type .{extension or '(none)'} is not allowed"

        declared_type = (getattr(uploaded_file, "content_type", "") or "").lower()
        if declared_type not in self.policy.allowed_mime_types:
            yield f"Invalid file type for {name}: {declared_type or 'unknown'}"

        if size and extension in self.policy.allowed_extensions:
            sniffed_type = sniff_mime_type(uploaded_file)
            expected = SNIFFED_TYPES_BY_EXTENSION.get(extension, frozenset())
            if sniffed_type not in expected:
                logger.warning(
                    f"🚨 [Ticket Security] Content mismatch for {name}: .{extension} sniffed as {sniffed_type}"
                )
                yield f"File {name} content does not match its .{extension} extension"

    @staticmethod
    def _is_safe_filename(filename: str) -> bool:
        if not filename or len(filename) > MAX_FILENAME_LENGTH:
            return False

        # Check for path traversal attempts
        if ".." in filename or "/" in filename or "\\" in filename:
            logger.warning(f"🚨 [Ticket Security] Path traversal attempt in filename: {filename}")
            return False

        suspicious_chars = ["<", ">", ":", '"', "|", "?", "*", "\0"]
        if any(char in filename for char in suspicious_chars):
            logger.warning(f"🚨 [Ticket Security] Suspicious characters in filename: {filename}")
            return False

        return True


def generate_secure_filename(original_filename: str) -> str:
    """
    🔒 Generate an unpredictable storage filename keeping only the extension.

    Prevents direct URL guessing and path tricks through user supplied names.
    """
    file_ext = Path(original_filename).suffix.lower()
    timestamp = timezone.now().strftime("%Y%m%d_%H%M%S")
    random_component = secrets.token_hex(16)
    return f"ticket_{timestamp}_{random_component}{file_ext}"


def get_secure_upload_path(ticket_id: int, secure_filename: str) -> str:
    """Storage-relative path: tickets/attachments/YYYY/MM/<ticket_id>/<filename>"""
    year_month = timezone.now().strftime("%Y/%m")
    return f"tickets/attachments/{year_month}/{ticket_id}/{secure_filename}"
