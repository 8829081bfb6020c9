"""
ShareNotes Backend — File Storage Service
============================================

What:  The File Store: validates, writes, checks, streams and deletes uploaded PDFs.
How:   Stores each PDF in a date-organized directory under a UUID filename and
       hands back a relative reference that the Note row keeps in `file_path`.
Who:   Called by the upload route (store), NoteService (exists, cleanup)
       and the download route (stream).

Upload checks, cheapest first:
    1. Extension must be .pdf
    2. Size must be non-zero and within MAX_FILE_SIZE
    3. Content type sniffed from the header bytes (libmagic) must be application/pdf
    4. UUID filename, so no caller input reaches the file system path

Directory Structure:
    storage/
    └── 2025/
        └── 03/
            └── 14/
                └── 3f0c2a9e-....pdf
"""

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Optional, Tuple

import aiofiles
import aiofiles.os

from sharenotes.config import settings
from sharenotes.exceptions import FileStorageError, ValidationError

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"
ALLOWED_EXTENSIONS = {".pdf"}


class FileService:
    """
    Manages the lifecycle of stored PDF files.

    Every public method takes the relative reference stored on the Note
    (e.g. "2025/03/14/<uuid>.pdf") and resolves it against the storage root.
    """

    def __init__(self, storage_root: Optional[str] = None):
        """
        Args:
            storage_root: Override the default storage path (used in tests).
                          If None, uses settings.storage_root.
        """
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("FileService initialized with storage_root=%s", self.storage_root)

    # ── Validation ────────────────────────────────────────────────────────

    def validate_extension(self, filename: str) -> str:
        """
        Check the upload's extension.

        Returns: Normalized extension (".pdf").
        Raises:  ValidationError if the file is not a PDF.
        """
        ext = Path(filename).suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message=f"File type '{ext or filename}' is not supported. Only PDF files are accepted.",
                field="pdf",
                context={"extension": ext, "allowed": sorted(ALLOWED_EXTENSIONS)},
            )
        return ext

    def validate_size(self, content_length: Optional[int], actual_size: int) -> None:
        """
        Validate file size against the configured maximum.

        Content-Length is checked first when the client sent one; the actual
        byte count is always checked because headers can lie.
        """
        max_mb = settings.max_file_size / (1024 * 1024)

        if actual_size == 0:
            raise ValidationError(
                message="The uploaded file is empty.",
                field="pdf",
                context={"actual_size": 0},
            )

        if content_length and content_length > settings.max_file_size:
            raise ValidationError(
                message=f"File size exceeds maximum of {max_mb:.0f}MB.",
                field="pdf",
                context={"max_size_mb": max_mb, "reported_size": content_length},
            )

        if actual_size > settings.max_file_size:
            raise ValidationError(
                message=f"File size ({actual_size / (1024 * 1024):.1f}MB) exceeds maximum of {max_mb:.0f}MB.",
                field="pdf",
                context={"max_size_mb": max_mb, "actual_size": actual_size},
            )

    def validate_mime_type(self, file_content: bytes) -> str:
        """
        Validate the real content type by inspecting the file header bytes.

        How:     python-magic matches the leading bytes against libmagic's
                 signature database ("%PDF-" for PDF documents).
        Raises:  ValidationError if the content is not a PDF,
                 FileStorageError if detection itself fails.
        """
        try:
            import magic
            mime_type = magic.from_buffer(file_content[:2048], mime=True)
        except Exception as e:
            logger.error("MIME type detection failed: %s", str(e))
            raise FileStorageError(
                message="Could not verify file type. Please try again.",
                context={"error": str(e)},
            )

        if mime_type != PDF_MIME_TYPE:
            raise ValidationError(
                message=f"File content type '{mime_type}' is not supported. The file must be a valid PDF.",
                field="pdf",
                context={"detected_mime": mime_type, "allowed": [PDF_MIME_TYPE]},
            )

        return mime_type

    # ── Paths ─────────────────────────────────────────────────────────────

    def _generate_storage_path(self, extension: str) -> Tuple[Path, str]:
        """Build a YYYY/MM/DD/<uuid><ext> path; returns (absolute, relative)."""
        now = datetime.now(timezone.utc)
        relative_path = f"{now.strftime('%Y/%m/%d')}/{uuid.uuid4()}{extension}"
        return self.storage_root / relative_path, relative_path

    def resolve(self, relative_path: str) -> Path:
        """
        Map a stored reference to an absolute path inside the storage root.

        Raises:
            FileStorageError if the reference escapes the storage root.
        """
        full_path = (self.storage_root / relative_path).resolve()
        if not full_path.is_relative_to(self.storage_root):
            raise FileStorageError(
                message="Invalid file reference",
                context={"path": relative_path},
            )
        return full_path

    # ── Store ─────────────────────────────────────────────────────────────

    async def store_file(self, content: bytes, extension: str) -> str:
        """
        Write validated file content to disk.

        Returns: The relative reference to persist on the Note.
        Raises:  FileStorageError if directory creation or the write fails.
        """
        absolute_path, relative_path = self._generate_storage_path(extension)

        try:
            await aiofiles.os.makedirs(absolute_path.parent, exist_ok=True)
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store file at %s: %s", absolute_path, str(e))
            raise FileStorageError(
                message="Failed to save uploaded PDF. Please try again.",
                context={"path": relative_path, "os_error": str(e)},
            )

        logger.info("File stored: %s (%d bytes)", relative_path, len(content))
        return relative_path

    async def validate_and_store(
        self,
        filename: str,
        content: bytes,
        content_length: Optional[int] = None,
    ) -> str:
        """
        Complete upload pipeline: extension → size → content type → write.

        Returns: Relative reference for Note.file_path.
        """
        ext = self.validate_extension(filename)
        self.validate_size(content_length, len(content))
        self.validate_mime_type(content)
        return await self.store_file(content, ext)

    # ── Read ──────────────────────────────────────────────────────────────

    async def exists(self, relative_path: str) -> bool:
        """True if the referenced file is present in the store."""
        try:
            return await aiofiles.os.path.isfile(self.resolve(relative_path))
        except FileStorageError:
            return False

    async def stream_file(
        self, relative_path: str, chunk_size: Optional[int] = None
    ) -> AsyncIterator[bytes]:
        """
        Yield the file's bytes in chunks.

        A client that disconnects mid-transfer simply stops consuming the
        iterator; the file handle is closed by the async context manager.
        """
        size = chunk_size or settings.download_chunk_size
        async with aiofiles.open(self.resolve(relative_path), "rb") as f:
            while True:
                chunk = await f.read(size)
                if not chunk:
                    break
                yield chunk

    # ── Delete ────────────────────────────────────────────────────────────

    async def delete_file(self, relative_path: str) -> None:
        """
        Remove a stored file. A file that is already gone is not an error.

        Raises:
            FileStorageError on any other OS failure.
        """
        path = self.resolve(relative_path)
        try:
            await aiofiles.os.remove(path)
            logger.info("Deleted file: %s", relative_path)
        except FileNotFoundError:
            logger.debug("Delete: file already gone: %s", relative_path)
        except OSError as e:
            raise FileStorageError(
                message="Failed to delete stored file",
                context={"path": relative_path, "os_error": str(e)},
            )

    async def cleanup_file(self, relative_path: str) -> bool:
        """
        Best-effort removal used after note deletion and failed uploads.

        Failures are logged at WARNING and reported through the return value,
        never raised.
        """
        try:
            await self.delete_file(relative_path)
            return True
        except FileStorageError as e:
            logger.warning(
                "Failed to clean up file %s: %s | Context: %s",
                relative_path,
                e.message,
                e.context,
            )
            return False


# Storage root doesn't change at runtime; one instance serves every request
file_service = FileService()
