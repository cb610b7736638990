"""ZIP container I/O for project archives.

The rest of the package sees an archive as an ordered mapping of entry path
to raw bytes. Entries can be replaced individually without disturbing the
others; untouched entries are written back byte-for-byte.
"""

import io
import logging
import zipfile
from pathlib import Path

from slicer_copilot.core.exceptions import ArchiveFormatError, ArchiveWriteError

logger = logging.getLogger(__name__)


def read_archive_entries(data: bytes, file_name: str | None = None) -> dict[str, bytes]:
    """Read every file entry of a ZIP archive.

    Directory entries are skipped. Entry order follows the archive's central
    directory.

    Args:
        data: Raw archive bytes
        file_name: Archive name, used for error context only

    Returns:
        Mapping of entry path to raw bytes, in archive order

    Raises:
        ArchiveFormatError: If the bytes are not a readable ZIP archive
    """
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            entries = {
                info.filename: archive.read(info.filename)
                for info in archive.infolist()
                if not info.is_dir()
            }
    except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError) as e:
        raise ArchiveFormatError(
            f"Not a readable 3MF archive: {e}",
            file_name=file_name,
            reason=type(e).__name__,
        ) from e

    logger.debug(f"Read {len(entries)} entries from {file_name or '<bytes>'}")
    return entries


def write_archive_entries(entries: dict[str, bytes | str]) -> bytes:
    """Serialize an entry mapping into deflate-compressed ZIP bytes.

    String entries are encoded as UTF-8.
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for path, content in entries.items():
            payload = content.encode("utf-8") if isinstance(content, str) else content
            archive.writestr(path, payload)
    return buffer.getvalue()


def write_archive_file(entries: dict[str, bytes | str], output_path: Path) -> None:
    """Write an entry mapping to disk as a ZIP archive.

    Raises:
        ArchiveWriteError: If the archive cannot be written
    """
    try:
        data = write_archive_entries(entries)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(data)
    except OSError as e:
        raise ArchiveWriteError(
            f"Failed to write archive: {e}",
            output_path=str(output_path),
            reason=type(e).__name__,
        ) from e

    logger.info(f"Wrote {len(entries)} entries to {output_path}")
