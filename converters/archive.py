import io
import logging
import zipfile
from typing import Iterable, Tuple

from converters.errors import EncodingError

logger = logging.getLogger(__name__)


def build(entries: Iterable[Tuple[str, bytes]]) -> bytes:
    """
    Bundle files into a zip archive.

    Each entry is stored at the archive root under its own name, in the
    order given.

    Args:
        entries: ``(filename, content)`` pairs

    Returns:
        bytes: Zip file content

    Raises:
        EncodingError: If the archive cannot be written
    """
    buffer = io.BytesIO()
    count = 0
    try:
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
            for filename, content in entries:
                zf.writestr(filename, content)
                count += 1
    except (zipfile.BadZipFile, OSError, ValueError) as e:
        logger.error("Failed to build zip archive", extra={"error": str(e)})
        raise EncodingError(f"Failed to build zip archive: {str(e)}") from e

    logger.info(f"Built zip archive with {count} entries", extra={"entry_count": count})
    return buffer.getvalue()
