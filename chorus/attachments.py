"""Reading local files into inline attachment parts."""

import logging
import mimetypes
from dataclasses import dataclass, field
from pathlib import Path

from .llm.protocols import InlineData, Part

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass
class AttachmentBatch:
    """Attachments that loaded, plus one message per distinct failure."""

    parts: list[Part] = field(default_factory=list)
    names: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def notification(self) -> str | None:
        """All failures joined into a single user notification."""
        if not self.errors:
            return None
        return "Some files could not be attached:\n" + "\n".join(self.errors)


def guess_mime_type(path: Path) -> str:
    mime_type, _ = mimetypes.guess_type(path.name)
    return mime_type or DEFAULT_MIME_TYPE


def load_attachments(paths: list[str | Path]) -> AttachmentBatch:
    """
    Read files into inline-data parts.

    Files that cannot be read are excluded; their errors are collected
    (deduplicated) rather than raised.

    Args:
        paths: Files to attach

    Returns:
        AttachmentBatch with the parts, their file names and any errors
    """
    batch = AttachmentBatch()

    for raw_path in paths:
        path = Path(raw_path).expanduser()
        try:
            payload = path.read_bytes()
        except OSError as e:
            message = f"{path.name}: {e.strerror or type(e).__name__}"
            logger.warning(f"Failed to read attachment {path}: {e}")
            if message not in batch.errors:
                batch.errors.append(message)
            continue

        batch.parts.append(
            Part(inline_data=InlineData.from_bytes(guess_mime_type(path), payload))
        )
        batch.names.append(path.name)

    return batch
