"""Attachment descriptors of a mail merge message.

File names and display names may contain placeholders; they are resolved for
every merged message. Attachments are added to the message in a fixed order:
file attachments, then stream attachments, then string attachments.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

DEFAULT_MIME_TYPE = "application/octet-stream"


def make_full_path(base_dir: str | Path, filename: str | Path) -> Path:
    """Join a relative file name to the base directory.

    The result is always absolute; absolute inputs are returned unchanged.
    """
    path = Path(filename).expanduser()
    if path.is_absolute():
        return path
    return (Path(base_dir) / path).absolute()


@dataclass(frozen=True, slots=True)
class FileAttachment:
    """A file read from disk when the message is assembled.

    Attributes:
        filename: Path of the file, absolute or relative to the message base
            directory. May contain placeholders.
        display_name: Name shown to the recipient. Defaults to the file name.
        mime_type: MIME type of the content.
    """

    filename: str | Path
    display_name: str = ""
    mime_type: str = DEFAULT_MIME_TYPE

    @property
    def effective_display_name(self) -> str:
        """Display name, falling back to the last path component."""
        return self.display_name or Path(self.filename).name


@dataclass(frozen=True, slots=True)
class StreamAttachment:
    """Content read from an open binary stream.

    Attributes:
        stream: Readable binary stream. Rewound before reading when seekable.
        display_name: Name shown to the recipient. May contain placeholders.
        mime_type: MIME type of the content.
    """

    stream: BinaryIO
    display_name: str
    mime_type: str = DEFAULT_MIME_TYPE


@dataclass(frozen=True, slots=True)
class StringAttachment:
    """Literal content attached as a file.

    Attributes:
        content: Text (encoded with the message character encoding) or bytes.
        display_name: Name shown to the recipient. May contain placeholders.
        mime_type: MIME type of the content.
    """

    content: str | bytes
    display_name: str
    mime_type: str = "text/plain"
