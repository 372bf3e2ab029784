"""Attachment part builder.

Turns the three attachment collections into an ordered list of leaf parts:
file attachments first, then stream attachments, then string attachments,
each in input order. Missing or unreadable files are collected and skipped;
any other encoding failure propagates.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from email.message import Message
from pathlib import Path

from mergemail.attachments import FileAttachment, StreamAttachment, StringAttachment, make_full_path
from mergemail.pipeline.encoder import PartEncoder
from mergemail.variables import DataContext, PlaceholderResolver, RenderPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AttachmentPartResult:
    """Result of building attachment parts.

    Attributes:
        parts: Leaf parts in message order.
        bad_attachment_files: Resolved paths of files that could not be read.
        bad_inline_files: Files referenced by placeholders that could not be
            read.
        bad_variables: Placeholder names that could not be resolved.
    """

    parts: tuple[Message, ...]
    bad_attachment_files: tuple[str, ...]
    bad_inline_files: tuple[str, ...]
    bad_variables: tuple[str, ...]


class AttachmentPartBuilder:
    """Builds the attachment leaves of a message."""

    def __init__(
        self,
        encoder: PartEncoder,
        resolver: PlaceholderResolver,
        base_dir: str | Path,
    ) -> None:
        self._encoder = encoder
        self._resolver = resolver
        self._base_dir = Path(base_dir)

    def build(
        self,
        file_attachments: Sequence[FileAttachment],
        stream_attachments: Sequence[StreamAttachment],
        string_attachments: Sequence[StringAttachment],
        data: DataContext,
        policy: RenderPolicy | None = None,
    ) -> AttachmentPartResult:
        """Build attachment leaves in the fixed category order.

        Args:
            file_attachments: Files read from disk.
            stream_attachments: Open binary streams.
            string_attachments: Literal contents.
            data: Data context to resolve placeholders against.
            policy: Rendering of None/empty/unresolved values.

        Returns:
            AttachmentPartResult with the leaves and collected diagnostics.

        Raises:
            ValueError: If an attachment has an invalid MIME type.
        """
        parts: list[Message] = []
        bad_files: list[str] = []
        bad_variables: list[str] = []
        bad_inline_files: list[str] = []

        def resolve(text: str) -> str:
            resolved = self._resolver.resolve(text, data, policy)
            bad_variables.extend(resolved.missing_names)
            bad_inline_files.extend(resolved.missing_files)
            return resolved.text

        for attachment in file_attachments:
            path = make_full_path(self._base_dir, resolve(str(attachment.filename)))
            display_name = resolve(attachment.display_name) or path.name
            try:
                parts.append(self._encoder.encode_file(path, display_name, attachment.mime_type))
            except OSError as exc:
                logger.warning("Attachment file missing or not readable: %s (%s)", path, exc)
                bad_files.append(str(path))

        for attachment in stream_attachments:
            display_name = resolve(attachment.display_name)
            parts.append(
                self._encoder.encode_content(
                    self._read_stream(attachment),
                    display_name,
                    attachment.mime_type,
                )
            )

        for attachment in string_attachments:
            display_name = resolve(attachment.display_name)
            parts.append(
                self._encoder.encode_content(attachment.content, display_name, attachment.mime_type)
            )

        logger.debug("Built %d attachment parts (%d bad files)", len(parts), len(bad_files))

        return AttachmentPartResult(
            parts=tuple(parts),
            bad_attachment_files=tuple(dict.fromkeys(bad_files)),
            bad_inline_files=tuple(dict.fromkeys(bad_inline_files)),
            bad_variables=tuple(dict.fromkeys(bad_variables)),
        )

    @staticmethod
    def _read_stream(attachment: StreamAttachment) -> bytes:
        stream = attachment.stream
        if stream.seekable():
            stream.seek(0)
        return stream.read()
