"""Text part builder for the message body.

Builds the body subtree from the template's plain and HTML text:
- Neither text: no body (None)
- Plain only: a single text/plain leaf
- HTML only: the HTML part (leaf, or multipart/related with inline resources)
- Both: multipart/alternative with the plain leaf first, then the HTML part
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from email.message import Message
from email.mime.multipart import MIMEMultipart

from mergemail.attachments import FileAttachment
from mergemail.pipeline.encoder import PartEncoder
from mergemail.pipeline.html_body import HtmlBodyBuilder
from mergemail.variables import DataContext, PlaceholderResolver, RenderPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TextPartResult:
    """Result of building the body subtree.

    Attributes:
        part: Root of the body subtree, or None when there is no text at all.
        inline_attachments: Inline resources linked from the HTML text.
        bad_inline_files: Inline resources or included files that could not
            be read.
        bad_variables: Placeholder names that could not be resolved.
    """

    part: Message | None
    inline_attachments: tuple[FileAttachment, ...]
    bad_inline_files: tuple[str, ...]
    bad_variables: tuple[str, ...]


class TextPartBuilder:
    """Builds the plain/HTML body subtree of a message."""

    def __init__(
        self,
        encoder: PartEncoder,
        resolver: PlaceholderResolver,
        html_builder: HtmlBodyBuilder,
        html_resolver: PlaceholderResolver | None = None,
    ) -> None:
        """Initialize the builder.

        Args:
            encoder: Leaf part encoder.
            resolver: Placeholder resolver for plain text and the subject.
            html_builder: Builder for the HTML part and its inline resources.
            html_resolver: Placeholder resolver for HTML text, e.g. one that
                escapes values. Defaults to the plain text resolver.
        """
        self._encoder = encoder
        self._resolver = resolver
        self._html_resolver = html_resolver or resolver
        self._html_builder = html_builder

    def build(
        self,
        plain_text: str,
        html_text: str,
        subject: str,
        data: DataContext,
        policy: RenderPolicy | None = None,
        external_inline: Iterable[FileAttachment] = (),
    ) -> TextPartResult:
        """Resolve placeholders and build the body subtree.

        Args:
            plain_text: Plain text template, may be empty.
            html_text: HTML template, may be empty.
            subject: Subject template, used for the HTML <title>.
            data: Data context to resolve placeholders against.
            policy: Rendering of None/empty/unresolved values.
            external_inline: Pre-registered inline attachments for the HTML.

        Returns:
            TextPartResult with the subtree and collected diagnostics.
        """
        bad_variables: list[str] = []
        bad_inline_files: list[str] = []
        inline_attachments: tuple[FileAttachment, ...] = ()

        plain_part: Message | None = None
        if plain_text:
            resolved = self._resolver.resolve(plain_text, data, policy)
            bad_variables.extend(resolved.missing_names)
            bad_inline_files.extend(resolved.missing_files)
            plain_part = self._encoder.encode_text(resolved.text, "plain")

        html_part: Message | None = None
        if html_text:
            resolved_html = self._html_resolver.resolve(html_text, data, policy)
            bad_variables.extend(resolved_html.missing_names)
            bad_inline_files.extend(resolved_html.missing_files)

            resolved_subject = self._resolver.resolve(subject, data, policy)
            bad_variables.extend(resolved_subject.missing_names)
            bad_inline_files.extend(resolved_subject.missing_files)

            html_body = self._html_builder.build(
                resolved_html.text,
                resolved_subject.text,
                external_inline,
            )
            html_part = html_body.part
            inline_attachments = html_body.inline_attachments
            bad_inline_files.extend(html_body.bad_inline_files)

        if plain_part is not None and html_part is not None:
            # Clients without HTML support show the first alternative.
            alternative = MIMEMultipart("alternative")
            alternative.attach(plain_part)
            alternative.attach(html_part)
            part: Message | None = alternative
        else:
            part = plain_part if plain_part is not None else html_part

        if part is None:
            logger.debug("No plain or HTML text; body subtree is empty")

        return TextPartResult(
            part=part,
            inline_attachments=inline_attachments,
            bad_inline_files=tuple(dict.fromkeys(bad_inline_files)),
            bad_variables=tuple(dict.fromkeys(bad_variables)),
        )
