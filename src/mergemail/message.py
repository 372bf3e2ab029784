"""MailMergeMessage - Main public interface for message assembly.

Provides three assembly methods:
- assemble(): Strict assembly, raises on failure
- assemble_safe(): Safe assembly, returns None on failure
- assemble_with_metadata(): Full result with diagnostics
"""

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from email.header import Header
from email.message import Message
from email.utils import formatdate, make_msgid
from pathlib import Path
from typing import Any, Literal

from mergemail.addresses import MailMergeAddressCollection
from mergemail.attachments import FileAttachment, StreamAttachment, StringAttachment
from mergemail.converters import BeautifulSoupHtmlConverter, HtmlConverter
from mergemail.exceptions import Diagnostic, MailMergeMessageError
from mergemail.pipeline.addresses import AddressResolver, Mailbox
from mergemail.pipeline.attachment_parts import AttachmentPartBuilder
from mergemail.pipeline.composer import TreeComposer
from mergemail.pipeline.encoder import ContentEncoding, PartEncoder
from mergemail.pipeline.html_body import DEFAULT_CONTENT_ID_DOMAIN, HtmlBodyBuilder
from mergemail.pipeline.text_parts import TextPartBuilder
from mergemail.pipeline.validator import MessageValidator, ValidationInput
from mergemail.variables import PlaceholderResolver, RenderPolicy, ValueFormatter, as_data_context

logger = logging.getLogger(__name__)

MessagePriority = Literal["non-urgent", "normal", "urgent"]

DEFAULT_CHARACTER_ENCODING = "utf-8"
DEFAULT_TEXT_TRANSFER_ENCODING: ContentEncoding = "7bit"
DEFAULT_BINARY_TRANSFER_ENCODING: ContentEncoding = "base64"

# Headers written by as_mime_message(); replaced on every call.
_MANAGED_HEADERS = (
    "Subject",
    "From",
    "Sender",
    "To",
    "Cc",
    "Bcc",
    "Reply-To",
    "Date",
    "Message-ID",
)


def _is_ascii(text: str) -> bool:
    try:
        text.encode("ascii")
    except UnicodeEncodeError:
        return False
    return True


@dataclass(frozen=True, slots=True)
class MergedMessage:
    """A message assembled for one data context.

    Attributes:
        root: Root part of the MIME tree (body and attachments).
        subject: Resolved subject.
        from_: From mailboxes.
        sender: Sender mailbox, or None.
        to: To mailboxes.
        cc: Cc mailboxes.
        bcc: Bcc mailboxes.
        reply_to: Reply-To mailboxes.
        headers: Additional headers as (name, value) pairs, in write order.
        inline_attachments: Inline resources linked from the HTML body.
        character_encoding: Character set used for the subject header.
    """

    root: Message
    subject: str
    from_: tuple[Mailbox, ...]
    sender: Mailbox | None
    to: tuple[Mailbox, ...]
    cc: tuple[Mailbox, ...]
    bcc: tuple[Mailbox, ...]
    reply_to: tuple[Mailbox, ...]
    headers: tuple[tuple[str, str], ...]
    inline_attachments: tuple[FileAttachment, ...]
    character_encoding: str = DEFAULT_CHARACTER_ENCODING

    def get_header(self, name: str) -> str | None:
        """Value of an additional header, or None if it is not set."""
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return None

    def as_mime_message(self) -> Message:
        """Write all headers onto the root part and return it.

        The result can be passed to ``smtplib.SMTP.send_message``; Bcc is
        used for the envelope there and not transmitted. Calling this again
        replaces the headers written before.

        Returns:
            The root part with message headers.
        """
        root = self.root
        for name, _ in self.headers:
            del root[name]
        for name in _MANAGED_HEADERS:
            del root[name]

        if self.subject:
            if _is_ascii(self.subject):
                root["Subject"] = self.subject
            else:
                root["Subject"] = Header(self.subject, self.character_encoding)
        if self.from_:
            root["From"] = ", ".join(str(mailbox) for mailbox in self.from_)
        if self.sender is not None:
            root["Sender"] = str(self.sender)
        for name, mailboxes in (("To", self.to), ("Cc", self.cc), ("Bcc", self.bcc), ("Reply-To", self.reply_to)):
            if mailboxes:
                root[name] = ", ".join(str(mailbox) for mailbox in mailboxes)
        for name, value in self.headers:
            root[name] = value

        root["Date"] = formatdate(localtime=True)
        domain = self.from_[0].address.rpartition("@")[2] if self.from_ else None
        root["Message-ID"] = make_msgid(domain=domain)
        return root


@dataclass(frozen=True, slots=True)
class AssemblyResult:
    """Full assembly result with diagnostics.

    Attributes:
        message: The assembled message, or None if assembly failed.
        success: Whether assembly succeeded.
        error: Aggregate error if assembly failed, None otherwise. Carries
            the partially built message.
        diagnostics: Every problem found across all stages.
    """

    message: MergedMessage | None
    success: bool
    error: MailMergeMessageError | None
    diagnostics: tuple[Diagnostic, ...]


class MailMergeMessage:
    """A message template merged against data to produce email messages.

    Subject, texts, address entries, attachment file names and display names
    may contain placeholders (``{{Name}}``). Every call to assemble() resolves
    them against the given data and builds a fresh MIME tree.

    The assembly pipeline:
    1. Resolve the subject
    2. Resolve addresses and route them to header fields
    3. Build the plain/HTML body subtree with inline resources
    4. Build attachment parts (files, streams, strings)
    5. Compose the final tree
    6. Validate; all problems of all stages are reported together

    Example:
        message = MailMergeMessage("Hello {{Name}}", "Dear {{Name}}, ...")
        message.addresses.add("From", "news@example.com", "Newsletter")
        message.addresses.add("To", "{{Email}}", "{{Name}}")

        # Strict assembly (raises MailMergeMessageError on failure)
        merged = message.assemble({"Name": "Ann", "Email": "ann@example.com"})
        smtp.send_message(merged.as_mime_message())

        # Safe assembly (returns None on failure)
        merged = message.assemble_safe(row)

        # Full diagnostics
        result = message.assemble_with_metadata(row)
    """

    def __init__(
        self,
        subject: str = "",
        plain_text: str = "",
        html_text: str = "",
        file_attachments: Iterable[FileAttachment] | None = None,
        *,
        character_encoding: str = DEFAULT_CHARACTER_ENCODING,
        text_transfer_encoding: ContentEncoding = DEFAULT_TEXT_TRANSFER_ENCODING,
        binary_transfer_encoding: ContentEncoding = DEFAULT_BINARY_TRANSFER_ENCODING,
        file_base_dir: str | Path | None = None,
        culture: str | None = None,
        ignore_empty_recipient_addr: bool = True,
        show_null_as: str = "",
        show_empty_as: str = "",
        escape_html_values: bool = False,
        value_formatter: ValueFormatter | None = None,
        x_mailer: str | None = None,
        priority: MessagePriority = "normal",
        content_id_domain: str = DEFAULT_CONTENT_ID_DOMAIN,
    ) -> None:
        """Initialize the message template.

        Args:
            subject: Subject template.
            plain_text: Plain text template, may be empty.
            html_text: HTML template, may be empty.
            file_attachments: Files attached to every message.
            character_encoding: Character set for all text content.
            text_transfer_encoding: Transfer encoding for text parts.
            binary_transfer_encoding: Transfer encoding for binary parts.
            file_base_dir: Directory relative file names, inline resources and
                included files are resolved against. Defaults to the current
                working directory.
            culture: Locale name handed to the value formatter.
            ignore_empty_recipient_addr: If True, addresses resolving to an
                empty value are skipped; if False they are reported as bad.
            show_null_as: Text written for None and unresolved values.
            show_empty_as: Text written for empty string values.
            escape_html_values: If True, values merged into the HTML text are
                HTML-escaped.
            value_formatter: Formats looked-up values; receives the value and
                the culture.
            x_mailer: Value of the X-Mailer header, if any.
            priority: Message priority; a Priority header is written unless
                "normal".
            content_id_domain: Domain part of generated inline Content-IDs.
        """
        self.subject = subject
        self.plain_text = plain_text
        self.html_text = html_text
        self.character_encoding = character_encoding
        self.text_transfer_encoding: ContentEncoding = text_transfer_encoding
        self.binary_transfer_encoding: ContentEncoding = binary_transfer_encoding
        self.file_base_dir = Path(file_base_dir) if file_base_dir is not None else Path.cwd()
        self.culture = culture
        self.ignore_empty_recipient_addr = ignore_empty_recipient_addr
        self.show_null_as = show_null_as
        self.show_empty_as = show_empty_as
        self.escape_html_values = escape_html_values
        self.value_formatter = value_formatter
        self.x_mailer = x_mailer
        self.priority: MessagePriority = priority
        self.content_id_domain = content_id_domain

        self.addresses = MailMergeAddressCollection()
        self.file_attachments: list[FileAttachment] = list(file_attachments or ())
        self.stream_attachments: list[StreamAttachment] = []
        self.string_attachments: list[StringAttachment] = []
        self.headers: list[tuple[str, str]] = []

        self._external_inline: list[FileAttachment] = []
        # Single-flight per template; independent templates assemble in parallel.
        self._lock = threading.Lock()

    @property
    def external_inline_attachments(self) -> tuple[FileAttachment, ...]:
        """Inline attachments registered with add_external_inline_attachment()."""
        return tuple(self._external_inline)

    def add_external_inline_attachment(self, attachment: FileAttachment) -> None:
        """Register a file as inline resource of the HTML body.

        Local images referenced by the HTML are linked automatically; this
        adds resources the HTML references by Content-ID. The attachment's
        display name is used as Content-ID (``<img src="cid:logo">``).
        """
        self._external_inline.append(attachment)

    def clear_external_inline_attachments(self) -> None:
        """Remove all inline attachments registered with add_external_inline_attachment()."""
        self._external_inline.clear()

    def convert_html_to_plain_text(self, converter: HtmlConverter | None = None) -> str:
        """Convert the HTML template into plain text.

        Args:
            converter: Converter to use. Defaults to BeautifulSoupHtmlConverter.

        Returns:
            Plain text representation of html_text.
        """
        converter = converter or BeautifulSoupHtmlConverter()
        return converter.to_plain_text(self.html_text)

    def assemble(self, data: Any = None) -> MergedMessage:
        """Assemble the message for one data item.

        Args:
            data: A mapping, an object, a DataContext, or None.

        Returns:
            The assembled message.

        Raises:
            MailMergeMessageError: If any stage reported a problem. The error
                lists every diagnostic and carries the partial message.
            ValueError: If an attachment has an invalid MIME type.
            jinja2.TemplateSyntaxError: If a text field is not a valid template.
        """
        result = self.assemble_with_metadata(data)

        if result.error is not None:
            raise result.error

        if result.message is None:
            raise MailMergeMessageError(message="No message assembled")

        return result.message

    def assemble_safe(self, data: Any = None) -> MergedMessage | None:
        """Assemble the message, returning None on any failure.

        Args:
            data: A mapping, an object, a DataContext, or None.

        Returns:
            The assembled message, or None if assembly failed.
        """
        try:
            result = self.assemble_with_metadata(data)
        except Exception:
            logger.exception("Unexpected error during message assembly")
            return None
        if result.error is not None:
            logger.warning("Message assembly failed: %s", result.error)
        return result.message

    def assemble_with_metadata(self, data: Any = None) -> AssemblyResult:
        """Assemble the message with full diagnostics.

        Validation problems are returned, not raised. Failures that cannot
        be collected (invalid MIME types, template syntax errors, unreadable
        streams) still propagate.

        Args:
            data: A mapping, an object, a DataContext, or None.

        Returns:
            AssemblyResult with the message or the aggregate error.
        """
        with self._lock:
            return self._assemble(data)

    def _assemble(self, data: Any) -> AssemblyResult:
        context = as_data_context(data, self.value_formatter)
        policy = RenderPolicy(show_null_as=self.show_null_as, show_empty_as=self.show_empty_as)

        encoder = PartEncoder(
            character_encoding=self.character_encoding,
            text_transfer_encoding=self.text_transfer_encoding,
            binary_transfer_encoding=self.binary_transfer_encoding,
        )
        resolver = PlaceholderResolver(self.file_base_dir, self.culture)
        html_resolver = (
            PlaceholderResolver(self.file_base_dir, self.culture, autoescape=True)
            if self.escape_html_values
            else resolver
        )

        # Step 1: Subject
        subject = resolver.resolve(self.subject, context, policy)

        # Step 2: Addresses
        addresses = AddressResolver(
            resolver,
            ignore_empty_recipients=self.ignore_empty_recipient_addr,
        ).resolve(self.addresses, context)

        # Step 3: Plain and HTML text
        text_parts = TextPartBuilder(
            encoder,
            resolver,
            HtmlBodyBuilder(encoder, self.file_base_dir, self.content_id_domain),
            html_resolver,
        ).build(
            self.plain_text,
            self.html_text,
            self.subject,
            context,
            policy,
            self._external_inline,
        )

        # Step 4: Attachments
        attachment_parts = AttachmentPartBuilder(encoder, resolver, self.file_base_dir).build(
            self.file_attachments,
            self.stream_attachments,
            self.string_attachments,
            context,
            policy,
        )

        # User and attribute headers replace address-derived headers of the same name.
        extra_headers = self._attribute_headers()
        for name, _ in extra_headers:
            addresses.remove_header(name)

        # Step 5: Compose
        root = TreeComposer(encoder).compose(text_parts.part, attachment_parts.parts)

        merged = MergedMessage(
            root=root,
            subject=subject.text,
            from_=tuple(addresses.from_),
            sender=addresses.sender,
            to=tuple(addresses.to),
            cc=tuple(addresses.cc),
            bcc=tuple(addresses.bcc),
            reply_to=tuple(addresses.reply_to),
            headers=tuple(addresses.headers) + extra_headers,
            inline_attachments=text_parts.inline_attachments,
            character_encoding=self.character_encoding,
        )

        # Step 6: Validate
        validation = MessageValidator().validate(
            ValidationInput(
                recipient_count=addresses.recipient_count,
                from_count=len(addresses.from_),
                has_content=self._has_content(),
                bad_addresses=tuple(addresses.bad_addresses),
                bad_inline_files=(
                    *subject.missing_files,
                    *addresses.bad_inline_files,
                    *text_parts.bad_inline_files,
                    *attachment_parts.bad_inline_files,
                ),
                bad_attachment_files=attachment_parts.bad_attachment_files,
                bad_variables=(
                    *subject.missing_names,
                    *addresses.bad_variables,
                    *text_parts.bad_variables,
                    *attachment_parts.bad_variables,
                ),
            )
        )

        if not validation.success:
            error = MailMergeMessageError(
                message="Building of message failed with one or more errors.",
                diagnostics=validation.diagnostics,
                partial_message=merged,
            )
            logger.warning("%s", error)
            return AssemblyResult(
                message=None,
                success=False,
                error=error,
                diagnostics=validation.diagnostics,
            )

        return AssemblyResult(message=merged, success=True, error=None, diagnostics=())

    def _has_content(self) -> bool:
        return bool(
            self.subject
            or self.plain_text
            or self.html_text
            or self.file_attachments
            or self.stream_attachments
            or self.string_attachments
            or self._external_inline
        )

    def _attribute_headers(self) -> tuple[tuple[str, str], ...]:
        headers: list[tuple[str, str]] = []
        if self.x_mailer:
            headers.append(("X-Mailer", self.x_mailer))
        if self.priority != "normal":
            headers.append(("Priority", self.priority))
        headers.extend(self.headers)
        return tuple(headers)
