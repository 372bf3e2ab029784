"""Leaf part encoder.

Turns text or binary content into a single non-multipart MIME part with the
requested character set and transfer encoding:
- Text types use the text transfer encoding and the character encoding
- All other types use the binary transfer encoding
- "7bit" and "8bit" are chosen by content: 7bit text containing non-ASCII
  characters is sent as 8bit
"""

import logging
from email import encoders
from email.charset import BASE64, QP, Charset
from email.message import Message
from email.mime.base import MIMEBase
from email.mime.text import MIMEText
from pathlib import Path
from typing import Literal

logger = logging.getLogger(__name__)

ContentEncoding = Literal["7bit", "8bit", "quoted-printable", "base64"]

CONTENT_ENCODINGS: tuple[ContentEncoding, ...] = ("7bit", "8bit", "quoted-printable", "base64")

Disposition = Literal["attachment", "inline"]


def split_mime_type(mime_type: str) -> tuple[str, str]:
    """Split ``type/subtype`` into its lower-cased parts.

    Raises:
        ValueError: If the string is not a valid MIME type.
    """
    maintype, sep, subtype = mime_type.strip().partition("/")
    if not sep or not maintype or not subtype or "/" in subtype:
        raise ValueError(f"Invalid MIME type: {mime_type!r}")
    return maintype.lower(), subtype.lower()


def _header_param(value: str, charset: str) -> str | tuple[str, str, str]:
    """Header parameter value, RFC 2231 encoded when not ASCII."""
    try:
        value.encode("ascii")
    except UnicodeEncodeError:
        return (charset, "", value)
    return value


class PartEncoder:
    """Encodes content into leaf MIME parts.

    Example:
        encoder = PartEncoder(character_encoding="utf-8")
        body = encoder.encode_text("Hello Ann")
        logo = encoder.encode_file(Path("logo.png"), "logo.png", "image/png")
    """

    def __init__(
        self,
        character_encoding: str = "utf-8",
        text_transfer_encoding: ContentEncoding = "7bit",
        binary_transfer_encoding: ContentEncoding = "base64",
    ) -> None:
        """Initialize the encoder.

        Args:
            character_encoding: Character set for all text content.
            text_transfer_encoding: Transfer encoding for text parts.
            binary_transfer_encoding: Transfer encoding for binary parts.

        Raises:
            ValueError: If a transfer encoding is unknown.
        """
        for encoding in (text_transfer_encoding, binary_transfer_encoding):
            if encoding not in CONTENT_ENCODINGS:
                raise ValueError(f"Unknown transfer encoding: {encoding!r}")
        self._character_encoding = character_encoding
        self._text_transfer_encoding = text_transfer_encoding
        self._binary_transfer_encoding = binary_transfer_encoding

    @property
    def character_encoding(self) -> str:
        return self._character_encoding

    def encode_text(self, text: str, subtype: str = "plain") -> Message:
        """Encode message body text as a ``text/<subtype>`` leaf.

        Args:
            text: The text content.
            subtype: Text subtype, e.g. "plain" or "html".

        Returns:
            A leaf part without Content-Disposition.
        """
        return MIMEText(text, subtype, self._text_charset())

    def encode_content(
        self,
        content: str | bytes,
        display_name: str,
        mime_type: str,
        *,
        disposition: Disposition = "attachment",
        content_id: str | None = None,
    ) -> Message:
        """Encode in-memory content as an attachment leaf.

        Args:
            content: Text or bytes. Text is encoded with the character encoding.
            display_name: File name shown to the recipient.
            mime_type: MIME type of the content.
            disposition: "attachment" or "inline".
            content_id: Content-ID (without angle brackets) for inline parts.

        Returns:
            A leaf part with Content-Disposition set.

        Raises:
            ValueError: If the MIME type is invalid.
            UnicodeEncodeError: If text cannot be encoded with the character
                encoding.
        """
        maintype, subtype = split_mime_type(mime_type)

        part: Message | None = None
        if maintype == "text":
            text = content if isinstance(content, str) else self._decode_text(content)
            if text is not None:
                part = MIMEText(text, subtype, self._text_charset())

        if part is None:
            data = content.encode(self._character_encoding) if isinstance(content, str) else content
            part = self._binary_part(maintype, subtype, data)

        if display_name:
            part.set_param("name", display_name, charset=self._param_charset(display_name))
            part.add_header(
                "Content-Disposition",
                disposition,
                filename=_header_param(display_name, self._character_encoding),
            )
        else:
            part.add_header("Content-Disposition", disposition)

        if content_id:
            part.add_header("Content-ID", f"<{content_id}>")

        return part

    def encode_file(
        self,
        path: Path,
        display_name: str,
        mime_type: str,
        *,
        disposition: Disposition = "attachment",
        content_id: str | None = None,
    ) -> Message:
        """Read a file and encode it as an attachment leaf.

        Raises:
            OSError: If the file is missing or not readable.
            ValueError: If the MIME type is invalid.
        """
        data = Path(path).read_bytes()
        logger.debug("Read %d bytes from %s", len(data), path)
        return self.encode_content(
            data,
            display_name,
            mime_type,
            disposition=disposition,
            content_id=content_id,
        )

    def _text_charset(self) -> Charset:
        charset = Charset(self._character_encoding)
        charset.body_encoding = self._body_encoding(self._text_transfer_encoding)
        return charset

    @staticmethod
    def _body_encoding(transfer_encoding: ContentEncoding) -> int | None:
        if transfer_encoding == "quoted-printable":
            return QP
        if transfer_encoding == "base64":
            return BASE64
        return None

    def _param_charset(self, value: str) -> str | None:
        try:
            value.encode("ascii")
        except UnicodeEncodeError:
            return self._character_encoding
        return None

    def _decode_text(self, data: bytes) -> str | None:
        try:
            return data.decode(self._character_encoding)
        except UnicodeDecodeError:
            logger.debug("Text content is not %s; encoding as binary", self._character_encoding)
            return None

    def _binary_part(self, maintype: str, subtype: str, data: bytes) -> Message:
        part = MIMEBase(maintype, subtype)
        encoding = self._binary_transfer_encoding
        if encoding == "base64":
            part.set_payload(data)
            encoders.encode_base64(part)
        elif encoding == "quoted-printable":
            part.set_payload(data)
            encoders.encode_quopri(part)
        else:
            part.set_payload(data.decode("ascii", "surrogateescape"))
            encoders.encode_7or8bit(part)
        return part
