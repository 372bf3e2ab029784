"""HTML body part with inline resources.

Local images referenced by the HTML (``<img src="images/logo.png">``) are
attached as linked resources and the references rewritten to ``cid:`` URLs,
so the message renders without access to the local file system. Remote
(http, https), embedded (data) and already linked (cid) sources are left
untouched.
"""

import hashlib
import logging
import mimetypes
from collections.abc import Iterable
from dataclasses import dataclass
from email.message import Message
from email.mime.multipart import MIMEMultipart
from pathlib import Path
from urllib.parse import unquote, urlparse

from bs4 import BeautifulSoup

from mergemail.attachments import DEFAULT_MIME_TYPE, FileAttachment, make_full_path
from mergemail.pipeline.encoder import PartEncoder

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_ID_DOMAIN = "mergemail"

_EXTERNAL_SCHEMES = frozenset({"http", "https", "data", "cid", "mailto", "ftp"})


@dataclass(frozen=True, slots=True)
class HtmlBody:
    """Result of building the HTML body part.

    Attributes:
        part: HTML leaf, or a multipart/related container when inline
            resources exist.
        html: The final HTML text (with rewritten resource references).
        inline_attachments: Inline resources that were attached.
        bad_inline_files: Paths of referenced resources that could not be read.
    """

    part: Message
    html: str
    inline_attachments: tuple[FileAttachment, ...]
    bad_inline_files: tuple[str, ...]


def content_id_for(path: Path, domain: str = DEFAULT_CONTENT_ID_DOMAIN) -> str:
    """Stable Content-ID for a resource path."""
    digest = hashlib.sha1(str(path).encode("utf-8")).hexdigest()[:16]
    return f"{digest}@{domain}"


def local_resource_path(src: str, base_dir: str | Path) -> Path | None:
    """Map an HTML resource reference to a local file path.

    Returns:
        The absolute path, or None for remote, embedded or linked sources.
    """
    src = src.strip()
    if not src:
        return None
    parsed = urlparse(src)
    scheme = parsed.scheme.lower()
    # Protocol-relative sources (//host/path) are remote.
    if parsed.netloc and scheme != "file":
        return None
    if scheme == "file":
        return Path(unquote(parsed.path))
    # Single letters are drive names of Windows paths, not schemes.
    if scheme in _EXTERNAL_SCHEMES or len(scheme) > 1:
        return None
    return make_full_path(base_dir, unquote(src))


class HtmlBodyBuilder:
    """Builds the HTML body part and collects its inline resources."""

    def __init__(
        self,
        encoder: PartEncoder,
        base_dir: str | Path,
        content_id_domain: str = DEFAULT_CONTENT_ID_DOMAIN,
    ) -> None:
        self._encoder = encoder
        self._base_dir = Path(base_dir)
        self._content_id_domain = content_id_domain

    def build(
        self,
        html: str,
        subject: str = "",
        external_inline: Iterable[FileAttachment] = (),
    ) -> HtmlBody:
        """Build the HTML part.

        Args:
            html: Resolved HTML text.
            subject: Resolved subject, written into an existing <title>.
            external_inline: Pre-registered inline attachments. Their display
                name is used as Content-ID.

        Returns:
            HtmlBody with the part and inline resource bookkeeping.
        """
        soup = BeautifulSoup(html, "html.parser")
        modified = False

        if soup.title is not None and subject:
            soup.title.string = subject
            modified = True

        inline_parts: list[Message] = []
        inline_attachments: list[FileAttachment] = []
        bad_inline_files: list[str] = []
        linked: dict[Path, str] = {}

        for img in soup.find_all("img", src=True):
            path = local_resource_path(str(img["src"]), self._base_dir)
            if path is None:
                continue

            if path not in linked:
                content_id = content_id_for(path, self._content_id_domain)
                mime_type = mimetypes.guess_type(path.name)[0] or DEFAULT_MIME_TYPE
                try:
                    part = self._encoder.encode_file(
                        path,
                        path.name,
                        mime_type,
                        disposition="inline",
                        content_id=content_id,
                    )
                except OSError as exc:
                    logger.warning("Inline resource not readable: %s (%s)", path, exc)
                    if str(path) not in bad_inline_files:
                        bad_inline_files.append(str(path))
                    continue
                linked[path] = content_id
                inline_parts.append(part)
                inline_attachments.append(FileAttachment(path, path.name, mime_type))

            img["src"] = f"cid:{linked[path]}"
            modified = True

        for attachment in external_inline:
            path = make_full_path(self._base_dir, attachment.filename)
            content_id = attachment.display_name or path.name
            try:
                part = self._encoder.encode_file(
                    path,
                    path.name,
                    attachment.mime_type,
                    disposition="inline",
                    content_id=content_id,
                )
            except OSError as exc:
                logger.warning("External inline resource not readable: %s (%s)", path, exc)
                bad_inline_files.append(str(path))
                continue
            inline_parts.append(part)
            inline_attachments.append(FileAttachment(path, content_id, attachment.mime_type))

        final_html = str(soup) if modified else html
        html_part = self._encoder.encode_text(final_html, "html")

        if inline_parts:
            related = MIMEMultipart("related", type="text/html")
            related.attach(html_part)
            for part in inline_parts:
                related.attach(part)
            body: Message = related
        else:
            body = html_part

        return HtmlBody(
            part=body,
            html=final_html,
            inline_attachments=tuple(inline_attachments),
            bad_inline_files=tuple(bad_inline_files),
        )
