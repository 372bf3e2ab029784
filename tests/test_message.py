"""Tests for MailMergeMessage end-to-end assembly."""

import io
from concurrent.futures import ThreadPoolExecutor
from email.message import Message
from pathlib import Path

import pytest

from mergemail import (
    AssemblyResult,
    FileAttachment,
    Mailbox,
    MailMergeMessage,
    MailMergeMessageError,
    MergedMessage,
    StreamAttachment,
    StringAttachment,
)


def _make_message(tmp_path: Path, **kwargs: object) -> MailMergeMessage:
    """Message with a From and a To address, rooted at tmp_path."""
    message = MailMergeMessage(file_base_dir=tmp_path, **kwargs)  # type: ignore[arg-type]
    message.addresses.add("From", "news@example.com", "Newsletter")
    message.addresses.add("To", "{{Email}}", "{{Name}}")
    return message


def _data(name: str = "Ann") -> dict[str, str]:
    return {"Name": name, "Email": f"{name.lower()}@example.com"}


def _text(part: Message) -> str:
    return part.get_payload(decode=True).decode(part.get_content_charset() or "ascii")


def _outline(part: Message) -> list[tuple[str, str | None, bytes | None]]:
    """Structure and leaf content of a tree, boundaries excluded."""
    return [
        (
            node.get_content_type(),
            node.get_filename(),
            None if node.is_multipart() else node.get_payload(decode=True),
        )
        for node in part.walk()
    ]


class TestAssemble:
    """Tests for MailMergeMessage.assemble."""

    def test_plain_text_placeholder(self, tmp_path: Path) -> None:
        """A plain template gives a single leaf with the resolved text."""
        message = _make_message(tmp_path, subject="Hi {{Name}}", plain_text="Hello {{Name}}")

        merged = message.assemble(_data())

        assert isinstance(merged, MergedMessage)
        assert not merged.root.is_multipart()
        assert merged.root.get_content_type() == "text/plain"
        assert _text(merged.root) == "Hello Ann"
        assert merged.subject == "Hi Ann"
        assert merged.to == (Mailbox("ann@example.com", "Ann"),)
        assert merged.from_ == (Mailbox("news@example.com", "Newsletter"),)

    def test_plain_and_html(self, tmp_path: Path) -> None:
        message = _make_message(tmp_path, plain_text="Hello", html_text="<p>Hello</p>")

        root = message.assemble(_data()).root

        assert root.get_content_type() == "multipart/alternative"
        assert [child.get_content_type() for child in root.get_payload()] == ["text/plain", "text/html"]

    def test_attachments_order(self, tmp_path: Path) -> None:
        """Body first, then file, stream and string attachments."""
        (tmp_path / "report.pdf").write_bytes(b"%PDF-1.4")
        message = _make_message(
            tmp_path,
            plain_text="See attached.",
            file_attachments=[FileAttachment("report.pdf", mime_type="application/pdf")],
        )
        message.string_attachments.append(StringAttachment("notes for {{Name}}", "notes.txt"))
        message.stream_attachments.append(StreamAttachment(io.BytesIO(b"raw"), "raw.bin"))

        root = message.assemble(_data()).root

        assert root.get_content_type() == "multipart/mixed"
        children = root.get_payload()
        assert [child.get_content_type() for child in children] == [
            "text/plain",
            "application/pdf",
            "application/octet-stream",
            "text/plain",
        ]
        assert [child.get_filename() for child in children[1:]] == ["report.pdf", "raw.bin", "notes.txt"]
        assert _text(children[3]) == "notes for {{Name}}"

    def test_missing_attachment_file(self, tmp_path: Path) -> None:
        """A missing file is reported by absolute path; others are still built."""
        message = _make_message(tmp_path, plain_text="Hello", file_attachments=[FileAttachment("missing.pdf")])
        message.string_attachments.append(StringAttachment("text", "notes.txt"))

        with pytest.raises(MailMergeMessageError) as exc_info:
            message.assemble(_data())

        error = exc_info.value
        assert error.kinds == ("BadAttachmentFile",)
        assert error.diagnostics[0].values == (str(tmp_path / "missing.pdf"),)
        assert error.partial_message is not None
        children = error.partial_message.root.get_payload()
        assert [child.get_filename() for child in children[1:]] == ["notes.txt"]

    def test_test_address_override(self, tmp_path: Path) -> None:
        message = MailMergeMessage(plain_text="Hello", file_base_dir=tmp_path)
        message.addresses.add("From", "news@example.com")
        message.addresses.add("To", "alice@real.example", "Alice")
        message.addresses.add("TestAddress", "test@example.com")

        merged = message.assemble()

        assert merged.to == (Mailbox("test@example.com", "Alice"),)

    def test_confirm_reading_headers_not_duplicated(self, tmp_path: Path) -> None:
        message = _make_message(tmp_path, plain_text="Hello")
        message.addresses.add("ConfirmReadingTo", "x@y.example")

        for _ in range(2):
            mime = message.assemble(_data()).as_mime_message()
            assert mime.get_all("X-Confirm-Reading-To") == ["x@y.example"]
            assert mime.get_all("Disposition-Notification-To") == ["x@y.example"]

    def test_empty_content(self, tmp_path: Path) -> None:
        with pytest.raises(MailMergeMessageError) as exc_info:
            _make_message(tmp_path).assemble(_data())

        assert exc_info.value.kinds == ("EmptyContent",)

    def test_no_recipients(self, tmp_path: Path) -> None:
        message = MailMergeMessage(plain_text="Hello", file_base_dir=tmp_path)
        message.addresses.add("From", "news@example.com")

        with pytest.raises(MailMergeMessageError) as exc_info:
            message.assemble()

        assert exc_info.value.kinds == ("NoRecipients",)

    def test_missing_variable(self, tmp_path: Path) -> None:
        message = _make_message(tmp_path, plain_text="Hello {{Nickname}}")

        with pytest.raises(MailMergeMessageError) as exc_info:
            message.assemble(_data())

        assert exc_info.value.kinds == ("BadVariable",)
        assert exc_info.value.diagnostics[0].values == ("Nickname",)

    def test_problems_of_all_stages_are_reported(self, tmp_path: Path) -> None:
        message = MailMergeMessage(
            subject="{{Topic}}",
            html_text='<img src="gone.png">',
            file_attachments=[FileAttachment("missing.pdf")],
            file_base_dir=tmp_path,
        )
        message.addresses.add("To", "broken")

        with pytest.raises(MailMergeMessageError) as exc_info:
            message.assemble()

        assert exc_info.value.kinds == (
            "NoRecipients",
            "NoFrom",
            "BadAddress",
            "BadInlineFile",
            "BadAttachmentFile",
            "BadVariable",
        )

    def test_empty_message_root_is_text_leaf(self, tmp_path: Path) -> None:
        """A subject-only message still has a root part."""
        merged = _make_message(tmp_path, subject="Just a subject").assemble(_data())

        assert merged.root.get_content_type() == "text/plain"
        assert merged.root.get_payload(decode=True) == b""

    def test_object_data(self, tmp_path: Path) -> None:
        class Row:
            Name = "Ann"
            Email = "ann@example.com"

        merged = _make_message(tmp_path, plain_text="Hello {{Name}}").assemble(Row())

        assert _text(merged.root) == "Hello Ann"

    def test_show_null_as(self, tmp_path: Path) -> None:
        message = _make_message(tmp_path, plain_text="Hello {{Title}}", show_null_as="friend")

        merged = message.assemble({**_data(), "Title": None})

        assert _text(merged.root) == "Hello friend"

    def test_escape_html_values(self, tmp_path: Path) -> None:
        message = _make_message(tmp_path, html_text="<p>{{Name}}</p>", escape_html_values=True)

        merged = message.assemble({"Name": "Ann<script>", "Email": "ann@example.com"})

        assert _text(merged.root) == "<p>Ann&lt;script&gt;</p>"

    def test_idempotent(self, tmp_path: Path) -> None:
        """Two calls with the same data give structurally identical trees."""
        (tmp_path / "logo.png").write_bytes(b"\x89PNG\r\n")
        (tmp_path / "report.pdf").write_bytes(b"%PDF-1.4")
        message = _make_message(
            tmp_path,
            plain_text="Hello {{Name}}",
            html_text='<p>Hello {{Name}}</p><img src="logo.png">',
            file_attachments=[FileAttachment("report.pdf")],
        )

        first = message.assemble(_data())
        second = message.assemble(_data())

        assert _outline(first.root) == _outline(second.root)
        assert first.root is not second.root

    def test_inline_images_are_reported(self, tmp_path: Path) -> None:
        (tmp_path / "logo.png").write_bytes(b"\x89PNG\r\n")
        message = _make_message(tmp_path, html_text='<img src="logo.png">')

        merged = message.assemble(_data())

        assert merged.root.get_content_type() == "multipart/related"
        assert [attachment.filename for attachment in merged.inline_attachments] == [tmp_path / "logo.png"]

    def test_external_inline_attachments(self, tmp_path: Path) -> None:
        (tmp_path / "logo.png").write_bytes(b"\x89PNG\r\n")
        message = _make_message(tmp_path, html_text='<img src="cid:logo">')
        message.add_external_inline_attachment(FileAttachment("logo.png", "logo", "image/png"))

        merged = message.assemble(_data())

        assert len(merged.inline_attachments) == 1
        assert merged.root.get_payload()[1]["Content-ID"] == "<logo>"

        message.clear_external_inline_attachments()

        assert message.external_inline_attachments == ()
        assert message.assemble(_data()).inline_attachments == ()

    def test_concurrent_calls(self, tmp_path: Path) -> None:
        """Concurrent calls on one template each see their own data."""
        message = _make_message(tmp_path, plain_text="Hello {{Name}}")
        names = [f"User{i}" for i in range(20)]

        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(lambda name: message.assemble(_data(name)), names))

        assert [_text(merged.root) for merged in results] == [f"Hello {name}" for name in names]


class TestAssembleVariants:
    """Tests for assemble_safe and assemble_with_metadata."""

    def test_assemble_safe_success(self, tmp_path: Path) -> None:
        merged = _make_message(tmp_path, plain_text="Hello").assemble_safe(_data())

        assert merged is not None

    def test_assemble_safe_failure_returns_none(self, tmp_path: Path) -> None:
        assert _make_message(tmp_path).assemble_safe(_data()) is None

    def test_assemble_safe_unexpected_error_returns_none(self, tmp_path: Path) -> None:
        message = _make_message(tmp_path, plain_text="Hello {{Name")

        assert message.assemble_safe(_data()) is None

    def test_with_metadata_success(self, tmp_path: Path) -> None:
        result = _make_message(tmp_path, plain_text="Hello").assemble_with_metadata(_data())

        assert isinstance(result, AssemblyResult)
        assert result.success
        assert result.error is None
        assert result.diagnostics == ()
        assert result.message is not None

    def test_with_metadata_failure(self, tmp_path: Path) -> None:
        result = _make_message(tmp_path, plain_text="Hello {{Missing}}").assemble_with_metadata(_data())

        assert not result.success
        assert result.message is None
        assert result.error is not None
        assert [d.kind for d in result.diagnostics] == ["BadVariable"]


class TestMimeMessage:
    """Tests for MergedMessage.as_mime_message."""

    def test_headers(self, tmp_path: Path) -> None:
        message = _make_message(
            tmp_path,
            subject="Hello {{Name}}",
            plain_text="Hello",
            x_mailer="mergemail",
            priority="urgent",
        )
        message.addresses.add("Bcc", "audit@example.com")
        message.addresses.add("ReplyTo", "support@example.com")
        message.headers.append(("X-Campaign", "spring"))

        mime = message.assemble(_data()).as_mime_message()

        assert mime["Subject"] == "Hello Ann"
        assert mime["From"] == "Newsletter <news@example.com>"
        assert mime["To"] == "Ann <ann@example.com>"
        assert mime["Bcc"] == "audit@example.com"
        assert mime["Reply-To"] == "support@example.com"
        assert mime["X-Mailer"] == "mergemail"
        assert mime["Priority"] == "urgent"
        assert mime["X-Campaign"] == "spring"
        assert mime["Date"] is not None
        assert mime["Message-ID"].endswith("@example.com>")

    def test_user_header_replaces_notification_header(self, tmp_path: Path) -> None:
        """A user header wins over the header derived from an address entry."""
        message = _make_message(tmp_path, plain_text="Hello")
        message.addresses.add("ConfirmReadingTo", "x@y.example")
        message.addresses.add("ReturnReceiptTo", "r@y.example")
        message.headers.append(("Disposition-Notification-To", "user@y.example"))
        message.headers.append(("Return-Receipt-To", "user@y.example"))

        merged = message.assemble(_data())
        mime = merged.as_mime_message()

        assert mime.get_all("Disposition-Notification-To") == ["user@y.example"]
        assert mime.get_all("Return-Receipt-To") == ["user@y.example"]
        assert mime.get_all("X-Confirm-Reading-To") == ["x@y.example"]
        assert merged.get_header("Return-Receipt-To") == "user@y.example"

    def test_normal_priority_has_no_header(self, tmp_path: Path) -> None:
        mime = _make_message(tmp_path, plain_text="Hello").assemble(_data()).as_mime_message()

        assert mime["Priority"] is None
        assert mime["X-Mailer"] is None

    def test_repeated_calls_replace_headers(self, tmp_path: Path) -> None:
        merged = _make_message(tmp_path, subject="Hi", plain_text="Hello").assemble(_data())

        merged.as_mime_message()
        mime = merged.as_mime_message()

        assert mime.get_all("Subject") == ["Hi"]
        assert len(mime.get_all("Message-ID")) == 1

    def test_non_ascii_subject_is_encoded(self, tmp_path: Path) -> None:
        merged = _make_message(tmp_path, subject="Grüße {{Name}}", plain_text="Hello").assemble(_data())

        raw = merged.as_mime_message().as_string()

        assert "Subject: =?utf-8?" in raw


class TestTemplateHelpers:
    """Tests for template-level helpers."""

    def test_convert_html_to_plain_text(self, tmp_path: Path) -> None:
        message = MailMergeMessage(html_text="<p>Hello {{Name}}</p><p>Bye</p>", file_base_dir=tmp_path)

        assert message.convert_html_to_plain_text() == "Hello {{Name}}\n\nBye"

    def test_convert_with_custom_converter(self, tmp_path: Path) -> None:
        class Upper:
            def to_plain_text(self, html: str) -> str:
                return html.upper()

        message = MailMergeMessage(html_text="<b>x</b>", file_base_dir=tmp_path)

        assert message.convert_html_to_plain_text(Upper()) == "<B>X</B>"

    def test_default_base_dir_is_cwd(self) -> None:
        assert MailMergeMessage().file_base_dir == Path.cwd()
