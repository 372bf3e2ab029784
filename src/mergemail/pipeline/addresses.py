"""Address resolver for the typed address entries of a message.

Resolves placeholders in every address and display name and routes the
results to their header fields:
- To, Cc, Bcc, ReplyTo and From entries are appended to their lists
- Sender is a single field (last entry wins)
- ConfirmReadingTo sets X-Confirm-Reading-To and Disposition-Notification-To
- ReturnReceiptTo sets Return-Receipt-To

Malformed or empty addresses are collected, never raised, so that one report
lists every bad address of a message.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from email.errors import HeaderParseError
from email.headerregistry import Address
from email.utils import formataddr
from typing import Protocol

from mergemail.addresses import MailMergeAddress
from mergemail.variables import EMPTY_RENDER_POLICY, DataContext, PlaceholderResolver

logger = logging.getLogger(__name__)

CONFIRM_READING_HEADER = "X-Confirm-Reading-To"
DISPOSITION_NOTIFICATION_HEADER = "Disposition-Notification-To"
RETURN_RECEIPT_HEADER = "Return-Receipt-To"


class AddressOverride(Protocol):
    """Strategy deciding the address value actually used for an entry."""

    def apply(self, address: str) -> str: ...


class NoAddressOverride:
    """Uses every entry's own resolved address."""

    def apply(self, address: str) -> str:
        return address


@dataclass(frozen=True, slots=True)
class TestAddressOverride:
    """Replaces the address value of every entry with a test address.

    Display names are kept, so a test message still shows who it was meant
    for.
    """

    __test__ = False  # not a pytest test class

    address: str

    def apply(self, address: str) -> str:
        return self.address


@dataclass(frozen=True, slots=True)
class Mailbox:
    """A resolved address with its display name.

    Attributes:
        address: The address, e.g. "ann@example.com".
        display_name: Display name, may be empty.
        charset: Character set for a non-ASCII display name in headers.
    """

    address: str
    display_name: str = ""
    charset: str = "utf-8"

    def __str__(self) -> str:
        return formataddr((self.display_name, self.address), self.charset)


@dataclass(slots=True)
class ResolvedAddresses:
    """Header fields populated from the address entries.

    Attributes:
        from_: From mailboxes.
        sender: Sender mailbox, or None.
        to: To mailboxes.
        cc: Cc mailboxes.
        bcc: Bcc mailboxes.
        reply_to: Reply-To mailboxes.
        headers: Notification headers as (name, address) pairs.
        bad_addresses: Entries that produced no valid address.
        bad_variables: Placeholder names that could not be resolved.
        bad_inline_files: Files referenced by placeholders that could not be
            read.
    """

    from_: list[Mailbox] = field(default_factory=list)
    sender: Mailbox | None = None
    to: list[Mailbox] = field(default_factory=list)
    cc: list[Mailbox] = field(default_factory=list)
    bcc: list[Mailbox] = field(default_factory=list)
    reply_to: list[Mailbox] = field(default_factory=list)
    headers: list[tuple[str, str]] = field(default_factory=list)
    bad_addresses: list[str] = field(default_factory=list)
    bad_variables: list[str] = field(default_factory=list)
    bad_inline_files: list[str] = field(default_factory=list)

    @property
    def recipient_count(self) -> int:
        return len(self.to) + len(self.cc) + len(self.bcc)

    def set_header(self, name: str, value: str) -> None:
        """Replace any previous value of a header."""
        self.remove_header(name)
        self.headers.append((name, value))

    def remove_header(self, name: str) -> None:
        lowered = name.lower()
        self.headers[:] = [(key, value) for key, value in self.headers if key.lower() != lowered]


def make_mailbox(address: str, display_name: str = "", charset: str = "utf-8") -> Mailbox | None:
    """Build a mailbox from address text.

    Args:
        address: Address text, e.g. "ann@example.com".
        display_name: Optional display name.
        charset: Character set for a non-ASCII display name.

    Returns:
        The mailbox, or None if the address is empty or malformed.
    """
    address = address.strip()
    if not address:
        return None
    try:
        parsed = Address(display_name=display_name.strip(), addr_spec=address)
    except (ValueError, IndexError, HeaderParseError):
        return None
    if not parsed.username or not parsed.domain:
        return None
    return Mailbox(address=parsed.addr_spec, display_name=parsed.display_name, charset=charset)


class AddressResolver:
    """Resolves typed address entries into header fields."""

    def __init__(self, resolver: PlaceholderResolver, *, ignore_empty_recipients: bool = True) -> None:
        """Initialize the address resolver.

        Args:
            resolver: Placeholder resolver shared with the other stages.
            ignore_empty_recipients: If True, entries resolving to an empty
                address are skipped. If False, they are reported as bad
                addresses.
        """
        self._resolver = resolver
        self._ignore_empty_recipients = ignore_empty_recipients

    def resolve(self, entries: Sequence[MailMergeAddress], data: DataContext) -> ResolvedAddresses:
        """Resolve all entries against the data context.

        Args:
            entries: Address entries in template order.
            data: Data context to resolve placeholders against.

        Returns:
            ResolvedAddresses with populated fields and collected diagnostics.
        """
        result = ResolvedAddresses()
        override = self._address_override(entries, data, result)

        for entry in entries:
            if entry.address_type == "TestAddress":
                continue

            address = override.apply(self._resolve_text(entry.address, data, result))
            display_name = self._resolve_text(entry.display_name, data, result)

            if not address.strip():
                if self._ignore_empty_recipients:
                    logger.debug("Skipping empty %s address", entry.address_type)
                    continue
                result.bad_addresses.append(_describe(entry, address, display_name))
                continue

            mailbox = make_mailbox(address, display_name, entry.display_name_charset)
            if mailbox is None:
                logger.warning("Bad %s address: %s", entry.address_type, address)
                result.bad_addresses.append(_describe(entry, address, display_name))
                continue

            self._route(entry, mailbox, result)

        return result

    def _address_override(
        self,
        entries: Sequence[MailMergeAddress],
        data: DataContext,
        result: ResolvedAddresses,
    ) -> AddressOverride:
        test_entries = [entry for entry in entries if entry.address_type == "TestAddress"]
        if not test_entries:
            return NoAddressOverride()
        address = self._resolve_text(test_entries[-1].address, data, result)
        logger.info("Test address active; all addresses are replaced by %s", address)
        return TestAddressOverride(address=address)

    def _resolve_text(self, text: str, data: DataContext, result: ResolvedAddresses) -> str:
        resolved = self._resolver.resolve(text, data, EMPTY_RENDER_POLICY)
        result.bad_variables.extend(resolved.missing_names)
        result.bad_inline_files.extend(resolved.missing_files)
        return resolved.text

    @staticmethod
    def _route(entry: MailMergeAddress, mailbox: Mailbox, result: ResolvedAddresses) -> None:
        address_type = entry.address_type
        if address_type == "To":
            result.to.append(mailbox)
        elif address_type == "Cc":
            result.cc.append(mailbox)
        elif address_type == "Bcc":
            result.bcc.append(mailbox)
        elif address_type == "ReplyTo":
            result.reply_to.append(mailbox)
        elif address_type == "From":
            result.from_.append(mailbox)
        elif address_type == "Sender":
            result.sender = mailbox
        elif address_type == "ConfirmReadingTo":
            result.set_header(CONFIRM_READING_HEADER, mailbox.address)
            result.set_header(DISPOSITION_NOTIFICATION_HEADER, mailbox.address)
        elif address_type == "ReturnReceiptTo":
            result.set_header(RETURN_RECEIPT_HEADER, mailbox.address)


def _describe(entry: MailMergeAddress, address: str, display_name: str) -> str:
    if display_name:
        return f'{entry.address_type}: "{display_name}" <{address}>'
    return f"{entry.address_type}: <{address}>"
