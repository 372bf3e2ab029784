"""Typed addresses of a mail merge message."""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal

MailAddressType = Literal[
    "To",
    "Cc",
    "Bcc",
    "ReplyTo",
    "ConfirmReadingTo",
    "ReturnReceiptTo",
    "Sender",
    "From",
    "TestAddress",
]

ADDRESS_TYPES: tuple[MailAddressType, ...] = (
    "To",
    "Cc",
    "Bcc",
    "ReplyTo",
    "ConfirmReadingTo",
    "ReturnReceiptTo",
    "Sender",
    "From",
    "TestAddress",
)

RECIPIENT_TYPES: frozenset[MailAddressType] = frozenset({"To", "Cc", "Bcc"})


@dataclass(frozen=True, slots=True)
class MailMergeAddress:
    """An address entry of a message template.

    Address and display name may contain placeholders, which are resolved
    for every merged message.

    Attributes:
        address_type: Role of the address in the message.
        address: Address text, e.g. ``"{{Email}}"`` or ``"ann@example.com"``.
        display_name: Display name text, may be empty.
        display_name_charset: Character set used to encode a non-ASCII
            display name in the header.
    """

    address_type: MailAddressType
    address: str
    display_name: str = ""
    display_name_charset: str = "utf-8"

    def __post_init__(self) -> None:
        if self.address_type not in ADDRESS_TYPES:
            raise ValueError(f"Unknown address type: {self.address_type!r}")

    def __str__(self) -> str:
        if self.display_name:
            return f'"{self.display_name}" <{self.address}>'
        return f"<{self.address}>"


class MailMergeAddressCollection(list[MailMergeAddress]):
    """Ordered collection of the address entries of a message template."""

    def add(
        self,
        address_type: MailAddressType,
        address: str,
        display_name: str = "",
        display_name_charset: str = "utf-8",
    ) -> MailMergeAddress:
        """Create an entry and append it to the collection.

        Returns:
            The new entry.
        """
        entry = MailMergeAddress(
            address_type=address_type,
            address=address,
            display_name=display_name,
            display_name_charset=display_name_charset,
        )
        self.append(entry)
        return entry

    def of_type(self, address_type: MailAddressType) -> list[MailMergeAddress]:
        """All entries with the given role, in collection order."""
        return [entry for entry in self if entry.address_type == address_type]

    def remove_type(self, address_type: MailAddressType) -> None:
        """Remove all entries with the given role."""
        self[:] = [entry for entry in self if entry.address_type != address_type]

    @classmethod
    def from_entries(cls, entries: Iterable[MailMergeAddress]) -> "MailMergeAddressCollection":
        collection = cls()
        collection.extend(entries)
        return collection
