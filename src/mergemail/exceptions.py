"""Exceptions and diagnostics for mergemail message assembly."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from mergemail.message import MergedMessage

DiagnosticKind = Literal[
    "BadAddress",
    "BadAttachmentFile",
    "BadInlineFile",
    "BadVariable",
    "EmptyContent",
    "NoRecipients",
    "NoFrom",
]

DIAGNOSTIC_KINDS: tuple[DiagnosticKind, ...] = (
    "BadAddress",
    "BadAttachmentFile",
    "BadInlineFile",
    "BadVariable",
    "EmptyContent",
    "NoRecipients",
    "NoFrom",
)


class MailMergeError(Exception):
    """Base exception for all message assembly errors."""

    pass


@dataclass
class AddressError(MailMergeError):
    """One or more addresses are missing or could not be parsed.

    Attributes:
        message: Description of the error.
        addresses: The offending address values.
    """

    message: str
    addresses: tuple[str, ...] = ()

    def __str__(self) -> str:
        return self.message


@dataclass
class AttachmentError(MailMergeError):
    """File attachments or inline resources are missing or not readable.

    Attributes:
        message: Description of the error.
        files: Resolved paths of the offending files.
    """

    message: str
    files: tuple[str, ...] = ()

    def __str__(self) -> str:
        return self.message


@dataclass
class VariableError(MailMergeError):
    """Placeholders referenced names the data context does not provide."""

    message: str
    names: tuple[str, ...] = ()

    def __str__(self) -> str:
        return self.message


@dataclass
class EmptyContentError(MailMergeError):
    """The message has no subject, no text and no attachments."""

    message: str

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """A single problem found while assembling a message.

    Attributes:
        kind: Category of the problem.
        message: Human readable summary.
        values: Offending values (addresses, paths, placeholder names).
    """

    kind: DiagnosticKind
    message: str
    values: tuple[str, ...] = ()

    def to_exception(self) -> MailMergeError:
        """Return the exception type matching this diagnostic."""
        if self.kind in ("BadAddress", "NoRecipients", "NoFrom"):
            return AddressError(message=self.message, addresses=self.values)
        if self.kind in ("BadAttachmentFile", "BadInlineFile"):
            return AttachmentError(message=self.message, files=self.values)
        if self.kind == "BadVariable":
            return VariableError(message=self.message, names=self.values)
        return EmptyContentError(message=self.message)


@dataclass
class MailMergeMessageError(MailMergeError):
    """Assembly failed with one or more diagnostics.

    The partially built message is attached for inspection only and must not
    be sent.

    Attributes:
        message: Description of the error.
        diagnostics: Every problem found across all assembly stages.
        partial_message: The message as far as it could be built.
    """

    message: str
    diagnostics: tuple[Diagnostic, ...] = ()
    partial_message: MergedMessage | None = field(default=None, repr=False)

    @property
    def kinds(self) -> tuple[DiagnosticKind, ...]:
        """Kinds of all diagnostics, in report order."""
        return tuple(diagnostic.kind for diagnostic in self.diagnostics)

    @property
    def exceptions(self) -> tuple[MailMergeError, ...]:
        """Diagnostics converted to their matching exceptions."""
        return tuple(diagnostic.to_exception() for diagnostic in self.diagnostics)

    def __str__(self) -> str:
        details = "; ".join(diagnostic.message for diagnostic in self.diagnostics)
        if not details:
            return self.message
        return f"{self.message} ({details})"
