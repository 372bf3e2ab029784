"""Validator for an assembled message.

Runs once after all assembly stages and turns their collected problems plus
a few message-level checks into a list of diagnostics:
- NoRecipients: no To, Cc or Bcc address
- NoFrom: no From address
- EmptyContent: no subject, no text and no attachments at all
- BadAddress, BadInlineFile, BadAttachmentFile, BadVariable: one summary each
  for the problems the stages collected
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from mergemail.exceptions import Diagnostic

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ValidationInput:
    """Everything the validator inspects.

    Attributes:
        recipient_count: Number of To, Cc and Bcc mailboxes.
        from_count: Number of From mailboxes.
        has_content: Whether the template has a subject, any text or any
            attachment.
        bad_addresses: Collected bad address descriptions.
        bad_inline_files: Collected unreadable inline resources.
        bad_attachment_files: Collected unreadable attachment files.
        bad_variables: Collected unresolved placeholder names.
    """

    recipient_count: int
    from_count: int
    has_content: bool
    bad_addresses: tuple[str, ...] = ()
    bad_inline_files: tuple[str, ...] = ()
    bad_attachment_files: tuple[str, ...] = ()
    bad_variables: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Result of validation.

    Attributes:
        diagnostics: All problems found, in report order.
        success: Whether the message may be sent.
    """

    diagnostics: tuple[Diagnostic, ...]
    success: bool


def _unique(values: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(values))


class MessageValidator:
    """Checks an assembled message and aggregates all stage diagnostics."""

    def validate(self, state: ValidationInput) -> ValidationResult:
        """Validate the assembly state.

        Args:
            state: Counts and collected problems of one assembly.

        Returns:
            ValidationResult with every diagnostic.
        """
        diagnostics: list[Diagnostic] = []
        bad_addresses = _unique(state.bad_addresses)

        if state.recipient_count == 0:
            diagnostics.append(Diagnostic("NoRecipients", "No recipients.", bad_addresses))
        if state.from_count == 0:
            diagnostics.append(Diagnostic("NoFrom", "No from address.", bad_addresses))
        if not state.has_content:
            diagnostics.append(Diagnostic("EmptyContent", "Message is empty."))

        if bad_addresses:
            diagnostics.append(
                Diagnostic(
                    "BadAddress",
                    f"Bad mail address(es): {', '.join(bad_addresses)}",
                    bad_addresses,
                )
            )

        bad_inline_files = _unique(state.bad_inline_files)
        if bad_inline_files:
            diagnostics.append(
                Diagnostic(
                    "BadInlineFile",
                    f"Inline attachment(s) missing or not readable: {', '.join(bad_inline_files)}",
                    bad_inline_files,
                )
            )

        bad_attachment_files = _unique(state.bad_attachment_files)
        if bad_attachment_files:
            diagnostics.append(
                Diagnostic(
                    "BadAttachmentFile",
                    f"File attachment(s) missing or not readable: {', '.join(bad_attachment_files)}",
                    bad_attachment_files,
                )
            )

        bad_variables = _unique(state.bad_variables)
        if bad_variables:
            diagnostics.append(
                Diagnostic(
                    "BadVariable",
                    f"Variable(s) for placeholder(s) not found: {', '.join(bad_variables)}",
                    bad_variables,
                )
            )

        for diagnostic in diagnostics:
            logger.debug("Validation: %s", diagnostic.message)

        return ValidationResult(diagnostics=tuple(diagnostics), success=not diagnostics)
