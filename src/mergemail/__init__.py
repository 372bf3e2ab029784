"""mergemail - Assemble personalized email messages from a template and data."""

from mergemail.addresses import ADDRESS_TYPES, MailAddressType, MailMergeAddress, MailMergeAddressCollection
from mergemail.attachments import FileAttachment, StreamAttachment, StringAttachment
from mergemail.converters import BeautifulSoupHtmlConverter, HtmlConverter, html_to_plain_text
from mergemail.exceptions import (
    DIAGNOSTIC_KINDS,
    AddressError,
    AttachmentError,
    Diagnostic,
    DiagnosticKind,
    EmptyContentError,
    MailMergeError,
    MailMergeMessageError,
    VariableError,
)
from mergemail.message import AssemblyResult, MailMergeMessage, MergedMessage, MessagePriority
from mergemail.pipeline import Mailbox
from mergemail.variables import (
    DataContext,
    Lookup,
    MappingContext,
    ObjectContext,
    PlaceholderResolver,
    RenderPolicy,
    as_data_context,
)

__version__ = "0.1.0"

__all__ = [
    "ADDRESS_TYPES",
    "AddressError",
    "AssemblyResult",
    "AttachmentError",
    "BeautifulSoupHtmlConverter",
    "DataContext",
    "Diagnostic",
    "DiagnosticKind",
    "DIAGNOSTIC_KINDS",
    "EmptyContentError",
    "FileAttachment",
    "HtmlConverter",
    "Lookup",
    "MailAddressType",
    "Mailbox",
    "MailMergeAddress",
    "MailMergeAddressCollection",
    "MailMergeError",
    "MailMergeMessage",
    "MailMergeMessageError",
    "MappingContext",
    "MergedMessage",
    "MessagePriority",
    "ObjectContext",
    "PlaceholderResolver",
    "RenderPolicy",
    "StreamAttachment",
    "StringAttachment",
    "VariableError",
    "as_data_context",
    "html_to_plain_text",
]
