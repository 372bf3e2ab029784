"""Pipeline components for mail merge message assembly."""

from mergemail.pipeline.addresses import (
    AddressOverride,
    AddressResolver,
    Mailbox,
    NoAddressOverride,
    ResolvedAddresses,
    TestAddressOverride,
)
from mergemail.pipeline.attachment_parts import AttachmentPartBuilder, AttachmentPartResult
from mergemail.pipeline.composer import TreeComposer
from mergemail.pipeline.encoder import CONTENT_ENCODINGS, ContentEncoding, PartEncoder
from mergemail.pipeline.html_body import HtmlBody, HtmlBodyBuilder
from mergemail.pipeline.text_parts import TextPartBuilder, TextPartResult
from mergemail.pipeline.validator import MessageValidator, ValidationInput, ValidationResult

__all__ = [
    "AddressOverride",
    "AddressResolver",
    "AttachmentPartBuilder",
    "AttachmentPartResult",
    "CONTENT_ENCODINGS",
    "ContentEncoding",
    "HtmlBody",
    "HtmlBodyBuilder",
    "Mailbox",
    "MessageValidator",
    "NoAddressOverride",
    "PartEncoder",
    "ResolvedAddresses",
    "TestAddressOverride",
    "TextPartBuilder",
    "TextPartResult",
    "TreeComposer",
    "ValidationInput",
    "ValidationResult",
]
