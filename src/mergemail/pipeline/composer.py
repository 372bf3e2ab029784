"""Tree composer for the final message body."""

import logging
from collections.abc import Sequence
from email.message import Message
from email.mime.multipart import MIMEMultipart

from mergemail.pipeline.encoder import PartEncoder

logger = logging.getLogger(__name__)


class TreeComposer:
    """Combines the body subtree and attachment leaves into one tree.

    - With attachments: multipart/mixed, body subtree first (if any), then
      the attachments in the order given
    - Without attachments: the body subtree
    - Without either: an empty text/plain leaf
    """

    def __init__(self, encoder: PartEncoder) -> None:
        self._encoder = encoder

    def compose(self, body: Message | None, attachments: Sequence[Message]) -> Message:
        """Build the root part of the message.

        Args:
            body: Body subtree from the text part builder, or None.
            attachments: Attachment leaves in message order.

        Returns:
            The root part. Never None.
        """
        if attachments:
            mixed = MIMEMultipart("mixed")
            if body is not None:
                mixed.attach(body)
            for part in attachments:
                mixed.attach(part)
            return mixed

        if body is not None:
            return body

        logger.debug("Message has no content; using an empty text/plain part")
        return self._encoder.encode_text("", "plain")
