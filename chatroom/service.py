"""
Chat operations: join, post, read, edit, delete and heartbeat.

Inputs arrive already validated and sanitized by the request schemas.
"""

import logging
from typing import Callable, Optional

from chatroom.errors import NotFound, Unauthorized, ValidationError
from chatroom.models import Message, MessageKind
from chatroom.storage import MessageLog, PresenceStore
from chatroom.utils import now_ms
from chatroom.visibility import visible_messages

logger = logging.getLogger(__name__)

ENTERED_TEXT = "entered the room"


class ChatService:
    def __init__(
        self,
        presence: PresenceStore,
        messages: MessageLog,
        broadcast: str,
        clock: Callable[[], int] = now_ms,
    ):
        self.presence = presence
        self.messages = messages
        self.broadcast = broadcast
        self.clock = clock

    def join(self, name: str):
        """
        Register a participant and announce it to the room.

        Raises:
            Conflict: the name is already present
        """
        with self.presence.session() as db:
            participant = self.presence.register(name, self.clock(), db=db)
            self.messages.append(
                Message(
                    from_name=name,
                    to_name=self.broadcast,
                    text=ENTERED_TEXT,
                    kind=MessageKind.STATUS,
                ),
                db=db,
            )
        logger.info(f"Participant joined: {name}")
        return participant

    def participants(self) -> list:
        return self.presence.all()

    def _require_sender(self, sender: Optional[str]):
        participant = self.presence.get(sender)
        if participant is None:
            raise ValidationError(f"unknown sender '{sender}'")
        return participant

    def post(self, sender: Optional[str], to_name: str, text: str, kind: MessageKind):
        """
        Append a user message from a present participant.

        Raises:
            ValidationError: the sender is not a present participant
        """
        self._require_sender(sender)
        return self.messages.append(
            Message(from_name=sender, to_name=to_name, text=text, kind=kind)
        )

    def read(self, participant: Optional[str], limit=None) -> list:
        """Messages visible to ``participant``, most recent last."""
        return visible_messages(
            self.messages.all(), participant, limit=limit, broadcast=self.broadcast
        )

    def _authorize(self, message_id: str, actor: Optional[str], db):
        message = self.messages.find_by_id(message_id, db=db)
        if message.from_name != actor:
            logger.warning(f"Participant {actor!r} is not the author of {message_id}")
            raise Unauthorized(f"message '{message_id}' belongs to another participant")
        return message

    def edit(self, actor: Optional[str], message_id: str, to_name: str, text: str, kind: MessageKind):
        """
        Replace a message's recipient, text and kind.

        Raises:
            ValidationError: the actor is not a present participant
            NotFound: no message with this ID
            Unauthorized: the actor did not author the message
        """
        self._require_sender(actor)
        with self.messages.session() as db:
            self._authorize(message_id, actor, db)
            return self.messages.update(message_id, to_name, text, kind, db=db)

    def delete(self, actor: Optional[str], message_id: str) -> None:
        """
        Delete a message.

        Raises:
            NotFound: no message with this ID
            Unauthorized: the actor did not author the message
        """
        with self.messages.session() as db:
            self._authorize(message_id, actor, db)
            self.messages.delete(message_id, db=db)

    def heartbeat(self, name: Optional[str]):
        """
        Mark a participant as still present.

        Raises:
            NotFound: no participant with this name
        """
        if not name:
            raise NotFound("participant not found")
        return self.presence.heartbeat(name, self.clock())
