"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.
"""

import enum

from sqlalchemy import BigInteger, Column, Enum, Integer, String, Text

from chatroom.storage import Base


class MessageKind(str, enum.Enum):
    """Closed set of message kinds stored in the log."""

    MESSAGE = "message"
    PRIVATE_MESSAGE = "private_message"
    STATUS = "status"


class Participant(Base):
    """
    A participant currently present in the room.

    Table: participants
    Primary Key: seq (insertion order, for stable listings)
    Unique: name (uniqueness is enforced by the insert itself)
    """
    __tablename__ = "participants"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, unique=True, nullable=False, index=True)
    last_seen = Column(BigInteger, nullable=False, index=True)  # ms since epoch

    def __repr__(self):
        return f"<Participant {self.name} last_seen={self.last_seen}>"


class Message(Base):
    """
    A chat event: user message, private message or synthetic status.

    Table: messages
    Primary Key: seq (creation order, relied upon by readers)
    """
    __tablename__ = "messages"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, unique=True, nullable=False, index=True)
    from_name = Column(String, nullable=False, index=True)
    to_name = Column(String, nullable=False, index=True)
    text = Column(Text, nullable=False)
    kind = Column(
        Enum(
            MessageKind,
            native_enum=False,
            length=32,
            values_callable=lambda kinds: [k.value for k in kinds],
        ),
        nullable=False,
    )
    time = Column(String, nullable=False)  # HH:MM:SS

    def __repr__(self):
        return f"<Message {self.id} {self.kind.value} {self.from_name}->{self.to_name}>"
