import logging
import uuid
from contextlib import contextmanager
from typing import Iterable, Iterator, Optional

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from chatroom.config import settings
from chatroom.errors import ChatError, Conflict, NotFound, StorageError
from chatroom.utils import format_time

logger = logging.getLogger(__name__)


def _connect_args(url: str) -> dict:
    # check_same_thread=False is required for SQLite to be shared with the
    # reaper's worker thread
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


# One pooled engine for the whole process; sessions are scoped per operation
engine = create_engine(
    settings.DATABASE_URL,
    connect_args=_connect_args(settings.DATABASE_URL),
    pool_pre_ping=True,
    echo=False,
)

# Objects stay readable after commit so callers can use them once the
# session is closed
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
)

# Base class for SQLAlchemy models
Base = declarative_base()


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug(f"Initializing database with URL: {settings.DATABASE_URL}")
    try:
        # Import models to register them with Base.metadata
        from chatroom.models import Message, Participant  # noqa: F401

        logger.debug("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def dispose_db() -> None:
    """Release pooled connections. Called during application shutdown."""
    engine.dispose()
    logger.info("Database connections released")


def check_db_health() -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and schema exists, False otherwise.
    """
    logger.debug("Checking database health...")
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
            logger.debug("Database connectivity OK")

        inspector = inspect(engine)
        for table in ("participants", "messages"):
            if not inspector.has_table(table):
                logger.error(f"Database schema not applied: '{table}' table not found")
                return False
        logger.debug("Database health check passed")
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


@contextmanager
def session_scope(session_factory=SessionLocal, db: Optional[Session] = None) -> Iterator[Session]:
    """
    Provide a transactional scope around a series of operations.

    When ``db`` is given the caller owns the transaction and the session is
    yielded untouched. Otherwise a new session is opened, committed on
    success, rolled back on error and always closed. Database failures are
    re-raised as StorageError.
    """
    if db is not None:
        yield db
        return

    session = session_factory()
    try:
        yield session
        session.commit()
    except ChatError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Storage operation failed: {e}", exc_info=True)
        raise StorageError() from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


class _Repository:
    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def session(self, db: Optional[Session] = None):
        """Open a transactional scope, or join the caller's session."""
        return session_scope(self.session_factory, db)


# =============================================================================
# Presence Store
# =============================================================================

class PresenceStore(_Repository):
    """Durable mapping from participant name to last-seen timestamp."""

    def register(self, name: str, now: int, db: Optional[Session] = None):
        """
        Create a participant with last_seen = now.

        Raises:
            Conflict: a participant with this name is already present
        """
        from chatroom.models import Participant

        logger.info(f"Registering participant: {name}")
        with self.session(db) as s:
            participant = Participant(name=name, last_seen=now)
            s.add(participant)
            try:
                # The unique constraint makes this an atomic check-and-insert
                s.flush()
            except IntegrityError as e:
                logger.info(f"Participant name already taken: {name}")
                raise Conflict(f"participant '{name}' already exists") from e
        return participant

    def heartbeat(self, name: str, now: int, db: Optional[Session] = None):
        """
        Refresh a participant's last_seen. Never moves it backwards.

        Raises:
            NotFound: no participant with this name
        """
        from chatroom.models import Participant

        with self.session(db) as s:
            participant = s.query(Participant).filter(Participant.name == name).first()
            if participant is None:
                raise NotFound(f"participant '{name}' not found")
            participant.last_seen = max(participant.last_seen, now)
        logger.debug(f"Heartbeat for {name}: last_seen={participant.last_seen}")
        return participant

    def get(self, name: Optional[str], db: Optional[Session] = None):
        """Return the participant with this name, or None."""
        from chatroom.models import Participant

        if not name:
            return None
        with self.session(db) as s:
            return s.query(Participant).filter(Participant.name == name).first()

    def all(self, db: Optional[Session] = None) -> list:
        """All current participants in insertion order."""
        from chatroom.models import Participant

        with self.session(db) as s:
            return s.query(Participant).order_by(Participant.seq.asc()).all()

    def expired(self, cutoff: int, db: Optional[Session] = None) -> list:
        """Participants whose last_seen is at or before the cutoff."""
        from chatroom.models import Participant

        with self.session(db) as s:
            return (
                s.query(Participant)
                .filter(Participant.last_seen <= cutoff)
                .order_by(Participant.seq.asc())
                .all()
            )

    def remove(self, name: str, db: Optional[Session] = None) -> bool:
        """Delete a participant. Idempotent; returns whether a row was removed."""
        from chatroom.models import Participant

        with self.session(db) as s:
            deleted = s.query(Participant).filter(Participant.name == name).delete(
                synchronize_session=False
            )
        return bool(deleted)

    def remove_expired(self, names: Iterable[str], cutoff: int, db: Optional[Session] = None) -> list[str]:
        """
        Delete the given participants that are still expired.

        A participant whose heartbeat landed after the scan is kept.

        Returns:
            Names actually removed, in insertion order
        """
        from chatroom.models import Participant

        names = list(names)
        if not names:
            return []
        with self.session(db) as s:
            rows = (
                s.query(Participant)
                .filter(Participant.name.in_(names), Participant.last_seen <= cutoff)
                .order_by(Participant.seq.asc())
                .all()
            )
            removed = [row.name for row in rows]
            for row in rows:
                s.delete(row)
            s.flush()
        return removed


# =============================================================================
# Message Log
# =============================================================================

class MessageLog(_Repository):
    """Append-mostly, creation-ordered sequence of chat events."""

    @staticmethod
    def _stamp(message) -> None:
        message.id = uuid.uuid4().hex
        message.time = format_time()

    def append(self, message, db: Optional[Session] = None):
        """Assign id and time to a new message and persist it."""
        self._stamp(message)
        logger.info(
            f"Appending message: id={message.id}, kind={message.kind.value}, "
            f"from={message.from_name}, to={message.to_name}"
        )
        with self.session(db) as s:
            s.add(message)
            s.flush()
        return message

    def append_many(self, messages: Iterable, db: Optional[Session] = None) -> list:
        """Batch variant of append."""
        messages = list(messages)
        for message in messages:
            self._stamp(message)
        with self.session(db) as s:
            s.add_all(messages)
            s.flush()
        logger.info(f"Appended {len(messages)} messages")
        return messages

    def find_by_id(self, message_id: str, db: Optional[Session] = None):
        """
        Retrieve a message by its ID.

        Raises:
            NotFound: no message with this ID
        """
        from chatroom.models import Message

        with self.session(db) as s:
            message = s.query(Message).filter(Message.id == message_id).first()
        logger.debug(f"Message lookup {message_id}: {'found' if message else 'not found'}")
        if message is None:
            raise NotFound(f"message '{message_id}' not found")
        return message

    def update(self, message_id: str, to_name: str, text: str, kind, db: Optional[Session] = None):
        """
        Replace the mutable fields of a message. Identity fields never change.

        Raises:
            NotFound: no message with this ID
        """
        from chatroom.models import Message

        with self.session(db) as s:
            message = s.query(Message).filter(Message.id == message_id).first()
            if message is None:
                raise NotFound(f"message '{message_id}' not found")
            message.to_name = to_name
            message.text = text
            message.kind = kind
        logger.info(f"Message updated: {message_id}")
        return message

    def delete(self, message_id: str, db: Optional[Session] = None) -> None:
        """
        Delete a message.

        Raises:
            NotFound: no message with this ID
        """
        from chatroom.models import Message

        with self.session(db) as s:
            deleted = s.query(Message).filter(Message.id == message_id).delete(
                synchronize_session=False
            )
            if not deleted:
                raise NotFound(f"message '{message_id}' not found")
        logger.info(f"Message deleted: {message_id}")

    def all(self, db: Optional[Session] = None) -> list:
        """The full log in creation order."""
        from chatroom.models import Message

        with self.session(db) as s:
            messages = s.query(Message).order_by(Message.seq.asc()).all()
        logger.debug(f"Loaded {len(messages)} messages")
        return messages
