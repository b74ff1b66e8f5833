"""
Tests for the presence store and message log.
"""

import pytest
from sqlalchemy.exc import OperationalError

from chatroom.errors import Conflict, NotFound, StorageError
from chatroom.models import Message, MessageKind
from chatroom.storage import MessageLog, PresenceStore, session_scope

NOW = 1_700_000_000_000


@pytest.fixture
def presence(db):
    return PresenceStore()


@pytest.fixture
def log(db):
    return MessageLog()


def new_message(text="hi", from_name="Ana", to_name="Todos", kind=MessageKind.MESSAGE):
    return Message(from_name=from_name, to_name=to_name, text=text, kind=kind)


class TestPresenceStore:
    def test_register(self, presence):
        participant = presence.register("Ana", NOW)

        assert participant.name == "Ana"
        assert participant.last_seen == NOW
        assert presence.get("Ana").last_seen == NOW

    def test_register_duplicate_conflicts(self, presence):
        presence.register("Ana", NOW)

        with pytest.raises(Conflict):
            presence.register("Ana", NOW + 1)

        participants = presence.all()
        assert len(participants) == 1
        assert participants[0].last_seen == NOW

    def test_names_unique_across_join_sequence(self, presence):
        names = ["Ana", "Bob", "Ana", "Cid", "Bob", "Ana"]
        conflicts = 0
        for name in names:
            try:
                presence.register(name, NOW)
            except Conflict:
                conflicts += 1

        current = [p.name for p in presence.all()]
        assert current == ["Ana", "Bob", "Cid"]
        assert conflicts == 3

    def test_heartbeat_advances_monotonically(self, presence):
        presence.register("Ana", NOW)

        assert presence.heartbeat("Ana", NOW + 500).last_seen == NOW + 500
        # A late, out-of-order heartbeat never moves it backwards
        assert presence.heartbeat("Ana", NOW + 100).last_seen == NOW + 500
        assert presence.heartbeat("Ana", NOW + 900).last_seen == NOW + 900
        assert len(presence.all()) == 1

    def test_heartbeat_unknown(self, presence):
        with pytest.raises(NotFound):
            presence.heartbeat("Ghost", NOW)

    def test_get_missing(self, presence):
        assert presence.get("Ghost") is None
        assert presence.get(None) is None

    def test_expired(self, presence):
        presence.register("old", NOW - 20_000)
        presence.register("edge", NOW - 10_000)
        presence.register("new", NOW - 5_000)

        assert [p.name for p in presence.expired(NOW - 10_000)] == ["old", "edge"]

    def test_remove_is_idempotent(self, presence):
        presence.register("Ana", NOW)

        assert presence.remove("Ana") is True
        assert presence.remove("Ana") is False
        assert presence.all() == []

    def test_remove_expired_rechecks_cutoff(self, presence):
        presence.register("old", NOW - 20_000)
        presence.register("new", NOW)

        assert presence.remove_expired(["old", "new"], NOW - 10_000) == ["old"]
        assert presence.remove_expired([], NOW) == []


class TestMessageLog:
    def test_append_assigns_id_and_time(self, log):
        message = log.append(new_message())

        assert message.id
        assert len(message.time) == 8
        assert log.find_by_id(message.id).text == "hi"

    def test_ids_are_unique(self, log):
        ids = {log.append(new_message(str(i))).id for i in range(5)}
        assert len(ids) == 5

    def test_all_in_creation_order(self, log):
        for text in ("one", "two"):
            log.append(new_message(text))
        log.append_many([new_message("three"), new_message("four")])

        assert [m.text for m in log.all()] == ["one", "two", "three", "four"]

    def test_find_missing(self, log):
        with pytest.raises(NotFound):
            log.find_by_id("nope")

    def test_update_replaces_mutable_fields(self, log):
        original = log.append(new_message())

        updated = log.update(original.id, "Bob", "edited", MessageKind.PRIVATE_MESSAGE)

        assert updated.id == original.id
        assert updated.from_name == "Ana"
        assert updated.time == original.time
        stored = log.find_by_id(original.id)
        assert (stored.to_name, stored.text, stored.kind) == ("Bob", "edited", MessageKind.PRIVATE_MESSAGE)

    def test_update_missing(self, log):
        with pytest.raises(NotFound):
            log.update("nope", "Todos", "x", MessageKind.MESSAGE)

    def test_delete(self, log):
        message = log.append(new_message())

        log.delete(message.id)

        assert log.all() == []
        with pytest.raises(NotFound):
            log.delete(message.id)


class TestSessionScope:
    def test_database_errors_become_storage_errors(self, db):
        class BrokenSession:
            def rollback(self):
                pass

            def close(self):
                pass

        with pytest.raises(StorageError):
            with session_scope(lambda: BrokenSession()):
                raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))

    def test_shared_session_rolls_back_together(self, presence, log):
        with pytest.raises(Conflict):
            with presence.session() as db:
                log.append(new_message("orphan"), db=db)
                presence.register("Ana", NOW, db=db)
                presence.register("Ana", NOW, db=db)

        assert log.all() == []
        assert presence.all() == []
