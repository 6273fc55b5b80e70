"""
Integration tests for the transaction engine.

Every flow runs against in-memory storage, identity directory and
notification sink. Storage subclasses inject timeouts, conflicts and
interleavings.
"""

import asyncio

import pytest
from decimal import Decimal
from uuid import uuid4

from shareengine.config import (
    EngineSettings,
    NotificationSettings,
    PersistenceSettings,
    Settings,
)
from shareengine.errors import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    StaleIdentityError,
    TransientError,
)
from shareengine.models import (
    AuditEventType,
    NotificationEventKind,
    ParticipantStatus,
    TransactionKind,
)
from shareengine.orchestrator import TransactionEngine, create_engine
from shareengine.services.identity import InMemoryIdentityDirectory
from shareengine.services.notifications import (
    InMemoryNotificationSink,
    NotificationSinkInterface,
)
from shareengine.services.storage import (
    InMemoryAuditStorage,
    InMemoryTransactionStorage,
    StorageError,
    StorageTimeoutError,
    VersionConflictError,
)


# =============================================================================
# Test doubles
# =============================================================================

class InterleavingStorage(InMemoryTransactionStorage):
    """Yields to the event loop after every load so writers interleave."""

    async def load_transaction(self, transaction_id):
        snapshot = await super().load_transaction(transaction_id)
        await asyncio.sleep(0)
        return snapshot


class AlwaysConflictingStorage(InMemoryTransactionStorage):
    """Every update loses to an imaginary concurrent writer."""

    def __init__(self):
        super().__init__()
        self.update_attempts = 0

    async def save_transaction(self, transaction, expected_version):
        if expected_version is not None:
            self.update_attempts += 1
            raise VersionConflictError(transaction.id, expected_version, expected_version + 1)
        return await super().save_transaction(transaction, expected_version)


class FlakyStorage(InMemoryTransactionStorage):
    """Loads time out until `failures` runs out."""

    def __init__(self):
        super().__init__()
        self.failures = 0
        self.load_calls = 0

    async def load_transaction(self, transaction_id):
        self.load_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise StorageTimeoutError("load timed out")
        return await super().load_transaction(transaction_id)


class BrokenStorage(InMemoryTransactionStorage):
    """Updates fail with a non-retryable storage error."""

    async def save_transaction(self, transaction, expected_version):
        if expected_version is not None:
            raise StorageError("disk full")
        return await super().save_transaction(transaction, expected_version)


class CommitThenTimeoutStorage(InMemoryTransactionStorage):
    """Writes commit, then report a timeout once while `armed` is set."""

    def __init__(self):
        super().__init__()
        self.armed = False

    def _trip(self):
        if self.armed:
            self.armed = False
            raise StorageTimeoutError("write timed out after commit")

    async def save_transaction(self, transaction, expected_version):
        stored = await super().save_transaction(transaction, expected_version)
        self._trip()
        return stored

    async def delete_transaction(self, transaction_id, expected_version=None):
        await super().delete_transaction(transaction_id, expected_version)
        self._trip()


class TimeoutBeforeCommitStorage(InMemoryTransactionStorage):
    """Saves time out without committing while `armed` is set."""

    def __init__(self):
        super().__init__()
        self.armed = False
        self.save_calls = 0

    async def save_transaction(self, transaction, expected_version):
        self.save_calls += 1
        if self.armed:
            raise StorageTimeoutError("save timed out")
        return await super().save_transaction(transaction, expected_version)


class FailingSink(NotificationSinkInterface):
    async def notify(self, identity_ref, event_kind, payload):
        raise ConnectionError("push gateway unreachable")


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def settings() -> Settings:
    return Settings(
        engine=EngineSettings(),
        persistence=PersistenceSettings(
            transient_backoff_min_seconds=0,
            transient_backoff_max_seconds=0,
        ),
        notifications=NotificationSettings(),
    )


@pytest.fixture
def directory() -> InMemoryIdentityDirectory:
    directory = InMemoryIdentityDirectory()
    directory.register("user-1", username="olivia", display_name="Olivia")
    directory.register("user-2", username="alice", display_name="Alice")
    directory.register("user-3", username="carol", display_name="Carol")
    directory.register("user-4", username="dave", display_name="Dave")
    return directory


@pytest.fixture
def sink() -> InMemoryNotificationSink:
    return InMemoryNotificationSink()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def storage() -> InMemoryTransactionStorage:
    return InMemoryTransactionStorage()


@pytest.fixture
def engine(settings, storage, directory, sink, audit_storage) -> TransactionEngine:
    return create_engine(
        settings=settings,
        storage=storage,
        identity_resolver=directory,
        notification_sink=sink,
        audit_storage=audit_storage,
    )


def shares_of(transaction):
    return [transaction.creator_share.share_amount] + [
        p.share_amount for p in transaction.participants
    ]


def assert_sums(transaction):
    assert transaction.base_share_total == transaction.amount
    assert transaction.effective_share_total == transaction.amount
    for participant in transaction.participants:
        if participant.status != ParticipantStatus.ACCEPTED:
            assert participant.share_amount == Decimal("0.00")


# =============================================================================
# create
# =============================================================================

class TestCreate:
    """Tests for creating transactions."""

    @pytest.mark.asyncio
    async def test_externals_accepted_immediately(self, engine):
        """Test 300.00 split with two externals owing 100.00 each."""
        tx = await engine.create(
            "user-1", "300.00", "expense", True,
            [{"name": "Bob", "amount": "100.00"}, {"name": "Eve", "amount": "100.00"}],
        )

        assert tx.creator_share.base_share_amount == Decimal("100.00")
        assert tx.creator_share.base_share_percent == Decimal("33.33")
        assert all(p.status == ParticipantStatus.ACCEPTED for p in tx.participants)
        assert shares_of(tx) == [Decimal("100.00")] * 3
        assert tx.version == 1
        assert_sums(tx)

    @pytest.mark.asyncio
    async def test_members_start_pending(self, engine):
        """Test 150.00 with two members owing 50.00 each."""
        tx = await engine.create(
            "user-1", "150.00", "expense", True,
            [{"user_id": "user-2", "amount": "50.00"}, {"user_id": "user-3", "amount": "50.00"}],
        )

        assert tx.creator_share.base_share_amount == Decimal("50.00")
        assert [p.status for p in tx.participants] == [ParticipantStatus.PENDING] * 2
        assert tx.creator_share.share_amount == Decimal("150.00")
        assert tx.creator_share.share_percent == Decimal("100.00")
        assert_sums(tx)

        first = tx.participants[0]
        tx = await engine.respond(tx.id, first.id, "user-2", "accepted")
        assert shares_of(tx) == [Decimal("75.00"), Decimal("75.00"), Decimal("0.00")]
        assert_sums(tx)

    @pytest.mark.asyncio
    async def test_not_shared(self, engine):
        tx = await engine.create("user-1", "500.00", TransactionKind.INCOME)

        assert tx.is_shared is False
        assert tx.participants == []
        assert tx.creator_share.base_share_amount == Decimal("500.00")
        assert tx.creator_share.share_amount == Decimal("500.00")

    @pytest.mark.asyncio
    async def test_percent_mode(self, engine):
        tx = await engine.create(
            "user-1", "200.00", "expense", True,
            [{"name": "Bob", "percent": "25"}, {"username": "alice", "percent": "25"}],
        )
        assert tx.creator_share.base_share_amount == Decimal("100.00")
        assert [p.base_share_amount for p in tx.participants] == [Decimal("50.00"), Decimal("50.00")]
        assert_sums(tx)

    @pytest.mark.asyncio
    async def test_equal_mode_awkward_total(self, engine):
        tx = await engine.create(
            "user-1", "100.00", "expense", True,
            [{"name": "Bob"}, {"name": "Eve"}],
        )
        assert [tx.creator_share.base_share_amount] + [
            p.base_share_amount for p in tx.participants
        ] == [Decimal("33.34"), Decimal("33.33"), Decimal("33.33")]
        assert shares_of(tx) == [Decimal("33.34"), Decimal("33.33"), Decimal("33.33")]
        assert_sums(tx)

    @pytest.mark.asyncio
    async def test_username_resolves_to_member(self, engine):
        tx = await engine.create(
            "user-1", "20.00", "expense", True, [{"username": "Alice"}]
        )
        assert tx.participants[0].identity_ref == "user-2"

    @pytest.mark.asyncio
    async def test_invitations_go_to_members_only(self, engine, sink):
        await engine.create(
            "user-1", "30.00", "expense", True,
            [{"user_id": "user-2"}, {"name": "Bob"}],
        )
        await engine.drain_notifications()

        invitations = sink.of_kind(NotificationEventKind.TRANSACTION_INVITATION)
        assert [n.recipient for n in invitations] == ["user-2"]

    @pytest.mark.asyncio
    async def test_created_is_audited(self, engine, audit_storage):
        tx = await engine.create("user-1", "10.00", "expense")

        events = await audit_storage.get_events_by_entity("transaction", tx.id)
        assert [e.event_type for e in events] == [AuditEventType.TRANSACTION_CREATED]

    @pytest.mark.asyncio
    async def test_unknown_username(self, engine, audit_storage):
        """Test that nothing is stored when a username does not resolve."""
        with pytest.raises(InvalidInputError):
            await engine.create("user-1", "10.00", "expense", True, [{"username": "nobody"}])

        assert await engine.list_transactions("user-1") == []
        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.VALIDATION_FAILED

    @pytest.mark.asyncio
    async def test_unknown_user_id(self, engine):
        with pytest.raises(StaleIdentityError):
            await engine.create("user-1", "10.00", "expense", True, [{"user_id": "user-99"}])

    @pytest.mark.asyncio
    async def test_creator_by_username(self, engine):
        with pytest.raises(InvalidInputError):
            await engine.create("user-1", "10.00", "expense", True, [{"username": "olivia"}])

    @pytest.mark.asyncio
    async def test_same_member_twice_via_two_forms(self, engine):
        with pytest.raises(InvalidInputError):
            await engine.create(
                "user-1", "10.00", "expense", True,
                [{"user_id": "user-2"}, {"username": "alice"}],
            )

    @pytest.mark.asyncio
    async def test_shares_exceeding_total(self, engine):
        with pytest.raises(InvalidInputError):
            await engine.create(
                "user-1", "10.00", "expense", True,
                [{"name": "Bob", "amount": "10.01"}],
            )

    @pytest.mark.asyncio
    async def test_participants_on_unshared(self, engine):
        with pytest.raises(InvalidInputError):
            await engine.create("user-1", "10.00", "expense", False, [{"name": "Bob"}])

    @pytest.mark.asyncio
    async def test_stale_creator(self, engine, directory):
        directory.remove("user-1")
        with pytest.raises(StaleIdentityError):
            await engine.create("user-1", "10.00", "expense")


# =============================================================================
# get
# =============================================================================

class TestGet:
    """Tests for reading a transaction with labeled shares."""

    @pytest.mark.asyncio
    async def test_labels_creator_first(self, engine):
        tx = await engine.create(
            "user-1", "90.00", "expense", True,
            [{"user_id": "user-2"}, {"name": "Bob"}],
        )
        view = await engine.get(tx.id, "user-2")

        assert [s.label for s in view.shares] == ["Creator", "Alice", "Bob"]
        assert view.shares[0].is_creator
        assert view.shares[0].participant_id is None
        assert view.caller_share.participant_id == tx.participants[0].id
        assert view.caller_share.status == ParticipantStatus.PENDING

    @pytest.mark.asyncio
    async def test_deleted_account_falls_back_to_reference(self, engine, directory):
        tx = await engine.create("user-1", "10.00", "expense", True, [{"user_id": "user-2"}])
        directory.remove("user-2")

        view = await engine.get(tx.id, "user-1")
        assert view.shares[1].label == "user-2"

    @pytest.mark.asyncio
    async def test_outsider_forbidden(self, engine):
        tx = await engine.create("user-1", "10.00", "expense", True, [{"user_id": "user-2"}])
        with pytest.raises(ForbiddenError):
            await engine.get(tx.id, "user-3")

    @pytest.mark.asyncio
    async def test_unknown_transaction(self, engine):
        with pytest.raises(NotFoundError):
            await engine.get(uuid4(), "user-1")
        with pytest.raises(NotFoundError):
            await engine.get("not-a-uuid", "user-1")


# =============================================================================
# respond
# =============================================================================

class TestRespond:
    """Tests for accepting and declining invitations."""

    @pytest.mark.asyncio
    async def test_participant_of_another_transaction(self, engine, storage):
        """Test that a foreign participant id is NotFound and mutates nothing."""
        first = await engine.create("user-1", "10.00", "expense", True, [{"user_id": "user-2"}])
        second = await engine.create("user-1", "20.00", "expense", True, [{"user_id": "user-2"}])

        with pytest.raises(NotFoundError):
            await engine.respond(first.id, second.participants[0].id, "user-2", "accepted")

        assert await storage.load_transaction(first.id) == first
        assert await storage.load_transaction(second.id) == second

    @pytest.mark.asyncio
    async def test_someone_elses_row(self, engine):
        tx = await engine.create(
            "user-1", "10.00", "expense", True,
            [{"user_id": "user-2"}, {"name": "Bob"}],
        )
        with pytest.raises(ForbiddenError):
            await engine.respond(tx.id, tx.participants[0].id, "user-3", "accepted")
        with pytest.raises(ForbiddenError):
            await engine.respond(tx.id, tx.participants[1].id, "user-1", "declined")

    @pytest.mark.asyncio
    async def test_terminal_state(self, engine, storage):
        tx = await engine.create("user-1", "10.00", "expense", True, [{"user_id": "user-2"}])
        participant_id = tx.participants[0].id
        accepted = await engine.respond(tx.id, participant_id, "user-2", "accepted")

        with pytest.raises(InvalidStateError):
            await engine.respond(tx.id, participant_id, "user-2", "declined")
        with pytest.raises(InvalidStateError):
            await engine.respond(tx.id, participant_id, "user-2", "accepted")
        assert await storage.load_transaction(tx.id) == accepted

    @pytest.mark.asyncio
    async def test_pending_is_not_a_response(self, engine):
        tx = await engine.create("user-1", "10.00", "expense", True, [{"user_id": "user-2"}])
        with pytest.raises(InvalidInputError):
            await engine.respond(tx.id, tx.participants[0].id, "user-2", "pending")

    @pytest.mark.asyncio
    async def test_stale_caller(self, engine, directory):
        tx = await engine.create("user-1", "10.00", "expense", True, [{"user_id": "user-2"}])
        directory.remove("user-2")
        with pytest.raises(StaleIdentityError):
            await engine.respond(tx.id, tx.participants[0].id, "user-2", "accepted")

    @pytest.mark.asyncio
    async def test_last_decline_unshares(self, engine, sink):
        tx = await engine.create("user-1", "10.00", "expense", True, [{"user_id": "user-2"}])
        tx = await engine.respond(tx.id, tx.participants[0].id, "user-2", "declined")
        await engine.drain_notifications()

        assert tx.creator_share.share_amount == Decimal("10.00")
        kinds = [n.event_kind for n in sink.for_recipient("user-1")]
        assert NotificationEventKind.PARTICIPANT_DECLINED in kinds
        assert NotificationEventKind.TRANSACTION_NO_LONGER_SHARED in kinds

    @pytest.mark.asyncio
    async def test_accept_notifies_creator_and_accepted_members(self, engine, sink):
        tx = await engine.create(
            "user-1", "30.00", "expense", True,
            [{"user_id": "user-2"}, {"user_id": "user-3"}],
        )
        await engine.respond(tx.id, tx.participants[0].id, "user-2", "accepted")
        tx = await engine.respond(tx.id, tx.participants[1].id, "user-3", "accepted")
        await engine.drain_notifications()

        assert shares_of(tx) == [Decimal("10.00")] * 3
        to_alice = [
            n for n in sink.for_recipient("user-2")
            if n.event_kind == NotificationEventKind.PARTICIPANT_ACCEPTED
        ]
        assert [n.payload["responder_id"] for n in to_alice] == ["user-3"]
        assert len(sink.for_recipient("user-1")) == 2

    @pytest.mark.asyncio
    async def test_response_is_audited(self, engine, audit_storage):
        tx = await engine.create("user-1", "10.00", "expense", True, [{"user_id": "user-2"}])
        participant_id = tx.participants[0].id
        await engine.respond(tx.id, participant_id, "user-2", "accepted")

        events = await audit_storage.get_events_by_entity("participant", participant_id)
        assert events[0].details["status"] == "accepted"

    @pytest.mark.asyncio
    async def test_sums_hold_through_every_response(self, engine):
        tx = await engine.create(
            "user-1", "100.00", "expense", True,
            [{"user_id": "user-2"}, {"user_id": "user-3"}, {"user_id": "user-4"}],
        )
        for participant, caller, status in zip(
            tx.participants,
            ["user-2", "user-3", "user-4"],
            ["accepted", "declined", "accepted"],
        ):
            tx = await engine.respond(tx.id, participant.id, caller, status)
            assert_sums(tx)

        assert shares_of(tx) == [
            Decimal("33.34"), Decimal("33.33"), Decimal("0.00"), Decimal("33.33")
        ]


# =============================================================================
# edit_participants
# =============================================================================

class TestEditParticipants:
    """Tests for whole-list participant edits."""

    @pytest.mark.asyncio
    async def test_replaces_rows_and_ids(self, engine, sink):
        tx = await engine.create(
            "user-1", "60.00", "expense", True,
            [{"user_id": "user-2"}, {"user_id": "user-3"}],
        )
        old_ids = {p.id for p in tx.participants}
        await engine.respond(tx.id, tx.participants[0].id, "user-2", "accepted")

        edited = await engine.edit_participants(
            tx.id, "user-1", "90.00", [{"username": "alice"}, {"user_id": "user-4"}]
        )
        await engine.drain_notifications()

        assert edited.amount == Decimal("90.00")
        assert not old_ids & {p.id for p in edited.participants}
        assert [p.identity_ref for p in edited.participants] == ["user-2", "user-4"]
        assert [p.base_share_amount for p in edited.participants] == [Decimal("30.00")] * 2
        assert all(p.status == ParticipantStatus.PENDING for p in edited.participants)
        assert edited.creator_share.share_amount == Decimal("90.00")
        assert_sums(edited)

        assert sink.for_recipient("user-2")[-1].event_kind == NotificationEventKind.TRANSACTION_UPDATED
        assert sink.for_recipient("user-3")[-1].event_kind == NotificationEventKind.PARTICIPANT_REMOVED
        assert sink.for_recipient("user-4")[-1].event_kind == NotificationEventKind.TRANSACTION_INVITATION

    @pytest.mark.asyncio
    async def test_old_participant_id_is_stale(self, engine, storage):
        tx = await engine.create("user-1", "10.00", "expense", True, [{"user_id": "user-2"}])
        old_id = tx.participants[0].id
        edited = await engine.edit_participants(tx.id, "user-1", "10.00", [{"user_id": "user-2"}])

        with pytest.raises(NotFoundError):
            await engine.respond(tx.id, old_id, "user-2", "accepted")
        assert await storage.load_transaction(tx.id) == edited

    @pytest.mark.asyncio
    async def test_empty_list_turns_sharing_off(self, engine):
        tx = await engine.create("user-1", "10.00", "expense", True, [{"name": "Bob"}])
        edited = await engine.edit_participants(tx.id, "user-1", "10.00", [])

        assert edited.is_shared is False
        assert edited.participants == []
        assert edited.creator_share.share_percent == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_only_creator(self, engine):
        tx = await engine.create("user-1", "10.00", "expense", True, [{"user_id": "user-2"}])
        with pytest.raises(ForbiddenError):
            await engine.edit_participants(tx.id, "user-2", "10.00", [{"name": "Bob"}])

    @pytest.mark.asyncio
    async def test_invalid_edit_mutates_nothing(self, engine, storage):
        tx = await engine.create("user-1", "10.00", "expense", True, [{"user_id": "user-2"}])
        with pytest.raises(InvalidInputError):
            await engine.edit_participants(
                tx.id, "user-1", "10.00", [{"name": "Bob", "amount": "11.00"}]
            )
        assert await storage.load_transaction(tx.id) == tx

    @pytest.mark.asyncio
    async def test_unknown_transaction(self, engine):
        with pytest.raises(NotFoundError):
            await engine.edit_participants(uuid4(), "user-1", "10.00", [])


# =============================================================================
# delete
# =============================================================================

class TestDelete:
    """Tests for deleting transactions."""

    @pytest.mark.asyncio
    async def test_creator_deletes(self, engine, sink):
        tx = await engine.create("user-1", "10.00", "expense", True, [{"user_id": "user-2"}])
        await engine.delete(tx.id, "user-1")
        await engine.drain_notifications()

        with pytest.raises(NotFoundError):
            await engine.get(tx.id, "user-1")
        assert sink.for_recipient("user-2")[-1].event_kind == NotificationEventKind.TRANSACTION_DELETED

    @pytest.mark.asyncio
    async def test_only_creator(self, engine):
        tx = await engine.create("user-1", "10.00", "expense", True, [{"user_id": "user-2"}])
        with pytest.raises(ForbiddenError):
            await engine.delete(tx.id, "user-2")

    @pytest.mark.asyncio
    async def test_twice(self, engine):
        tx = await engine.create("user-1", "10.00", "expense")
        await engine.delete(tx.id, "user-1")
        with pytest.raises(NotFoundError):
            await engine.delete(tx.id, "user-1")


# =============================================================================
# listings
# =============================================================================

class TestListings:
    """Tests for invitation and transaction listings."""

    @pytest.mark.asyncio
    async def test_pending_invitations(self, engine):
        tx = await engine.create(
            "user-1", "40.00", "expense", True,
            [{"user_id": "user-2", "amount": "15.00"}],
            description="Dinner",
        )

        invitations = await engine.list_pending_invitations("user-2")
        assert len(invitations) == 1
        assert invitations[0].transaction_id == tx.id
        assert invitations[0].base_share_amount == Decimal("15.00")
        assert invitations[0].description == "Dinner"

        await engine.respond(tx.id, invitations[0].participant_id, "user-2", "accepted")
        assert await engine.list_pending_invitations("user-2") == []

    @pytest.mark.asyncio
    async def test_declined_transactions_are_hidden(self, engine):
        kept = await engine.create("user-1", "10.00", "expense", True, [{"user_id": "user-2"}])
        declined = await engine.create("user-1", "20.00", "expense", True, [{"user_id": "user-2"}])
        await engine.respond(declined.id, declined.participants[0].id, "user-2", "declined")

        assert [t.id for t in await engine.list_transactions("user-2")] == [kept.id]
        assert len(await engine.list_transactions("user-1")) == 2


# =============================================================================
# concurrency, persistence failures and notifications
# =============================================================================

class TestConcurrency:
    """Tests for concurrent writers on one transaction."""

    @pytest.mark.asyncio
    async def test_concurrent_responders_both_land(self, settings, directory, sink, audit_storage):
        engine = create_engine(
            settings=settings,
            storage=InterleavingStorage(),
            identity_resolver=directory,
            notification_sink=sink,
            audit_storage=audit_storage,
        )
        tx = await engine.create(
            "user-1", "150.00", "expense", True,
            [{"user_id": "user-2"}, {"user_id": "user-3"}],
        )

        await asyncio.gather(
            engine.respond(tx.id, tx.participants[0].id, "user-2", "accepted"),
            engine.respond(tx.id, tx.participants[1].id, "user-3", "accepted"),
        )

        final = (await engine.get(tx.id, "user-1")).transaction
        assert [p.status for p in final.participants] == [ParticipantStatus.ACCEPTED] * 2
        assert shares_of(final) == [Decimal("50.00")] * 3
        assert final.version == 3
        assert_sums(final)

    @pytest.mark.asyncio
    async def test_conflict_budget_exhausted(self, settings, directory, audit_storage):
        storage = AlwaysConflictingStorage()
        engine = create_engine(
            settings=settings,
            storage=storage,
            identity_resolver=directory,
            audit_storage=audit_storage,
        )
        tx = await engine.create("user-1", "10.00", "expense", True, [{"user_id": "user-2"}])

        with pytest.raises(ConflictError):
            await engine.respond(tx.id, tx.participants[0].id, "user-2", "accepted")

        assert storage.update_attempts == settings.persistence.conflict_retry_attempts
        assert (await storage.load_transaction(tx.id)).participants[0].status == ParticipantStatus.PENDING
        events = await audit_storage.get_events_by_entity("transaction", tx.id)
        assert events[-1].event_type == AuditEventType.WRITE_CONFLICT

    @pytest.mark.asyncio
    @pytest.mark.parametrize("edit_first", [False, True])
    async def test_response_racing_participant_edit(
        self, settings, directory, sink, audit_storage, edit_first
    ):
        """Test that the edit always wins the row and a late response finds no participant."""
        storage = InterleavingStorage()
        engine = create_engine(
            settings=settings,
            storage=storage,
            identity_resolver=directory,
            notification_sink=sink,
            audit_storage=audit_storage,
        )
        tx = await engine.create("user-1", "10.00", "expense", True, [{"user_id": "user-2"}])
        old_id = tx.participants[0].id

        respond = engine.respond(tx.id, old_id, "user-2", "accepted")
        edit = engine.edit_participants(tx.id, "user-1", "10.00", [{"user_id": "user-2"}])
        if edit_first:
            edited, responded = await asyncio.gather(edit, respond, return_exceptions=True)
        else:
            responded, edited = await asyncio.gather(respond, edit, return_exceptions=True)

        assert not isinstance(edited, Exception)
        if isinstance(responded, Exception):
            assert isinstance(responded, NotFoundError)
        else:
            assert responded.participants[0].status == ParticipantStatus.ACCEPTED
            assert edited.version > responded.version

        final = await storage.load_transaction(tx.id)
        assert final == edited
        assert old_id not in {p.id for p in final.participants}
        assert [p.status for p in final.participants] == [ParticipantStatus.PENDING]
        assert_sums(final)


class TestPersistenceFailures:
    """Tests for storage timeouts and failures."""

    @pytest.mark.asyncio
    async def test_timeout_is_retried(self, settings, directory):
        storage = FlakyStorage()
        engine = create_engine(settings=settings, storage=storage, identity_resolver=directory)
        tx = await engine.create("user-1", "10.00", "expense")

        storage.failures = 1
        view = await engine.get(tx.id, "user-1")

        assert view.transaction.id == tx.id
        assert storage.load_calls == 2

    @pytest.mark.asyncio
    async def test_persistent_timeout_is_transient_error(self, settings, directory):
        storage = FlakyStorage()
        engine = create_engine(settings=settings, storage=storage, identity_resolver=directory)
        tx = await engine.create("user-1", "10.00", "expense", True, [{"user_id": "user-2"}])

        storage.failures = 100
        with pytest.raises(TransientError):
            await engine.respond(tx.id, tx.participants[0].id, "user-2", "accepted")

        assert storage.load_calls == settings.persistence.transient_retry_attempts

    @pytest.mark.asyncio
    async def test_storage_error_is_audited_and_raised(self, settings, directory, audit_storage):
        engine = create_engine(
            settings=settings,
            storage=BrokenStorage(),
            identity_resolver=directory,
            audit_storage=audit_storage,
        )
        tx = await engine.create("user-1", "10.00", "expense", True, [{"user_id": "user-2"}])

        with pytest.raises(StorageError):
            await engine.respond(tx.id, tx.participants[0].id, "user-2", "accepted")

        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.SYSTEM_ERROR
        assert events[0].details["operation"] == "respond"

    @pytest.mark.asyncio
    async def test_committed_response_survives_save_timeout(self, settings, directory, audit_storage):
        """Test that a response whose save landed before the timeout is reported as done."""
        storage = CommitThenTimeoutStorage()
        engine = create_engine(
            settings=settings,
            storage=storage,
            identity_resolver=directory,
            audit_storage=audit_storage,
        )
        tx = await engine.create("user-1", "10.00", "expense", True, [{"user_id": "user-2"}])
        participant_id = tx.participants[0].id

        storage.armed = True
        accepted = await engine.respond(tx.id, participant_id, "user-2", "accepted")

        assert accepted.participants[0].status == ParticipantStatus.ACCEPTED
        assert accepted.version == 2
        assert await storage.load_transaction(tx.id) == accepted
        events = await audit_storage.get_events_by_entity("participant", participant_id)
        assert [e.event_type for e in events] == [AuditEventType.PARTICIPANT_RESPONDED]

    @pytest.mark.asyncio
    async def test_committed_create_survives_save_timeout(self, settings, directory):
        storage = CommitThenTimeoutStorage()
        engine = create_engine(settings=settings, storage=storage, identity_resolver=directory)

        storage.armed = True
        tx = await engine.create("user-1", "10.00", "expense", True, [{"user_id": "user-2"}])

        assert tx.version == 1
        assert [t.id for t in await engine.list_transactions("user-1")] == [tx.id]

    @pytest.mark.asyncio
    async def test_committed_delete_survives_timeout(self, settings, directory):
        storage = CommitThenTimeoutStorage()
        engine = create_engine(settings=settings, storage=storage, identity_resolver=directory)
        tx = await engine.create("user-1", "10.00", "expense")

        storage.armed = True
        await engine.delete(tx.id, "user-1")

        assert await storage.load_transaction(tx.id) is None

    @pytest.mark.asyncio
    async def test_uncommitted_save_timeout_is_not_repeated(self, settings, directory):
        storage = TimeoutBeforeCommitStorage()
        engine = create_engine(settings=settings, storage=storage, identity_resolver=directory)
        tx = await engine.create("user-1", "10.00", "expense", True, [{"user_id": "user-2"}])

        storage.armed = True
        storage.save_calls = 0
        with pytest.raises(TransientError):
            await engine.respond(tx.id, tx.participants[0].id, "user-2", "accepted")

        assert storage.save_calls == 1
        assert await storage.load_transaction(tx.id) == tx


class TestNotificationFailures:
    """Tests that delivery never reaches committed state."""

    @pytest.mark.asyncio
    async def test_failing_sink(self, settings, storage, directory, audit_storage):
        engine = create_engine(
            settings=settings,
            storage=storage,
            identity_resolver=directory,
            notification_sink=FailingSink(),
            audit_storage=audit_storage,
        )
        tx = await engine.create("user-1", "10.00", "expense", True, [{"user_id": "user-2"}])
        tx = await engine.respond(tx.id, tx.participants[0].id, "user-2", "accepted")
        await engine.drain_notifications()

        assert await storage.load_transaction(tx.id) == tx
        failures = [
            e for e in await audit_storage.get_recent_events()
            if e.event_type == AuditEventType.NOTIFICATION_FAILED
        ]
        assert len(failures) == 2
