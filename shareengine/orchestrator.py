"""
Transaction Engine (orchestrator)

This module ties together all the components and defines the public
operations on shared transactions:
1. create  (validate -> resolve identities -> allocate -> save)
2. get     (load -> authorize -> label shares for the caller)
3. respond (load -> authorize -> transition + recompute -> save)
4. edit_participants (load -> authorize -> replace list wholesale -> save)
5. delete  (load -> authorize -> delete)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is mutated unless validation passed
- Every read-modify-write is one atomic save against the loaded version,
  retried on conflict with a fresh snapshot
- Notifications go out after the commit and can never undo it
- Every committed mutation is audited
"""

from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union
from uuid import UUID

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from shareengine.allocation import AllocationError, ParticipantStateMachine
from shareengine.audit import AuditLogger, create_correlation_id
from shareengine.config import Settings, get_settings
from shareengine.errors import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    StaleIdentityError,
    TransientError,
)
from shareengine.models.notification import Notification, NotificationEventKind
from shareengine.models.transaction import (
    CreatorShare,
    ExternalIdentity,
    MemberIdentity,
    Participant,
    ParticipantIdentity,
    ParticipantRequest,
    ParticipantStatus,
    PendingInvitation,
    ShareView,
    Transaction,
    TransactionKind,
    TransactionView,
    ValidationIssue,
)
from shareengine.services.identity import (
    IdentityResolverInterface,
    InMemoryIdentityDirectory,
)
from shareengine.services.notifications import (
    InMemoryNotificationSink,
    NotificationDispatcher,
    NotificationSinkInterface,
)
from shareengine.services.storage import (
    AuditStorageInterface,
    InMemoryAuditStorage,
    InMemoryTransactionStorage,
    StorageError,
    StorageTimeoutError,
    TransactionStorageInterface,
    VersionConflictError,
)
from shareengine.validation import TransactionValidator

T = TypeVar("T")

ParticipantInput = Union[ParticipantRequest, dict[str, Any]]

_RESPONSE_STATUSES = {ParticipantStatus.ACCEPTED, ParticipantStatus.DECLINED}
_ACTIVE_STATUSES = {ParticipantStatus.ACCEPTED, ParticipantStatus.PENDING}


def _as_uuid(value: Union[UUID, str], what: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise NotFoundError(f"{what} not found: {value}")


def _holds_write(
    stored: Transaction,
    written: Transaction,
    expected_version: Optional[int],
) -> bool:
    """True if `stored` is `written` committed at the version after `expected_version`."""
    volatile = {"version", "updated_at"}
    return (
        stored.version == (expected_version or 0) + 1
        and stored.model_dump(exclude=volatile) == written.model_dump(exclude=volatile)
    )


class TransactionEngine:
    """
    Orchestrates every operation on shared transactions.

    The engine is stateless between calls. All state lives in the
    persisted transactions, reached through the storage boundary.

    Usage:
        engine = create_engine()
        tx = await engine.create("user-1", "150.00", "expense", True,
                                 [{"user_id": "user-2", "amount": "50.00"}])
        await engine.respond(tx.id, tx.participants[0].id, "user-2", "accepted")
    """

    def __init__(
        self,
        storage: TransactionStorageInterface,
        identity_resolver: IdentityResolverInterface,
        notification_sink: Optional[NotificationSinkInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[TransactionValidator] = None,
        settings: Optional[Settings] = None,
    ):
        self._settings = settings or get_settings()
        self._storage = storage
        self._identities = identity_resolver
        self._audit_logger = audit_logger or AuditLogger()
        self._validator = validator or TransactionValidator(self._settings.engine)
        self._notifications = NotificationDispatcher(
            notification_sink,
            self._settings.notifications,
            self._audit_logger,
        )
        self._logger = structlog.get_logger(__name__)

    # =========================================================================
    # Public operations
    # =========================================================================

    async def create(
        self,
        creator_id: str,
        amount: Any,
        kind: Union[TransactionKind, str],
        is_shared: bool = False,
        participants: Optional[list[ParticipantInput]] = None,
        description: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Create a transaction and its participants.

        Members start PENDING, externals ACCEPTED, and the creator keeps
        the residual of the base split.

        Raises:
            InvalidInputError: Malformed or inconsistent input
            StaleIdentityError: Creator or a listed member no longer exists
            TransientError: Storage timed out
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            request = self._validator.parse_create({
                "amount": amount,
                "kind": kind,
                "is_shared": is_shared,
                "description": description,
                "participants": participants or [],
            })
            self._validator.ensure_valid(
                self._validator.validate_create(request, creator_id)
            )
            await self._ensure_identity_exists(creator_id)
            entries = await self._resolve_participants(request.participants, creator_id)
            creator_share, rows = self._allocate(request.amount, entries)
        except InvalidInputError as e:
            await self._audit_rejection("create", e, creator_id, correlation_id)
            raise

        transaction = Transaction(
            creator_id=creator_id,
            amount=request.amount,
            kind=request.kind,
            is_shared=request.is_shared,
            description=request.description,
            creator_share=creator_share,
            participants=rows,
        )

        async def insert() -> Transaction:
            return await self._save(transaction, None)

        stored = await self._run_atomic("create", transaction.id, correlation_id, insert)

        self._logger.info(
            "transaction_created",
            transaction_id=str(stored.id),
            participant_count=len(stored.participants),
            correlation_id=str(correlation_id),
        )
        await self._audit_logger.log_transaction_created(
            transaction_id=stored.id,
            creator_id=creator_id,
            amount=str(stored.amount),
            participant_count=len(stored.participants),
            correlation_id=correlation_id,
        )
        self._notifications.dispatch([
            self._notification(p.identity_ref, NotificationEventKind.TRANSACTION_INVITATION,
                               stored, participant_id=str(p.id))
            for p in stored.member_participants({ParticipantStatus.PENDING})
        ])
        return stored

    async def get(
        self,
        transaction_id: Union[UUID, str],
        caller_id: str,
    ) -> TransactionView:
        """
        Read a transaction with base and effective shares for every row.

        Raises:
            NotFoundError: Unknown transaction
            ForbiddenError: Caller is neither creator nor participant
        """
        transaction = await self._load(_as_uuid(transaction_id, "Transaction"))
        if not transaction.is_visible_to(caller_id):
            raise ForbiddenError("Only the creator and participants can see this transaction")
        return await self._build_view(transaction, caller_id)

    async def respond(
        self,
        transaction_id: Union[UUID, str],
        participant_id: Union[UUID, str],
        caller_id: str,
        status: Union[ParticipantStatus, str],
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Accept or decline an invitation, for the caller's own row only.

        Status and every recomputed effective share are saved together.

        Raises:
            InvalidInputError: Status is not ACCEPTED or DECLINED
            NotFoundError: Transaction, or participant on that transaction, unknown
            ForbiddenError: The row belongs to someone else
            InvalidStateError: The row is no longer PENDING
            ConflictError: Concurrent writes kept winning
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            target = ParticipantStatus(status)
        except ValueError:
            target = None
        if target not in _RESPONSE_STATUSES:
            error = InvalidInputError(
                f"Response must be accepted or declined, got: {status}",
                [ValidationIssue(
                    field="status",
                    issue_type="invalid_value",
                    message="Response must be accepted or declined",
                    severity="error",
                )],
            )
            await self._audit_rejection("respond", error, caller_id, correlation_id)
            raise error

        transaction_id = _as_uuid(transaction_id, "Transaction")
        participant_id = _as_uuid(participant_id, "Participant")
        await self._ensure_identity_exists(caller_id)

        async def unit_of_work() -> Transaction:
            transaction = await self._load(transaction_id)
            participant = transaction.find_participant(participant_id)
            if participant is None:
                raise NotFoundError(
                    f"Participant {participant_id} not found on transaction {transaction_id}"
                )
            if participant.identity_ref != caller_id:
                raise ForbiddenError("Only the invited person can respond to this invitation")

            ParticipantStateMachine.apply_transition(transaction, participant, target)
            return await self._save(transaction, transaction.version)

        stored = await self._run_atomic("respond", transaction_id, correlation_id, unit_of_work)

        self._logger.info(
            "participant_responded",
            transaction_id=str(transaction_id),
            participant_id=str(participant_id),
            status=target.value,
            correlation_id=str(correlation_id),
        )
        await self._audit_logger.log_participant_responded(
            transaction_id=transaction_id,
            participant_id=participant_id,
            responder_id=caller_id,
            status=target.value,
            correlation_id=correlation_id,
        )
        self._notifications.dispatch(
            self._response_notifications(stored, participant_id, caller_id, target)
        )
        return stored

    async def edit_participants(
        self,
        transaction_id: Union[UUID, str],
        caller_id: str,
        amount: Any,
        participants: list[ParticipantInput],
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Replace the whole participant list (creator only).

        Every previous participant id is invalidated and fresh ones are
        minted. Base allocation runs again, then the effective split over
        the initial statuses. An empty list turns sharing off.

        Raises:
            InvalidInputError: Malformed or inconsistent input
            NotFoundError: Unknown transaction
            ForbiddenError: Caller is not the creator
            ConflictError: Concurrent writes kept winning
        """
        correlation_id = correlation_id or create_correlation_id()
        transaction_id = _as_uuid(transaction_id, "Transaction")

        try:
            request = self._validator.parse_edit({
                "amount": amount,
                "participants": participants,
            })
            self._validator.ensure_valid(
                self._validator.validate_edit(request, caller_id)
            )
            await self._ensure_identity_exists(caller_id)
            entries = await self._resolve_participants(request.participants, caller_id)
            creator_share, rows = self._allocate(request.amount, entries)
        except InvalidInputError as e:
            await self._audit_rejection("edit_participants", e, caller_id, correlation_id)
            raise

        async def unit_of_work() -> tuple[Transaction, Transaction]:
            transaction = await self._load(transaction_id)
            if transaction.creator_id != caller_id:
                raise ForbiddenError("Only the creator can edit participants")

            previous = transaction.model_copy(deep=True)
            transaction.amount = request.amount
            transaction.creator_share = creator_share
            transaction.participants = rows
            transaction.is_shared = bool(rows)

            stored = await self._save(transaction, transaction.version)
            return previous, stored

        previous, stored = await self._run_atomic(
            "edit_participants", transaction_id, correlation_id, unit_of_work
        )

        self._logger.info(
            "participants_replaced",
            transaction_id=str(transaction_id),
            removed=len(previous.participants),
            created=len(stored.participants),
            correlation_id=str(correlation_id),
        )
        await self._audit_logger.log_participants_replaced(
            transaction_id=transaction_id,
            creator_id=caller_id,
            removed_ids=[str(p.id) for p in previous.participants],
            created_ids=[str(p.id) for p in stored.participants],
            amount=str(stored.amount),
            correlation_id=correlation_id,
        )
        self._notifications.dispatch(self._edit_notifications(previous, stored))
        return stored

    async def delete(
        self,
        transaction_id: Union[UUID, str],
        caller_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Delete a transaction and all its participants (creator only).

        Raises:
            NotFoundError: Unknown transaction
            ForbiddenError: Caller is not the creator
        """
        correlation_id = correlation_id or create_correlation_id()
        transaction_id = _as_uuid(transaction_id, "Transaction")
        await self._ensure_identity_exists(caller_id)

        async def unit_of_work() -> Transaction:
            transaction = await self._load(transaction_id)
            if transaction.creator_id != caller_id:
                raise ForbiddenError("Only the creator can delete a transaction")
            await self._delete(transaction_id, transaction.version)
            return transaction

        deleted = await self._run_atomic("delete", transaction_id, correlation_id, unit_of_work)

        self._logger.info(
            "transaction_deleted",
            transaction_id=str(transaction_id),
            correlation_id=str(correlation_id),
        )
        await self._audit_logger.log_transaction_deleted(
            transaction_id=transaction_id,
            creator_id=caller_id,
            correlation_id=correlation_id,
        )
        self._notifications.dispatch([
            self._notification(p.identity_ref, NotificationEventKind.TRANSACTION_DELETED, deleted)
            for p in deleted.member_participants(_ACTIVE_STATUSES)
        ])

    async def list_pending_invitations(self, caller_id: str) -> list[PendingInvitation]:
        """Invitations still waiting for the caller's answer, oldest first."""
        transactions = await self._call_storage(
            lambda: self._storage.list_transactions_for_identity(caller_id)
        )
        invitations = []
        for transaction in transactions:
            participant = transaction.find_member(caller_id)
            if participant is None or participant.status != ParticipantStatus.PENDING:
                continue
            invitations.append(PendingInvitation(
                transaction_id=transaction.id,
                participant_id=participant.id,
                creator_id=transaction.creator_id,
                kind=transaction.kind,
                amount=transaction.amount,
                description=transaction.description,
                base_share_amount=participant.base_share_amount,
                base_share_percent=participant.base_share_percent,
            ))
        return invitations

    async def list_transactions(self, caller_id: str) -> list[Transaction]:
        """Transactions the caller created or takes part in, minus declined ones."""
        transactions = await self._call_storage(
            lambda: self._storage.list_transactions_for_identity(caller_id)
        )
        result = []
        for transaction in transactions:
            participant = transaction.find_member(caller_id)
            if participant is not None and participant.status == ParticipantStatus.DECLINED:
                continue
            result.append(transaction)
        return result

    async def drain_notifications(self) -> None:
        """Wait for notifications still in flight (shutdown, tests)."""
        await self._notifications.drain()

    # =========================================================================
    # Persistence helpers
    # =========================================================================

    async def _load(self, transaction_id: UUID) -> Transaction:
        transaction = await self._call_storage(
            lambda: self._storage.load_transaction(transaction_id)
        )
        if transaction is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        return transaction

    async def _save(
        self,
        transaction: Transaction,
        expected_version: Optional[int],
    ) -> Transaction:
        """
        Save once against `expected_version`.

        A timed-out save is never repeated. The row is reloaded instead,
        and if it holds exactly this write at the next version the save is
        taken as committed. Anything else is a TransientError.
        """
        try:
            return await self._storage.save_transaction(transaction, expected_version)
        except StorageTimeoutError as e:
            stored = await self._call_storage(
                lambda: self._storage.load_transaction(transaction.id)
            )
            if stored is not None and _holds_write(stored, transaction, expected_version):
                self._logger.warning(
                    "save_timeout_write_landed",
                    transaction_id=str(transaction.id),
                    version=stored.version,
                )
                return stored
            raise TransientError(
                f"Save of transaction {transaction.id} timed out: {e}"
            ) from e

    async def _delete(self, transaction_id: UUID, expected_version: int) -> None:
        """Delete once; a timeout is resolved by checking whether the row is gone."""
        try:
            await self._storage.delete_transaction(transaction_id, expected_version)
        except StorageTimeoutError as e:
            remaining = await self._call_storage(
                lambda: self._storage.load_transaction(transaction_id)
            )
            if remaining is not None:
                raise TransientError(
                    f"Delete of transaction {transaction_id} timed out: {e}"
                ) from e
            self._logger.warning("delete_timeout_row_gone", transaction_id=str(transaction_id))

    async def _call_storage(self, call: Callable[[], Awaitable[T]]) -> T:
        """
        Run one read-only storage call, retrying timeouts with exponential
        backoff. Writes go through `_save` and `_delete` instead.
        """
        persistence = self._settings.persistence
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(StorageTimeoutError),
                stop=stop_after_attempt(persistence.transient_retry_attempts),
                wait=wait_exponential(
                    multiplier=persistence.transient_backoff_min_seconds,
                    min=persistence.transient_backoff_min_seconds,
                    max=persistence.transient_backoff_max_seconds,
                ),
                before_sleep=self._log_retry("storage_timeout_retry"),
                reraise=True,
            ):
                with attempt:
                    result = await call()
        except StorageTimeoutError as e:
            raise TransientError(f"Storage did not answer in time: {e}") from e
        return result

    async def _run_atomic(
        self,
        operation: str,
        transaction_id: UUID,
        correlation_id: UUID,
        unit_of_work: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Run a load-modify-save unit, rerunning it on a version conflict.

        Each attempt loads a fresh snapshot, so a retry never reuses
        state computed against an outdated version.
        """
        attempts = self._settings.persistence.conflict_retry_attempts
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(VersionConflictError),
                stop=stop_after_attempt(attempts),
                before_sleep=self._log_retry("write_conflict_retry"),
                reraise=True,
            ):
                with attempt:
                    result = await unit_of_work()
        except VersionConflictError as e:
            await self._audit_logger.log_write_conflict(
                transaction_id=transaction_id,
                operation=operation,
                attempts=attempts,
                correlation_id=correlation_id,
            )
            raise ConflictError(
                f"{operation} on transaction {transaction_id} lost to concurrent writes"
            ) from e
        except StorageError as e:
            await self._audit_logger.log_error(
                error_type=type(e).__name__,
                error_message=str(e),
                details={"operation": operation, "transaction_id": str(transaction_id)},
                correlation_id=correlation_id,
            )
            raise
        return result

    def _log_retry(self, event: str) -> Callable[[RetryCallState], None]:
        def before_sleep(retry_state: RetryCallState) -> None:
            self._logger.warning(
                event,
                attempt=retry_state.attempt_number,
                error=str(retry_state.outcome.exception()),
            )
        return before_sleep

    # =========================================================================
    # Identity helpers
    # =========================================================================

    async def _ensure_identity_exists(self, identity_ref: str) -> None:
        if not await self._identities.exists(identity_ref):
            raise StaleIdentityError(identity_ref)

    async def _resolve_participants(
        self,
        requests: list[ParticipantRequest],
        creator_id: str,
    ) -> list[tuple[ParticipantIdentity, ParticipantRequest]]:
        """Turn each request into a typed identity, in input order."""
        entries: list[tuple[ParticipantIdentity, ParticipantRequest]] = []
        seen: set[str] = set()

        for index, request in enumerate(requests):
            if not request.is_member:
                entries.append((ExternalIdentity(placeholder_name=request.name), request))
                continue

            if request.username is not None:
                identity_ref = await self._identities.resolve_handle(request.username)
                if identity_ref is None:
                    raise self._participant_error(
                        index, "unknown_member", f"No member with username {request.username!r}"
                    )
            else:
                identity_ref = request.user_id
                await self._ensure_identity_exists(identity_ref)

            if identity_ref == creator_id:
                raise self._participant_error(
                    index, "creator_listed",
                    "The creator is always a participant and cannot be listed",
                )
            if identity_ref in seen:
                raise self._participant_error(
                    index, "duplicate", "The same member is listed more than once"
                )
            seen.add(identity_ref)
            entries.append((MemberIdentity(user_id=identity_ref), request))

        return entries

    @staticmethod
    def _allocate(
        total: Decimal,
        entries: list[tuple[ParticipantIdentity, ParticipantRequest]],
    ) -> tuple[CreatorShare, list[Participant]]:
        try:
            return ParticipantStateMachine.create_participants(total, entries)
        except AllocationError as e:
            raise InvalidInputError(str(e), [ValidationIssue(
                field="participants",
                issue_type="allocation",
                message=str(e),
                severity="error",
            )])

    @staticmethod
    def _participant_error(index: int, issue_type: str, message: str) -> InvalidInputError:
        return InvalidInputError(message, [ValidationIssue(
            field=f"participants.{index}",
            issue_type=issue_type,
            message=message,
            severity="error",
        )])

    # =========================================================================
    # Views and notifications
    # =========================================================================

    async def _build_view(self, transaction: Transaction, caller_id: str) -> TransactionView:
        creator = transaction.creator_share
        shares = [ShareView(
            label="Creator",
            identity_ref=transaction.creator_id,
            is_creator=True,
            is_caller=caller_id == transaction.creator_id,
            status=ParticipantStatus.ACCEPTED,
            base_share_amount=creator.base_share_amount,
            base_share_percent=creator.base_share_percent,
            share_amount=creator.share_amount,
            share_percent=creator.share_percent,
        )]

        for participant in transaction.participants:
            if isinstance(participant.identity, ExternalIdentity):
                label = participant.identity.placeholder_name
            else:
                # The account may be gone; fall back to the raw reference
                label = (
                    await self._identities.display_name(participant.identity_ref)
                    or participant.identity_ref
                )
            shares.append(ShareView(
                participant_id=participant.id,
                label=label,
                identity_ref=participant.identity_ref,
                is_caller=participant.identity_ref == caller_id,
                status=participant.status,
                base_share_amount=participant.base_share_amount,
                base_share_percent=participant.base_share_percent,
                share_amount=participant.share_amount,
                share_percent=participant.share_percent,
            ))

        return TransactionView(transaction=transaction, shares=shares)

    @staticmethod
    def _notification(
        recipient: str,
        event_kind: NotificationEventKind,
        transaction: Transaction,
        **extra: Any,
    ) -> Notification:
        payload = {
            "transaction_id": str(transaction.id),
            "description": transaction.description,
            "amount": str(transaction.amount),
        }
        payload.update(extra)
        return Notification(recipient=recipient, event_kind=event_kind, payload=payload)

    def _response_notifications(
        self,
        transaction: Transaction,
        participant_id: UUID,
        responder_id: str,
        target: ParticipantStatus,
    ) -> list[Notification]:
        event_kind = (
            NotificationEventKind.PARTICIPANT_ACCEPTED
            if target == ParticipantStatus.ACCEPTED
            else NotificationEventKind.PARTICIPANT_DECLINED
        )
        recipients = [transaction.creator_id] + [
            p.identity_ref
            for p in transaction.member_participants({ParticipantStatus.ACCEPTED})
            if p.identity_ref != responder_id
        ]
        notifications = [
            self._notification(
                recipient, event_kind, transaction,
                participant_id=str(participant_id), responder_id=responder_id,
            )
            for recipient in recipients
        ]

        if not any(p.status in _ACTIVE_STATUSES for p in transaction.participants):
            notifications.append(self._notification(
                transaction.creator_id,
                NotificationEventKind.TRANSACTION_NO_LONGER_SHARED,
                transaction,
            ))
        return notifications

    def _edit_notifications(
        self,
        previous: Transaction,
        current: Transaction,
    ) -> list[Notification]:
        before = {p.identity_ref for p in previous.member_participants()}
        notifications = []

        for participant in current.member_participants():
            event_kind = (
                NotificationEventKind.TRANSACTION_UPDATED
                if participant.identity_ref in before
                else NotificationEventKind.TRANSACTION_INVITATION
            )
            notifications.append(self._notification(
                participant.identity_ref, event_kind, current,
                participant_id=str(participant.id),
            ))

        after = {p.identity_ref for p in current.member_participants()}
        for identity_ref in sorted(before - after):
            notifications.append(self._notification(
                identity_ref, NotificationEventKind.PARTICIPANT_REMOVED, current,
            ))
        return notifications

    async def _audit_rejection(
        self,
        operation: str,
        error: InvalidInputError,
        actor_id: Optional[str],
        correlation_id: UUID,
    ) -> None:
        await self._audit_logger.log_validation_failed(
            operation=operation,
            issues=[
                {"field": i.field, "type": i.issue_type, "message": i.message}
                for i in error.issues
            ],
            actor_id=actor_id,
            correlation_id=correlation_id,
        )


def create_engine(
    settings: Optional[Settings] = None,
    storage: Optional[TransactionStorageInterface] = None,
    identity_resolver: Optional[IdentityResolverInterface] = None,
    notification_sink: Optional[NotificationSinkInterface] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
) -> TransactionEngine:
    """
    Factory function to create a fully wired engine.

    Any collaborator not given is replaced by its in-memory implementation.

    Returns:
        The configured TransactionEngine
    """
    return TransactionEngine(
        storage=storage or InMemoryTransactionStorage(),
        identity_resolver=identity_resolver or InMemoryIdentityDirectory(),
        notification_sink=notification_sink or InMemoryNotificationSink(),
        audit_logger=AuditLogger(audit_storage or InMemoryAuditStorage()),
        settings=settings,
    )
