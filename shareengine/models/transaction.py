"""
Core Data Models for the Share Engine

These models define the strict schemas for transactions, their
participants and the requests that create or edit them.
They are designed to:
1. Keep every amount a two-decimal Decimal
2. Make the participant identity a closed variant (member or external)
3. Reject caller-supplied identifiers at the boundary
4. Be serializable for storage and logging

DESIGN DECISION: The creator's share lives on the transaction itself
(`creator_share`), never as a participant row. A caller can therefore
never address the creator's share through a participant id.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


Money = Annotated[Decimal, Field(ge=0, decimal_places=2)]
PositiveMoney = Annotated[Decimal, Field(gt=0, decimal_places=2)]
Percent = Annotated[Decimal, Field(ge=0, le=100, decimal_places=2)]


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionKind(str, Enum):
    """Direction of money for a transaction."""
    INCOME = "income"
    EXPENSE = "expense"


class ParticipantStatus(str, Enum):
    """
    Participant status.

    CRITICAL: ACCEPTED and DECLINED are terminal. A new invitation
    requires a new participant row (see editing participants).
    """
    ACCEPTED = "accepted"   # Carries an effective share
    PENDING = "pending"     # Invited member, has not answered
    DECLINED = "declined"   # Invited member said no


# =============================================================================
# PARTICIPANT IDENTITY - closed variant
# =============================================================================

class MemberIdentity(BaseModel):
    """A participant backed by a member account."""
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    kind: Literal["member"] = "member"
    user_id: str = Field(
        ...,
        min_length=1,
        description="Stable identity reference from the identity resolver"
    )


class ExternalIdentity(BaseModel):
    """
    A named split recipient with no member account.

    There is no one to ask, so externals are accepted immediately.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    kind: Literal["external"] = "external"
    placeholder_name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Free-text name shown for this participant"
    )


ParticipantIdentity = Annotated[
    Union[MemberIdentity, ExternalIdentity],
    Field(discriminator="kind"),
]


# =============================================================================
# CORE TRANSACTION MODELS
# =============================================================================

class Participant(BaseModel):
    """
    One explicit participant of a shared transaction.

    `base_share_*` is the proposed split fixed at creation (or at an
    explicit edit). `share_*` is the effective split over the currently
    ACCEPTED participants and changes on every status transition.
    """

    id: UUID = Field(
        default_factory=uuid4,
        description="Participant ID, minted by the engine, never by a caller"
    )
    identity: ParticipantIdentity
    base_share_amount: Money
    base_share_percent: Percent
    share_amount: Money = Decimal("0.00")
    share_percent: Percent = Decimal("0.00")
    status: ParticipantStatus

    @property
    def identity_ref(self) -> Optional[str]:
        """Member identity reference, or None for an external participant."""
        if isinstance(self.identity, MemberIdentity):
            return self.identity.user_id
        return None

    @property
    def is_external(self) -> bool:
        return isinstance(self.identity, ExternalIdentity)


class CreatorShare(BaseModel):
    """The creator's implicit share: always ACCEPTED, always the residual."""

    base_share_amount: Money
    base_share_percent: Percent
    share_amount: Money = Decimal("0.00")
    share_percent: Percent = Decimal("0.00")


class Transaction(BaseModel):
    """
    A monetary transaction, optionally shared between participants.

    CRITICAL invariants for every persisted transaction:
    - base shares (creator + all participants) sum to `amount`
    - effective shares (creator + ACCEPTED participants) sum to `amount`
    - a non-shared transaction has no participant rows
    """

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique transaction ID"
    )
    creator_id: str = Field(
        ...,
        min_length=1,
        description="Identity reference of the creator"
    )
    amount: PositiveMoney
    kind: TransactionKind
    is_shared: bool = False
    description: Optional[str] = Field(
        default=None,
        max_length=500,
    )

    creator_share: CreatorShare
    participants: list[Participant] = Field(default_factory=list)

    # Optimistic concurrency: 0 means never persisted
    version: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode='after')
    def validate_sharing(self) -> 'Transaction':
        """A non-shared transaction belongs to its creator alone."""
        if not self.is_shared and self.participants:
            raise ValueError("Non-shared transactions cannot have participants")
        return self

    def find_participant(self, participant_id: UUID) -> Optional[Participant]:
        """Look up a participant row of THIS transaction by id."""
        for participant in self.participants:
            if participant.id == participant_id:
                return participant
        return None

    def find_member(self, identity_ref: str) -> Optional[Participant]:
        for participant in self.participants:
            if participant.identity_ref == identity_ref:
                return participant
        return None

    def is_visible_to(self, identity_ref: str) -> bool:
        """Creator and every member participant may read the transaction."""
        return identity_ref == self.creator_id or self.find_member(identity_ref) is not None

    def member_participants(
        self,
        statuses: Optional[set[ParticipantStatus]] = None,
    ) -> list[Participant]:
        """Participants backed by a member account, optionally filtered by status."""
        return [
            p for p in self.participants
            if p.identity_ref is not None
            and (statuses is None or p.status in statuses)
        ]

    @property
    def base_share_total(self) -> Decimal:
        return self.creator_share.base_share_amount + sum(
            (p.base_share_amount for p in self.participants), Decimal("0.00")
        )

    @property
    def effective_share_total(self) -> Decimal:
        return self.creator_share.share_amount + sum(
            (
                p.share_amount for p in self.participants
                if p.status == ParticipantStatus.ACCEPTED
            ),
            Decimal("0.00"),
        )


# =============================================================================
# REQUEST MODELS - what callers may send
# =============================================================================

class ParticipantRequest(BaseModel):
    """
    A caller's description of one explicit participant.

    Exactly one identity form is allowed: a member (`user_id` or
    `username`) or an external (`name`).

    DESIGN DECISION: `extra="forbid"` means a caller cannot smuggle a
    participant `id` in. Identifiers are only ever minted by the engine.
    """
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    user_id: Optional[str] = Field(default=None, min_length=1)
    username: Optional[str] = Field(default=None, min_length=1)
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)

    amount: Optional[Money] = None
    percent: Optional[Decimal] = Field(
        default=None,
        ge=0,
        le=100,
        description="Informational only; always recomputed from amount"
    )

    @model_validator(mode='after')
    def validate_identity_form(self) -> 'ParticipantRequest':
        forms = [
            form for form, value in (
                ("user_id", self.user_id),
                ("username", self.username),
                ("name", self.name),
            )
            if value is not None
        ]
        if len(forms) != 1:
            raise ValueError(
                "Exactly one of user_id, username or name is required "
                f"(got: {', '.join(forms) or 'none'})"
            )
        return self

    @property
    def is_member(self) -> bool:
        return self.name is None


class CreateTransactionRequest(BaseModel):
    """Validated input for creating a transaction."""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    amount: PositiveMoney
    kind: TransactionKind
    is_shared: bool = False
    description: Optional[str] = Field(default=None, max_length=500)
    participants: list[ParticipantRequest] = Field(default_factory=list)


class EditParticipantsRequest(BaseModel):
    """Validated input for replacing a transaction's participant list."""
    model_config = ConfigDict(extra="forbid")

    amount: PositiveMoney
    participants: list[ParticipantRequest] = Field(default_factory=list)


# =============================================================================
# READ MODELS
# =============================================================================

class ShareView(BaseModel):
    """One row of a transaction's split, as seen by a particular caller."""

    participant_id: Optional[UUID] = Field(
        default=None,
        description="None for the creator's implicit share"
    )
    label: str
    identity_ref: Optional[str] = None
    is_creator: bool = False
    is_caller: bool = False
    status: ParticipantStatus
    base_share_amount: Decimal
    base_share_percent: Decimal
    share_amount: Decimal
    share_percent: Decimal


class TransactionView(BaseModel):
    """A transaction plus its labeled shares, creator first."""

    transaction: Transaction
    shares: list[ShareView]

    @property
    def caller_share(self) -> Optional[ShareView]:
        for share in self.shares:
            if share.is_caller:
                return share
        return None


class PendingInvitation(BaseModel):
    """An invitation still waiting for the invited member's answer."""

    transaction_id: UUID
    participant_id: UUID
    creator_id: str
    kind: TransactionKind
    amount: Decimal
    description: Optional[str] = None
    base_share_amount: Decimal
    base_share_percent: Decimal


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'exceeds_total', 'duplicate')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (types, required fields, bounds)
    Stage 2: Semantic validation (sums, modes, duplicates)
    """

    validated_at: datetime = Field(default_factory=_utcnow)

    schema_valid: bool
    semantic_valid: bool
    is_valid: bool

    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "warning"]
