"""
Participant state machine: enforces valid status transitions.

Participant lifecycle:
    PENDING -> ACCEPTED
    PENDING -> DECLINED

State semantics:
- PENDING: invited member, carries no effective share yet.
- ACCEPTED: terminal. Carries an equal part of the effective split.
  External participants are born here and never move.
- DECLINED: terminal. Their would-be share is redistributed.

There is no un-accept and no un-decline. A new invitation needs a new
participant row, which only a whole-list edit creates. The creator's
implicit share is not a participant and has no state here.

Fail-closed: invalid transitions raise. There are no implicit transitions.
"""

from decimal import Decimal
from typing import Sequence

from shareengine.allocation.allocator import (
    allocate_base_shares,
    recompute_effective_shares,
)
from shareengine.errors import InvalidStateError
from shareengine.models.transaction import (
    CreatorShare,
    ExternalIdentity,
    Participant,
    ParticipantIdentity,
    ParticipantRequest,
    ParticipantStatus,
    Transaction,
)


# Valid transitions: {from_state: {allowed_to_states}}
_TRANSITIONS: dict[ParticipantStatus, set[ParticipantStatus]] = {
    ParticipantStatus.PENDING: {
        ParticipantStatus.ACCEPTED,
        ParticipantStatus.DECLINED,
    },
    # Terminal states, no outgoing transitions
    ParticipantStatus.ACCEPTED: set(),
    ParticipantStatus.DECLINED: set(),
}


class ParticipantStateMachine:
    """Creates participants in their initial state and applies transitions.

    Every applied transition triggers the effective-share recompute over
    the whole transaction, so status and shares change together.
    """

    @staticmethod
    def initial_status(identity: ParticipantIdentity) -> ParticipantStatus:
        """Externals are accepted immediately; members must be asked."""
        if isinstance(identity, ExternalIdentity):
            return ParticipantStatus.ACCEPTED
        return ParticipantStatus.PENDING

    @staticmethod
    def create_participants(
        total: Decimal,
        entries: Sequence[tuple[ParticipantIdentity, ParticipantRequest]],
    ) -> tuple[CreatorShare, list[Participant]]:
        """
        Build a fresh participant list with base and effective shares.

        Every participant gets a newly minted id. Base allocation runs
        first, then the effective split over the initial statuses.
        """
        allocation = allocate_base_shares(total, [request for _, request in entries])

        creator_share = CreatorShare(
            base_share_amount=allocation.creator.amount,
            base_share_percent=allocation.creator.percent,
        )
        participants = [
            Participant(
                identity=identity,
                base_share_amount=split.amount,
                base_share_percent=split.percent,
                status=ParticipantStateMachine.initial_status(identity),
            )
            for (identity, _), split in zip(entries, allocation.participants)
        ]

        recompute_effective_shares(total, creator_share, participants)
        return creator_share, participants

    @staticmethod
    def validate_transition(
        participant: Participant,
        target: ParticipantStatus,
    ) -> list[str]:
        """Check if a transition is valid. Returns errors (empty = OK)."""
        current = participant.status
        allowed = _TRANSITIONS.get(current, set())

        if target not in allowed:
            allowed_str = ", ".join(s.value for s in sorted(allowed, key=lambda x: x.value))
            return [
                f"Invalid participant transition: {current.value} -> {target.value}. "
                f"Allowed from {current.value}: [{allowed_str}]"
            ]
        return []

    @staticmethod
    def apply_transition(
        transaction: Transaction,
        participant: Participant,
        target: ParticipantStatus,
    ) -> None:
        """Validate and apply a transition, then recompute effective shares.

        Raises InvalidStateError and leaves everything untouched if the
        transition is not allowed.
        """
        errors = ParticipantStateMachine.validate_transition(participant, target)
        if errors:
            raise InvalidStateError(errors[0])

        participant.status = target
        recompute_effective_shares(
            transaction.amount,
            transaction.creator_share,
            transaction.participants,
        )

    @staticmethod
    def is_terminal(status: ParticipantStatus) -> bool:
        """Check if a status is terminal (no further transitions)."""
        return not _TRANSITIONS.get(status)

    @staticmethod
    def valid_transitions(status: ParticipantStatus) -> set[ParticipantStatus]:
        """Return the set of valid target statuses from the given status."""
        return set(_TRANSITIONS.get(status, set()))
