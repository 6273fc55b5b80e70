"""
Share Allocator

Pure computation: turns a total and a list of participant requests into
base shares, and a set of ACCEPTED participants into effective shares.
Side effects (persistence, notifications) belong to the orchestrator.

Two allocation contexts share one shape: the creator is always first,
parts always sum exactly to the total, and percents are always derived
from the final amounts, never taken from the caller.

Base allocation request modes:
    AMOUNTS  - every participant names an amount; the creator keeps the rest
    PERCENTS - every participant names a percent; amounts follow by weight
    EQUAL    - nobody names anything; creator and participants split evenly
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional, Sequence

import structlog

from shareengine.models.transaction import (
    CreatorShare,
    Participant,
    ParticipantRequest,
    ParticipantStatus,
)
from shareengine.money import (
    HUNDRED,
    ZERO,
    distribute_by_weights,
    percent_of,
    split_evenly,
    to_money,
)

logger = structlog.get_logger(__name__)


class AllocationError(ValueError):
    """Allocation preconditions were violated."""
    pass


class AllocationMode(str, Enum):
    AMOUNTS = "amounts"
    PERCENTS = "percents"
    EQUAL = "equal"


@dataclass(frozen=True)
class ShareSplit:
    """An amount and the percentage of the total it represents."""
    amount: Decimal
    percent: Decimal


@dataclass(frozen=True)
class BaseAllocation:
    """Base shares for the creator and each explicit participant, in order."""
    mode: AllocationMode
    creator: ShareSplit
    participants: list[ShareSplit]


def detect_mode(requests: Sequence[ParticipantRequest]) -> AllocationMode:
    """
    Decide which request mode a participant list uses.

    Raises AllocationError when modes are mixed within one list.
    """
    if requests and all(r.amount is not None for r in requests):
        return AllocationMode.AMOUNTS
    if requests and all(r.amount is None and r.percent is not None for r in requests):
        return AllocationMode.PERCENTS
    if all(r.amount is None and r.percent is None for r in requests):
        return AllocationMode.EQUAL
    raise AllocationError(
        "Participants must all give an amount, all give only a percent, or all give neither"
    )


def allocate_base_shares(
    total: Decimal,
    requests: Sequence[ParticipantRequest],
) -> BaseAllocation:
    """
    Compute base shares at creation (or explicit edit) time.

    The creator comes first. Caller-supplied percents are never trusted:
    every percent returned is recomputed from its final amount.

    Raises:
        AllocationError: If explicit shares exceed the total or modes are mixed
    """
    total = to_money(total)
    if total <= 0:
        raise AllocationError("Total must be positive")

    mode = detect_mode(requests)

    if mode == AllocationMode.AMOUNTS:
        amounts = [to_money(r.amount) for r in requests]
        explicit_total = sum(amounts, ZERO)
        if explicit_total > total:
            raise AllocationError(
                f"Participant shares {explicit_total} exceed transaction amount {total}"
            )
        parts = [total - explicit_total] + amounts
    elif mode == AllocationMode.PERCENTS:
        percents = [Decimal(r.percent) for r in requests]
        explicit_percent = sum(percents, Decimal("0"))
        if explicit_percent > HUNDRED:
            raise AllocationError(
                f"Participant percentages {explicit_percent} exceed 100"
            )
        parts = distribute_by_weights(total, [HUNDRED - explicit_percent] + percents)
    else:
        parts = split_evenly(total, len(requests) + 1)

    splits = [ShareSplit(amount=part, percent=percent_of(part, total)) for part in parts]
    return BaseAllocation(mode=mode, creator=splits[0], participants=splits[1:])


def effective_shares(
    total: Decimal,
    accepted: Sequence[bool],
) -> Optional[list[Optional[ShareSplit]]]:
    """
    Equal penny-perfect split over the ACCEPTED entries.

    Args:
        total: Transaction amount
        accepted: One flag per position, creator first

    Returns:
        One entry per position: the split for accepted positions, None for
        the others. Returns None when nobody is accepted, meaning the
        previous effective shares must be left untouched.
    """
    count = sum(1 for flag in accepted if flag)
    if count == 0:
        return None

    total = to_money(total)
    parts = iter(split_evenly(total, count))
    result: list[Optional[ShareSplit]] = []
    for flag in accepted:
        if flag:
            part = next(parts)
            result.append(ShareSplit(amount=part, percent=percent_of(part, total)))
        else:
            result.append(None)
    return result


def recompute_effective_shares(
    total: Decimal,
    creator_share: CreatorShare,
    participants: Sequence[Participant],
) -> bool:
    """
    Recompute `share_amount`/`share_percent` in place.

    The creator is always accepted and comes first; participants follow
    in list order. Non-accepted participants carry a zero effective share.

    Returns False (and changes nothing) if no one is accepted.
    """
    flags = [True] + [p.status == ParticipantStatus.ACCEPTED for p in participants]
    splits = effective_shares(total, flags)
    if splits is None:
        logger.warning("effective_recompute_skipped", reason="no_accepted_participants")
        return False

    creator_split = splits[0]
    creator_share.share_amount = creator_split.amount
    creator_share.share_percent = creator_split.percent

    for participant, split in zip(participants, splits[1:]):
        if split is None:
            participant.share_amount = ZERO
            participant.share_percent = ZERO
        else:
            participant.share_amount = split.amount
            participant.share_percent = split.percent

    logger.debug(
        "effective_shares_recomputed",
        total=str(total),
        accepted_count=sum(1 for flag in flags if flag),
    )
    return True
