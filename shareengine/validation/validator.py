"""
Two-Stage Validation Pipeline

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Type checking (amounts are decimals, kinds are known)
- Required field presence
- Bounds (positive amount, two decimal places, percent within 0-100)
- This catches malformed requests

STAGE 2 - SEMANTIC VALIDATION:
- Participants on a non-shared transaction
- Explicit shares exceeding the total
- Mixed allocation modes
- Percent/amount pairs that disagree
- The creator or a duplicate member among the participants
- This catches requests that are well-formed but impossible

IMPORTANT: Validation NEVER silently fixes issues, and it runs before
any state is touched. Every error becomes an InvalidInputError.
"""

from decimal import Decimal
from typing import Any, Optional

from pydantic import ValidationError

from shareengine.allocation.allocator import AllocationError, AllocationMode, detect_mode
from shareengine.config import EngineSettings
from shareengine.errors import InvalidInputError
from shareengine.models.transaction import (
    CreateTransactionRequest,
    EditParticipantsRequest,
    ParticipantRequest,
    ValidationIssue,
    ValidationResult,
)
from shareengine.money import HUNDRED

# Largest allowed gap between a caller's percent and amount / total * 100
PERCENT_TOLERANCE = Decimal("0.01")


class TransactionValidator:
    """
    Validates create and edit requests through a two-stage pipeline.

    Stage 1 parses raw input into request models.
    Stage 2 checks the parsed request against the business rules.
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        self._settings = settings or EngineSettings()

    # -------------------------------------------------------------------------
    # Stage 1
    # -------------------------------------------------------------------------

    def parse_create(self, data: dict[str, Any]) -> CreateTransactionRequest:
        """Parse raw create input, raising InvalidInputError on schema errors."""
        return self._parse(CreateTransactionRequest, data)

    def parse_edit(self, data: dict[str, Any]) -> EditParticipantsRequest:
        """Parse raw edit input, raising InvalidInputError on schema errors."""
        return self._parse(EditParticipantsRequest, data)

    def _parse(self, model_cls, data: dict[str, Any]):
        try:
            return model_cls.model_validate(data)
        except ValidationError as e:
            issues = [
                ValidationIssue(
                    field=".".join(str(part) for part in error["loc"]) or "request",
                    issue_type=error["type"],
                    message=error["msg"],
                    severity="error",
                )
                for error in e.errors()
            ]
            result = ValidationResult(
                schema_valid=False,
                semantic_valid=False,
                is_valid=False,
                issues=issues,
            )
            raise InvalidInputError(self.get_summary(result), issues)

    # -------------------------------------------------------------------------
    # Stage 2
    # -------------------------------------------------------------------------

    def validate_create(
        self,
        request: CreateTransactionRequest,
        creator_id: str,
    ) -> ValidationResult:
        issues = []

        if not request.is_shared and request.participants:
            issues.append(ValidationIssue(
                field="participants",
                issue_type="not_shared",
                message="A transaction that is not shared cannot have participants",
                severity="error",
            ))

        if request.is_shared and not request.participants:
            issues.append(ValidationIssue(
                field="participants",
                issue_type="empty",
                message="Shared transaction has no participants; the creator holds 100%",
                severity="warning",
            ))

        issues.extend(self._validate_amount(request.amount))
        issues.extend(self._validate_participants(request.amount, request.participants, creator_id))

        return self._result(issues)

    def validate_edit(
        self,
        request: EditParticipantsRequest,
        creator_id: str,
    ) -> ValidationResult:
        issues = self._validate_amount(request.amount)
        issues.extend(self._validate_participants(request.amount, request.participants, creator_id))
        return self._result(issues)

    def ensure_valid(self, result: ValidationResult) -> None:
        """Raise InvalidInputError if the result carries any error."""
        if result.has_errors:
            raise InvalidInputError(self.get_summary(result), result.issues)

    def _result(self, issues: list[ValidationIssue]) -> ValidationResult:
        has_errors = any(issue.severity == "error" for issue in issues)
        return ValidationResult(
            schema_valid=True,
            semantic_valid=not has_errors,
            is_valid=not has_errors,
            issues=issues,
        )

    def _validate_amount(self, amount: Decimal) -> list[ValidationIssue]:
        if amount > self._settings.max_transaction_amount:
            return [ValidationIssue(
                field="amount",
                issue_type="absurd_amount",
                message=(
                    f"Amount {amount} exceeds the maximum of "
                    f"{self._settings.max_transaction_amount}"
                ),
                severity="error",
            )]
        return []

    def _validate_participants(
        self,
        total: Decimal,
        participants: list[ParticipantRequest],
        creator_id: str,
    ) -> list[ValidationIssue]:
        issues = []

        if len(participants) > self._settings.max_participants:
            issues.append(ValidationIssue(
                field="participants",
                issue_type="too_many",
                message=(
                    f"{len(participants)} participants given, "
                    f"at most {self._settings.max_participants} allowed"
                ),
                severity="error",
            ))

        seen_members: set[tuple[str, str]] = set()
        for index, p in enumerate(participants):
            if p.user_id is not None and p.user_id == creator_id:
                issues.append(ValidationIssue(
                    field=f"participants.{index}.user_id",
                    issue_type="creator_listed",
                    message="The creator is always a participant and cannot be listed",
                    severity="error",
                ))
            if p.is_member:
                key = ("user_id", p.user_id) if p.user_id else ("username", p.username.lower())
                if key in seen_members:
                    issues.append(ValidationIssue(
                        field=f"participants.{index}",
                        issue_type="duplicate",
                        message="The same member is listed more than once",
                        severity="error",
                    ))
                seen_members.add(key)

        try:
            mode = detect_mode(participants)
        except AllocationError as e:
            issues.append(ValidationIssue(
                field="participants",
                issue_type="mixed_modes",
                message=str(e),
                severity="error",
            ))
            return issues

        if mode == AllocationMode.AMOUNTS:
            explicit_total = sum((p.amount for p in participants), Decimal("0"))
            if explicit_total > total:
                issues.append(ValidationIssue(
                    field="participants",
                    issue_type="exceeds_total",
                    message=(
                        f"Participant shares ({explicit_total}) exceed "
                        f"transaction amount ({total})"
                    ),
                    severity="error",
                ))
            for index, p in enumerate(participants):
                if p.percent is None:
                    continue
                expected = p.amount / total * HUNDRED
                if abs(p.percent - expected) > PERCENT_TOLERANCE:
                    issues.append(ValidationIssue(
                        field=f"participants.{index}.percent",
                        issue_type="inconsistent_percent",
                        message=(
                            f"Percent {p.percent} does not match amount {p.amount} "
                            f"of {total}"
                        ),
                        severity="error",
                    ))
        elif mode == AllocationMode.PERCENTS:
            explicit_percent = sum((p.percent for p in participants), Decimal("0"))
            if explicit_percent > HUNDRED:
                issues.append(ValidationIssue(
                    field="participants",
                    issue_type="exceeds_total",
                    message=f"Participant percentages ({explicit_percent}) exceed 100",
                    severity="error",
                ))

        return issues

    def get_summary(self, result: ValidationResult) -> str:
        """One-line summary of the errors in a result."""
        errors = [i for i in result.issues if i.severity == "error"]
        if not errors:
            return "Input is valid"
        details = "; ".join(f"{i.field}: {i.message}" for i in errors)
        return f"Invalid input ({len(errors)} issues): {details}"
