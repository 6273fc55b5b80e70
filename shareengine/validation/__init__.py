"""Request validation package."""

from shareengine.validation.validator import TransactionValidator

__all__ = ["TransactionValidator"]
