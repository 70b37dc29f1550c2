"""Errors raised while applying billing events."""
from __future__ import annotations

from typing import Optional


class UnresolvedBillingSubject(LookupError):
    """A billing event references a user or subscription the store cannot find."""

    def __init__(self, message: str, *, reference: Optional[str] = None) -> None:
        self.reference = reference
        super().__init__(message)
