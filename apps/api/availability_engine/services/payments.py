"""Payment gateway contract consumed by the engine."""
from __future__ import annotations

from typing import Protocol


class PaymentDeclined(Exception):
    """The gateway refused to capture the charge."""

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class PaymentGateway(Protocol):
    async def capture(self, amount: int, method: str) -> str:
        """Charge ``amount`` (whole currency units) and return the payment reference."""

    async def refund(self, reference: str, reason: str) -> None:
        """Return a captured payment in full."""
