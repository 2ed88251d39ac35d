"""External account balances - the counterparty of every escrow movement."""

from __future__ import annotations

import logging

from race_ledger.errors import InsufficientBalance
from race_ledger.identity import short

log = logging.getLogger(__name__)

NATIVE_TOKEN = "native"
STROOPS_PER_XLM = 10_000_000


def format_amount(amount: int, token_type: str = NATIVE_TOKEN) -> str:
    """Human-readable amount; native amounts are shown in XLM."""
    if token_type == NATIVE_TOKEN:
        return f"{amount / STROOPS_PER_XLM:.7f} XLM"
    return f"{amount} {token_type}"


class Wallets:
    """Balances held outside of sessions, slots and prizes.

    Keyed by ``(address, token_type)``. Debits never go negative.
    """

    def __init__(self, balances: dict[tuple[str, str], int] | None = None) -> None:
        self._balances: dict[tuple[str, str], int] = dict(balances or {})

    def balance_of(self, address: str, token_type: str = NATIVE_TOKEN) -> int:
        return self._balances.get((address, token_type), 0)

    def credit(self, address: str, amount: int, token_type: str = NATIVE_TOKEN) -> None:
        if amount < 0:
            raise ValueError("credit amount must be non-negative")
        key = (address, token_type)
        self._balances[key] = self._balances.get(key, 0) + amount

    def debit(self, address: str, amount: int, token_type: str = NATIVE_TOKEN) -> None:
        if amount < 0:
            raise ValueError("debit amount must be non-negative")
        current = self.balance_of(address, token_type)
        if current < amount:
            raise InsufficientBalance(
                f"{short(address)} holds {current} {token_type}, needs {amount}"
            )
        self._balances[(address, token_type)] = current - amount
        log.debug("Debited %d %s from %s", amount, token_type, short(address))

    def total_supply(self, token_type: str = NATIVE_TOKEN) -> int:
        return sum(v for (_, t), v in self._balances.items() if t == token_type)

    def to_dict(self) -> dict:
        return {
            "balances": [
                {"address": a, "token_type": t, "amount": v}
                for (a, t), v in sorted(self._balances.items())
            ]
        }

    @classmethod
    def from_dict(cls, data: dict) -> Wallets:
        return cls(
            {(b["address"], b["token_type"]): int(b["amount"]) for b in data.get("balances", [])}
        )
