"""Fungible-token ledger interface and an in-memory ledger.

Every call names its caller explicitly (``sender``), which is how the
surrounding ledger platform identifies the account executing the call.
"""

import logging
from collections import defaultdict
from typing import Dict, Protocol, Tuple

logger = logging.getLogger(__name__)


class TokenLedger(Protocol):
    address: str

    def transfer(self, to: str, amount: int, *, sender: str) -> bool:
        ...

    def transfer_from(self, owner: str, to: str, amount: int, *, sender: str) -> bool:
        ...

    def balance_of(self, account: str) -> int:
        ...


class InMemoryToken:
    """ERC-20-like ledger. Failed transfers return False and change nothing."""

    def __init__(self, address: str, symbol: str = "USDC", decimals: int = 6):
        self.address = address.lower()
        self.symbol = symbol
        self.decimals = decimals
        self._balances: Dict[str, int] = defaultdict(int)
        self._allowances: Dict[Tuple[str, str], int] = defaultdict(int)
        self.total_supply = 0

    def units(self, whole: int) -> int:
        """Whole tokens to base units (parseUnits)."""
        return whole * 10 ** self.decimals

    def mint(self, to: str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"cannot mint a negative amount: {amount}")
        self._balances[to.lower()] += amount
        self.total_supply += amount

    def balance_of(self, account: str) -> int:
        return self._balances.get(account.lower(), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner.lower(), spender.lower()), 0)

    def approve(self, spender: str, amount: int, *, sender: str) -> bool:
        if amount < 0:
            return False
        self._allowances[(sender.lower(), spender.lower())] = amount
        return True

    def transfer(self, to: str, amount: int, *, sender: str) -> bool:
        return self._move(sender.lower(), to.lower(), amount)

    def transfer_from(self, owner: str, to: str, amount: int, *, sender: str) -> bool:
        key = (owner.lower(), sender.lower())
        if self._allowances.get(key, 0) < amount:
            logger.debug("transfer_from rejected: allowance %d < %d", self._allowances.get(key, 0), amount)
            return False
        if not self._move(owner.lower(), to.lower(), amount):
            return False
        self._allowances[key] -= amount
        return True

    def _move(self, src: str, dst: str, amount: int) -> bool:
        if amount < 0 or self._balances.get(src, 0) < amount:
            logger.debug("transfer rejected: %s has %d, needs %d", src, self._balances.get(src, 0), amount)
            return False
        self._balances[src] -= amount
        self._balances[dst] += amount
        return True
