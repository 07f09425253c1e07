"""Treasury collaborator: asset custody, governance-token intake, prices.

The options engine never holds custody itself. It checks what the
treasury holds, asks it to move assets and governance tokens, and asks
it for prices. InMemoryTreasury is the reference ledger used by the
service in simulations and tests.

All balances are Decimal. No floats in finance.
"""

from __future__ import annotations

import abc
import copy
from contextlib import contextmanager
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterator, Tuple, Union

from treasury_options.errors import InsufficientBalance, InvalidAmount, PriceUnavailable

Amount = Union[int, Decimal]

BURN_ADDRESS = "0x000000000000000000000000000000000000dEaD"


def parse_amount(value: Union[Amount, str], label: str = "amount") -> Decimal:
    """Decimal from caller input. Rejects text that is not a finite number."""
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmount(f"{label} must be a number, got {value!r}") from None
    if not amount.is_finite():
        raise InvalidAmount(f"{label} must be finite, got {value!r}")
    return amount


class Treasury(abc.ABC):
    """Custody, transfer and price-query contract consumed by the engine."""

    @abc.abstractmethod
    def balance_of(self, asset: str) -> Decimal:
        """Amount of ``asset`` held by the treasury."""

    @abc.abstractmethod
    def transfer_asset(self, asset: str, to: str, amount: Amount) -> None:
        """Send ``amount`` of a treasury-held asset to ``to``."""

    @abc.abstractmethod
    def transfer_governance_in(self, sender: str, recipient: str, amount: Amount) -> None:
        """Pull governance tokens from ``sender`` into ``recipient`` (the sink)."""

    @abc.abstractmethod
    def price_of(self, asset: str) -> Decimal:
        """Current price of ``asset`` in a common unit."""

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """All-or-nothing scope for a group of transfers.

        The default offers no isolation. Ledgers that can undo partial
        transfers override it.
        """
        yield


class InMemoryTreasury(Treasury):
    """Dict-backed treasury ledger with wallets, allowances and prices.

    Usage:
        treasury = InMemoryTreasury(governance_token="FLOOR")
        treasury.deposit("WETH", 1000)
        treasury.set_price("WETH", Decimal("2"))
        treasury.set_price("FLOOR", Decimal("1"))
        treasury.credit("alice", "FLOOR", Decimal("500"))
        treasury.approve("alice", Decimal("500"))
    """

    def __init__(self, governance_token: str) -> None:
        self._governance_token = governance_token
        self._holdings: Dict[str, Decimal] = {}
        self._wallets: Dict[Tuple[str, str], Decimal] = {}
        self._allowances: Dict[str, Decimal] = {}
        self._prices: Dict[str, Decimal] = {}

    @property
    def governance_token(self) -> str:
        return self._governance_token

    # ------------------------------------------------------------------
    # Setup (the collaborator's own deposit flow)
    # ------------------------------------------------------------------

    def deposit(self, asset: str, amount: Amount) -> None:
        """Add assets to treasury custody."""
        value = Decimal(amount)
        if value <= 0:
            raise ValueError("Deposit amount must be positive")
        self._holdings[asset] = self._holdings.get(asset, Decimal("0")) + value

    def credit(self, holder: str, asset: str, amount: Amount) -> None:
        """Fund an external wallet (used to give callers governance tokens)."""
        key = (holder, asset)
        self._wallets[key] = self._wallets.get(key, Decimal("0")) + Decimal(amount)

    def approve(self, holder: str, amount: Amount) -> None:
        """Set how much governance token the engine may pull from holder."""
        self._allowances[holder] = Decimal(amount)

    def set_price(self, asset: str, price: Amount) -> None:
        value = Decimal(price)
        if value <= 0:
            raise ValueError(f"Price must be positive, got {value}")
        self._prices[asset] = value

    def wallet_balance(self, holder: str, asset: str) -> Decimal:
        return self._wallets.get((holder, asset), Decimal("0"))

    def allowance(self, holder: str) -> Decimal:
        return self._allowances.get(holder, Decimal("0"))

    # ------------------------------------------------------------------
    # Treasury contract
    # ------------------------------------------------------------------

    def balance_of(self, asset: str) -> Decimal:
        return self._holdings.get(asset, Decimal("0"))

    def transfer_asset(self, asset: str, to: str, amount: Amount) -> None:
        value = Decimal(amount)
        held = self.balance_of(asset)
        if value > held:
            raise InsufficientBalance(
                f"Treasury holds {held} {asset}, cannot transfer {value}"
            )
        self._holdings[asset] = held - value
        self.credit(to, asset, value)

    def transfer_governance_in(self, sender: str, recipient: str, amount: Amount) -> None:
        value = Decimal(amount)
        balance = self.wallet_balance(sender, self._governance_token)
        if value > balance:
            raise InsufficientBalance(
                f"{sender} holds {balance} {self._governance_token}, needs {value}"
            )
        allowance = self.allowance(sender)
        if value > allowance:
            raise InsufficientBalance(
                f"{sender} approved {allowance} {self._governance_token}, needs {value}"
            )
        self._wallets[(sender, self._governance_token)] = balance - value
        self._allowances[sender] = allowance - value
        self.credit(recipient, self._governance_token, value)

    def price_of(self, asset: str) -> Decimal:
        price = self._prices.get(asset)
        if price is None:
            raise PriceUnavailable(f"No price available for {asset}")
        return price

    @contextmanager
    def atomic(self) -> Iterator[None]:
        snapshot = (
            copy.copy(self._holdings),
            copy.copy(self._wallets),
            copy.copy(self._allowances),
        )
        try:
            yield
        except BaseException:
            self._holdings, self._wallets, self._allowances = snapshot
            raise
