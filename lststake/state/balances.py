"""
Token ledger collaborator: balances per (owner, asset) plus per-asset supply.

Implements TokenLedger[Owner, AssetId] -> Amount with transfer / mint / burn.
Owners are user keys (BLS hex) or program-derived addresses (vaults, treasury).
"""

from typing import Dict, Protocol, Tuple

from ..core.errors import InsufficientFunds, InvalidArgument


# Type aliases
Owner = str  # user pubkey hex or derived address hex
AssetId = str  # 32-byte hex string (0x...)
Amount = int  # Non-negative integer


class BalanceView(Protocol):
    """Read-only balance query handed to the functional core."""

    def get(self, owner: Owner, asset: AssetId) -> Amount:
        ...


class TokenLedger:
    """
    Deterministic balance table mapping (owner, asset) -> amount.

    Zero balances are dropped to keep the table sparse. Do not rely on dict
    iteration order; sort keys at serialization boundaries.
    """

    def __init__(self):
        self._balances: Dict[Tuple[Owner, AssetId], Amount] = {}
        self._supply: Dict[AssetId, Amount] = {}

    def get(self, owner: Owner, asset: AssetId) -> Amount:
        """Get balance for (owner, asset). Returns 0 if not found."""
        return self._balances.get((owner, asset), 0)

    def supply(self, asset: AssetId) -> Amount:
        """Outstanding minted supply of ``asset`` (0 for never-minted assets)."""
        return self._supply.get(asset, 0)

    def _set(self, owner: Owner, asset: AssetId, amount: Amount) -> None:
        if amount == 0:
            self._balances.pop((owner, asset), None)
        else:
            self._balances[(owner, asset)] = amount

    def _debit(self, owner: Owner, asset: AssetId, amount: Amount) -> None:
        current = self.get(owner, asset)
        if current < amount:
            raise InsufficientFunds(
                f"insufficient balance for {owner} in {asset}: {current} < {amount}"
            )
        self._set(owner, asset, current - amount)

    def _credit(self, owner: Owner, asset: AssetId, amount: Amount) -> None:
        self._set(owner, asset, self.get(owner, asset) + amount)

    @staticmethod
    def _require_amount(amount: Amount) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
            raise InvalidArgument(f"amount must be a non-negative int: {amount!r}")

    def transfer(self, asset: AssetId, source: Owner, destination: Owner, amount: Amount) -> None:
        """
        Move ``amount`` of ``asset`` from ``source`` to ``destination``.

        Raises:
            InsufficientFunds: If ``source`` holds less than ``amount``
        """
        self._require_amount(amount)
        self._debit(source, asset, amount)
        self._credit(destination, asset, amount)

    def mint(self, asset: AssetId, destination: Owner, amount: Amount) -> None:
        """Create ``amount`` of ``asset`` in ``destination`` and grow supply."""
        self._require_amount(amount)
        self._credit(destination, asset, amount)
        self._supply[asset] = self.supply(asset) + amount

    def burn(self, asset: AssetId, source: Owner, amount: Amount) -> None:
        """
        Destroy ``amount`` of ``asset`` held by ``source`` and shrink supply.

        Raises:
            InsufficientFunds: If ``source`` holds less than ``amount``
        """
        self._require_amount(amount)
        self._debit(source, asset, amount)
        self._supply[asset] = self.supply(asset) - amount

    def copy(self) -> "TokenLedger":
        out = TokenLedger()
        out._balances = dict(self._balances)
        out._supply = dict(self._supply)
        return out

    def get_all_balances(self) -> Dict[Tuple[Owner, AssetId], Amount]:
        return dict(self._balances)

    def get_balances_for_asset(self, asset: AssetId) -> Dict[Owner, Amount]:
        return {owner: amount for (owner, a), amount in self._balances.items() if a == asset}

    def total_held(self, asset: AssetId) -> Amount:
        return sum(self.get_balances_for_asset(asset).values())

    def __repr__(self) -> str:
        return f"TokenLedger({len(self._balances)} entries)"
