"""
Fee Policy Module

Pure fee computation per transaction kind, plus the explicit decision of
where collected fees go.
"""

from decimal import Decimal
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .money import Money
from .config import MobileMoneyConfig, get_config
from .exceptions import BelowMinimum
from .ledger import TransactionKind


class FeeDisposal(Enum):
    """What happens to a fee once it is debited from the payer"""
    BURN = "burn"          # Credited to no account
    PLATFORM = "platform"  # Credited to the platform fee account


@dataclass(frozen=True)
class FeePolicy:
    """
    Fee table:

    - transfer: flat fee when the amount is above the threshold, else zero
    - cash-out: percentage of the amount, rounded half-up to the minor unit
    - cash-in: free

    Only transfers carry a minimum amount.
    """
    minimum_transfer_amount: Decimal = Decimal("50")
    transfer_fee_threshold: Decimal = Decimal("100")
    transfer_flat_fee: Decimal = Decimal("5")
    cash_out_fee_rate: Decimal = Decimal("0.015")
    disposal: FeeDisposal = FeeDisposal.BURN
    platform_fee_account_id: Optional[str] = None

    @classmethod
    def from_config(cls, config: Optional[MobileMoneyConfig] = None) -> 'FeePolicy':
        config = config or get_config()
        return cls(
            minimum_transfer_amount=config.minimum_transfer_amount,
            transfer_fee_threshold=config.transfer_fee_threshold,
            transfer_flat_fee=config.transfer_flat_fee,
            cash_out_fee_rate=config.cash_out_fee_rate,
            disposal=FeeDisposal(config.fee_disposal),
            platform_fee_account_id=config.platform_fee_account_id
        )

    @property
    def fee_account_id(self) -> Optional[str]:
        """Account credited with fees, or None when fees are burned"""
        if self.disposal == FeeDisposal.PLATFORM:
            return self.platform_fee_account_id
        return None

    def check_minimum(self, kind: TransactionKind, amount: Money) -> None:
        """Raise BelowMinimum when a transfer is not positive or under the minimum amount"""
        if kind != TransactionKind.TRANSFER:
            return
        if not amount.is_positive() or amount.amount < self.minimum_transfer_amount:
            raise BelowMinimum(amount.amount, self.minimum_transfer_amount)

    def compute_fee(self, kind: TransactionKind, amount: Money) -> Money:
        """Fee charged to the payer on top of ``amount``"""
        if kind == TransactionKind.TRANSFER:
            if amount.amount > self.transfer_fee_threshold:
                return Money(self.transfer_flat_fee)
            return Money.zero()
        if kind == TransactionKind.CASH_OUT:
            return amount * self.cash_out_fee_rate
        if kind == TransactionKind.CASH_IN:
            return Money.zero()
        raise ValueError(f"Unsupported transaction kind: {kind}")


def compute_fee(kind: TransactionKind, amount: Money, policy: Optional[FeePolicy] = None) -> Money:
    """Compute a fee with the given (or default) policy"""
    return (policy or FeePolicy()).compute_fee(kind, amount)


def dispose_fee(policy: FeePolicy, account_store, fee: Money) -> None:
    """Credit a collected fee according to the policy; burned fees go nowhere"""
    fee_account_id = policy.fee_account_id
    if fee_account_id and fee.is_positive():
        account_store.credit(fee_account_id, fee)
