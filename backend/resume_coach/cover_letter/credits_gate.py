import logging
from typing import Optional, Protocol

from resume_coach.cover_letter.errors import CreditLedgerError
from resume_coach.cover_letter.notifier import Notifier, LoggingNotifier

logger = logging.getLogger(__name__)


class CreditLedger(Protocol):
    """Remote, authoritative credit balance."""

    async def get_balance(self) -> int: ...

    async def use_credits(self, amount: int, feature: str, description: str) -> bool: ...

    async def refund(self, user_id: str, amount: int, reason: str) -> int: ...


class CreditsGate:
    """
    Guards paid actions with a locally cached balance.

    The cache only ever reflects what the ledger confirmed: a failed or
    declined spend leaves it unchanged.
    """

    def __init__(
        self,
        ledger: CreditLedger,
        user_id: Optional[str],
        notifier: Notifier = None,
        balance: int = 0,
    ):
        self.ledger = ledger
        self.user_id = user_id
        self.notifier = notifier or LoggingNotifier()
        self._balance = balance

    @property
    def balance(self) -> int:
        return self._balance

    def can_afford(self, amount: int) -> bool:
        return self._balance >= amount

    async def refresh(self) -> int:
        if not self.user_id:
            self._balance = 0
            return self._balance
        self._balance = await self.ledger.get_balance()
        return self._balance

    async def spend(self, amount: int, category: str, description: str) -> bool:
        if amount <= 0:
            raise ValueError("Credit amount must be positive")

        if not self.user_id:
            self.notifier.error('You must be logged in to use this feature')
            return False

        if self._balance < amount:
            self.notifier.error(
                f"Not enough credits. This action requires {amount} credits, but you only have {self._balance}."
            )
            return False

        try:
            spent = await self.ledger.use_credits(amount, category, description)
        except CreditLedgerError as e:
            logger.error(f"Error using credits: {e}")
            self.notifier.error(f"Failed to process credits: {e}")
            return False

        if not spent:
            logger.info(f"Ledger declined spending {amount} credits for '{description}'.")
            self.notifier.error('Failed to process credits. Please try again.')
            return False

        try:
            await self.refresh()
        except CreditLedgerError as e:
            # The spend itself went through.
            logger.warning(f"Could not refresh credits after spending: {e}")
            self._balance -= amount

        self.notifier.success(f"Used {amount} credits for {description}")
        return True

    async def refund(self, amount: int, reason: str) -> bool:
        if not self.user_id:
            return False
        try:
            self._balance = await self.ledger.refund(self.user_id, amount, reason)
        except CreditLedgerError as e:
            logger.error(f"Error refunding credits: {e}")
            self.notifier.error(f"Failed to refund credits: {e}")
            return False
        self.notifier.success(f"Refunded {amount} credits")
        return True
