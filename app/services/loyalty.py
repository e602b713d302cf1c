"""
Purchases and reward redemptions on the loyalty card.

Balance writes are the one thing that must not silently fail, so store
errors propagate to the employee. Transaction logging is best effort.
"""

import logging
from dataclasses import dataclass

from app.core.errors import NotFound, RewardAlreadyRedeemed, RewardNotAvailable
from app.domain.schemas import (
    AvailableTiers,
    CustomerPassState,
    CustomerSummary,
    RewardStatus,
    RewardType,
)
from app.repositories.customer import CustomerRepository
from app.repositories.transaction import TransactionRepository
from app.services import rewards

logger = logging.getLogger(__name__)


@dataclass
class PurchaseResult:
    state: CustomerPassState
    points_earned: int
    status: RewardStatus
    message: str


@dataclass
class RedemptionResult:
    state: CustomerPassState
    reward_type: RewardType
    threshold: int
    message: str


def summarize(state: CustomerPassState) -> CustomerSummary:
    return CustomerSummary(
        id=state.serial_number,
        name=state.display_name,
        points_balance=state.points_balance,
        total_purchases=state.total_purchases,
        redeemed_rewards=AvailableTiers(
            coffees=sorted(state.redeemed_rewards.coffees),
            meals=sorted(state.redeemed_rewards.meals),
        ),
    )


class LoyaltyService:

    def __init__(
        self,
        customers: type[CustomerRepository] = CustomerRepository,
        transactions: type[TransactionRepository] = TransactionRepository,
    ):
        self.customers = customers
        self.transactions = transactions

    def lookup_customer(self, customer_id: str) -> CustomerPassState:
        state = self.customers.get_pass_state(customer_id)
        if state is None:
            raise NotFound("Customer not found")
        return state

    def record_purchase(self, customer_id: str, employee_id: str | None = None) -> PurchaseResult:
        """Add one point and report any reward the new balance lands on."""
        current = self.lookup_customer(customer_id)

        points_balance = current.points_balance + rewards.POINTS_PER_PURCHASE
        updated = self.customers.update_pass_state(
            customer_id,
            points_balance=points_balance,
            total_purchases=current.total_purchases + 1,
        )
        state = self._state_after_write(customer_id, updated)

        self._log_transaction(
            customer_id,
            "purchase",
            points_change=rewards.POINTS_PER_PURCHASE,
            points_balance_after=state.points_balance,
            employee_id=employee_id,
        )

        status = rewards.evaluate(state.points_balance, state.redeemed_rewards)
        message = f"Purchase recorded! {state.display_name} New balance: {state.points_balance} points"
        if status.reward_earned:
            message = f"{message} {status.message}"

        logger.info(
            f"Purchase for {customer_id[:8]}...: balance {state.points_balance}"
            + (f", earned {status.reward_type}" if status.reward_type else "")
        )
        return PurchaseResult(
            state=state,
            points_earned=rewards.POINTS_PER_PURCHASE,
            status=status,
            message=message,
        )

    def redeem_reward(
        self,
        customer_id: str,
        reward_type: RewardType,
        threshold: int,
        employee_id: str | None = None,
    ) -> RedemptionResult:
        """Mark one reward threshold as redeemed. Points are not deducted.

        Raises:
            NotFound: unknown customer.
            RewardNotAvailable: threshold is not a reached multiple of the unit.
            RewardAlreadyRedeemed: threshold was redeemed before.
        """
        current = self.lookup_customer(customer_id)

        if not rewards.is_valid_threshold(reward_type, threshold):
            raise RewardNotAvailable(
                f"{threshold} is not a {reward_type} threshold "
                f"(multiples of {rewards.REWARD_UNITS[reward_type]})"
            )
        if threshold > current.points_balance:
            raise RewardNotAvailable(
                f"Customer has {current.points_balance} points, {threshold} needed"
            )

        redeemed = current.redeemed_rewards.model_copy(deep=True)
        tier = redeemed.for_type(reward_type)
        if threshold in tier:
            raise RewardAlreadyRedeemed()
        tier.add(threshold)

        updated = self.customers.update_pass_state(customer_id, redeemed_rewards=redeemed)
        state = self._state_after_write(customer_id, updated)

        self._log_transaction(
            customer_id,
            "redemption",
            points_change=0,
            points_balance_after=state.points_balance,
            employee_id=employee_id,
            reward_type=reward_type,
            reward_points_threshold=threshold,
        )

        logger.info(f"Redeemed {reward_type} at {threshold} for {customer_id[:8]}...")
        return RedemptionResult(
            state=state,
            reward_type=reward_type,
            threshold=threshold,
            message=f"Reward redeemed successfully! {reward_type} at {threshold} points",
        )

    @staticmethod
    def _state_after_write(customer_id: str, record: dict | None) -> CustomerPassState:
        # Zero rows matched: the customer is gone and nothing was written
        if not record:
            logger.error(f"Balance write for {customer_id[:8]}... matched no row")
            raise NotFound("Customer not found")
        return CustomerPassState.from_record(record)

    def _log_transaction(self, customer_id: str, type: str, **fields) -> None:
        try:
            self.transactions.create(customer_id, type, **fields)
        except Exception as e:
            logger.error(f"Transaction logging failed for {customer_id[:8]}... (non-critical): {e}")
