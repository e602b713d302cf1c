import math
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Literal, Optional

from pydantic import BaseModel, Field

RewardType = Literal["coffee", "meal"]

DEFAULT_DISPLAY_NAME = "Valued Customer"


def parse_datetime(dt_value) -> datetime | None:
    """Parse a datetime value from the database (could be string or datetime)."""
    if dt_value is None:
        return None
    if isinstance(dt_value, datetime):
        if dt_value.tzinfo is None:
            return dt_value.replace(tzinfo=timezone.utc)
        return dt_value
    if isinstance(dt_value, str):
        try:
            # Handle ISO format with timezone
            dt = datetime.fromisoformat(dt_value.replace("Z", "+00:00"))
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=timezone.utc)
            return dt
        except ValueError:
            return None
    return None


def coerce_points(value) -> int:
    """Coerce a stored or submitted points value to a non-negative int.

    None, NaN, negatives and anything unparsable become 0; numeric strings
    are parsed.
    """
    if value is None or isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number) or math.isinf(number) or number < 0:
        return 0
    return int(number)


def _threshold_set(values) -> set[int]:
    if not isinstance(values, (list, tuple, set, frozenset)):
        return set()
    thresholds = set()
    for value in values:
        if isinstance(value, bool):
            continue
        try:
            number = float(value)
        except (TypeError, ValueError):
            continue
        if math.isnan(number) or math.isinf(number) or not number.is_integer():
            continue
        thresholds.add(int(number))
    return thresholds


def _decimal(value) -> Decimal:
    try:
        number = Decimal(str(value or 0))
    except InvalidOperation:
        return Decimal("0")
    return number if number.is_finite() else Decimal("0")


def display_name_or_default(name: str | None) -> str:
    """Wallet rejects empty required strings, so blank names get a placeholder."""
    if isinstance(name, str) and name.strip():
        return name.strip()
    return DEFAULT_DISPLAY_NAME


# ============================================
# Pass state
# ============================================


class RedeemedRewards(BaseModel):
    coffees: set[int] = Field(default_factory=set)
    meals: set[int] = Field(default_factory=set)

    @classmethod
    def from_raw(cls, raw) -> "RedeemedRewards":
        """Normalize stored redemption data.

        Historical rows may hold strings, nulls or NaN; anything that is not
        an integral number is dropped.
        """
        if isinstance(raw, RedeemedRewards):
            return raw
        if not isinstance(raw, dict):
            return cls()
        return cls(
            coffees=_threshold_set(raw.get("coffees")),
            meals=_threshold_set(raw.get("meals")),
        )

    def for_type(self, reward_type: RewardType) -> set[int]:
        return self.meals if reward_type == "meal" else self.coffees

    def to_record(self) -> dict:
        return {"coffees": sorted(self.coffees), "meals": sorted(self.meals)}


class CustomerPassState(BaseModel):
    serial_number: str
    points_balance: int = 0
    total_purchases: int = 0
    redeemed_rewards: RedeemedRewards = Field(default_factory=RedeemedRewards)
    last_modified_at: Optional[datetime] = None
    display_name: str = DEFAULT_DISPLAY_NAME

    @classmethod
    def from_record(cls, record: dict) -> "CustomerPassState":
        return cls(
            serial_number=str(record["id"]),
            points_balance=coerce_points(record.get("points_balance")),
            total_purchases=coerce_points(record.get("total_purchases")),
            redeemed_rewards=RedeemedRewards.from_raw(record.get("redeemed_rewards")),
            last_modified_at=parse_datetime(record.get("updated_at")),
            display_name=display_name_or_default(record.get("full_name")),
        )


class GiftCardPassState(BaseModel):
    serial_number: str
    balance_mxn: Decimal = Decimal("0")
    initial_balance_mxn: Decimal = Decimal("0")
    recipient_name: str = DEFAULT_DISPLAY_NAME
    is_active: bool = True
    last_modified_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: dict) -> "GiftCardPassState":
        balance = _decimal(record.get("balance_mxn"))
        return cls(
            serial_number=str(record["serial_number"]),
            balance_mxn=balance,
            initial_balance_mxn=_decimal(record.get("initial_balance_mxn")) or balance,
            recipient_name=display_name_or_default(record.get("recipient_name")),
            is_active=bool(record.get("is_active", True)),
            last_modified_at=parse_datetime(record.get("updated_at")),
        )


# ============================================
# Rewards
# ============================================


class RewardStatus(BaseModel):
    earned_coffee: bool = False
    earned_meal: bool = False
    reward_type: Optional[RewardType] = None
    message: str
    label: str

    @property
    def reward_earned(self) -> bool:
        return self.reward_type is not None


class AvailableTiers(BaseModel):
    coffees: list[int] = Field(default_factory=list)
    meals: list[int] = Field(default_factory=list)


# ============================================
# Employee-facing API
# ============================================


class PurchaseRequest(BaseModel):
    customer_id: str = Field(..., min_length=1)


class RedeemRequest(BaseModel):
    customer_id: str = Field(..., min_length=1)
    type: RewardType
    points: int = Field(..., gt=0)


class CustomerSummary(BaseModel):
    id: str
    name: str
    points_balance: int
    total_purchases: int = 0
    redeemed_rewards: AvailableTiers = Field(default_factory=AvailableTiers)


class PurchaseResponse(BaseModel):
    success: bool = True
    customer: CustomerSummary
    points_earned: int
    reward_earned: bool
    reward_type: Optional[RewardType] = None
    earned_coffee: bool
    earned_meal: bool
    message: str


class RedeemResponse(BaseModel):
    success: bool = True
    customer: CustomerSummary
    message: str


class ScanResponse(BaseModel):
    customer: CustomerSummary
    available_rewards: AvailableTiers
    reward_status: RewardStatus
