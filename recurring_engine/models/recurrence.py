"""
Recurrence Rule Models

These models define the strict schemas for recurrence rules as the
engine sees them. Raw rows coming out of the store are normalised by
RecurrenceRuleValidator before they reach these types.

DESIGN DECISION: The frequency and the target effect are tagged unions
keyed by their `type`/`kind` field. Each variant carries only the fields
that mean something for it, so a monthly rule without a day cannot be
constructed in the first place.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)

from recurring_engine.models.billing import Channel


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(str, Enum):
    """Effect a rule has on the ledger."""
    EXPENSE = "expense"
    INCOME = "income"
    TRANSFER = "transfer"


class WeekendHandlingPolicy(str, Enum):
    """
    What happens when an occurrence lands on a non-business day.

    NONE keeps the date, SHIFT_FORWARD moves to the next business day,
    SHIFT_BACKWARD to the previous one, SKIP drops the instance.
    """
    NONE = "none"
    SHIFT_FORWARD = "shift_forward"
    SHIFT_BACKWARD = "shift_backward"
    SKIP = "skip"


class CreationMode(str, Enum):
    """
    How a due occurrence becomes a transaction.

    AUTOMATIC writes the transaction directly. The two confirmation
    modes queue a request and notify the user instead.
    """
    AUTOMATIC = "automatic"
    BOT_CONFIRMATION = "bot_confirmation"
    MANUAL_CONFIRMATION = "manual_confirmation"

    @property
    def requires_confirmation(self) -> bool:
        return self is not CreationMode.AUTOMATIC


class FrequencyType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


# =============================================================================
# FREQUENCY SPEC (tagged union keyed by `type`)
# =============================================================================

_FREQUENCY_CONFIG = ConfigDict(
    frozen=True,
    populate_by_name=True,
    extra="ignore",
)


class DailyFrequency(BaseModel):
    """Every `interval` days."""
    model_config = _FREQUENCY_CONFIG

    type: Literal["daily"] = "daily"
    interval: int = Field(default=1, ge=1)


class WeeklyFrequency(BaseModel):
    """
    Every `interval` weeks on `day_of_week`.

    day_of_week follows the stored data convention: 0 = Sunday ... 6 = Saturday.
    """
    model_config = _FREQUENCY_CONFIG

    type: Literal["weekly"] = "weekly"
    day_of_week: int = Field(..., ge=0, le=6, alias="dayOfWeek")
    interval: int = Field(default=1, ge=1)


class MonthlyFrequency(BaseModel):
    """
    Every `interval` months on `day`.

    `day` may exceed the length of a given month; it is clamped
    when an occurrence is resolved, never when the rule is created.
    """
    model_config = _FREQUENCY_CONFIG

    type: Literal["monthly"] = "monthly"
    day: int = Field(..., ge=1, le=31)
    interval: int = Field(default=1, ge=1)


class YearlyFrequency(BaseModel):
    """Every `interval` years on `month`/`day` (day clamped per year)."""
    model_config = _FREQUENCY_CONFIG

    type: Literal["yearly"] = "yearly"
    month: int = Field(..., ge=1, le=12)
    day: int = Field(..., ge=1, le=31)
    interval: int = Field(default=1, ge=1)


FrequencySpec = Annotated[
    Union[DailyFrequency, WeeklyFrequency, MonthlyFrequency, YearlyFrequency],
    Field(discriminator="type"),
]


# =============================================================================
# TARGET EFFECT (tagged union keyed by `kind`)
# =============================================================================

class MovementTarget(BaseModel):
    """An expense or income booked against one account."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["expense", "income"]
    account_id: Optional[str] = None
    category_id: Optional[str] = None


class TransferTarget(BaseModel):
    """
    A transfer between two accounts.

    to_amount differs from the rule amount for cross-currency transfers;
    when absent both sides move the same amount.
    """
    model_config = ConfigDict(frozen=True)

    kind: Literal["transfer"] = "transfer"
    from_account_id: str
    to_account_id: str
    to_amount: Optional[Decimal] = Field(default=None, gt=0)

    @model_validator(mode='after')
    def validate_accounts(self) -> 'TransferTarget':
        if self.from_account_id == self.to_account_id:
            raise ValueError("Transfer source and destination must differ")
        return self


RuleTarget = Annotated[
    Union[MovementTarget, TransferTarget],
    Field(discriminator="kind"),
]


# =============================================================================
# RECURRENCE RULE
# =============================================================================

class RecurrenceRule(BaseModel):
    """
    A recurring obligation and its generation state.

    Generation state (`last_generated_date`, `next_execution_date`) is
    only ever moved forward by the generation engine. Once
    `next_execution_date` passes `end_date` the rule is dormant: it is
    kept, but nothing more is generated from it.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    # Identity
    id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Shown to the user and used as the transaction note"
    )
    description: Optional[str] = None

    # Effect
    amount: Decimal = Field(..., gt=0)
    currency: str = Field(default="ARS", min_length=3, max_length=3)
    target: RuleTarget

    # Schedule
    frequency: FrequencySpec
    weekend_handling: WeekendHandlingPolicy = WeekendHandlingPolicy.NONE
    start_date: date
    end_date: Optional[date] = None

    # Behaviour
    creation_mode: CreationMode = CreationMode.AUTOMATIC
    preferred_channel: Optional[Channel] = Field(
        default=None,
        description="Only channel confirmation requests go to, when enabled"
    )
    is_active: bool = True
    is_paused: bool = False
    is_credit_card_recurring: bool = False

    # Generation state
    last_generated_date: Optional[date] = None
    next_execution_date: Optional[date] = None

    @model_validator(mode='after')
    def validate_dates(self) -> 'RecurrenceRule':
        """Validate date relationships."""
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")

        if self.next_execution_date:
            if self.next_execution_date < self.start_date:
                raise ValueError("Next execution date cannot be before start date")
            if self.last_generated_date and self.next_execution_date < self.last_generated_date:
                raise ValueError("Next execution date cannot be before last generated date")

        return self

    @property
    def transaction_type(self) -> TransactionType:
        return TransactionType(self.target.kind)

    @property
    def is_eligible(self) -> bool:
        """Active and not paused."""
        return self.is_active and not self.is_paused

    @property
    def is_dormant(self) -> bool:
        """Schedule has run past end_date."""
        return (
            self.end_date is not None
            and self.next_execution_date is not None
            and self.next_execution_date > self.end_date
        )

    def with_state(self, last_generated_date: date, next_execution_date: date) -> 'RecurrenceRule':
        return self.model_copy(update={
            "last_generated_date": last_generated_date,
            "next_execution_date": next_execution_date,
        })
