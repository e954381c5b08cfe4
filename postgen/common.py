# common.py
import enum
from typing import Optional


class Plan(str, enum.Enum):
    FREE = "free"
    STARTER = "starter"
    UNLIMITED = "unlimited"

    @classmethod
    def parse(cls, value) -> "Plan":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Invalid plan: {value!r}") from None


PAID_PLANS = (Plan.STARTER, Plan.UNLIMITED)

FREE_CREDITS = 3
# credits granted on payment; None = no metering at all
PLAN_CREDITS: dict[Plan, Optional[int]] = {
    Plan.FREE: FREE_CREDITS,
    Plan.STARTER: 50,
    Plan.UNLIMITED: None,
}

UNLIMITED_CREDITS = 999_999      # wire value for credits=None
UNLIMITED_REMAINING = 999        # "creditsRemaining" for paid plans

GUEST_ID = "guest"
