# credits.py
import dataclasses
from typing import Optional

from .common import PLAN_CREDITS, UNLIMITED_REMAINING, Plan
from .user_store import UserRecord


def can_generate(record: UserRecord) -> bool:
    return record.plan is not Plan.FREE or (record.credits or 0) > 0


def charge_if_free(record: UserRecord) -> UserRecord:
    """Debit one credit from a free user. Callers check `can_generate` first."""
    if record.plan is not Plan.FREE:
        return record
    return dataclasses.replace(record, credits=record.credits - 1)


def credits_remaining(record: UserRecord) -> int:
    """Credits shown to the client after a (possible) charge."""
    if record.plan is Plan.FREE:
        return record.credits
    return UNLIMITED_REMAINING


def credits_for_plan(plan: Plan) -> Optional[int]:
    return PLAN_CREDITS[plan]
