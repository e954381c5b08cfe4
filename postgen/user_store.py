# user_store.py
"""
Persistent user records (email → plan state).

Two backends share the same interface:

• JsonUserStore   – one human-readable JSON object, rewritten atomically on
                    every update, guarded by a process-wide lock.
• PeeweeUserStore – one row per user in an embedded SQLite (or pooled MySQL)
                    database through peewee.

`get()` never persists the default record of an unknown user; only
`update()` writes. A stored row that cannot be read back is never
overwritten: `get()` falls back to the default (or raises with
strict=True), `update()` always raises `UnreadableRecord`.
"""

import contextlib
import dataclasses
import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from typing import Dict, Iterator, Optional

from peewee import CharField, DateTimeField, IntegerField, Model
from playhouse.db_url import connect

from .common import FREE_CREDITS, UNLIMITED_CREDITS, Plan

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("plan", "credits", "last_payment")


class UnreadableRecord(ValueError):
    """A persisted row exists but does not map onto a UserRecord."""


def stored_plan(raw, credits) -> Plan:
    """
    Plan of a persisted row. Older stores granted the 999999 sentinel to any
    plan name other than "starter", so an unknown name carrying that grant
    is an unlimited customer.
    """
    try:
        return Plan.parse(raw)
    except ValueError:
        if isinstance(credits, int) and not isinstance(credits, bool) and credits >= UNLIMITED_CREDITS:
            return Plan.UNLIMITED
        raise UnreadableRecord(f"Unknown stored plan {raw!r} with credits {credits!r}") from None


@dataclasses.dataclass(frozen=True)
class UserRecord:
    identifier: str
    plan: Plan = Plan.FREE
    credits: Optional[int] = FREE_CREDITS
    last_payment: Optional[datetime] = None

    @classmethod
    def default(cls, identifier: str) -> "UserRecord":
        return cls(identifier=identifier)

    def merge(self, fields: Dict) -> "UserRecord":
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)}")
        changes = dict(fields)
        if "plan" in changes:
            changes["plan"] = Plan.parse(changes["plan"])
        merged = dataclasses.replace(self, **changes)
        if merged.plan is Plan.UNLIMITED:
            merged = dataclasses.replace(merged, credits=None)
        elif merged.credits is None:
            merged = dataclasses.replace(merged, credits=0)
        elif merged.credits < 0:
            raise ValueError(f"credits cannot be negative: {merged.credits}")
        return merged

    # storage form: unlimited keeps credits=None
    def to_dict(self) -> Dict:
        data = {"email": self.identifier, "plan": self.plan.value, "credits": self.credits}
        if self.last_payment is not None:
            data["lastPayment"] = int(self.last_payment.timestamp() * 1000)
        return data

    # wire form: unlimited reports the numeric sentinel
    def to_public(self) -> Dict:
        data = self.to_dict()
        if data["credits"] is None:
            data["credits"] = UNLIMITED_CREDITS
        return data

    @classmethod
    def from_dict(cls, identifier: str, data: Dict) -> "UserRecord":
        credits = data.get("credits", FREE_CREDITS)
        plan = stored_plan(data.get("plan", Plan.FREE.value), credits)
        credits = None if plan is Plan.UNLIMITED else int(credits)
        last_payment = data.get("lastPayment")
        if last_payment is not None:
            last_payment = datetime.fromtimestamp(last_payment / 1000, tz=timezone.utc)
        return cls(identifier=identifier, plan=plan, credits=credits, last_payment=last_payment)


# ─────────────────────────────────────────────────────────────
# JSON snapshot
# ─────────────────────────────────────────────────────────────
class JsonUserStore:
    backend = "json"

    def __init__(self, path: str):
        self.path = os.path.abspath(path)
        self._lock = threading.RLock()

    def _load(self) -> Dict[str, Dict]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                users = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.warning("User store %s unreadable, starting empty: %s", self.path, exc)
            return {}
        if not isinstance(users, dict):
            logger.warning("User store %s is not a JSON object, starting empty", self.path)
            return {}
        return users

    def _save(self, users: Dict[str, Dict]) -> None:
        directory = os.path.dirname(self.path)
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".users-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(users, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp_path)
            raise

    def _record(self, users: Dict[str, Dict], identifier: str, strict: bool = False) -> UserRecord:
        if identifier not in users:
            return UserRecord.default(identifier)
        data = users[identifier]
        try:
            if not isinstance(data, dict):
                raise UnreadableRecord(f"Stored record is a {type(data).__name__}")
            return UserRecord.from_dict(identifier, data)
        except (TypeError, ValueError) as exc:
            if strict:
                raise UnreadableRecord(f"Record for {identifier} cannot be read: {exc}") from exc
            logger.warning("Malformed record for %s, using default: %s", identifier, exc)
            return UserRecord.default(identifier)

    def get(self, identifier: str, strict: bool = False) -> UserRecord:
        return self._record(self._load(), identifier, strict=strict)

    def update(self, identifier: str, fields: Dict) -> UserRecord:
        with self._lock:
            users = self._load()
            record = self._record(users, identifier, strict=True).merge(fields)
            users[identifier] = record.to_dict()
            self._save(users)
        return record

    def all(self) -> Dict[str, UserRecord]:
        users = self._load()
        return {identifier: self._record(users, identifier) for identifier in users}

    @contextlib.contextmanager
    def locked(self) -> Iterator["JsonUserStore"]:
        with self._lock:
            yield self

    def close(self) -> None:
        pass


# ─────────────────────────────────────────────────────────────
# peewee (SQLite / MySQL)
# ─────────────────────────────────────────────────────────────
def plan_user_model(db):
    """PlanUser model bound to `db`; one class per store."""

    class PlanUser(Model):
        email = CharField(max_length=255, unique=True, index=True, null=False)
        plan = CharField(max_length=32, default=Plan.FREE.value, null=False)
        credits = IntegerField(null=True, default=FREE_CREDITS)
        last_payment = DateTimeField(null=True)

        class Meta:
            database = db
            table_name = "postgen_user"

    return PlanUser


def _to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class PeeweeUserStore:
    backend = "peewee"

    def __init__(self, database):
        self.db = database
        self.model = plan_user_model(database)
        self.db.connect(reuse_if_open=True)
        self.db.create_tables([self.model])

    @staticmethod
    def _record(row) -> UserRecord:
        last_payment = row.last_payment
        if last_payment is not None:
            last_payment = last_payment.replace(tzinfo=timezone.utc)
        plan = stored_plan(row.plan, row.credits)
        return UserRecord(
            identifier=row.email,
            plan=plan,
            credits=None if plan is Plan.UNLIMITED else row.credits,
            last_payment=last_payment,
        )

    def _safe_record(self, row) -> UserRecord:
        try:
            return self._record(row)
        except UnreadableRecord as exc:
            logger.warning("Malformed record for %s, using default: %s", row.email, exc)
            return UserRecord.default(row.email)

    def get(self, identifier: str, strict: bool = False) -> UserRecord:
        self.db.connect(reuse_if_open=True)
        row = self.model.get_or_none(self.model.email == identifier)
        if row is None:
            return UserRecord.default(identifier)
        return self._record(row) if strict else self._safe_record(row)

    def update(self, identifier: str, fields: Dict) -> UserRecord:
        self.db.connect(reuse_if_open=True)
        with self.db.atomic():
            row = self.model.get_or_none(self.model.email == identifier)
            current = self._record(row) if row else UserRecord.default(identifier)
            record = current.merge(fields)
            if row is None:
                row = self.model(email=identifier)
            row.plan = record.plan.value
            row.credits = record.credits
            row.last_payment = _to_naive_utc(record.last_payment)
            row.save()
        return record

    def all(self) -> Dict[str, UserRecord]:
        self.db.connect(reuse_if_open=True)
        return {row.email: self._safe_record(row) for row in self.model.select()}

    @contextlib.contextmanager
    def locked(self) -> Iterator["PeeweeUserStore"]:
        self.db.connect(reuse_if_open=True)
        with self.db.atomic():
            yield self

    def close(self) -> None:
        if not self.db.is_closed():
            self.db.close()


def open_user_store(url: str):
    """`json:///path` → JsonUserStore, anything else → PeeweeUserStore."""
    if url.startswith("json://"):
        path = url[len("json://"):]
        # json:///users.json is relative, json:////abs/users.json absolute
        if path.startswith("/"):
            path = path[1:]
        return JsonUserStore(path or "users.json")
    logger.info("Opening peewee user store %s", url.split("@")[-1])
    return PeeweeUserStore(connect(url))
