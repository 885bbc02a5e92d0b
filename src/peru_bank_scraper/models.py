from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from .banks import BankCode


class Currency(str, Enum):
    PEN = "PEN"
    USD = "USD"


class Direction(str, Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Balance(BaseModel):
    account_id: str
    currency: Currency

    # Integer cents; never floats. Tile views do not show the booked balance, so it floors at 0.
    available_amount: int = Field(ge=0)
    booked_amount: int = Field(default=0, ge=0)
    fetched_at: datetime = Field(default_factory=_utcnow)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "Balance":
        return cls.model_validate(data)


class Transaction(BaseModel):
    id: str
    reference: Optional[str] = None

    # operation_date <= value_date is typical but not enforced; banks occasionally post value dates earlier.
    operation_date: date
    value_date: date
    description: str

    amount: int = Field(ge=0)
    direction: Direction
    balance_after: Optional[int] = None

    bank_specific_code: Optional[str] = None
    extra: dict[str, str] = Field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "Transaction":
        return cls.model_validate(data)

    @property
    def signed_amount(self) -> int:
        return self.amount if self.direction == Direction.CREDIT else -self.amount


@dataclass(frozen=True)
class Credentials:
    company_code: str = field(repr=False)
    user_code: str = field(repr=False)
    password: str = field(repr=False)

    def is_complete(self) -> bool:
        return bool(self.company_code and self.user_code and self.password)


@dataclass
class Session:
    """
    One authenticated browser context. Owned by the caller that logged in; never shared.

    `page` and `context` are live Playwright handles and are not part of any serialized state.
    """

    id: str
    bank_code: BankCode
    expires_at: datetime
    page: Any = field(default=None, repr=False, compare=False)
    context: Any = field(default=None, repr=False, compare=False)
    closed: bool = field(default=False, compare=False)

    @classmethod
    def start(
        cls,
        bank_code: BankCode,
        *,
        ttl_seconds: int,
        page: Any = None,
        context: Any = None,
        now: Optional[datetime] = None,
    ) -> "Session":
        now = now or _utcnow()
        sid = f"{bank_code.value.lower()}-{time.time_ns()}"
        return cls(
            id=sid,
            bank_code=bank_code,
            expires_at=now + timedelta(seconds=int(ttl_seconds)),
            page=page,
            context=context,
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or _utcnow()) >= self.expires_at

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        ctx = self.context
        self.page = None
        self.context = None
        if ctx is not None:
            ctx.close()
