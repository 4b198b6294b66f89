from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class CreditBalance(BaseModel):
    credits: int
    has_active_subscription: bool
    subscription_expires_at: datetime | None = None


class RedeemIn(BaseModel):
    code: str = Field(min_length=1, max_length=50)


class RedeemOut(BaseModel):
    credits_added: int
    balance: CreditBalance
