"""Payment window countdown.

Pure functions of the clock and the booking timestamps. The result is what a
client renders as a timer; it never decides anything on its own. The binding
expiry is the server-side transition in ``Booking.expire``.
"""
from datetime import datetime, timedelta

from pydantic import BaseModel


class PaymentCountdown(BaseModel):
    """Snapshot of a payment window at one instant"""
    remaining: timedelta
    window: timedelta
    elapsed_fraction: float

    @property
    def remaining_seconds(self) -> int:
        return int(self.remaining.total_seconds())

    @property
    def is_over(self) -> bool:
        return self.remaining == timedelta(0)

    class Config:
        frozen = True


def remaining_payment_time(now: datetime, created_at: datetime, expires_at: datetime) -> timedelta:
    """Time left before expires_at, never negative"""
    if created_at > expires_at:
        raise ValueError("created_at must not be after expires_at")
    return max(expires_at - now, timedelta(0))


def payment_countdown(now: datetime, created_at: datetime, expires_at: datetime) -> PaymentCountdown:
    remaining = remaining_payment_time(now, created_at, expires_at)
    window = expires_at - created_at
    if window == timedelta(0):
        fraction = 1.0
    else:
        fraction = 1.0 - remaining / window
    return PaymentCountdown(
        remaining=remaining,
        window=window,
        elapsed_fraction=min(max(fraction, 0.0), 1.0)
    )
