"""In-Memory Repository Implementations"""
import asyncio
import logging
from typing import Optional, List, Dict
from uuid import UUID
from datetime import datetime

from domain.repositories import BookingRepository, VillaRepository
from domain.entities import Booking, Villa
from domain.enums import BookingStatus
from domain.value_objects import LocalizedText
from infrastructure.config import VillaDefaults

logger = logging.getLogger(__name__)


class InMemoryBookingRepository(BookingRepository):
    """In-memory implementation of BookingRepository.

    Stored records are never shared with callers: reads return deep copies and
    writes store deep copies. Every write happens under one lock, which makes
    the status check in ``compare_and_set`` and the write a single step.
    """

    def __init__(self):
        self._storage: Dict[UUID, Booking] = {}
        self._lock = asyncio.Lock()

    async def save(self, booking: Booking) -> Booking:
        """Insert booking, refusing to overwrite an existing record"""
        async with self._lock:
            if booking.booking_id in self._storage:
                raise ValueError("Booking already exists")
            self._storage[booking.booking_id] = booking.model_copy(deep=True)
        return booking.model_copy(deep=True)

    async def find_by_id(self, booking_id: UUID) -> Optional[Booking]:
        """Find booking by ID"""
        booking = self._storage.get(booking_id)
        return booking.model_copy(deep=True) if booking else None

    async def find_all(self, status: Optional[BookingStatus] = None) -> List[Booking]:
        """Find all bookings, newest first"""
        rows = [b for b in self._storage.values() if status is None or b.status == status]
        rows.sort(key=lambda b: b.created_at, reverse=True)
        return [b.model_copy(deep=True) for b in rows]

    async def find_overdue(self, now: datetime) -> List[Booking]:
        """Find unpaid bookings past their payment window"""
        return [b.model_copy(deep=True) for b in self._storage.values() if b.is_overdue(now)]

    async def compare_and_set(self, booking: Booking, expected_status: BookingStatus) -> bool:
        """Conditional update keyed on the status the caller read"""
        async with self._lock:
            stored = self._storage.get(booking.booking_id)
            if stored is None:
                return False
            if stored.status != expected_status:
                logger.debug(
                    "Conditional update lost for booking %s: expected %s, found %s",
                    booking.booking_id, expected_status.value, stored.status.value
                )
                return False
            self._storage[booking.booking_id] = booking.model_copy(deep=True)
            return True


class InMemoryVillaRepository(VillaRepository):
    """In-memory implementation of VillaRepository holding at most one villa"""

    def __init__(self, defaults: Optional[VillaDefaults] = None):
        self._defaults = defaults or VillaDefaults()
        self._villa: Optional[Villa] = None
        self._lock = asyncio.Lock()

    async def get(self) -> Optional[Villa]:
        return self._villa.model_copy(deep=True) if self._villa else None

    async def get_or_create_default(self) -> Villa:
        """Create the villa from defaults on first access"""
        async with self._lock:
            if self._villa is None:
                self._villa = self._build_default()
                logger.info("Villa record created with default values")
            return self._villa.model_copy(deep=True)

    async def save(self, villa: Villa) -> Villa:
        """Save villa"""
        async with self._lock:
            self._villa = villa.model_copy(deep=True)
        return villa

    def _build_default(self) -> Villa:
        d = self._defaults
        return Villa(
            name=LocalizedText(en=d.name.en, th=d.name.th),
            title=LocalizedText(en=d.title.en, th=d.title.th),
            description=LocalizedText(en=d.description.en, th=d.description.th),
            beachfront=LocalizedText(en=d.beachfront.en, th=d.beachfront.th),
            price_per_night=d.price_per_night,
            discounted_price=d.discounted_price,
            price_reduction_per_room=d.price_reduction_per_room,
            max_guests=d.max_guests,
            bedrooms=d.bedrooms,
            bathrooms=d.bathrooms,
            min_rooms=d.min_rooms
        )
