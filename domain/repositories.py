"""Domain Repository Interfaces"""
from abc import ABC, abstractmethod
from typing import Optional, List
from uuid import UUID
from datetime import datetime

from domain.entities import Booking, Villa
from domain.enums import AssetKind, BookingStatus


class BookingRepository(ABC):
    """Repository interface for Booking Aggregate.

    Implementations hand out copies. A caller that mutates a booking must
    write it back through ``compare_and_set`` so that two requests racing on
    the same record cannot both succeed.
    """

    @abstractmethod
    async def save(self, booking: Booking) -> Booking:
        """Insert a new booking"""
        pass

    @abstractmethod
    async def find_by_id(self, booking_id: UUID) -> Optional[Booking]:
        """Find booking by ID"""
        pass

    @abstractmethod
    async def find_all(self, status: Optional[BookingStatus] = None) -> List[Booking]:
        """Find all bookings, newest first, optionally filtered by status"""
        pass

    @abstractmethod
    async def find_overdue(self, now: datetime) -> List[Booking]:
        """Find unpaid bookings whose payment window has elapsed"""
        pass

    @abstractmethod
    async def compare_and_set(self, booking: Booking, expected_status: BookingStatus) -> bool:
        """Store booking only if the stored status still equals expected_status"""
        pass


class VillaRepository(ABC):
    """Repository interface for the single Villa Aggregate"""

    @abstractmethod
    async def get(self) -> Optional[Villa]:
        """Return the villa or None when it was never created"""
        pass

    @abstractmethod
    async def get_or_create_default(self) -> Villa:
        """Return the villa, creating it from configured defaults on first use"""
        pass

    @abstractmethod
    async def save(self, villa: Villa) -> Villa:
        """Persist villa"""
        pass


class FileStorage(ABC):
    """Blob store for uploaded images"""

    @abstractmethod
    async def store(self, kind: AssetKind, data: bytes, filename: str) -> str:
        """Write data and return its public URL"""
        pass

    @abstractmethod
    async def delete(self, url: str) -> bool:
        """Remove the file behind url, False when there was nothing to remove"""
        pass

    @abstractmethod
    async def contains(self, kind: AssetKind, url: str) -> bool:
        """True when url names a file this storage wrote under kind"""
        pass
