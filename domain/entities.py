"""Domain Entities - Aggregates"""
from pydantic import BaseModel, Field
from uuid import UUID, uuid4
from datetime import date, datetime, timedelta, timezone
from typing import Optional, List
from decimal import Decimal

from domain.countdown import PaymentCountdown, payment_countdown
from domain.enums import (
    BookingStatus, PaymentMethod, PaymentStatus,
    TERMINAL_STATUSES, AWAITING_EVIDENCE_STATUSES
)
from domain.exceptions import NotFoundError, ValidationError, InvalidTransitionError
from domain.value_objects import (
    LocalizedText, DateRange, Money, CustomerInfo, BankAccount,
    PromptPay, SlideImage, Room, PaymentDetails
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


class Villa(BaseModel):
    """Villa Aggregate Root Entity (one per deployment)"""

    # Identity
    villa_id: UUID = Field(default_factory=uuid4)

    # Bilingual content
    name: LocalizedText = LocalizedText()
    title: LocalizedText = LocalizedText()
    description: LocalizedText = LocalizedText()
    beachfront: LocalizedText = LocalizedText()

    # Pricing, zero discount means no discount
    price_per_night: Decimal = Field(ge=0)
    discounted_price: Decimal = Field(ge=0, default=Decimal("0"))
    price_reduction_per_room: Decimal = Field(ge=0, default=Decimal("0"))

    # Capacity
    max_guests: int = Field(ge=1)
    bedrooms: int = Field(ge=1)
    bathrooms: int = Field(ge=0)
    min_rooms: int = Field(ge=1, default=1)

    # Media
    background_image: Optional[str] = None
    slide_images: List[SlideImage] = []
    rooms: List[Room] = []

    # Payment collection
    bank_details: List[BankAccount] = []
    prompt_pay: PromptPay = PromptPay()

    # Metadata
    modified_at: datetime = Field(default_factory=utcnow)
    version: int = 1

    class Config:
        from_attributes = True

    # ==================== PRICING ====================
    def effective_price_per_night(self) -> Decimal:
        """Discounted price when one is set, otherwise the regular price"""
        if self.discounted_price and self.discounted_price > 0:
            return self.discounted_price
        return self.price_per_night

    def resolve_room_count(self, rooms: Optional[int]) -> int:
        """Number of bedrooms booked, the whole villa when not given"""
        if rooms is None:
            return self.bedrooms
        if rooms < self.min_rooms or rooms > self.bedrooms:
            raise ValidationError(
                f"Rooms must be between {self.min_rooms} and {self.bedrooms}"
            )
        return rooms

    def nightly_price(self, rooms: Optional[int] = None) -> Decimal:
        """Effective nightly price reduced for every bedroom left unbooked"""
        unused = self.bedrooms - self.resolve_room_count(rooms)
        price = self.effective_price_per_night() - unused * self.price_reduction_per_room
        return max(price, Decimal("0"))

    def quote(self, date_range: DateRange, rooms: Optional[int] = None, currency: str = "THB") -> Money:
        """Total for a stay, nights x nightly price"""
        return Money(
            amount=Decimal(date_range.nights()) * self.nightly_price(rooms),
            currency=currency
        )

    def validate_guests(self, guests: int) -> None:
        if guests < 1:
            raise ValidationError("At least 1 guest is required")
        if guests > self.max_guests:
            raise ValidationError(f"Maximum {self.max_guests} guests allowed")

    # ==================== PAYMENT OPTIONS ====================
    def offered_payment_methods(self) -> List[PaymentMethod]:
        methods = [PaymentMethod.BANK_TRANSFER]
        if self.prompt_pay.qr_image:
            methods.append(PaymentMethod.PROMPTPAY)
        return methods

    def offers(self, method: PaymentMethod) -> bool:
        return method in self.offered_payment_methods()

    # ==================== CONTENT MODIFICATION ====================
    def update_details(
        self,
        name: Optional[LocalizedText] = None,
        title: Optional[LocalizedText] = None,
        description: Optional[LocalizedText] = None,
        beachfront: Optional[LocalizedText] = None,
        price_per_night: Optional[Decimal] = None,
        discounted_price: Optional[Decimal] = None,
        price_reduction_per_room: Optional[Decimal] = None,
        max_guests: Optional[int] = None,
        bedrooms: Optional[int] = None,
        bathrooms: Optional[int] = None,
        min_rooms: Optional[int] = None,
        bank_details: Optional[List[BankAccount]] = None
    ) -> None:
        """Partial update, validated against the resulting state before anything changes"""
        new_price = self.price_per_night if price_per_night is None else _as_decimal(price_per_night)
        new_discount = self.discounted_price if discounted_price is None else _as_decimal(discounted_price)
        new_reduction = (
            self.price_reduction_per_room if price_reduction_per_room is None
            else _as_decimal(price_reduction_per_room)
        )
        new_bedrooms = self.bedrooms if bedrooms is None else bedrooms
        new_min_rooms = self.min_rooms if min_rooms is None else min_rooms
        new_max_guests = self.max_guests if max_guests is None else max_guests
        new_bathrooms = self.bathrooms if bathrooms is None else bathrooms

        Villa._validate_pricing(new_price, new_discount, new_reduction)
        Villa._validate_capacity(new_max_guests, new_bedrooms, new_bathrooms, new_min_rooms)

        # Bilingual texts merge per language, a missing language keeps its value
        if name is not None:
            self.name = self.name.merged_with(name.en, name.th)
        if title is not None:
            self.title = self.title.merged_with(title.en, title.th)
        if description is not None:
            self.description = self.description.merged_with(description.en, description.th)
        if beachfront is not None:
            self.beachfront = self.beachfront.merged_with(beachfront.en, beachfront.th)

        self.price_per_night = new_price
        self.discounted_price = new_discount
        self.price_reduction_per_room = new_reduction
        self.max_guests = new_max_guests
        self.bedrooms = new_bedrooms
        self.bathrooms = new_bathrooms
        self.min_rooms = new_min_rooms

        if bank_details is not None:
            self.bank_details = list(bank_details)

        self._touch()

    def set_bank_details(self, bank_details: List[BankAccount]) -> None:
        self.bank_details = list(bank_details)
        self._touch()

    # ==================== MEDIA ====================
    def replace_background(self, url: str) -> Optional[str]:
        """Set background image, returns the URL it replaced"""
        old = self.background_image
        self.background_image = url
        self._touch()
        return old

    def clear_background(self) -> str:
        if not self.background_image:
            raise NotFoundError("Background image not found")
        old = self.background_image
        self.background_image = None
        self._touch()
        return old

    def replace_slides(self, urls: List[str]) -> List[str]:
        """Replace the whole slide set, returns the URLs that were dropped"""
        old = [slide.url for slide in self.slide_images]
        self.slide_images = [SlideImage(url=url) for url in urls]
        self._touch()
        return old

    def slide_id_at(self, index: int) -> UUID:
        if index < 0 or index >= len(self.slide_images):
            raise NotFoundError("Slide image not found")
        return self.slide_images[index].slide_id

    def remove_slide(self, slide_id: UUID) -> SlideImage:
        for position, slide in enumerate(self.slide_images):
            if slide.slide_id == slide_id:
                del self.slide_images[position]
                self._touch()
                return slide
        raise NotFoundError("Slide image not found")

    def reorder_slides(self, new_order: List[int]) -> None:
        """new_order[i] is the current index of the slide that moves to position i"""
        if sorted(new_order) != list(range(len(self.slide_images))):
            raise ValidationError("Invalid order format")
        self.slide_images = [self.slide_images[index] for index in new_order]
        self._touch()

    def set_prompt_pay_qr(self, url: str) -> Optional[str]:
        old = self.prompt_pay.qr_image
        self.prompt_pay = PromptPay(qr_image=url)
        self._touch()
        return old

    def clear_prompt_pay_qr(self) -> str:
        if not self.prompt_pay.qr_image:
            raise NotFoundError("QR code not found")
        old = self.prompt_pay.qr_image
        self.prompt_pay = PromptPay(qr_image=None)
        self._touch()
        return old

    # ==================== ROOMS ====================
    def add_room(self, name: LocalizedText, description: LocalizedText, images: List[str]) -> Room:
        room = Room(name=name, description=description, images=list(images))
        self.rooms.append(room)
        self._touch()
        return room

    def room_id_at(self, index: int) -> UUID:
        if index < 0 or index >= len(self.rooms):
            raise NotFoundError("Room not found")
        return self.rooms[index].room_id

    def find_room(self, room_id: UUID) -> Room:
        for room in self.rooms:
            if room.room_id == room_id:
                return room
        raise NotFoundError("Room not found")

    def update_room(
        self,
        room_id: UUID,
        name: LocalizedText,
        description: LocalizedText,
        images: Optional[List[str]] = None
    ) -> List[str]:
        """Update a room; new images replace the old set. Returns replaced image URLs"""
        room = self.find_room(room_id)
        replaced = []
        if images:
            replaced = list(room.images)
            room.images = list(images)
        room.name = name
        room.description = description
        self._touch()
        return replaced

    def remove_room(self, room_id: UUID) -> Room:
        room = self.find_room(room_id)
        self.rooms.remove(room)
        self._touch()
        return room

    # ==================== PRIVATE ====================
    @staticmethod
    def _validate_pricing(price: Decimal, discount: Decimal, reduction: Decimal) -> None:
        if price < 0 or discount < 0 or reduction < 0:
            raise ValidationError("Prices cannot be negative")
        if discount > 0 and discount >= price:
            raise ValidationError("Discounted price must be less than regular price")

    @staticmethod
    def _validate_capacity(max_guests: int, bedrooms: int, bathrooms: int, min_rooms: int) -> None:
        if max_guests < 1:
            raise ValidationError("Maximum guests must be at least 1")
        if bedrooms < 1:
            raise ValidationError("Bedrooms must be at least 1")
        if bathrooms < 0:
            raise ValidationError("Bathrooms cannot be negative")
        if min_rooms < 1:
            raise ValidationError("Minimum rooms must be at least 1")
        if min_rooms > bedrooms:
            raise ValidationError("Minimum rooms cannot be greater than total bedrooms")

    def _touch(self) -> None:
        self.modified_at = utcnow()
        self.version += 1


class Booking(BaseModel):
    """Booking Aggregate Root Entity"""

    # Identity
    booking_id: UUID = Field(default_factory=uuid4)

    # Value Objects
    customer_info: CustomerInfo
    date_range: DateRange
    guests: int = Field(ge=1)
    rooms: int = Field(ge=1)
    total_price: Money

    # Status & payment
    status: BookingStatus = BookingStatus.DRAFT
    payment_method: Optional[PaymentMethod] = None
    payment_details: Optional[PaymentDetails] = None
    payment_slip_url: Optional[str] = None

    # Timestamps
    created_at: datetime
    expires_at: datetime
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None

    # Metadata
    modified_at: datetime = Field(default_factory=utcnow)
    version: int = 1

    class Config:
        from_attributes = True

    # ==================== FACTORY METHOD ====================
    @staticmethod
    def create(
        customer_info: CustomerInfo,
        date_range: DateRange,
        guests: int,
        rooms: int,
        total_price: Money,
        now: datetime,
        payment_window: timedelta,
        today: Optional[date] = None
    ) -> "Booking":
        """Create a draft booking whose payment window starts now.

        ``today`` is the calendar date at the villa, defaulting to the date of ``now``.
        """
        if date_range.check_in < (today or now.date()):
            raise ValidationError("Check-in date must be today or later")
        if payment_window <= timedelta(0):
            raise ValidationError("Payment window must be positive")

        return Booking(
            customer_info=customer_info,
            date_range=date_range,
            guests=guests,
            rooms=rooms,
            total_price=total_price,
            status=BookingStatus.DRAFT,
            created_at=now,
            expires_at=now + payment_window,
            modified_at=now
        )

    # ==================== STATE TRANSITION METHODS ====================
    def select_payment_method(self, method: PaymentMethod, now: datetime) -> None:
        """draft -> pending_payment, or change method while still pending_payment"""
        if self.status not in AWAITING_EVIDENCE_STATUSES:
            raise InvalidTransitionError(
                f"Cannot select payment method for booking with status {self.status.value}",
                current_status=self.status
            )
        if self.is_overdue(now):
            raise InvalidTransitionError("Payment window has expired", current_status=self.status)

        self.payment_method = method
        self.status = BookingStatus.PENDING_PAYMENT
        self._touch(now)

    def ensure_accepts_evidence(self, now: datetime) -> None:
        """Raise unless a payment slip may be recorded right now"""
        if self.payment_slip_url is not None or self.status == BookingStatus.PENDING:
            raise InvalidTransitionError(
                "Payment evidence has already been submitted",
                current_status=self.status
            )
        if self.status != BookingStatus.PENDING_PAYMENT:
            raise InvalidTransitionError(
                f"Cannot submit payment evidence for booking with status {self.status.value}",
                current_status=self.status
            )
        if now >= self.expires_at:
            raise InvalidTransitionError("Payment window has expired", current_status=self.status)

    def submit_payment_evidence(self, slip_url: str, now: datetime) -> None:
        """pending_payment -> pending; evidence is recorded once and never replaced"""
        self.ensure_accepts_evidence(now)
        if not slip_url:
            raise ValidationError("Payment slip URL is required")

        self.payment_slip_url = slip_url
        self.payment_details = PaymentDetails(
            method=self.payment_method,
            slip_url=slip_url,
            status=PaymentStatus.PENDING,
            submitted_at=now
        )
        self.status = BookingStatus.PENDING
        self._touch(now)

    def confirm_payment(self, now: datetime) -> None:
        """pending -> confirmed once an administrator has checked the slip"""
        if self.status != BookingStatus.PENDING:
            raise InvalidTransitionError(
                f"Cannot confirm booking with status {self.status.value}",
                current_status=self.status
            )

        self.payment_details = self.payment_details.model_copy(
            update={"status": PaymentStatus.VERIFIED}
        )
        self.status = BookingStatus.CONFIRMED
        self.confirmed_at = now
        self._touch(now)

    def cancel(self, reason: Optional[str], now: datetime) -> None:
        """Any non-terminal status -> cancelled"""
        if self.is_terminal():
            raise InvalidTransitionError(
                f"Cannot cancel booking with status {self.status.value}",
                current_status=self.status
            )

        self.status = BookingStatus.CANCELLED
        self.cancelled_at = now
        self.cancel_reason = reason
        self._touch(now)

    def expire(self, now: datetime) -> None:
        """Unpaid booking whose window has elapsed -> expired"""
        if not self.is_overdue(now):
            raise InvalidTransitionError(
                f"Booking with status {self.status.value} is not overdue",
                current_status=self.status
            )

        self.status = BookingStatus.EXPIRED
        self._touch(now)

    # ==================== QUERY METHODS ====================
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_awaiting_evidence(self) -> bool:
        return self.status in AWAITING_EVIDENCE_STATUSES

    def is_overdue(self, now: datetime) -> bool:
        """Still waiting for payment but the window is over"""
        return self.is_awaiting_evidence() and now >= self.expires_at

    def countdown(self, now: datetime) -> PaymentCountdown:
        return payment_countdown(now, self.created_at, self.expires_at)

    def get_nights(self) -> int:
        return self.date_range.nights()

    def _touch(self, now: datetime) -> None:
        self.modified_at = now
        self.version += 1
