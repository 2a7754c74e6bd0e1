"""Application Services - Business use cases"""
import logging
from uuid import UUID
from datetime import date, datetime, timedelta, timezone, tzinfo
from decimal import Decimal
from typing import Callable, Iterable, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from domain.countdown import PaymentCountdown
from domain.entities import Booking, Villa, utcnow
from domain.enums import AssetKind, BookingStatus, PaymentMethod
from domain.exceptions import (
    InvalidEvidenceError, InvalidTransitionError, StorageFailureError, ValidationError
)
from domain.repositories import BookingRepository, VillaRepository, FileStorage
from domain.value_objects import BankAccount, CustomerInfo, DateRange, LocalizedText, UploadedFile

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}

Clock = Callable[[], datetime]


def _first_error(e: PydanticValidationError) -> str:
    error = e.errors()[0]
    message = error.get("msg", "Invalid value")
    return message[len("Value error, "):] if message.startswith("Value error, ") else message


async def discard_files(storage: FileStorage, urls: Iterable[Optional[str]]) -> None:
    """Remove files that are no longer referenced; failures are logged, not raised"""
    for url in urls:
        if not url:
            continue
        try:
            await storage.delete(url)
        except StorageFailureError as e:
            logger.warning("Could not remove stale file %s: %s", url, e.message)


class BookingService:
    """Service for the booking lifecycle.

    All transitions go through ``_apply``: read the booking (expiring it first
    if its payment window is over), run the aggregate method, then write it
    back with a conditional update keyed on the status that was read.
    """

    def __init__(self,
                 repository: BookingRepository,
                 villa_repository: VillaRepository,
                 payment_window: timedelta = timedelta(minutes=30),
                 currency: str = "THB",
                 clock: Clock = utcnow,
                 local_timezone: tzinfo = timezone.utc,
                 slip_storage: Optional[FileStorage] = None):
        self.repository = repository
        self.villa_repository = villa_repository
        self.payment_window = payment_window
        self.currency = currency
        self.clock = clock
        self.local_timezone = local_timezone
        self.slip_storage = slip_storage

    async def create_booking(
        self,
        first_name: str,
        last_name: str,
        contact: str,
        check_in: date,
        check_out: date,
        guests: int,
        rooms: Optional[int] = None
    ) -> Booking:
        """Create a draft booking priced from the current villa rates"""
        try:
            customer_info = CustomerInfo(first_name=first_name, last_name=last_name, contact=contact)
            date_range = DateRange(check_in=check_in, check_out=check_out)
        except PydanticValidationError as e:
            raise ValidationError(_first_error(e))

        villa = await self.villa_repository.get_or_create_default()
        villa.validate_guests(guests)
        room_count = villa.resolve_room_count(rooms)
        total_price = villa.quote(date_range, room_count, currency=self.currency)

        now = self.clock()
        booking = Booking.create(
            customer_info=customer_info,
            date_range=date_range,
            guests=guests,
            rooms=room_count,
            total_price=total_price,
            now=now,
            payment_window=self.payment_window,
            today=now.astimezone(self.local_timezone).date()
        )
        saved = await self.repository.save(booking)
        logger.info(
            "Booking %s created: %s to %s, %d guests, total %s %s",
            saved.booking_id, check_in, check_out, guests,
            saved.total_price.amount, saved.total_price.currency,
            extra={"booking_id": saved.booking_id}
        )
        return saved

    async def get_booking(self, booking_id: UUID) -> Optional[Booking]:
        """Get booking by ID, expired first if its payment window is over"""
        return await self._load(booking_id, self.clock())

    async def get_all_bookings(self, status: Optional[BookingStatus] = None) -> List[Booking]:
        """Get all bookings, newest first"""
        await self.expire_overdue_bookings()
        return await self.repository.find_all(status)

    async def get_countdown(self, booking_id: UUID) -> Optional[Tuple[Booking, PaymentCountdown]]:
        now = self.clock()
        booking = await self._load(booking_id, now)
        if not booking:
            return None
        if not booking.is_awaiting_evidence():
            return booking, booking.countdown(booking.expires_at)
        return booking, booking.countdown(now)

    async def select_payment_method(self, booking_id: UUID, method: PaymentMethod) -> Optional[Booking]:
        """draft -> pending_payment, for a method the villa currently offers"""
        villa = await self.villa_repository.get_or_create_default()

        def transition(booking: Booking, now: datetime) -> None:
            if not villa.offers(method):
                raise ValidationError(f"Payment method {method.value} is not available")
            booking.select_payment_method(method, now)

        return await self._apply(booking_id, "select_payment_method", transition)

    async def submit_payment_evidence(self, booking_id: UUID, slip_url: str) -> Optional[Booking]:
        """pending_payment -> pending, only once per booking"""
        return await self._apply(
            booking_id,
            "submit_payment_evidence",
            lambda booking, now: booking.submit_payment_evidence(slip_url, now)
        )

    async def check_accepts_evidence(self, booking_id: UUID) -> Optional[Booking]:
        """Return the booking if a slip may be recorded now, raise otherwise"""
        now = self.clock()
        booking = await self._load(booking_id, now)
        if booking:
            booking.ensure_accepts_evidence(now)
        return booking

    async def confirm_payment(self, booking_id: UUID) -> Optional[Booking]:
        """pending -> confirmed after an administrator verified the slip"""
        return await self._apply(
            booking_id,
            "confirm_payment",
            lambda booking, now: booking.confirm_payment(now)
        )

    async def cancel_booking(self, booking_id: UUID, reason: Optional[str] = None) -> Optional[Booking]:
        """Any non-terminal status -> cancelled"""
        return await self._apply(
            booking_id,
            "cancel",
            lambda booking, now: booking.cancel(reason, now)
        )

    async def update_booking(
        self,
        booking_id: UUID,
        status: Optional[BookingStatus] = None,
        payment_method: Optional[PaymentMethod] = None,
        slip_url: Optional[str] = None,
        cancel_reason: Optional[str] = None
    ) -> Optional[Booking]:
        """Apply a client status change request to the matching transition"""
        if status is None and payment_method is not None:
            status = BookingStatus.PENDING_PAYMENT

        if status == BookingStatus.PENDING_PAYMENT:
            if payment_method is None:
                raise ValidationError("paymentMethod is required")
            return await self.select_payment_method(booking_id, payment_method)
        if status == BookingStatus.PENDING:
            if not slip_url:
                raise ValidationError("paymentDetails.slipUrl is required")
            if not await self.repository.find_by_id(booking_id):
                return None
            if self.slip_storage and not await self.slip_storage.contains(AssetKind.SLIPS, slip_url):
                raise InvalidEvidenceError("Payment slip must be uploaded through /api/upload/slip first")
            return await self.submit_payment_evidence(booking_id, slip_url)
        if status == BookingStatus.CANCELLED:
            return await self.cancel_booking(booking_id, cancel_reason)
        if status is None:
            raise ValidationError("Nothing to update")

        booking = await self.get_booking(booking_id)
        if not booking:
            return None
        raise InvalidTransitionError(
            f"Status {status.value} cannot be requested for this booking",
            current_status=booking.status
        )

    async def expire_overdue_bookings(self) -> int:
        """Expire every unpaid booking past its window, returns how many changed"""
        now = self.clock()
        expired = 0
        for booking in await self.repository.find_overdue(now):
            expected = booking.status
            booking.expire(now)
            if await self.repository.compare_and_set(booking, expected):
                expired += 1
                logger.info("Booking %s expired", booking.booking_id, extra={"booking_id": booking.booking_id})
        if expired:
            logger.info("Expiry sweep expired %d booking(s)", expired)
        return expired

    async def _load(self, booking_id: UUID, now: datetime) -> Optional[Booking]:
        booking = await self.repository.find_by_id(booking_id)
        while booking is not None and booking.is_overdue(now):
            expected = booking.status
            booking.expire(now)
            if await self.repository.compare_and_set(booking, expected):
                logger.info("Booking %s expired", booking_id, extra={"booking_id": booking_id})
                break
            booking = await self.repository.find_by_id(booking_id)
        return booking

    async def _apply(
        self,
        booking_id: UUID,
        action: str,
        transition: Callable[[Booking, datetime], None]
    ) -> Optional[Booking]:
        now = self.clock()
        booking = await self._load(booking_id, now)
        if not booking:
            return None

        expected = booking.status
        try:
            transition(booking, now)
        except (InvalidTransitionError, ValidationError) as e:
            logger.warning("Booking %s %s rejected: %s", booking_id, action, e, extra={"booking_id": booking_id})
            raise

        if not await self.repository.compare_and_set(booking, expected):
            logger.warning("Booking %s %s lost a concurrent update", booking_id, action, extra={"booking_id": booking_id})
            raise InvalidTransitionError(
                "Booking was changed by another request",
                current_status=expected
            )

        logger.info(
            "Booking %s %s: %s -> %s", booking_id, action, expected.value, booking.status.value,
            extra={"booking_id": booking_id}
        )
        return booking


class PaymentEvidenceService:
    """Service for payment slip uploads"""

    def __init__(self,
                 booking_service: BookingService,
                 storage: FileStorage,
                 max_size_bytes: int = 5 * 1024 * 1024):
        self.booking_service = booking_service
        self.storage = storage
        self.max_size_bytes = max_size_bytes

    def validate_slip(self, file_bytes: bytes, mime_type: Optional[str]) -> None:
        if not file_bytes:
            raise InvalidEvidenceError("No file uploaded")
        if mime_type not in ALLOWED_IMAGE_TYPES:
            raise InvalidEvidenceError("Payment slip must be a JPEG, PNG, GIF or WebP image")
        if len(file_bytes) > self.max_size_bytes:
            raise InvalidEvidenceError(
                f"Payment slip exceeds the {self.max_size_bytes // (1024 * 1024)} MB limit"
            )

    async def upload_slip(self, file_bytes: bytes, mime_type: Optional[str], filename: Optional[str] = None) -> str:
        """Store a slip without attaching it to a booking"""
        self.validate_slip(file_bytes, mime_type)
        return await self.storage.store(AssetKind.SLIPS, file_bytes, filename or "slip")

    async def submit_slip(
        self,
        booking_id: UUID,
        file_bytes: bytes,
        mime_type: Optional[str],
        filename: Optional[str] = None
    ) -> Optional[Booking]:
        """Store a slip and move the booking to pending.

        The booking is checked before the file is written so that a rejected
        request leaves no file behind; the status only changes after the
        write succeeded.
        """
        self.validate_slip(file_bytes, mime_type)
        booking = await self.booking_service.check_accepts_evidence(booking_id)
        if not booking:
            return None

        slip_url = await self.storage.store(AssetKind.SLIPS, file_bytes, filename or "slip")
        try:
            return await self.booking_service.submit_payment_evidence(booking_id, slip_url)
        except (InvalidTransitionError, ValidationError):
            await discard_files(self.storage, [slip_url])
            raise


class VillaService:
    """Service for villa content (public read, admin edits)"""

    def __init__(self,
                 repository: VillaRepository,
                 storage: FileStorage,
                 max_image_size_bytes: int = 10 * 1024 * 1024,
                 max_images_per_upload: int = 10):
        self.repository = repository
        self.storage = storage
        self.max_image_size_bytes = max_image_size_bytes
        self.max_images_per_upload = max_images_per_upload

    async def get_villa(self) -> Villa:
        """Get the villa, created with defaults on first call"""
        return await self.repository.get_or_create_default()

    async def update_details(
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
        bank_details: Optional[List[dict]] = None
    ) -> Villa:
        """Partial update of texts, pricing and capacity"""
        villa = await self.repository.get_or_create_default()
        accounts = self._normalize_bank_details(bank_details) if bank_details is not None else None
        villa.update_details(
            name=name,
            title=title,
            description=description,
            beachfront=beachfront,
            price_per_night=price_per_night,
            discounted_price=discounted_price,
            price_reduction_per_room=price_reduction_per_room,
            max_guests=max_guests,
            bedrooms=bedrooms,
            bathrooms=bathrooms,
            min_rooms=min_rooms,
            bank_details=accounts
        )
        logger.info("Villa details updated (version %d)", villa.version)
        return await self.repository.save(villa)

    async def update_bank_details(self, bank_details: List[dict]) -> List[BankAccount]:
        accounts = self._normalize_bank_details(bank_details)
        villa = await self.repository.get_or_create_default()
        villa.set_bank_details(accounts)
        await self.repository.save(villa)
        logger.info("Bank details updated: %d account(s)", len(accounts))
        return villa.bank_details

    async def replace_background(self, upload: UploadedFile) -> str:
        self._validate_images([upload])
        villa = await self.repository.get_or_create_default()
        url = await self.storage.store(AssetKind.VILLA, upload.data, upload.filename or "background")
        old = villa.replace_background(url)
        await self.repository.save(villa)
        await discard_files(self.storage, [old])
        return url

    async def delete_background(self) -> None:
        villa = await self.repository.get_or_create_default()
        old = villa.clear_background()
        await self.repository.save(villa)
        await discard_files(self.storage, [old])

    async def replace_slides(self, uploads: List[UploadedFile]) -> Villa:
        if not uploads:
            raise ValidationError("No files uploaded")
        self._validate_images(uploads)
        villa = await self.repository.get_or_create_default()
        urls = await self._store_all(AssetKind.VILLA, uploads, "slide")
        old = villa.replace_slides(urls)
        await self.repository.save(villa)
        await discard_files(self.storage, old)
        return villa

    async def delete_slide(self, slide_id: UUID) -> Villa:
        villa = await self.repository.get_or_create_default()
        slide = villa.remove_slide(slide_id)
        await self.repository.save(villa)
        await discard_files(self.storage, [slide.url])
        return villa

    async def delete_slide_at(self, index: int) -> Villa:
        """Index-based deletion, resolved to the slide's id first"""
        villa = await self.repository.get_or_create_default()
        return await self.delete_slide(villa.slide_id_at(index))

    async def reorder_slides(self, new_order: List[int]) -> Villa:
        villa = await self.repository.get_or_create_default()
        villa.reorder_slides(new_order)
        return await self.repository.save(villa)

    async def set_prompt_pay_qr(self, upload: UploadedFile) -> str:
        self._validate_images([upload])
        villa = await self.repository.get_or_create_default()
        url = await self.storage.store(AssetKind.QR, upload.data, upload.filename or "qr")
        old = villa.set_prompt_pay_qr(url)
        await self.repository.save(villa)
        await discard_files(self.storage, [old])
        return url

    async def delete_prompt_pay_qr(self) -> None:
        villa = await self.repository.get_or_create_default()
        old = villa.clear_prompt_pay_qr()
        await self.repository.save(villa)
        await discard_files(self.storage, [old])

    async def add_room(self, name: LocalizedText, description: LocalizedText, uploads: List[UploadedFile]) -> Villa:
        self._validate_images(uploads)
        villa = await self.repository.get_or_create_default()
        images = await self._store_all(AssetKind.ROOMS, uploads, "room")
        room = villa.add_room(name, description, images)
        logger.info("Room %s added", room.room_id)
        return await self.repository.save(villa)

    async def update_room(
        self,
        room_id: UUID,
        name: LocalizedText,
        description: LocalizedText,
        uploads: Optional[List[UploadedFile]] = None
    ) -> Villa:
        """Update a room; uploading images replaces all of its current images"""
        uploads = uploads or []
        self._validate_images(uploads)
        villa = await self.repository.get_or_create_default()
        villa.find_room(room_id)
        images = await self._store_all(AssetKind.ROOMS, uploads, "room")
        replaced = villa.update_room(room_id, name, description, images or None)
        await self.repository.save(villa)
        await discard_files(self.storage, replaced)
        return villa

    async def update_room_at(
        self,
        index: int,
        name: LocalizedText,
        description: LocalizedText,
        uploads: Optional[List[UploadedFile]] = None
    ) -> Villa:
        villa = await self.repository.get_or_create_default()
        return await self.update_room(villa.room_id_at(index), name, description, uploads)

    async def delete_room(self, room_id: UUID) -> Villa:
        villa = await self.repository.get_or_create_default()
        room = villa.remove_room(room_id)
        await self.repository.save(villa)
        await discard_files(self.storage, room.images)
        logger.info("Room %s deleted", room_id)
        return villa

    async def delete_room_at(self, index: int) -> Villa:
        villa = await self.repository.get_or_create_default()
        return await self.delete_room(villa.room_id_at(index))

    @staticmethod
    def _normalize_bank_details(bank_details) -> List[BankAccount]:
        if not isinstance(bank_details, list):
            raise ValidationError("Bank details must be an array")
        accounts = []
        for entry in bank_details:
            if not isinstance(entry, dict):
                raise ValidationError("Bank details must be an array of objects")
            accounts.append(BankAccount.normalize(
                entry.get("bank"), entry.get("account_number"), entry.get("account_name")
            ))
        return accounts

    def _validate_images(self, uploads: List[UploadedFile]) -> None:
        if len(uploads) > self.max_images_per_upload:
            raise ValidationError(f"At most {self.max_images_per_upload} images can be uploaded at once")
        for upload in uploads:
            if upload.content_type not in ALLOWED_IMAGE_TYPES:
                raise ValidationError(f"{upload.filename or 'File'} is not a supported image type")
            if upload.size == 0 or upload.size > self.max_image_size_bytes:
                raise ValidationError(f"{upload.filename or 'File'} is empty or too large")

    async def _store_all(self, kind: AssetKind, uploads: List[UploadedFile], default_name: str) -> List[str]:
        """Store every upload or none of them"""
        urls = []
        try:
            for upload in uploads:
                urls.append(await self.storage.store(kind, upload.data, upload.filename or default_name))
        except StorageFailureError:
            await discard_files(self.storage, urls)
            raise
        return urls
