import asyncio
import logging
import os
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import List, Optional
from uuid import UUID
from zoneinfo import ZoneInfo

from fastapi import FastAPI, HTTPException, Depends, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError as PydanticValidationError

from api.schemas import (
    # Bookings
    CreateBookingRequest, UpdateBookingRequest, CancelBookingRequest,
    BookingResponse, BookingDetailsResponse, PaymentDetailsResponse, CustomerInfoSchema,
    CountdownResponse, FileUrlResponse, ExpireOverdueResponse,
    # Villa
    UpdateVillaRequest, UpdateBankDetailsRequest, ReorderSlidesRequest,
    VillaResponse, SlideResponse, RoomResponse, LocalizedTextSchema, PromptPayResponse,
    BankDetailResponse, BankDetailsResponse, MessageResponse,
    # Auth
    Token, UserResponse
)
from api.dependencies import get_current_active_user, get_current_admin, get_user
from application.services import BookingService, PaymentEvidenceService, VillaService
from domain.auth import User
from domain.entities import Booking, Villa
from domain.enums import BookingStatus, PaymentMethod
from domain.exceptions import (
    NotFoundError, ValidationError, InvalidTransitionError, StorageFailureError
)
from domain.value_objects import LocalizedText, UploadedFile
from infrastructure.config import settings
from infrastructure.logging_config import setup_logging
from infrastructure.repositories.in_memory_repositories import (
    InMemoryBookingRepository, InMemoryVillaRepository
)
from infrastructure.security import verify_password, create_access_token, ACCESS_TOKEN_EXPIRE_MINUTES
from infrastructure.storage import LocalFileStorage

setup_logging()
logger = logging.getLogger(__name__)

# Initialize repositories
booking_repo = InMemoryBookingRepository()
villa_repo = InMemoryVillaRepository(settings.VILLA_DEFAULTS)
file_storage = LocalFileStorage(settings.UPLOAD_DIR, settings.CLIENT_URL)


# Dependency injection
def get_booking_service() -> BookingService:
    return BookingService(
        booking_repo,
        villa_repo,
        payment_window=timedelta(minutes=settings.PAYMENT_WINDOW_MINUTES),
        currency=settings.CURRENCY,
        local_timezone=ZoneInfo(settings.TIMEZONE),
        slip_storage=file_storage
    )


def get_payment_evidence_service(
    booking_service: BookingService = Depends(get_booking_service)
) -> PaymentEvidenceService:
    return PaymentEvidenceService(booking_service, file_storage, settings.MAX_SLIP_SIZE_BYTES)


def get_villa_service() -> VillaService:
    return VillaService(
        villa_repo,
        file_storage,
        max_image_size_bytes=settings.MAX_IMAGE_SIZE_BYTES,
        max_images_per_upload=settings.MAX_IMAGES_PER_UPLOAD
    )


async def _expiry_sweep(interval_seconds: int):
    """Expire unpaid bookings in the background so listings stay accurate"""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await get_booking_service().expire_overdue_bookings()
        except Exception:
            logger.exception("Expiry sweep failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    sweep = None
    if settings.EXPIRY_SWEEP_INTERVAL_SECONDS > 0:
        sweep = asyncio.create_task(_expiry_sweep(settings.EXPIRY_SWEEP_INTERVAL_SECONDS))
        logger.info("Expiry sweep every %d seconds", settings.EXPIRY_SWEEP_INTERVAL_SECONDS)
    yield
    if sweep:
        sweep.cancel()
        try:
            await sweep
        except asyncio.CancelledError:
            pass


app = FastAPI(
    title=settings.APP_NAME,
    description="Booking and content API for a single villa rental website",
    version=settings.API_VERSION,
    lifespan=lifespan
)

os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")

# ============================================================================
# ERROR MAPPING
# ============================================================================

@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": exc.message})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": exc.message})


@app.exception_handler(InvalidTransitionError)
async def invalid_transition_handler(request: Request, exc: InvalidTransitionError):
    content = {"detail": exc.message}
    if exc.current_status is not None:
        content["status"] = exc.current_status.value
    return JSONResponse(status_code=409, content=content)


@app.exception_handler(StorageFailureError)
async def storage_failure_handler(request: Request, exc: StorageFailureError):
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=500, content={"detail": "Failed to store file"})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        error = errors[0]
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        detail = f"{field}: {error.get('msg')}" if field else error.get("msg")
    else:
        detail = "Invalid request"
    return JSONResponse(status_code=400, content={"detail": detail})

# ============================================================================
# HEALTH & ENUM REFERENCE ENDPOINTS
# ============================================================================

@app.get("/api/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "message": "API is running"}


@app.get("/api/enums/booking-status", tags=["Enum Reference"])
async def get_booking_statuses():
    """Get all BookingStatus enum values"""
    return {
        "values": [item.value for item in BookingStatus],
        "description": "Booking status values: draft, pending_payment, pending, confirmed, expired, cancelled"
    }


@app.get("/api/enums/payment-method", tags=["Enum Reference"])
async def get_payment_methods():
    """Get all PaymentMethod enum values"""
    return {
        "values": [item.value for item in PaymentMethod],
        "description": "Payment method values: bank_transfer, promptpay (only when a QR code is set)"
    }

# ============================================================================
# AUTH ENDPOINTS
# ============================================================================

@app.post("/token", response_model=Token, tags=["Auth"])
async def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends()):
    user = get_user(form_data.username)
    if not user or not verify_password(form_data.password, user.hashed_password):
        logger.warning("Failed login for %s", form_data.username)
        raise HTTPException(
            status_code=401,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    access_token_expires = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = create_access_token(
        data={"sub": user.username, "role": user.role}, expires_delta=access_token_expires
    )
    logger.info("Issued villa admin token for %s", user.username)
    return {"access_token": access_token, "token_type": "bearer"}


@app.get("/users/me", response_model=UserResponse, tags=["Auth"])
async def read_users_me(current_user: User = Depends(get_current_active_user)):
    return current_user

# ============================================================================
# VILLA ENDPOINTS
# ============================================================================

@app.get("/api/villa", response_model=VillaResponse, tags=["Villa"])
async def get_villa(service: VillaService = Depends(get_villa_service)):
    """Get the villa, created with default content on first call"""
    villa = await service.get_villa()
    return _villa_to_response(villa)

# ============================================================================
# BOOKING ENDPOINTS
# ============================================================================

@app.post("/api/bookings", response_model=BookingResponse, status_code=201, tags=["Bookings"])
async def create_booking(
    request: CreateBookingRequest,
    service: BookingService = Depends(get_booking_service)
):
    """Create a draft booking; the total price is computed from the villa rates"""
    booking = await service.create_booking(
        first_name=request.customer_info.first_name,
        last_name=request.customer_info.last_name,
        contact=request.customer_info.contact,
        check_in=request.booking_details.check_in,
        check_out=request.booking_details.check_out,
        guests=request.booking_details.guests,
        rooms=request.booking_details.rooms
    )
    return _booking_to_response(booking)


@app.get("/api/bookings/{booking_id}", response_model=BookingResponse, tags=["Bookings"])
async def get_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service)
):
    """Get booking by ID"""
    booking = await service.get_booking(booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    return _booking_to_response(booking)


@app.patch("/api/bookings/{booking_id}", response_model=BookingResponse, tags=["Bookings"])
async def update_booking(
    booking_id: UUID,
    request: UpdateBookingRequest,
    service: BookingService = Depends(get_booking_service)
):
    """Select a payment method, record a slip URL, or cancel"""
    booking = await service.update_booking(
        booking_id,
        status=request.status,
        payment_method=request.payment_method,
        slip_url=request.payment_details.slip_url if request.payment_details else None,
        cancel_reason=request.cancel_reason
    )
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    return _booking_to_response(booking)


@app.get("/api/bookings/{booking_id}/countdown", response_model=CountdownResponse, tags=["Bookings"])
async def get_booking_countdown(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service)
):
    """Remaining payment time, for display only"""
    result = await service.get_countdown(booking_id)
    if not result:
        raise HTTPException(status_code=404, detail="Booking not found")
    booking, countdown = result
    return CountdownResponse(
        booking_id=booking.booking_id,
        status=booking.status,
        expires_at=booking.expires_at,
        remaining_seconds=countdown.remaining_seconds,
        window_seconds=int(countdown.window.total_seconds()),
        elapsed_fraction=countdown.elapsed_fraction,
        expired=booking.status == BookingStatus.EXPIRED
    )


@app.post("/api/bookings/{booking_id}/payment-slip", response_model=BookingResponse, tags=["Bookings"])
async def submit_payment_slip(
    booking_id: UUID,
    slip: Optional[UploadFile] = File(None),
    service: PaymentEvidenceService = Depends(get_payment_evidence_service)
):
    """Upload the payment slip and move the booking to pending verification"""
    data = await slip.read() if slip else b""
    booking = await service.submit_slip(
        booking_id,
        data,
        slip.content_type if slip else None,
        slip.filename if slip else None
    )
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    return _booking_to_response(booking)


@app.post("/api/bookings/{booking_id}/cancel", response_model=BookingResponse, tags=["Bookings"])
async def cancel_booking(
    booking_id: UUID,
    request: Optional[CancelBookingRequest] = None,
    service: BookingService = Depends(get_booking_service)
):
    """Cancel a booking that is not yet confirmed, expired or cancelled"""
    booking = await service.cancel_booking(booking_id, request.reason if request else None)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    return _booking_to_response(booking)


@app.post("/api/upload/slip", response_model=FileUrlResponse, tags=["Uploads"])
async def upload_slip(
    slip: Optional[UploadFile] = File(None),
    service: PaymentEvidenceService = Depends(get_payment_evidence_service)
):
    """Store a slip without attaching it; send the URL with PATCH /api/bookings/{id}"""
    data = await slip.read() if slip else b""
    url = await service.upload_slip(
        data,
        slip.content_type if slip else None,
        slip.filename if slip else None
    )
    return FileUrlResponse(file_url=url)

# ============================================================================
# ADMIN BOOKING ENDPOINTS
# ============================================================================

@app.get("/api/admin/bookings", response_model=List[BookingResponse], tags=["Admin Bookings"])
async def get_all_bookings(
    status: Optional[BookingStatus] = None,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_admin)
):
    """Get all bookings, newest first"""
    bookings = await service.get_all_bookings(status)
    return [_booking_to_response(b) for b in bookings]


@app.post("/api/admin/bookings/expire-overdue", response_model=ExpireOverdueResponse, tags=["Admin Bookings"])
async def expire_overdue_bookings(
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_admin)
):
    """Run the expiry sweep now"""
    expired = await service.expire_overdue_bookings()
    return ExpireOverdueResponse(expired=expired)


@app.post("/api/admin/bookings/{booking_id}/confirm", response_model=BookingResponse, tags=["Admin Bookings"])
async def confirm_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_admin)
):
    """Confirm a booking after checking its payment slip"""
    booking = await service.confirm_payment(booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    return _booking_to_response(booking)


@app.post("/api/admin/bookings/{booking_id}/cancel", response_model=BookingResponse, tags=["Admin Bookings"])
async def admin_cancel_booking(
    booking_id: UUID,
    request: Optional[CancelBookingRequest] = None,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_admin)
):
    reason = request.reason if request and request.reason else f"Cancelled by {current_user.username}"
    booking = await service.cancel_booking(booking_id, reason)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    return _booking_to_response(booking)

# ============================================================================
# ADMIN VILLA ENDPOINTS
# ============================================================================

@app.patch("/api/admin/villa", response_model=VillaResponse, tags=["Admin Villa"])
async def update_villa(
    request: UpdateVillaRequest,
    service: VillaService = Depends(get_villa_service),
    current_user: User = Depends(get_current_admin)
):
    """Partial update of texts, pricing and capacity"""
    villa = await service.update_details(
        name=_localized(request.name),
        title=_localized(request.title),
        description=_localized(request.description),
        beachfront=_localized(request.beachfront),
        price_per_night=request.price_per_night,
        discounted_price=request.discounted_price,
        price_reduction_per_room=request.price_reduction_per_room,
        max_guests=request.max_guests,
        bedrooms=request.bedrooms,
        bathrooms=request.bathrooms,
        min_rooms=request.min_rooms,
        bank_details=(
            [entry.model_dump() for entry in request.bank_details]
            if request.bank_details is not None else None
        )
    )
    return _villa_to_response(villa)


@app.patch("/api/admin/villa/bank-details", response_model=BankDetailsResponse, tags=["Admin Villa"])
async def update_bank_details(
    request: UpdateBankDetailsRequest,
    service: VillaService = Depends(get_villa_service),
    current_user: User = Depends(get_current_admin)
):
    accounts = await service.update_bank_details([entry.model_dump() for entry in request.bank_details])
    return BankDetailsResponse(bank_details=[_bank_to_response(a) for a in accounts])


@app.patch("/api/admin/villa/background", response_model=FileUrlResponse, tags=["Admin Villa"])
async def replace_background(
    background_image: UploadFile = File(..., alias="backgroundImage"),
    service: VillaService = Depends(get_villa_service),
    current_user: User = Depends(get_current_admin)
):
    url = await service.replace_background(await _read_upload(background_image))
    return FileUrlResponse(file_url=url)


@app.delete("/api/admin/villa/background", response_model=MessageResponse, tags=["Admin Villa"])
async def delete_background(
    service: VillaService = Depends(get_villa_service),
    current_user: User = Depends(get_current_admin)
):
    await service.delete_background()
    return MessageResponse(message="Background image deleted successfully")


@app.post("/api/admin/villa/slides", response_model=VillaResponse, tags=["Admin Villa"])
async def replace_slides(
    slide_images: List[UploadFile] = File(..., alias="slideImages"),
    service: VillaService = Depends(get_villa_service),
    current_user: User = Depends(get_current_admin)
):
    """Replace the whole slide set"""
    villa = await service.replace_slides([await _read_upload(f) for f in slide_images])
    return _villa_to_response(villa)


@app.patch("/api/admin/villa/slides/reorder", response_model=VillaResponse, tags=["Admin Villa"])
async def reorder_slides(
    request: ReorderSlidesRequest,
    service: VillaService = Depends(get_villa_service),
    current_user: User = Depends(get_current_admin)
):
    villa = await service.reorder_slides(request.new_order)
    return _villa_to_response(villa)


@app.delete("/api/admin/villa/slides/{index}", response_model=VillaResponse, tags=["Admin Villa"])
async def delete_slide_at(
    index: int,
    service: VillaService = Depends(get_villa_service),
    current_user: User = Depends(get_current_admin)
):
    villa = await service.delete_slide_at(index)
    return _villa_to_response(villa)


@app.delete("/api/admin/villa/slides/id/{slide_id}", response_model=VillaResponse, tags=["Admin Villa"])
async def delete_slide(
    slide_id: UUID,
    service: VillaService = Depends(get_villa_service),
    current_user: User = Depends(get_current_admin)
):
    villa = await service.delete_slide(slide_id)
    return _villa_to_response(villa)


@app.post("/api/admin/villa/promptpay-qr", response_model=FileUrlResponse, tags=["Admin Villa"])
async def upload_prompt_pay_qr(
    qr_image: UploadFile = File(..., alias="qrImage"),
    service: VillaService = Depends(get_villa_service),
    current_user: User = Depends(get_current_admin)
):
    url = await service.set_prompt_pay_qr(await _read_upload(qr_image))
    return FileUrlResponse(file_url=url)


@app.delete("/api/admin/villa/promptpay-qr", response_model=MessageResponse, tags=["Admin Villa"])
async def delete_prompt_pay_qr(
    service: VillaService = Depends(get_villa_service),
    current_user: User = Depends(get_current_admin)
):
    await service.delete_prompt_pay_qr()
    return MessageResponse(message="QR code deleted successfully")


@app.post("/api/admin/villa/rooms", response_model=VillaResponse, status_code=201, tags=["Admin Villa"])
async def add_room(
    name: str = Form(...),
    description: str = Form(...),
    room_images: Optional[List[UploadFile]] = File(None, alias="roomImages"),
    service: VillaService = Depends(get_villa_service),
    current_user: User = Depends(get_current_admin)
):
    """Add a room; name and description are JSON objects {en, th} sent as form fields"""
    villa = await service.add_room(
        _parse_localized_form(name, "name"),
        _parse_localized_form(description, "description"),
        [await _read_upload(f) for f in room_images or []]
    )
    return _villa_to_response(villa)


@app.patch("/api/admin/villa/rooms/{index}", response_model=VillaResponse, tags=["Admin Villa"])
async def update_room_at(
    index: int,
    name: str = Form(...),
    description: str = Form(...),
    room_images: Optional[List[UploadFile]] = File(None, alias="roomImages"),
    service: VillaService = Depends(get_villa_service),
    current_user: User = Depends(get_current_admin)
):
    villa = await service.update_room_at(
        index,
        _parse_localized_form(name, "name"),
        _parse_localized_form(description, "description"),
        [await _read_upload(f) for f in room_images or []]
    )
    return _villa_to_response(villa)


@app.delete("/api/admin/villa/rooms/{index}", response_model=VillaResponse, tags=["Admin Villa"])
async def delete_room_at(
    index: int,
    service: VillaService = Depends(get_villa_service),
    current_user: User = Depends(get_current_admin)
):
    villa = await service.delete_room_at(index)
    return _villa_to_response(villa)


@app.patch("/api/admin/villa/rooms/id/{room_id}", response_model=VillaResponse, tags=["Admin Villa"])
async def update_room(
    room_id: UUID,
    name: str = Form(...),
    description: str = Form(...),
    room_images: Optional[List[UploadFile]] = File(None, alias="roomImages"),
    service: VillaService = Depends(get_villa_service),
    current_user: User = Depends(get_current_admin)
):
    villa = await service.update_room(
        room_id,
        _parse_localized_form(name, "name"),
        _parse_localized_form(description, "description"),
        [await _read_upload(f) for f in room_images or []]
    )
    return _villa_to_response(villa)


@app.delete("/api/admin/villa/rooms/id/{room_id}", response_model=VillaResponse, tags=["Admin Villa"])
async def delete_room(
    room_id: UUID,
    service: VillaService = Depends(get_villa_service),
    current_user: User = Depends(get_current_admin)
):
    villa = await service.delete_room(room_id)
    return _villa_to_response(villa)

# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

async def _read_upload(upload: UploadFile) -> UploadedFile:
    return UploadedFile(
        filename=upload.filename,
        content_type=upload.content_type,
        data=await upload.read()
    )


def _localized(text: Optional[LocalizedTextSchema]) -> Optional[LocalizedText]:
    if text is None:
        return None
    return LocalizedText(en=text.en or "", th=text.th or "")


def _parse_localized_form(raw: str, field: str) -> LocalizedText:
    """Multipart forms carry bilingual texts as JSON strings"""
    try:
        return _localized(LocalizedTextSchema.model_validate_json(raw))
    except PydanticValidationError:
        raise ValidationError(f"Invalid {field} format")


def _bank_to_response(account) -> BankDetailResponse:
    return BankDetailResponse(
        bank=account.bank,
        account_number=account.account_number,
        account_name=account.account_name
    )


def _text_to_response(text: LocalizedText) -> LocalizedTextSchema:
    return LocalizedTextSchema(en=text.en, th=text.th)


def _booking_to_response(booking: Booking) -> BookingResponse:
    """Convert Booking entity to BookingResponse"""
    details = booking.payment_details
    return BookingResponse(
        id=booking.booking_id,
        customer_info=CustomerInfoSchema(
            first_name=booking.customer_info.first_name,
            last_name=booking.customer_info.last_name,
            contact=booking.customer_info.contact
        ),
        booking_details=BookingDetailsResponse(
            check_in=booking.date_range.check_in,
            check_out=booking.date_range.check_out,
            guests=booking.guests,
            rooms=booking.rooms,
            nights=booking.get_nights(),
            total_price=float(booking.total_price.amount),
            currency=booking.total_price.currency
        ),
        payment_method=booking.payment_method,
        payment_details=PaymentDetailsResponse(
            method=details.method,
            slip_url=details.slip_url,
            status=details.status,
            submitted_at=details.submitted_at
        ) if details else None,
        payment_slip_url=booking.payment_slip_url,
        status=booking.status,
        created_at=booking.created_at,
        expires_at=booking.expires_at,
        confirmed_at=booking.confirmed_at,
        cancelled_at=booking.cancelled_at,
        cancel_reason=booking.cancel_reason,
        modified_at=booking.modified_at,
        version=booking.version
    )


def _villa_to_response(villa: Villa) -> VillaResponse:
    """Convert Villa entity to VillaResponse"""
    return VillaResponse(
        id=villa.villa_id,
        name=_text_to_response(villa.name),
        title=_text_to_response(villa.title),
        description=_text_to_response(villa.description),
        beachfront=_text_to_response(villa.beachfront),
        price_per_night=float(villa.price_per_night),
        discounted_price=float(villa.discounted_price),
        price_reduction_per_room=float(villa.price_reduction_per_room),
        max_guests=villa.max_guests,
        bedrooms=villa.bedrooms,
        bathrooms=villa.bathrooms,
        min_rooms=villa.min_rooms,
        background_image=villa.background_image,
        slide_images=[slide.url for slide in villa.slide_images],
        slides=[SlideResponse(id=slide.slide_id, url=slide.url) for slide in villa.slide_images],
        rooms=[
            RoomResponse(
                id=room.room_id,
                name=_text_to_response(room.name),
                description=_text_to_response(room.description),
                images=list(room.images)
            )
            for room in villa.rooms
        ],
        bank_details=[_bank_to_response(a) for a in villa.bank_details],
        prompt_pay=PromptPayResponse(qr_image=villa.prompt_pay.qr_image),
        offered_payment_methods=villa.offered_payment_methods(),
        modified_at=villa.modified_at,
        version=villa.version
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
