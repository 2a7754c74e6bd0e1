"""API Schemas - Request and Response DTOs"""
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from datetime import date, datetime
from uuid import UUID
from typing import List, Optional

from domain.enums import BookingStatus, PaymentMethod, PaymentStatus


class CamelModel(BaseModel):
    """Base DTO, camelCase on the wire and snake_case in Python"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


# ============================================================================
# BOOKING SCHEMAS
# ============================================================================

class CustomerInfoSchema(CamelModel):
    """Customer info DTO"""
    first_name: str
    last_name: str
    contact: str


class BookingDetailsRequest(CamelModel):
    """Booking details request DTO, the price is always computed server-side"""
    check_in: date
    check_out: date
    guests: int
    rooms: Optional[int] = None


class CreateBookingRequest(CamelModel):
    """Create booking request DTO"""
    customer_info: CustomerInfoSchema
    booking_details: BookingDetailsRequest


class PaymentDetailsRequest(CamelModel):
    slip_url: Optional[str] = None


class UpdateBookingRequest(CamelModel):
    """Update booking request DTO"""
    payment_method: Optional[PaymentMethod] = None
    status: Optional[BookingStatus] = None
    payment_details: Optional[PaymentDetailsRequest] = None
    cancel_reason: Optional[str] = None


class CancelBookingRequest(CamelModel):
    """Cancel booking request DTO"""
    reason: Optional[str] = None


class BookingDetailsResponse(CamelModel):
    check_in: date
    check_out: date
    guests: int
    rooms: int
    nights: int
    total_price: float
    currency: str


class PaymentDetailsResponse(CamelModel):
    method: Optional[PaymentMethod] = None
    slip_url: str
    status: PaymentStatus
    submitted_at: datetime


class BookingResponse(CamelModel):
    """Booking response DTO"""
    id: UUID
    customer_info: CustomerInfoSchema
    booking_details: BookingDetailsResponse
    payment_method: Optional[PaymentMethod] = None
    payment_details: Optional[PaymentDetailsResponse] = None
    payment_slip_url: Optional[str] = None
    status: BookingStatus
    created_at: datetime
    expires_at: datetime
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    modified_at: datetime
    version: int


class CountdownResponse(CamelModel):
    """Payment countdown response DTO"""
    booking_id: UUID
    status: BookingStatus
    expires_at: datetime
    remaining_seconds: int
    window_seconds: int
    elapsed_fraction: float
    expired: bool


class FileUrlResponse(CamelModel):
    file_url: str


class ExpireOverdueResponse(CamelModel):
    expired: int


# ============================================================================
# VILLA SCHEMAS
# ============================================================================

class LocalizedTextSchema(CamelModel):
    en: Optional[str] = None
    th: Optional[str] = None


class BankDetailSchema(CamelModel):
    """One bank account; missing fields are rejected by the service"""
    bank: Optional[str] = None
    account_number: Optional[str] = None
    account_name: Optional[str] = None


class UpdateVillaRequest(CamelModel):
    """Partial villa update request DTO"""
    name: Optional[LocalizedTextSchema] = None
    title: Optional[LocalizedTextSchema] = None
    description: Optional[LocalizedTextSchema] = None
    beachfront: Optional[LocalizedTextSchema] = None
    price_per_night: Optional[float] = None
    discounted_price: Optional[float] = None
    price_reduction_per_room: Optional[float] = None
    max_guests: Optional[int] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    min_rooms: Optional[int] = None
    bank_details: Optional[List[BankDetailSchema]] = None


class UpdateBankDetailsRequest(CamelModel):
    bank_details: List[BankDetailSchema]


class ReorderSlidesRequest(CamelModel):
    """new_order[i] is the current index of the slide moving to position i"""
    new_order: List[int]


class SlideResponse(CamelModel):
    id: UUID
    url: str


class RoomResponse(CamelModel):
    id: UUID
    name: LocalizedTextSchema
    description: LocalizedTextSchema
    images: List[str]


class PromptPayResponse(CamelModel):
    qr_image: Optional[str] = None


class BankDetailResponse(CamelModel):
    bank: str
    account_number: str
    account_name: str


class VillaResponse(CamelModel):
    """Villa response DTO"""
    id: UUID
    name: LocalizedTextSchema
    title: LocalizedTextSchema
    description: LocalizedTextSchema
    beachfront: LocalizedTextSchema
    price_per_night: float
    discounted_price: float
    price_reduction_per_room: float
    max_guests: int
    bedrooms: int
    bathrooms: int
    min_rooms: int
    background_image: Optional[str] = None
    slide_images: List[str]
    slides: List[SlideResponse]
    rooms: List[RoomResponse]
    bank_details: List[BankDetailResponse]
    prompt_pay: PromptPayResponse
    offered_payment_methods: List[PaymentMethod]
    modified_at: datetime
    version: int


class BankDetailsResponse(CamelModel):
    bank_details: List[BankDetailResponse]


# ============================================================================
# AUTH SCHEMAS
# ============================================================================

class Token(BaseModel):
    """Token response DTO"""
    access_token: str
    token_type: str


class TokenData(BaseModel):
    """Token payload DTO"""
    username: Optional[str] = None
    scope: Optional[str] = None


class UserResponse(CamelModel):
    """User response DTO"""
    user_id: UUID
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: str
    disabled: bool


class MessageResponse(BaseModel):
    message: str = Field(default="OK")
