"""Domain Value Objects"""
import re
from pydantic import BaseModel, Field, validator
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4
from typing import List, Optional

from domain.enums import PaymentMethod, PaymentStatus
from domain.exceptions import ValidationError


class LocalizedText(BaseModel):
    """Value Object for text kept in English and Thai"""
    en: str = ""
    th: str = ""

    def merged_with(self, en: Optional[str], th: Optional[str]) -> "LocalizedText":
        """Replace only the languages that were given"""
        return LocalizedText(en=en or self.en, th=th or self.th)

    class Config:
        frozen = True


class DateRange(BaseModel):
    """Value Object for a stay, check-out is exclusive"""
    check_in: date
    check_out: date

    @validator('check_out')
    def check_out_after_check_in(cls, v, values):
        if 'check_in' in values and v <= values['check_in']:
            raise ValueError('Check-out must be after check-in')
        return v

    def nights(self) -> int:
        """Calculate number of nights"""
        return (self.check_out - self.check_in).days

    class Config:
        frozen = True


class Money(BaseModel):
    """Value Object for monetary amounts"""
    amount: Decimal = Field(ge=0)
    currency: str = "THB"

    class Config:
        frozen = True


class CustomerInfo(BaseModel):
    """Value Object for the person making the booking"""
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    contact: str = Field(min_length=1)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    class Config:
        frozen = True
        str_strip_whitespace = True


class BankAccount(BaseModel):
    """Value Object for one account shown on the bank transfer page"""
    bank: str
    account_number: str
    account_name: str

    @staticmethod
    def normalize(bank: Optional[str], account_number: Optional[str], account_name: Optional[str]) -> "BankAccount":
        """Trim all fields and dash-separate the account number groups"""
        if not (bank or "").strip() or not (account_number or "").strip() or not (account_name or "").strip():
            raise ValidationError(
                "Each bank detail must include bank name, account number, and account name"
            )
        return BankAccount(
            bank=bank.strip(),
            account_number=re.sub(r"\s+", "-", account_number.strip()),
            account_name=account_name.strip()
        )

    class Config:
        frozen = True


class PromptPay(BaseModel):
    """Value Object for PromptPay collection details"""
    qr_image: Optional[str] = None

    class Config:
        frozen = True


class SlideImage(BaseModel):
    """Child Entity for a hero slide, identified independently of its position"""
    slide_id: UUID = Field(default_factory=uuid4)
    url: str

    class Config:
        frozen = True


class Room(BaseModel):
    """Child Entity for a bedroom shown on the villa page"""
    room_id: UUID = Field(default_factory=uuid4)
    name: LocalizedText
    description: LocalizedText
    images: List[str] = []

    class Config:
        from_attributes = True


class UploadedFile(BaseModel):
    """Value Object for a file received from a multipart request"""
    filename: Optional[str] = None
    content_type: Optional[str] = None
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    class Config:
        frozen = True


class PaymentDetails(BaseModel):
    """Value Object for the evidence recorded against a booking"""
    method: PaymentMethod
    slip_url: str
    status: PaymentStatus = PaymentStatus.PENDING
    submitted_at: datetime

    class Config:
        frozen = True
