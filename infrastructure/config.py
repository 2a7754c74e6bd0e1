"""
Environment configuration for the villa booking API.
Values come from environment variables or a local .env file.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class LocalizedDefault(BaseModel):
    en: str
    th: str


class VillaDefaults(BaseModel):
    """Values the villa record is created with on first read"""
    name: LocalizedDefault = LocalizedDefault(en="Villa Paradise", th="วิลล่า พาราไดซ์")
    title: LocalizedDefault = LocalizedDefault(
        en="Experience Luxury Like Never Before",
        th="สัมผัสประสบการณ์ความหรูหราที่ไม่เคยมีมาก่อน"
    )
    description: LocalizedDefault = LocalizedDefault(
        en="A luxurious villa with modern amenities",
        th="วิลล่าหรูพร้อมสิ่งอำนวยความสะดวกทันสมัย"
    )
    beachfront: LocalizedDefault = LocalizedDefault(
        en="Direct access to the beach",
        th="เข้าถึงชายหาดได้โดยตรง"
    )
    price_per_night: Decimal = Decimal("299")
    discounted_price: Decimal = Decimal("0")
    price_reduction_per_room: Decimal = Decimal("0")
    max_guests: int = 6
    bedrooms: int = 3
    bathrooms: int = 3
    min_rooms: int = 1


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    APP_NAME: str = "Villa Booking API"
    API_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"

    # Absolute asset URLs are built as {CLIENT_URL}/uploads/{kind}/{file}
    CLIENT_URL: str = "http://localhost:5173"
    UPLOAD_DIR: str = "uploads"
    MAX_SLIP_SIZE_BYTES: int = 5 * 1024 * 1024
    MAX_IMAGE_SIZE_BYTES: int = 10 * 1024 * 1024
    MAX_IMAGES_PER_UPLOAD: int = 10

    # Booking lifecycle
    PAYMENT_WINDOW_MINUTES: int = Field(default=30, ge=1)
    EXPIRY_SWEEP_INTERVAL_SECONDS: int = Field(default=60, ge=0)
    CURRENCY: str = "THB"
    # Check-in dates are compared against the calendar date in this zone
    TIMEZONE: str = "Asia/Bangkok"

    # Security
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    ADMIN_USERNAME: str = "admin"
    ADMIN_PASSWORD: str = "admin123"
    ADMIN_EMAIL: str = "admin@example.com"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "standard"  # standard | json

    VILLA_DEFAULTS: VillaDefaults = VillaDefaults()

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
