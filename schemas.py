"""
Database Schemas for the Photography Studio site

Each Pydantic model represents a MongoDB collection. Collection name is the lowercase of the class name.

Collections:
- admin
- user
- service
- sitesettings
- carouselslide
- booking

created_at / updated_at are stamped by the store adapter, not by the models.
"""

from pydantic import BaseModel, Field, EmailStr, field_validator
from typing import List, Literal
from datetime import date, datetime, time

BookingStatus = Literal["pending", "confirmed", "completed", "cancelled"]

class Admin(BaseModel):
    email: EmailStr = Field(..., description="Login email")
    password: str = Field(..., min_length=1, description="BCrypt hash")

class User(BaseModel):
    name: str = Field(..., min_length=1, description="Full name")
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., min_length=1, description="BCrypt hash")
    phone: str = ""
    location: str = ""

class Service(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    icon: str = "📷"
    imagePath: str = ""
    price: str = ""
    features: List[str] = Field(default_factory=list)
    isActive: bool = True
    order: int = Field(0, ge=0, description="Ascending display order")

class SiteSettings(BaseModel):
    siteName: str = "ESIGN IMAGE STUDIO"
    siteTitle: str = "Omikoz Photography - Capturing Life's Moments"
    projectTitle: str = "Professional Photography Services"
    heroTitle: str = "Capturing Life's Beautiful Moments"
    heroSubtitle: str = "Professional photography that tells your story"
    logoPath: str = "/images/WhatsApp Image 2025-10-28 at 15.42.31.jpeg"
    email: str = "hello@esignimagestudio.com"
    phone: str = "+250 789 811 738"
    aboutText: str = "With years of experience in capturing precious moments..."

class CarouselSlide(BaseModel):
    title: str = Field(..., min_length=1)
    subtitle: str = Field(..., min_length=1)
    imagePath: str = ""
    linkUrl: str = "/signup"
    order: int = Field(0, ge=0, description="Ascending display order")
    isActive: bool = True

class Booking(BaseModel):
    userId: str = Field(..., min_length=1, description="Reference to user._id")
    serviceId: str = Field(..., min_length=1, description="Reference to service._id")
    status: BookingStatus = "pending"
    bookingDate: datetime
    notes: str = ""

    @field_validator("bookingDate", mode="before")
    @classmethod
    def date_only(cls, value):
        # <input type="date"> posts YYYY-MM-DD
        if isinstance(value, str) and len(value) == 10:
            try:
                return datetime.combine(date.fromisoformat(value), time.min)
            except ValueError:
                return value
        return value
