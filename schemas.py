"""
Request bodies for the JSON API.

Field names follow the web client (camelCase where it sends camelCase);
responses are plain dicts built next to the routes that return them.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from models import SubmissionStatus


class EmailIn(BaseModel):
    email: EmailStr


class LoginIn(BaseModel):
    email: EmailStr
    password: str


OTP_PATTERN = r"^[0-9]{6}$"


class VerifyOtpIn(BaseModel):
    email: EmailStr
    code: str = Field(..., pattern=OTP_PATTERN)


class RegisterIn(BaseModel):
    email: EmailStr
    code: str = Field(..., pattern=OTP_PATTERN)
    handle: str = Field(..., description="unique public user ID")
    name: str
    password: str = Field(..., min_length=8)


class ResetPasswordIn(BaseModel):
    token: str
    password: str = Field(..., min_length=8)


class SetupIn(BaseModel):
    name: str
    password: str = Field(..., min_length=8)


class ProfileUpdateIn(BaseModel):
    name: Optional[str] = None
    bio: Optional[str] = None
    image: Optional[str] = None


class CourseItemIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: int = Field(..., alias="productId")
    role: str


class CourseIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = ""
    description: str = ""
    course_items: List[CourseItemIn] = Field(default_factory=list, alias="courseItems")


class RatingIn(BaseModel):
    score: int


class CommentIn(BaseModel):
    content: str = ""


class SubmissionStatusIn(BaseModel):
    status: SubmissionStatus
