# models.py
import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Text, Boolean, Float, DateTime, Enum, ForeignKey,
    UniqueConstraint, func,
)
from sqlalchemy.orm import relationship
from db import Base


def utcnow() -> datetime:
    # naive UTC; sqlite drops tzinfo on the way back anyway
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SubmissionStatus(str, enum.Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


class SubmissionType(str, enum.Enum):
    REQUEST = "REQUEST"
    BUG_REPORT = "BUG_REPORT"
    ACCOUNT = "ACCOUNT"
    PRODUCT_REQUEST = "PRODUCT_REQUEST"
    OTHER = "OTHER"


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    handle = Column(String, unique=True, index=True, nullable=True)
    name = Column(String, nullable=True)
    hashed_password = Column(String, nullable=True)   # magic-link accounts have none until onboarding
    image = Column(String, nullable=True)
    bio = Column(Text, nullable=True)
    is_admin = Column(Boolean, default=False, nullable=False)
    course_count = Column(Integer, default=0, nullable=False)
    credentials_version = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    courses = relationship("Course", back_populates="user", cascade="all, delete")
    comments = relationship("Comment", back_populates="user", cascade="all, delete")
    ratings = relationship("Rating", back_populates="user", cascade="all, delete")
    wants_to_eat = relationship("WantsToEat", back_populates="user", cascade="all, delete")
    tried = relationship("Tried", back_populates="user", cascade="all, delete")
    submissions = relationship("ContactSubmission", back_populates="user")


class Product(Base):
    __tablename__ = "products"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    manufacturer = Column(String, nullable=True, index=True)
    description = Column(Text, nullable=True)
    image_url = Column(String, nullable=True)
    price_reference = Column(Integer, nullable=True)   # yen
    amazon_url = Column(String, nullable=True)
    amazon_price = Column(Integer, nullable=True)
    rakuten_url = Column(String, nullable=True)
    rakuten_price = Column(Integer, nullable=True)
    yahoo_url = Column(String, nullable=True)
    yahoo_price = Column(Integer, nullable=True)
    barcode = Column(String, nullable=True)
    asin = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Course(Base):
    __tablename__ = "courses"
    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    wants_to_eat_count = Column(Integer, default=0, nullable=False)
    tried_count = Column(Integer, default=0, nullable=False)
    comment_count = Column(Integer, default=0, nullable=False)
    average_rating = Column(Float, nullable=True)      # None = no ratings
    total_ratings_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="courses")
    items = relationship(
        "CourseItem", back_populates="course", cascade="all, delete-orphan",
        order_by="CourseItem.order",
    )
    ratings = relationship("Rating", back_populates="course", cascade="all, delete")
    wants_to_eat = relationship("WantsToEat", back_populates="course", cascade="all, delete")
    tried = relationship("Tried", back_populates="course", cascade="all, delete")
    comments = relationship("Comment", back_populates="course", cascade="all, delete")


class CourseItem(Base):
    __tablename__ = "course_items"
    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    role = Column(String, nullable=False)
    order = Column(Integer, nullable=False)    # 1-based display position
    course = relationship("Course", back_populates="items")
    product = relationship("Product")


class Rating(Base):
    __tablename__ = "ratings"
    __table_args__ = (UniqueConstraint("course_id", "user_id", name="uq_rating_course_user"),)
    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    score = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    course = relationship("Course", back_populates="ratings")
    user = relationship("User", back_populates="ratings")


class WantsToEat(Base):
    __tablename__ = "wants_to_eat"
    __table_args__ = (UniqueConstraint("course_id", "user_id", name="uq_wants_course_user"),)
    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    course = relationship("Course", back_populates="wants_to_eat")
    user = relationship("User", back_populates="wants_to_eat")


class Tried(Base):
    __tablename__ = "tried"
    __table_args__ = (UniqueConstraint("course_id", "user_id", name="uq_tried_course_user"),)
    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    course = relationship("Course", back_populates="tried")
    user = relationship("User", back_populates="tried")


class Comment(Base):
    __tablename__ = "comments"
    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    course = relationship("Course", back_populates="comments")
    user = relationship("User", back_populates="comments")


class OneTimeToken(Base):
    """Single-use, time-boxed secret; one live token per (purpose, email)."""
    __tablename__ = "one_time_tokens"
    __table_args__ = (UniqueConstraint("purpose", "email", name="uq_token_purpose_email"),)
    id = Column(Integer, primary_key=True, index=True)
    purpose = Column(String, nullable=False)
    email = Column(String, nullable=False, index=True)
    token = Column(String, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    attempts = Column(Integer, default=0, nullable=False)   # wrong codes entered so far
    created_at = Column(DateTime, default=utcnow, nullable=False)


class ContactSubmission(Base):
    __tablename__ = "contact_submissions"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    submitter_name = Column(String, nullable=True)
    submitter_email = Column(String, nullable=False)
    type = Column(Enum(SubmissionType), nullable=False, default=SubmissionType.OTHER)
    title = Column(String, nullable=False)
    details = Column(Text, nullable=False)
    status = Column(Enum(SubmissionStatus), nullable=False, default=SubmissionStatus.OPEN)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    user = relationship("User", back_populates="submissions")
