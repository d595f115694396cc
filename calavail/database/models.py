"""SQLAlchemy database models for calavail."""

from datetime import datetime
import uuid
from sqlalchemy import (
    Column,
    String,
    Integer,
    Boolean,
    Date,
    DateTime,
    Time,
    JSON,
    ForeignKey,
    Index,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship

from typing import Union, TypeVar, Type
from calavail.database.database import Base
from calavail.models.constants import DEFAULT_TIME_ZONE
from calavail.models.user import IdentityProvider

T = TypeVar('T')


def enum_to_value(enum_obj: Union[str, T]) -> str:
    """Convert enum to string value (handles both enum and string).

    Args:
        enum_obj: Enum instance or string value

    Returns:
        String value of the enum, or the string itself if already a string
    """
    if hasattr(enum_obj, 'value'):
        return enum_obj.value
    return str(enum_obj)


def value_to_enum(value: str, enum_class: Type[T], default: T) -> T:
    """Convert string to enum with fallback to default.

    Provider names arrive in mixed case ("google" from OAuth callbacks,
    "GOOGLE" from stored rows), so the upper-cased value is tried too.
    """
    if not value:
        return default
    try:
        return enum_class(value)
    except ValueError:
        pass
    try:
        return enum_class(value.upper())
    except (ValueError, AttributeError):
        return default


class UserDB(Base):
    """Database model for User."""

    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))

    # User profile
    email = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=True)
    email_verified = Column(DateTime, nullable=True)
    time_zone = Column(String, nullable=False, default=DEFAULT_TIME_ZONE)

    # Legacy identity linkage (pre-dates the accounts table)
    identity_provider = Column(String, nullable=False, default=IdentityProvider.CAL.value)
    identity_provider_id = Column(String, nullable=True, index=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    schedules = relationship("ScheduleDB", back_populates="owner", cascade="all, delete", passive_deletes=True)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from calavail.models.user import User
        return User(
            id=self.id,
            email=self.email,
            name=self.name,
            time_zone=self.time_zone,
            identity_provider=value_to_enum(self.identity_provider, IdentityProvider, IdentityProvider.CAL),
            identity_provider_id=self.identity_provider_id,
            email_verified=self.email_verified,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class AccountDB(Base):
    """Linked OAuth account for a user.

    Provider tokens are secrets; do NOT log them.
    """

    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("provider", "provider_account_id", name="uq_accounts_provider_account"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    type = Column(String, nullable=False, default="oauth")
    provider = Column(String, nullable=False)  # e.g. "google"
    provider_account_id = Column(String, nullable=False)

    refresh_token = Column(String, nullable=True)
    access_token = Column(String, nullable=True)
    expires_at = Column(Integer, nullable=True)
    token_type = Column(String, nullable=True)
    scope = Column(String, nullable=True)
    id_token = Column(String, nullable=True)
    session_state = Column(String, nullable=True)

    user = relationship("UserDB")


class SessionDB(Base):
    """Database-backed login session."""

    __tablename__ = "sessions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    session_token = Column(String, nullable=False, unique=True, index=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    expires = Column(DateTime, nullable=False)

    user = relationship("UserDB")


class VerificationTokenDB(Base):
    """Single-use email verification / sign-in token."""

    __tablename__ = "verification_tokens"
    __table_args__ = (
        UniqueConstraint("identifier", "token", name="uq_verification_tokens_identifier_token"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    identifier = Column(String, nullable=False)
    token = Column(String, nullable=False, unique=True)
    expires = Column(DateTime, nullable=False)


class ScheduleDB(Base):
    """Database model for Schedule."""

    __tablename__ = "schedules"
    __table_args__ = (
        # At most one default schedule per owner, enforced by the database itself.
        Index(
            "uq_schedules_one_default_per_user",
            "user_id",
            unique=True,
            sqlite_where=text("is_default = 1"),
            postgresql_where=text("is_default"),
        ),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String, nullable=False)
    time_zone = Column(String, nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)

    # Optimistic-lock counter; a stale write raises StaleDataError on flush.
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner = relationship("UserDB", back_populates="schedules")
    availability = relationship(
        "AvailabilityDB",
        order_by="AvailabilityDB.position",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __mapper_args__ = {"version_id_col": version}

    def to_pydantic(self):
        """Convert database model to Pydantic model (summaries are filled by the manager)."""
        from calavail.models.schedule import Schedule
        return Schedule(
            id=self.id,
            owner_id=self.user_id,
            name=self.name,
            time_zone=self.time_zone,
            is_default=bool(self.is_default),
            availability=[row.to_pydantic() for row in self.availability],
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class AvailabilityDB(Base):
    """Database model for one availability block of a schedule."""

    __tablename__ = "availability"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    schedule_id = Column(String, ForeignKey("schedules.id", ondelete="CASCADE"), nullable=False, index=True)

    # Preserves submitted block order
    position = Column(Integer, nullable=False, default=0)

    # Recurring blocks: JSON list of weekdays (0 = Sunday). Dated blocks: start/end date.
    days = Column(JSON, nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)

    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from calavail.models.schedule import AvailabilityBlock
        return AvailabilityBlock(
            days=list(self.days) if self.days is not None else None,
            start_date=self.start_date,
            end_date=self.end_date,
            start_time=self.start_time,
            end_time=self.end_time,
        )

    @classmethod
    def from_pydantic(cls, block, *, schedule_id: str, position: int):
        """Create database model from Pydantic model."""
        return cls(
            schedule_id=schedule_id,
            position=position,
            days=sorted(block.days) if block.days is not None else None,
            start_date=block.start_date,
            end_date=block.end_date,
            start_time=block.start_time,
            end_time=block.end_time,
        )


class BookingDB(Base):
    """Booking made against a schedule.

    Bookings are owned by the booking flow; calavail only reads them to decide
    whether a schedule may be deleted.
    """

    __tablename__ = "bookings"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    schedule_id = Column(String, ForeignKey("schedules.id", ondelete="SET NULL"), nullable=True, index=True)

    title = Column(String, nullable=False, default="")
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default="accepted")

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
