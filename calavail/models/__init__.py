"""Data models for calavail."""

from calavail.models.schedule import AvailabilityBlock, Schedule, ScheduleCreate, ScheduleUpdate, TimeRange
from calavail.models.user import AuthSession, IdentityProvider, LinkedAccount, User, VerificationToken

__all__ = [
    "AvailabilityBlock",
    "Schedule",
    "ScheduleCreate",
    "ScheduleUpdate",
    "TimeRange",
    "AuthSession",
    "IdentityProvider",
    "LinkedAccount",
    "User",
    "VerificationToken",
]
