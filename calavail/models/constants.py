"""Constants for calavail.

This module centralizes the default values used throughout the application.
"""

import os
from datetime import time

from dotenv import load_dotenv

load_dotenv()


# Weekday identifiers (0 = Sunday)
WEEKDAYS = range(7)
DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
MONTH_ABBREVIATIONS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

# Account defaults
DEFAULT_TIME_ZONE = os.getenv("DEFAULT_TIME_ZONE", "Europe/London")
DEFAULT_SCHEDULE_NAME = "Working Hours"

# Fallback template: Monday through Friday, 09:00-17:00, no weekend blocks.
DEFAULT_START_TIME = time(9, 0)
DEFAULT_END_TIME = time(17, 0)
DEFAULT_WORKING_DAYS = [1, 2, 3, 4, 5]

# Concurrency
MAX_CONFLICT_RETRIES = 1

# Bookings in these states hold on to the schedule they were made against
ACTIVE_BOOKING_STATUSES = ("accepted", "pending")

# Identity providers that predate linked accounts (matched on users.identity_provider_id)
LEGACY_FALLBACK_PROVIDERS = ("GOOGLE", "SAML")
SESSION_MAX_AGE_DAYS = int(os.getenv("SESSION_MAX_AGE_DAYS", "30"))

# Postgres SQLSTATEs for serialization failure and deadlock; retried like a stale write
LOCK_CONFLICT_SQLSTATES = ("40001", "40P01")
