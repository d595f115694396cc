"""Availability schedule manager.

Owns the weekly availability model: validates submitted schedules, persists
them as the owner's default or an alternate schedule, and renders a summary per
block. The owner id is passed explicitly to every call; nothing here reads
ambient session state.

Every write runs in a single transaction on the caller's session. A write that
loses a race (stale optimistic-lock version, or the one-default-per-owner index
rejecting a second default) is retried once and then reported as ``Conflict``.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from calavail.availability import errors
from calavail.availability.summary import availability_as_string
from calavail.availability.validation import validate_blocks, validate_time_zone, validate_weekly
from calavail.availability.weekly import availability_from_weekly, default_blocks
from calavail.database.models import ScheduleDB
from calavail.database.schedule_repository import ScheduleRepository
from calavail.models.constants import DEFAULT_SCHEDULE_NAME, LOCK_CONFLICT_SQLSTATES, MAX_CONFLICT_RETRIES
from calavail.models.schedule import AvailabilityBlock, Schedule, ScheduleCreate, ScheduleUpdate

logger = logging.getLogger(__name__)

R = TypeVar("R")


def _is_lock_conflict(e: OperationalError) -> bool:
    """Deadlock or serialization failure reported by the database."""
    code = getattr(e.orig, "sqlstate", None) or getattr(e.orig, "pgcode", None)
    return code in LOCK_CONFLICT_SQLSTATES


class ScheduleManager:
    """Schedule operations for one database session."""

    def __init__(self, db: Session, repository: Optional[ScheduleRepository] = None):
        self.db = db
        self.repository = repository or ScheduleRepository(db)

    # Reads

    def get_schedule(self, owner_id: str, schedule_id: str) -> Schedule:
        row = self.repository.find_schedule_by_id(owner_id, schedule_id)
        if row is None:
            raise errors.NotFound(f"Schedule {schedule_id} not found")
        return self._to_schedule(row)

    def list_schedules(self, owner_id: str) -> List[Schedule]:
        return [self._to_schedule(row) for row in self.repository.find_schedules_by_owner(owner_id)]

    def default_schedule_for(self, owner_id: str) -> Schedule:
        """The owner's default schedule, or the unsaved Monday-Friday 9-5 template.

        The template uses the owner's account time zone and is never persisted
        here; it becomes a row only when the owner saves it.
        """
        row = self.repository.find_default(owner_id)
        if row is not None:
            return self._to_schedule(row)

        owner = self.repository.find_owner(owner_id)
        if owner is None:
            raise errors.NotFound(f"User {owner_id} not found")
        return self._with_summaries(
            Schedule(
                id=None,
                owner_id=owner_id,
                name=DEFAULT_SCHEDULE_NAME,
                time_zone=owner.time_zone,
                is_default=True,
                availability=default_blocks(),
            )
        )

    # Writes

    def create_schedule(self, owner_id: str, data: ScheduleCreate) -> Schedule:
        """Create a schedule; the owner's first schedule becomes their default."""
        blocks = validate_blocks(data.availability if data.availability is not None else default_blocks())
        if data.time_zone is not None:
            validate_time_zone(data.time_zone)

        def work() -> ScheduleDB:
            owner = self.repository.lock_owner(owner_id)
            if owner is None:
                raise errors.NotFound(f"User {owner_id} not found")
            row = self.repository.create_schedule(
                user_id=owner_id,
                name=data.name,
                time_zone=data.time_zone or owner.time_zone,
                blocks=blocks,
            )
            if self.repository.find_default(owner_id) is None:
                self.repository.set_default_exclusive(owner_id, row.id)
            return row

        row = self._run_in_transaction(work, f"creating schedule for user {owner_id}")
        logger.info(f"Created schedule {row.id} for user {owner_id}")
        return self._to_schedule(row)

    def update_schedule(self, owner_id: str, schedule_id: str, update: ScheduleUpdate) -> Schedule:
        """Replace a schedule's blocks and metadata as one all-or-nothing write.

        Steps: validate, replace the block set, persist name/time zone (an
        omitted or blank name keeps the stored one), then move the default flag.
        """
        blocks = self._submitted_blocks(update)
        if update.time_zone is not None:
            validate_time_zone(update.time_zone)
        name = update.name.strip() if update.name else None

        def work() -> ScheduleDB:
            self.repository.lock_owner(owner_id)
            row = self.repository.find_schedule_by_id(owner_id, schedule_id)
            if row is None:
                raise errors.NotFound(f"Schedule {schedule_id} not found")
            if update.is_default is False and row.is_default:
                raise errors.ValidationError(
                    "Cannot unset the default schedule",
                    ["isDefault: make another schedule the default instead"],
                )

            self.repository.replace_blocks(row, blocks)
            if name:
                row.name = name
            if update.time_zone is not None:
                row.time_zone = update.time_zone
            row.updated_at = datetime.utcnow()
            self.db.flush()

            if update.is_default:
                self.repository.set_default_exclusive(owner_id, row.id)
            return row

        row = self._run_in_transaction(work, f"updating schedule {schedule_id}")
        logger.info(f"Updated schedule {schedule_id} for user {owner_id} ({len(blocks)} blocks)")
        return self._to_schedule(row)

    def delete_schedule(self, owner_id: str, schedule_id: str) -> None:
        """Delete a schedule that no active booking references.

        Deleting the default promotes the owner's oldest remaining schedule.
        """

        def work() -> None:
            self.repository.lock_owner(owner_id)
            row = self.repository.find_schedule_by_id(owner_id, schedule_id)
            if row is None:
                raise errors.NotFound(f"Schedule {schedule_id} not found")
            if self.repository.has_active_bookings(schedule_id):
                raise errors.DependencyInUse(f"Schedule {schedule_id} is used by an active booking")

            was_default = bool(row.is_default)
            self.repository.delete_schedule(row)
            if was_default:
                remaining = self.repository.find_schedules_by_owner(owner_id)
                if remaining:
                    self.repository.set_default_exclusive(owner_id, remaining[0].id)

        self._run_in_transaction(work, f"deleting schedule {schedule_id}")
        logger.info(f"Deleted schedule {schedule_id} for user {owner_id}")

    # Helpers

    def _submitted_blocks(self, update: ScheduleUpdate) -> List[AvailabilityBlock]:
        if update.availability is not None and update.schedule is not None:
            raise errors.ValidationError(
                "Invalid availability",
                ["submit either availability or the weekly schedule, not both"],
            )
        if update.schedule is not None:
            validate_weekly(update.schedule)
            return validate_blocks(availability_from_weekly(update.schedule))
        if update.availability is None:
            raise errors.ValidationError("Invalid availability", ["availability is required"])
        return validate_blocks(update.availability)

    def _run_in_transaction(self, work: Callable[[], R], description: str) -> R:
        attempts = MAX_CONFLICT_RETRIES + 1
        for attempt in range(1, attempts + 1):
            try:
                result = work()
                self.db.commit()
                return result
            except errors.ScheduleError:
                self.db.rollback()
                raise
            except (StaleDataError, IntegrityError, OperationalError) as e:
                self.db.rollback()
                if isinstance(e, OperationalError) and not _is_lock_conflict(e):
                    logger.error(f"Failed {description}: {type(e).__name__}: {str(e)}")
                    raise
                if attempt >= attempts:
                    logger.error(f"Conflict while {description}, giving up: {type(e).__name__}: {str(e)}")
                    raise errors.Conflict(f"Concurrent update while {description}; retry the operation") from e
                logger.warning(f"Conflict while {description} (attempt {attempt}/{attempts}), retrying")
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed {description}: {type(e).__name__}: {str(e)}")
                raise

    def _to_schedule(self, row: ScheduleDB) -> Schedule:
        return self._with_summaries(row.to_pydantic())

    @staticmethod
    def _with_summaries(schedule: Schedule) -> Schedule:
        for block in schedule.availability:
            block.summary = availability_as_string(block)
        return schedule
