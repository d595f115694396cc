"""Repository for Schedule database operations.

Write methods flush but never commit: `ScheduleManager` owns the transaction so
that a multi-step update (replace blocks, persist metadata, move the default
flag) commits or rolls back as one unit.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from calavail.database.models import AvailabilityDB, BookingDB, ScheduleDB, UserDB
from calavail.models.constants import ACTIVE_BOOKING_STATUSES
from calavail.models.schedule import AvailabilityBlock

logger = logging.getLogger(__name__)


class ScheduleRepository:
    """Repository for Schedule database operations."""

    def __init__(self, db: Session):
        self.db = db

    def find_schedule_by_id(self, user_id: str, schedule_id: str) -> Optional[ScheduleDB]:
        """Get a schedule by ID (user-scoped: a foreign schedule is indistinguishable from a missing one)."""
        return (
            self.db.query(ScheduleDB)
            .filter(ScheduleDB.id == schedule_id, ScheduleDB.user_id == user_id)
            .first()
        )

    def find_schedules_by_owner(self, user_id: str) -> List[ScheduleDB]:
        """Get all schedules for a user, default first, then oldest first."""
        return (
            self.db.query(ScheduleDB)
            .filter(ScheduleDB.user_id == user_id)
            .order_by(desc(ScheduleDB.is_default), ScheduleDB.created_at, ScheduleDB.id)
            .all()
        )

    def find_default(self, user_id: str) -> Optional[ScheduleDB]:
        return (
            self.db.query(ScheduleDB)
            .filter(ScheduleDB.user_id == user_id, ScheduleDB.is_default.is_(True))
            .first()
        )

    def find_owner(self, user_id: str) -> Optional[UserDB]:
        return self.db.query(UserDB).filter(UserDB.id == user_id).first()

    def lock_owner(self, user_id: str) -> Optional[UserDB]:
        """Row-lock the owner so default-flag changes for one owner serialize.

        SELECT ... FOR UPDATE on PostgreSQL; SQLite serializes writers anyway and
        SQLAlchemy drops the clause there.
        """
        return self.db.query(UserDB).filter(UserDB.id == user_id).with_for_update().first()

    def create_schedule(
        self,
        *,
        user_id: str,
        name: str,
        time_zone: str,
        blocks: List[AvailabilityBlock],
        schedule_id: Optional[str] = None,
    ) -> ScheduleDB:
        row = ScheduleDB(
            id=schedule_id,
            user_id=user_id,
            name=name,
            time_zone=time_zone,
            is_default=False,
        )
        try:
            self.db.add(row)
            self.db.flush()
            row.availability = self._block_rows(row.id, blocks)
            self.db.flush()
            logger.debug(f"Created schedule {row.id} for user {user_id} with {len(blocks)} blocks")
            return row
        except Exception as e:
            logger.error(f"Failed to create schedule for user {user_id}: {type(e).__name__}: {str(e)}")
            raise

    def replace_blocks(self, row: ScheduleDB, blocks: List[AvailabilityBlock]) -> ScheduleDB:
        """Replace the whole block set of a schedule (delete-orphan removes the old rows)."""
        try:
            row.availability = self._block_rows(row.id, blocks)
            row.updated_at = datetime.utcnow()
            self.db.flush()
            logger.debug(f"Replaced blocks of schedule {row.id} ({len(blocks)} blocks)")
            return row
        except Exception as e:
            logger.error(f"Failed to replace blocks of schedule {row.id}: {type(e).__name__}: {str(e)}")
            raise

    def set_default_exclusive(self, user_id: str, schedule_id: str) -> int:
        """Demote every other schedule of the owner, then promote this one.

        Demotion is flushed first so the one-default-per-owner index is never
        violated mid-transaction. Returns the number of schedules demoted.
        """
        try:
            self.lock_owner(user_id)
            demoted = (
                self.db.query(ScheduleDB)
                .filter(
                    ScheduleDB.user_id == user_id,
                    ScheduleDB.id != schedule_id,
                    ScheduleDB.is_default.is_(True),
                )
                .update({ScheduleDB.is_default: False}, synchronize_session="fetch")
            )
            self.db.flush()
            (
                self.db.query(ScheduleDB)
                .filter(ScheduleDB.user_id == user_id, ScheduleDB.id == schedule_id)
                .update({ScheduleDB.is_default: True}, synchronize_session="fetch")
            )
            self.db.flush()
            logger.debug(f"Schedule {schedule_id} is now default for user {user_id} (demoted {demoted})")
            return int(demoted)
        except Exception as e:
            logger.error(f"Failed to set default schedule {schedule_id} for user {user_id}: {type(e).__name__}: {str(e)}")
            raise

    def has_active_bookings(self, schedule_id: str, now: Optional[datetime] = None) -> bool:
        """Whether a booking that has not ended and is still accepted/pending references the schedule."""
        now = now or datetime.utcnow()
        row = (
            self.db.query(BookingDB.id)
            .filter(
                BookingDB.schedule_id == schedule_id,
                BookingDB.status.in_(ACTIVE_BOOKING_STATUSES),
                BookingDB.end_time >= now,
            )
            .first()
        )
        return row is not None

    def delete_schedule(self, row: ScheduleDB) -> None:
        try:
            self.db.delete(row)
            self.db.flush()
            logger.debug(f"Deleted schedule {row.id}")
        except Exception as e:
            logger.error(f"Failed to delete schedule {row.id}: {type(e).__name__}: {str(e)}")
            raise

    def _block_rows(self, schedule_id: str, blocks: List[AvailabilityBlock]) -> List[AvailabilityDB]:
        return [
            AvailabilityDB.from_pydantic(block, schedule_id=schedule_id, position=position)
            for position, block in enumerate(blocks)
        ]
