"""Activity classification of entities from transaction history.

An entity is ACTIVE when its most recent transaction falls inside the
lookback window, INACTIVE when it only has older transactions and
DORMANT when it has none.
"""

from __future__ import annotations

import asyncio
import calendar
import datetime as dt
import logging
import re
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Mapping

import readiness.errors as errors
import readiness.sources.base as sources_base

logger = logging.getLogger(__name__)

_WRAPPED_TIMESTAMP = re.compile(r"^/Date\((-?\d+)(?:[+-]\d{4})?\)/$")


class ActivityStatus(str, Enum):
    ACTIVE = "ACTIVE"  # Transactions inside the lookback window
    INACTIVE = "INACTIVE"  # Only transactions older than the window
    DORMANT = "DORMANT"  # No transactions


@dataclass(frozen=True)
class ActivityRecord:
    status: ActivityStatus
    last_transaction_date: str | None = None  # ISO date
    transaction_count: int = 0

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "last_transaction_date": self.last_transaction_date,
            "transaction_count": self.transaction_count,
        }


DORMANT = ActivityRecord(status=ActivityStatus.DORMANT)

ActivityMap = Mapping[str, ActivityRecord]


def _utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def subtract_months(moment: dt.datetime, months: int) -> dt.datetime:
    """Shift back by whole months, clamping the day to the target month."""
    years, month_index = divmod(moment.month - 1 - months, 12)
    year = moment.year + years
    month = month_index + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def parse_posting_date(value: Any) -> dt.datetime | None:
    """Parse a posting date into an aware UTC datetime.

    Accepts ``/Date(<ms>)/`` wrapped timestamps, date and datetime
    objects, and ISO-8601 strings. Returns None for anything else.
    """
    if value is None or value == "":
        return None
    if isinstance(value, dt.datetime):
        return value if value.tzinfo else value.replace(tzinfo=dt.timezone.utc)
    if isinstance(value, dt.date):
        return dt.datetime.combine(value, dt.time(), tzinfo=dt.timezone.utc)
    if not isinstance(value, str):
        return None

    text = value.strip()
    match = _WRAPPED_TIMESTAMP.match(text)
    if match:
        return dt.datetime.fromtimestamp(int(match.group(1)) / 1000, tz=dt.timezone.utc)
    try:
        parsed = dt.datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=dt.timezone.utc)


def classify(transaction_dates: list[Any], cutoff: dt.datetime) -> ActivityRecord:
    """Classify one entity from the posting dates of its transactions.

    Unparseable dates still count as transactions but never make the
    entity ACTIVE.
    """
    if not transaction_dates:
        return DORMANT

    parsed = [d for d in (parse_posting_date(v) for v in transaction_dates) if d is not None]
    last = max(parsed) if parsed else None
    recent = last is not None and last >= cutoff
    return ActivityRecord(
        status=ActivityStatus.ACTIVE if recent else ActivityStatus.INACTIVE,
        last_transaction_date=last.date().isoformat() if last else None,
        transaction_count=len(transaction_dates),
    )


def get_activity(activity_map: ActivityMap | None, entity_id: Any) -> ActivityRecord:
    """Activity of one entity. Unknown ids and a missing map are DORMANT."""
    if not activity_map or not entity_id:
        return DORMANT
    return activity_map.get(entity_id, DORMANT)


def summarize_activity(entity_ids: Iterable[Any], activity_map: ActivityMap | None) -> ActivityRecord:
    """Majority vote over the activity of a group of entities.

    ACTIVE wins only with a strict majority over both other statuses.
    Otherwise INACTIVE wins when it has at least one member and at least
    as many as DORMANT. Everything else is DORMANT. Duplicate ids count
    once. The result carries the latest transaction date and the summed
    transaction count of the members.
    """
    unique_ids = list(dict.fromkeys(i for i in entity_ids if i))
    records = [get_activity(activity_map, i) for i in unique_ids]
    if not records:
        return DORMANT

    votes = Counter(r.status for r in records)
    active = votes[ActivityStatus.ACTIVE]
    inactive = votes[ActivityStatus.INACTIVE]
    dormant = votes[ActivityStatus.DORMANT]

    if active > inactive and active > dormant:
        status = ActivityStatus.ACTIVE
    elif inactive > 0 and inactive >= dormant:
        status = ActivityStatus.INACTIVE
    else:
        status = ActivityStatus.DORMANT

    dates = [r.last_transaction_date for r in records if r.last_transaction_date]
    return ActivityRecord(
        status=status,
        last_transaction_date=max(dates) if dates else None,
        transaction_count=sum(r.transaction_count for r in records),
    )


class ActivityClassifier:
    """Builds the entity -> ActivityRecord map for one run.

    Args:
        tracked_entity_set: Entity set listing every tracked entity.
        transaction_entity_set: Entity set of transactions.
        entity_field: Entity identifier field in both sets.
        date_field: Posting date field of the transaction set.
        read_timeout: Upper bound in seconds for each read.
        clock: Returns the current aware datetime. Injectable for tests.
    """

    def __init__(
        self,
        tracked_entity_set: str = "Z_I_Materials",
        transaction_entity_set: str = "TAHistRelevantMats",
        entity_field: str = "Material",
        date_field: str = "PostingDate",
        read_timeout: float | None = None,
        clock: Callable[[], dt.datetime] = _utc_now,
    ) -> None:
        self.tracked_entity_set = tracked_entity_set
        self.transaction_entity_set = transaction_entity_set
        self.entity_field = entity_field
        self.date_field = date_field
        self.read_timeout = read_timeout
        self._clock = clock

    def cutoff(self, lookback_months: int) -> dt.datetime:
        return subtract_months(self._clock(), lookback_months)

    def classify_all(
        self,
        tracked: Iterable[sources_base.Row],
        transactions: Iterable[sources_base.Row],
        cutoff: dt.datetime,
    ) -> dict[str, ActivityRecord]:
        """Classify the union of tracked entities and transacting entities."""
        dates_by_entity: dict[Any, list[Any]] = {}
        for tx in transactions:
            entity_id = tx.get(self.entity_field)
            if entity_id:
                dates_by_entity.setdefault(entity_id, []).append(tx.get(self.date_field))

        entity_ids = dict.fromkeys(row.get(self.entity_field) for row in tracked)
        entity_ids.update(dict.fromkeys(dates_by_entity))
        return {
            entity_id: classify(dates_by_entity.get(entity_id, []), cutoff)
            for entity_id in entity_ids
            if entity_id
        }

    async def fetch_activity_status(
        self, source: sources_base.BaseRecordSource, lookback_months: int = 12
    ) -> dict[str, ActivityRecord]:
        """Read tracked entities and transactions and classify them.

        Raises:
            SourceError: If either read fails.
        """
        cutoff = self.cutoff(lookback_months)
        # Both reads are joined before a failure is raised
        tracked, transactions = await asyncio.gather(
            sources_base.read_with_timeout(
                source,
                self.tracked_entity_set,
                self.read_timeout,
                select=[self.entity_field],
            ),
            sources_base.read_with_timeout(
                source,
                self.transaction_entity_set,
                self.read_timeout,
                select=[self.entity_field, self.date_field],
            ),
            return_exceptions=True,
        )
        for outcome in (tracked, transactions):
            if isinstance(outcome, BaseException):
                raise outcome

        activity = self.classify_all(tracked, transactions, cutoff)
        logger.info(
            "Activity classification complete: %d entities classified (cutoff %s)",
            len(activity),
            cutoff.date().isoformat(),
        )
        return activity

    async def load_activity_status(
        self, source: sources_base.BaseRecordSource, lookback_months: int = 12
    ) -> dict[str, ActivityRecord]:
        """Like ``fetch_activity_status`` but degrades to an empty map.

        With an empty map every entity is seen as DORMANT.
        """
        try:
            return await self.fetch_activity_status(source, lookback_months)
        except errors.SourceError as e:
            logger.warning("Failed to load activity status, treating all entities as dormant: %s", e.cause)
            return {}
