from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from config import get_current_user_id
from errors import InvalidArgumentError
from models import Entry
from money import to_decimal
from periods import month_start
from repository import EntryRepository


logger = logging.getLogger(__name__)


def _completion_sort_key(record: Entry) -> tuple[datetime, int]:
    stamp = record.completed_at or record.updated_at or datetime.min
    return stamp, record.id or 0


def latest_completion(completions: Iterable[Entry]) -> Optional[Entry]:
    """Pick the authoritative record among completions for one period.

    Duplicates should not exist, but when they do the most recently
    completed one wins (``updated_at`` stands in when ``completed_at`` is
    missing). Soft-deleted rows are ignored.
    """
    live = [c for c in completions if c.deleted_at is None]
    if not live:
        return None
    return max(live, key=_completion_sort_key)


def completions_by_parent(completions: Iterable[Entry]) -> dict[int, Entry]:
    grouped: dict[int, list[Entry]] = {}
    for record in completions:
        if record.parent_id is None:
            continue
        grouped.setdefault(record.parent_id, []).append(record)
    resolved: dict[int, Entry] = {}
    for parent_id, records in grouped.items():
        latest = latest_completion(records)
        if latest is not None:
            resolved[parent_id] = latest
    return resolved


def effective_amount(template: Entry, completions_for_period: Iterable[Entry]) -> Decimal:
    relevant = [c for c in completions_for_period if c.parent_id == template.id]
    latest = latest_completion(relevant)
    if latest is not None:
        return to_decimal(latest.amount)
    return to_decimal(template.amount)


def _check_parent(template: Entry) -> None:
    if template.is_completion:
        raise InvalidArgumentError("A completion record cannot be completed")
    if not template.is_recurring_template:
        raise InvalidArgumentError("Only recurring entries can be completed")
    if template.id is None:
        raise InvalidArgumentError("Recurring entry must be saved first")


class CompletionService:
    """The engine's only write path: upserting and reverting completions.

    Due-ness is the caller's concern; nothing here looks at the cadence.
    """

    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.repo = EntryRepository(session)

    def mark_completed(
        self,
        template: Entry,
        year: int,
        month: int,
        actual_amount: Optional[Decimal] = None,
    ) -> Entry:
        _check_parent(template)
        period = month_start(year, month)
        amount = to_decimal(
            template.amount if actual_amount is None else actual_amount
        )
        if amount <= 0:
            raise InvalidArgumentError("Amount must be greater than zero")

        try:
            record = self.repo.upsert_completion(
                template, period, amount, datetime.utcnow()
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(record)
        logger.info(
            f"completion_upsert: template_id={template.id} period={period.isoformat()} "
            f"amount={amount} record_id={record.id}"
        )
        return record

    def revert_completion(self, template: Entry, year: int, month: int) -> bool:
        period = month_start(year, month)
        try:
            removed = self.repo.soft_delete_completion(template.id, period)
            if removed:
                self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        logger.info(
            f"completion_revert: template_id={template.id} period={period.isoformat()} "
            f"removed={removed}"
        )
        return removed > 0

    def mark_all_due(
        self, templates: Iterable[Entry], year: int, month: int
    ) -> list[Entry]:
        """Complete every given template not yet completed for the month.

        The whole batch is one commit. Re-running it after a failure only
        fills the gaps, since already-completed templates are skipped.
        """
        period = month_start(year, month)
        templates = list(templates)
        for template in templates:
            _check_parent(template)

        existing = completions_by_parent(
            self.repo.list_completions(
                self.user_id, [t.id for t in templates], period
            )
        )
        created: list[Entry] = []
        now = datetime.utcnow()
        try:
            for template in templates:
                if template.id in existing:
                    continue
                created.append(
                    self.repo.upsert_completion(
                        template, period, to_decimal(template.amount), now
                    )
                )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        logger.info(
            f"completion_bulk: period={period.isoformat()} candidates={len(templates)} "
            f"created={len(created)}"
        )
        return created
