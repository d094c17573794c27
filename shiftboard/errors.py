from __future__ import annotations

import datetime


class NotFoundError(LookupError):
    """Raised when a requested row does not exist."""


class WeekLockedError(Exception):
    """Raised when a shift mutation targets a locked week."""

    def __init__(self, company_id: int, week_start: datetime.date) -> None:
        super().__init__(f"Week starting {week_start.isoformat()} is locked for company {company_id}.")
        self.company_id = company_id
        self.week_start = week_start


class AccountLockedError(Exception):
    """Raised when an account is locked and cannot authenticate."""

    def __init__(self, until: datetime.datetime) -> None:
        super().__init__("Account locked")
        self.until = until
