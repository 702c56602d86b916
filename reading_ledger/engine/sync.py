from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime

from .types import Ledger, utc_now


def synchronize(
    ledger: Ledger, legacy_days: Iterable[str] = (), *, now: datetime | None = None
) -> Ledger:
    """Return a copy of `ledger` with `reading_days` rebuilt from its entries.

    `legacy_days` are dates known from an older representation that have not
    been turned into entries yet; they are kept in the derived set so a caller
    that only touched one representation never loses days. The entries
    themselves are shared with the input, not copied.
    """

    reading_days = frozenset(ledger.entry_dates()) | frozenset(legacy_days)
    return replace(ledger, reading_days=reading_days, last_sync_date=now or utc_now())
