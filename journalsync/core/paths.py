from __future__ import annotations

from datetime import date, datetime, timedelta

YEAR_PLACEHOLDER = "YYYY"
MONTH_PLACEHOLDER = "MM"
DAY_PLACEHOLDER = "DD"
PLACEHOLDERS = (YEAR_PLACEHOLDER, MONTH_PLACEHOLDER, DAY_PLACEHOLDER)

# Sessions running past midnight still belong to the previous day until 02:00.
DAY_BOUNDARY_HOUR = 2

ENTRY_SEPARATOR = "-----"


def effective_date(at: datetime | None = None) -> date:
    now = at or datetime.now()
    if now.hour < DAY_BOUNDARY_HOUR:
        return (now - timedelta(days=1)).date()
    return now.date()


def resolve(template: str, at: datetime | None = None) -> str:
    """Expand the dated placeholders of `template`.

    Substitution is unconditional: a template lacking a placeholder simply
    keeps the rest of its text. Validity is checked where settings are
    accepted (see `core.config.validate_path_template`).
    """

    day = effective_date(at)
    path = template or ""
    path = path.replace(YEAR_PLACEHOLDER, f"{day.year:04d}")
    path = path.replace(MONTH_PLACEHOLDER, f"{day.month:02d}")
    path = path.replace(DAY_PLACEHOLDER, f"{day.day:02d}")
    return path


def default_content(at: datetime | None = None) -> str:
    return f"# {effective_date(at).isoformat()}"


def format_entry(current: str, entry: str) -> str:
    if len(entry.splitlines()) <= 1:
        return f"{current}\n- {entry}"
    return f"{current}\n{ENTRY_SEPARATOR}\n{entry}"
