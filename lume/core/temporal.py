"""Date ranges and task dates from free text.

Every rule is a small pure function and the rules are tried in the order
of the tuples below; the first one that produces a value wins. All
arithmetic is done on aware datetimes in the configured local zone, so day
boundaries never drift with the server clock.
"""

import re
from calendar import monthrange
from datetime import date, datetime, timedelta
from typing import Callable, NamedTuple

from dateparser.search import search_dates
from loguru import logger

from lume.core.text import normalize
from lume.models.schemas import (
    Action,
    Domain,
    Intent,
    Period,
    ResolvedTime,
    TaskSchedule,
)

MONTH_NAMES = (
    "janeiro", "fevereiro", "março", "abril", "maio", "junho",
    "julho", "agosto", "setembro", "outubro", "novembro", "dezembro",
)
WEEKDAY_NAMES = (
    "segunda-feira", "terça-feira", "quarta-feira", "quinta-feira",
    "sexta-feira", "sábado", "domingo",
)

# Normalized spellings → month number. English "may" is not a month here.
_MONTHS = {normalize(name): i for i, name in enumerate(MONTH_NAMES, 1)}
_MONTHS.update(
    {
        "january": 1, "february": 2, "march": 3, "april": 4, "june": 6,
        "july": 7, "august": 8, "september": 9, "october": 10,
        "november": 11, "december": 12,
    }
)

_PAST_REFERENCE = re.compile(
    r"\b(ontem|anteontem|yesterday)\b"
    r"|\bsemana\s+passada\b|\bmes\s+passado\b|\blast\s+(week|month)\b"
)


def month_name(month: int) -> str:
    return MONTH_NAMES[month - 1]


def weekday_name(day: date) -> str:
    return WEEKDAY_NAMES[day.weekday()]


# ── Range helpers ───────────────────────────────────────────────────


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=23, minute=59, second=59, microsecond=999999)


def day_period(moment: datetime, label: str) -> Period:
    return Period(start=start_of_day(moment), end=end_of_day(moment), label=label)


def week_period(moment: datetime, label: str) -> Period:
    monday = moment - timedelta(days=moment.weekday())
    return Period(
        start=start_of_day(monday),
        end=end_of_day(monday + timedelta(days=6)),
        label=label,
    )


def month_period(year: int, month: int, now: datetime, label: str) -> Period:
    first = now.replace(year=year, month=month, day=1)
    last = first.replace(day=monthrange(year, month)[1])
    return Period(start=start_of_day(first), end=end_of_day(last), label=label)


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def _find_month(t: str) -> int | None:
    for name, number in _MONTHS.items():
        if re.search(rf"\b{name}\b", t):
            return number
    return None


# ── Summary periods ─────────────────────────────────────────────────

PeriodRule = Callable[[str, datetime], Period | None]


def _today(t: str, now: datetime) -> Period | None:
    if re.search(r"\b(hoje|today)\b", t):
        return day_period(now, "de hoje")
    return None


def _tomorrow(t: str, now: datetime) -> Period | None:
    if re.search(r"\bamanh|\btomorrow\b", t):
        return day_period(now + timedelta(days=1), "de amanhã")
    return None


def _yesterday(t: str, now: datetime) -> Period | None:
    if re.search(r"\b(ontem|yesterday)\b", t):
        return day_period(now - timedelta(days=1), "de ontem")
    return None


def _last_week(t: str, now: datetime) -> Period | None:
    if re.search(r"\bsemana\s+passada\b|\blast\s+week\b", t):
        return week_period(now - timedelta(weeks=1), "da semana passada")
    return None


def _next_week(t: str, now: datetime) -> Period | None:
    if re.search(r"\bproxima\s+semana\b|\bnext\s+week\b", t):
        return week_period(now + timedelta(weeks=1), "da próxima semana")
    return None


def _this_week(t: str, now: datetime) -> Period | None:
    if re.search(
        r"\b(esta|essa|desta|dessa)\s+semana\b|\bsemana\s+atual\b"
        r"|\bda\s+semana\b|\bthis\s+week\b",
        t,
    ):
        return week_period(now, "desta semana")
    return None


def _named_month(t: str, now: datetime) -> Period | None:
    # A bare month name resolves to the month *before* it in the current
    # year ("novembro" → October).
    number = _find_month(t)
    if number is None:
        return None
    year, month = shift_month(now.year, number, -1)
    return month_period(year, month, now, f"de {month_name(month)} de {year}")


def _last_month(t: str, now: datetime) -> Period | None:
    if re.search(r"\bmes\s+passado\b|\blast\s+month\b", t):
        year, month = shift_month(now.year, now.month, -1)
        return month_period(year, month, now, f"de {month_name(month)}")
    return None


def _this_month(t: str, now: datetime) -> Period | None:
    if re.search(r"\best[ea]\s+mes\b|\bdo\s+mes\b|\bmes\b|\bthis\s+month\b|\bmonth\b", t):
        return month_period(now.year, now.month, now, f"de {month_name(now.month)}")
    return None


PERIOD_RULES: tuple[PeriodRule, ...] = (
    _today,
    _tomorrow,
    _yesterday,
    _last_week,
    _next_week,
    _this_week,
    _named_month,
    _last_month,
    _this_month,
)


def _first_match(rules: tuple[PeriodRule, ...], text: str, now: datetime) -> Period | None:
    t = normalize(text)
    if not t:
        return None
    for rule in rules:
        period = rule(t, now)
        if period is not None:
            return period
    return None


def resolve_period(text: str, now: datetime) -> Period | None:
    """Detect a summary period in ``text``; None when nothing matches."""
    return _first_match(PERIOD_RULES, text, now)


def resolve_period_hint(hint: str | None, now: datetime) -> Period | None:
    """Map the interpreter's coarse ``period`` field to a range."""
    h = normalize(hint or "")
    if h in ("hoje", "today", "dia", "diario"):
        return day_period(now, "de hoje")
    if h in ("ontem", "yesterday"):
        return day_period(now - timedelta(days=1), "de ontem")
    if h in ("semana", "semanal", "week", "weekly"):
        return week_period(now, "desta semana")
    if h in ("mes", "mensal", "month", "monthly"):
        return month_period(now.year, now.month, now, "deste mês")
    return None


def _any_week(t: str, now: datetime) -> Period | None:
    if re.search(r"\bseman(a|al)\b|\bweek(ly)?\b", t):
        return week_period(now, "desta semana")
    return None


def _any_month(t: str, now: datetime) -> Period | None:
    if re.search(r"\bmes\b|\bmensal\b|\bmonth(ly)?\b", t):
        return month_period(now.year, now.month, now, "deste mês")
    return None


def resolve_ledger_period(
    text: str, hint: str | None, now: datetime, *, description: str = ""
) -> Period:
    """Effective period for a ledger summary.

    Order: phrase detected in the message (or the interpreter's
    description), the interpreter's coarse hint, a loose week/month
    mention, and finally today.
    """
    return (
        resolve_period(text, now)
        or resolve_period(description, now)
        or resolve_period_hint(hint, now)
        or _first_match((_any_week, _any_month), f"{text} {description}", now)
        or day_period(now, "de hoje")
    )


# ── Task agenda periods ─────────────────────────────────────────────


def _task_last_month(t: str, now: datetime) -> Period | None:
    if re.search(r"\bmes\s+passado\b|\blast\s+month\b", t):
        year, month = shift_month(now.year, now.month, -1)
        return month_period(year, month, now, f"do mês passado ({month_name(month)})")
    return None


def _task_next_month(t: str, now: datetime) -> Period | None:
    if re.search(r"\bproximo\s+mes\b|\bnext\s+month\b", t):
        year, month = shift_month(now.year, now.month, 1)
        return month_period(year, month, now, f"do próximo mês ({month_name(month)})")
    return None


def _task_this_month(t: str, now: datetime) -> Period | None:
    if re.search(
        r"\b(este|esse|deste|desse)\s+mes\b|\bmes\s+atual\b|\bdo\s+mes\b|\bthis\s+month\b",
        t,
    ):
        return month_period(
            now.year, now.month, now, f"deste mês ({month_name(now.month)})"
        )
    return None


def _task_named_month(t: str, now: datetime) -> Period | None:
    number = _find_month(t)
    if number is None:
        return None
    return month_period(
        now.year, number, now, f"de {month_name(number)} de {now.year}"
    )


TASK_PERIOD_RULES: tuple[PeriodRule, ...] = (
    _last_week,
    _next_week,
    _this_week,
    _task_last_month,
    _task_next_month,
    _task_this_month,
    _task_named_month,
    _tomorrow,
)


def resolve_task_period(text: str, now: datetime) -> Period:
    return _first_match(TASK_PERIOD_RULES, text, now) or day_period(now, "de hoje")


# ── Task date and time ──────────────────────────────────────────────


class DateQuery(NamedTuple):
    raw: str
    normalized: str
    hinted_date: str | None
    now: datetime


DateRule = Callable[[DateQuery], date | None]

_NUMERIC_DATE = re.compile(r"\b(\d{1,2})/(\d{1,2})(?:/(\d{4}|\d{2}))?\b")
_WRITTEN_DATE = re.compile(r"\b(\d{1,2})\s+de\s+([a-z]+)(?:\s+de\s+(\d{4}))?\b")
_LOOSE_TIME = re.compile(r"\b(\d{1,2})(?:h|:)(\d{2})?(?!\d)")
_HINTED_TIME = re.compile(r"^(\d{1,2}):(\d{2})$")
_TIME_ONLY_PHRASE = re.compile(
    r"^(?:as|às|at|a partir das)?\s*\d{1,2}\s*(?:h|hs|hrs|horas?|:\d{2}|h\d{2})?\s*$"
)


def _rolled_date(day: int, month: int, year_text: str | None, today: date) -> date | None:
    if year_text is None:
        year = today.year
    else:
        year = int(year_text) + (2000 if len(year_text) == 2 else 0)
    try:
        candidate = date(year, month, day)
        if year_text is None and candidate < today:
            candidate = date(year + 1, month, day)
    except ValueError:
        return None
    return candidate


def _numeric_date(q: DateQuery) -> date | None:
    match = _NUMERIC_DATE.search(q.normalized)
    if not match:
        return None
    day, month, year = match.groups()
    return _rolled_date(int(day), int(month), year, q.now.date())


def _written_date(q: DateQuery) -> date | None:
    for match in _WRITTEN_DATE.finditer(q.normalized):
        day, name, year = match.groups()
        month = _MONTHS.get(name)
        if month is not None:
            return _rolled_date(int(day), month, year, q.now.date())
    return None


def _hinted_date(q: DateQuery) -> date | None:
    if not q.hinted_date:
        return None
    try:
        return date.fromisoformat(q.hinted_date[:10])
    except ValueError:
        return None


def _phrase_date(q: DateQuery) -> date | None:
    text = re.sub(r"\s+", " ", q.raw.lower()).strip()
    if not text:
        return None
    try:
        found = search_dates(
            text,
            languages=["pt", "en"],
            settings={
                "PREFER_DATES_FROM": "future",
                # A lone month word is usually a name ("Marco", "Abril").
                "REQUIRE_PARTS": ["day"],
                "RELATIVE_BASE": q.now.replace(tzinfo=None),
                "RETURN_AS_TIMEZONE_AWARE": False,
            },
        )
    except Exception as e:
        logger.warning("Date phrase extraction failed for {!r}: {}", text, e)
        return None
    for phrase, moment in found or []:
        phrase = phrase.strip().lower()
        if len(re.sub(r"\W", "", phrase)) < 3 or _TIME_ONLY_PHRASE.match(phrase):
            continue
        if normalize(phrase) in _MONTHS:
            continue
        return moment.date()
    return None


def _keyword_date(q: DateQuery) -> date | None:
    t = q.normalized
    today = q.now.date()
    if "depois de amanha" in t or "day after tomorrow" in t:
        return today + timedelta(days=2)
    if "amanha" in t or "tomorrow" in t:
        return today + timedelta(days=1)
    return today


TASK_DATE_RULES: tuple[DateRule, ...] = (
    _numeric_date,
    _written_date,
    _hinted_date,
    _phrase_date,
    _keyword_date,
)


def _format_time(hour: int, minute: int) -> str | None:
    if 0 <= hour <= 23 and 0 <= minute <= 59:
        return f"{hour:02d}:{minute:02d}"
    return None


def resolve_time(normalized_text: str, hinted_time: str | None) -> str | None:
    if hinted_time:
        match = _HINTED_TIME.match(hinted_time.strip())
        if match:
            resolved = _format_time(int(match.group(1)), int(match.group(2)))
            if resolved:
                return resolved
    for match in _LOOSE_TIME.finditer(normalized_text):
        hour, minute = match.groups()
        resolved = _format_time(int(hour), int(minute or 0))
        if resolved:
            return resolved
    return None


def resolve_task_datetime(
    text: str,
    hinted_date: str | None = None,
    hinted_time: str | None = None,
    *,
    now: datetime,
) -> TaskSchedule:
    """Date and optional ``HH:MM`` time for a new task.

    Dates that land before today are moved to today unless the text
    explicitly talks about the past.
    """
    q = DateQuery(raw=text or "", normalized=normalize(text), hinted_date=hinted_date, now=now)

    scheduled = None
    for rule in TASK_DATE_RULES:
        scheduled = rule(q)
        if scheduled is not None:
            break

    today = now.date()
    if scheduled is None or (scheduled < today and not _PAST_REFERENCE.search(q.normalized)):
        scheduled = today

    return TaskSchedule(
        scheduled_date=scheduled,
        scheduled_time=resolve_time(q.normalized, hinted_time),
    )


def resolve_entry_date(text: str, hinted_date: str | None, now: datetime) -> date:
    t = normalize(text)
    today = now.date()
    if re.search(r"\banteontem\b", t):
        return today - timedelta(days=2)
    if re.search(r"\b(ontem|yesterday)\b", t):
        return today - timedelta(days=1)
    hinted = _hinted_date(DateQuery(text, t, hinted_date, now))
    return hinted or today


def resolve_for_intent(intent: Intent, now: datetime) -> ResolvedTime:
    """Fill in every temporal value the dispatcher needs for ``intent``."""
    text = intent.source_text
    if intent.domain == Domain.LEDGER:
        return ResolvedTime(
            period=resolve_ledger_period(
                intent.text, intent.period_hint, now, description=intent.description
            ),
            entry_date=resolve_entry_date(text, intent.hinted_date, now),
        )
    if intent.domain == Domain.TASK and intent.action == Action.INSERT:
        return ResolvedTime(
            schedule=resolve_task_datetime(
                text, intent.hinted_date, intent.hinted_time, now=now
            )
        )
    if intent.domain == Domain.TASK:
        return ResolvedTime(period=resolve_task_period(text, now))
    return ResolvedTime()
