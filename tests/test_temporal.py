from datetime import date, datetime, timedelta

from conftest import NOW, TZ
from lume.core.temporal import (
    resolve_entry_date,
    resolve_for_intent,
    resolve_ledger_period,
    resolve_period,
    resolve_period_hint,
    resolve_task_datetime,
    resolve_task_period,
    resolve_time,
    shift_month,
)
from lume.models.schemas import Action, Domain, Intent


def test_yesterday_is_the_whole_previous_day():
    period = resolve_period("Quanto gastei ontem?", NOW)
    assert period.label == "de ontem"
    assert period.start == datetime(2026, 10, 18, 0, 0, tzinfo=TZ)
    assert period.end == datetime(2026, 10, 18, 23, 59, 59, 999999, tzinfo=TZ)


def test_today_and_tomorrow():
    assert resolve_period("resumo de hoje", NOW).start.date() == date(2026, 10, 19)
    assert resolve_period("gastos de amanhã", NOW).start.date() == date(2026, 10, 20)


def test_named_month_resolves_to_the_month_before():
    period = resolve_period("gastos de novembro", NOW)
    assert period.start.date() == date(2026, 10, 1)
    assert period.end.date() == date(2026, 10, 31)
    assert period.label == "de outubro de 2026"


def test_january_wraps_to_previous_december():
    period = resolve_period("resumo de janeiro", NOW)
    assert period.start.date() == date(2025, 12, 1)
    assert period.end.date() == date(2025, 12, 31)


def test_weeks_start_on_monday():
    this_week = resolve_period("gastos desta semana", NOW)
    assert this_week.start.date() == date(2026, 10, 19)
    assert this_week.end.date() == date(2026, 10, 25)

    last_week = resolve_period("gastos da semana passada", NOW)
    assert last_week.start.date() == date(2026, 10, 12)
    assert last_week.end.date() == date(2026, 10, 18)


def test_last_month():
    period = resolve_period("quanto gastei no mês passado", NOW)
    assert period.start.date() == date(2026, 9, 1)
    assert period.end.date() == date(2026, 9, 30)


def test_no_period_in_text():
    assert resolve_period("resumo", NOW) is None
    assert resolve_period("", NOW) is None


def test_period_hint():
    assert resolve_period_hint("week", NOW).start.date() == date(2026, 10, 19)
    assert resolve_period_hint("mes", NOW).end.date() == date(2026, 10, 31)
    assert resolve_period_hint("ontem", NOW).start.date() == date(2026, 10, 18)
    assert resolve_period_hint("sempre", NOW) is None
    assert resolve_period_hint(None, NOW) is None


def test_ledger_period_prefers_text_over_hint():
    period = resolve_ledger_period("quanto gastei ontem", "month", NOW)
    assert period.label == "de ontem"


def test_ledger_period_uses_hint_then_defaults_to_today():
    assert resolve_ledger_period("resumo", "month", NOW).label == "deste mês"
    today = resolve_ledger_period("resumo", None, NOW)
    assert today.label == "de hoje"
    assert today.start.date() == NOW.date()


def test_shift_month():
    assert shift_month(2026, 1, -1) == (2025, 12)
    assert shift_month(2026, 12, 1) == (2027, 1)


def test_task_period():
    next_week = resolve_task_period("tarefas da próxima semana", NOW)
    assert next_week.start.date() == date(2026, 10, 26)

    # Task agendas use the month as named, without the summary quirk.
    november = resolve_task_period("tarefas de novembro", NOW)
    assert november.start.date() == date(2026, 11, 1)

    assert resolve_task_period("minhas tarefas", NOW).start.date() == NOW.date()


def test_task_tomorrow_at_13h():
    schedule = resolve_task_datetime("Lavar o carro amanhã às 13h", now=NOW)
    assert schedule.scheduled_date == date(2026, 10, 20)
    assert schedule.scheduled_time == "13:00"


def test_task_resolution_is_idempotent():
    first = resolve_task_datetime("Dentista 25/12 às 9h", now=NOW)
    second = resolve_task_datetime("Dentista 25/12 às 9h", now=NOW)
    assert first == second
    assert first.scheduled_date == date(2026, 12, 25)
    assert first.scheduled_time == "09:00"


def test_numeric_date_rolls_into_next_year():
    schedule = resolve_task_datetime("Pagar IPVA 10/01", now=NOW)
    assert schedule.scheduled_date == date(2027, 1, 10)


def test_written_date():
    schedule = resolve_task_datetime("Aniversário da Ana 3 de dezembro", now=NOW)
    assert schedule.scheduled_date == date(2026, 12, 3)


def test_hinted_date_is_used_when_text_has_none():
    schedule = resolve_task_datetime("Reunião", "2026-10-22", "15:30", now=NOW)
    assert schedule.scheduled_date == date(2026, 10, 22)
    assert schedule.scheduled_time == "15:30"


def test_names_that_look_like_months_are_not_dates():
    for text in (
        "Reunião com o Marco",
        "Buscar a Mai na escola",
        "Almoço com a Abril Santos",
        "Ligar para o Junho",
    ):
        assert resolve_task_datetime(text, now=NOW).scheduled_date == NOW.date(), text


def test_past_dates_snap_to_today():
    schedule = resolve_task_datetime("Reunião 05/01/2020", now=NOW)
    assert schedule.scheduled_date == NOW.date()


def test_explicit_past_reference_is_kept():
    schedule = resolve_task_datetime("Reunião de ontem", "2026-10-18", now=NOW)
    assert schedule.scheduled_date == date(2026, 10, 18)


def test_time_hint_wins_over_text():
    assert resolve_time("reuniao as 9h", "10:15") == "10:15"
    assert resolve_time("reuniao as 9h30", None) == "09:30"
    assert resolve_time("reuniao", None) is None
    assert resolve_time("reuniao as 25h", None) is None


def test_entry_date():
    assert resolve_entry_date("gastei 30 ontem", None, NOW) == date(2026, 10, 18)
    assert resolve_entry_date("gastei 30 anteontem", None, NOW) == date(2026, 10, 17)
    assert resolve_entry_date("gastei 30", "2026-10-10", NOW) == date(2026, 10, 10)
    assert resolve_entry_date("gastei 30", None, NOW) == NOW.date()


def test_resolve_for_intent():
    ledger = Intent(domain=Domain.LEDGER, action=Action.INSERT, text="gastei 20 ontem")
    resolved = resolve_for_intent(ledger, NOW)
    assert resolved.entry_date == NOW.date() - timedelta(days=1)
    assert resolved.period.label == "de ontem"

    task = Intent(domain=Domain.TASK, action=Action.INSERT, text="Reunião 22/10 às 8h")
    resolved = resolve_for_intent(task, NOW)
    assert resolved.schedule.scheduled_date == date(2026, 10, 22)
    assert resolved.schedule.scheduled_time == "08:00"

    account = Intent(domain=Domain.ACCOUNT, action=Action.QUERY)
    assert resolve_for_intent(account, NOW).period is None
