from datetime import date, timedelta
from decimal import Decimal

import pytest

from conftest import NOW, FakeCharts
from lume.core.composer import ResponseComposer, describe_day, format_brl
from lume.core.temporal import day_period
from lume.models.schemas import (
    AccessLinkRequest,
    Account,
    AccountStatus,
    CategoryTotal,
    ChartRequest,
    Denied,
    DenialReason,
    Direction,
    Duplicate,
    EntryLine,
    Failure,
    Fallback,
    FallbackKind,
    LedgerSaved,
    LedgerSummary,
    Plan,
    TaskSaved,
)
from lume.services.access import AccessLinkIssuer


def summary() -> LedgerSummary:
    yesterday = NOW - timedelta(days=1)
    return LedgerSummary(
        period=day_period(yesterday, "de ontem"),
        direction_filter=Direction.OUT,
        total_in=Decimal("0"),
        total_out=Decimal("100"),
        balance=Decimal("1234.5"),
        breakdown=[
            CategoryTotal(name="Mercado", icon="🛒", amount=Decimal("80")),
            CategoryTotal(name="Transporte", icon="🚌", amount=Decimal("20")),
        ],
        recent=[
            EntryLine(
                occurred_on=yesterday.date(),
                description="Feira",
                amount=Decimal("80"),
                direction=Direction.OUT,
                category="Mercado",
            )
        ],
        chart=ChartRequest(title="Seus gastos de ontem", labels=["Mercado", "Transporte"], values=[Decimal("80"), Decimal("20")]),
    )


@pytest.fixture
def trial_account():
    return Account(id=1, contact="+5551999999999", plan=Plan.TRIAL, trial_expires_at=NOW + timedelta(days=3))


def test_format_brl():
    assert format_brl(Decimal("1234.56")) == "R$ 1.234,56"
    assert format_brl(Decimal("50")) == "R$ 50,00"
    assert format_brl(Decimal("0.005")) == "R$ 0,01"
    assert format_brl(Decimal("-1500000")) == "-R$ 1.500.000,00"


def test_describe_day():
    today = NOW.date()
    assert describe_day(today, today) == "Hoje"
    assert describe_day(today + timedelta(days=1), today) == "Amanhã"
    assert describe_day(date(2026, 10, 23), today) == "sexta-feira, 23/10"


async def test_summary_sections_are_ordered(settings, trial_account):
    composer = ResponseComposer(settings, charts=FakeCharts())
    reply = await composer.compose(summary(), trial_account, NOW)

    text = reply.text
    markers = ["Resumo financeiro de ontem", "Saldo atual", "Período", "por categoria", "Últimos lançamentos", settings.subscribe_url]
    positions = [text.index(m) for m in markers]
    assert positions == sorted(positions)
    assert "R$ 1.234,50" in text
    assert "Entradas (" not in text
    assert reply.image == b"\x89PNG"


async def test_chart_failure_keeps_text(settings, trial_account):
    composer = ResponseComposer(settings, charts=FakeCharts(fail=True))
    reply = await composer.compose(summary(), trial_account, NOW)
    assert reply.image is None
    assert "Mercado" in reply.text


async def test_premium_summary_has_no_upsell(settings):
    account = Account(id=2, contact="+5551988887777", plan=Plan.PREMIUM)
    reply = await ResponseComposer(settings).compose(summary(), account, NOW)
    assert settings.subscribe_url not in reply.text


async def test_duplicate_composes_to_nothing(settings, trial_account):
    assert await ResponseComposer(settings).compose(Duplicate(), trial_account, NOW) is None


async def test_saved_entry(settings, trial_account):
    payload = LedgerSaved(
        direction=Direction.OUT,
        description="Gasolina",
        amount=Decimal("50"),
        category="Transporte",
        occurred_on=NOW.date(),
    )
    reply = await ResponseComposer(settings).compose(payload, trial_account, NOW)
    assert "Registrado" in reply.text
    assert "R$ 50,00" in reply.text
    assert "Transporte" in reply.text


async def test_saved_task(settings, trial_account):
    payload = TaskSaved(description="Lavar o carro", scheduled_date=date(2026, 10, 20), scheduled_time="13:00")
    reply = await ResponseComposer(settings).compose(payload, trial_account, NOW)
    assert "terça-feira, 20/10 às 13:00" in reply.text


async def test_denials_and_fallbacks(settings, trial_account):
    composer = ResponseComposer(settings)

    quota = await composer.compose(Denied(reason=DenialReason.ENTRY_QUOTA, cap=10), trial_account, NOW)
    assert "10 transações" in quota.text
    assert settings.subscribe_url in quota.text

    expired = await composer.compose(Denied(reason=DenialReason.EXPIRED), trial_account, NOW)
    assert "expirou" in expired.text

    welcome = await composer.compose(
        Fallback(reason=FallbackKind.WELCOME, trial_expires_at=trial_account.trial_expires_at),
        trial_account,
        NOW,
    )
    assert "22/10" in welcome.text

    failure = await composer.compose(Failure(), trial_account, NOW)
    assert "erro" in failure.text
    assert "Traceback" not in failure.text


async def test_access_link_is_issued(settings, repo):
    account = repo.add_account(Account(contact="+5551999999999"))
    links = AccessLinkIssuer(repo, "https://lume.test/acesso", minutes=30)
    composer = ResponseComposer(settings, links=links)

    payload = AccountStatus(
        plan=Plan.TRIAL,
        expires_at=NOW + timedelta(days=3),
        access_link=AccessLinkRequest(account_id=account.id),
    )
    reply = await composer.compose(payload, account, NOW)

    assert "https://lume.test/acesso/" in reply.text
    token = reply.text.split("https://lume.test/acesso/")[1].split()[0]
    assert links.consume(token, NOW).id == account.id
    assert links.consume(token, NOW) is None
