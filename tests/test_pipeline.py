from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import GUESSES, NOW, FakeCharts, FakeGateway, FakeInterpreter
from lume.deps import build_services
from lume.models.schemas import Account, AudioClip, Direction, InboundMessage, LedgerEntry, Plan
from lume.services.transcription import Transcriber

CONTACT = "+5551999999999"


@pytest.fixture
def interpreter():
    return FakeInterpreter(GUESSES)


@pytest.fixture
def charts():
    return FakeCharts()


@pytest.fixture
def services(settings, interpreter, charts):
    services = build_services(
        settings,
        interpreter=interpreter,
        charts=charts,
        transcriber=Transcriber(api_key="sk-test", model="gpt-4o-mini-transcribe", max_seconds=10),
        clock=lambda: NOW,
    )
    yield services
    services.repo.close()


def text(body: str, message_id: str | None = None) -> InboundMessage:
    return InboundMessage(contact=CONTACT, message_id=message_id, text=body)


async def test_first_greeting_gets_welcome(services):
    reply = await services.pipeline.handle(text("Oi", "wamid.1"))
    assert "teste gratuito" in reply.text
    assert "22/10" in reply.text

    account = services.repo.get_account_by_contact(CONTACT)
    assert account.plan == Plan.TRIAL
    assert services.repo.has_interaction("wamid.1")


async def test_greeting_from_known_contact_asks_what_to_do(services):
    await services.pipeline.handle(text("Oi", "wamid.1"))
    reply = await services.pipeline.handle(text("Oi", "wamid.2"))
    assert "Pode me dizer o que deseja" in reply.text


async def test_expense_is_saved_and_delivered(services):
    gateway = FakeGateway()
    await services.pipeline.deliver(text("Gastei 50 reais com gasolina", "wamid.A"), gateway)

    assert len(gateway.sent) == 1
    to, body = gateway.sent[0]
    assert to == CONTACT
    assert "Registrado com sucesso" in body
    assert "R$ 50,00" in body

    account = services.repo.get_account_by_contact(CONTACT)
    assert services.repo.count_entries(account.id) == 1


async def test_duplicate_delivery_is_silent(services, interpreter):
    gateway = FakeGateway()
    message = text("Gastei 50 reais com gasolina", "wamid.D")
    await services.pipeline.deliver(message, gateway)
    await services.pipeline.deliver(message, gateway)

    assert len(gateway.sent) == 1
    assert len(interpreter.calls) == 1
    account = services.repo.get_account_by_contact(CONTACT)
    assert services.repo.count_entries(account.id) == 1


async def test_task_for_tomorrow(services):
    reply = await services.pipeline.handle(text("Lavar o carro amanhã às 13h", "wamid.C"))
    assert "Tarefa adicionada" in reply.text
    assert "terça-feira, 20/10 às 13:00" in reply.text


async def test_unreadable_message_gets_help_and_is_not_counted(services):
    reply = await services.pipeline.handle(text("qwerty asdf zxcv", "wamid.H"))
    assert "Exemplos" in reply.text
    assert not services.repo.has_interaction("wamid.H")


async def test_expired_account_is_denied(services):
    services.repo.add_account(
        Account(contact=CONTACT, plan=Plan.TRIAL, trial_expires_at=NOW - timedelta(hours=1))
    )
    reply = await services.pipeline.handle(text("Gastei 50 reais com gasolina", "wamid.E"))

    assert "expirou" in reply.text
    account = services.repo.get_account_by_contact(CONTACT)
    assert account.plan == Plan.BLOCKED
    assert services.repo.count_entries(account.id) == 0
    assert services.repo.has_interaction("wamid.E")


async def test_long_audio_is_rejected_before_transcription(services, interpreter):
    message = InboundMessage(
        contact=CONTACT,
        message_id="wamid.V",
        audio=AudioClip(content=b"OggS", duration=12),
    )
    reply = await services.pipeline.handle(message)
    assert "muito longo" in reply.text
    assert "10 segundos" in reply.text
    assert interpreter.calls == []


async def test_summary_sends_chart(services):
    gateway = FakeGateway()
    await services.pipeline.deliver(text("Gastei 50 reais com gasolina", "wamid.1"), gateway)

    account = services.repo.get_account_by_contact(CONTACT)
    services.repo.add_entry(
        LedgerEntry(
            account_id=account.id,
            amount=Decimal("30"),
            direction=Direction.OUT,
            category_id=services.repo.find_category("Mercado").id,
            occurred_on=NOW.date(),
            description="Feira",
        )
    )
    await services.pipeline.deliver(text("Quanto gastei hoje?", "wamid.2"), gateway)

    assert "Resumo financeiro de hoje" in gateway.sent[-1][1]
    assert "R$ 80,00" in gateway.sent[-1][1]
    assert len(gateway.images) == 1


async def test_empty_month_gets_nothing_found_and_no_chart(services, charts):
    reply = await services.pipeline.handle(text("Quanto gastei este mês?", "wamid.M"))

    assert "Nenhum(a) gasto encontrado(a)" in reply.text
    assert reply.image is None
    assert charts.requests == []


async def test_entry_quota_blocks_the_next_insert(services, settings):
    settings.trial_entry_cap = 2
    for n in range(2):
        reply = await services.pipeline.handle(text("Gastei 50 reais com gasolina", f"wamid.Q{n}"))
        assert "Registrado com sucesso" in reply.text

    reply = await services.pipeline.handle(text("Gastei 50 reais com gasolina", "wamid.Q2"))
    assert "limite de 2 transações" in reply.text
    account = services.repo.get_account_by_contact(CONTACT)
    assert services.repo.count_entries(account.id) == 2

    reply = await services.pipeline.handle(text("Quanto gastei hoje?", "wamid.Q3"))
    assert "R$ 100,00" in reply.text
