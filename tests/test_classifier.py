from decimal import Decimal

from lume.core.classifier import (
    Utterance,
    build_intent,
    classify,
    fallback_reply_kind,
    infer_direction,
    requests_access,
)
from lume.core.text import capitalize_first, normalize
from lume.models.schemas import Action, Direction, Domain, FallbackKind, StructuredGuess


def test_normalize():
    assert normalize("  Olá,   MÊS  ") == "ola, mes"
    assert normalize(None) == ""
    assert capitalize_first("aCADEMIA") == "Academia"


def test_classify():
    assert classify("Gastei 30 no mercado") == Utterance.FINANCIAL
    assert classify("Lembrete de reunião") == Utterance.TASK
    assert classify("Oi, tudo bem?") == Utterance.GREETING
    assert classify("qwerty asdf") == Utterance.NOISE


def test_fallback_reply_kind():
    assert fallback_reply_kind("Oi") == FallbackKind.CLARIFY
    assert fallback_reply_kind("???") == FallbackKind.CLARIFY
    assert fallback_reply_kind("qwerty asdf zxcv") == FallbackKind.HELP
    assert fallback_reply_kind("gastei um monte") == FallbackKind.UNCLEAR
    assert fallback_reply_kind("preciso lavar") == FallbackKind.UNCLEAR


def test_infer_direction():
    assert infer_direction("Quanto gastei este mês?") == Direction.OUT
    assert infer_direction("Quanto recebi de salário?") == Direction.IN
    assert infer_direction("Me mostra o resumo") is None


def test_requests_access():
    assert requests_access("me manda o link do painel")
    assert requests_access("quero acessar o dashboard")
    assert not requests_access("Gastei 50 no site")


def test_guess_accepts_portuguese_keys_and_formats():
    guess = StructuredGuess.model_validate(
        {
            "tipo": "transacao",
            "acao": "inserir",
            "descricao": "Mercado",
            "valor": "R$ 1.234,56",
            "hora": "null",
            "tipoTransacao": "SAIDA",
        }
    )
    assert guess.domain == Domain.LEDGER
    assert guess.action == Action.INSERT
    assert guess.amount == Decimal("1234.56")
    assert guess.hinted_time is None
    assert guess.direction == Direction.OUT
    assert guess.is_actionable


def test_unknown_action_is_not_actionable():
    guess = StructuredGuess.model_validate({"tipo": "tarefa", "acao": "remover"})
    assert guess.domain == Domain.TASK
    assert guess.action is None
    assert not guess.is_actionable
    assert build_intent(guess, "remover tarefa", "m1") is None


def test_build_intent_without_guess():
    assert build_intent(None, "Oi", "m1") is None


def test_build_intent_infers_query_direction():
    guess = StructuredGuess(domain=Domain.LEDGER, action=Action.QUERY)
    intent = build_intent(guess, "Quanto gastei este mês?", "m1")
    assert intent.direction == Direction.OUT
    assert intent.message_id == "m1"
    assert intent.description == "Quanto gastei este mês?"


def test_build_intent_for_dashboard_request():
    intent = build_intent(None, "Quero o link de acesso ao painel", "m2")
    assert intent.domain == Domain.ACCOUNT
    assert intent.action == Action.QUERY
    assert intent.wants_access


def test_negative_or_missing_amount_does_not_write():
    guess = StructuredGuess(domain=Domain.LEDGER, action=Action.INSERT, amount=Decimal("-5"))
    intent = build_intent(guess, "gastei -5", "m3")
    assert not intent.has_valid_amount
    assert not intent.writes_ledger

    guess = StructuredGuess(domain=Domain.LEDGER, action=Action.INSERT, amount="nan")
    assert guess.amount is None
