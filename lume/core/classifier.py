"""Keyword heuristics used when the interpreter's guess cannot be acted on.

The classifier never overrides an actionable guess. It only decides which
conversational fallback to send for greetings, noise and unclassifiable
text, infers a direction for ledger queries, and spots explicit requests for
dashboard access.
"""

import re
from enum import Enum

from lume.core.text import normalize
from lume.models.schemas import (
    Action,
    Direction,
    Domain,
    FallbackKind,
    Intent,
    StructuredGuess,
)

MIN_MEANINGFUL_LENGTH = 5


class Utterance(str, Enum):
    GREETING = "greeting"
    FINANCIAL = "financial"
    TASK = "task"
    NOISE = "noise"


FINANCIAL_TERMS = (
    "gasto", "gastos", "gastei", "despesa", "despesas", "compra", "comprei",
    "paguei", "pagamento", "conta", "pix", "transferencia", "deposito",
    "credito", "debito", "entrada", "recebi", "ganhei", "salario", "venda",
    "lucro", "faturamento", "investimento", "resumo", "extrato", "relatorio",
    "balanco", "saldo", "total", "analise", "grafico", "reais",
    "spent", "expense", "expenses", "paid", "income", "received", "balance",
)

TASK_TERMS = (
    "tarefa", "tarefas", "lembrete", "anotacao", "agenda", "reuniao",
    "compromisso", "evento", "planejar", "planejamento", "meta", "objetivo",
    "fazer", "lavar", "estudar", "ir", "buscar", "ligar", "enviar",
    "organizar", "preparar", "visitar", "lembrar", "amanha", "hoje", "ontem",
    "semana", "mes", "horario", "hora", "data",
    "task", "tasks", "reminder", "meeting", "tomorrow", "today",
)

GREETING_TERMS = (
    "oi", "ola", "bom dia", "boa tarde", "boa noite", "e ai", "tudo bem",
    "blz", "beleza", "kk", "kkk", "haha", "rs", "rsrs", "ok", "tchau", "vlw",
    "valeu", "obrigado", "obrigada", "hi", "hello", "hey", "thanks", "👍",
)

ACCESS_TERMS = (
    "painel", "dashboard", "link de acesso", "link do painel", "acessar o site",
    "acesso ao site", "acesso web", "entrar no app", "web access",
)

_OUT_PATTERN = re.compile(
    r"(gast(?:os?|ei)|despesas?|paguei|compras?|pagar|debito|spent|expenses?|paid)"
)
_IN_PATTERN = re.compile(
    r"(ganhos?|recebi|salario|vendas?|deposit|credito|income|received|salary|sales?)"
)


def _mentions(text: str, terms: tuple[str, ...]) -> bool:
    for term in terms:
        if term.isascii() and term[0].isalnum():
            if re.search(rf"\b{re.escape(term)}\b", text):
                return True
        elif term in text:
            return True
    return False


def classify(text: str) -> Utterance:
    t = normalize(text)
    if _mentions(t, FINANCIAL_TERMS):
        return Utterance.FINANCIAL
    if _mentions(t, TASK_TERMS):
        return Utterance.TASK
    if _mentions(t, GREETING_TERMS):
        return Utterance.GREETING
    return Utterance.NOISE


def fallback_reply_kind(text: str) -> FallbackKind:
    """Pick the conversational reply for text no guess could be built from."""
    t = normalize(text)
    utterance = classify(t)
    if utterance in (Utterance.FINANCIAL, Utterance.TASK):
        return FallbackKind.UNCLEAR
    if utterance == Utterance.GREETING or len(t) < MIN_MEANINGFUL_LENGTH:
        return FallbackKind.CLARIFY
    return FallbackKind.HELP


def is_greeting(text: str) -> bool:
    return classify(text) == Utterance.GREETING


def infer_direction(text: str) -> Direction | None:
    t = normalize(text)
    if _OUT_PATTERN.search(t):
        return Direction.OUT
    if _IN_PATTERN.search(t):
        return Direction.IN
    return None


def requests_access(text: str) -> bool:
    return _mentions(normalize(text), ACCESS_TERMS)


def build_intent(
    guess: StructuredGuess | None, text: str, message_id: str | None
) -> Intent | None:
    """Turn an interpreter guess into a dispatchable intent.

    Explicit dashboard requests become an account query even when the guess
    is empty. Returns None when nothing actionable is left.
    """
    if requests_access(text):
        return Intent(
            domain=Domain.ACCOUNT,
            action=Action.QUERY,
            text=text,
            description=guess.description if guess else "",
            message_id=message_id,
            wants_access=True,
        )

    if guess is None or not guess.is_actionable:
        return None

    direction = guess.direction
    if guess.domain == Domain.LEDGER and guess.action == Action.QUERY and direction is None:
        direction = infer_direction(text or guess.description)

    return Intent(
        domain=guess.domain,
        action=guess.action,
        description=guess.description or text.strip(),
        text=text,
        amount=guess.amount,
        direction=direction,
        category=guess.category,
        hinted_date=guess.hinted_date,
        hinted_time=guess.hinted_time,
        period_hint=guess.period,
        message_id=message_id,
    )
