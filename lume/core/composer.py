"""pt-BR rendering of dispatcher payloads.

The composer only formats. The two enrichments a payload can ask for (a
category chart and a dashboard link) are executed here, and a failing
enrichment is dropped without touching the main text.
"""

from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from loguru import logger

from lume.config import Settings
from lume.core.temporal import weekday_name
from lume.models.schemas import (
    Account,
    AccountStatus,
    Denied,
    DenialReason,
    Direction,
    Domain,
    Duplicate,
    Failure,
    Fallback,
    FallbackKind,
    LedgerSaved,
    LedgerSummary,
    NothingFound,
    OutboundReply,
    Plan,
    ReplyPayload,
    TaskAgenda,
    TaskSaved,
)
from lume.services.access import AccessLinkIssuer
from lume.services.charts import ChartRenderer

CLARIFY_TEXT = "👋 Oi! Tudo bem? Pode me dizer o que deseja fazer? 😊"
UNCLEAR_TEXT = "🤔 Não consegui entender bem o que você quis dizer. Pode reformular?"
FAILURE_TEXT = "⚠️ Ocorreu um erro ao processar sua solicitação. Tente novamente em instantes."
AUDIO_TOO_LONG_TEXT = "⚠️ O áudio é muito longo! Envie mensagens de até {limit:.0f} segundos."
AUDIO_FAILED_TEXT = "⚠️ Não consegui entender seu áudio. Pode enviar por texto?"
HELP_TEXT = (
    "🤖 Oi! Eu sou a *Lume*, sua assistente financeira. 😊\n\n"
    "Posso te ajudar a *registrar um gasto ou ganho*, *consultar seu resumo "
    "financeiro* ou *criar uma tarefa*.\n"
    "Exemplos:\n"
    "• 💸 'Gastei 50 reais com mercado'\n"
    "• 📊 'Quanto gastei este mês?'\n"
    "• 🧽 'Lavar o carro amanhã às 13h'\n"
    "• 📅 'Adicionar reunião terça às 10h'\n\n"
    "Tente mandar algo nesse formato que eu entendo rapidinho!"
)

_PLAN_LABELS = {
    Plan.TRIAL: "Teste gratuito",
    Plan.PREMIUM: "Premium",
    Plan.TESTER: "Tester",
    Plan.BLOCKED: "Bloqueado",
    Plan.FREE: "Gratuito",
}


def format_brl(amount: Decimal) -> str:
    """Format as Brazilian currency: ``R$ 1.234,56``."""
    amount = Decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if amount < 0 else ""
    whole, cents = f"{abs(amount):.2f}".split(".")
    whole = f"{int(whole):,}".replace(",", ".")
    return f"{sign}R$ {whole},{cents}"


def format_day(day: date) -> str:
    return day.strftime("%d/%m")


def describe_day(day: date, today: date) -> str:
    if day == today:
        return "Hoje"
    if day == today + timedelta(days=1):
        return "Amanhã"
    return f"{weekday_name(day)}, {format_day(day)}"


class ResponseComposer:
    def __init__(
        self,
        settings: Settings,
        charts: ChartRenderer | None = None,
        links: AccessLinkIssuer | None = None,
    ):
        self.settings = settings
        self.charts = charts
        self.links = links

    async def compose(
        self, payload: ReplyPayload, account: Account | None, now: datetime
    ) -> OutboundReply | None:
        if isinstance(payload, Duplicate):
            return None

        text = self.render(payload, account, now)
        reply = OutboundReply(text=text)

        if isinstance(payload, LedgerSummary) and payload.chart and self.charts:
            try:
                reply.image = await self.charts.render(payload.chart)
                reply.image_caption = f"📊 {payload.chart.title}"
            except Exception as e:
                logger.warning("Skipping chart: {}", e)

        if isinstance(payload, AccountStatus) and payload.access_link:
            reply.text += "\n\n" + self._access_section(payload, now)

        return reply

    def _access_section(self, payload: AccountStatus, now: datetime) -> str:
        if self.links is None:
            return "🔗 O acesso pelo painel ainda não está disponível."
        try:
            url = self.links.issue(payload.access_link.account_id, now)
        except Exception as e:
            logger.error("Could not issue access link: {}", e)
            return "🔗 Não consegui gerar seu link agora. Tente novamente em instantes."
        return (
            f"🔗 *Seu link de acesso:* {url}\n"
            f"⏳ Válido por {self.links.minutes} minutos e apenas para um acesso."
        )

    # ── Text ────────────────────────────────────────────────────────

    def render(self, payload: ReplyPayload, account: Account | None, now: datetime) -> str:
        if isinstance(payload, LedgerSaved):
            return self._ledger_saved(payload, now)
        if isinstance(payload, LedgerSummary):
            return self._ledger_summary(payload, account)
        if isinstance(payload, NothingFound):
            return self._nothing_found(payload)
        if isinstance(payload, TaskSaved):
            return self._task_saved(payload)
        if isinstance(payload, TaskAgenda):
            return self._task_agenda(payload, now)
        if isinstance(payload, AccountStatus):
            return self._account_status(payload)
        if isinstance(payload, Denied):
            return self._denied(payload)
        if isinstance(payload, Fallback):
            return self._fallback(payload, now)
        if isinstance(payload, Failure):
            return FAILURE_TEXT
        raise ValueError(f"No renderer for {payload.kind}")

    def _local(self, moment: datetime) -> datetime:
        return moment.astimezone(self.settings.tz)

    def _ledger_saved(self, p: LedgerSaved, now: datetime) -> str:
        incoming = p.direction == Direction.IN
        lines = [
            "✅ *Registrado com sucesso!*",
            f"{'📥' if incoming else '📤'} *Tipo:* {'Entrada' if incoming else 'Saída'}",
            f"📝 *Descrição:* {p.description}",
            f"💰 *Valor:* {format_brl(p.amount)}",
            f"🏷️ *Categoria:* {p.category}",
        ]
        if p.occurred_on != now.date():
            lines.append(f"📅 *Data:* {format_day(p.occurred_on)}")
        return "\n".join(lines)

    def _ledger_summary(self, p: LedgerSummary, account: Account | None) -> str:
        label = p.period.label
        sections = [
            f"📊 *Resumo financeiro {label}*",
            f"💵 *Saldo atual:* {format_brl(p.balance)}",
        ]

        totals = []
        if p.direction_filter != Direction.OUT:
            totals.append(f"📈 *Entradas ({label}):* {format_brl(p.total_in)}")
        if p.direction_filter != Direction.IN:
            totals.append(f"📉 *Saídas ({label}):* {format_brl(p.total_out)}")
        sections.append("\n".join(totals))

        sections.append(
            f"📅 *Período:* {format_day(p.period.start.date())} — "
            f"{format_day(p.period.end.date())}"
        )

        if p.breakdown:
            heading = "Entradas" if p.direction_filter == Direction.IN else "Gastos"
            lines = [f"🏷️ *{heading} por categoria:*"]
            for c in p.breakdown:
                icon = f"{c.icon} " if c.icon else ""
                lines.append(f"• {icon}{c.name}: {format_brl(c.amount)}")
            sections.append("\n".join(lines))

        if p.recent:
            lines = ["🧾 *Últimos lançamentos:*"]
            for e in p.recent:
                arrow = "📥" if e.direction == Direction.IN else "📤"
                lines.append(
                    f"• {format_day(e.occurred_on)} {arrow} {e.description} — "
                    f"{format_brl(e.amount)} ({e.category})"
                )
            sections.append("\n".join(lines))

        if account is not None and account.plan == Plan.TRIAL and not account.tester:
            sections.append(
                f"💎 Libere tudo com o *Plano PREMIUM*: {self.settings.subscribe_url}"
            )
        return "\n\n".join(sections)

    def _nothing_found(self, p: NothingFound) -> str:
        if p.domain == Domain.TASK:
            return f"📭 Nenhuma tarefa {p.period_label}."
        if p.direction_filter == Direction.OUT:
            noun = "gasto"
        elif p.direction_filter == Direction.IN:
            noun = "entrada"
        else:
            noun = "movimentação"
        return f"📭 Nenhum(a) {noun} encontrado(a) {p.period_label}."

    def _task_saved(self, p: TaskSaved) -> str:
        when = f"{weekday_name(p.scheduled_date)}, {format_day(p.scheduled_date)}"
        if p.scheduled_time:
            when += f" às {p.scheduled_time}"
        return f"📝 *Tarefa adicionada com sucesso!*\n📌 {p.description}\n🕒 {when}"

    def _task_agenda(self, p: TaskAgenda, now: datetime) -> str:
        blocks = ["📅 *Suas próximas tarefas:*"]
        for group in p.days:
            lines = [f"📆 *{describe_day(group.day, now.date())}*"]
            for task in group.tasks:
                at = f" ⏰ {task.scheduled_time}" if task.scheduled_time else ""
                lines.append(f"• {task.description}{at}")
            blocks.append("\n".join(lines))
        return "\n\n".join(blocks)

    def _account_status(self, p: AccountStatus) -> str:
        plan = "Tester" if p.tester else _PLAN_LABELS[p.plan]
        text = f"👤 *Seu plano:* {plan}"
        if p.expires_at is not None:
            text += f" (até {self._local(p.expires_at).strftime('%d/%m/%Y')})"
        if not p.tester and p.plan in (Plan.BLOCKED, Plan.FREE):
            text += f"\n💎 Ative o PREMIUM em {self.settings.subscribe_url}"
        return text

    def _denied(self, p: Denied) -> str:
        url = self.settings.subscribe_url
        if p.reason == DenialReason.ENTRY_QUOTA:
            return (
                f"📈 Você atingiu o limite de {p.cap} transações do período de teste.\n"
                "💎 *Ative o Plano PREMIUM* e continue registrando seus gastos:\n"
                f"👉 {url}"
            )
        if p.reason == DenialReason.INTERACTION_QUOTA:
            return (
                f"📈 Você atingiu o limite de {p.cap} mensagens do período de teste.\n"
                "💎 *Ative o Plano PREMIUM* para continuar conversando comigo:\n"
                f"👉 {url}"
            )
        return (
            "🚫 *Seu plano expirou!*\n\n"
            "💎 Ative o *Plano PREMIUM* para continuar usando a Lume sem limites:\n"
            f"👉 {url}"
        )

    def _fallback(self, p: Fallback, now: datetime) -> str:
        if p.reason == FallbackKind.WELCOME:
            expires = p.trial_expires_at or now + timedelta(days=self.settings.trial_days)
            return (
                "👋 Olá! Eu sou a *Lume*, sua assistente financeira. 😊\n\n"
                "Você está no seu período de *teste gratuito*!\n"
                f"🗓️ Ele expira em *{self._local(expires).strftime('%d/%m')}*.\n\n"
                "Posso te ajudar com:\n"
                "• 💸 Registrar um gasto ou ganho\n"
                "• 📊 Ver seu resumo financeiro\n"
                "• 📝 Criar uma tarefa com horário\n\n"
                "Tente enviar algo como:\n"
                "• 'Gastei 50 com gasolina'\n"
                "• 'Quanto gastei este mês?'\n"
                "• 'Lavar o carro amanhã às 13h'\n\n"
                f"👉 Quando quiser liberar tudo, ative o plano PREMIUM em {self.settings.subscribe_url}"
            )
        if p.reason == FallbackKind.CLARIFY:
            return CLARIFY_TEXT
        if p.reason == FallbackKind.HELP:
            return HELP_TEXT
        return UNCLEAR_TEXT
