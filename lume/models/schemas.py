from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Plan(str, Enum):
    TRIAL = "TRIAL"
    PREMIUM = "PREMIUM"
    TESTER = "TESTER"
    BLOCKED = "BLOCKED"
    FREE = "FREE"


class Direction(str, Enum):
    IN = "IN"
    OUT = "OUT"


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    DONE = "DONE"
    CANCELLED = "CANCELLED"


class Domain(str, Enum):
    LEDGER = "ledger"
    TASK = "task"
    ACCOUNT = "account"


class Action(str, Enum):
    INSERT = "insert"
    QUERY = "query"


class DenialReason(str, Enum):
    EXPIRED = "expired"
    INTERACTION_QUOTA = "interaction_quota"
    ENTRY_QUOTA = "entry_quota"


class FallbackKind(str, Enum):
    WELCOME = "welcome"
    CLARIFY = "clarify"
    HELP = "help"
    UNCLEAR = "unclear"


# ── External spellings ──────────────────────────────────────────────
# Every enum crossing the interpreter / storage edge is converted here and
# nowhere else.

_PLAN_ALIASES = {"BLOQUEADO": Plan.BLOCKED, "GRATIS": Plan.FREE}
_DIRECTION_ALIASES = {
    "ENTRADA": Direction.IN,
    "INCOME": Direction.IN,
    "RECEITA": Direction.IN,
    "SAIDA": Direction.OUT,
    "SAÍDA": Direction.OUT,
    "EXPENSE": Direction.OUT,
    "DESPESA": Direction.OUT,
}
_STATUS_ALIASES = {
    "PENDENTE": TaskStatus.PENDING,
    "CONCLUIDA": TaskStatus.DONE,
    "CANCELADA": TaskStatus.CANCELLED,
}
_DOMAIN_ALIASES = {
    "transacao": Domain.LEDGER,
    "transação": Domain.LEDGER,
    "transaction": Domain.LEDGER,
    "tarefa": Domain.TASK,
    "conta": Domain.ACCOUNT,
}
_ACTION_ALIASES = {
    "inserir": Action.INSERT,
    "add": Action.INSERT,
    "create": Action.INSERT,
    "consultar": Action.QUERY,
    "consulta": Action.QUERY,
}


def _is_blank(value: Any) -> bool:
    return value is None or (
        isinstance(value, str) and value.strip().lower() in ("", "null", "none")
    )


def _lookup(value: Any, enum_cls: type[Enum], aliases: dict, *, upper: bool):
    if _is_blank(value):
        return None
    if isinstance(value, enum_cls):
        return value
    key = str(value).strip()
    key = key.upper() if upper else key.lower()
    if key in aliases:
        return aliases[key]
    try:
        return enum_cls(key)
    except ValueError:
        return None


def parse_plan(value: Any) -> Plan | None:
    return _lookup(value, Plan, _PLAN_ALIASES, upper=True)


def parse_direction(value: Any) -> Direction | None:
    return _lookup(value, Direction, _DIRECTION_ALIASES, upper=True)


def parse_task_status(value: Any) -> TaskStatus | None:
    return _lookup(value, TaskStatus, _STATUS_ALIASES, upper=True)


def parse_domain(value: Any) -> Domain | None:
    return _lookup(value, Domain, _DOMAIN_ALIASES, upper=False)


def parse_action(value: Any) -> Action | None:
    return _lookup(value, Action, _ACTION_ALIASES, upper=False)


def parse_amount(value: Any) -> Decimal | None:
    """Best-effort decimal; anything unusable (including NaN/inf) becomes None."""
    if _is_blank(value) or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().replace("R$", "").strip()
        if "," in value:
            value = value.replace(".", "").replace(",", ".")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return amount if amount.is_finite() else None


# ── Persisted records ───────────────────────────────────────────────


class Account(BaseModel):
    id: int | None = None
    contact: str
    name: str | None = None
    plan: Plan = Plan.TRIAL
    tester: bool = False
    trial_activated_at: datetime | None = None
    trial_expires_at: datetime | None = None
    premium_expires_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("plan", mode="before")
    @classmethod
    def _plan(cls, value: Any) -> Plan:
        return parse_plan(value) or Plan.FREE


class Category(BaseModel):
    id: int | None = None
    name: str
    direction: Direction = Direction.OUT
    icon: str = "📤"
    color: str = "#ef4444"

    @field_validator("direction", mode="before")
    @classmethod
    def _direction(cls, value: Any) -> Direction:
        return parse_direction(value) or Direction.OUT


class LedgerEntry(BaseModel):
    id: int | None = None
    account_id: int
    amount: Decimal
    direction: Direction
    category_id: int | None = None
    occurred_on: date
    description: str = ""
    origin_text: str | None = None
    confirmed: bool = True
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("direction", mode="before")
    @classmethod
    def _direction(cls, value: Any) -> Direction:
        return parse_direction(value) or Direction.OUT


class Task(BaseModel):
    id: int | None = None
    account_id: int
    description: str
    scheduled_date: date
    scheduled_time: str | None = None
    status: TaskStatus = TaskStatus.PENDING
    origin_text: str | None = None
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> TaskStatus:
        return parse_task_status(value) or TaskStatus.PENDING


class InteractionRecord(BaseModel):
    id: int | None = None
    message_id: str | None = None
    account_id: int | None = None
    input_text: str = ""
    kind: str
    success: bool = True
    created_at: datetime = Field(default_factory=utc_now)


class AccessToken(BaseModel):
    id: int | None = None
    token: str
    account_id: int
    expires_at: datetime
    consumed_at: datetime | None = None


class Session(BaseModel):
    id: int | None = None
    token: str
    account_id: int
    expires_at: datetime
    created_at: datetime = Field(default_factory=utc_now)


# ── Interpreter boundary ────────────────────────────────────────────

_PORTUGUESE_KEYS = {
    "tipo": "domain",
    "acao": "action",
    "descricao": "description",
    "valor": "amount",
    "data": "date",
    "hora": "time",
    "tipoTransacao": "direction",
    "categoria": "category",
    "periodo": "period",
}


class StructuredGuess(BaseModel):
    """Best-effort reading of a message produced by the interpreter."""

    model_config = ConfigDict(populate_by_name=True)

    domain: Domain | None = None
    action: Action | None = None
    description: str = ""
    amount: Decimal | None = None
    hinted_date: str | None = Field(default=None, alias="date")
    hinted_time: str | None = Field(default=None, alias="time")
    direction: Direction | None = None
    category: str | None = None
    period: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _translate_keys(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = {_PORTUGUESE_KEYS.get(k, k): v for k, v in data.items()}
        return data

    @field_validator("domain", mode="before")
    @classmethod
    def _domain(cls, value: Any) -> Domain | None:
        return parse_domain(value)

    @field_validator("action", mode="before")
    @classmethod
    def _action(cls, value: Any) -> Action | None:
        return parse_action(value)

    @field_validator("direction", mode="before")
    @classmethod
    def _direction(cls, value: Any) -> Direction | None:
        if _is_blank(value):
            return None
        return CreateEntryRequest._direction(value)

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, value: Any) -> Decimal | None:
        return parse_amount(value)

    @field_validator("description", mode="before")
    @classmethod
    def _description(cls, value: Any) -> str:
        return "" if _is_blank(value) else str(value).strip()

    @field_validator("hinted_date", "hinted_time", "category", "period", mode="before")
    @classmethod
    def _nullable_text(cls, value: Any) -> str | None:
        return None if _is_blank(value) else str(value).strip()

    @property
    def is_actionable(self) -> bool:
        return self.domain is not None and self.action is not None


class Intent(BaseModel):
    domain: Domain
    action: Action
    description: str = ""
    text: str = ""
    amount: Decimal | None = None
    direction: Direction | None = None
    category: str | None = None
    hinted_date: str | None = None
    hinted_time: str | None = None
    period_hint: str | None = None
    message_id: str | None = None
    wants_access: bool = False

    @property
    def has_valid_amount(self) -> bool:
        return (
            self.amount is not None
            and self.amount.is_finite()
            and self.amount >= 0
        )

    @property
    def writes_ledger(self) -> bool:
        return (
            self.domain == Domain.LEDGER
            and self.action == Action.INSERT
            and self.has_valid_amount
        )

    @property
    def source_text(self) -> str:
        return self.text or self.description


# ── Temporal values ─────────────────────────────────────────────────


class Period(BaseModel):
    start: datetime
    end: datetime
    label: str


class TaskSchedule(BaseModel):
    scheduled_date: date
    scheduled_time: str | None = None


class ResolvedTime(BaseModel):
    period: Period | None = None
    schedule: TaskSchedule | None = None
    entry_date: date | None = None


# ── Dispatcher payloads ─────────────────────────────────────────────


class ChartRequest(BaseModel):
    title: str
    labels: list[str]
    values: list[Decimal]


class AccessLinkRequest(BaseModel):
    account_id: int


class CategoryTotal(BaseModel):
    name: str
    icon: str = ""
    amount: Decimal


class EntryLine(BaseModel):
    occurred_on: date
    description: str
    amount: Decimal
    direction: Direction
    category: str


class LedgerSaved(BaseModel):
    kind: Literal["ledger_saved"] = "ledger_saved"
    direction: Direction
    description: str
    amount: Decimal
    category: str
    category_icon: str = ""
    occurred_on: date


class LedgerSummary(BaseModel):
    kind: Literal["ledger_summary"] = "ledger_summary"
    period: Period
    direction_filter: Direction | None = None
    total_in: Decimal
    total_out: Decimal
    balance: Decimal
    breakdown: list[CategoryTotal] = []
    recent: list[EntryLine] = []
    chart: ChartRequest | None = None


class NothingFound(BaseModel):
    kind: Literal["nothing_found"] = "nothing_found"
    domain: Domain
    period_label: str
    direction_filter: Direction | None = None


class TaskSaved(BaseModel):
    kind: Literal["task_saved"] = "task_saved"
    description: str
    scheduled_date: date
    scheduled_time: str | None = None


class TaskDay(BaseModel):
    day: date
    tasks: list[Task]


class TaskAgenda(BaseModel):
    kind: Literal["task_agenda"] = "task_agenda"
    period_label: str
    days: list[TaskDay]


class AccountStatus(BaseModel):
    kind: Literal["account_status"] = "account_status"
    plan: Plan
    tester: bool = False
    expires_at: datetime | None = None
    access_link: AccessLinkRequest | None = None


class Denied(BaseModel):
    kind: Literal["denied"] = "denied"
    reason: DenialReason
    cap: int | None = None


class Fallback(BaseModel):
    kind: Literal["fallback"] = "fallback"
    reason: FallbackKind
    trial_expires_at: datetime | None = None


class Failure(BaseModel):
    kind: Literal["failure"] = "failure"


class Duplicate(BaseModel):
    kind: Literal["duplicate"] = "duplicate"


ReplyPayload = Annotated[
    Union[
        LedgerSaved,
        LedgerSummary,
        NothingFound,
        TaskSaved,
        TaskAgenda,
        AccountStatus,
        Denied,
        Fallback,
        Failure,
        Duplicate,
    ],
    Field(discriminator="kind"),
]


# ── Channel I/O ─────────────────────────────────────────────────────


class AudioClip(BaseModel):
    content: bytes
    filename: str = "audio.ogg"
    duration: float | None = None


class InboundMessage(BaseModel):
    contact: str
    message_id: str | None = None
    text: str = ""
    audio: AudioClip | None = None


class OutboundReply(BaseModel):
    text: str
    image: bytes | None = None
    image_caption: str | None = None


class AnalyzeRequest(BaseModel):
    message: str
    contact: str = "+5551999999999"


class AnalyzeResponse(BaseModel):
    message: str
    guess: StructuredGuess | None = None
    reply: str | None = None


class DashboardOverview(BaseModel):
    contact: str
    name: str | None = None
    status: AccountStatus
    month: LedgerSummary | None = None
    upcoming: TaskAgenda | None = None
    session_token: str | None = None


class GrantPremiumRequest(BaseModel):
    days: int = Field(default=30, gt=0)


# ── Records API ─────────────────────────────────────────────────────


def _require_direction(value: Any) -> Direction:
    direction = parse_direction(value)
    if direction is None:
        raise ValueError(f"unknown direction {value!r}")
    return direction


class CreateEntryRequest(BaseModel):
    description: str
    amount: Decimal = Field(gt=0)
    direction: Direction
    category: str | None = None
    occurred_on: date | None = None

    @field_validator("direction", mode="before")
    @classmethod
    def _direction(cls, value: Any) -> Direction:
        return _require_direction(value)


class UpdateEntryRequest(BaseModel):
    description: str | None = None
    amount: Decimal | None = Field(default=None, gt=0)
    direction: Direction | None = None
    category: str | None = None
    occurred_on: date | None = None

    @field_validator("direction", mode="before")
    @classmethod
    def _direction(cls, value: Any) -> Direction | None:
        return None if _is_blank(value) else _require_direction(value)


class CreateTaskRequest(BaseModel):
    description: str = Field(min_length=1)
    scheduled_date: date | None = None
    scheduled_time: str | None = None


class UpdateTaskRequest(BaseModel):
    description: str | None = None
    status: TaskStatus | None = None
    scheduled_date: date | None = None
    scheduled_time: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> TaskStatus | None:
        if _is_blank(value):
            return None
        status = parse_task_status(value)
        if status is None:
            raise ValueError(f"unknown status {value!r}")
        return status
