from datetime import date, timedelta

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from loguru import logger

from lume.core.entitlement import active_expiry, is_tester
from lume.core.temporal import end_of_day, month_period, resolve_time, start_of_day
from lume.core.text import normalize
from lume.deps import Services, get_services
from lume.models.schemas import (
    Account,
    AccountStatus,
    Action,
    AnalyzeRequest,
    AnalyzeResponse,
    AudioClip,
    CreateEntryRequest,
    CreateTaskRequest,
    DashboardOverview,
    Domain,
    GrantPremiumRequest,
    InboundMessage,
    Intent,
    LedgerEntry,
    LedgerSummary,
    Period,
    ResolvedTime,
    Task,
    TaskAgenda,
    UpdateEntryRequest,
    UpdateTaskRequest,
    parse_direction,
    parse_task_status,
)
from lume.services.gateway import TELEGRAM_PREFIX, GatewayError, normalize_whatsapp_number

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok"}


# ── WhatsApp ────────────────────────────────────────────────────────


@router.get("/whatsapp/webhook", response_class=PlainTextResponse)
def verify_webhook(
    mode: str | None = Query(default=None, alias="hub.mode"),
    token: str | None = Query(default=None, alias="hub.verify_token"),
    challenge: str = Query(default="", alias="hub.challenge"),
    services: Services = Depends(get_services),
):
    verify_token = services.settings.wa_verify_token
    if mode == "subscribe" and verify_token and token == verify_token:
        logger.info("WhatsApp webhook verified")
        return challenge
    raise HTTPException(status_code=403, detail="Verification failed")


def extract_whatsapp_messages(body: dict) -> list[dict]:
    messages = []
    for entry in body.get("entry") or []:
        for change in entry.get("changes") or []:
            messages.extend((change.get("value") or {}).get("messages") or [])
    return messages


async def process_whatsapp_message(services: Services, raw: dict) -> None:
    gateway = services.whatsapp
    contact = normalize_whatsapp_number(raw.get("from", ""))
    message = InboundMessage(contact=contact, message_id=raw.get("id"))

    kind = raw.get("type")
    if kind == "text":
        message.text = (raw.get("text") or {}).get("body", "")
    elif kind == "audio":
        media_id = (raw.get("audio") or {}).get("id")
        try:
            content = await gateway.download_media(media_id)
        except GatewayError as e:
            logger.error("Audio download for {} failed: {}", contact, e)
            return
        message.audio = AudioClip(content=content, filename="audio.ogg")
    else:
        logger.info("Ignoring WhatsApp {} message from {}", kind, contact)
        return

    await services.pipeline.deliver(message, gateway)


@router.post("/whatsapp/webhook")
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
):
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    if services.whatsapp is None:
        logger.warning("WhatsApp is not configured, dropping webhook")
        return {"status": "ignored"}

    messages = extract_whatsapp_messages(body if isinstance(body, dict) else {})
    for raw in messages:
        background_tasks.add_task(process_whatsapp_message, services, raw)
    return {"status": "received", "messages": len(messages)}


# ── Assistant ───────────────────────────────────────────────────────


@router.post("/assistant/analyze", response_model=AnalyzeResponse)
async def analyze_message(
    request: AnalyzeRequest, services: Services = Depends(get_services)
):
    logger.info("Analyzing message: {}", request.message)
    message = InboundMessage(
        contact=normalize_whatsapp_number(request.contact), text=request.message
    )
    reply, guess = await services.pipeline.process(message)
    return AnalyzeResponse(
        message=request.message,
        guess=guess,
        reply=reply.text if reply else None,
    )


# ── Dashboard access ────────────────────────────────────────────────


def build_overview(services: Services, account: Account) -> DashboardOverview:
    now = services.now()
    dispatcher = services.dispatcher

    month = month_period(now.year, now.month, now, "deste mês")
    summary = dispatcher.summarize_ledger(
        Intent(domain=Domain.LEDGER, action=Action.QUERY),
        ResolvedTime(period=month),
        account,
    )
    week = Period(
        start=start_of_day(now),
        end=end_of_day(now + timedelta(days=6)),
        label="dos próximos dias",
    )
    agenda = dispatcher.list_tasks(ResolvedTime(period=week), account)

    return DashboardOverview(
        contact=account.contact,
        name=account.name,
        status=AccountStatus(
            plan=account.plan,
            tester=is_tester(account),
            expires_at=active_expiry(account),
        ),
        month=summary if isinstance(summary, LedgerSummary) else None,
        upcoming=agenda if isinstance(agenda, TaskAgenda) else None,
    )


@router.get("/access/{token}", response_model=DashboardOverview)
def open_dashboard(token: str, services: Services = Depends(get_services)):
    if services.repo.get_access_token(token) is None:
        raise HTTPException(status_code=404, detail="Access link not found")

    account = services.links.consume(token, services.now())
    if account is None:
        raise HTTPException(status_code=410, detail="Access link expired or already used")

    logger.info("Dashboard opened for account #{}", account.id)
    overview = build_overview(services, account)
    overview.session_token = services.links.open_session(account.id, services.now())
    return overview


# ── Records API ─────────────────────────────────────────────────────


def current_account(
    authorization: str | None = Header(default=None),
    services: Services = Depends(get_services),
) -> Account:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Missing bearer token")

    now = services.now()
    account = services.links.authenticate(token.strip(), now)
    if account is None:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    return services.entitlement.refresh(account, now)


def authorize_write(services: Services, account: Account, intent: Intent) -> None:
    decision = services.entitlement.authorize(account, intent, services.now())
    if not decision.allowed:
        logger.info("Denied API write ({}) for account #{}", decision.reason.value, account.id)
        raise HTTPException(status_code=403, detail=decision.reason.value)


def check_time(raw: str | None) -> str | None:
    if raw is None:
        return None
    scheduled_time = resolve_time(normalize(raw), raw)
    if scheduled_time is None:
        raise HTTPException(status_code=422, detail=f"Invalid time {raw!r}")
    return scheduled_time


def owned_entry(services: Services, account: Account, entry_id: int) -> LedgerEntry:
    entry = services.repo.get_entry(entry_id)
    if entry is None or entry.account_id != account.id:
        raise HTTPException(status_code=404, detail="Entry not found")
    return entry


def owned_task(services: Services, account: Account, task_id: int) -> Task:
    task = services.repo.get_task(task_id)
    if task is None or task.account_id != account.id:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.get("/me", response_model=Account)
def read_me(account: Account = Depends(current_account)):
    return account


@router.get("/entries", response_model=list[LedgerEntry])
def list_entries(
    start: date | None = None,
    end: date | None = None,
    direction: str | None = None,
    category: str | None = None,
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    wanted = None
    if direction and direction.upper() != "ALL":
        wanted = parse_direction(direction)
        if wanted is None:
            raise HTTPException(status_code=422, detail=f"Unknown direction {direction!r}")

    entries = services.repo.list_entries(account.id, start=start, end=end, direction=wanted)
    if category:
        match = services.repo.find_category(category, wanted)
        if match is None:
            return []
        entries = [e for e in entries if e.category_id == match.id]
    return list(reversed(entries))


@router.post("/entries", response_model=LedgerEntry, status_code=201)
def create_entry(
    request: CreateEntryRequest,
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    authorize_write(
        services,
        account,
        Intent(domain=Domain.LEDGER, action=Action.INSERT, amount=request.amount),
    )
    category = services.dispatcher.resolve_category(request.category, request.direction)
    entry = services.repo.add_entry(
        LedgerEntry(
            account_id=account.id,
            amount=request.amount,
            direction=request.direction,
            category_id=category.id,
            occurred_on=request.occurred_on or services.now().date(),
            description=request.description,
        )
    )
    logger.info("Created entry #{} for account #{}", entry.id, account.id)
    return entry


@router.patch("/entries/{entry_id}", response_model=LedgerEntry)
def update_entry(
    entry_id: int,
    request: UpdateEntryRequest,
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    entry = owned_entry(services, account, entry_id)
    authorize_write(services, account, Intent(domain=Domain.LEDGER, action=Action.QUERY))

    updates = request.model_dump(exclude_none=True, exclude={"category"})
    direction = updates.get("direction", entry.direction)
    if request.category is not None:
        updates["category_id"] = services.dispatcher.resolve_category(
            request.category, direction
        ).id
    updated = services.repo.save_entry(entry.model_copy(update=updates))
    logger.info("Updated entry #{}", entry_id)
    return updated


@router.delete("/entries/{entry_id}")
def delete_entry(
    entry_id: int,
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    owned_entry(services, account, entry_id)
    authorize_write(services, account, Intent(domain=Domain.LEDGER, action=Action.QUERY))
    services.repo.delete_entry(entry_id)
    logger.info("Deleted entry #{}", entry_id)
    return {"detail": "Entry deleted"}


@router.get("/tasks", response_model=list[Task])
def list_tasks(
    status: str | None = None,
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    wanted = None
    if status and status.upper() != "ALL":
        wanted = parse_task_status(status)
        if wanted is None:
            raise HTTPException(status_code=422, detail=f"Unknown status {status!r}")
    return services.repo.list_tasks(account.id, status=wanted)


@router.post("/tasks", response_model=Task, status_code=201)
def create_task(
    request: CreateTaskRequest,
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    authorize_write(services, account, Intent(domain=Domain.TASK, action=Action.INSERT))
    task = services.repo.add_task(
        Task(
            account_id=account.id,
            description=request.description,
            scheduled_date=request.scheduled_date or services.now().date(),
            scheduled_time=check_time(request.scheduled_time),
        )
    )
    logger.info("Created task #{} for account #{}", task.id, account.id)
    return task


@router.patch("/tasks/{task_id}", response_model=Task)
def update_task(
    task_id: int,
    request: UpdateTaskRequest,
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    task = owned_task(services, account, task_id)
    authorize_write(services, account, Intent(domain=Domain.TASK, action=Action.QUERY))

    updates = request.model_dump(exclude_none=True)
    if "scheduled_time" in updates:
        updates["scheduled_time"] = check_time(updates["scheduled_time"])
    updated = services.repo.save_task(task.model_copy(update=updates))
    logger.info("Updated task #{} ({})", task_id, updated.status.value)
    return updated


@router.delete("/tasks/{task_id}")
def delete_task(
    task_id: int,
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
):
    owned_task(services, account, task_id)
    authorize_write(services, account, Intent(domain=Domain.TASK, action=Action.QUERY))
    services.repo.delete_task(task_id)
    logger.info("Deleted task #{}", task_id)
    return {"detail": "Task deleted"}


# ── Operator ────────────────────────────────────────────────────────


@router.post("/admin/accounts/{contact}/premium", response_model=AccountStatus)
def grant_premium(
    contact: str,
    request: GrantPremiumRequest,
    x_admin_token: str | None = Header(default=None),
    services: Services = Depends(get_services),
):
    admin_token = services.settings.admin_token
    if not admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=403, detail="Forbidden")

    if not contact.startswith(TELEGRAM_PREFIX):
        contact = normalize_whatsapp_number(contact)
    account = services.repo.get_account_by_contact(contact)
    if account is None:
        raise HTTPException(status_code=404, detail="Account not found")

    until = services.now() + timedelta(days=request.days)
    account = services.entitlement.grant_premium(account, until)
    return AccountStatus(
        plan=account.plan,
        tester=is_tester(account),
        expires_at=active_expiry(account),
    )
