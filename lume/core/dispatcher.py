from collections import defaultdict
from datetime import datetime
from decimal import Decimal

from loguru import logger

from lume.config import Settings
from lume.core.entitlement import active_expiry, is_tester
from lume.core.text import capitalize_first
from lume.db.repository import DuplicateInteractionError, Repository
from lume.models.schemas import (
    AccessLinkRequest,
    Account,
    AccountStatus,
    Action,
    Category,
    CategoryTotal,
    ChartRequest,
    Direction,
    Domain,
    Duplicate,
    EntryLine,
    Failure,
    InteractionRecord,
    Intent,
    LedgerEntry,
    LedgerSaved,
    LedgerSummary,
    NothingFound,
    ReplyPayload,
    ResolvedTime,
    Task,
    TaskAgenda,
    TaskDay,
    TaskSaved,
    TaskStatus,
)

DEFAULT_CATEGORY = "Outros"
RECENT_ENTRIES = 5

_CATEGORY_DEFAULTS = {
    Direction.IN: ("📥", "#22c55e"),
    Direction.OUT: ("📤", "#ef4444"),
}


class Dispatcher:
    """Runs one interpreted command against the ledger and task stores."""

    def __init__(self, repo: Repository, settings: Settings):
        self.repo = repo
        self.settings = settings

    def dispatch(
        self, intent: Intent, resolved: ResolvedTime, account: Account, now: datetime
    ) -> ReplyPayload:
        if self.repo.has_interaction(intent.message_id):
            logger.info("Skipping already processed message {}", intent.message_id)
            return Duplicate()

        try:
            payload = self._route(intent, resolved, account, now)
        except Exception:
            logger.exception("Dispatch failed for {} ({})", account.contact, intent.domain.value)
            return Failure()

        try:
            self.repo.record_interaction(
                InteractionRecord(
                    message_id=intent.message_id,
                    account_id=account.id,
                    input_text=intent.source_text,
                    kind=payload.kind,
                    created_at=now,
                )
            )
        except DuplicateInteractionError:
            logger.warning("Message {} was recorded concurrently", intent.message_id)
            return Duplicate()
        except Exception:
            # The write already committed, so the reply still reports it.
            logger.exception("Could not record interaction {}", intent.message_id)
        return payload

    def _route(
        self, intent: Intent, resolved: ResolvedTime, account: Account, now: datetime
    ) -> ReplyPayload:
        if intent.domain == Domain.LEDGER:
            # An insert with no usable amount is treated as a question.
            if intent.action == Action.INSERT and intent.has_valid_amount:
                return self.insert_entry(intent, resolved, account)
            return self.summarize_ledger(intent, resolved, account)

        if intent.domain == Domain.TASK:
            if intent.action == Action.INSERT:
                return self.insert_task(intent, resolved, account)
            return self.list_tasks(resolved, account)

        return self.account_status(intent, account)

    # ── Ledger ──────────────────────────────────────────────────────

    def resolve_category(self, name: str | None, direction: Direction) -> Category:
        name = (name or "").strip() or DEFAULT_CATEGORY
        category = self.repo.find_category(name, direction)
        if category is not None:
            return category

        icon, color = _CATEGORY_DEFAULTS[direction]
        category = self.repo.add_category(
            Category(name=capitalize_first(name), direction=direction, icon=icon, color=color)
        )
        logger.info("Created category {} ({})", category.name, direction.value)
        return category

    def insert_entry(
        self, intent: Intent, resolved: ResolvedTime, account: Account
    ) -> LedgerSaved:
        direction = intent.direction or Direction.OUT
        category = self.resolve_category(intent.category, direction)
        entry = self.repo.add_entry(
            LedgerEntry(
                account_id=account.id,
                amount=intent.amount,
                direction=direction,
                category_id=category.id,
                occurred_on=resolved.entry_date,
                description=intent.description,
                origin_text=intent.source_text,
            )
        )
        logger.info(
            "Ledger entry #{} {} {} for {}",
            entry.id, direction.value, entry.amount, account.contact,
        )
        return LedgerSaved(
            direction=direction,
            description=entry.description,
            amount=entry.amount,
            category=category.name,
            category_icon=category.icon,
            occurred_on=entry.occurred_on,
        )

    def summarize_ledger(
        self, intent: Intent, resolved: ResolvedTime, account: Account
    ) -> LedgerSummary | NothingFound:
        period = resolved.period
        entries = [
            e
            for e in self.repo.list_entries(
                account.id,
                start=period.start.date(),
                end=period.end.date(),
                direction=intent.direction,
            )
            if e.amount > 0
        ]
        if not entries:
            return NothingFound(
                domain=Domain.LEDGER,
                period_label=period.label,
                direction_filter=intent.direction,
            )

        total_in = sum((e.amount for e in entries if e.direction == Direction.IN), Decimal(0))
        total_out = sum((e.amount for e in entries if e.direction == Direction.OUT), Decimal(0))

        balance = Decimal(0)
        for e in self.repo.list_entries(account.id):
            balance += e.amount if e.direction == Direction.IN else -e.amount

        categories = {c.id: c for c in self.repo.list_categories()}
        breakdown = self._breakdown(entries, categories, intent.direction)

        recent = [
            EntryLine(
                occurred_on=e.occurred_on,
                description=e.description,
                amount=e.amount,
                direction=e.direction,
                category=self._category_name(categories, e.category_id),
            )
            for e in sorted(entries, key=lambda e: (e.occurred_on, e.created_at), reverse=True)
        ][:RECENT_ENTRIES]

        chart = None
        if intent.direction != Direction.IN and len(breakdown) > 1:
            chart = ChartRequest(
                title=f"Seus gastos {period.label} por categoria",
                labels=[c.name for c in breakdown],
                values=[c.amount for c in breakdown],
            )

        return LedgerSummary(
            period=period,
            direction_filter=intent.direction,
            total_in=total_in,
            total_out=total_out,
            balance=balance,
            breakdown=breakdown,
            recent=recent,
            chart=chart,
        )

    @staticmethod
    def _category_name(categories: dict[int, Category], id: int | None) -> str:
        category = categories.get(id)
        return category.name.strip() if category else DEFAULT_CATEGORY

    def _breakdown(
        self,
        entries: list[LedgerEntry],
        categories: dict[int, Category],
        direction: Direction | None,
    ) -> list[CategoryTotal]:
        wanted = direction or Direction.OUT
        totals: dict[int | None, Decimal] = defaultdict(Decimal)
        for e in entries:
            if e.direction == wanted:
                totals[e.category_id] += e.amount

        ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
        ranked = ranked[: self.settings.chart_max_categories]
        return [
            CategoryTotal(
                name=self._category_name(categories, id),
                icon=categories[id].icon if id in categories else "",
                amount=amount,
            )
            for id, amount in ranked
        ]

    # ── Tasks ───────────────────────────────────────────────────────

    def insert_task(self, intent: Intent, resolved: ResolvedTime, account: Account) -> TaskSaved:
        schedule = resolved.schedule
        task = self.repo.add_task(
            Task(
                account_id=account.id,
                description=intent.description,
                scheduled_date=schedule.scheduled_date,
                scheduled_time=schedule.scheduled_time,
                status=TaskStatus.PENDING,
                origin_text=intent.source_text,
            )
        )
        logger.info("Task #{} on {} for {}", task.id, task.scheduled_date, account.contact)
        return TaskSaved(
            description=task.description,
            scheduled_date=task.scheduled_date,
            scheduled_time=task.scheduled_time,
        )

    def list_tasks(self, resolved: ResolvedTime, account: Account) -> TaskAgenda | NothingFound:
        period = resolved.period
        tasks = self.repo.list_tasks(
            account.id,
            start=period.start.date(),
            end=period.end.date(),
            status=TaskStatus.PENDING,
            limit=self.settings.task_query_limit,
        )
        if not tasks:
            return NothingFound(domain=Domain.TASK, period_label=period.label)

        grouped: dict = defaultdict(list)
        for task in tasks:
            grouped[task.scheduled_date].append(task)
        return TaskAgenda(
            period_label=period.label,
            days=[TaskDay(day=day, tasks=grouped[day]) for day in sorted(grouped)],
        )

    # ── Account ─────────────────────────────────────────────────────

    def account_status(self, intent: Intent, account: Account) -> AccountStatus:
        return AccountStatus(
            plan=account.plan,
            tester=is_tester(account),
            expires_at=active_expiry(account),
            access_link=AccessLinkRequest(account_id=account.id) if intent.wants_access else None,
        )
