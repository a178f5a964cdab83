from datetime import date, datetime

from tinydb import Query, TinyDB

from lume.core.text import normalize
from lume.models.schemas import (
    AccessToken,
    Account,
    Category,
    Direction,
    InteractionRecord,
    LedgerEntry,
    Session,
    Task,
    TaskStatus,
)


class RepositoryError(Exception):
    pass


class DuplicateInteractionError(RepositoryError):
    def __init__(self, message_id: str):
        super().__init__(f"Interaction {message_id} already recorded")
        self.message_id = message_id


DEFAULT_CATEGORIES = [
    ("Alimentação", Direction.OUT, "🍽️", "#F39C12"),
    ("Assinaturas e serviços", Direction.OUT, "🔔", "#8E44AD"),
    ("Bares e restaurantes", Direction.OUT, "🍸", "#F1C40F"),
    ("Cartão de crédito", Direction.OUT, "💳", "#9B59B6"),
    ("Casa", Direction.OUT, "🏠", "#8E44AD"),
    ("Compras", Direction.OUT, "🛍️", "#E91E63"),
    ("Cuidados pessoais", Direction.OUT, "🧴", "#F4D03F"),
    ("Dívidas e empréstimos", Direction.OUT, "📄", "#5B2C6F"),
    ("Educação", Direction.OUT, "🎓", "#1ABC9C"),
    ("Família e filhos", Direction.OUT, "❤️", "#C0392B"),
    ("Impostos e taxas", Direction.OUT, "📑", "#D35400"),
    ("Lazer e hobbies", Direction.OUT, "🎮", "#9B59B6"),
    ("Mercado", Direction.OUT, "🛒", "#27AE60"),
    ("Pets", Direction.OUT, "🐾", "#A0522D"),
    ("Roupas", Direction.OUT, "👕", "#F39C12"),
    ("Saúde", Direction.OUT, "💊", "#E74C3C"),
    ("Transporte", Direction.OUT, "🚌", "#2ECC71"),
    ("Viagem", Direction.OUT, "✈️", "#16A085"),
    ("Outros", Direction.OUT, "💰", "#95A5A6"),
    ("Freelance", Direction.IN, "💻", "#3498DB"),
    ("Investimentos", Direction.IN, "📈", "#1ABC9C"),
    ("Outras receitas", Direction.IN, "➕", "#BDC3C7"),
    ("Reembolsos", Direction.IN, "💵", "#16A085"),
    ("Salário", Direction.IN, "⭐", "#27AE60"),
    ("Vendas", Direction.IN, "💸", "#F1C40F"),
]


class Repository:
    def __init__(self, db_path: str = "lume.json"):
        self.db = TinyDB(db_path)
        self.accounts = self.db.table("accounts")
        self.categories = self.db.table("categories")
        self.entries = self.db.table("entries")
        self.tasks = self.db.table("tasks")
        self.interactions = self.db.table("interactions")
        self.access_tokens = self.db.table("access_tokens")
        self.sessions = self.db.table("sessions")

    def close(self) -> None:
        self.db.close()

    @staticmethod
    def _dump(model) -> dict:
        data = model.model_dump(mode="json")
        data.pop("id", None)
        return data

    # ── Accounts ────────────────────────────────────────────────────

    def get_account(self, id: int) -> Account | None:
        doc = self.accounts.get(doc_id=id)
        if doc is None:
            return None
        return Account(id=doc.doc_id, **doc)

    def get_account_by_contact(self, contact: str) -> Account | None:
        doc = self.accounts.get(Query().contact == contact)
        if doc is None:
            return None
        return Account(id=doc.doc_id, **doc)

    def add_account(self, account: Account) -> Account:
        existing = self.get_account_by_contact(account.contact)
        if existing is not None:
            return existing
        account.id = self.accounts.insert(self._dump(account))
        return account

    def save_account(self, account: Account) -> Account:
        if account.id is None:
            raise RepositoryError("Cannot save an account that was never added")
        self.accounts.update(self._dump(account), doc_ids=[account.id])
        return account

    # ── Categories ──────────────────────────────────────────────────

    def seed_categories(self) -> int:
        if len(self.categories):
            return 0
        for name, direction, icon, color in DEFAULT_CATEGORIES:
            self.add_category(
                Category(name=name, direction=direction, icon=icon, color=color)
            )
        return len(DEFAULT_CATEGORIES)

    def list_categories(self) -> list[Category]:
        return [Category(id=doc.doc_id, **doc) for doc in self.categories.all()]

    def find_category(self, name: str, direction: Direction | None = None) -> Category | None:
        """Accent- and case-insensitive lookup, preferring the same direction."""
        wanted = normalize(name)
        matches = [c for c in self.list_categories() if normalize(c.name) == wanted]
        for category in matches:
            if direction is None or category.direction == direction:
                return category
        return matches[0] if matches else None

    def add_category(self, category: Category) -> Category:
        category.id = self.categories.insert(self._dump(category))
        return category

    # ── Ledger entries ──────────────────────────────────────────────

    def add_entry(self, entry: LedgerEntry) -> LedgerEntry:
        entry.id = self.entries.insert(self._dump(entry))
        return entry

    def list_entries(
        self,
        account_id: int,
        start: date | None = None,
        end: date | None = None,
        direction: Direction | None = None,
    ) -> list[LedgerEntry]:
        docs = self.entries.search(Query().account_id == account_id)
        entries = [LedgerEntry(id=doc.doc_id, **doc) for doc in docs]
        if start is not None:
            entries = [e for e in entries if e.occurred_on >= start]
        if end is not None:
            entries = [e for e in entries if e.occurred_on <= end]
        if direction is not None:
            entries = [e for e in entries if e.direction == direction]
        return sorted(entries, key=lambda e: (e.occurred_on, e.created_at))

    def get_entry(self, id: int) -> LedgerEntry | None:
        doc = self.entries.get(doc_id=id)
        if doc is None:
            return None
        return LedgerEntry(id=doc.doc_id, **doc)

    def save_entry(self, entry: LedgerEntry) -> LedgerEntry:
        self.entries.update(self._dump(entry), doc_ids=[entry.id])
        return entry

    def delete_entry(self, id: int) -> bool:
        if not self.entries.contains(doc_id=id):
            return False
        self.entries.remove(doc_ids=[id])
        return True

    def count_entries(self, account_id: int) -> int:
        return self.entries.count(Query().account_id == account_id)

    # ── Tasks ───────────────────────────────────────────────────────

    def add_task(self, task: Task) -> Task:
        task.id = self.tasks.insert(self._dump(task))
        return task

    def get_task(self, id: int) -> Task | None:
        doc = self.tasks.get(doc_id=id)
        if doc is None:
            return None
        return Task(id=doc.doc_id, **doc)

    def save_task(self, task: Task) -> Task:
        self.tasks.update(self._dump(task), doc_ids=[task.id])
        return task

    def delete_task(self, id: int) -> bool:
        if not self.tasks.contains(doc_id=id):
            return False
        self.tasks.remove(doc_ids=[id])
        return True

    def list_tasks(
        self,
        account_id: int,
        start: date | None = None,
        end: date | None = None,
        status: TaskStatus | None = TaskStatus.PENDING,
        limit: int | None = None,
    ) -> list[Task]:
        docs = self.tasks.search(Query().account_id == account_id)
        tasks = [Task(id=doc.doc_id, **doc) for doc in docs]
        if start is not None:
            tasks = [t for t in tasks if t.scheduled_date >= start]
        if end is not None:
            tasks = [t for t in tasks if t.scheduled_date <= end]
        if status is not None:
            tasks = [t for t in tasks if t.status == status]
        tasks.sort(key=lambda t: (t.scheduled_date, t.scheduled_time or "99:99"))
        return tasks[:limit] if limit else tasks

    # ── Interactions ────────────────────────────────────────────────

    def has_interaction(self, message_id: str | None) -> bool:
        if not message_id:
            return False
        return self.interactions.contains(Query().message_id == message_id)

    def record_interaction(self, record: InteractionRecord) -> InteractionRecord:
        if self.has_interaction(record.message_id):
            raise DuplicateInteractionError(record.message_id)
        record.id = self.interactions.insert(self._dump(record))
        return record

    def count_interactions(self, account_id: int) -> int:
        return self.interactions.count(Query().account_id == account_id)

    # ── Access tokens ───────────────────────────────────────────────

    def add_access_token(self, token: AccessToken) -> AccessToken:
        token.id = self.access_tokens.insert(self._dump(token))
        return token

    def get_access_token(self, token: str) -> AccessToken | None:
        doc = self.access_tokens.get(Query().token == token)
        if doc is None:
            return None
        return AccessToken(id=doc.doc_id, **doc)

    def consume_access_token(self, id: int, when: datetime) -> None:
        self.access_tokens.update({"consumed_at": when.isoformat()}, doc_ids=[id])

    # ── Sessions ────────────────────────────────────────────────────

    def add_session(self, session: Session) -> Session:
        session.id = self.sessions.insert(self._dump(session))
        return session

    def get_session(self, token: str) -> Session | None:
        doc = self.sessions.get(Query().token == token)
        if doc is None:
            return None
        return Session(id=doc.doc_id, **doc)
