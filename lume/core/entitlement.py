"""Plan status transitions and trial quotas.

Authorization is expiry based: testers always pass, TRIAL and PREMIUM pass
while their own expiry is in the future. Expired plans are moved to BLOCKED
and their expiry is cleared the first time they are checked. On top of
that, TRIAL accounts are capped by lifetime interaction and ledger entry
counts. Counts are read and written without a lock, so the caps are
advisory.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from loguru import logger

from lume.config import Settings
from lume.db.repository import Repository
from lume.models.schemas import Account, DenialReason, Intent, Plan


@dataclass(frozen=True)
class EntitlementDecision:
    allowed: bool
    reason: DenialReason | None = None
    cap: int | None = None

    @classmethod
    def allow(cls) -> "EntitlementDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DenialReason, cap: int | None = None) -> "EntitlementDecision":
        return cls(allowed=False, reason=reason, cap=cap)


def _in_future(moment: datetime | None, now: datetime) -> bool:
    return moment is not None and now < moment


def is_tester(account: Account) -> bool:
    return account.tester or account.plan == Plan.TESTER


def is_authorized(account: Account, now: datetime) -> bool:
    if is_tester(account):
        return True
    if account.plan == Plan.TRIAL:
        return _in_future(account.trial_expires_at, now)
    if account.plan == Plan.PREMIUM:
        return _in_future(account.premium_expires_at, now)
    return False


def active_expiry(account: Account) -> datetime | None:
    if account.plan == Plan.TRIAL:
        return account.trial_expires_at
    if account.plan == Plan.PREMIUM:
        return account.premium_expires_at
    return None


class EntitlementService:
    def __init__(self, repo: Repository, settings: Settings):
        self.repo = repo
        self.settings = settings

    def ensure_account(self, contact: str, now: datetime) -> tuple[Account, bool]:
        """Fetch the account for ``contact``, opening a trial when unknown."""
        account = self.repo.get_account_by_contact(contact)
        if account is not None:
            return account, False

        account = self.repo.add_account(
            Account(
                contact=contact,
                name=f"Usuário {contact}",
                plan=Plan.TRIAL,
                trial_activated_at=now,
                trial_expires_at=now + timedelta(days=self.settings.trial_days),
                created_at=now,
            )
        )
        logger.info("Opened trial for {} until {}", contact, account.trial_expires_at)
        return account, True

    def refresh(self, account: Account, now: datetime) -> Account:
        """Apply expiry transitions and persist them."""
        if is_tester(account):
            return account

        if account.plan == Plan.PREMIUM and not _in_future(account.premium_expires_at, now):
            account.plan = Plan.BLOCKED
            account.premium_expires_at = None
        elif account.plan == Plan.TRIAL and not _in_future(account.trial_expires_at, now):
            account.plan = Plan.BLOCKED
            account.trial_expires_at = None
        else:
            return account

        logger.info("Account {} expired, now {}", account.contact, account.plan.value)
        return self.repo.save_account(account)

    def authorize(self, account: Account, intent: Intent, now: datetime) -> EntitlementDecision:
        account = self.refresh(account, now)

        if not is_authorized(account, now):
            return EntitlementDecision.deny(DenialReason.EXPIRED)

        if is_tester(account) or account.plan != Plan.TRIAL:
            return EntitlementDecision.allow()

        interaction_cap = self.settings.trial_interaction_cap
        if self.repo.count_interactions(account.id) >= interaction_cap:
            return EntitlementDecision.deny(DenialReason.INTERACTION_QUOTA, interaction_cap)

        entry_cap = self.settings.trial_entry_cap
        if intent.writes_ledger and self.repo.count_entries(account.id) >= entry_cap:
            return EntitlementDecision.deny(DenialReason.ENTRY_QUOTA, entry_cap)

        return EntitlementDecision.allow()

    def grant_premium(self, account: Account, until: datetime) -> Account:
        account.plan = Plan.PREMIUM
        account.premium_expires_at = until
        account.trial_expires_at = None
        logger.info("Account {} is PREMIUM until {}", account.contact, until)
        return self.repo.save_account(account)
