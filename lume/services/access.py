import secrets
from datetime import datetime, timedelta

from loguru import logger

from lume.db.repository import Repository
from lume.models.schemas import AccessToken, Account, Session


class AccessLinkIssuer:
    """Single-use, time-boxed dashboard links scoped to one account.

    Opening a link starts a longer-lived session whose bearer token
    authenticates the records API.
    """

    def __init__(
        self, repo: Repository, base_url: str, minutes: int = 30, session_days: int = 7
    ):
        self.repo = repo
        self.base_url = base_url.rstrip("/")
        self.minutes = minutes
        self.session_days = session_days

    def issue(self, account_id: int, now: datetime) -> str:
        token = self.repo.add_access_token(
            AccessToken(
                token=secrets.token_urlsafe(24),
                account_id=account_id,
                expires_at=now + timedelta(minutes=self.minutes),
            )
        )
        logger.info("Issued access link for account #{}", account_id)
        return f"{self.base_url}/{token.token}"

    def consume(self, token: str, now: datetime) -> Account | None:
        """Return the token's account and burn the token; None if unusable."""
        record = self.repo.get_access_token(token)
        if record is None:
            return None
        if record.consumed_at is not None or now >= record.expires_at:
            logger.info("Rejected access token for account #{}", record.account_id)
            return None
        self.repo.consume_access_token(record.id, now)
        return self.repo.get_account(record.account_id)

    def open_session(self, account_id: int, now: datetime) -> str:
        session = self.repo.add_session(
            Session(
                token=secrets.token_urlsafe(32),
                account_id=account_id,
                expires_at=now + timedelta(days=self.session_days),
                created_at=now,
            )
        )
        logger.info("Opened session for account #{}", account_id)
        return session.token

    def authenticate(self, token: str, now: datetime) -> Account | None:
        session = self.repo.get_session(token)
        if session is None or now >= session.expires_at:
            return None
        return self.repo.get_account(session.account_id)
