from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

from lume.config import Settings
from lume.db.repository import Repository
from lume.models.schemas import StructuredGuess
from lume.services.charts import ChartError

TZ = ZoneInfo("America/Sao_Paulo")

# A Monday
NOW = datetime(2026, 10, 19, 10, 0, tzinfo=TZ)


class FakeInterpreter:
    """Returns canned guesses keyed by message text."""

    def __init__(self, guesses: dict[str, dict] | None = None):
        self.guesses = guesses or {}
        self.calls: list[str] = []

    async def interpret(self, text: str, today: date | None = None) -> StructuredGuess | None:
        self.calls.append(text)
        if text not in self.guesses:
            return None
        return StructuredGuess.model_validate(self.guesses[text])


class FakeGateway:
    def __init__(self, media: bytes = b"audio"):
        self.sent: list[tuple[str, str]] = []
        self.images: list[tuple[str, bytes, str]] = []
        self.media = media

    async def send_text(self, to: str, text: str) -> None:
        self.sent.append((to, text))

    async def send_image(self, to: str, image: bytes, caption: str = "") -> None:
        self.images.append((to, image, caption))

    async def download_media(self, media_id: str) -> bytes:
        return self.media


class FakeCharts:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.requests = []

    async def render(self, request) -> bytes:
        self.requests.append(request)
        if self.fail:
            raise ChartError("quickchart is down")
        return b"\x89PNG"


GUESSES = {
    "Gastei 50 reais com gasolina": {
        "domain": "ledger",
        "action": "insert",
        "description": "Gasolina",
        "amount": 50,
        "direction": "OUT",
        "category": "Transporte",
    },
    "Quanto gastei ontem?": {
        "domain": "ledger",
        "action": "query",
        "description": "Gastos de ontem",
        "direction": "OUT",
        "period": "yesterday",
    },
    "Quanto gastei hoje?": {
        "domain": "ledger",
        "action": "query",
        "direction": "OUT",
        "period": "today",
    },
    "Quanto gastei este mês?": {
        "domain": "ledger",
        "action": "query",
        "direction": "OUT",
        "period": "month",
    },
    "Lavar o carro amanhã às 13h": {
        "domain": "task",
        "action": "insert",
        "description": "Lavar o carro",
        "time": "13:00",
    },
    "Oi": {"domain": None, "action": None},
}


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        db_path=str(tmp_path / "lume.json"),
        openrouter_api_key="test",
        openai_api_key="",
        telegram_bot_token="",
        wa_access_token="",
        wa_phone_number_id="",
        wa_verify_token="verify-me",
        admin_token="",
    )


@pytest.fixture
def repo(settings) -> Repository:
    repo = Repository(settings.db_path)
    repo.seed_categories()
    yield repo
    repo.close()


@pytest.fixture
def now() -> datetime:
    return NOW
