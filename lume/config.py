from functools import lru_cache
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Interpreter / transcription
    openrouter_api_key: str = ""
    llm_base_url: str = "https://openrouter.ai/api/v1"
    llm_model: str = "openai/gpt-4o-mini"
    openai_api_key: str = ""
    transcription_model: str = "gpt-4o-mini-transcribe"
    max_audio_seconds: float = 10

    # Persistence
    db_path: str = "lume.json"

    # Messaging
    telegram_bot_token: str = ""
    wa_access_token: str = ""
    wa_phone_number_id: str = ""
    wa_verify_token: str = ""
    wa_template_name: str = "hello_world"
    wa_template_lang: str = "pt_BR"
    wa_api_version: str = "v21.0"

    # Entitlements
    timezone: str = "America/Sao_Paulo"
    trial_days: int = 3
    trial_interaction_cap: int = 50
    trial_entry_cap: int = 10
    subscribe_url: str = "https://finia.app/assinar"

    # Enrichments
    chart_url: str = "https://quickchart.io/chart"
    chart_max_categories: int = 8
    dashboard_url: str = "https://finia.app/acesso"
    access_link_minutes: int = 30
    session_days: int = 7

    task_query_limit: int = 50

    # Operator endpoints are disabled while empty
    admin_token: str = ""

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


@lru_cache
def get_settings() -> Settings:
    return Settings()
