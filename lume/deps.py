from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from fastapi import Request

from lume.config import Settings
from lume.core.composer import ResponseComposer
from lume.core.dispatcher import Dispatcher
from lume.core.entitlement import EntitlementService
from lume.core.pipeline import MessagePipeline
from lume.db.repository import Repository
from lume.llm.interpreter import CommandInterpreter
from lume.services.access import AccessLinkIssuer
from lume.services.charts import ChartRenderer
from lume.services.gateway import WhatsAppGateway
from lume.services.transcription import Transcriber


@dataclass
class Services:
    settings: Settings
    repo: Repository
    entitlement: EntitlementService
    dispatcher: Dispatcher
    links: AccessLinkIssuer
    pipeline: MessagePipeline
    whatsapp: WhatsAppGateway | None = None

    def now(self) -> datetime:
        return self.pipeline.clock()


def build_services(
    settings: Settings,
    *,
    interpreter: CommandInterpreter | None = None,
    charts: ChartRenderer | None = None,
    transcriber: Transcriber | None = None,
    whatsapp: WhatsAppGateway | None = None,
    clock: Callable[[], datetime] | None = None,
) -> Services:
    """Wire every collaborator from ``settings``; keyword overrides win."""
    repo = Repository(settings.db_path)
    repo.seed_categories()

    if interpreter is None:
        interpreter = CommandInterpreter(
            api_key=settings.openrouter_api_key,
            model=settings.llm_model,
            base_url=settings.llm_base_url,
        )
    if charts is None:
        charts = ChartRenderer(settings.chart_url, settings.chart_max_categories)
    if transcriber is None and settings.openai_api_key:
        transcriber = Transcriber(
            api_key=settings.openai_api_key,
            model=settings.transcription_model,
            max_seconds=settings.max_audio_seconds,
        )
    if whatsapp is None and settings.wa_access_token and settings.wa_phone_number_id:
        whatsapp = WhatsAppGateway(
            access_token=settings.wa_access_token,
            phone_number_id=settings.wa_phone_number_id,
            api_version=settings.wa_api_version,
            template_name=settings.wa_template_name,
            template_lang=settings.wa_template_lang,
        )

    links = AccessLinkIssuer(
        repo, settings.dashboard_url, settings.access_link_minutes, settings.session_days
    )
    entitlement = EntitlementService(repo, settings)
    dispatcher = Dispatcher(repo, settings)
    pipeline = MessagePipeline(
        settings=settings,
        repo=repo,
        interpreter=interpreter,
        entitlement=entitlement,
        dispatcher=dispatcher,
        composer=ResponseComposer(settings, charts=charts, links=links),
        transcriber=transcriber,
        clock=clock,
    )
    return Services(
        settings=settings,
        repo=repo,
        entitlement=entitlement,
        dispatcher=dispatcher,
        links=links,
        pipeline=pipeline,
        whatsapp=whatsapp,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
