from collections.abc import Callable
from datetime import datetime

from loguru import logger

from lume.config import Settings
from lume.core.classifier import build_intent, fallback_reply_kind, is_greeting
from lume.core.composer import AUDIO_FAILED_TEXT, AUDIO_TOO_LONG_TEXT, ResponseComposer
from lume.core.dispatcher import Dispatcher
from lume.core.entitlement import EntitlementService, is_authorized
from lume.core.temporal import resolve_for_intent
from lume.db.repository import DuplicateInteractionError, Repository
from lume.llm.interpreter import CommandInterpreter
from lume.models.schemas import (
    Account,
    Denied,
    DenialReason,
    Fallback,
    FallbackKind,
    InboundMessage,
    InteractionRecord,
    OutboundReply,
    ReplyPayload,
    StructuredGuess,
)
from lume.services.gateway import GatewayError, MessagingGateway
from lume.services.transcription import AudioTooLongError, Transcriber, TranscriptionError


class MessagePipeline:
    """Takes one inbound message from raw text (or audio) to a reply."""

    def __init__(
        self,
        settings: Settings,
        repo: Repository,
        interpreter: CommandInterpreter,
        entitlement: EntitlementService,
        dispatcher: Dispatcher,
        composer: ResponseComposer,
        transcriber: Transcriber | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.settings = settings
        self.repo = repo
        self.interpreter = interpreter
        self.entitlement = entitlement
        self.dispatcher = dispatcher
        self.composer = composer
        self.transcriber = transcriber
        self.clock = clock or (lambda: datetime.now(settings.tz))

    async def handle(self, message: InboundMessage) -> OutboundReply | None:
        reply, _ = await self.process(message)
        return reply

    async def process(
        self, message: InboundMessage
    ) -> tuple[OutboundReply | None, StructuredGuess | None]:
        now = self.clock()

        if self.repo.has_interaction(message.message_id):
            logger.info("Ignoring duplicate delivery of {}", message.message_id)
            return None, None

        text = message.text.strip()
        if message.audio is not None:
            try:
                text = await self._transcribe(message)
            except AudioTooLongError as e:
                logger.warning("{} sent {:.1f}s of audio", message.contact, e.duration)
                return OutboundReply(text=AUDIO_TOO_LONG_TEXT.format(limit=e.limit)), None
            except TranscriptionError as e:
                logger.error("Transcription failed for {}: {}", message.contact, e)
                return OutboundReply(text=AUDIO_FAILED_TEXT), None
        if not text:
            return None, None

        account, created = self.entitlement.ensure_account(message.contact, now)
        account = self.entitlement.refresh(account, now)

        guess = await self.interpreter.interpret(text, today=now.date())
        intent = build_intent(guess, text, message.message_id)

        if intent is None:
            payload = self._fallback(text, account, created, now)
            # Interpreter failures are not counted against the trial.
            if guess is not None:
                self._record(message, account, text, payload.kind, now)
            return await self.composer.compose(payload, account, now), guess

        resolved = resolve_for_intent(intent, now)
        decision = self.entitlement.authorize(account, intent, now)
        if not decision.allowed:
            logger.info("Denied {} for {}", decision.reason.value, account.contact)
            payload = Denied(reason=decision.reason, cap=decision.cap)
            self._record(message, account, text, payload.kind, now)
            return await self.composer.compose(payload, account, now), guess

        payload = self.dispatcher.dispatch(intent, resolved, account, now)
        return await self.composer.compose(payload, account, now), guess

    async def _transcribe(self, message: InboundMessage) -> str:
        if self.transcriber is None:
            raise TranscriptionError("No transcriber configured")
        return await self.transcriber.transcribe(message.audio)

    def _fallback(
        self, text: str, account: Account, created: bool, now: datetime
    ) -> ReplyPayload:
        if created and is_greeting(text):
            return Fallback(reason=FallbackKind.WELCOME, trial_expires_at=account.trial_expires_at)
        if not is_authorized(account, now):
            return Denied(reason=DenialReason.EXPIRED)
        return Fallback(reason=fallback_reply_kind(text))

    def _record(
        self, message: InboundMessage, account: Account, text: str, kind: str, now: datetime
    ) -> None:
        try:
            self.repo.record_interaction(
                InteractionRecord(
                    message_id=message.message_id,
                    account_id=account.id,
                    input_text=text,
                    kind=kind,
                    created_at=now,
                )
            )
        except DuplicateInteractionError:
            logger.warning("Message {} was recorded concurrently", message.message_id)

    async def deliver(self, message: InboundMessage, gateway: MessagingGateway) -> None:
        """Handle ``message`` and send the reply back through ``gateway``."""
        reply = await self.handle(message)
        if reply is None:
            return
        try:
            await gateway.send_text(message.contact, reply.text)
            if reply.image:
                await gateway.send_image(message.contact, reply.image, reply.image_caption or "")
        except GatewayError as e:
            logger.error("Could not deliver reply to {}: {}", message.contact, e)
