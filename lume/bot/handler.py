from datetime import timedelta

from loguru import logger
from telegram import Update
from telegram.error import TelegramError
from telegram.ext import Application, CommandHandler, ContextTypes, MessageHandler, filters

from lume.core.composer import HELP_TEXT
from lume.deps import Services
from lume.models.schemas import AudioClip, Fallback, FallbackKind, InboundMessage, Plan
from lume.services.gateway import TELEGRAM_PREFIX, TelegramGateway


def _services(context: ContextTypes.DEFAULT_TYPE) -> Services:
    return context.application.bot_data["services"]


def telegram_contact(update: Update) -> str:
    return f"{TELEGRAM_PREFIX}{update.effective_chat.id}"


def telegram_message_id(update: Update) -> str:
    return f"{TELEGRAM_PREFIX}{update.effective_chat.id}:{update.message.message_id}"


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /start: open the trial and greet."""
    services = _services(context)
    now = services.now()
    account, _ = services.entitlement.ensure_account(telegram_contact(update), now)
    account = services.entitlement.refresh(account, now)

    if account.plan == Plan.TRIAL:
        payload = Fallback(reason=FallbackKind.WELCOME, trial_expires_at=account.trial_expires_at)
    else:
        payload = Fallback(reason=FallbackKind.HELP)
    reply = await services.pipeline.composer.compose(payload, account, now)
    await TelegramGateway(context.bot).send_text(telegram_contact(update), reply.text)


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /help command."""
    await TelegramGateway(context.bot).send_text(telegram_contact(update), HELP_TEXT)


async def handle_message(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle incoming text messages."""
    user_text = update.message.text.strip()
    logger.info("Telegram message: {}", user_text)

    await update.message.chat.send_action("typing")
    message = InboundMessage(
        contact=telegram_contact(update),
        message_id=telegram_message_id(update),
        text=user_text,
    )
    await _services(context).pipeline.deliver(message, TelegramGateway(context.bot))


async def handle_voice(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle voice notes: download and hand the audio to the pipeline."""
    voice = update.message.voice
    duration = voice.duration
    if isinstance(duration, timedelta):
        duration = duration.total_seconds()
    logger.info("Telegram voice note of {}s", duration)

    try:
        file = await voice.get_file()
        content = bytes(await file.download_as_bytearray())
    except TelegramError as e:
        logger.error("Could not download voice note: {}", e)
        await update.message.reply_text("⚠️ Não consegui baixar seu áudio. Pode enviar por texto?")
        return

    await update.message.chat.send_action("typing")
    message = InboundMessage(
        contact=telegram_contact(update),
        message_id=telegram_message_id(update),
        audio=AudioClip(content=content, filename="voice.ogg", duration=duration),
    )
    await _services(context).pipeline.deliver(message, TelegramGateway(context.bot))


def build_bot_app(services: Services) -> Application:
    """Build and return the Telegram bot application."""
    app = Application.builder().token(services.settings.telegram_bot_token).build()
    app.bot_data["services"] = services

    app.add_handler(CommandHandler("start", start_command))
    app.add_handler(CommandHandler("help", help_command))

    app.add_handler(MessageHandler(filters.VOICE, handle_voice))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_message))

    return app
