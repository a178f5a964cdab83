import re
from typing import Protocol

import httpx
from loguru import logger
from telegram import Bot
from telegram.error import BadRequest, TelegramError

TELEGRAM_PREFIX = "tg:"


class GatewayError(Exception):
    pass


class MessagingGateway(Protocol):
    async def send_text(self, to: str, text: str) -> None: ...

    async def send_image(self, to: str, image: bytes, caption: str = "") -> None: ...


def normalize_whatsapp_number(raw: str) -> str:
    """``+<digits>``; Brazilian mobiles missing the ninth digit get it back."""
    number = "+" + re.sub(r"\D", "", raw or "")
    match = re.fullmatch(r"\+55(\d{2})(\d{8})", number)
    if match:
        ddd, rest = match.groups()
        number = f"+55{ddd}9{rest}"
    return number


class WhatsAppGateway:
    """WhatsApp Cloud API client."""

    def __init__(
        self,
        access_token: str,
        phone_number_id: str,
        api_version: str = "v21.0",
        template_name: str = "hello_world",
        template_lang: str = "pt_BR",
        timeout: float = 15.0,
    ):
        self.base_url = f"https://graph.facebook.com/{api_version}"
        self.phone_number_id = phone_number_id
        self.template_name = template_name
        self.template_lang = template_lang
        self.headers = {"Authorization": f"Bearer {access_token}"}
        self.timeout = timeout

    async def _post(self, path: str, **kwargs) -> dict:
        async with httpx.AsyncClient(timeout=self.timeout, headers=self.headers) as client:
            response = await client.post(f"{self.base_url}/{path}", **kwargs)
            response.raise_for_status()
            return response.json()

    async def send_text(self, to: str, text: str) -> None:
        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "text",
            "text": {"body": text},
        }
        try:
            await self._post(f"{self.phone_number_id}/messages", json=payload)
            logger.info("WhatsApp text sent to {}", to)
            return
        except httpx.HTTPError as e:
            logger.error("WhatsApp text to {} failed: {}", to, e)

        # Outside the 24h session window only templates are accepted.
        fallback = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "template",
            "template": {
                "name": self.template_name,
                "language": {"code": self.template_lang},
            },
        }
        try:
            await self._post(f"{self.phone_number_id}/messages", json=fallback)
            logger.info("WhatsApp template fallback sent to {}", to)
        except httpx.HTTPError as e:
            raise GatewayError(f"WhatsApp delivery to {to} failed") from e

    async def send_image(self, to: str, image: bytes, caption: str = "") -> None:
        try:
            uploaded = await self._post(
                f"{self.phone_number_id}/media",
                data={"messaging_product": "whatsapp", "type": "image/png"},
                files={"file": ("chart.png", image, "image/png")},
            )
            media_id = uploaded.get("id")
            if not media_id:
                raise GatewayError("WhatsApp media upload returned no id")
            await self._post(
                f"{self.phone_number_id}/messages",
                json={
                    "messaging_product": "whatsapp",
                    "to": to,
                    "type": "image",
                    "image": {"id": media_id, "caption": caption},
                },
            )
        except httpx.HTTPError as e:
            raise GatewayError(f"WhatsApp image to {to} failed") from e
        logger.info("WhatsApp image sent to {}", to)

    async def download_media(self, media_id: str) -> bytes:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, headers=self.headers) as client:
                meta = await client.get(f"{self.base_url}/{media_id}")
                meta.raise_for_status()
                media = await client.get(meta.json()["url"])
                media.raise_for_status()
        except (httpx.HTTPError, KeyError) as e:
            raise GatewayError(f"Could not download media {media_id}") from e
        return media.content


def telegram_chat_id(contact: str) -> str:
    return contact.removeprefix(TELEGRAM_PREFIX)


class TelegramGateway:
    def __init__(self, bot: Bot):
        self.bot = bot

    async def send_text(self, to: str, text: str) -> None:
        chat_id = telegram_chat_id(to)
        try:
            try:
                await self.bot.send_message(chat_id=chat_id, text=text, parse_mode="Markdown")
            except BadRequest:
                # User supplied text can break Markdown entities.
                await self.bot.send_message(chat_id=chat_id, text=text)
        except TelegramError as e:
            raise GatewayError(f"Telegram delivery to {chat_id} failed") from e

    async def send_image(self, to: str, image: bytes, caption: str = "") -> None:
        try:
            await self.bot.send_photo(chat_id=telegram_chat_id(to), photo=image, caption=caption)
        except TelegramError as e:
            raise GatewayError(f"Telegram image to {to} failed") from e
