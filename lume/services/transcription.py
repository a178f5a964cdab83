from loguru import logger
from openai import AsyncOpenAI, OpenAIError

from lume.models.schemas import AudioClip


class TranscriptionError(Exception):
    pass


class AudioTooLongError(TranscriptionError):
    def __init__(self, duration: float, limit: float):
        super().__init__(f"Audio of {duration:.1f}s exceeds the {limit:.0f}s limit")
        self.duration = duration
        self.limit = limit


class Transcriber:
    def __init__(self, api_key: str, model: str, max_seconds: float = 10, language: str = "pt"):
        self.client = AsyncOpenAI(api_key=api_key)
        self.model = model
        self.max_seconds = max_seconds
        self.language = language

    async def transcribe(self, clip: AudioClip) -> str:
        if clip.duration is not None and clip.duration > self.max_seconds:
            raise AudioTooLongError(clip.duration, self.max_seconds)

        try:
            result = await self.client.audio.transcriptions.create(
                model=self.model,
                file=(clip.filename, clip.content),
                language=self.language,
            )
        except OpenAIError as e:
            raise TranscriptionError(str(e)) from e

        text = (result.text or "").strip()
        logger.info("Transcription: {}", text)
        return text
