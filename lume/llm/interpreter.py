import json
from datetime import date

from loguru import logger
from openai import AsyncOpenAI
from pydantic import ValidationError

from lume.llm.prompts import SYSTEM_PROMPT
from lume.models.schemas import StructuredGuess


def strip_code_fences(raw: str) -> str:
    raw = raw.strip()
    if raw.startswith("```"):
        lines = [l for l in raw.split("\n") if not l.startswith("```")]
        raw = "\n".join(lines)
    return raw.strip()


class CommandInterpreter:
    def __init__(self, api_key: str, model: str, base_url: str = "https://openrouter.ai/api/v1"):
        self.client = AsyncOpenAI(base_url=base_url, api_key=api_key)
        self.model = model

    async def interpret(self, text: str, today: date | None = None) -> StructuredGuess | None:
        """Ask the model for a structured reading of ``text``; None on any failure."""
        messages = [{"role": "system", "content": SYSTEM_PROMPT}]
        if today is not None:
            messages.append({"role": "system", "content": f"Hoje é {today.isoformat()}."})
        messages.append({"role": "user", "content": text})

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=0.2,
            )

            raw = (response.choices[0].message.content or "").strip()
            logger.debug("LLM raw response: {}", raw)
            if not raw:
                return None

            parsed = json.loads(strip_code_fences(raw))
            if not isinstance(parsed, dict):
                logger.error("LLM returned a non-object JSON: {}", raw)
                return None
            return StructuredGuess.model_validate(parsed)

        except json.JSONDecodeError as e:
            logger.error("Failed to parse LLM response as JSON: {}", e)
        except ValidationError as e:
            logger.error("LLM response did not match the guess schema: {}", e)
        except Exception as e:
            logger.error("LLM request failed: {}", e)
        return None
