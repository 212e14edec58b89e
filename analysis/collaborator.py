"""
Vision collaborator client.

Calls an OpenAI-compatible chat completions endpoint with an outfit image
and returns validated, typed results. The SDK is synchronous, so calls run
in a worker thread.
"""

import asyncio
import time
from typing import Any, Optional

import openai
from loguru import logger
from openai import OpenAI

from shared.errors import CollaboratorError, InvalidShapeError
from shared.schemas import BasicScores, CollaboratorConfig, OutfitDetails, StyleSuggestions

from . import prompts
from .parsing import build_outfit_details, extract_json, parse_suggestions, validate_basic_scores


def to_data_url(image_data: str) -> str:
    """Return the payload as a data URL, assuming JPEG for bare base64."""
    image_data = image_data.strip()
    if image_data.startswith("data:"):
        return image_data
    return f"data:image/jpeg;base64,{image_data}"


class VisionCollaborator:
    """Client for the external vision model."""

    def __init__(self, config: CollaboratorConfig, client: Optional[OpenAI] = None):
        self.config = config
        self._client = client

    @property
    def configured(self) -> bool:
        return self._client is not None or bool(self.config.api_key)

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            if not self.config.api_key:
                raise CollaboratorError("Vision API key is not configured")
            self._client = OpenAI(
                api_key=self.config.api_key,
                base_url=self.config.base_url,
                max_retries=0,
            )
            logger.info(
                "Vision client initialized",
                base_url=self.config.base_url,
                model=self.config.model,
            )
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    async def _complete(
        self,
        prompt: prompts.PromptTemplate,
        image_data: str,
        timeout: float,
        operation: str,
        **prompt_args: Any,
    ) -> str:
        """Send one image plus prompt and return the reply text."""
        messages = [
            {"role": "system", "content": prompt.system},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt.render(**prompt_args)},
                    {"type": "image_url", "image_url": {"url": to_data_url(image_data)}},
                ],
            },
        ]

        start_time = time.time()
        try:
            response = await asyncio.to_thread(
                self.client.chat.completions.create,
                model=self.config.model,
                messages=messages,
                temperature=prompt.temperature,
                stream=False,
                timeout=timeout,
            )
        except openai.APITimeoutError as e:
            logger.error("Vision API request timed out", operation=operation, timeout=timeout)
            raise CollaboratorError(f"Vision API request timed out after {timeout:g}s") from e
        except openai.APIStatusError as e:
            logger.error(
                "Vision API returned an error status",
                operation=operation,
                status_code=e.status_code,
                body=str(e.body),
            )
            raise CollaboratorError(f"Vision API request failed with status {e.status_code}") from e
        except openai.APIConnectionError as e:
            logger.error("Vision API connection failed", operation=operation, error=str(e))
            raise CollaboratorError("Could not reach the vision API") from e
        except openai.OpenAIError as e:
            logger.error("Vision API call failed", operation=operation, error=str(e))
            raise CollaboratorError("Vision API call failed") from e

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError) as e:
            raise InvalidShapeError("Vision API response has no message content") from e

        logger.info(
            "Vision API call completed",
            operation=operation,
            processing_time_ms=int((time.time() - start_time) * 1000),
            response_chars=len(content or ""),
        )
        return content or ""

    async def basic_scores(self, image_data: str) -> BasicScores:
        content = await self._complete(
            prompts.BASIC_SCORES, image_data, self.config.timeout_seconds, "basic_scores"
        )
        return validate_basic_scores(extract_json(content))

    async def itemized_analysis(self, image_data: str, basic: BasicScores) -> OutfitDetails:
        """Run the itemized call and merge it with already-fetched basic scores."""
        content = await self._complete(
            prompts.ITEMIZED_ANALYSIS,
            image_data,
            self.config.detailed_timeout_seconds,
            "itemized_analysis",
        )
        return build_outfit_details(basic, extract_json(content))

    async def style_suggestions(self, image_data: str, occasion: str) -> StyleSuggestions:
        content = await self._complete(
            prompts.STYLE_SUGGESTIONS,
            image_data,
            self.config.timeout_seconds,
            "style_suggestions",
            occasion=occasion,
        )
        return parse_suggestions(content)
