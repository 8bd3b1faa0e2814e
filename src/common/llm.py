"""Thin wrapper over the OpenAI chat API for JSON-mode calls."""

from __future__ import annotations

import json
import logging
import os
from typing import Any

import openai
from openai import OpenAI

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"


class EngineUnavailable(RuntimeError):
    """The model engine could not be reached (network, auth, outage)."""


class ModelOutputError(ValueError):
    """The model answered, but the answer is not usable JSON."""


class JsonModel:
    """A chat model that is always asked for a single JSON object."""

    def __init__(self, model: str = DEFAULT_MODEL, client: Any = None) -> None:
        self.model = model
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            try:
                self._client = OpenAI(api_key=os.environ.get("OPENAI_API_KEY"))
            except openai.OpenAIError as e:
                raise EngineUnavailable(f"Could not create OpenAI client: {e}") from e
        return self._client

    def complete(self, instructions: str, payload: dict[str, Any]) -> dict[str, Any]:
        """
        Send instructions plus a JSON payload and return the decoded JSON reply.

        Raises:
            EngineUnavailable: Connection, timeout, auth, throttling or 5xx failures.
            ModelOutputError: Empty, non-JSON, or non-object replies and 4xx
                request rejections.
        """
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": instructions},
                    {"role": "user", "content": json.dumps(payload, ensure_ascii=False)},
                ],
                response_format={"type": "json_object"},
            )
        except (
            openai.APIConnectionError,
            openai.AuthenticationError,
            openai.PermissionDeniedError,
            openai.RateLimitError,
            openai.InternalServerError,
        ) as e:
            raise EngineUnavailable(f"{type(e).__name__}: {e}") from e
        except openai.APIStatusError as e:
            raise ModelOutputError(f"Request rejected ({e.status_code}): {e}") from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ModelOutputError("Empty model response")

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ModelOutputError(f"Model response is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ModelOutputError(f"Expected a JSON object, got {type(data).__name__}")

        return data
