"""Tests for common.llm module."""

from unittest.mock import MagicMock

import httpx
import openai
import pytest

from common.llm import EngineUnavailable, JsonModel, ModelOutputError

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _client(content=None, side_effect=None) -> MagicMock:
    client = MagicMock()
    if side_effect is not None:
        client.chat.completions.create.side_effect = side_effect
    else:
        response = MagicMock()
        response.choices = [MagicMock()]
        response.choices[0].message.content = content
        client.chat.completions.create.return_value = response
    return client


def _status_error(cls, status: int):
    return cls("error", response=httpx.Response(status, request=REQUEST), body=None)


class TestJsonModel:
    def test_returns_decoded_object(self) -> None:
        client = _client('{"articles": []}')
        model = JsonModel("gpt-4o-mini", client=client)

        assert model.complete("Do it", {"items": []}) == {"articles": []}

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["messages"][0] == {"role": "system", "content": "Do it"}
        assert kwargs["messages"][1]["content"] == '{"items": []}'

    @pytest.mark.parametrize("content", [None, "", "not json", "[1, 2]"])
    def test_unusable_reply_is_output_error(self, content) -> None:
        model = JsonModel(client=_client(content))
        with pytest.raises(ModelOutputError):
            model.complete("x", {})

    def test_connection_error_is_engine_unavailable(self) -> None:
        model = JsonModel(client=_client(side_effect=openai.APIConnectionError(request=REQUEST)))
        with pytest.raises(EngineUnavailable):
            model.complete("x", {})

    @pytest.mark.parametrize(
        "cls,status",
        [
            (openai.AuthenticationError, 401),
            (openai.RateLimitError, 429),
            (openai.InternalServerError, 500),
        ],
    )
    def test_outage_statuses_are_engine_unavailable(self, cls, status) -> None:
        model = JsonModel(client=_client(side_effect=_status_error(cls, status)))
        with pytest.raises(EngineUnavailable):
            model.complete("x", {})

    def test_bad_request_is_output_error(self) -> None:
        model = JsonModel(client=_client(side_effect=_status_error(openai.BadRequestError, 400)))
        with pytest.raises(ModelOutputError):
            model.complete("x", {})

    def test_missing_api_key_is_engine_unavailable(self, monkeypatch) -> None:
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(EngineUnavailable):
            JsonModel().complete("x", {})
