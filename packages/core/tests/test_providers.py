"""Tests for AI provider implementations.

Shared behaviour (_parse, the prompts, _call_with_retry, split) lives in
BaseProvider and is tested once through a stub. Provider-specific tests only
cover the SDK client setup and _call_api.
"""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from reviewtask_core.errors import ClassificationAmbiguous
from reviewtask_core.models import NormalizedUnit, ReviewComment
from reviewtask_core.providers.anthropic import AnthropicProvider
from reviewtask_core.providers.base import BaseProvider
from reviewtask_core.providers.openai import OpenAIProvider

VALID_JSON = json.dumps(["Rename foo to bar", "Add a regression test"])
T0 = datetime(2024, 5, 1, tzinfo=timezone.utc)


def _comment(cid, body, author="alice", minute=0, parent=None):
    return ReviewComment(
        id=cid,
        author=author,
        body=body,
        thread_id="t1",
        created_at=T0 + timedelta(minutes=minute),
        parent_id=parent,
        path="src/foo.py",
        line=7,
    )


def _unit(body="Rename foo to bar and add a regression test", replies=()):
    root = _comment("c1", body)
    return NormalizedUnit(
        thread_id="t1",
        root=root,
        replies=tuple(replies),
        source_comment_ids=frozenset({"c1", *(r.id for r in replies)}),
        anchor_ids=frozenset({"c1"}),
    )


class _StubProvider(BaseProvider):
    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        return VALID_JSON


# ---------------------------------------------------------------------------
# Shared behaviour — tested once through the stub, not per provider
# ---------------------------------------------------------------------------


class TestBaseProviderParse:
    def test_parses_valid_json(self):
        assert _StubProvider()._parse(VALID_JSON) == ["Rename foo to bar", "Add a regression test"]

    def test_strips_markdown_code_fences(self):
        assert len(_StubProvider()._parse(f"```json\n{VALID_JSON}\n```")) == 2

    def test_blank_items_dropped(self):
        assert _StubProvider()._parse('["  ", "Fix it "]') == ["Fix it"]

    def test_empty_list_means_nothing_to_do(self):
        assert _StubProvider()._parse("[]") == []

    def test_invalid_json_is_ambiguous(self):
        with pytest.raises(ClassificationAmbiguous):
            _StubProvider()._parse("not json at all")

    def test_wrong_shape_is_ambiguous(self):
        with pytest.raises(ClassificationAmbiguous):
            _StubProvider()._parse('[{"item": "x"}]')


class TestBaseProviderPrompts:
    def test_user_prompt_contains_comment_and_location(self):
        prompt = _StubProvider()._build_user_prompt(_unit())
        assert "Rename foo to bar" in prompt
        assert "`src/foo.py` line 7" in prompt
        assert "alice" in prompt

    def test_user_prompt_includes_replies(self):
        reply = _comment("c2", "Also the docstring", author="bob", minute=1, parent="c1")
        prompt = _StubProvider()._build_user_prompt(_unit(replies=[reply]))
        assert "**bob**: Also the docstring" in prompt

    def test_user_prompt_without_replies(self):
        assert "(none)" in _StubProvider()._build_user_prompt(_unit())

    def test_system_prompt_asks_for_concrete_changes(self):
        assert "concrete changes" in _StubProvider()._build_system_prompt()


class TestBaseProviderRetry:
    def test_split_returns_items(self):
        assert _StubProvider().split(_unit()) == ["Rename foo to bar", "Add a regression test"]

    def test_ambiguous_after_max_retries(self):
        class _AlwaysFail(BaseProvider):
            def _call_api(self, system_prompt: str, user_prompt: str) -> str:
                raise RuntimeError("network error")

        with patch("reviewtask_core.providers.base.time.sleep"):
            with pytest.raises(ClassificationAmbiguous):
                _AlwaysFail().split(_unit())

    def test_retries_on_transient_failure(self):
        call_count = 0

        class _FailOnceThenSucceed(BaseProvider):
            def _call_api(self, system_prompt: str, user_prompt: str) -> str:
                nonlocal call_count
                call_count += 1
                if call_count == 1:
                    raise RuntimeError("transient")
                return VALID_JSON

        with patch("reviewtask_core.providers.base.time.sleep"):
            result = _FailOnceThenSucceed().split(_unit())
        assert len(result) == 2
        assert call_count == 2


# ---------------------------------------------------------------------------
# Provider-specific — only what differs between Anthropic and OpenAI
# ---------------------------------------------------------------------------


class TestAnthropicProvider:
    def test_raises_import_error_without_sdk(self):
        with patch.dict("sys.modules", {"anthropic": None}):
            with pytest.raises(ImportError, match="reviewtask\\[anthropic\\]"):
                AnthropicProvider(api_key="key")

    def test_model_is_claude(self):
        assert "claude" in AnthropicProvider.MODEL

    def test_temperature_is_flat(self):
        assert AnthropicProvider.TEMPERATURE == 0.0


class TestOpenAIProvider:
    def test_raises_import_error_without_sdk(self):
        import reviewtask_core.providers.openai as openai_mod

        with patch.object(openai_mod, "_OpenAI", None):
            with pytest.raises(ImportError, match="reviewtask\\[openai\\]"):
                OpenAIProvider(api_key="key")

    def test_call_api_uses_chat_completions(self):
        import reviewtask_core.providers.openai as openai_mod

        fake_client = MagicMock()
        fake_client.chat.completions.create.return_value.choices = [MagicMock(message=MagicMock(content=VALID_JSON))]
        with patch.object(openai_mod, "_OpenAI", MagicMock(return_value=fake_client)):
            provider = OpenAIProvider(api_key="key")

        assert provider.split(_unit()) == ["Rename foo to bar", "Add a regression test"]
        kwargs = fake_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == OpenAIProvider.MODEL
        assert kwargs["temperature"] == 0.0

    def test_model_is_gpt(self):
        assert "gpt" in OpenAIProvider.MODEL
