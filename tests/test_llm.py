"""
Tests for the AI extractor client with a mocked OpenAI client.
"""

import json
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from receipt_extraction.services import llm
from receipt_extraction.services.llm import (
    LLMExtractionError,
    LLMExtractor,
    fallback_fields,
    fields_from_payload,
    get_llm_extractor,
)
from receipt_extraction.utils.json_tools import extract_json_object, strip_code_fences


def _client_returning(content):
    client = MagicMock()
    client.chat.completions.create.return_value = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))]
    )
    return client


class TestJsonExtraction:
    """Cleaning model replies down to one JSON object."""

    def test_fenced_reply(self):
        reply = '```json\n{"amount": 12.5}\n```'
        assert strip_code_fences(reply) == '{"amount": 12.5}'
        assert extract_json_object(reply) == {"amount": 12.5}

    def test_reply_with_prose(self):
        reply = 'Here is the data: {"provider": "Cafe Sol", "note": "a } inside"} Thanks!'
        assert extract_json_object(reply) == {"provider": "Cafe Sol", "note": "a } inside"}

    def test_nested_object(self):
        reply = 'Result {"amount": 5, "confidence": {"amount": 0.9}} done'
        assert extract_json_object(reply) == {"amount": 5, "confidence": {"amount": 0.9}}

    def test_no_object(self):
        assert extract_json_object("no json here") is None
        assert extract_json_object("[1, 2, 3]") is None
        assert extract_json_object("") is None
        assert extract_json_object(None) is None


class TestPayloadCoercion:
    """Turning the model's JSON into ExtractedFields."""

    def test_full_payload(self):
        fields = fields_from_payload({
            "description": "Compra de alimentos",
            "provider": "Supermercado ABC S.A.",
            "amount": "1.234,56",
            "currency": "$",
            "date": "2025-01-15",
            "confidence": {"amount": 0.95, "date": 0.9},
        })

        assert fields.amount == Decimal("1234.56")
        assert fields.date == "2025-01-15"
        assert fields.confidence.amount == pytest.approx(0.95)
        assert fields.confidence.date == pytest.approx(0.9)
        # Missing scores default to 0.8
        assert fields.confidence.provider == pytest.approx(0.8)
        assert fields.confidence.description == pytest.approx(0.8)

    def test_amount_with_symbol(self):
        assert fields_from_payload({"amount": "$ 150.00"}).amount == Decimal("150.00")

    def test_numeric_amount(self):
        assert fields_from_payload({"amount": 150.5}).amount == Decimal("150.5")

    def test_non_positive_amount_dropped(self):
        assert fields_from_payload({"amount": 0}).amount is None
        assert fields_from_payload({"amount": -3}).amount is None
        assert fields_from_payload({"amount": True}).amount is None

    def test_empty_strings_are_absent(self):
        fields = fields_from_payload({"description": "", "provider": "  ", "currency": ""})
        assert fields.description is None
        assert fields.provider is None
        assert fields.currency is None

    def test_absent_fields_score_zero(self):
        fields = fields_from_payload({"amount": None, "confidence": {"amount": 0.9}})
        assert fields.confidence.amount == 0.0

    def test_non_iso_date_dropped(self):
        assert fields_from_payload({"date": "15/01/2025"}).date is None
        assert fields_from_payload({"date": "2025-02-30"}).date is None

    def test_scores_clamped(self):
        fields = fields_from_payload({"provider": "Cafe Sol", "confidence": {"provider": 7}})
        assert fields.confidence.provider == 1.0

    def test_bad_scores_default(self):
        fields = fields_from_payload({"provider": "Cafe Sol", "confidence": {"provider": "high"}})
        assert fields.confidence.provider == pytest.approx(0.8)
        fields = fields_from_payload({"provider": "Cafe Sol", "confidence": "high"})
        assert fields.confidence.provider == pytest.approx(0.8)


class TestLLMExtractor:
    """Calling the model and repairing its answer."""

    def test_extract(self):
        payload = {
            "description": "Compra de alimentos",
            "provider": "Supermercado ABC S.A.",
            "amount": 150.0,
            "currency": "$",
            "date": "2025-01-15",
            "confidence": {"amount": 0.9, "date": 0.9, "provider": 0.9, "description": 0.7},
        }
        client = _client_returning("```json\n" + json.dumps(payload) + "\n```")
        extractor = LLMExtractor(client=client, model="test-model", temperature=0.1, max_tokens=200)

        fields = extractor.extract("Supermercado ABC S.A. Total $150.00")

        assert fields.amount == Decimal("150.0")
        assert fields.provider == "Supermercado ABC S.A."
        assert fields.description == "Compra de alimentos"

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["temperature"] == 0.1
        assert kwargs["max_tokens"] == 200
        assert "Supermercado ABC S.A. Total $150.00" in kwargs["messages"][1]["content"]

    def test_collapsed_answer_is_repaired(self):
        payload = {
            "description": (
                "compra de medicamentos en Farmacia Central Store el 05/03/24 "
                "por un total de 1.250,75 gracias"
            ),
        }
        extractor = LLMExtractor(client=_client_returning(json.dumps(payload)))

        fields = extractor.extract("receipt")

        assert fields.amount == Decimal("1250.75")
        assert fields.provider == "Farmacia Central Store"
        assert fields.date == "2024-05-03"
        # Same score as recovered fields in the raw-text fallback
        assert fields.confidence.amount == pytest.approx(0.1)
        assert fields.confidence.provider == pytest.approx(0.1)

    def test_empty_reply(self):
        extractor = LLMExtractor(client=_client_returning(""))
        with pytest.raises(LLMExtractionError):
            extractor.extract("receipt")

    def test_reply_without_json(self):
        extractor = LLMExtractor(client=_client_returning("I could not read this receipt."))
        with pytest.raises(LLMExtractionError):
            extractor.extract("receipt")

    def test_no_choices(self):
        client = MagicMock()
        client.chat.completions.create.return_value = SimpleNamespace(choices=[])
        with pytest.raises(LLMExtractionError):
            LLMExtractor(client=client).extract("receipt")


class TestFallbackFields:
    """Degraded result when the AI extractor fails."""

    def test_short_text(self):
        fields = fallback_fields("Ticket 42")
        assert fields.description == "Ticket"
        assert fields.amount is None
        assert fields.confidence.description == pytest.approx(0.1)
        assert fields.confidence.amount == 0.0

    def test_long_text_truncated(self):
        fields = fallback_fields("A" * 150)
        assert fields.description == "A" * 100 + "..."

    def test_fields_recovered_from_text(self):
        text = (
            "compra de medicamentos en Farmacia Central Store el 05/03/24 "
            "por un total de 1.250,75 gracias"
        )
        fields = fallback_fields(text)
        assert fields.amount == Decimal("1250.75")
        assert fields.provider == "Farmacia Central Store"
        assert fields.confidence.amount == pytest.approx(0.1)
        assert fields.confidence.provider == pytest.approx(0.1)


class TestSharedExtractor:
    """One extractor, and one OpenAI client, per process."""

    @pytest.fixture(autouse=True)
    def _reset(self, monkeypatch):
        monkeypatch.setattr(llm, "_extractor", None)
        monkeypatch.setattr(llm.settings, "LLM_ENABLED", True)
        monkeypatch.setattr(llm.settings, "LLM_API_KEY", "test-key")

    def test_client_built_once(self, monkeypatch):
        openai_cls = MagicMock()
        monkeypatch.setattr(llm, "OpenAI", openai_cls)

        first = get_llm_extractor()
        second = get_llm_extractor()

        assert first is second
        assert openai_cls.call_count == 1, f"OpenAI client built {openai_cls.call_count} times"

    def test_disabled(self, monkeypatch):
        monkeypatch.setattr(llm.settings, "LLM_ENABLED", False)
        assert get_llm_extractor() is None

    def test_no_key(self, monkeypatch):
        monkeypatch.setattr(llm.settings, "LLM_API_KEY", "")
        assert get_llm_extractor() is None
