"""Tests for the OpenAI-compatible extractor and reasoner.

The OpenAI client is mocked; the broker is a DirectBroker so the request
path is the same one used in production without a sidecar.
"""

import json

import httpx
import openai
import pytest

from app.broker import DirectBroker
from app.errors import ExtractionError, ReasoningError, UpstreamUnavailable
from app.inference import InferenceClient
from app.receipt.base import ImageSource
from app.receipt.openai_provider import OpenAIReceiptExtractor, parse_receipt
from app.settlement import SettlementValidator
from app.split.openai_provider import OpenAISplitReasoner, build_messages, parse_plan

from conftest import SCENARIO_ONE_OWES, SCENARIO_TWO_OWES, make_completion, make_openai_client, make_plan

RECEIPT_JSON = {
    "currency": "USD",
    "total": 36.8,
    "subtotal": 32,
    "tax": 0,
    "tip": 4.8,
    "items": [
        {"name": "TACOS", "price": 20},
        {"name": "DIET COKE", "price": 2},
        {"name": "SMART WATER", "price": 3},
        {"name": "CAKE", "price": 7},
    ],
}


def make_client(openai_client, provider="0xVISION", broker=None):
    broker = broker or DirectBroker(None, "sk-test", {provider: "gpt-4o"})
    return InferenceClient(broker, SettlementValidator(broker), provider, openai_client=openai_client)


def plan_json(owes: dict[str, float], **overrides) -> dict:
    plan = make_plan(owes).model_dump(by_alias=True)
    plan.update(overrides)
    return plan


class TestParseReceipt:
    def test_valid_receipt(self):
        receipt = parse_receipt(json.dumps(RECEIPT_JSON))

        assert receipt.total == 36.8
        assert [item.name for item in receipt.items] == ["TACOS", "DIET COKE", "SMART WATER", "CAKE"]

    def test_nulls_are_allowed(self):
        receipt = parse_receipt(json.dumps({**RECEIPT_JSON, "currency": None, "tip": None}))

        assert receipt.currency is None
        assert receipt.tip is None

    def test_invalid_json(self):
        with pytest.raises(ExtractionError, match="invalid JSON"):
            parse_receipt("The total is 36.80")

    def test_missing_keys(self):
        partial = {key: value for key, value in RECEIPT_JSON.items() if key not in ("tax", "tip")}

        with pytest.raises(ExtractionError) as exc_info:
            parse_receipt(json.dumps(partial))

        assert exc_info.value.details["missing"] == ["tax", "tip"]

    def test_extra_keys_rejected(self):
        with pytest.raises(ExtractionError):
            parse_receipt(json.dumps({**RECEIPT_JSON, "merchant": "Taco Shop"}))

    def test_non_numeric_price_rejected(self):
        bad = {**RECEIPT_JSON, "items": [{"name": "TACOS", "price": "twenty"}]}

        with pytest.raises(ExtractionError):
            parse_receipt(json.dumps(bad))

    def test_array_rejected(self):
        with pytest.raises(ExtractionError, match="not a JSON object"):
            parse_receipt("[]")


class TestReceiptExtractor:
    async def test_extract_sends_image_and_returns_receipt(self):
        openai_client = make_openai_client(make_completion(RECEIPT_JSON, chat_id="chatcmpl-vision"))
        extractor = OpenAIReceiptExtractor(make_client(openai_client))

        result = await extractor.extract(ImageSource(image_url="https://example.com/r.jpg"))

        assert result.receipt.total == 36.8
        assert result.validation.chat_id == "chatcmpl-vision"
        assert result.validation.is_valid is True
        assert result.validation.provider == "0xVISION"

        kwargs = openai_client.chat.completions.create.await_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["temperature"] == 0
        assert kwargs["messages"][0]["role"] == "system"
        image_part = kwargs["messages"][1]["content"][1]
        assert image_part["image_url"]["url"] == "https://example.com/r.jpg"

    async def test_base64_image_becomes_data_url(self):
        openai_client = make_openai_client(make_completion(RECEIPT_JSON))
        extractor = OpenAIReceiptExtractor(make_client(openai_client))

        await extractor.extract(ImageSource(base64_image="iVBORw0KGgoAAAANSUhEUg=="))

        kwargs = openai_client.chat.completions.create.await_args.kwargs
        url = kwargs["messages"][1]["content"][1]["image_url"]["url"]
        assert url == "data:image/png;base64,iVBORw0KGgoAAAANSUhEUg=="

    async def test_malformed_reply_is_still_settled(self):
        broker = DirectBroker(None, "", {"0xVISION": "gpt-4o"})
        settled = []

        async def process_response(provider_id, content, chat_id):
            settled.append((provider_id, content, chat_id))
            return True

        broker.process_response = process_response
        openai_client = make_openai_client(make_completion("not json", chat_id="chatcmpl-bad"))
        extractor = OpenAIReceiptExtractor(make_client(openai_client, broker=broker))

        with pytest.raises(ExtractionError):
            await extractor.extract(ImageSource(image_url="https://example.com/r.jpg"))

        assert settled == [("0xVISION", "not json", "chatcmpl-bad")]

    async def test_provider_failure_is_upstream_unavailable(self):
        error = openai.APIConnectionError(request=httpx.Request("POST", "https://api.example.com"))
        openai_client = make_openai_client(error)
        extractor = OpenAIReceiptExtractor(make_client(openai_client))

        with pytest.raises(UpstreamUnavailable):
            await extractor.extract(ImageSource(image_url="https://example.com/r.jpg"))


class TestSplitMessages:
    def test_first_turn_layout(self, tacos_receipt, participants):
        messages = build_messages(tacos_receipt, "carol and bob had a taco each", participants, None)

        assert [m["role"] for m in messages] == ["system", "user"]
        texts = [part["text"] for part in messages[1]["content"]]
        assert texts[0].startswith("carol and bob had a taco each\nParticipants:")
        assert '"identifier": "carol.eth"' in texts[0]
        assert texts[1].startswith("Here is the parsed receipt data:")

    def test_prior_plan_is_an_assistant_turn(self, tacos_receipt, participants, scenario_one_plan):
        messages = build_messages(tacos_receipt, "correction: carol got coke", participants, scenario_one_plan)

        assert [m["role"] for m in messages] == ["system", "assistant", "user"]
        prior = json.loads(messages[1]["content"])
        assert prior["openQuestions"] == []
        assert {p["identifier"]: p["owes"] for p in prior["participants"]} == SCENARIO_ONE_OWES

    def test_without_receipt_only_instructions_are_sent(self, participants):
        messages = build_messages(None, "we spent 30 dollars, split evenly", participants, None)

        assert len(messages[1]["content"]) == 1


class TestParsePlan:
    def test_accepts_legacy_ens_key(self):
        raw = plan_json(SCENARIO_ONE_OWES)
        for p in raw["participants"]:
            p["ens"] = p.pop("identifier")

        plan = parse_plan(json.dumps(raw))

        assert plan.owes_by_identifier() == SCENARIO_ONE_OWES

    def test_missing_field_rejected(self):
        raw = plan_json(SCENARIO_ONE_OWES)
        del raw["payer"]

        with pytest.raises(ReasoningError):
            parse_plan(json.dumps(raw))

    def test_invalid_json_rejected(self):
        with pytest.raises(ReasoningError):
            parse_plan("{")

    def test_empty_participants_rejected(self):
        with pytest.raises(ReasoningError):
            parse_plan(json.dumps(plan_json(SCENARIO_ONE_OWES, participants=[])))


class TestSplitReasoner:
    async def test_refinement_round_trip(self, tacos_receipt, participants, scenario_one_plan):
        openai_client = make_openai_client(
            make_completion(plan_json(SCENARIO_TWO_OWES), chat_id="chatcmpl-split"),
        )
        reasoner = OpenAISplitReasoner(make_client(openai_client, provider="0xREASON"))

        result = await reasoner.compute_split(
            tacos_receipt,
            "correction: carol got coke, alice got water",
            participants,
            scenario_one_plan,
        )

        assert result.plan.owes_by_identifier() == SCENARIO_TWO_OWES
        assert result.validation.chat_id == "chatcmpl-split"

        kwargs = openai_client.chat.completions.create.await_args.kwargs
        assert kwargs["temperature"] == 0.2
        assert [m["role"] for m in kwargs["messages"]] == ["system", "assistant", "user"]
