import os

# Must be set before anything under app/ is imported
os.environ["RECEIPT_PROVIDER"] = "mock"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.pop("BROKER_URL", None)
os.environ.pop("SENTRY_DSN", None)

import json  # noqa: E402
from types import SimpleNamespace  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402

from app.inference import ValidationOutcome  # noqa: E402
from app.receipt.base import Receipt, ReceiptItem  # noqa: E402
from app.split.base import Participant, PlanParticipant, SplitPlan, SplitReasoning  # noqa: E402


def make_validation(chat_id: str = "chat-1", is_valid: bool = True) -> ValidationOutcome:
    return ValidationOutcome(model="test-model", provider="0xTEST", is_valid=is_valid, chat_id=chat_id)


def make_plan(owes: dict[str, float], total: float = 36.8, questions: list[str] | None = None) -> SplitPlan:
    return SplitPlan(
        summary="Tacos night",
        currency="USD",
        total=total,
        payer=next(iter(owes)),
        participants=[
            PlanParticipant(identifier=name, paid=0, owes=amount, comment=f"{name} share")
            for name, amount in owes.items()
        ],
        open_questions=questions or [],
    )


def make_completion(content, chat_id: str = "chatcmpl-1", model: str = "gpt-4o"):
    if not isinstance(content, str):
        content = json.dumps(content)
    return SimpleNamespace(
        id=chat_id,
        model=model,
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
    )


def make_openai_client(*completions):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(side_effect=list(completions))
    return client


# Scenario 1 allocation: tax/tip uplift is 36.80 / 32 = 1.15
# carol: taco 10 + water 3 = 13 -> 14.95
# bob:   taco 10 + half coke 1 = 11 -> 12.65
# alice: cake 7 + half coke 1 = 8 -> 9.20
SCENARIO_ONE_OWES = {"carol.eth": 14.95, "bob.eth": 12.65, "alice.eth": 9.20}

# Scenario 2: carol takes the coke half, alice takes the water
# carol: taco 10 + coke 1 = 11 -> 12.65
# alice: cake 7 + water 3 = 10 -> 11.50
SCENARIO_TWO_OWES = {"carol.eth": 12.65, "bob.eth": 12.65, "alice.eth": 11.50}


@pytest.fixture
def tacos_receipt() -> Receipt:
    return Receipt(
        currency="USD",
        total=36.8,
        subtotal=32,
        tax=0,
        tip=4.8,
        items=[
            ReceiptItem(name="TACOS", price=20),
            ReceiptItem(name="DIET COKE", price=2),
            ReceiptItem(name="SMART WATER", price=3),
            ReceiptItem(name="CAKE", price=7),
        ],
    )


@pytest.fixture
def participants() -> list[Participant]:
    return [
        Participant(identifier="carol.eth", paid=0),
        Participant(identifier="bob.eth", paid=0),
        Participant(identifier="alice.eth", paid=0),
    ]


@pytest.fixture
def scenario_one_plan() -> SplitPlan:
    return make_plan(SCENARIO_ONE_OWES)


@pytest.fixture
def scripted_reasoner():
    """Reasoner double returning the queued plans in order."""

    def build(*plans: SplitPlan):
        reasoner = MagicMock()
        reasoner.compute_split = AsyncMock(
            side_effect=[SplitReasoning(plan=plan, validation=make_validation(f"chat-{i}")) for i, plan in enumerate(plans)]
        )
        return reasoner

    return build
