import uuid
from decimal import Decimal

from app.inference import ValidationOutcome
from app.receipt.base import Receipt
from app.split.base import Participant, PlanParticipant, SplitPlan, SplitReasoning
from app.split.reconcile import currency_decimals, to_decimal


def even_shares(total_minor: int, count: int) -> list[int]:
    """Split an amount in minor units; earlier participants take the remainder."""
    if count == 0:
        return []
    base = total_minor // count
    remainder = total_minor - base * count
    return [base + (1 if i < remainder else 0) for i in range(count)]


class MockSplitReasoner:
    """Equal split without spending inference credits."""

    async def compute_split(
        self,
        receipt: Receipt | None,
        instructions: str,
        participants: list[Participant],
        prior_plan: SplitPlan | None,
    ) -> SplitReasoning:
        if receipt is not None and receipt.total is not None:
            total = receipt.total
        elif prior_plan is not None:
            total = prior_plan.total
        else:
            total = 0.0
        currency = (receipt.currency if receipt else None) or (prior_plan.currency if prior_plan else None) or "USD"

        scale = 10 ** currency_decimals(currency)
        shares = even_shares(int(to_decimal(total) * scale), len(participants))

        plan = SplitPlan(
            summary=f"Mock split: {total} {currency} shared equally by {len(participants)} participants",
            currency=currency,
            total=total,
            payer=participants[0].identifier,
            participants=[
                PlanParticipant(
                    identifier=p.identifier,
                    paid=p.paid,
                    owes=float(Decimal(share) / scale),
                    comment=f"Equal split based on {len(participants)} participants",
                )
                for p, share in zip(participants, shares)
            ],
            open_questions=["This is a mock response. Set RECEIPT_PROVIDER=openai to use real AI."],
        )
        return SplitReasoning(
            plan=plan,
            validation=ValidationOutcome(
                model="mock-reasoning-model",
                provider="0xMOCK",
                is_valid=True,
                chat_id=f"mock-{uuid.uuid4()}",
            ),
        )

    async def aclose(self) -> None:
        return None
