import json
import logging

from pydantic import ValidationError

from app.errors import ReasoningError
from app.inference import InferenceClient
from app.receipt.base import Receipt
from app.split.base import Participant, SplitPlan, SplitReasoning

logger = logging.getLogger("splitter")

INSTRUCTIONS = """\
You are an expert expense splitting assistant. Given a receipt in JSON and a list of participants with the amounts they paid, fairly split the total expense among all participants.

Rules:
- Treat the first participant in the list as the primary payer who covered the full amount, unless the instructions say someone else paid.
- Work out each participant's share of the subtotal (before tax and tip) from what the instructions say they ordered. Shared items are divided between the people who shared them.
- Split tax and tip proportionally: apply the same percentage of tax and tip to each participant's subtotal share.
- The sum of all participants' "owes" amounts must equal the receipt total exactly. Absorb rounding differences so the sum still matches.
- If there is no receipt, use the totals and items stated in the instructions.
- Never guess silently. If it is unclear who had what, or a participant is not mentioned at all, still produce your best split and describe every uncertainty in "openQuestions".
- Every participant from the list must appear exactly once in "participants", using their identifier verbatim. Do not add anyone else.

Corrections:
- An earlier turn may contain a split you already produced. When the user then sends updated instructions or corrections, start from that latest split instead of recalculating from scratch.
- Change only what the new instructions address. Every participant whose items are not mentioned keeps exactly the same "owes" and "comment".
- Keep the same receipt and bill total unless told otherwise.

Respond with ONLY a JSON object with this structure:
{
  "summary": "A brief summary of the expense split",
  "currency": "Currency code (e.g. USD)",
  "total": total amount on the receipt as a number,
  "payer": "identifier of the primary payer",
  "participants": [
    {
      "identifier": "participant identifier",
      "paid": amount they paid as a number,
      "owes": amount they owe as a number,
      "comment": "short explanation of their share"
    }
  ],
  "openQuestions": ["uncertainties or clarifications needed"]
}

All monetary values are numbers rounded to two decimal places."""


def build_user_content(instructions: str, participants: list[Participant], receipt: Receipt | None) -> list[dict]:
    participants_json = json.dumps([p.model_dump(exclude_none=True) for p in participants])
    content = [{"type": "text", "text": f"{instructions}\nParticipants:{participants_json}"}]
    if receipt is not None:
        content.append({"type": "text", "text": f"Here is the parsed receipt data: {receipt.model_dump_json()}"})
    return content


def build_messages(
    receipt: Receipt | None,
    instructions: str,
    participants: list[Participant],
    prior_plan: SplitPlan | None,
) -> list[dict]:
    messages = [
        {"role": "system", "content": INSTRUCTIONS},
        {"role": "user", "content": build_user_content(instructions, participants, receipt)},
    ]
    # The previous plan goes in as the model's own earlier turn
    if prior_plan is not None:
        messages.insert(1, {"role": "assistant", "content": prior_plan.model_dump_json(by_alias=True)})
    return messages


def parse_plan(content: str) -> SplitPlan:
    """Validate a model reply against the SplitPlan schema."""
    try:
        return SplitPlan.model_validate_json(content)
    except ValidationError as e:
        raise ReasoningError(
            f"Split model output does not match the split plan schema ({e.error_count()} errors)",
            errors=e.errors(include_url=False, include_context=False, include_input=False),
        ) from e


class OpenAISplitReasoner:
    """Split reasoning using an OpenAI-compatible chat model."""

    temperature = 0.2

    def __init__(self, client: InferenceClient):
        self.client = client

    async def compute_split(
        self,
        receipt: Receipt | None,
        instructions: str,
        participants: list[Participant],
        prior_plan: SplitPlan | None,
    ) -> SplitReasoning:
        messages = build_messages(receipt, instructions, participants, prior_plan)
        query_seed = f"{instructions} participants:{','.join(p.identifier for p in participants)}"

        reply = await self.client.complete(messages, query_seed=query_seed, temperature=self.temperature)
        plan = parse_plan(reply.content)

        logger.info(
            "Split reasoned",
            extra={"extra_data": {
                "chat_id": reply.validation.chat_id,
                "participants_count": len(plan.participants),
                "open_questions": len(plan.open_questions),
                "refinement": prior_plan is not None,
                "is_valid": reply.validation.is_valid,
            }},
        )
        return SplitReasoning(plan=plan, validation=reply.validation)

    async def aclose(self) -> None:
        await self.client.aclose()
