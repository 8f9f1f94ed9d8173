import logging

from pydantic import BaseModel

from app.broker import InferenceBroker
from app.config import Settings
from app.errors import ValidationInputError
from app.inference import ValidationOutcome
from app.receipt.base import ImageSource, Receipt, ReceiptExtraction, ReceiptExtractor
from app.receipt.factory import get_receipt_extractor
from app.settlement import SettlementValidator
from app.split.base import Participant, SplitPlan, SplitReasoner
from app.split.factory import get_split_reasoner
from app.split.reconcile import reconcile_plan

logger = logging.getLogger("splitter")


class SplitOutcome(BaseModel):
    plan: SplitPlan
    validation: ValidationOutcome
    # Set only when the receipt was parsed from an image in the same call
    receipt: Receipt | None = None
    receipt_validation: ValidationOutcome | None = None


def validate_split_input(instructions: str, participants: list[Participant]) -> None:
    """Reject malformed input before any inference is paid for."""
    if not participants:
        raise ValidationInputError("participants is required and must be a non-empty array")
    if not instructions or not instructions.strip():
        raise ValidationInputError("instructions is required and must be a non-empty string")

    seen: set[str] = set()
    for participant in participants:
        key = participant.identifier.strip().casefold()
        if not key:
            raise ValidationInputError("Every participant needs a non-empty identifier")
        if key in seen:
            raise ValidationInputError(f"Participant {participant.identifier!r} is listed more than once")
        seen.add(key)


class SplitSession:
    """Runs parse and split turns.

    Holds no per-split state: continuity between turns comes only from the
    caller passing the previous plan back as prior_plan.
    """

    def __init__(self, extractor: ReceiptExtractor, reasoner: SplitReasoner, reconcile_policy: str = "strict"):
        self.extractor = extractor
        self.reasoner = reasoner
        self.reconcile_policy = reconcile_policy

    async def parse(self, image: ImageSource) -> ReceiptExtraction:
        return await self.extractor.extract(image)

    async def split(
        self,
        instructions: str,
        participants: list[Participant],
        receipt: Receipt | None = None,
        prior_plan: SplitPlan | None = None,
        image: ImageSource | None = None,
    ) -> SplitOutcome:
        validate_split_input(instructions, participants)

        extraction = None
        if receipt is None and image is not None:
            extraction = await self.parse(image)
            receipt = extraction.receipt

        reasoning = await self.reasoner.compute_split(receipt, instructions, participants, prior_plan)
        plan = reconcile_plan(
            reasoning.plan,
            participants,
            receipt,
            policy=self.reconcile_policy,
            prior_plan=prior_plan,
        )

        logger.info(
            "Split computed",
            extra={"extra_data": {
                "chat_id": reasoning.validation.chat_id,
                "participants_count": len(plan.participants),
                "refinement": prior_plan is not None,
                "parsed_image": extraction is not None,
            }},
        )
        return SplitOutcome(
            plan=plan,
            validation=reasoning.validation,
            receipt=extraction.receipt if extraction else None,
            receipt_validation=extraction.validation if extraction else None,
        )

    async def aclose(self) -> None:
        await self.extractor.aclose()
        await self.reasoner.aclose()


def build_split_session(settings: Settings, broker: InferenceBroker) -> SplitSession:
    validator = SettlementValidator(broker)
    return SplitSession(
        extractor=get_receipt_extractor(settings, broker, validator),
        reasoner=get_split_reasoner(settings, broker, validator),
        reconcile_policy=settings.reconcile_policy,
    )
