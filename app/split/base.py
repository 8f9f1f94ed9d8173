from typing import Protocol

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from app.inference import ValidationOutcome
from app.receipt.base import Receipt

# The front end sent "ens" before participants could be plain addresses
IDENTIFIER_ALIASES = AliasChoices("identifier", "ens", "address")


class Participant(BaseModel):
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    identifier: str = Field(validation_alias=IDENTIFIER_ALIASES)  # ENS-like name or address
    paid: float = Field(default=0, ge=0)  # contributed toward the bill
    owes: float | None = None  # seed hint only


class PlanParticipant(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, allow_inf_nan=False)

    identifier: str = Field(validation_alias=IDENTIFIER_ALIASES)
    paid: float
    owes: float
    comment: str = ""


class SplitPlan(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True, allow_inf_nan=False)

    summary: str
    currency: str
    total: float
    payer: str
    participants: list[PlanParticipant] = Field(min_length=1)
    open_questions: list[str] = Field(default_factory=list, alias="openQuestions")

    def owes_by_identifier(self) -> dict[str, float]:
        return {p.identifier: p.owes for p in self.participants}


class SplitReasoning(BaseModel):
    plan: SplitPlan
    validation: ValidationOutcome


class SplitReasoner(Protocol):
    async def compute_split(
        self,
        receipt: Receipt | None,
        instructions: str,
        participants: list[Participant],
        prior_plan: SplitPlan | None,
    ) -> SplitReasoning: ...

    async def aclose(self) -> None: ...
