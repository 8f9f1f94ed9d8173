from pydantic import BaseModel, Field

from app.receipt.base import Receipt
from app.split.base import Participant, SplitPlan


# --- Receipts ---

class ParseReceiptIn(BaseModel):
    image_url: str | None = Field(default=None, alias="imageUrl")
    base64_image: str | None = Field(default=None, alias="base64Image")

    model_config = {"populate_by_name": True}


class SplitExpenseIn(BaseModel):
    receipt: Receipt | None = None  # None = totals are stated in the instructions
    instructions: str
    participants: list[Participant]
    prior_plan: SplitPlan | None = Field(default=None, alias="priorPlan")
    # Parsed first when no receipt is given
    image_url: str | None = Field(default=None, alias="imageUrl")
    base64_image: str | None = Field(default=None, alias="base64Image")

    model_config = {"populate_by_name": True}
