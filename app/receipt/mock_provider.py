import uuid

from app.inference import ValidationOutcome
from app.receipt.base import ImageSource, Receipt, ReceiptExtraction, ReceiptItem

MOCK_RECEIPT = Receipt(
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


class MockReceiptExtractor:
    """Returns a fixed receipt without spending inference credits."""

    async def extract(self, image: ImageSource) -> ReceiptExtraction:
        return ReceiptExtraction(
            receipt=MOCK_RECEIPT,
            validation=ValidationOutcome(
                model="mock-vision-model",
                provider="0xMOCK",
                is_valid=True,
                chat_id=f"mock-{uuid.uuid4()}",
            ),
        )

    async def aclose(self) -> None:
        return None
