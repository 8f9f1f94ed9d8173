import json
import logging

from pydantic import ValidationError

from app.errors import ExtractionError
from app.inference import InferenceClient
from app.receipt.base import ImageSource, Receipt, ReceiptExtraction

logger = logging.getLogger("splitter")

INSTRUCTIONS = """\
You are a receipt OCR and structuring assistant.
Output ONLY JSON matching exactly:
{
  "currency": string | null,
  "total": number | null,
  "subtotal": number | null,
  "tax": number | null,
  "tip": number | null,
  "items": [{ "name": string, "price": number }]
}
No extra keys, no commentary.
Infer missing values if obvious; use null when absent.
Do NOT convert currencies; report the currency code printed on the receipt."""

REQUIRED_KEYS = tuple(Receipt.model_fields)


def parse_receipt(content: str) -> Receipt:
    """Validate a model reply against the Receipt schema."""
    try:
        raw = json.loads(content)
    except json.JSONDecodeError as e:
        raise ExtractionError(f"Receipt model returned invalid JSON: {e.msg}") from e

    if not isinstance(raw, dict):
        raise ExtractionError("Receipt model output is not a JSON object")

    missing = [key for key in REQUIRED_KEYS if key not in raw]
    if missing:
        raise ExtractionError(f"Receipt model output is missing keys: {', '.join(missing)}", missing=missing)

    try:
        return Receipt.model_validate(raw)
    except ValidationError as e:
        raise ExtractionError(
            f"Receipt model output does not match the receipt schema ({e.error_count()} errors)",
            errors=e.errors(include_url=False, include_context=False, include_input=False),
        ) from e


class OpenAIReceiptExtractor:
    """Receipt extraction using an OpenAI-compatible vision model."""

    def __init__(self, client: InferenceClient):
        self.client = client

    async def extract(self, image: ImageSource) -> ReceiptExtraction:
        messages = [
            {"role": "system", "content": INSTRUCTIONS},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "Extract the receipt data from this image."},
                    {"type": "image_url", "image_url": {"url": image.model_url()}},
                ],
            },
        ]

        reply = await self.client.complete(messages, query_seed=image.fingerprint(), temperature=0)
        receipt = parse_receipt(reply.content)

        logger.info(
            "Receipt extracted",
            extra={"extra_data": {
                "chat_id": reply.validation.chat_id,
                "items_count": len(receipt.items),
                "is_valid": reply.validation.is_valid,
            }},
        )
        return ReceiptExtraction(receipt=receipt, validation=reply.validation)

    async def aclose(self) -> None:
        await self.client.aclose()
