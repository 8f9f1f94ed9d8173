from app.broker import InferenceBroker
from app.config import Settings
from app.inference import InferenceClient
from app.receipt.base import ReceiptExtractor
from app.receipt.mock_provider import MockReceiptExtractor
from app.receipt.openai_provider import OpenAIReceiptExtractor
from app.settlement import SettlementValidator


def get_receipt_extractor(settings: Settings, broker: InferenceBroker, validator: SettlementValidator) -> ReceiptExtractor:
    """Return the configured receipt extraction provider."""
    if settings.receipt_provider == "openai":
        client = InferenceClient(broker, validator, settings.vision_provider, timeout=settings.inference_timeout)
        return OpenAIReceiptExtractor(client)
    if settings.receipt_provider == "mock":
        return MockReceiptExtractor()
    raise ValueError(f"Unknown receipt provider: {settings.receipt_provider}")
