from app.broker import InferenceBroker
from app.config import Settings
from app.inference import InferenceClient
from app.settlement import SettlementValidator
from app.split.base import SplitReasoner
from app.split.mock_provider import MockSplitReasoner
from app.split.openai_provider import OpenAISplitReasoner


def get_split_reasoner(settings: Settings, broker: InferenceBroker, validator: SettlementValidator) -> SplitReasoner:
    """Return the configured split reasoning provider."""
    if settings.receipt_provider == "openai":
        client = InferenceClient(broker, validator, settings.reasoning_provider, timeout=settings.inference_timeout)
        return OpenAISplitReasoner(client)
    if settings.receipt_provider == "mock":
        return MockSplitReasoner()
    raise ValueError(f"Unknown receipt provider: {settings.receipt_provider}")
