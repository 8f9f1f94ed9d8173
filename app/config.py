import os

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()

# Official 0G compute providers for vision and reasoning
DEFAULT_VISION_PROVIDER = "0x6D233D2610c32f630ED53E8a7Cbf759568041f8f"
DEFAULT_REASONING_PROVIDER = "0x3feE5a4dd5FDb8a32dDA97Bed899830605dBD9D3"

RECEIPT_PROVIDERS = ("openai", "mock")
RECONCILE_POLICIES = ("strict", "rescale")


class Settings(BaseModel):
    receipt_provider: str = "openai"
    broker_url: str | None = None
    openai_base_url: str | None = None
    openai_api_key: str = ""
    vision_provider: str = DEFAULT_VISION_PROVIDER
    reasoning_provider: str = DEFAULT_REASONING_PROVIDER
    vision_model: str = "gpt-4o"
    reasoning_model: str = "gpt-4o"
    inference_timeout: float = 60.0
    reconcile_policy: str = "strict"
    max_image_bytes: int = 10 * 1024 * 1024  # 10 MB
    cors_origins: list[str] = ["http://localhost:5173"]
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Build Settings from the environment (and .env, loaded at import)."""
    settings = Settings(
        receipt_provider=os.getenv("RECEIPT_PROVIDER", "openai").lower(),
        broker_url=os.getenv("BROKER_URL") or None,
        openai_base_url=os.getenv("OPENAI_BASE_URL") or None,
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        vision_provider=os.getenv("VISION_PROVIDER", DEFAULT_VISION_PROVIDER),
        reasoning_provider=os.getenv("REASONING_PROVIDER", DEFAULT_REASONING_PROVIDER),
        vision_model=os.getenv("VISION_MODEL", "gpt-4o"),
        reasoning_model=os.getenv("REASONING_MODEL", "gpt-4o"),
        inference_timeout=float(os.getenv("INFERENCE_TIMEOUT", "60")),
        reconcile_policy=os.getenv("SPLIT_RECONCILE_POLICY", "strict").lower(),
        max_image_bytes=int(os.getenv("MAX_IMAGE_BYTES", str(10 * 1024 * 1024))),
        cors_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")],
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
    if settings.receipt_provider not in RECEIPT_PROVIDERS:
        raise ValueError(f"Unknown receipt provider: {settings.receipt_provider}")
    if settings.reconcile_policy not in RECONCILE_POLICIES:
        raise ValueError(f"Unknown reconcile policy: {settings.reconcile_policy}")
    return settings
