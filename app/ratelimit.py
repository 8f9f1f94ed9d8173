import os

from dotenv import load_dotenv
from slowapi import Limiter
from slowapi.util import get_remote_address

load_dotenv()

# Every parse/split spends prepaid inference credit
INFERENCE_RATE_LIMIT = os.getenv("RATE_LIMIT", "20/minute")

limiter = Limiter(
    key_func=get_remote_address,
    enabled=os.getenv("RATE_LIMIT_ENABLED", "true").lower() != "false",
)
