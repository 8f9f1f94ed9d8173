import logging
import uuid

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel

from app.broker import InferenceBroker
from app.errors import UpstreamUnavailable
from app.settlement import SettlementValidator

logger = logging.getLogger("splitter")


class ValidationOutcome(BaseModel):
    """Caller trust metadata attached to every model-derived result."""

    model: str
    provider: str
    is_valid: bool
    chat_id: str


class InferenceReply(BaseModel):
    content: str
    validation: ValidationOutcome


class InferenceClient:
    """One OpenAI-compatible chat endpoint reached through the broker.

    Each call is: request headers from the broker, one chat completion in
    JSON-object mode, one settlement check. No retries; timeouts and
    cancellation come from the caller and the client configuration.
    """

    def __init__(
        self,
        broker: InferenceBroker,
        validator: SettlementValidator,
        provider_id: str,
        timeout: float = 60.0,
        openai_client: AsyncOpenAI | None = None,
    ):
        self.broker = broker
        self.validator = validator
        self.provider_id = provider_id
        self.timeout = timeout
        self._openai = openai_client
        self._owns_client = openai_client is None

    def _client(self, endpoint: str | None, api_key: str) -> AsyncOpenAI:
        if self._openai is None:
            self._openai = AsyncOpenAI(
                base_url=endpoint,
                api_key=api_key or "EMPTY",
                timeout=self.timeout,
                max_retries=0,
            )
        return self._openai

    async def complete(self, messages: list[dict], query_seed: str, temperature: float = 0) -> InferenceReply:
        service = await self.broker.get_service(self.provider_id)
        headers = await self.broker.get_request_headers(self.provider_id, query_seed)
        client = self._client(service.endpoint, service.api_key)

        try:
            completion = await client.chat.completions.create(
                model=service.model,
                temperature=temperature,
                response_format={"type": "json_object"},
                messages=messages,
                extra_headers=headers,
            )
        except openai.APIError as e:
            logger.error(
                f"Inference call failed: {e}",
                extra={"extra_data": {"provider": self.provider_id, "model": service.model}},
            )
            raise UpstreamUnavailable(
                f"Inference provider {self.provider_id} is unavailable",
                provider=self.provider_id,
            ) from e

        content = ""
        if completion.choices:
            content = completion.choices[0].message.content or ""

        # Some compatible servers omit the completion id
        chat_id = completion.id or f"local-{uuid.uuid4()}"
        is_valid = await self.validator.validate(self.provider_id, content, chat_id)

        return InferenceReply(
            content=content,
            validation=ValidationOutcome(
                model=completion.model or service.model,
                provider=self.provider_id,
                is_valid=is_valid,
                chat_id=chat_id,
            ),
        )

    async def aclose(self) -> None:
        if self._owns_client and self._openai is not None:
            await self._openai.close()
            self._openai = None
