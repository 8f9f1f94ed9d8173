import logging
from typing import Protocol

import httpx
from pydantic import BaseModel

from app.config import Settings
from app.errors import UpstreamUnavailable

logger = logging.getLogger("splitter")


class ServiceInfo(BaseModel):
    provider: str
    endpoint: str | None = None  # None = OpenAI default base URL
    model: str
    api_key: str = ""


class InferenceBroker(Protocol):
    """Access layer for metered inference providers."""

    async def get_service(self, provider_id: str) -> ServiceInfo: ...

    async def get_request_headers(self, provider_id: str, content: str) -> dict[str, str]: ...

    async def process_response(self, provider_id: str, content: str, chat_id: str) -> bool: ...

    async def aclose(self) -> None: ...


def normalize_headers(headers) -> dict[str, str]:
    """Keep only string-valued headers."""
    if not isinstance(headers, dict):
        return {}
    return {key: value for key, value in headers.items() if isinstance(value, str)}


class DirectBroker:
    """Plain OpenAI-compatible endpoint, no metering.

    Responses are not billed per call, so there is nothing to settle and
    every response is reported as valid.
    """

    def __init__(self, base_url: str | None, api_key: str, models: dict[str, str]):
        self.base_url = base_url
        self.api_key = api_key
        self.models = models

    async def get_service(self, provider_id: str) -> ServiceInfo:
        model = self.models.get(provider_id)
        if model is None:
            raise UpstreamUnavailable(f"Unknown inference provider: {provider_id}")
        return ServiceInfo(provider=provider_id, endpoint=self.base_url, model=model, api_key=self.api_key)

    async def get_request_headers(self, provider_id: str, content: str) -> dict[str, str]:
        return {}

    async def process_response(self, provider_id: str, content: str, chat_id: str) -> bool:
        return True

    async def aclose(self) -> None:
        return None


class BrokerClient:
    """Talks to the compute-network broker sidecar over HTTP.

    The sidecar holds the wallet and ledger; this client only asks it for
    service metadata, signed request headers, and settlement of responses.
    """

    def __init__(self, base_url: str, timeout: float = 10.0, http_client: httpx.AsyncClient | None = None):
        self._http = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._services: dict[str, ServiceInfo] = {}

    async def _request(self, method: str, path: str, provider_id: str, json: dict | None = None) -> dict:
        try:
            resp = await self._http.request(method, path, json=json)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 402:
                raise UpstreamUnavailable(
                    f"Insufficient prepaid balance for provider {provider_id}",
                    provider=provider_id,
                ) from e
            raise UpstreamUnavailable(
                f"Broker request failed with status {e.response.status_code}",
                provider=provider_id,
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Broker unreachable: {e}", provider=provider_id) from e

        try:
            data = resp.json()
        except ValueError as e:
            raise UpstreamUnavailable("Broker returned a response that is not JSON", provider=provider_id) from e
        if not isinstance(data, dict):
            raise UpstreamUnavailable("Broker returned an unexpected response", provider=provider_id)
        return data

    async def get_service(self, provider_id: str) -> ServiceInfo:
        cached = self._services.get(provider_id)
        if cached:
            return cached

        data = await self._request("GET", f"/services/{provider_id}", provider_id)
        try:
            service = ServiceInfo(provider=provider_id, endpoint=data["endpoint"], model=data["model"])
        except (KeyError, ValueError) as e:
            raise UpstreamUnavailable(
                f"Broker returned incomplete service metadata for provider {provider_id}",
                provider=provider_id,
            ) from e
        self._services[provider_id] = service
        logger.info(
            "Inference service resolved",
            extra={"extra_data": {"provider": provider_id, "endpoint": service.endpoint, "model": service.model}},
        )
        return service

    async def get_request_headers(self, provider_id: str, content: str) -> dict[str, str]:
        data = await self._request("POST", f"/inference/{provider_id}/headers", provider_id, json={"content": content})
        return normalize_headers(data.get("headers"))

    async def process_response(self, provider_id: str, content: str, chat_id: str) -> bool:
        data = await self._request(
            "POST",
            f"/inference/{provider_id}/settle",
            provider_id,
            json={"content": content, "chatId": chat_id},
        )
        return bool(data.get("valid"))

    async def aclose(self) -> None:
        await self._http.aclose()


def build_broker(settings: Settings) -> InferenceBroker:
    """Return the broker for this process; created once and shared."""
    if settings.broker_url:
        return BrokerClient(settings.broker_url)
    return DirectBroker(
        base_url=settings.openai_base_url,
        api_key=settings.openai_api_key,
        models={
            settings.vision_provider: settings.vision_model,
            settings.reasoning_provider: settings.reasoning_model,
        },
    )
