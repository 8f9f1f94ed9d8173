import logging

from app.broker import InferenceBroker

logger = logging.getLogger("splitter")


class SettlementValidator:
    """Checks a paid inference response against the provider ledger.

    The result is advisory: any failure degrades to False and the response
    itself is returned to the caller untouched.
    """

    def __init__(self, broker: InferenceBroker):
        self.broker = broker

    async def validate(self, provider_id: str, response_content: str, response_id: str) -> bool:
        try:
            is_valid = bool(await self.broker.process_response(provider_id, response_content, response_id))
        except Exception as e:
            logger.warning(
                f"Settlement check failed: {e}",
                extra={"extra_data": {"provider": provider_id, "chat_id": response_id}},
            )
            return False

        logger.info(
            "Response settled",
            extra={"extra_data": {"provider": provider_id, "chat_id": response_id, "is_valid": is_valid}},
        )
        return is_valid
