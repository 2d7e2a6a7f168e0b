# backend/orchestrator.py
import asyncio
import logging
from typing import Optional

from .classifier import JsonObject, classify
from .errors import (
    GenerationError,
    InsufficientCredit,
    InvalidInput,
    RequestTimeout,
    UnknownAccount,
)
from .extractor import ImageExtractor
from .ledger import AccountStore, CreditLedger
from .model import (
    CanonicalImage,
    GenerationFailure,
    GenerationResult,
    GenerationSuccess,
    PredictionHandle,
)
from .poller import PredictionPoller
from .upstream_client import UpstreamClient
from .utils import gen_request_id, get_timestamp_ms, preview

logger = logging.getLogger(__name__)


class GenerationOrchestrator:
    """
    One request: validate -> check credit -> call upstream -> classify ->
    poll (prediction handles only) -> extract -> debit.

    Every failure becomes a GenerationFailure. The account is debited only
    after an image was extracted, and only once.
    """

    def __init__(
        self,
        store: AccountStore,
        upstream: UpstreamClient,
        poller: Optional[PredictionPoller] = None,
        extractor: Optional[ImageExtractor] = None,
        ledger: Optional[CreditLedger] = None,
        request_timeout: Optional[float] = 180,
    ):
        self.store = store
        self.upstream = upstream
        self.poller = poller or PredictionPoller(upstream.get_prediction)
        self.extractor = extractor or ImageExtractor(upstream.fetch_image, endpoint=upstream.endpoint)
        self.ledger = ledger or CreditLedger(store)
        self.request_timeout = request_timeout

    async def generate(self, user_id: Optional[str], prompt: Optional[str]) -> GenerationResult:
        request_id = gen_request_id()
        started = get_timestamp_ms()
        try:
            result = await self._run(request_id, user_id, prompt)
        except GenerationError as e:
            logger.warning(
                "[Orchestrator %s] %s (%d): %s",
                request_id, type(e).__name__, e.status_code, e.message,
            )
            return GenerationFailure(e)
        except Exception:
            logger.exception("[Orchestrator %s] Unexpected error", request_id)
            return GenerationFailure(GenerationError())

        logger.info(
            "[Orchestrator %s] Done in %dms, balance=%d",
            request_id, get_timestamp_ms() - started, result.credit_balance,
        )
        return result

    async def _run(
        self, request_id: str, user_id: Optional[str], prompt: Optional[str]
    ) -> GenerationSuccess:
        if not user_id or not prompt or not prompt.strip():
            raise InvalidInput()
        logger.info("[Orchestrator %s] user=%s prompt=%s", request_id, user_id, preview(prompt))

        async with self.ledger.hold(user_id):
            account = await self.store.find_by_id(user_id)
            if account is None:
                raise UnknownAccount()

            decision = self.ledger.reserve(account)
            if not decision.allowed:
                raise InsufficientCredit(decision.balance)

            # The deadline stops at extraction; a started debit always completes
            try:
                image = await asyncio.wait_for(
                    self._produce_image(request_id, prompt), timeout=self.request_timeout
                )
            except asyncio.TimeoutError:
                logger.error("[Orchestrator %s] Timed out after %ss", request_id, self.request_timeout)
                raise RequestTimeout() from None

            balance = await self.ledger.debit(account)

        return GenerationSuccess(image=image, credit_balance=balance)

    async def _produce_image(self, request_id: str, prompt: str) -> CanonicalImage:
        response = await self.upstream.create_prediction(prompt)
        shape = classify(response.content, response.headers.get("content-type"))

        if isinstance(shape, JsonObject) and PredictionHandle.looks_like_prediction(shape.value):
            handle = PredictionHandle.from_payload(shape.value, self.upstream.endpoint)
            logger.info(
                "[Orchestrator %s] Prediction %s, status: %s", request_id, handle.id, handle.status
            )
            handle = await self.poller.resolve(handle)
            return await self.extractor.extract(handle)
        return await self.extractor.extract(shape)

    async def credits(self, user_id: Optional[str]):
        """
        Current account for the credits endpoint. Raises InvalidInput / UnknownAccount.
        """
        if not user_id:
            raise InvalidInput("Missing user_id.")
        account = await self.store.find_by_id(user_id)
        if account is None:
            raise UnknownAccount()
        return account
