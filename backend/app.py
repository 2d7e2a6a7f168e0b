# backend/app.py

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import redis.asyncio as redis
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from config.settings import settings
from .errors import GenerationError, InvalidInput
from .ledger import RedisAccountStore
from .model import CreditsResponse, GenerateRequest, GenerateResponse, GenerationFailure
from .orchestrator import GenerationOrchestrator
from .poller import PredictionPoller
from .extractor import ImageExtractor
from .upstream_client import UpstreamClient

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


async def get_redis_client() -> redis.Redis:
    return redis.from_url(settings.REDIS_URL, decode_responses=True)


def build_orchestrator(http: httpx.AsyncClient, rds: redis.Redis) -> GenerationOrchestrator:
    upstream = UpstreamClient(
        http,
        endpoint=settings.UPSTREAM_URL,
        token=settings.HF_TOKEN,
        upstream_timeout=settings.UPSTREAM_TIMEOUT,
        poll_timeout=settings.POLL_TIMEOUT,
        image_fetch_timeout=settings.IMAGE_FETCH_TIMEOUT,
    )
    return GenerationOrchestrator(
        store=RedisAccountStore(rds, lock_timeout=settings.ACCOUNT_LOCK_TIMEOUT),
        upstream=upstream,
        poller=PredictionPoller(
            upstream.get_prediction,
            interval=settings.POLL_INTERVAL,
            max_attempts=settings.POLL_MAX_ATTEMPTS,
        ),
        extractor=ImageExtractor(
            upstream.fetch_image,
            min_base64_length=settings.BASE64_MIN_LENGTH,
            strict_base64=settings.STRICT_BASE64,
            endpoint=upstream.endpoint,
        ),
        request_timeout=settings.REQUEST_TIMEOUT,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    if not settings.HF_TOKEN:
        logger.warning("HF_TOKEN is not set; generation requests will fail")
    http = httpx.AsyncClient()
    rds = await get_redis_client()
    app.state.orchestrator = build_orchestrator(http, rds)
    try:
        yield
    finally:
        await http.aclose()
        await rds.aclose()


app = FastAPI(title="Image Credit Service", lifespan=lifespan)


def get_orchestrator(request: Request) -> GenerationOrchestrator:
    return request.app.state.orchestrator


def failure_response(error: GenerationError) -> JSONResponse:
    failure = GenerationFailure(error)
    return JSONResponse(
        status_code=failure.status_code,
        content=failure.to_response().model_dump(by_alias=True, exclude_none=True),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return failure_response(InvalidInput())


@app.post("/api/image/generate-image", response_model=GenerateResponse, response_model_exclude_none=True)
async def generate_image(
    req: GenerateRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    result = await orchestrator.generate(req.user_id, req.prompt)
    if isinstance(result, GenerationFailure):
        return failure_response(result.error)
    return result.to_response()


@app.get("/api/user/credits", response_model=CreditsResponse)
async def get_credits(
    user_id: Optional[str] = None,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    try:
        account = await orchestrator.credits(user_id)
    except GenerationError as e:
        return failure_response(e)
    return CreditsResponse(
        success=True,
        credits=account.credit_balance,
        user={"id": account.id, "name": account.name},
    )
