import json
import logging

from fastapi import APIRouter, Depends, Request

from models.schemas import CompareResponse
from services.admission import ApiAccessCheck, IpRateLimiter
from services.errors import CompareValidationError
from services.image_prep import HttpxImageFetcher
from services.orchestrator import CompareOrchestrator, StaticAvailability
from services.sanitize import ErrorSanitizer
from services.transports import build_transports
from services.validator import parse_compare_request
from settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["compare"])

require_api_access = ApiAccessCheck(lambda: settings.api_access_keys)
provider_rate_limiter = IpRateLimiter(
    window_ms=settings.rate_limit_window_ms,
    max_requests=settings.rate_limit_max_requests,
    label="provider",
)


def get_orchestrator() -> CompareOrchestrator:
    config = settings.compare_config()
    return CompareOrchestrator(
        config=config,
        transports=build_transports(settings),
        availability=StaticAvailability(settings.provider_availability()),
        image_fetcher=HttpxImageFetcher(timeout_s=config.image_fetch_timeout_s, max_bytes=config.max_image_bytes),
        sanitizer=ErrorSanitizer(production=settings.is_production()),
    )


async def read_json_body(request: Request):
    raw = await request.body()
    if not raw.strip():
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise CompareValidationError("Request body must be valid JSON.")


@router.post(
    "/compare",
    response_model=CompareResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_api_access), Depends(provider_rate_limiter)],
)
@router.post(
    "/api/compare",
    response_model=CompareResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_api_access), Depends(provider_rate_limiter)],
    include_in_schema=False,
)
async def compare(request: Request, orchestrator: CompareOrchestrator = Depends(get_orchestrator)):
    logger.info("Received request at %s", request.url.path)

    body = await read_json_body(request)
    compare_request = parse_compare_request(body, orchestrator.config.providers)

    response = await orchestrator.compare(compare_request)
    failed = [r.provider for r in response.results if r.status == "error"]
    logger.info(
        "[Compare] %d providers, %d failed%s",
        len(response.results),
        len(failed),
        f" ({', '.join(failed)})" if failed else "",
    )
    return response
