import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from settings import settings

# 1. Logging, before anything else logs
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s [%(levelname)s] [%(name)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("compare_api")

# 2. Setup App
app = FastAPI(title="Provider Compare API")

# 3. Setup CORS, restricted to ALLOWED_ORIGINS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
)

# 4. Error envelopes
from services.errors import AdmissionError, CompareValidationError


@app.exception_handler(CompareValidationError)
async def compare_validation_handler(request: Request, exc: CompareValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": exc.message, "unsupportedProviders": exc.unsupported_providers},
    )


@app.exception_handler(AdmissionError)
async def admission_handler(request: Request, exc: AdmissionError):
    content = {"error": exc.error}
    if exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(Exception)
async def internal_error_handler(request: Request, exc: Exception):
    logger.error("Global Error Handler: %s", exc, exc_info=exc)
    content = {"error": "An internal server error occurred."}
    if not settings.is_production():
        content["details"] = str(exc) or "Unknown error"
    return JSONResponse(status_code=500, content=content)


# 5. Include Routers
from routers import compare
app.include_router(compare.router)


@app.get("/health", response_class=PlainTextResponse)
@app.get("/api/health", response_class=PlainTextResponse, include_in_schema=False)
def health():
    return "OK"


logger.info("API process starting")
logger.info("Active LOG_LEVEL: %s", settings.log_level.lower())
for provider, model in settings.models.items():
    logger.info("Using %s model: %s (%s)", provider, model,
                "configured" if settings.get_api_key(provider) else "no API key")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
