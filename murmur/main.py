from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse

from murmur.core.backend import get_backend
from murmur.core.errors import MurmurError
from murmur.core.logging import configure_logging, log
from murmur.core.middleware import RequestContextMiddleware, SecurityHeadersMiddleware
from murmur.core.ratelimit import limiter
from murmur.core.settings import settings
from murmur.api import feed, moderation, submissions

configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Built once for the process lifetime; never torn down.
    await get_backend()
    yield


# Interactive docs are a dev convenience only.
_docs = settings.env != "prod"
app = FastAPI(
    title="Murmur API",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if _docs else None,
    redoc_url=None,
    openapi_url="/openapi.json" if _docs else None,
)
app.state.limiter = limiter


@app.exception_handler(MurmurError)
async def murmur_error_handler(request: Request, exc: MurmurError):
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request.") if errors else "Invalid request."
    return JSONResponse({"error": message.removeprefix("Value error, ")}, status_code=400)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code, headers=getattr(exc, "headers", None))


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse({"error": "rate limit exceeded"}, status_code=429)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log.error("unhandled error", exc_info=exc, extra={"method": request.method, "path": request.url.path})
    return JSONResponse({"error": "Internal error."}, status_code=500)


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(submissions.router)
app.include_router(feed.router)
app.include_router(moderation.router)


@app.get("/health")
@limiter.limit("30/minute")
async def health(request: Request):
    return {"ok": True}
