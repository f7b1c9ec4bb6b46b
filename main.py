import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.api.router import router
from app.config import settings
from app.core.copier_service import build_service
from app.core.errors import CopierError, InvalidInput
from app.utils.time import now_ms

logging.basicConfig(
    level=(settings.LOG_LEVEL or "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger("copier")


def _normalize_root_path(root_path: str | None) -> str:
    rp = (root_path or "").strip()
    if not rp:
        return ""
    if not rp.startswith("/"):
        rp = "/" + rp
    # remove trailing slash (except "/")
    if rp != "/" and rp.endswith("/"):
        rp = rp[:-1]
    return rp


app = FastAPI(
    title="Signal Copier",
    version="1.0.0",
    root_path=_normalize_root_path(settings.API_ROOT_PATH),
    docs_url="/docs",
    redoc_url=None,
    openapi_url="/openapi.json",
)

app.include_router(router)


# ----------------------------
# Error rendering
# ----------------------------
@app.exception_handler(CopierError)
async def _copier_error_handler(request: Request, exc: CopierError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error": exc.message, "code": exc.code},
    )


@app.exception_handler(RequestValidationError)
async def _validation_error_handler(request: Request, exc: RequestValidationError):
    first = (exc.errors() or [{}])[0]
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body") or "request"
    return await _copier_error_handler(request, InvalidInput(f"bad {where}: {first.get('msg', 'invalid')}"))


@app.exception_handler(Exception)
async def _unhandled_error_handler(request: Request, exc: Exception):
    log.error("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"ok": False, "error": "internal error", "code": "INTERNAL"})


# ----------------------------
# Health endpoints
# ----------------------------
async def _health_handler():
    return JSONResponse({"ok": True, "now": now_ms()})


app.add_api_route("/health", _health_handler, methods=["GET"], tags=["ui"])


@app.on_event("startup")
async def _startup() -> None:
    # Tests attach their own service before the app starts.
    if getattr(app.state, "copier", None) is None:
        app.state.copier = build_service(settings)
    h = app.state.copier.health()
    log.info(
        "copier ready: clients=%d events=%d maxEventId=%d slaves=%d",
        h["clients"],
        h["eventsStored"],
        h["maxEventId"],
        h["slaves"],
    )
    if not settings.ADMIN_KEY:
        log.warning("ADMIN_KEY is not set: admin endpoints will reject every request")
    if not settings.MASTER_KEY:
        log.warning("MASTER_KEY is not set: /copier/push will reject every request")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_level=(settings.LOG_LEVEL or "info").lower())
