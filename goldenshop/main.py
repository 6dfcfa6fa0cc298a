import logging
import time
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from goldenshop.config import Settings
from goldenshop.context import PaymentStash
from goldenshop.database import RecordStore, connect
from goldenshop.errors import ShopError
from goldenshop.routes import router

logger = logging.getLogger("goldenshop")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
}


def create_app(settings: Optional[Settings] = None, store: Optional[RecordStore] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    if store is None:
        db = connect(settings)
        store = RecordStore(db, settings.files_base_url) if db is not None else None

    app = FastAPI(title="GoldenShop API")
    app.state.settings = settings
    app.state.store = store
    app.state.stash = PaymentStash()

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        # crashes are answered here so the outer middlewares still decorate the 500
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.exception("Unhandled error on %s %s", request.method, request.url.path)
            response = JSONResponse({"error": "Something went wrong!", "details": str(exc)}, status_code=500)
        logger.info(
            '%s "%s %s" %d %.1fms',
            request.client.host if request.client else "-",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ShopError)
    async def shop_error_handler(request: Request, exc: ShopError):
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(exc.to_dict(), status_code=exc.status_code, headers=headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return JSONResponse({"error": "Route not found"}, status_code=404)
        return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code, headers=exc.headers)

    app.include_router(router)
    return app


_settings = Settings.from_env()
logging.basicConfig(level=_settings.log_level, format="%(asctime)s - %(levelname)s: %(message)s")

app = create_app(_settings)


if __name__ == "__main__":
    import uvicorn
    logger.info("API Server running on http://localhost:%d", _settings.port)
    uvicorn.run(app, host="0.0.0.0", port=_settings.port)
