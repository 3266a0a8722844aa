from relief_app.core.config import get_settings
from relief_app.core.logging import configure_logging
from relief_app.core.middleware import ApiCallCounter, ApiCallCounterMiddleware, RequestIdMiddleware
from relief_app.api.v1.router import v1_router

from fastapi import FastAPI


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
    )
    app.state.api_calls = ApiCallCounter()

    # Middleware: API call counter (inner), Request ID (outer)
    app.add_middleware(ApiCallCounterMiddleware)
    app.add_middleware(RequestIdMiddleware, header_name=settings.request_id_header)

    # API v1
    app.include_router(v1_router, prefix=settings.api_prefix)

    return app


app = create_app()
