"""
FastAPI application factory
"""
import logging
import traceback

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from academy.application.attendance import MonthLedgers
from academy.config import get_settings
from academy.infrastructure.db.session import check_db_connection
from academy.api.v1 import attendance, insights

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class ErrorLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every unhandled exception with its traceback"""

    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            tb_str = traceback.format_exc()
            logger.error("ERROR on %s %s\n%s", request.method, request.url.path, tb_str)
            return Response(content=f"Internal Server Error: {exc}", status_code=500)


def create_app() -> FastAPI:
    """
    Application factory - builds and configures the FastAPI app

    Returns:
        Configured FastAPI app
    """
    settings = get_settings()

    app = FastAPI(
        title="Academy",
        debug=settings.DEBUG,
    )

    app.add_middleware(ErrorLoggingMiddleware)

    # Presence ledgers per month for this app instance: track in-flight attendance saves
    app.state.attendance_ledgers = MonthLedgers()

    app.include_router(attendance.router)
    app.include_router(insights.router)

    # Health checks
    @app.get("/health", response_class=PlainTextResponse, tags=["system"])
    def health():
        """Health check endpoint"""
        return "ok"

    @app.get("/ready", response_class=PlainTextResponse, tags=["system"])
    def ready():
        """Readiness check endpoint (database reachable)"""
        check_db_connection()
        return "ok"

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "academy.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
