import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from api.dependencies import get_activity_monitor
from api.routes import calculator, customers, loans, payments
from core.activity import ActivityMonitor
from core.errors import ConflictError, InvalidArgumentError, NotFoundError, ValidationError
from services.event_publisher import EventPublisher

logger = logging.getLogger(__name__)


def _error_body(exc: Exception, field: Optional[str] = None) -> dict:
    body = {"detail": str(exc)}
    if field:
        body["field"] = field
    return body


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.info("Rejected %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=422, content=_error_body(exc, exc.field))

    @app.exception_handler(InvalidArgumentError)
    async def handle_invalid_argument(request: Request, exc: InvalidArgumentError):
        return JSONResponse(status_code=400, content=_error_body(exc))

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content=_error_body(exc))

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError):
        logger.warning("Conflict on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=409, content=_error_body(exc))


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    app.state.publisher.close()


def create_app(publisher: Optional[EventPublisher] = None,
               activity: Optional[ActivityMonitor] = None) -> FastAPI:
    """
    Composition root: owns the event publisher and the activity monitor and
    hands them to the routes through `app.state`.
    """
    app = FastAPI(title="Loan back-office API", lifespan=lifespan)
    app.state.publisher = publisher or EventPublisher()
    app.state.activity = activity or ActivityMonitor()
    app.state.activity.subscribe(
        lambda busy: logger.debug("API is %s", "busy" if busy else "idle")
    )

    @app.middleware("http")
    async def track_activity(request: Request, call_next):
        monitor: ActivityMonitor = request.app.state.activity
        monitor.begin()
        try:
            return await call_next(request)
        finally:
            monitor.end()

    @app.get("/health-check/")
    async def health_check(monitor: ActivityMonitor = Depends(get_activity_monitor)):
        # the health check itself counts as one request in flight
        return {"status": "Health Check OK", "busy": monitor.in_flight > 1, "in_flight": monitor.in_flight - 1}

    register_error_handlers(app)
    app.include_router(customers.router)
    app.include_router(loans.router)
    app.include_router(payments.router)
    app.include_router(calculator.router)
    return app


app = create_app()
