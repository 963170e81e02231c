from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from .config import Settings, get_settings
from .errors import MissingFieldError, StorageError, UnauthorizedError
from .log import setup_logging
from .models import (
    BalanceResponse,
    CreditRequest,
    CreditResponse,
    CreditSource,
    CreditStatus,
    DeviceRequest,
    IssuedSession,
    LedgerHistoryResponse,
    StatsResponse,
)
from .service import RewardService
from .sweeper import SessionSweeper

logger = structlog.get_logger()

# first-party callers see policy denials as errors
DENIAL_RESPONSES = {
    CreditStatus.INVALID_SESSION: (status.HTTP_403_FORBIDDEN, "invalid_or_expired_session"),
    CreditStatus.EXPIRED: (status.HTTP_403_FORBIDDEN, "invalid_or_expired_session"),
    CreditStatus.DEVICE_MISMATCH: (status.HTTP_403_FORBIDDEN, "device_mismatch"),
    CreditStatus.QUOTA_EXCEEDED: (status.HTTP_429_TOO_MANY_REQUESTS, "quota_reached"),
}


def get_service(request: Request) -> RewardService:
    return request.app.state.service


def _bad_request(e: MissingFieldError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.code)


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[RewardService] = None,
    root_path: str = "",
) -> FastAPI:
    settings = settings or get_settings()
    service = service or RewardService.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings)
        service.storage.init_schema()
        sweeper = None
        if settings.sweep_interval_seconds > 0:
            sweeper = SessionSweeper(service, settings.sweep_interval_seconds)
            sweeper.start()
        logger.info("satio_started", port=settings.port)
        yield
        if sweeper is not None:
            sweeper.stop()

    app = FastAPI(
        title="SATIO Rewards API",
        description="Rewarded-ad sessions, exactly-once crediting and daily caps",
        version="1.0.0",
        root_path=root_path,
        lifespan=lifespan,
    )
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        logger.error("storage_error", path=request.url.path, method=request.method, error=str(exc))
        return JSONResponse(status_code=500, content={"detail": "internal_error"})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("unhandled_exception", path=request.url.path, method=request.method, exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "internal_error"})

    @app.get("/", response_class=PlainTextResponse, tags=["System"])
    def root():
        return "SATIO backend"

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "healthy", "service": "satio-rewards"}

    @app.post("/balance", response_model=BalanceResponse, tags=["Rewards"])
    def get_balance(
        body: Optional[DeviceRequest] = None,
        svc: RewardService = Depends(get_service),
    ) -> BalanceResponse:
        body = body or DeviceRequest()
        try:
            return svc.get_balance(body.device_id)
        except MissingFieldError as e:
            raise _bad_request(e)

    @app.post("/ad/session", response_model=IssuedSession, tags=["Sessions"])
    def issue_session(
        body: Optional[DeviceRequest] = None,
        svc: RewardService = Depends(get_service),
    ) -> IssuedSession:
        body = body or DeviceRequest()
        try:
            return svc.issue_session(body.device_id)
        except MissingFieldError as e:
            raise _bad_request(e)

    @app.post("/reward", response_model=CreditResponse, response_model_exclude_none=True, tags=["Rewards"])
    def claim_reward(
        body: Optional[CreditRequest] = None,
        svc: RewardService = Depends(get_service),
    ) -> CreditResponse:
        body = body or CreditRequest()
        try:
            outcome = svc.credit(body.device_id, body.session_id, CreditSource.CLIENT)
        except MissingFieldError as e:
            raise _bad_request(e)

        if outcome.status in DENIAL_RESPONSES:
            status_code, detail = DENIAL_RESPONSES[outcome.status]
            raise HTTPException(status_code=status_code, detail=detail)
        if outcome.status == CreditStatus.DUPLICATE:
            return CreditResponse(added=0, duplicate=True)
        return CreditResponse(added=outcome.added)

    @app.get("/admob/ssv", response_class=PlainTextResponse, tags=["Rewards"])
    def ad_network_callback(
        user_id: Optional[str] = Query(None, description="device id passed to the ad SDK"),
        custom_data: Optional[str] = Query(None, description="ad session id"),
        transaction_id: Optional[str] = Query(None),
        svc: RewardService = Depends(get_service),
    ):
        # the network retries anything but a 200, whatever the outcome
        svc.handle_network_callback(user_id, custom_data, transaction_id=transaction_id)
        return "ok"

    @app.get("/devices/{device_id}/ledger", response_model=LedgerHistoryResponse, tags=["Rewards"])
    def get_device_ledger(
        device_id: str,
        limit: int = Query(50, ge=1, le=500),
        offset: int = Query(0, ge=0),
        svc: RewardService = Depends(get_service),
    ) -> LedgerHistoryResponse:
        return svc.get_history(device_id, limit, offset)

    @app.get("/stats", response_model=StatsResponse, tags=["Admin"])
    def get_stats(
        x_admin_key: Optional[str] = Header(None),
        svc: RewardService = Depends(get_service),
    ) -> StatsResponse:
        try:
            return svc.get_stats(x_admin_key)
        except UnauthorizedError:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)
