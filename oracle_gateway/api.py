"""FastAPI control surface.

Routes are thin calls into the job scheduler and the coin orchestrator. Every
``/api/oracle`` route checks ``X-Internal-API-Key`` when the server requires it.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from oracle_gateway.notify.discord import AlertKind
from oracle_gateway.notify.dispatch import NotificationDispatcher
from oracle_gateway.orchestration import CoinOrchestrator, JobKind, JobScheduler
from oracle_gateway.settings import Settings

logger = logging.getLogger(__name__)


class JobControlRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    coin_name: str | None = Field(default=None, alias="coinName")
    kind: JobKind | None = None


class UniqueIdRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    unique_id: str | None = Field(default=None, alias="uniqueId")


class SignerPublicKeyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    signer_public_key: str | None = Field(default=None, alias="signerPubKey")


class ApiError(Exception):
    def __init__(self, status_code: int, error: str, message: str, code: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.error = error
        self.message = message
        self.code = code


async def require_internal_api_key(
    request: Request,
    x_internal_api_key: str | None = Header(default=None, alias="X-Internal-API-Key"),
) -> None:
    """Reject requests without a valid internal API key (401 missing, 403 invalid)."""
    settings: Settings = request.app.state.settings
    if not settings.server.require_api_key:
        return
    if not x_internal_api_key:
        raise ApiError(401, "Unauthorized", "Internal API key is required", "MISSING_API_KEY")
    if x_internal_api_key != settings.server.internal_api_key:
        raise ApiError(403, "Forbidden", "Invalid internal API key", "INVALID_API_KEY")
    logger.debug(f"API key validation successful for {request.method} {request.url.path}")


def _jobs(request: Request) -> JobScheduler:
    return request.app.state.jobs


def _orchestrator(request: Request) -> CoinOrchestrator:
    return request.app.state.orchestrator


def _supported_coin(request: Request, coin_name: str | None) -> str | None:
    if not coin_name:
        return None
    coin = coin_name.upper()
    coins = _jobs(request).coins
    if coin not in coins:
        raise ApiError(400, "Unsupported coin", f"Supported coins: {', '.join(coins)}")
    return coin


def _report_failure(request: Request, operation: str, error: Exception) -> None:
    logger.error(f"API error: {operation}: {error}", exc_info=True)
    notifications: NotificationDispatcher | None = request.app.state.notifications
    if notifications is not None:
        notifications.emit(
            AlertKind.ERROR,
            {"error": error, "context": {"operation": operation, "endpoint": request.url.path}},
        )


def _forbid_in_production(request: Request) -> None:
    settings: Settings = request.app.state.settings
    if settings.is_production:
        raise ApiError(
            403,
            "Forbidden in production",
            "Enclave registration is not allowed in production environment",
        )


oracle_router = APIRouter(
    prefix="/api/oracle", dependencies=[Depends(require_internal_api_key)]
)


@oracle_router.get("/status")
async def get_status(request: Request) -> dict[str, Any]:
    return {
        "initialized": True,
        "cron_job": _jobs(request).status(),
        "supported_coins": _jobs(request).coins,
    }


@oracle_router.post("/set-sgx-unique-id")
async def set_sgx_unique_id(request: Request, body: UniqueIdRequest | None = None) -> Any:
    _forbid_in_production(request)
    try:
        result = await _orchestrator(request).set_unique_id(body.unique_id if body else None)
    except Exception as e:
        _report_failure(request, "set_sgx_unique_id", e)
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "Failed to set SGX unique id", "error": str(e)},
        )
    return {"success": True, "message": "SGX unique id set successfully", "data": result}


@oracle_router.post("/set-signer-public-key")
async def set_signer_public_key(
    request: Request, body: SignerPublicKeyRequest | None = None
) -> Any:
    _forbid_in_production(request)
    try:
        result = await _orchestrator(request).set_signer_public_key(
            body.signer_public_key if body else None
        )
    except Exception as e:
        _report_failure(request, "set_signer_public_key", e)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": "Failed to set signer public key",
                "error": str(e),
            },
        )
    return {"success": True, "message": "Signer public key set successfully", "data": result}


@oracle_router.post("/set-sgx-data/{coin_name}")
async def set_sgx_data(request: Request, coin_name: str) -> Any:
    coin = _supported_coin(request, coin_name)
    assert coin is not None
    result = await _jobs(request).trigger(coin)
    if not result.succeeded:
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": "Failed to set SGX data",
                "error": result.error_message,
                "data": result.to_dict(),
            },
        )
    return {
        "success": True,
        "message": f"SGX data set successfully for {coin}",
        "data": result.to_dict(),
    }


@oracle_router.post("/set-sgx-data-all")
async def set_sgx_data_all(request: Request) -> dict[str, Any]:
    outcome = await _jobs(request).trigger_all()
    results, errors = outcome["results"], outcome["errors"]
    return {
        "success": not errors,
        "message": f"Processed {len(results)} coins successfully, {len(errors)} failed",
        "data": outcome,
    }


@oracle_router.post("/cron/start")
async def start_jobs(request: Request, body: JobControlRequest | None = None) -> dict[str, Any]:
    body = body or JobControlRequest()
    coin = _supported_coin(request, body.coin_name)
    started = _jobs(request).start(coin, body.kind)
    return {
        "success": True,
        "message": "Cron job started successfully" if started else "No cron job started",
        "data": {"started": [f"{name}:{kind.value}" for name, kind in started]},
    }


@oracle_router.post("/cron/stop")
async def stop_jobs(request: Request, body: JobControlRequest | None = None) -> dict[str, Any]:
    body = body or JobControlRequest()
    coin = _supported_coin(request, body.coin_name)
    stopped = _jobs(request).stop(coin, body.kind)
    return {
        "success": True,
        "message": "Cron job stopped successfully",
        "data": {"stopped": [f"{name}:{kind.value}" for name, kind in stopped]},
    }


@oracle_router.get("/cron/status")
async def job_status(
    request: Request, coinName: str | None = None, kind: JobKind | None = None
) -> dict[str, Any]:
    coin = _supported_coin(request, coinName)
    return {
        "success": True,
        "message": "Cron job status retrieved successfully",
        "data": _jobs(request).status(coin, kind),
    }


@oracle_router.get("/coins")
async def get_coins(request: Request) -> dict[str, Any]:
    coins = _jobs(request).coins
    return {"success": True, "data": {"coins": coins, "count": len(coins)}}


@oracle_router.get("/stats")
async def get_stats(request: Request) -> dict[str, Any]:
    return {
        "success": True,
        "message": "Service statistics retrieved successfully",
        "data": _jobs(request).service_stats(),
    }


def create_app(
    jobs: JobScheduler,
    orchestrator: CoinOrchestrator,
    settings: Settings,
    notifications: NotificationDispatcher | None = None,
    lifespan: Any = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        jobs: Job scheduler backing the cron and trigger routes
        orchestrator: Coin orchestrator backing the registration routes
        settings: Loaded settings (environment, API key policy)
        notifications: Optional dispatcher for error alerts raised by routes
        lifespan: Optional async context manager injected by main.py
    """
    app = FastAPI(title="Oracle Gateway", lifespan=lifespan)
    app.state.jobs = jobs
    app.state.orchestrator = orchestrator
    app.state.settings = settings
    app.state.notifications = notifications
    app.state.started_at = time.monotonic()

    @app.exception_handler(ApiError)
    async def _api_error(request: Request, exc: ApiError) -> JSONResponse:
        content: dict[str, Any] = {"success": False, "error": exc.error, "message": exc.message}
        if exc.code:
            content["code"] = exc.code
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(ValueError)
    async def _value_error(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(
            status_code=400, content={"success": False, "error": "Bad request", "message": str(exc)}
        )

    @app.get("/api/health")
    async def health(request: Request) -> dict[str, Any]:
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - request.app.state.started_at, 3),
        }

    app.include_router(oracle_router)
    return app
