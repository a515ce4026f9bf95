"""FastAPI app entrypoint for scout-service."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from scout_service.api.auth import IdentityVerifier, require_wallet
from scout_service.api.middleware import RequestIdMiddleware
from scout_service.api.responses import (
    INTERNAL_ERROR,
    error_response,
    install_exception_handlers,
    success_response,
)
from scout_service.api.views import (
    CreatedScout,
    CreateScoutRequest,
    RunHistory,
    RunView,
    ScoutStatusView,
)
from scout_service.browser.client import BrowserSessionClient
from scout_service.config.settings import Settings, get_settings
from scout_service.http import Transport, build_transport
from scout_service.mcp.client import ScoutApiClient
from scout_service.mcp.server import McpRequest, McpServer, ScoutApi
from scout_service.payments.paywall import Paywall, require_payment
from scout_service.payments.solana import SolanaRpc
from scout_service.payments.vault import VaultGateProvider
from scout_service.results.processor import build_result_processor
from scout_service.scouts.lifecycle import BrowserProvider, ResultProcessor, ScoutLifecycle
from scout_service.storage.base import ScoutStorage
from scout_service.storage.models import ACTIVE_STATUSES
from scout_service.storage.postgres import PostgresScoutStorage

logger = logging.getLogger(__name__)


def _ensure_runtime_state(
    app: FastAPI,
    *,
    settings: Settings,
    storage_override: ScoutStorage | None,
    transport: Transport,
    llm_transport: Transport,
    browser: BrowserProvider | None,
    result_processor: ResultProcessor | None,
    rpc: SolanaRpc | None,
    scout_api: ScoutApi | None,
) -> None:
    if not hasattr(app.state, "settings"):
        app.state.settings = settings

    if not hasattr(app.state, "storage"):
        database_url = settings.resolved_database_url()
        if storage_override is None and not database_url:
            raise RuntimeError(
                "Missing database URL. Set SCOUT_SERVICE_DATABASE_URL "
                "or SCOUT_DATABASE_URL before starting the app."
            )
        app.state.storage = storage_override or PostgresScoutStorage(database_url)
        app.state.storage.migrate()

    if not hasattr(app.state, "lifecycle"):
        vault_gate = VaultGateProvider(settings, transport=transport, rpc=rpc)
        app.state.vault_gate = vault_gate
        app.state.paywall = Paywall(settings=settings, transport=transport)
        app.state.identity = IdentityVerifier(
            base_url=settings.identity_api_url,
            transport=transport,
        )
        app.state.lifecycle = ScoutLifecycle(
            storage=app.state.storage,
            browser=browser
            or BrowserSessionClient(
                api_key=settings.resolved_browser_use_api_key(),
                base_url=settings.browser_use_base_url,
                transport=transport,
            ),
            result_processor=result_processor
            or build_result_processor(
                settings,
                transport=transport,
                gate_provider=vault_gate,
                llm_transport=llm_transport,
            ),
        )
        app.state.mcp = McpServer(
            scout_api
            or ScoutApiClient(
                base_url=settings.resolved_api_base_url(),
                transport=transport,
                gate_provider=vault_gate,
            )
        )


def create_app(
    *,
    storage: ScoutStorage | None = None,
    settings_override: Settings | None = None,
    transport: Transport | None = None,
    browser: BrowserProvider | None = None,
    result_processor: ResultProcessor | None = None,
    rpc: SolanaRpc | None = None,
    scout_api: ScoutApi | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()
    outbound = transport or build_transport(timeout_s=settings.http_timeout_s)
    llm_outbound = transport or build_transport(timeout_s=settings.llm_timeout_s)
    started_at = time.monotonic()

    def _ensure(app: FastAPI) -> None:
        _ensure_runtime_state(
            app,
            settings=settings,
            storage_override=storage,
            transport=outbound,
            llm_transport=llm_outbound,
            browser=browser,
            result_processor=result_processor,
            rpc=rpc,
            scout_api=scout_api,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _ensure(app)
        yield

    app_lifespan = lifespan if storage is None else None
    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=app_lifespan)
    app.add_middleware(RequestIdMiddleware)
    install_exception_handlers(app)

    # Keep test paths reliable when lifespan is not executed by the client.
    if storage is not None:
        _ensure(app)

    def _lifecycle(request: Request) -> ScoutLifecycle:
        if not hasattr(request.app.state, "lifecycle"):
            _ensure(request.app)
        return request.app.state.lifecycle

    @app.get("/health")
    def health(request: Request) -> JSONResponse:
        return success_response(
            request,
            {
                "status": "healthy",
                "service": settings.app_name,
                "timestamp": int(time.time() * 1000),
                "version": settings.app_version,
                "uptime": round(time.monotonic() - started_at, 3),
            },
        )

    @app.post("/api/scouts/create")
    def create_scout(payload: CreateScoutRequest, request: Request) -> JSONResponse:
        lifecycle = _lifecycle(request)
        wallet = require_wallet(request)
        lifecycle.validate_new_scout(
            name=payload.name,
            instructions=payload.instructions,
            payer=wallet,
        )
        require_payment(request)
        scout = lifecycle.create(
            name=payload.name,
            instructions=payload.instructions,
            result_action=payload.result_action,
            payer=wallet,
        )
        return success_response(request, CreatedScout.from_record(scout).to_wire())

    @app.get("/api/scouts/{scout_id}/status")
    def scout_status(scout_id: str, request: Request) -> JSONResponse:
        scout = _lifecycle(request).refresh(scout_id)
        return success_response(request, ScoutStatusView.from_record(scout).to_wire())

    @app.post("/api/scouts/{scout_id}/run")
    def run_scout(scout_id: str, request: Request) -> JSONResponse:
        lifecycle = _lifecycle(request)
        wallet = require_wallet(request)
        lifecycle.ensure_can_run(scout_id, payer=wallet)
        require_payment(request)
        run = lifecycle.start_run(scout_id, payer=wallet)
        return success_response(request, RunView.from_record(run).to_wire())

    @app.get("/api/scouts/{scout_id}/runs")
    def scout_runs(scout_id: str, request: Request) -> JSONResponse:
        runs = _lifecycle(request).list_runs(scout_id)
        current = next((run for run in runs if run.status in ACTIVE_STATUSES), None)
        history = RunHistory(
            scout_id=scout_id,
            current_run_id=current.run_id if current else None,
            runs=[RunView.from_record(run) for run in runs],
        )
        return success_response(request, history.to_wire())

    @app.get("/api/scouts/{scout_id}/runs/{run_id}/status")
    def run_status(scout_id: str, run_id: str, request: Request) -> JSONResponse:
        run = _lifecycle(request).refresh_run(scout_id, run_id)
        return success_response(request, RunView.from_record(run).to_wire())

    @app.post("/api/mcp")
    def mcp(payload: McpRequest, request: Request) -> JSONResponse:
        _lifecycle(request)
        result = request.app.state.mcp.handle(payload)
        if result.get("isError"):
            content = result.get("content") or [{}]
            return error_response(
                request,
                status_code=500,
                code=INTERNAL_ERROR,
                message=content[0].get("text") or "Tool execution failed",
            )
        return success_response(request, result)

    return app


app = create_app()
