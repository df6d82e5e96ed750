"""FastAPI application factory."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, Response, WebSocket
from fastapi.responses import JSONResponse

from fitpair.api.auth import (
    TOKEN_COOKIE_NAME,
    require_account_id,
    set_session_cookie,
    websocket_account_id,
)
from fitpair.api.schemas import (
    AccountPublic,
    AuthResponse,
    LoginRequest,
    LogEntryPayload,
    RegisterRequest,
    StatsPayload,
    SummaryPayload,
    UserDataResponse,
    WeightUpdate,
)
from fitpair.app_logging import configure_logging
from fitpair.containers import AppContainer
from fitpair.domain.aggregates import fold_entries, summarize
from fitpair.domain.errors import DuplicateKey, StorageError

# Policy violation close code for unauthenticated websocket clients.
_WS_POLICY_VIOLATION = 1008


def create_app(container: AppContainer) -> FastAPI:  # noqa: PLR0915
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await app.state.container.open_resources()
        logger.info(
            "Storage ready: backend=%s", app.state.container.storage.backend_name
        )
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        logger.error(
            "Storage failure: path=%s error=%s", request.url.path, exc, exc_info=exc
        )
        return JSONResponse(status_code=500, content={"error": "Server error"})

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/api/auth/register", response_model=AuthResponse)
    async def register(
        body: RegisterRequest, request: Request, response: Response
    ) -> AuthResponse | JSONResponse:
        """Create an account with default stats and start a session."""
        state_container: AppContainer = request.app.state.container
        try:
            account = await state_container.account_service.register(
                email=body.email, secret=body.password, display_name=body.name
            )
        except DuplicateKey:
            return JSONResponse(
                status_code=400, content={"error": "Email already exists"}
            )
        token = state_container.token_issuer.issue(account.id, account.email)
        set_session_cookie(response, token, state_container)
        return AuthResponse(user=AccountPublic.from_domain(account), token=token)

    @app.post("/api/auth/login", response_model=AuthResponse)
    async def login(
        body: LoginRequest, request: Request, response: Response
    ) -> AuthResponse | JSONResponse:
        """Start a session for valid credentials."""
        state_container: AppContainer = request.app.state.container
        account = await state_container.account_service.authenticate(
            body.email, body.password
        )
        if account is None:
            return JSONResponse(
                status_code=401, content={"error": "Invalid credentials"}
            )
        token = state_container.token_issuer.issue(account.id, account.email)
        set_session_cookie(response, token, state_container)
        return AuthResponse(user=AccountPublic.from_domain(account), token=token)

    @app.post("/api/auth/logout")
    async def logout(response: Response) -> dict[str, bool]:
        """Clear the session cookie."""
        response.delete_cookie(TOKEN_COOKIE_NAME, path="/")
        return {"success": True}

    @app.get("/api/auth/me", response_model=AuthResponse)
    async def me(
        request: Request, account_id: int = Depends(require_account_id)
    ) -> AuthResponse | JSONResponse:
        """Return the signed-in account."""
        state_container: AppContainer = request.app.state.container
        account = await state_container.account_service.get_account(account_id)
        if account is None:
            return JSONResponse(status_code=404, content={"error": "Account not found"})
        return AuthResponse(user=AccountPublic.from_domain(account))

    @app.get("/api/user/data", response_model=UserDataResponse)
    async def user_data(
        request: Request, account_id: int = Depends(require_account_id)
    ) -> UserDataResponse:
        """Return stats, all log entries and the derived budget."""
        state_container: AppContainer = request.app.state.container
        stats, entries = await state_container.tracker_service.load(account_id)
        return UserDataResponse(
            stats=StatsPayload.from_domain(stats),
            logs=[LogEntryPayload.from_domain(entry) for entry in entries],
            summary=SummaryPayload.from_domain(
                summarize(stats, fold_entries(entries))
            ),
        )

    @app.post("/api/logs")
    async def add_log(
        body: LogEntryPayload,
        request: Request,
        account_id: int = Depends(require_account_id),
    ) -> dict[str, bool]:
        """Persist a log entry and push it to the account's sessions."""
        state_container: AppContainer = request.app.state.container
        created = await state_container.tracker_service.append_entry(
            account_id, body.to_domain(account_id)
        )
        return {"success": True, "created": created}

    @app.post("/api/user/weight")
    async def update_weight(
        body: WeightUpdate,
        request: Request,
        account_id: int = Depends(require_account_id),
    ) -> dict[str, bool]:
        """Replace the current weight."""
        state_container: AppContainer = request.app.state.container
        updated = await state_container.tracker_service.update_weight(
            account_id, body.weight
        )
        return {"success": updated}

    @app.websocket("/api/stream")
    async def stream(websocket: WebSocket) -> None:
        """Push every newly stored entry of the signed-in account."""
        account_id = websocket_account_id(websocket)
        if account_id is None:
            await websocket.close(code=_WS_POLICY_VIOLATION)
            return
        state_container: AppContainer = websocket.app.state.container
        async with state_container.broadcaster.subscribe(account_id) as queue:
            await websocket.accept()
            logger.info("Stream subscriber connected: account_id=%s", account_id)
            disconnected = asyncio.create_task(_wait_for_disconnect(websocket))
            try:
                while True:
                    next_entry = asyncio.create_task(queue.get())
                    done, _ = await asyncio.wait(
                        {next_entry, disconnected},
                        return_when=asyncio.FIRST_COMPLETED,
                    )
                    if disconnected in done:
                        next_entry.cancel()
                        break
                    payload = LogEntryPayload.from_domain(next_entry.result())
                    await websocket.send_json(payload.model_dump(mode="json"))
            finally:
                disconnected.cancel()
                logger.info(
                    "Stream subscriber disconnected: account_id=%s", account_id
                )

    return app


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return
