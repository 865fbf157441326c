import hmac
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request, Header
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from chatter.config import CredentialStore, Settings, get_settings
from chatter.logging_config import setup_logging
from chatter.services.backends import create_backend
from chatter.services.errors import ConfigurationError
from chatter.services.model_bridge import ModelBridge
from chatter.services.workspace import FileWorkspaceProvider
from chatter.telegram_bot.handlers import CommandRouter
from chatter.telegram_bot.models import Update
from chatter.telegram_bot.telegram_api import TelegramClient

VERSION = "0.1.0"


def verify_secret(received: Optional[str], expected: str) -> bool:
    """Constant-time, byte-for-byte comparison of the shared secret."""
    if received is None:
        return False
    return hmac.compare_digest(received.encode("utf-8"), expected.encode("utf-8"))


def is_authorized_sender(update: Update, allowed_user_id: int) -> bool:
    """Only the configured user may talk to the bot; no sender means no access."""
    return update.sender_id is not None and update.sender_id == allowed_user_id


def create_app(
    settings: Optional[Settings] = None,
    bridge: Optional[ModelBridge] = None,
    telegram=None,
    workspace: Optional[FileWorkspaceProvider] = None,
) -> FastAPI:
    """
    Build the webhook app.

    Credentials are read once here; changing them requires a restart.
    Collaborators can be injected (tests); otherwise they are built from
    settings.
    """
    settings = settings or get_settings()
    logger = setup_logging(settings.log_level)

    credentials = CredentialStore(settings)
    missing = credentials.missing()
    if missing:
        raise ConfigurationError(f"Configuration incomplete, missing: {', '.join(missing)}")

    bot_token = credentials.get_bot_token()
    secret_token = credentials.get_secret_token()
    allowed_user_id = credentials.get_authorized_user_id()

    if workspace is None:
        workspace = FileWorkspaceProvider.from_settings(settings)
    if bridge is None:
        bridge = ModelBridge(
            create_backend(settings),
            workspace,
            timeout=settings.model_timeout_seconds,
        )
        if not bridge.available:
            logger.warning(f"No API key for model provider '{settings.model_provider}'; /ask will report it")
    if telegram is None:
        telegram = TelegramClient.from_settings(settings)

    router = CommandRouter(bridge, telegram, workspace)
    logger.info(f"Starting bot with token length: {len(bot_token)}")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Close the outbound HTTP client
        close = getattr(telegram, "close", None)
        if close is not None:
            await close()
        logger.info("Webhook server stopped")

    app = FastAPI(
        title="Chatter",
        description="Telegram relay for an AI coding assistant",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.bridge = bridge
    app.state.telegram = telegram
    app.state.router = router

    @app.get("/health")
    async def health_check():
        """Liveness probe, no authentication."""
        return {
            "status": "ok",
            "environment": settings.environment,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.post("/webhook")
    async def telegram_webhook(
        request: Request,
        x_webhook_secret_token: Optional[str] = Header(None),
        x_telegram_bot_api_secret_token: Optional[str] = Header(None),
    ):
        """
        Webhook endpoint for Telegram updates.

        The update is handled to completion before the response is sent;
        Telegram redelivers on its own if we answer 500.
        """
        received = x_webhook_secret_token if x_webhook_secret_token is not None else x_telegram_bot_api_secret_token
        if not verify_secret(received, secret_token):
            logger.warning("Invalid secret token received")
            return JSONResponse(status_code=401, content={"error": "Unauthorized"})

        try:
            update = Update.model_validate(await request.json())
        except (ValueError, ValidationError) as e:
            logger.warning(f"Rejected malformed update: {e}")
            return JSONResponse(status_code=403, content={"error": "Forbidden"})

        if not is_authorized_sender(update, allowed_user_id):
            logger.warning(f"Unauthorized access attempt from user {update.sender_id}")
            return JSONResponse(status_code=403, content={"error": "Forbidden"})

        try:
            logger.info(f"Processing update {update.update_id} from user {update.sender_id}")
            await router.route(update)
        except Exception:
            logger.error("Error processing update", exc_info=True)
            return JSONResponse(status_code=500, content={"error": "Internal error"})

        return {"ok": True}

    return app


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "chatter.main:create_app",
        factory=True,
        host=settings.server_host,
        port=settings.server_port,
    )
