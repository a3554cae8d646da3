"""
FastAPI webhook for the Telegram divination bot.

Routes (prefixed by SAFE_PATH):
    POST /endpoint           Telegram webhook (secret header required)
    GET  /registerWebhook    point Telegram at this deployment
    GET  /unRegisterWebhook  remove the webhook
"""
import logging
from typing import Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from config import Settings, get_settings
from handlers import DivinationBot
from telegram_api import TelegramBotAPI, describe_result
from telegram_types import Update

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


def create_app(settings: Optional[Settings] = None, telegram: Optional[TelegramBotAPI] = None) -> FastAPI:
    """Build the app; routes depend on SAFE_PATH so they are registered here."""
    settings = settings or get_settings()
    telegram = telegram or TelegramBotAPI(settings.bot_token)
    bot = DivinationBot(settings, telegram)

    app = FastAPI(
        title="占卜机器人 Webhook",
        description="Telegram 小六壬 + 干支四柱占卜机器人",
        version="v1.0.0",
    )
    app.state.settings = settings
    app.state.bot = bot

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {"status": "ok", "message": "divination bot is running"}

    async def handle_webhook(request: Request, background_tasks: BackgroundTasks):
        """
        Verify the secret header, parse the Update and answer at once.

        Processing (AI call, message edits) runs after the response is sent,
        so Telegram does not retry slow updates.
        """
        if request.headers.get(SECRET_HEADER) != settings.bot_secret:
            raise HTTPException(status_code=403, detail="Unauthorized")

        try:
            update = Update.model_validate(await request.json())
        except (ValueError, ValidationError) as e:
            raise HTTPException(status_code=400, detail=f"Invalid update: {e}")

        background_tasks.add_task(bot.on_update, update)
        return PlainTextResponse("Ok")

    def register_webhook(request: Request):
        webhook_url = f"{request.url.scheme}://{request.url.hostname}{settings.webhook_path}"
        result = telegram.set_webhook(webhook_url, settings.bot_secret)
        logger.info("setWebhook %s -> %s", webhook_url, result.get("ok"))
        return PlainTextResponse(describe_result(result))

    def unregister_webhook():
        result = telegram.set_webhook("")
        logger.info("setWebhook (remove) -> %s", result.get("ok"))
        return PlainTextResponse(describe_result(result))

    app.add_api_route(settings.webhook_path, handle_webhook, methods=["POST"])
    app.add_api_route(settings.register_webhook_path, register_webhook, methods=["GET"])
    app.add_api_route(settings.unregister_webhook_path, unregister_webhook, methods=["GET"])
    return app


app = create_app()


# --- Run with: uvicorn main:app --reload ---
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
