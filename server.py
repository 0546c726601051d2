# Deploy: set TELEGRAM_BOT_TOKEN (and optionally WEBHOOK_URL, WEBHOOK_SECRET, API_KEY) and run 'uvicorn server:app --host=0.0.0.0 --port=8000'
import logging
import os

from dotenv import load_dotenv

from tardy_pulse.api import create_app
from tardy_pulse.config import load_settings

load_dotenv()

logging.basicConfig(level=os.getenv("LOG_LEVEL", "info").upper(), handlers=[logging.StreamHandler()])
logger = logging.getLogger("tardy_pulse")

settings = load_settings()
if not settings.webhook_secret:
    logger.warning("WEBHOOK_SECRET is not set. The /webhook endpoint will accept unsigned updates.")
if not settings.api_key:
    logger.warning("API_KEY is not set. /api/stats/clear-cache is open to any caller.")

app = create_app(settings)

__all__ = ["app"]
