import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 5000))
RELOAD = os.getenv("RELOAD", "false").lower() == "true"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]

MAX_VIEWERS = int(os.getenv("MAX_VIEWERS", 10))
DEFAULT_DISPLAY_NAME = os.getenv("DEFAULT_DISPLAY_NAME", "Anonymous")
OUTBOX_LIMIT = int(os.getenv("OUTBOX_LIMIT", 1000))

LIVENESS_TEXT = "Stream server is running successfully."
