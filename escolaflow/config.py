import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

DB_URL = os.getenv("DB_URL", f"sqlite:///{(BASE_DIR / 'escolaflow.db').as_posix()}")

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
GEMINI_AUDIO_MODEL = os.getenv("GEMINI_AUDIO_MODEL", "gemini-2.0-flash")
GEMINI_URL = os.getenv(
    "GEMINI_URL",
    "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent",
)
USE_MOCK_LLM = os.getenv("USE_MOCK_LLM", "false").lower() == "true"
LLM_TIMEOUT = float(os.getenv("LLM_TIMEOUT", "120"))

EVOLUTION_API_URL = os.getenv("EVOLUTION_API_URL", "")
EVOLUTION_API_KEY = os.getenv("EVOLUTION_API_KEY", "")
EVOLUTION_INSTANCE_NAME = os.getenv("EVOLUTION_INSTANCE_NAME", "zap")
WHATSAPP_COUNTRY_CODE = os.getenv("WHATSAPP_COUNTRY_CODE", "55")
NOTIFICATIONS_ENABLED = os.getenv("NOTIFICATIONS_ENABLED", "true").lower() == "true"
NOTIFY_TIMEOUT = float(os.getenv("NOTIFY_TIMEOUT", "15"))

SCHOOL_NAME = os.getenv("SCHOOL_NAME", "Escola Estadual Virgílio Capoani")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
