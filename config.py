import os

from dotenv import load_dotenv

load_dotenv()


def _default_database_url():
    # Use the volume path when running on Modal
    if "MODAL_TASK_ID" in os.environ:
        return "sqlite:////data/decisions.db"
    current_dir = os.path.dirname(os.path.abspath(__file__))
    data_dir = os.path.join(current_dir, "assets", "data")
    os.makedirs(data_dir, exist_ok=True)
    return f"sqlite:///{os.path.join(data_dir, 'decisions.db')}"


DATABASE_URL = os.environ.get("DATABASE_URL") or _default_database_url()

GROQ_API_KEY = os.environ.get("GROQ_API_KEY")
GROQ_MODEL = os.environ.get("GROQ_MODEL", "llama-3.3-70b-versatile")
CEREBRAS_API_KEY = os.environ.get("CEREBRAS_API_KEY")
CEREBRAS_MODEL = os.environ.get("CEREBRAS_MODEL", "llama-3.3-70b")
ANALYSIS_TEMPERATURE = float(os.environ.get("ANALYSIS_TEMPERATURE", "0.1"))

SENTRY_DSN = os.environ.get("SENTRY_DSN")
PHOENIX_API_KEY = os.environ.get("PHOENIX_API_KEY")
PHOENIX_PROJECT = os.environ.get("PHOENIX_PROJECT", "clarity")

CORS_ORIGINS = os.environ.get(
    "CORS_ORIGINS", "http://localhost:3000,http://localhost:5173"
).split(",")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
JSON_LOGS = os.environ.get("JSON_LOGS", "true").lower() in ("1", "true", "yes")
