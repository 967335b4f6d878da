import os

import structlog
from phoenix.otel import register

from config import PHOENIX_API_KEY, PHOENIX_PROJECT

logger = structlog.get_logger(__name__)


def set_hosted_phoenix_instrumentation():
    """Set tracing instrumentation for Phoenix and Arize. Returns False when
    no API key is configured."""
    if not PHOENIX_API_KEY:
        logger.info("phoenix_tracing_disabled")
        return False
    os.environ["OTEL_EXPORTER_OTLP_HEADERS"] = f"api_key={PHOENIX_API_KEY}"
    os.environ["PHOENIX_CLIENT_HEADERS"] = f"api_key={PHOENIX_API_KEY}"
    os.environ.setdefault("PHOENIX_COLLECTOR_ENDPOINT", "https://app.phoenix.arize.com")
    # register picks up the endpoint and headers from the environment
    register(project_name=PHOENIX_PROJECT, batch=True, auto_instrument=True)
    logger.info("phoenix_tracing_enabled", project=PHOENIX_PROJECT)
    return True
