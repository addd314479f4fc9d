"""Commerce FastAPI application.

Web server exposing checkout, orders, payments and provider webhooks.
Commands are processed synchronously within each request.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV selects the configuration overlay from domain.toml.
from commerce.api.application import create_api
from commerce.config import Settings
from commerce.domain import commerce
from commerce.wiring import build_container

commerce.init()

# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------
# Built once at process start; settings come from the environment.
container = build_container(Settings.from_env())

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = create_api(container, commerce)
