"""uvicorn entrypoint for the BananaPod gateway.

    cd apps/api && uvicorn main:app --reload

Settings come from the environment (see bananapod.config). Local runs
without REDIS_URL or Supabase credentials fall back to in-memory stores.
Building the app here keeps `bananapod.app` importable by tests with no
environment configured.
"""

from bananapod.app import add_request_id_middleware, create_app
from bananapod.config import Environment, get_settings
from bananapod.logging import configure_logging

settings = get_settings()
if settings.bananapod_env == Environment.LOCAL:
    configure_logging(json_format=False)

app = create_app(settings)
add_request_id_middleware(app)

__all__ = ["app"]
