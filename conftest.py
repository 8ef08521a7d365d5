"""Root pytest configuration, loaded before any application module."""

import os

# Settings are read once per process; pin the store to in-memory SQLite and
# keep provider keys empty so no test reaches a real gateway.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("GOOGLE_MAPS_API_KEY", "")
os.environ.setdefault("AI_GATEWAY_API_KEY", "")
