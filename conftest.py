"""Root conftest: override DB to SQLite for tests."""

import os

os.environ.setdefault("DEAL_FINDER_DB_URL", "sqlite:///:memory:")
