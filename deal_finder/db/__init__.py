"""Database layer: models and session management."""
from deal_finder.db.models import (
    AnalysisRecord,
    Base,
    ListingCacheEntry,
    Opportunity,
    RegistryBuilding,
    RunMeta,
)
from deal_finder.db.session import (
    SessionLocal,
    clear_db,
    get_db,
    get_engine,
    init_db,
    reset_engine,
)

__all__ = [
    # Models
    "Base",
    "ListingCacheEntry",
    "AnalysisRecord",
    "Opportunity",
    "RegistryBuilding",
    "RunMeta",
    # Session management
    "SessionLocal",
    "get_engine",
    "get_db",
    "init_db",
    "clear_db",
    "reset_engine",
]
