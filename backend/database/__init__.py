from .connection import (
    Base, build_engine, build_session_factory, get_engine, get_session_factory, init_db
)

# Import link store models to ensure they are registered with Base
from .link_models import SyncLinkDB, SyncStatus

__all__ = [
    'Base', 'build_engine', 'build_session_factory', 'get_engine',
    'get_session_factory', 'init_db',
    # Link store models
    'SyncLinkDB', 'SyncStatus',
]
