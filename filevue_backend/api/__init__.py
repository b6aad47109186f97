"""HTTP routers. Each factory takes the app's state and guards."""
from .auth import create_auth_router
from .deps import AppState, Guards
from .files import create_file_router, create_write_router
from .meta import create_meta_router
from .search import create_search_router
from .shares import create_share_router

__all__ = [
    "AppState",
    "Guards",
    "create_auth_router",
    "create_file_router",
    "create_meta_router",
    "create_search_router",
    "create_share_router",
    "create_write_router",
]
