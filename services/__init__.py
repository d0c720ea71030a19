"""
services - Business-logic layer sitting between API/worker and DB.
"""

from services.import_store import ImportStore                    # noqa: F401
from services.library_service import LibraryWriter              # noqa: F401
from services.cache_service import TwoTierCache                 # noqa: F401
from services.catalog_client import HardcoverClient             # noqa: F401
