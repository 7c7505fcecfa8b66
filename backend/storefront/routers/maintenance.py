# storefront/routers/maintenance.py
import logging

from fastapi import APIRouter, Depends

from storefront.config import get_db
from storefront.core.errors import server_error
from storefront.core.security import get_current_admin
from storefront.services.maintenance import cleanup_old_data

logger = logging.getLogger("storefront.maintenance")

admin_router = APIRouter(prefix="/maintenance", tags=["Admin Maintenance"], dependencies=[Depends(get_current_admin)])


@admin_router.post("/cleanup")
def run_cleanup(db=Depends(get_db)):
    """Runs the weekly stale-data sweep immediately."""
    try:
        removed = cleanup_old_data(db)
    except Exception as e:
        return server_error("Error during cleanup", e)
    return {"message": "Cleanup completed", **removed}
