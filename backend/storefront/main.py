"""
# `storefront/main.py` - Application entry point

## Application
- `FastAPI` instance with JSON logging (`setup_logging`) and the
  `RequestLoggingMiddleware` correlation id (`X-Request-ID`).
- CORS from `settings.allowed_origins` (comma-separated list or `*`).
- Exception handlers: `AppException` → `{"message": ...}`, request validation →
  `{"message": "Validation failed", "errors": {...}}`.

## Routers
**Public:** `/products`, `/delivery-locations`, `/cod-limit`, `/cart`, `/orders`,
`/payhere`, `/health`

**Admin (prefix `/admin`):** `/products`, `/delivery-locations`, `/cod-limit`,
`/orders`, `/maintenance`

## Scheduler
- **Library:** APScheduler (`AsyncIOScheduler`)
- **Job:** `run_scheduled_cleanup` (stale carts + abandoned card orders)
- **Period:** weekly, Sunday 03:00 UTC, only when `settings.cleanup_enabled`

`startup` starts the scheduler, `shutdown` stops it.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storefront.config import settings
from storefront.core.errors import register_exception_handlers
from storefront.core.logging_config import RequestLoggingMiddleware, setup_logging
from storefront.routers import carts, cod_limit, delivery_locations, maintenance, orders, payhere, products
from storefront.services.maintenance import run_scheduled_cleanup

SERVICE_NAME = "storefront"

logger = setup_logging(SERVICE_NAME, settings.log_level)

scheduler = AsyncIOScheduler(timezone="UTC")

# Initialize FastAPI app
app = FastAPI(
    title="Storefront API",
    description="Backend API for the cake shop: catalog, carts, checkout and PayHere payments.",
    version="1.0.0",
    debug=settings.debug,
    redirect_slashes=False,
)

app.add_middleware(RequestLoggingMiddleware, service_name=SERVICE_NAME)

# Configure CORS (allow front-end domain or all origins as specified)
allow_origins = [origin.strip() for origin in settings.allowed_origins.split(',')] if settings.allowed_origins else ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include public routers
app.include_router(products.router)
app.include_router(delivery_locations.router)
app.include_router(cod_limit.router)
app.include_router(carts.router)
app.include_router(orders.router)
app.include_router(payhere.router)

# Include admin routers (with prefix /admin)
app.include_router(products.admin_router, prefix="/admin")
app.include_router(delivery_locations.admin_router, prefix="/admin")
app.include_router(cod_limit.admin_router, prefix="/admin")
app.include_router(orders.admin_router, prefix="/admin")
app.include_router(maintenance.admin_router, prefix="/admin")


@app.get("/health", tags=["Health"])
def health():
    return {"status": "ok"}


@app.on_event("startup")
async def _startup_scheduler():
    if not settings.cleanup_enabled:
        logger.info("Maintenance cleanup disabled")
        return
    scheduler.add_job(
        run_scheduled_cleanup,
        "cron",
        day_of_week="sun",
        hour=3,
        id="maintenance-cleanup",
        replace_existing=True,
    )
    if not scheduler.running:
        scheduler.start()
    logger.info("Scheduler started: weekly maintenance cleanup")


@app.on_event("shutdown")
async def _shutdown_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)


# Run the app directly with uvicorn (for development)
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("storefront.main:app", host="0.0.0.0", port=8000, reload=True)
