"""FastAPI application entry point for policy administration."""
from fastapi import Depends, FastAPI, status
from fastapi.responses import JSONResponse
from policy_adapter.api.deps import get_adapter
from policy_adapter.api.v1.router import api_router
from policy_adapter.core.logging_config import logger
from policy_adapter.services.adapter import Adapter, CachingAdapter

# Initialize logging
logger.info("Starting Casbin Policy Store")

# Initialize FastAPI app
app = FastAPI(
    title="Casbin Policy Store",
    description="Administration API over the SQL policy adapter and its Redis cache",
    version="1.0.0"
)

# Include API routes
app.include_router(api_router)
logger.info("API routes registered successfully")


@app.on_event("shutdown")
async def shutdown_event():
    """Release the store connection and cache client."""
    logger.info("Application shutting down")
    if get_adapter.cache_info().currsize:
        get_adapter().close()


@app.get("/", tags=["Health"])
def read_root():
    """Basic health check endpoint."""
    return {"status": "Policy Store is Operational", "docs": "/docs"}


@app.get("/health", tags=["Health"], status_code=status.HTTP_200_OK)
def health_check(adapter: Adapter = Depends(get_adapter)):
    """Detailed health check endpoint with store and cache status."""
    health_status = {
        "status": "healthy",
        "service": "Casbin Policy Store",
        "version": "1.0.0",
        "checks": {}
    }

    # Database connectivity check
    try:
        adapter.store.ping()
        health_status["checks"]["database"] = {
            "status": "healthy",
            "message": "Database connection successful",
            "table": adapter.store.table_name
        }
    except Exception as e:
        health_status["status"] = "degraded"
        health_status["checks"]["database"] = {
            "status": "unhealthy",
            "message": f"Database connection failed: {str(e)}"
        }
        logger.error(f"Database health check failed: {e}")

    # Cache status check
    if isinstance(adapter, CachingAdapter):
        if adapter.cache.ping():
            health_status["checks"]["cache"] = {
                "status": "healthy",
                "message": "Cache operational",
                "prefix": adapter.cache.prefix
            }
        else:
            # Loads still work without the cache, only slower
            health_status["checks"]["cache"] = {
                "status": "warning",
                "message": "Cache unreachable, serving from database"
            }
    else:
        health_status["checks"]["cache"] = {
            "status": "disabled",
            "message": "No cache configured"
        }

    # Return appropriate status code
    status_code = status.HTTP_200_OK
    if health_status["status"] == "degraded":
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return JSONResponse(content=health_status, status_code=status_code)
