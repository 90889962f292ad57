import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__, database, models
from .cache import CacheVersions
from .exceptions import StockroomError
from .routers import activity, borrowed, dashboard, defected, inventory, reports, used_given, users

# Environment variables
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create database tables
    models.Base.metadata.create_all(bind=database.engine)
    yield


# Initialize FastAPI app
app = FastAPI(
    title="Stockroom",
    description="Inventory, borrowed, used/given and defected items for construction materials",
    version=__version__,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.cache = CacheVersions()


@app.exception_handler(StockroomError)
async def stockroom_error_handler(request: Request, exc: StockroomError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected ({exc.code}): {exc}")
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc), "code": exc.code})


@app.get("/", tags=["Root"])
def read_root():
    """Root endpoint for health checks"""
    return {"status": "ok", "service": "stockroom"}


app.include_router(inventory.router)
app.include_router(defected.router)
app.include_router(borrowed.router)
app.include_router(used_given.router)
app.include_router(activity.router)
app.include_router(dashboard.router)
app.include_router(reports.router)
app.include_router(users.router)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("stockroom.main:app", host="0.0.0.0", port=8000, reload=True)
