from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from stock_management.config import get_settings
from stock_management.database import Database
from stock_management.exceptions import StorageFailureError
from stock_management.api import products, stock, health

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.

    Opens the database handle (unless one was injected on ``app.state``)
    and closes it again on shutdown.
    """
    # Startup
    logger.info("Starting up application...")

    database = getattr(app.state, "database", None)
    owns_database = database is None
    if owns_database:
        database = Database(settings.DATABASE_URL)
        app.state.database = database
    database.open()

    logger.info("Creating database tables...")
    database.create_tables()
    logger.info("Database tables created successfully")

    yield

    # Shutdown
    logger.info("Shutting down application...")
    if owns_database:
        database.close()
        del app.state.database


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="""
    Inventory and sales tracking API:

    - **Product Management**: CRUD operations for the product catalog
    - **Sales**: Atomic stock decrement + sale record, safe under concurrency
    - **CSV Import/Export**: Reconcile stock files against the catalog by (name, category)
    - **Reporting**: Stock overview and sales dashboard

    ## Features

    ### Stock Management & Race Condition Handling
    Every sale locks its product row (`SELECT ... FOR UPDATE`, or
    `BEGIN IMMEDIATE` on SQLite) before checking and decrementing stock.
    When two sales race for the last items, only one succeeds.

    ### Background Processing
    Large CSV imports can be handed to a Celery worker.

    ### Caching
    Product details and the category list are cached in Redis and
    invalidated on every write.
    """,
    version=settings.APP_VERSION,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StorageFailureError)
def storage_failure_handler(request: Request, exc: StorageFailureError):
    """The unit of work was rolled back; the client may retry."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


# Include API routers
app.include_router(health.router, prefix="/api/v1")
app.include_router(products.router, prefix="/api/v1")
app.include_router(stock.router, prefix="/api/v1")


@app.get("/", tags=["Root"])
def root():
    """Root endpoint with API information."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "redoc": "/redoc",
        "health": "/api/v1/health"
    }
