import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pos_api.core.config import settings
from pos_api.core.errors import register_exception_handlers
from pos_api.core.logging import configure_logging
from pos_api.db.session import Database
from pos_api.routers import auth, cash, categories, customers, deliveries, products, sales

logger = logging.getLogger(__name__)


def create_app(database: Database | None = None) -> FastAPI:
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "database", None) is None:
            app.state.database = Database(settings.database_url)
        if settings.create_schema:
            app.state.database.create_schema()
        logger.info("POS API started")
        yield
        app.state.database.dispose()
        logger.info("POS API stopped")

    app = FastAPI(title="Almacén POS API", version="0.1.0", lifespan=lifespan)
    app.state.database = database

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    for router in (auth.router, products.router, categories.router, customers.router, sales.router,
                   deliveries.router, cash.router):
        app.include_router(router)

    @app.get("/health")
    def health():
        return {"success": True, "status": "ok"}

    return app


app = create_app()
