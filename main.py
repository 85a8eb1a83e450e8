import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pymongo.database import Database

import auth_routes
import product_routes
import user_routes
from config import Settings
from database import USERS, connect, create_document, ensure_indexes, update_document
from errors import register_exception_handlers
from schemas import Role, User
from security import TokenService, hash_password

logger = logging.getLogger(__name__)
request_logger = logging.getLogger("catalog.requests")

_UNSET = object()


def seed_admin(db: Database, settings: Settings) -> None:
    """Make sure the operator-configured admin account exists."""
    if not (settings.admin_email and settings.admin_password):
        return
    email = settings.admin_email.strip().lower()
    existing = db[USERS].find_one({"email": email})
    if existing:
        if existing.get("role") != Role.ADMIN.value or not existing.get("is_active", True):
            update_document(db, USERS, existing["_id"], {"role": Role.ADMIN.value, "is_active": True})
            logger.info("Promoted %s to admin", email)
        return
    create_document(db, USERS, User(
        name="Admin",
        email=email,
        password_hash=hash_password(settings.admin_password, settings.bcrypt_rounds),
        role=Role.ADMIN,
    ))
    logger.info("Seeded admin account %s", email)


def create_app(settings: Optional[Settings] = None, db=_UNSET) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if db is _UNSET:
        db = connect(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if db is not None:
            ensure_indexes(db)
            seed_admin(db, settings)
        yield

    app = FastAPI(title="Catalog API", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = db
    app.state.tokens = TokenService(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration = (time.perf_counter() - start) * 1000
        request_logger.info("%s %s - %s %.0fms", request.method, request.url.path, response.status_code, duration)
        return response

    register_exception_handlers(app, verbose=settings.is_development)

    @app.get("/")
    def read_root():
        return {"success": True, "message": "Catalog API running"}

    @app.get("/test")
    def test_database(request: Request):
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "environment": settings.environment,
            "connection_status": "Not Connected",
            "collections": [],
        }
        db = request.app.state.db
        try:
            if db is not None:
                response["database"] = "✅ Connected"
                response["connection_status"] = "Connected"
                response["collections"] = db.list_collection_names()[:10]
        except Exception as e:
            response["database"] = f"⚠️ {str(e)[:80]}"
        return response

    app.include_router(auth_routes.router)
    app.include_router(user_routes.router)
    app.include_router(product_routes.router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)
