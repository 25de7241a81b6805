import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.middleware.sessions import SessionMiddleware

import config
from db import Base, engine
from errors import register_exception_handlers
from products import seed_products
from auth import router as auth_router
from registration import router as registration_router
from users import router as users_router
from products import router as products_router
from courses import router as courses_router
from engagement import router as engagement_router
from admin import router as admin_router

logging.basicConfig(
    level=config.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("orefull")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- База ---
    Base.metadata.create_all(bind=engine)
    if config.SEED_DEMO_DATA:
        seed_products()
    logger.info("orefull API ready")
    yield


# --- Создаём приложение ---
app = FastAPI(title="orefull API", lifespan=lifespan)

# --- Сессии ---
app.add_middleware(
    SessionMiddleware,
    secret_key=config.SECRET_KEY,
    session_cookie=config.SESSION_COOKIE,
    same_site="lax",
    https_only=config.SESSION_HTTPS_ONLY,
)

register_exception_handlers(app)

# --- Роуты ---
app.include_router(auth_router)
app.include_router(registration_router)
app.include_router(users_router)
app.include_router(products_router)
app.include_router(courses_router)
app.include_router(engagement_router)
app.include_router(admin_router)


@app.get("/")
def home():
    return {"message": "orefull API running"}
