import os
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storefront.database import init_database, SessionLocal
from storefront.admin_bootstrap import ensure_admin_exists
from storefront.errors import register_exception_handlers

from storefront.auth import router as auth_router
from storefront.routes import (
    health,
    users,
    products,
    categories,
    orders,
    payments,
    reviews,
)


app = FastAPI(title="Storefront API", version="1.0.0")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# ── Health & Auth ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(auth_router)

# ── Core API ───────────────────────────────────────────────────────
app.include_router(users.router,      prefix="/api")
app.include_router(products.router,   prefix="/api")
app.include_router(categories.router, prefix="/api")
app.include_router(orders.router,     prefix="/api")
app.include_router(payments.router,   prefix="/api")
app.include_router(reviews.router,    prefix="/api")


@app.on_event("startup")
def startup():
    init_database()

    db = SessionLocal()
    try:
        ensure_admin_exists(db)
    finally:
        db.close()
