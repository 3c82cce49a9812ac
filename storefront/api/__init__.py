# storefront/api/__init__.py
from fastapi import FastAPI
from storefront.api.routers import carts, payments, health

def create_app() -> FastAPI:
    app = FastAPI(title="Storefront Cart & Payment Service", version="1.0.0")
    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(payments.router)
    return app
