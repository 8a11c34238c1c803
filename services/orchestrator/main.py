from fastapi import FastAPI

from shared.observability import setup_observability
from .router import router, public_router

bulk_app = FastAPI(
    title="Bulk Action Service",
    version="1.0.0"
)

# --- OBSERVABILITY BOOTSTRAP ---
setup_observability(bulk_app, "bulk_service")

bulk_app.include_router(public_router)
bulk_app.include_router(router)
