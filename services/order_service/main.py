from fastapi import FastAPI
from shared.observability import setup_observability
from .router import router, public_router
from .models import CatalogOrder  # Import to register with Base

order_app = FastAPI(title="Order Service", version="1.0.0")

# --- OBSERVABILITY BOOTSTRAP ---
setup_observability(order_app, "order_service")

order_app.include_router(public_router)
order_app.include_router(router)
