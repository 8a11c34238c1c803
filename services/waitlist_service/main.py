from fastapi import FastAPI

from shared.observability import setup_observability
from .router import router, public_router
from .models import WaitlistApplication  # Import to register with Base

waitlist_app = FastAPI(title="Waitlist Service", version="1.0.0")

# --- OBSERVABILITY BOOTSTRAP ---
setup_observability(waitlist_app, "waitlist_service")

waitlist_app.include_router(public_router)
waitlist_app.include_router(router)
