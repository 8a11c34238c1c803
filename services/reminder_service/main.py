from fastapi import FastAPI

from shared.observability import setup_observability
from .router import router, public_router
from .models import ReminderRecord  # Import to register with Base

reminder_app = FastAPI(title="Reminder Service", version="1.0.0")

# --- OBSERVABILITY BOOTSTRAP ---
setup_observability(reminder_app, "reminder_service")

reminder_app.include_router(public_router)
reminder_app.include_router(router)
