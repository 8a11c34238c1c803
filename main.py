from fastapi import FastAPI
from sqlalchemy import text
from shared.config import settings
from shared.config.database import engine, Base, SCHEMAS

# IMPORTANT: import models so they register with Base
from services.order_service import models as order_models
from services.waitlist_service import models as waitlist_models
from services.reminder_service import models as reminder_models

from services.order_service.main import order_app
from services.waitlist_service.main import waitlist_app
from services.reminder_service.main import reminder_app
from services.orchestrator.main import bulk_app
from services.reminder_service.ticker import start_ticker, stop_ticker

app = FastAPI(title="Fulfillment Engine")


@app.on_event("startup")
async def startup_event():
    async with engine.begin() as conn:
        # Create schemas
        for schema in SCHEMAS:
            await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {schema}"))

        # Create all tables
        await conn.run_sync(Base.metadata.create_all)

    if settings.ENABLE_REMINDER_TICKER:
        start_ticker()


@app.on_event("shutdown")
async def shutdown_event():
    stop_ticker()


app.mount("/orders", order_app)
app.mount("/waitlist", waitlist_app)
app.mount("/reminders", reminder_app)
app.mount("/bulk", bulk_app)
