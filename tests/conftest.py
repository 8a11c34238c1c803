"""
Test configuration and fixtures.

Provides:
- A throwaway SQLite database per test (service schemas translated away)
- Fake renderer, mail transport and payment gateway
- A controllable clock
- The workflow, scheduler and bulk processor wired to those fakes
"""
import os

# Must be set before any service module reads its settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TRACING_ENABLED", "false")
os.environ.setdefault("HTTP_METRICS_ENABLED", "false")
os.environ.setdefault("INTERNAL_API_KEY", "test-internal-key")

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from shared.config.database import Base, SCHEMAS
from shared.errors import PaymentGatewayFailure
from services.order_service.models import CatalogOrder  # noqa: F401
from services.reminder_service.models import ReminderRecord  # noqa: F401
from services.reminder_service.scheduler import ReminderScheduler
from services.notification_service.dispatcher import NotificationDispatcher, RenderedMessage, SendResult
from services.orchestrator.bulk import BulkActionProcessor
from services.waitlist_service.models import WaitlistApplication  # noqa: F401
from services.waitlist_service.schemas import ApplicationCreate, TransitionParams
from services.waitlist_service.states import PaymentMethod, WorkflowEvent
from services.waitlist_service.workflow import PaymentWorkflowStateMachine

START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeRenderer:
    def __init__(self):
        self.calls = []
        self.fail = False

    async def render(self, template_key, context):
        if self.fail:
            raise RuntimeError("renderer down")
        self.calls.append((template_key, context))
        return RenderedMessage(subject=f"subject {template_key}", html="<p>body</p>", text="body")


class FakeTransport:
    def __init__(self):
        self.sent = []
        self.fail = False

    async def send(self, message):
        if self.fail:
            return SendResult(success=False, error="mailbox unavailable")
        self.sent.append(message)
        return SendResult(success=True, message_id=f"msg-{len(self.sent)}")

    def templates(self):
        return [m.template_key for m in self.sent]


class FakePaymentLinks:
    def __init__(self):
        self.requested = []
        self.fail = False

    async def create_payment_link(self, application):
        if self.fail:
            raise PaymentGatewayFailure("gateway timeout")
        self.requested.append(application.id)
        return f"https://pay.example.test/{application.display_number}"


@pytest_asyncio.fixture
async def engine(tmp_path):
    raw_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'fulfillment.db'}")
    translated = raw_engine.execution_options(schema_translate_map={schema: None for schema in SCHEMAS})
    async with translated.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield translated
    await raw_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def payment_links():
    return FakePaymentLinks()


@pytest.fixture
def dispatcher(renderer, transport):
    return NotificationDispatcher(renderer, transport, timeout=2)


@pytest.fixture
def scheduler(dispatcher, clock):
    return ReminderScheduler(dispatcher, clock=clock)


@pytest.fixture
def workflow(dispatcher, scheduler, payment_links, clock):
    return PaymentWorkflowStateMachine(dispatcher, scheduler, payment_links, clock=clock)


@pytest.fixture
def bulk(workflow):
    return BulkActionProcessor(workflow)


# Events that walk a fresh application up to a named stage
STAGES = {
    "pending": [],
    "approved": [(WorkflowEvent.APPROVE, None)],
    "deposit_paid": [(WorkflowEvent.APPROVE, None), (WorkflowEvent.RECORD_DEPOSIT_PAID, None)],
    "order_ready": [
        (WorkflowEvent.APPROVE, None),
        (WorkflowEvent.RECORD_DEPOSIT_PAID, None),
        (WorkflowEvent.MARK_ORDER_READY, None),
    ],
    "invoice": [
        (WorkflowEvent.APPROVE, None),
        (WorkflowEvent.RECORD_DEPOSIT_PAID, None),
        (WorkflowEvent.MARK_ORDER_READY, None),
        (WorkflowEvent.SELECT_PAYMENT_METHOD, TransitionParams(method=PaymentMethod.INVOICE)),
    ],
    "direct": [
        (WorkflowEvent.APPROVE, None),
        (WorkflowEvent.RECORD_DEPOSIT_PAID, None),
        (WorkflowEvent.MARK_ORDER_READY, None),
        (WorkflowEvent.SELECT_PAYMENT_METHOD, TransitionParams(method=PaymentMethod.DIRECT)),
    ],
}


@pytest.fixture
def make_application(workflow, db):
    async def _make(stage="pending", contact="shop@example.test"):
        application = await workflow.submit(db, ApplicationCreate(applicant_contact=contact))
        for event, params in STAGES[stage]:
            await workflow.apply_transition(db, application.id, event, params)
        return application
    return _make
