from .setup import setup_observability
from .metrics import (
    waitlist_transitions_total,
    waitlist_derivation_default_total,
    reminders_fired_total,
    reminder_sweep_duration_seconds,
    notification_dispatch_total,
    bulk_items_total,
    order_listing_partial_total
)
