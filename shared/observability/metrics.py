from prometheus_client import Counter, Histogram

# Business Metrics
waitlist_transitions_total = Counter(
    "waitlist_transitions_total",
    "Waitlist workflow transitions attempted",
    ["event", "outcome"]  # Labels: outcome='applied', 'invalid', 'conflict', 'error'
)

waitlist_derivation_default_total = Counter(
    "waitlist_derivation_default_total",
    "Fulfillment derivations that fell through to the default rule"
)

reminders_fired_total = Counter(
    "reminders_fired_total",
    "Payment reminders handled by the sweep",
    ["kind", "outcome"]  # Labels: 'sent', 'cancelled', 'failed'
)

reminder_sweep_duration_seconds = Histogram(
    "reminder_sweep_duration_seconds",
    "Reminder sweep duration in seconds"
)

notification_dispatch_total = Counter(
    "notification_dispatch_total",
    "Outbound notifications dispatched",
    ["template", "outcome"]  # Labels: 'sent', 'failed'
)

bulk_items_total = Counter(
    "bulk_items_total",
    "Items processed by bulk actions",
    ["action", "outcome"]  # Labels: 'succeeded', 'failed'
)

order_listing_partial_total = Counter(
    "order_listing_partial_total",
    "Order listings served without one of the sources",
    ["source"]
)
