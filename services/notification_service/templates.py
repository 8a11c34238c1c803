"""Template keys and carrier tracking links used in outbound notifications."""
from urllib.parse import quote

DEPOSIT_REQUEST = "deposit-request"
DEPOSIT_PAID_CONFIRMATION = "deposit-paid-confirmation"
ORDER_READY = "order-ready/choose-payment"
SHIPMENT_CONFIRMATION = "shipment-confirmation"
REJECTION = "rejection"
PAYMENT_REMINDER_4D = "payment-reminder-4d"
PAYMENT_REMINDER_1D = "payment-reminder-1d"

TRACKING_URL_TEMPLATES = {
    "postnl": "https://postnl.nl/tracktrace/?B={code}&P=1015CW&D=NL&T=C",
    "dhl": "https://www.dhl.com/nl-nl/home/tracking.html?tracking-id={code}",
}

SUPPORTED_CARRIERS = frozenset(TRACKING_URL_TEMPLATES)


def normalize_carrier(carrier: str | None) -> str | None:
    if carrier is None:
        return None
    return carrier.strip().lower() or None


def tracking_url(carrier: str, code: str) -> str:
    """Build the public track & trace link. Raises KeyError for unknown carriers."""
    template = TRACKING_URL_TEMPLATES[normalize_carrier(carrier)]
    return template.format(code=quote(code.strip(), safe=""))
