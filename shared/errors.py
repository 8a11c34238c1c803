"""
Error taxonomy shared by every service in the engine.

Domain code raises these; routers translate them into HTTP responses and the
bulk processor records them per item. Nothing here is allowed to mask a
committed state transition: dispatch problems are warnings, not failures.
"""


class FulfillmentError(Exception):
    """Base class for all engine errors."""


class InvalidTransition(FulfillmentError):
    """The event's precondition does not hold. Nothing was mutated or sent."""

    def __init__(self, from_state, event, reason: str = ""):
        self.from_state = getattr(from_state, "value", from_state)
        self.event = getattr(event, "value", event)
        self.reason = reason
        message = f"cannot apply '{self.event}' from '{self.from_state}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ApplicationNotFound(FulfillmentError):
    def __init__(self, application_id):
        self.application_id = application_id
        super().__init__(f"waitlist application {application_id} not found")


class ConcurrentModification(FulfillmentError):
    """Another writer committed first. Retry with fresh state."""

    def __init__(self, application_id):
        self.application_id = application_id
        super().__init__(f"waitlist application {application_id} was modified concurrently")


class PartialSourceFailure(FulfillmentError):
    """One order origin could not be read. Listings degrade instead of failing."""

    def __init__(self, source: str, cause: Exception):
        self.source = source
        self.cause = cause
        super().__init__(f"{source} source unavailable: {cause}")


class NotificationDispatchFailure(FulfillmentError):
    def __init__(self, template_key: str, cause):
        self.template_key = template_key
        self.cause = cause
        super().__init__(f"notification '{template_key}' was not sent: {cause}")


class PaymentGatewayFailure(FulfillmentError):
    def __init__(self, cause):
        self.cause = cause
        super().__init__(f"payment link could not be created: {cause}")


class PersistenceFailure(FulfillmentError):
    def __init__(self, cause: Exception):
        self.cause = cause
        super().__init__(f"persistence failure: {cause}")
