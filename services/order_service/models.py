from sqlalchemy import JSON, Column, Integer, Numeric, String

from shared.config.database import Base
from shared.config.db_types import UTCDateTime


class CatalogOrder(Base):
    """Catalog purchase owned by the storefront checkout. Read-only here."""
    __tablename__ = "orders"
    # We use a separate schema to keep the storefront's tables isolated
    __table_args__ = {"schema": "order_schema"}

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String, nullable=False)  # ORD-...
    customer_email = Column(String, nullable=True)
    payment_status = Column(String, nullable=False, default="pending")  # pending, paid, failed, expired
    status = Column(String, nullable=False, default="pending")  # fulfillment: pending ... delivered, cancelled
    total_amount = Column(Numeric(10, 2), nullable=False)
    tracking_code = Column(String, nullable=True)
    shipping_provider = Column(String, nullable=True)
    order_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)
