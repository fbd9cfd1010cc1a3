from sqlalchemy import Column, String, DateTime
from models.base import Base


class SyncLease(Base):
    """
    Mutual-exclusion lease per (source, scope_key).

    A run may write under a scope only while it is the holder and the lease
    has not expired. Expired leases are taken over on the next acquire, so a
    crashed process cannot block its scope past LEASE_TTL_SECONDS.
    """
    __tablename__ = "sync_leases"

    source = Column(String(32), primary_key=True)
    scope_key = Column(String(100), primary_key=True)

    holder = Column(String(36), nullable=False)
    acquired_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
