from sqlalchemy import Column, String, Integer, DateTime, Text, BigInteger, Index
from models.base import Base, utcnow


class IntellectualProperty(Base):
    """Registered IP asset with running license counters."""
    __tablename__ = "intellectual_property"

    ip_id = Column(String(100), primary_key=True)
    creator_address = Column(String(100), nullable=False)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    ip_type = Column(String(50), nullable=False)

    total_licenses_count = Column(Integer, nullable=False, default=0)
    active_licenses_count = Column(Integer, nullable=False, default=0)
    total_revenue = Column(BigInteger, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_ip_creator", "creator_address"),
    )


class IPLicense(Base):
    __tablename__ = "ip_licenses"

    license_id = Column(String(100), primary_key=True)
    ip_id = Column(String(100), nullable=False, index=True)
    licensee_address = Column(String(100), nullable=False)
    license_type = Column(String(50), nullable=False)
    payment_amount = Column(BigInteger, nullable=False, default=0)
    granted_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=True)
