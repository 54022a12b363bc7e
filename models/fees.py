from sqlalchemy import Column, String, Integer, DateTime, BigInteger
from models.base import Base, utcnow


class FeeDistribution(Base):
    """One fee distribution, keyed by the emitting event id."""
    __tablename__ = "fee_distributions"

    distribution_id = Column(String(200), primary_key=True)
    fee_model_id = Column(String(100), nullable=False, index=True)
    model_name = Column(String(255), nullable=True)
    transaction_amount = Column(BigInteger, nullable=False, default=0)
    total_fee_amount = Column(BigInteger, nullable=False, default=0)
    token_type = Column(String(255), nullable=True)
    distributed_at = Column(DateTime, nullable=False, default=utcnow)


class FeeRecipientPayment(Base):
    __tablename__ = "fee_recipient_payments"

    distribution_id = Column(String(200), primary_key=True)
    recipient_address = Column(String(100), primary_key=True)
    amount = Column(BigInteger, nullable=False, default=0)
    share_bps = Column(Integer, nullable=True)


class FeeRecipient(Base):
    """Running total collected per recipient across all distributions."""
    __tablename__ = "fee_recipients"

    recipient_address = Column(String(100), primary_key=True)
    recipient_name = Column(String(255), nullable=True)
    total_collected = Column(BigInteger, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
