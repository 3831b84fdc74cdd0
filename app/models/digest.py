from sqlalchemy import JSON, Boolean, Column, ForeignKey, String, Text

from .database import Base, UTCDateTime


class DigestRecord(Base):
    __tablename__ = "digests"

    id = Column(String(64), primary_key=True, index=True)
    generated_at = Column(UTCDateTime, nullable=False, index=True)
    payload = Column(JSON, nullable=False)  # Digest.to_dict()
    summary = Column(Text, nullable=True)
    message = Column(Text, nullable=True)  # rendered Telegram HTML
    sent_to_telegram = Column(Boolean, default=False, nullable=False)


class InstantAlert(Base):
    __tablename__ = "instant_alerts"

    id = Column(String(64), primary_key=True)
    feedback_id = Column(String(64), ForeignKey("feedback.id"), nullable=False, index=True)
    severity = Column(String(10), nullable=False)
    category = Column(String(50), nullable=True)
    message = Column(Text, nullable=True)
    sent_at = Column(UTCDateTime, nullable=False, index=True)
    delivered = Column(Boolean, default=False, nullable=False)
    error = Column(Text, nullable=True)
