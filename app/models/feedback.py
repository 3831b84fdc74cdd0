from sqlalchemy import Boolean, Column, Float, String, Text

from .database import Base, UTCDateTime


class Feedback(Base):
    __tablename__ = "feedback"

    id = Column(String(64), primary_key=True, index=True)
    content = Column(Text, nullable=False)
    source = Column(String(50), nullable=False)  # support, discord, github, email, twitter
    timestamp = Column(UTCDateTime, nullable=False, index=True)
    author = Column(String(200), nullable=True)
    link = Column(Text, nullable=True)
    processed = Column(Boolean, default=False, nullable=False)
    instant_alert_sent = Column(Boolean, default=False, nullable=False)
    classification_category = Column(String(50), nullable=True)
    classification_severity = Column(String(10), nullable=True)
    classification_confidence = Column(Float, nullable=True)

    def __repr__(self):
        return f"<Feedback(id={self.id}, source={self.source}, processed={self.processed})>"
