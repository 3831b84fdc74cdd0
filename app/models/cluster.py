from sqlalchemy import JSON, Column, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from .database import Base, UTCDateTime


class ClusterRecord(Base):
    __tablename__ = "clusters"

    id = Column(String(64), primary_key=True, index=True)
    title = Column(String(200), nullable=True)
    category = Column(String(50), nullable=False)
    severity = Column(String(10), nullable=False)
    centroid = Column(JSON, nullable=False, default=list)  # flat list of floats
    count = Column(Integer, default=1, nullable=False)
    first_seen = Column(UTCDateTime, nullable=False)
    last_seen = Column(UTCDateTime, nullable=False, index=True)
    representative_feedback_id = Column(String(64), nullable=True)
    representative_feedback = Column(Text, nullable=True)
    top_sources = Column(JSON, nullable=False, default=list)
    summary = Column(Text, nullable=True)
    suggested_action = Column(Text, nullable=True)
    user_impact = Column(Text, nullable=True)
    priority_score = Column(Float, default=0.0)
    sentiment_score = Column(Float, default=0.5)

    # Fix tracking
    fix_status = Column(String(20), default="open", index=True)  # open, fix_deployed, resolved, failed, wont_fix
    fix_deployed_date = Column(UTCDateTime, nullable=True)
    fix_deployed_version = Column(String(100), nullable=True)
    rollout_period_days = Column(Integer, default=7)
    original_severity = Column(String(10), nullable=True)
    current_severity = Column(String(10), nullable=True)
    reports_before_fix = Column(Integer, nullable=True)
    reports_after_fix = Column(Integer, nullable=True)
    fix_notes = Column(Text, nullable=True)

    # Relationships
    members = relationship("ClusterMember", back_populates="cluster", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<ClusterRecord(id={self.id}, count={self.count}, fix_status={self.fix_status})>"


class ClusterMember(Base):
    __tablename__ = "cluster_members"

    cluster_id = Column(String(64), ForeignKey("clusters.id"), primary_key=True)
    feedback_id = Column(String(64), ForeignKey("feedback.id"), primary_key=True, index=True)

    # Relationships
    cluster = relationship("ClusterRecord", back_populates="members")
