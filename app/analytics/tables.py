"""
Analytics tables - per-event detail rows and per-date summary rows
"""
from sqlalchemy import Column, DateTime, Index, Integer, String

from app.database import Base


class AnalyticsRecord(Base):
    """One row per aggregated behavior event; never updated"""

    __tablename__ = "analytics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(String(10), nullable=False)  # YYYY-MM-DD
    type = Column(String(32), nullable=False)
    target_id = Column(String(255), nullable=True)
    target_title = Column(String(255), nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(255), nullable=True)
    referer = Column(String(255), nullable=True)
    country = Column(String(100), nullable=True)
    city = Column(String(100), nullable=True)
    device = Column(String(100), nullable=True)
    browser = Column(String(100), nullable=True)
    os = Column(String(100), nullable=True)
    created_at = Column(DateTime, nullable=False, index=True)  # event time, naive UTC

    __table_args__ = (
        Index("idx_analytics_date_type", "date", "type"),
    )

    def __repr__(self):
        return f"<AnalyticsRecord(id={self.id}, date={self.date}, type={self.type}, target={self.target_id})>"


class DailyStatsRow(Base):
    """Scalar daily rollup, unique per date; overwritten on reprocessing"""

    __tablename__ = "daily_stats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(String(10), nullable=False, unique=True)
    total_views = Column(Integer, nullable=False, default=0)
    unique_visitors = Column(Integer, nullable=False, default=0)
    article_views = Column(Integer, nullable=False, default=0)
    moment_views = Column(Integer, nullable=False, default=0)
    work_views = Column(Integer, nullable=False, default=0)
    new_comments = Column(Integer, nullable=False, default=0)
    new_likes = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, index=True)  # naive UTC
    updated_at = Column(DateTime, nullable=False)  # naive UTC

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "date": self.date,
            "totalViews": self.total_views,
            "uniqueVisitors": self.unique_visitors,
            "articleViews": self.article_views,
            "momentViews": self.moment_views,
            "workViews": self.work_views,
            "newComments": self.new_comments,
            "newLikes": self.new_likes,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<DailyStatsRow(date={self.date}, total_views={self.total_views}, uv={self.unique_visitors})>"
