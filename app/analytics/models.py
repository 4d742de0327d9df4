"""
Analytics data models.

Pydantic models for the daily rollup computed from one day's behavior events
and for the results and requests of the analytics service. Serialized with
camelCase keys for the admin API.
"""

from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base model serialized with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return self.model_dump(by_alias=True)


class TopPage(ApiModel):
    """A referer ranked by page views."""
    path: str = Field(description="Referer of the page views")
    views: int = Field(description="Number of page views")


class TopArticle(ApiModel):
    """An article ranked by views."""
    id: str = Field(description="Article id")
    title: str = Field(description="Most recently seen title of the article")
    views: int = Field(description="Number of article views")


class DailyStatistics(ApiModel):
    """Daily rollup; recomputed from the log on every run."""
    date: str = Field(description="Calendar date (YYYY-MM-DD)")
    total_views: int = Field(default=0, description="Page, article, moment and work views")
    unique_visitors: int = Field(default=0, description="Distinct non-empty session ids")
    article_views: int = Field(default=0)
    moment_views: int = Field(default=0)
    work_views: int = Field(default=0)
    new_comments: int = Field(default=0)
    new_likes: int = Field(default=0)
    top_pages: List[TopPage] = Field(default_factory=list)
    top_articles: List[TopArticle] = Field(default_factory=list)
    device_stats: Dict[str, int] = Field(default_factory=dict)
    browser_stats: Dict[str, int] = Field(default_factory=dict)
    os_stats: Dict[str, int] = Field(default_factory=dict)
    country_stats: Dict[str, int] = Field(default_factory=dict)


class ProcessingResult(ApiModel):
    """Outcome of processing one day of behavior logs."""
    date: str = Field(description="Processed date (YYYY-MM-DD)")
    events_read: int = Field(default=0, description="Records read from the log file")
    skipped_events: int = Field(default=0, description="Records with an unknown event type or malformed fields")
    records_written: int = Field(default=0, description="Analytics rows inserted")
    failed_batches: int = Field(default=0, description="Insert batches that were rolled back")
    statistics: Optional[DailyStatistics] = Field(default=None, description="Rollup, None when there was no data")

    @property
    def has_data(self) -> bool:
        """Whether the day had any events."""
        return self.statistics is not None


class TopContent(ApiModel):
    """A content target ranked by views."""
    target_id: str
    target_title: Optional[str] = None
    views: int


class StatsSummary(ApiModel):
    """Sums over a range of daily stats rows."""
    total_views: int = 0
    unique_visitors: int = 0
    article_views: int = 0
    moment_views: int = 0
    work_views: int = 0
    new_comments: int = 0
    new_likes: int = 0
    avg_daily_views: float = 0.0
    days: int = 0


class ReportRequest(ApiModel):
    """Options of a custom report."""
    start_date: str
    end_date: str
    metrics: List[str] = Field(default_factory=list)
    group_by: str = "day"
    filters: Dict[str, Union[str, int, float, bool]] = Field(default_factory=dict)


class CleanupRequest(ApiModel):
    """Options of a manual cleanup; a missing retention uses the configured one."""
    retention_days: Optional[int] = Field(default=None, ge=0, description="Days of data to keep")
