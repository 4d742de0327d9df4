"""
Analytics Subsystem

Aggregates daily behavior logs into summary statistics and detail rows.
"""

from .aggregation import compute_statistics
from .models import DailyStatistics, ProcessingResult, ReportRequest, StatsSummary, TopContent
from .services import AnalyticsService

__all__ = [
    'AnalyticsService',
    'DailyStatistics',
    'ProcessingResult',
    'ReportRequest',
    'StatsSummary',
    'TopContent',
    'compute_statistics',
]
