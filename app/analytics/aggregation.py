"""
Daily statistics computation.

Pure functions over a sequence of behavior events; no I/O.
"""

from collections import Counter
from typing import Dict, Iterable, List, Tuple

from app.event_tracking.event_types import BehaviorType
from app.event_tracking.models import BehaviorEvent

from .models import DailyStatistics, TopArticle, TopPage

TOP_N = 10


def _count(counter: Counter, value) -> None:
    if value:
        counter[value] += 1


def _ranked(items: Dict[str, int], limit: int) -> List[Tuple[str, int]]:
    """Sort by count descending; ties keep first-seen order."""
    return sorted(items.items(), key=lambda item: item[1], reverse=True)[:limit]


def compute_statistics(events: Iterable[BehaviorEvent], date: str, top_n: int = TOP_N) -> DailyStatistics:
    """Compute the daily rollup for one day's behavior events.

    Args:
        events: Behavior events of the day, in log order
        date: The day (YYYY-MM-DD)
        top_n: Length of the top pages / top articles rankings

    Returns:
        DailyStatistics for the day
    """
    sessions = set()
    device_stats: Counter = Counter()
    browser_stats: Counter = Counter()
    os_stats: Counter = Counter()
    country_stats: Counter = Counter()
    page_views: Counter = Counter()
    # article id -> [latest title, views], in first-seen order
    article_views: Dict[str, list] = {}

    stats = DailyStatistics(date=date)
    view_types = BehaviorType.view_types()

    for event in events:
        if event.session_id:
            sessions.add(event.session_id)

        _count(device_stats, event.device)
        _count(browser_stats, event.browser)
        _count(os_stats, event.os)
        _count(country_stats, event.country)

        if event.type in view_types:
            stats.total_views += 1

        if event.type is BehaviorType.PAGE_VIEW:
            _count(page_views, event.referer)
        elif event.type is BehaviorType.ARTICLE_VIEW:
            stats.article_views += 1
            if event.target_id and event.target_title:
                entry = article_views.setdefault(event.target_id, [event.target_title, 0])
                entry[0] = event.target_title
                entry[1] += 1
        elif event.type is BehaviorType.MOMENT_VIEW:
            stats.moment_views += 1
        elif event.type is BehaviorType.WORK_VIEW:
            stats.work_views += 1
        elif event.type is BehaviorType.COMMENT_CREATE:
            stats.new_comments += 1
        elif event.type is BehaviorType.LIKE_ACTION:
            stats.new_likes += 1
        elif event.type is BehaviorType.USER_VISIT:
            pass
        else:
            raise ValueError(f"Unhandled behavior type: {event.type}")

    stats.unique_visitors = len(sessions)
    stats.top_pages = [
        TopPage(path=path, views=views)
        for path, views in _ranked(dict(page_views), top_n)
    ]
    article_counts = {article_id: entry[1] for article_id, entry in article_views.items()}
    stats.top_articles = [
        TopArticle(id=article_id, title=article_views[article_id][0], views=views)
        for article_id, views in _ranked(article_counts, top_n)
    ]
    stats.device_stats = dict(device_stats)
    stats.browser_stats = dict(browser_stats)
    stats.os_stats = dict(os_stats)
    stats.country_stats = dict(country_stats)
    return stats
