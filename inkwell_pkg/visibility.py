"""
Article visibility and ordering for Inkwell.

Decides which articles end up in the rendered site and in what order.
Production builds only show articles marked ``published: true`` whose date
has been reached; preview runs (serve/watch) show everything.
"""

import os
from datetime import datetime, date, timezone
from typing import Any, Callable, Iterable, List, Mapping, Optional

DEFAULT_LATEST_LIMIT = 9

# Run modes that turn on draft previews
PREVIEW_RUN_MODES = ('serve', 'watch')

DATE_FORMATS = ['%Y-%m-%dT%H:%M:%S%z', '%Y-%m-%dT%H:%M:%S', '%Y-%m-%d %H:%M:%S', '%Y-%m-%d', '%b %d, %Y']

# Undated items sort after every dated one
OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def utc_now() -> datetime:
    """Return the current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_utc(value: Any) -> Optional[datetime]:
    """
    Interpret a frontmatter date as a UTC instant.

    A bare calendar date is anchored at UTC midnight and a naive datetime is
    taken to already be UTC, so the result never depends on the host timezone.

    Args:
        value: A date, datetime or date string.

    Returns:
        Aware UTC datetime, or None if the value can't be interpreted.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    elif isinstance(value, str):
        for fmt in DATE_FORMATS:
            try:
                return to_utc(datetime.strptime(value.strip(), fmt))
            except ValueError:
                continue
    return None


class ContentItem:
    """A single piece of content loaded from a Markdown file."""

    def __init__(self, title='Untitled', date=None, published=None, tags=None, slug=None,
                 summary='', content='', url=None, source_path=None, data=None):
        self.title = title
        self.date = to_utc(date)
        # Only a real boolean counts; anything else is treated as absent
        self.published = published if isinstance(published, bool) else None
        self.tags = list(tags or [])
        self.slug = slug
        self.summary = summary
        self.content = content
        self.url = url
        self.source_path = source_path
        self.data = dict(data or {})

    def has_tag(self, tag):
        return tag in self.tags

    def __repr__(self):
        return f"ContentItem(title={self.title!r}, date={self.date!r}, published={self.published!r})"


class BuildContext:
    """Per-run build state handed to the filter on every call."""

    def __init__(self, show_all_articles: bool = False):
        self.show_all_articles = bool(show_all_articles)

    @classmethod
    def from_run_mode(cls, run_mode: str = 'build', environ: Optional[Mapping[str, str]] = None) -> 'BuildContext':
        """
        Resolve the build context for a run.

        Preview runs (serve/watch) always show every article. A production
        build shows everything only if BUILD_DRAFTS is set to a truthy value.

        Args:
            run_mode: One of 'build', 'serve' or 'watch'.
            environ: Environment mapping. Defaults to os.environ.

        Returns:
            BuildContext for the run
        """
        if environ is None:
            environ = os.environ
        if run_mode in PREVIEW_RUN_MODES:
            return cls(show_all_articles=True)
        flag = str(environ.get('BUILD_DRAFTS', '')).strip().lower()
        return cls(show_all_articles=flag in ('1', 'true', 'yes', 'on'))

    def __repr__(self):
        return f"BuildContext(show_all_articles={self.show_all_articles!r})"


def is_published(item: ContentItem) -> bool:
    """True only when the item carries an explicit ``published: true``."""
    return item.published is True


def is_date_in_future(value: Any, now: datetime) -> bool:
    """Check whether a date lies strictly after ``now`` (both in UTC)."""
    moment = to_utc(value)
    if moment is None:
        return False
    return moment > to_utc(now)


def is_visible(item: ContentItem, ctx: BuildContext, now: datetime) -> bool:
    """Decide whether an item belongs in the published output."""
    if ctx.show_all_articles:
        return True
    if not is_published(item) or item.date is None:
        return False
    return not is_date_in_future(item.date, now)


def publication_status(item: ContentItem, now: datetime) -> Optional[str]:
    """
    Status badge for templates.

    Returns 'draft' for unpublished items, 'scheduled' for published items
    dated in the future and None for live articles.
    """
    if not is_published(item):
        return 'draft'
    if item.date is None or is_date_in_future(item.date, now):
        return 'scheduled'
    return None


def sort_by_date(items: Iterable[ContentItem]) -> List[ContentItem]:
    """Sort newest first. Equal dates keep their input order."""
    # sorted() stays stable with reverse=True
    return sorted(items, key=lambda item: item.date or OLDEST, reverse=True)


def select_published(items: Iterable[ContentItem], ctx: BuildContext,
                     clock: Callable[[], datetime] = utc_now) -> List[ContentItem]:
    """
    Select the articles to publish, newest first.

    Args:
        items: Every item tagged as an article, in any order.
        ctx: Build context for this run.
        clock: Zero-argument callable returning the current UTC instant.

    Returns:
        New list of visible items sorted by date descending
    """
    now = clock()
    return sort_by_date(item for item in items if is_visible(item, ctx, now))


def select_latest(items: Iterable[ContentItem], ctx: BuildContext, limit: int = DEFAULT_LATEST_LIMIT,
                  clock: Callable[[], datetime] = utc_now) -> List[ContentItem]:
    """
    Select the ``limit`` most recent published articles.

    Raises:
        ValueError: If limit is not a non-negative integer
    """
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
        raise ValueError(f"limit must be a non-negative integer, got {limit!r}")
    return select_published(items, ctx, clock)[:limit]
