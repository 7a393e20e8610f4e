"""
Sitemap XML rendering.

Entries are emitted as text fragments rather than an element tree because the
document is assembled by appending fragments from independent batch tasks.
"""

from datetime import date, datetime
from typing import Iterable, Mapping, Optional, Union
from xml.sax.saxutils import escape

from sitemap_builder.models.content import ContentItem
from sitemap_builder.schemas.sitemap import SitemapEntry

SITEMAP_NAMESPACE = "http://www.sitemaps.org/schemas/sitemap/0.9"

XML_HEADER = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    f'<urlset xmlns="{SITEMAP_NAMESPACE}">\n'
)
XML_FOOTER = "</urlset>\n"

CHANGE_FREQUENCY = "daily"
TOP_PRIORITY = "1.0"
DEFAULT_PRIORITY = "0.9"
SERVICES_SEGMENT = "/services/"


def home_url(site_url: str) -> str:
    """Site root with exactly one trailing slash"""
    return site_url.rstrip("/") + "/"


def absolute_url(site_url: str, path: str) -> str:
    return home_url(site_url) + path.lstrip("/")


def select_priority(url: str, post_type: str, home: str,
                    type_priorities: Mapping[str, str]) -> str:
    """
    Priority for a URL: the site root and service pages rank highest,
    everything else takes its content type's default.
    """
    if url == home or SERVICES_SEGMENT in url:
        return TOP_PRIORITY
    return type_priorities.get(post_type, DEFAULT_PRIORITY)


def format_lastmod(value: Union[datetime, date, str]) -> str:
    """Date portion of a last-modified value as YYYY-MM-DD"""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value).replace("T", " ").split(" ")[0]


def build_entry(item: ContentItem, home: str,
                type_priorities: Mapping[str, str]) -> SitemapEntry:
    return SitemapEntry(
        loc=item.permalink,
        lastmod=format_lastmod(item.modified_at),
        changefreq=CHANGE_FREQUENCY,
        priority=select_priority(item.permalink, item.post_type, home, type_priorities),
    )


def auxiliary_entry(site_url: str, aux_path: str,
                    today: Optional[date] = None) -> SitemapEntry:
    """The synthetic entry appended right before the closing tag"""
    return SitemapEntry(
        loc=absolute_url(site_url, aux_path),
        lastmod=format_lastmod(today or date.today()),
        changefreq=CHANGE_FREQUENCY,
        priority=TOP_PRIORITY,
    )


def render_entry(entry: SitemapEntry) -> str:
    return (
        "\t<url>\n"
        f"\t\t<loc>{escape(entry.loc)}</loc>\n"
        f"\t\t<lastmod>{entry.lastmod}</lastmod>\n"
        f"\t\t<changefreq>{entry.changefreq}</changefreq>\n"
        f"\t\t<priority>{entry.priority}</priority>\n"
        "\t</url>\n"
    )


def render_entries(entries: Iterable[SitemapEntry]) -> str:
    return "".join(render_entry(entry) for entry in entries)


def render_footer(aux: SitemapEntry) -> str:
    return render_entry(aux) + XML_FOOTER
