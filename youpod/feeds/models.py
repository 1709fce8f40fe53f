"""
Types used by feed generation.

FeedOptions: rendering options (None fields fall back to per-feed defaults)
SyndicationItem: a ledger entry resolved to the URLs of one document
FeedDocument: a rendered feed and where it is published
"""

from dataclasses import dataclass, field
from typing import Optional

from youpod.ingestion.listing import WATCH_URL
from youpod.ledger.models import LedgerEntry

PODCASTS_PREFIX = "podcasts"
AGGREGATE_SLUG = "all"
FEED_FILENAME = "feed.xml"
ICON_FILENAME = "icon.jpg"
MEDIA_DIRNAME = "media"

DEFAULT_SOURCE_MAX_ITEMS = 50
DEFAULT_AGGREGATE_MAX_ITEMS = 100


@dataclass
class FeedOptions:
    """
    Options for one feed document.

    ``base_url`` switches the whole document between relative references
    (browsable next to the published files) and absolute URLs under
    ``{base_url}/podcasts/``.
    """

    title: Optional[str] = None
    description: Optional[str] = None
    site_url: Optional[str] = None
    image_url: Optional[str] = None
    author: Optional[str] = None
    copyright: Optional[str] = None
    language: str = "en"
    categories: list[str] = field(default_factory=lambda: ["Technology"])
    explicit: bool = False
    max_items: Optional[int] = None
    base_url: str = ""
    owner_email: str = "noreply@example.com"
    item_link_template: str = WATCH_URL


@dataclass(frozen=True)
class SyndicationItem:
    """A ledger entry as it appears in one feed document."""

    entry: LedgerEntry
    source_slug: str
    link: str
    enclosure_url: str
    image_url: str

    @property
    def title(self) -> str:
        return self.entry.title or self.entry.item_id

    @property
    def summary(self) -> str:
        return self.entry.description or self.title


@dataclass(frozen=True)
class FeedDocument:
    """
    A rendered feed.

    Attributes:
        slug: Source slug, or "all" for the aggregate feed
        path: Publish location relative to the storage root
        title: Feed title
        xml: Serialized document
        items: Items in document order
    """

    slug: str
    path: str
    title: str
    xml: str
    items: tuple[SyndicationItem, ...] = ()

    @property
    def workspace(self) -> str:
        return self.path.rsplit("/", 1)[0]

    @property
    def filename(self) -> str:
        return self.path.rsplit("/", 1)[1]


def document_path(slug: str) -> str:
    return f"{PODCASTS_PREFIX}/{slug}/{FEED_FILENAME}"
