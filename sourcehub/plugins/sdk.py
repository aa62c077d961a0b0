"""Plugin SDK - the capability contract every source plugin implements.

Plugins import this module by its logical name::

    from sourcehub_sdk import BaseSource, Item, Child, Asset, PaginationInfo

The activator resolves the logical name to this module before the plugin runs.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode, urljoin

from pydantic import BaseModel, Field

from sourcehub.plugins.fetcher import ArtifactFetcher

MANDATORY_OPERATIONS = (
    "search",
    "get_details",
    "get_children",
    "get_leaf_assets",
    "list_all",
    "extract_pagination_info",
)

REQUIRED_ATTRIBUTES = ("id", "name", "version", "base_url")

# capability name -> operation implementing it
CAPABILITY_OPERATIONS = {
    "search": "search",
    "latest": "get_latest",
    "popular": "get_popular",
    "trending": "get_trending",
}


class SearchOptions(BaseModel):
    """Search and listing options."""

    query: Optional[str] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1)
    offset: Optional[int] = None
    included_genres: List[str] = Field(default_factory=list)
    excluded_genres: List[str] = Field(default_factory=list)
    status: Optional[str] = None
    sort: Optional[str] = None
    filters: Dict[str, Any] = Field(default_factory=dict)


class Item(BaseModel):
    """A top-level title provided by a source (e.g. a manga series)."""

    id: str
    title: str
    source_id: str
    alt_titles: List[str] = Field(default_factory=list)
    cover_url: Optional[str] = None
    author: Optional[str] = None
    artist: Optional[str] = None
    genres: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    status: Optional[str] = None
    url: Optional[str] = None
    rating: Optional[str] = None
    year: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Child(BaseModel):
    """A child entry of an item (e.g. a chapter)."""

    id: str
    title: str
    number: Optional[float] = None
    volume: Optional[float] = None
    date: Optional[str] = None
    url: Optional[str] = None
    pages: Optional[int] = None
    scanlator: Optional[str] = None
    language: Optional[str] = None


class Asset(BaseModel):
    """A leaf asset of a child entry (e.g. a page image)."""

    index: int = Field(..., ge=0)
    image_url: str
    headers: Dict[str, str] = Field(default_factory=dict)
    width: Optional[int] = None
    height: Optional[int] = None


class PaginationInfo(BaseModel):
    """Pagination state extracted from a listing URL."""

    current_page: int = 1
    total_pages: Optional[int] = None
    has_next_page: bool = False
    has_previous_page: bool = False


class BaseSource(ABC):
    """Abstract base class for source plugins.

    Subclasses set ``id``, ``name``, ``version`` and ``base_url`` and implement the
    mandatory operations. ``get_latest``, ``get_popular`` and ``get_trending`` are
    optional: define them only when the plugin supports them.
    """

    id: str
    name: str
    version: str
    base_url: str

    description: str = ""
    icon: str = ""
    languages: Tuple[str, ...] = ()
    nsfw: bool = False

    def __init__(self, fetcher: Optional[ArtifactFetcher] = None):
        self._fetcher = fetcher or ArtifactFetcher()
        # Per-instance copy; subclasses may declare languages as a list
        self.languages = list(type(self).languages)
        self.logger = logging.getLogger(f"plugin.{getattr(self, 'id', type(self).__name__)}")

    def build_url(self, path: str, params: Optional[Dict[str, Any]] = None) -> str:
        """Build an absolute URL against base_url.

        List values become repeated ``key[]`` parameters and dict values become
        ``key[sub]`` parameters. None values are dropped.
        """
        url = urljoin(self.base_url, path)
        if not params:
            return url

        pairs = []
        for key, value in params.items():
            if value is None:
                continue
            if isinstance(value, (list, tuple)):
                pairs.extend((f"{key}[]", str(v)) for v in value)
            elif isinstance(value, dict):
                pairs.extend((f"{key}[{sub}]", str(v)) for sub, v in value.items())
            else:
                pairs.append((key, str(value)))
        if not pairs:
            return url
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}{urlencode(pairs)}"

    async def request_text(self, url: str, headers: Optional[Dict[str, str]] = None) -> str:
        """GET url as text through the host fetcher (raises FetchError)."""
        return await self._fetcher.fetch_text(url, headers=headers)

    async def request_json(self, url: str, headers: Optional[Dict[str, str]] = None) -> Any:
        """GET url as JSON through the host fetcher (raises FetchError)."""
        merged = {"Accept": "application/json"}
        if headers:
            merged.update(headers)
        return await self._fetcher.fetch_json(url, headers=merged)

    @abstractmethod
    async def search(self, query: str, options: Optional[SearchOptions] = None) -> List[Item]:
        """Search the source for items matching query."""
        ...

    @abstractmethod
    async def get_details(self, item_id: str) -> Item:
        """Get full details for one item."""
        ...

    @abstractmethod
    async def get_children(self, parent_id: str) -> List[Child]:
        """List the children of an item (e.g. chapters)."""
        ...

    @abstractmethod
    async def get_leaf_assets(self, child_id: str) -> List[Asset]:
        """List the assets of a child (e.g. page images)."""
        ...

    @abstractmethod
    async def list_all(self, options: Optional[SearchOptions] = None) -> List[Item]:
        """List items page by page."""
        ...

    @abstractmethod
    async def extract_pagination_info(self, url: str) -> PaginationInfo:
        """Extract pagination state from a listing URL."""
        ...

    async def on_stop(self) -> None:
        """Called when the plugin is uninstalled or replaced. Override for cleanup."""
        pass
