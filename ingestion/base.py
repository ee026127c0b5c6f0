"""
Abstract base class for hot-deal boards and the collaborator interfaces
consumed by the pipeline
"""

from abc import ABC, abstractmethod
import importlib
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Union

from core.config import PipelineConfig
from core.exceptions import ConfigurationError
from ingestion.urls import build_detail_url_variants
from schemas.extracted import DetailRecord, ListItem
from schemas.results import FetchTarget
import logging

logger = logging.getLogger(__name__)


class SourceAdapter(ABC):
    """
    Abstract base class for one community board.

    Responsibilities:
    - Produce the board's hot-deal list rows
    - Turn one detail page's markup into a DetailRecord
    - Name the URL variants a detail page can be loaded from

    Site-specific HTML selectors live in subclasses; everything else
    (fetching, category, persistence) is shared.
    """

    #: Board identifier stored as DealSource.source
    source: str = ""

    @abstractmethod
    def list_items(self) -> AsyncIterator[Union[ListItem, Dict[str, Any]]]:
        """
        Yield the rows of the board's current list page(s).

        The sequence is finite and a fresh call starts over.
        """
        pass

    @abstractmethod
    def extract_detail(
        self,
        html: str,
        item: ListItem,
    ) -> Union[DetailRecord, Dict[str, Any]]:
        """
        Extract the fields of exactly one post from its detail page.

        Args:
            html: Page markup as returned by the fetcher
            item: The list row the page belongs to
        """
        pass

    def url_variants(self, target: FetchTarget, config: PipelineConfig) -> List[str]:
        """Prioritized URL variants for a target (override for boards with other URL schemes)"""
        return build_detail_url_variants(
            target.post_url,
            config.desktop_base_url,
            config.mobile_base_url,
            config.board_mid,
        )


class ShopNameResolver(Protocol):
    """(source, raw_name) -> normalized shop name, or None when unmapped"""

    async def resolve(self, source: str, raw_name: str) -> Optional[str]:
        ...


class AffiliateTransformer(Protocol):
    """Purchase URL -> affiliate URL, or None when the URL cannot be converted"""

    async def transform(self, url: str) -> Optional[str]:
        ...


class ThumbnailCache(Protocol):
    """
    Best-effort thumbnail mirror: source URL -> cached URL.

    Any exception is logged by the caller and the original URL is kept.
    """

    async def cache(self, source_url: str) -> str:
        ...


def load_adapter(path: str) -> SourceAdapter:
    """
    Instantiate a SourceAdapter from a 'package.module:ClassName' path.

    Raises:
        ConfigurationError: If the path cannot be imported or is not an adapter
    """
    module_name, _, class_name = path.partition(":")
    if not module_name or not class_name:
        raise ConfigurationError(
            "Adapter must be given as 'package.module:ClassName'",
            context={"setting": "adapter", "value": path}
        )
    try:
        adapter_cls = getattr(importlib.import_module(module_name), class_name)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(
            f"Cannot load adapter {path}",
            context={"setting": "adapter", "value": path},
            original_exception=e
        )
    if not (isinstance(adapter_cls, type) and issubclass(adapter_cls, SourceAdapter)):
        raise ConfigurationError(
            f"{path} is not a SourceAdapter",
            context={"setting": "adapter", "value": path}
        )
    adapter = adapter_cls()
    if not adapter.source:
        raise ConfigurationError(
            f"{path} does not define a source name",
            context={"setting": "adapter", "value": path}
        )
    return adapter


def load_adapters(paths: str) -> List[SourceAdapter]:
    """
    Instantiate every adapter of a comma-separated path list.

    Raises:
        ConfigurationError: If no adapter is configured or one cannot be loaded
    """
    adapters = [load_adapter(p.strip()) for p in paths.split(",") if p.strip()]
    if not adapters:
        raise ConfigurationError(
            "SOURCE_ADAPTERS is required to crawl or refresh",
            context={"setting": "SOURCE_ADAPTERS"}
        )
    return adapters
