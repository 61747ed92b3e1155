"""Provider lookup by provider key."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional

from switchboard.config.model_catalog import ModelCatalog

from .base import ProviderAdapter
from .http import AnthropicProvider, GoogleProvider, MistralProvider, OpenAIProvider
from .offline import OfflineProvider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Maps provider keys to adapters.

    Unknown providers resolve to the offline responder so a run never stalls
    on a provider the registry does not know.
    """

    def __init__(self, adapters: Optional[Iterable[ProviderAdapter]] = None, catalog: Optional[ModelCatalog] = None):
        self._offline = OfflineProvider(catalog)
        self._adapters: Dict[str, ProviderAdapter] = {self._offline.provider: self._offline}
        if adapters is None:
            adapters = [
                OpenAIProvider(catalog=catalog, offline=self._offline),
                AnthropicProvider(catalog=catalog, offline=self._offline),
                GoogleProvider(catalog=catalog, offline=self._offline),
                MistralProvider(catalog=catalog, offline=self._offline),
            ]
        for adapter in adapters:
            self.register(adapter)

    def register(self, adapter: ProviderAdapter) -> None:
        """Add or replace the adapter for ``adapter.provider``."""
        self._adapters[adapter.provider] = adapter

    def resolve(self, provider: str) -> ProviderAdapter:
        adapter = self._adapters.get(provider)
        if adapter is None:
            logger.warning("No adapter registered for provider '%s'; using offline responder", provider)
            return self._offline
        return adapter

    @property
    def providers(self) -> Dict[str, ProviderAdapter]:
        return dict(self._adapters)
