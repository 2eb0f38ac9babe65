"""Multi-source price aggregation with ordered fallback."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, Mapping, Optional, Sequence

from basketfund.errors import InvalidInput, PriceUnavailable
from basketfund.types import ZERO, PriceQuote, RawPrice, to_fixed

from .interfaces import PriceSource

logger = logging.getLogger(__name__)


class PriceAggregator:
    """Normalizes several price feeds into one validated quote per asset.

    Sources for an asset are tried in order; the first one reporting a
    positive value within its own `max_age` wins. Registration changes are
    guarded by an internal lock; reads take a snapshot of the source list.
    """

    def __init__(self, sources: Optional[Mapping[str, Sequence[PriceSource]]] = None) -> None:
        """Initialize aggregator.

        Args:
            sources: Optional mapping asset -> ordered sources
        """
        self._sources: dict[str, list[PriceSource]] = {}
        self._lock = threading.Lock()
        for asset, asset_sources in (sources or {}).items():
            self.add_asset(asset, asset_sources)

    # ========== Administration ==========

    @property
    def assets(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._sources)

    def sources_for(self, asset: str) -> tuple[PriceSource, ...]:
        with self._lock:
            return tuple(self._sources.get(asset, ()))

    def add_asset(self, asset: str, sources: Sequence[PriceSource]) -> None:
        """Register an asset with its ordered sources.

        Raises:
            InvalidInput: If the asset is already registered, no sources are
                given, or two sources share a name
        """
        if not sources:
            raise InvalidInput(f"At least one price source is required for {asset}")
        names = [s.name for s in sources]
        if len(set(names)) != len(names):
            raise InvalidInput(f"Duplicate price source for {asset}: {names}")

        with self._lock:
            if asset in self._sources:
                raise InvalidInput(f"Asset {asset} already has price sources")
            self._sources[asset] = list(sources)
        logger.info("Registered price sources for %s: %s", asset, ", ".join(names))

    def remove_asset(self, asset: str) -> None:
        with self._lock:
            if asset not in self._sources:
                raise InvalidInput(f"Asset {asset} is not registered")
            del self._sources[asset]
        logger.info("Removed price sources for %s", asset)

    def add_source(self, asset: str, source: PriceSource, position: Optional[int] = None) -> None:
        """Attach a source to a registered asset.

        Args:
            asset: Asset code
            source: Source to add
            position: Index in the fallback order (None = lowest priority)
        """
        with self._lock:
            current = self._sources.get(asset)
            if current is None:
                raise InvalidInput(f"Asset {asset} is not registered")
            if any(s.name == source.name for s in current):
                raise InvalidInput(f"Source {source.name} already attached to {asset}")
            if position is None:
                current.append(source)
            else:
                current.insert(position, source)

    def remove_source(self, asset: str, source_name: str) -> None:
        with self._lock:
            current = self._sources.get(asset)
            if current is None:
                raise InvalidInput(f"Asset {asset} is not registered")
            remaining = [s for s in current if s.name != source_name]
            if len(remaining) == len(current):
                raise InvalidInput(f"Source {source_name} is not attached to {asset}")
            if not remaining:
                raise InvalidInput(f"Cannot remove the last price source of {asset}")
            self._sources[asset] = remaining

    # ========== Quotes ==========

    def get_price_with_fallback(self, asset: str, now: datetime) -> PriceQuote:
        """Return the first valid quote, or an explicitly invalid one.

        An invalid quote always carries price 0; callers must check `valid`.
        """
        for index, source in enumerate(self.sources_for(asset)):
            raw = self._read(source, asset, now)
            if raw is None:
                continue
            if raw.price <= 0:
                logger.debug("Source %s reported non-positive price for %s", source.name, asset)
                continue
            if now - raw.updated_at > source.max_age:
                logger.debug(
                    "Source %s quote for %s is stale (updated_at=%s, max_age=%s)",
                    source.name,
                    asset,
                    raw.updated_at.isoformat(),
                    source.max_age,
                )
                continue
            return PriceQuote(
                asset=asset,
                price=to_fixed(raw.price),
                valid=True,
                source=source.name,
                source_index=index,
                updated_at=raw.updated_at,
            )

        return PriceQuote(asset=asset, price=ZERO, valid=False)

    def get_price(self, asset: str, now: datetime) -> Decimal:
        """Return a validated price.

        Raises:
            PriceUnavailable: If every source is missing, zero, stale or failing
        """
        quote = self.get_price_with_fallback(asset, now)
        if not quote.valid:
            raise PriceUnavailable(asset)
        return quote.price

    def is_stale(self, asset: str, now: datetime, heartbeat: timedelta) -> bool:
        """True when no valid quote exists and nothing was reported within `heartbeat`."""
        if self.get_price_with_fallback(asset, now).valid:
            return False
        for source in self.sources_for(asset):
            raw = self._read(source, asset, now)
            if raw is not None and raw.price > 0 and now - raw.updated_at <= heartbeat:
                return False
        return True

    def stale_assets(self, assets: Iterable[str], now: datetime, heartbeat: timedelta) -> list[str]:
        return [asset for asset in assets if self.is_stale(asset, now, heartbeat)]

    @staticmethod
    def _read(source: PriceSource, asset: str, now: datetime) -> Optional[RawPrice]:
        try:
            return source.read(asset, now=now)
        except Exception as exc:
            logger.warning("Price source %s failed for %s: %s", source.name, asset, exc)
            return None
