"""Listing lookups for the content detectors and report auto-flagging."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Optional, Protocol, Sequence


@dataclass(frozen=True, slots=True)
class IndexedListing:
    id: str
    seller_id: str
    title: str
    image_hashes: tuple[str, ...] = ()
    active: bool = True
    flagged: bool = False


class ListingIndex(Protocol):
    async def active_titles(self, seller_id: str) -> Sequence[str]:
        ...

    async def foreign_image_hashes(self, hashes: Iterable[str], excluding_seller_id: str) -> set[str]:
        """Return the subset of ``hashes`` used by other sellers' active listings."""
        ...

    async def owner_of(self, listing_id: str) -> Optional[str]:
        ...

    async def flag(self, listing_id: str) -> bool:
        """Mark the listing flagged; False when it was already flagged or is unknown."""
        ...

    async def count_flagged(self) -> int:
        ...


class InMemoryListingIndex(ListingIndex):
    def __init__(self) -> None:
        self.listings: dict[str, IndexedListing] = {}

    def add(self, listing: IndexedListing) -> IndexedListing:
        self.listings[listing.id] = listing
        return listing

    async def active_titles(self, seller_id: str) -> Sequence[str]:
        return [item.title for item in self.listings.values() if item.active and item.seller_id == seller_id]

    async def foreign_image_hashes(self, hashes: Iterable[str], excluding_seller_id: str) -> set[str]:
        wanted = set(hashes)
        found: set[str] = set()
        for item in self.listings.values():
            if item.active and item.seller_id != excluding_seller_id:
                found.update(wanted.intersection(item.image_hashes))
        return found

    async def owner_of(self, listing_id: str) -> Optional[str]:
        item = self.listings.get(listing_id)
        return item.seller_id if item else None

    async def flag(self, listing_id: str) -> bool:
        item = self.listings.get(listing_id)
        if item is None or item.flagged:
            return False
        self.listings[listing_id] = replace(item, flagged=True)
        return True

    async def count_flagged(self) -> int:
        return sum(1 for item in self.listings.values() if item.flagged)


__all__ = ["IndexedListing", "InMemoryListingIndex", "ListingIndex"]
