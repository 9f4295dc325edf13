"""PostgreSQL lookups over live listings for the content detectors."""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

import asyncpg

from railtrust.trust.domain.listings import ListingIndex


class PostgresListingIndex(ListingIndex):
    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def active_titles(self, seller_id: str) -> Sequence[str]:
        rows = await self._pool.fetch(
            "SELECT title FROM listing WHERE seller_id = $1 AND is_active",
            seller_id,
        )
        return [str(row["title"]) for row in rows]

    async def foreign_image_hashes(self, hashes: Iterable[str], excluding_seller_id: str) -> set[str]:
        wanted = list(dict.fromkeys(hashes))
        if not wanted:
            return set()
        rows = await self._pool.fetch(
            """
            SELECT DISTINCT h AS hash
            FROM listing, unnest(image_hashes) AS h
            WHERE is_active AND seller_id <> $1 AND h = ANY($2::text[])
            """,
            excluding_seller_id,
            wanted,
        )
        return {str(row["hash"]) for row in rows}

    async def owner_of(self, listing_id: str) -> Optional[str]:
        value = await self._pool.fetchval("SELECT seller_id FROM listing WHERE id = $1", listing_id)
        return str(value) if value is not None else None

    async def flag(self, listing_id: str) -> bool:
        row = await self._pool.fetchrow(
            "UPDATE listing SET auto_flagged = TRUE WHERE id = $1 AND NOT auto_flagged RETURNING id",
            listing_id,
        )
        return row is not None

    async def count_flagged(self) -> int:
        value = await self._pool.fetchval("SELECT COUNT(*) FROM listing WHERE is_active AND auto_flagged")
        return int(value or 0)
