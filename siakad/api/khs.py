"""
KHS (semester grade report) reader.

Grade reports live in a Firebase Realtime Database and are read through its
REST interface. Records are read-only; any failure yields an empty list.
"""

from __future__ import annotations

import json
from typing import Any

import httpx
from loguru import logger

from siakad.core.models import KhsRecord


def build_nim_query_params(nim: str) -> dict[str, str]:
    """RTDB filter for one student: orderBy="nim"&equalTo="<nim>"."""
    return {"orderBy": json.dumps("nim"), "equalTo": json.dumps(str(nim))}


def _records(data: Any) -> list[KhsRecord]:
    if not isinstance(data, dict):
        return []
    return [KhsRecord.from_dict(key, value) for key, value in data.items() if isinstance(value, dict)]


class KhsClient:
    """Fetches grade reports for a NIM from the realtime database."""

    def __init__(
        self,
        rtdb_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.rtdb_url = rtdb_url.rstrip("/")
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self.client.aclose()

    @property
    def collection_url(self) -> str:
        return f"{self.rtdb_url}/khs.json"

    async def fetch_for_nim(self, nim: str) -> list[KhsRecord]:
        """Grade reports for ``nim``, newest year first."""
        if not nim:
            return []

        try:
            response = await self.client.get(self.collection_url, params=build_nim_query_params(nim))
            data = response.json()

            # RTDB rejects orderBy on unindexed children (with a 400); filter client-side instead
            if isinstance(data, dict) and "index not defined" in str(data.get("error", "")).lower():
                logger.warning("RTDB index missing for nim query, falling back to fetch-all")
                response = await self.client.get(self.collection_url)
                response.raise_for_status()
                records = [r for r in _records(response.json()) if r.nim == str(nim)]
            else:
                response.raise_for_status()
                records = _records(data)

        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"KHS fetch for {nim} failed: {e}")
            return []

        records.sort(key=lambda r: r.year, reverse=True)
        return records

    async def fetch_all(self) -> list[KhsRecord]:
        """Every grade report, ordered by NIM then year."""
        try:
            response = await self.client.get(self.collection_url)
            response.raise_for_status()
            records = _records(response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"KHS fetch-all failed: {e}")
            return []

        records.sort(key=lambda r: r.nim + r.year)
        return records
