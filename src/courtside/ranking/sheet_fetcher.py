"""
Fetches the current season's ranking rows from Google Sheets.

The spreadsheet keeps one tab per season named ``"<Label> <N>"``. Only the tab
with the highest ``N`` is read. Requests go through ``requests`` in a worker
thread so the event loop is never blocked, and every call carries both a
socket timeout and an overall ``asyncio`` deadline.

Access uses a plain API key, so only spreadsheets shared as "anyone with the
link can view" are readable. A private sheet needs a read-only service account
instead.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import requests

from courtside.util.async_utils import with_timeout
from courtside.util.errors import FetchError
from courtside.util.logger import get_logger

logger = get_logger("sheet_fetcher")

SHEETS_API_BASE = "https://sheets.googleapis.com/v4/spreadsheets"


@dataclass(frozen=True)
class SheetSnapshot:
    """Rows of the selected season tab."""
    title: str
    rows: List[List[Any]]


def select_latest_title(titles: Sequence[str], label: str) -> Optional[str]:
    """
    Return the title matching ``"<label> <N>"`` with the highest ``N``.

    Titles that do not match exactly (extra words, different label) are ignored.
    """
    pattern = re.compile(rf"^{re.escape(label)} (\d+)$")
    best_title: Optional[str] = None
    best_number = -1
    for title in titles:
        match = pattern.match(title.strip())
        if not match:
            continue
        number = int(match.group(1))
        if number > best_number:
            best_number, best_title = number, title
    return best_title


class RankingSheetFetcher:
    """Reads ranking snapshots from one spreadsheet via the Sheets v4 REST API."""

    def __init__(
        self,
        spreadsheet_id: str,
        api_key: str,
        *,
        sheet_label: str = "Season",
        value_range: str = "G2:H",
        timeout: float = 30.0,
    ) -> None:
        self.spreadsheet_id = spreadsheet_id
        self.api_key = api_key
        self.sheet_label = sheet_label
        self.value_range = value_range
        self.timeout = timeout

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _get_json(self, url: str, params: Dict[str, str]) -> Dict[str, Any]:
        """Blocking GET returning parsed JSON. Run via ``asyncio.to_thread``."""
        try:
            response = requests.get(url, params={**params, "key": self.api_key}, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            raise FetchError(f"Sheets request failed: {exc}") from exc
        except ValueError as exc:
            raise FetchError(f"Sheets returned invalid JSON: {exc}") from exc

        if not isinstance(payload, dict):
            raise FetchError("Sheets returned an unexpected payload")
        return payload

    async def _request(self, url: str, params: Dict[str, str]) -> Dict[str, Any]:
        try:
            return await with_timeout(
                asyncio.to_thread(self._get_json, url, params),
                self.timeout + 5,
                "Sheets request",
            )
        except TimeoutError as exc:
            raise FetchError(str(exc)) from exc

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def list_sheet_titles(self) -> List[str]:
        payload = await self._request(
            f"{SHEETS_API_BASE}/{self.spreadsheet_id}",
            {"fields": "sheets.properties.title"},
        )
        try:
            return [str(sheet["properties"]["title"]) for sheet in payload.get("sheets", [])]
        except (KeyError, TypeError) as exc:
            raise FetchError(f"Malformed sheet metadata: {exc}") from exc

    async def fetch_latest(self) -> SheetSnapshot:
        """
        Return the rows of the newest season tab.

        Raises:
            FetchError: If the spreadsheet cannot be read or no tab matches.
        """
        if not self.spreadsheet_id or not self.api_key:
            raise FetchError("Spreadsheet id or API key is not configured")

        titles = await self.list_sheet_titles()
        title = select_latest_title(titles, self.sheet_label)
        if title is None:
            raise FetchError(f"No sheet titled '{self.sheet_label} <N>' in spreadsheet {self.spreadsheet_id}")

        a1_range = quote(f"'{title}'!{self.value_range}", safe="")
        payload = await self._request(
            f"{SHEETS_API_BASE}/{self.spreadsheet_id}/values/{a1_range}",
            {"majorDimension": "ROWS"},
        )
        rows = payload.get("values", [])
        if not isinstance(rows, list):
            raise FetchError("Malformed values payload")

        logger.info("[SHEET FETCHER] Read %d row(s) from '%s'", len(rows), title)
        return SheetSnapshot(title=title, rows=[row for row in rows if isinstance(row, list)])
