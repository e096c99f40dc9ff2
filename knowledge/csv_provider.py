"""CSV-backed knowledge provider with content-hash change detection."""

import asyncio
import hashlib
import logging
import pandas as pd
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from schemas.knowledge import KnowledgeSnapshot
from .provider import KnowledgeProvider

logger = logging.getLogger(__name__)

WORD_PATTERN = re.compile(r"\w+")


class CSVKnowledgeProvider(KnowledgeProvider):
    """
    Serves business data from CSV sheets.

    Layout: `<base_dir>/<user_id>/<query_type>.csv`, falling back to
    `<base_dir>/<query_type>.csv` for data shared by every account. A sheet
    is parsed again only when its content hash changes.
    """

    GENERAL = "general"
    DEFAULT_LIMIT = 10
    SUMMARY_ROWS = 5
    MIN_SEARCH_WORD = 4

    def __init__(self, base_dir: Union[str, Path]):
        """
        Initialize CSV provider.

        Args:
            base_dir: Directory holding the sheets
        """
        self.base_dir = Path(base_dir)
        self._cache: Dict[Path, Tuple[str, pd.DataFrame]] = {}

    @staticmethod
    def _compute_hash(path: Path) -> str:
        """Compute hash of a sheet for change detection."""
        with open(path, "rb") as f:
            return hashlib.md5(f.read()).hexdigest()

    def _load_sheet(self, path: Path) -> Tuple[str, pd.DataFrame]:
        content_hash = self._compute_hash(path)
        cached = self._cache.get(path)
        if cached and cached[0] == content_hash:
            return cached

        df = pd.read_csv(path).fillna("")
        df.columns = [str(c).strip().lower() for c in df.columns]
        self._cache[path] = (content_hash, df)
        logger.info(f"Loaded {len(df)} rows from {path}")
        return content_hash, df

    def _sheet_paths(self, user_id: str, query_type: str) -> List[Path]:
        user_dir = self.base_dir / user_id
        if query_type == self.GENERAL:
            paths = sorted(user_dir.glob("*.csv")) if user_dir.is_dir() else []
            return paths or sorted(self.base_dir.glob("*.csv"))

        for candidate in (user_dir / f"{query_type}.csv", self.base_dir / f"{query_type}.csv"):
            if candidate.is_file():
                return [candidate]
        return []

    @classmethod
    def _search(cls, df: pd.DataFrame, search: str) -> pd.DataFrame:
        """Rows ranked by how many search words they mention."""
        words = [w for w in WORD_PATTERN.findall(search.lower()) if len(w) >= cls.MIN_SEARCH_WORD]
        if not words or df.empty:
            return df

        text = df.astype(str).agg(" ".join, axis=1).str.lower()
        scores = sum(text.str.contains(w, regex=False).astype(int) for w in words)
        matched = df[scores > 0]
        if matched.empty:
            return df
        return matched.loc[scores[scores > 0].sort_values(ascending=False, kind="stable").index]

    @staticmethod
    def _apply_filters(df: pd.DataFrame, filters: Dict[str, Any]) -> pd.DataFrame:
        for column, value in filters.items():
            column = column.lower()
            if column in df.columns:
                df = df[df[column].astype(str).str.lower() == str(value).lower()]
        return df

    def _snapshot(self, user_id: str, query_type: str, params: Dict[str, Any]) -> KnowledgeSnapshot:
        paths = self._sheet_paths(user_id, query_type)
        if not paths:
            return KnowledgeSnapshot(query_type=query_type)

        hashes = []
        frames = []
        for path in paths:
            content_hash, df = self._load_sheet(path)
            hashes.append(content_hash)
            frames.append(df.assign(source=path.stem))

        df = pd.concat(frames, ignore_index=True)
        df = self._apply_filters(df, params.get("filters", {}))
        df = self._search(df, params.get("search", ""))
        df = df.head(int(params.get("limit", self.DEFAULT_LIMIT)))

        rows = df.to_dict(orient="records")
        return KnowledgeSnapshot(
            query_type=query_type,
            rows=rows,
            summary=self.summarize(rows),
            content_hash=hashlib.md5("".join(hashes).encode()).hexdigest(),
        )

    @classmethod
    def summarize(cls, rows: List[Dict[str, Any]]) -> str:
        """Compact text rendering of the first rows for prompts."""
        lines = []
        for row in rows[:cls.SUMMARY_ROWS]:
            fields = ", ".join(f"{k}: {v}" for k, v in row.items() if v != "" and k != "source")
            lines.append(f"- [{row.get('source', 'data')}] {fields}")
        if len(rows) > cls.SUMMARY_ROWS:
            lines.append(f"- ... {len(rows) - cls.SUMMARY_ROWS} more")
        return "\n".join(lines)

    async def get_snapshot(
        self,
        user_id: str,
        query_type: str = "general",
        params: Optional[Dict[str, Any]] = None
    ) -> KnowledgeSnapshot:
        """
        Read matching rows from the account's sheets.

        Args:
            user_id: Business account id
            query_type: Sheet name, or "general" for all sheets
            params: Optional "search" text, "filters" column map and "limit"

        Returns:
            KnowledgeSnapshot; empty when no sheet exists
        """
        return await asyncio.to_thread(self._snapshot, user_id, query_type, params or {})
