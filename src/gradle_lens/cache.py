from __future__ import annotations

import os
import sqlite3
import sys
import time
from dataclasses import dataclass
from pathlib import Path

from gradle_lens.models import Key

_SCHEMA_VERSION = 1


def default_cache_path() -> Path:
    """
    返回默认缓存数据库路径（用户目录下全局共用）。
    """
    if os.name == "nt":
        base = os.environ.get("LOCALAPPDATA") or os.environ.get("APPDATA")
        if base:
            return Path(base) / "gradle-lens" / "cache.sqlite3"
        return Path.home() / "AppData" / "Local" / "gradle-lens" / "cache.sqlite3"

    if sys.platform == "darwin":
        return Path.home() / "Library" / "Caches" / "gradle-lens" / "cache.sqlite3"

    xdg_cache_home = os.environ.get("XDG_CACHE_HOME")
    if xdg_cache_home:
        return Path(xdg_cache_home) / "gradle-lens" / "cache.sqlite3"

    return Path.home() / ".cache" / "gradle-lens" / "cache.sqlite3"


def repository_scope_key(urls: tuple[str, ...]) -> str:
    """
    将仓库列表归一化为缓存的 scope key。
    """
    return "|".join(u.strip().rstrip("/") for u in urls)


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """
    单个模块在缓存中的记录。
    """

    latest: str | None
    repository_url: str | None
    not_found: bool
    error: str | None
    fetched_at: int


class CacheDB:
    """
    SQLite 缓存数据库（全局共用）。
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self._path)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    def close(self) -> None:
        self._conn.close()

    def _ensure_schema(self) -> None:
        """
        创建或升级缓存数据库表结构；版本不一致时清空旧数据。
        """
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS module_cache (
                scope TEXT NOT NULL,
                module TEXT NOT NULL,
                revision TEXT NOT NULL,
                latest TEXT,
                repository_url TEXT,
                not_found INTEGER NOT NULL,
                error TEXT,
                fetched_at INTEGER NOT NULL,
                PRIMARY KEY (scope, module, revision)
            )
            """
        )
        cur.execute("SELECT value FROM meta WHERE key = 'schema_version'")
        row = cur.fetchone()
        if row is None:
            cur.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?)", (str(_SCHEMA_VERSION),))
            self._conn.commit()
            return

        if int(row["value"]) != _SCHEMA_VERSION:
            cur.execute("DELETE FROM module_cache")
            cur.execute("UPDATE meta SET value = ? WHERE key = 'schema_version'", (str(_SCHEMA_VERSION),))
            self._conn.commit()

    def get(self, *, scope: str, key: Key, revision: str, ttl_s: int) -> CacheEntry | None:
        """
        获取缓存记录；若过期或不存在则返回 None。ttl_s=0 表示永不过期。
        """
        cur = self._conn.cursor()
        cur.execute(
            """
            SELECT latest, repository_url, not_found, error, fetched_at
            FROM module_cache
            WHERE scope = ? AND module = ? AND revision = ?
            """,
            (scope, str(key), revision),
        )
        row = cur.fetchone()
        if row is None:
            return None

        fetched_at = int(row["fetched_at"])
        if ttl_s > 0 and (time.time() - fetched_at) > ttl_s:
            return None

        return CacheEntry(
            latest=row["latest"] or None,
            repository_url=row["repository_url"],
            not_found=bool(row["not_found"]),
            error=row["error"],
            fetched_at=fetched_at,
        )

    def set(
        self,
        *,
        scope: str,
        key: Key,
        revision: str,
        latest: str | None,
        repository_url: str | None,
        not_found: bool,
        error: str | None,
    ) -> None:
        """
        写入缓存记录。
        """
        cur = self._conn.cursor()
        cur.execute(
            """
            INSERT INTO module_cache(scope, module, revision, latest, repository_url, not_found, error, fetched_at)
            VALUES(?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(scope, module, revision) DO UPDATE SET
                latest = excluded.latest,
                repository_url = excluded.repository_url,
                not_found = excluded.not_found,
                error = excluded.error,
                fetched_at = excluded.fetched_at
            """,
            (
                scope,
                str(key),
                revision,
                latest,
                repository_url,
                1 if not_found else 0,
                error,
                int(time.time()),
            ),
        )
        self._conn.commit()
