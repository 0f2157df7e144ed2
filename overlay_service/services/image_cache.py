"""Background-image cache keyed by the normalized origin URL.

Records are content-addressed JSON files. Expiry is decided by the store from
the TTL stamped at write time; nothing evicts entries explicitly, and bumping
``cache_version`` orphans every previous entry at once.
"""

import hashlib
import json
import os
import tempfile
import time
from pathlib import Path
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import structlog
from pydantic import ValidationError

from overlay_service.config import settings
from overlay_service.schemas.overlay import CacheRecord

logger = structlog.get_logger()

_cache: "ImageCache | None" = None


def normalize_url(url: str) -> str:
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.sort(key=lambda item: item[0])
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def build_cache_key(url: str, version: str) -> str:
    return f"{version}:{normalize_url(url)}"


class FileCacheStore:
    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def _path_for(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode()).hexdigest()
        return self.root / digest[:2] / f"{digest}.json"

    def get(self, key: str) -> dict[str, Any] | None:
        path = self._path_for(key)
        try:
            entry = json.loads(path.read_text())
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning("cache_entry_unreadable", key=key, error=str(e))
            return None
        if entry.get("key") != key or entry.get("expires_at", 0) <= time.time():
            return None
        return entry.get("value")

    def put(self, key: str, value: dict[str, Any], ttl: int) -> None:
        path = self._path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        entry = {"key": key, "expires_at": time.time() + ttl, "value": value}
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(entry, f)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class ImageCache:
    def __init__(self, store: FileCacheStore, version: str, ttl: int) -> None:
        self.store = store
        self.version = version
        self.ttl = ttl

    def key_for(self, url: str) -> str:
        return build_cache_key(url, self.version)

    def get(self, url: str) -> CacheRecord | None:
        key = self.key_for(url)
        value = self.store.get(key)
        if value is None:
            logger.debug("cache_miss", url=url)
            return None
        try:
            record = CacheRecord.model_validate(value)
        except ValidationError as e:
            logger.warning("cache_record_invalid", url=url, error=str(e))
            return None
        logger.debug("cache_hit", url=url)
        return record

    def put(self, url: str, record: CacheRecord) -> None:
        try:
            self.store.put(self.key_for(url), record.model_dump(), self.ttl)
        except Exception as e:
            logger.error("cache_put_failed", url=url, error=str(e))
            return
        logger.info("cache_put", url=url, width=record.width, height=record.height)


def get_image_cache() -> ImageCache:
    global _cache
    if _cache is None:
        _cache = ImageCache(
            FileCacheStore(settings.cache_path),
            version=settings.cache_version,
            ttl=settings.cache_ttl,
        )
    return _cache
