"""Catalog source and product store (Firebase Realtime Database REST API)."""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
from loguru import logger

from perfume_scraper.config_loader import get_firebase_config, get_storage_config, is_unresolved
from perfume_scraper.models import CatalogItem


class CatalogUnavailableError(Exception):
    """Raised when the catalog cannot be loaded from any source."""
    pass


class ProductStoreError(Exception):
    """Raised when the product store rejects a read or write."""

    def __init__(self, status_code: int, body: str, url: str = ""):
        self.status_code = status_code
        self.body = body
        self.url = url
        super().__init__(f"Firebase HTTP {status_code}: {body[:300]}")


class ProductStore:
    """Minimal Firebase Realtime Database client over its REST API."""

    def __init__(
        self,
        database_url: str,
        collection: str = "perfumes",
        auth_token: Optional[str] = None,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ):
        self.database_url = database_url.rstrip("/")
        self.collection = collection.strip("/")
        self.auth_token = auth_token or None
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config: Dict[str, Any], database_url: Optional[str] = None) -> "ProductStore":
        fb = get_firebase_config(config)
        token = fb.get("auth_token")
        return cls(
            database_url=database_url or fb.get("database_url", ""),
            collection=fb.get("collection", "perfumes"),
            auth_token=None if is_unresolved(token) else token,
            timeout=float(fb.get("timeout", 30)),
        )

    def _url(self, *parts: str) -> str:
        path = "/".join([self.collection, *[p.strip("/") for p in parts]])
        return f"{self.database_url}/{path}.json"

    def _params(self) -> Dict[str, str]:
        return {"auth": self.auth_token} if self.auth_token else {}

    def fetch_all(self) -> List[Dict[str, Any]]:
        """Return every record of the collection (empty list when absent)."""
        url = self._url()
        response = self.session.get(url, params=self._params(), timeout=self.timeout)
        if not response.ok:
            raise ProductStoreError(response.status_code, response.text, url)

        payload = response.json()
        if payload is None:
            return []
        if isinstance(payload, dict):
            records = list(payload.values())
        else:
            records = list(payload)
        return [record for record in records if isinstance(record, dict)]

    def patch(self, item_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Partially update one record; fields not named are left untouched."""
        url = self._url(item_id)
        response = self.session.patch(
            url,
            params=self._params(),
            data=json.dumps(fields),
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
        )
        if not response.ok:
            raise ProductStoreError(response.status_code, response.text, url)
        logger.debug(f"Patched {self.collection}/{item_id}: {sorted(fields)}")
        return response.json() or {}


def _to_items(records: List[Dict[str, Any]]) -> List[CatalogItem]:
    items = []
    for record in records:
        item = CatalogItem.from_dict(record)
        if item is None:
            logger.warning(f"Skipping catalog record without id/nombre: {record!r:.120}")
            continue
        items.append(item)
    return items


def _load_from_json(path: Path) -> List[Dict[str, Any]]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = list(data.values())
    if not isinstance(data, list):
        raise CatalogUnavailableError(f"Catalog file {path} must contain a list of products")
    return [record for record in data if isinstance(record, dict)]


def load_catalog(config: Dict[str, Any], store: Optional[ProductStore] = None) -> List[CatalogItem]:
    """Load catalog items: Firebase first, local JSON file as fallback.

    Raises:
        CatalogUnavailableError: When no source yields a catalog.
    """
    fb = get_firebase_config(config)
    database_url = fb.get("database_url")

    if store is not None or not is_unresolved(database_url):
        try:
            store = store or ProductStore.from_config(config)
            records = store.fetch_all()
            if records:
                items = _to_items(records)
                logger.info(f"Firebase: {len(items)} perfumes")
                return items
            logger.warning("Firebase collection is empty, trying local JSON")
        except (requests.RequestException, ProductStoreError, ValueError) as exc:
            logger.warning(f"Firebase catalog unavailable: {exc}")

    json_path = Path(get_storage_config(config).get("catalog_json", "data/parfums.json"))
    if json_path.exists():
        try:
            items = _to_items(_load_from_json(json_path))
        except json.JSONDecodeError as exc:
            raise CatalogUnavailableError(f"Catalog file {json_path} is not valid JSON: {exc}") from exc
        logger.info(f"Local JSON: {len(items)} perfumes ({json_path})")
        return items

    raise CatalogUnavailableError(
        "No catalog available. Configure NEXT_PUBLIC_FIREBASE_DATABASE_URL "
        f"or provide {json_path}"
    )
