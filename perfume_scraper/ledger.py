"""Durable per-item outcome ledgers (JSON file or SQL table)."""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Tuple

from loguru import logger

from perfume_scraper.config_loader import get_storage_config
from perfume_scraper.models import LedgerEntry, get_engine, get_session_factory, init_db, now_utc


class LedgerCorruptError(Exception):
    """Raised when a ledger file exists but cannot be parsed."""
    pass


class LedgerStore:
    """Key-value store of item id -> outcome record."""

    location: str = ""

    def get(self, item_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def put(self, item_id: str, record: Dict[str, Any]) -> None:
        raise NotImplementedError

    def all(self) -> Dict[str, Dict[str, Any]]:
        raise NotImplementedError

    def rewrite_all(self, mapping: Dict[str, Dict[str, Any]]) -> None:
        raise NotImplementedError

    def items(self) -> Iterator[Tuple[str, Dict[str, Any]]]:
        return iter(self.all().items())

    def __contains__(self, item_id: str) -> bool:
        return self.get(item_id) is not None

    def __len__(self) -> int:
        return len(self.all())


class JsonLedger(LedgerStore):
    """Single pretty-printed JSON object, fully rewritten on every put.

    The file is read once at construction. Writes go through a temp file and
    ``os.replace`` so readers never see a half-written ledger.
    """

    def __init__(self, path):
        self.path = Path(path)
        self.location = str(self.path)
        self._lock = threading.Lock()
        self._data: Dict[str, Dict[str, Any]] = self._read()

    def _read(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise LedgerCorruptError(f"Ledger {self.path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise LedgerCorruptError(f"Ledger {self.path} must contain a JSON object")
        logger.debug(f"Loaded {len(data)} ledger entries from {self.path}")
        return data

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(self._data, fh, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def get(self, item_id: str) -> Optional[Dict[str, Any]]:
        record = self._data.get(item_id)
        return dict(record) if record is not None else None

    def put(self, item_id: str, record: Dict[str, Any]) -> None:
        with self._lock:
            self._data[item_id] = dict(record)
            self._write()

    def all(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {key: dict(value) for key, value in self._data.items()}

    def rewrite_all(self, mapping: Dict[str, Dict[str, Any]]) -> None:
        with self._lock:
            self._data = {key: dict(value) for key, value in mapping.items()}
            self._write()


class SqlLedger(LedgerStore):
    """Ledger stored as rows of the ``ledger_entries`` table."""

    def __init__(self, engine, name: str):
        self.engine = engine
        self.name = name
        self.location = f"{engine.url}#{name}"
        init_db(engine)
        self._Session = get_session_factory(engine)
        self._lock = threading.Lock()

    def get(self, item_id: str) -> Optional[Dict[str, Any]]:
        session = self._Session()
        try:
            row = (
                session.query(LedgerEntry)
                .filter(LedgerEntry.ledger == self.name, LedgerEntry.item_id == item_id)
                .first()
            )
            return json.loads(row.payload) if row else None
        finally:
            session.close()

    def put(self, item_id: str, record: Dict[str, Any]) -> None:
        payload = json.dumps(record, ensure_ascii=False)
        with self._lock:
            session = self._Session()
            try:
                row = (
                    session.query(LedgerEntry)
                    .filter(LedgerEntry.ledger == self.name, LedgerEntry.item_id == item_id)
                    .first()
                )
                if row:
                    row.payload = payload
                    row.updated_at = now_utc()
                else:
                    session.add(LedgerEntry(ledger=self.name, item_id=item_id, payload=payload))
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    def all(self) -> Dict[str, Dict[str, Any]]:
        session = self._Session()
        try:
            rows = (
                session.query(LedgerEntry)
                .filter(LedgerEntry.ledger == self.name)
                .order_by(LedgerEntry.id)
                .all()
            )
            return {row.item_id: json.loads(row.payload) for row in rows}
        finally:
            session.close()

    def rewrite_all(self, mapping: Dict[str, Dict[str, Any]]) -> None:
        with self._lock:
            session = self._Session()
            try:
                session.query(LedgerEntry).filter(LedgerEntry.ledger == self.name).delete()
                for item_id, record in mapping.items():
                    session.add(
                        LedgerEntry(
                            ledger=self.name,
                            item_id=item_id,
                            payload=json.dumps(record, ensure_ascii=False),
                        )
                    )
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()


LEDGER_PATH_KEYS = {
    "results": "results_path",
    "uploads": "upload_log_path",
}


def ledger_path(config: Dict[str, Any], name: str) -> Path:
    storage = get_storage_config(config)
    defaults = {"results": "data/results.json", "uploads": "data/upload-log.json"}
    return Path(storage.get(LEDGER_PATH_KEYS[name], defaults[name]))


def ledger_exists(config: Dict[str, Any], name: str) -> bool:
    """Whether the named ledger has been written before (JSON backend: file exists)."""
    backend = get_storage_config(config).get("ledger_backend", "json")
    if backend == "json":
        return ledger_path(config, name).exists()
    return len(open_ledger(config, name)) > 0


def open_ledger(config: Dict[str, Any], name: str) -> LedgerStore:
    """Open the 'results' or 'uploads' ledger with the configured backend."""
    if name not in LEDGER_PATH_KEYS:
        raise ValueError(f"Unknown ledger: {name}")

    backend = get_storage_config(config).get("ledger_backend", "json")
    if backend == "json":
        return JsonLedger(ledger_path(config, name))
    return SqlLedger(get_engine(config, backend), name)
