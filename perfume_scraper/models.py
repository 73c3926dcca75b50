"""Data models for the perfume image scraper."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker


def now_utc():
    return datetime.now(timezone.utc)


def now_iso() -> str:
    """ISO-8601 UTC timestamp used in ledger records."""
    return now_utc().isoformat().replace("+00:00", "Z")


STATUS_OK = "ok"
STATUS_NOT_FOUND = "not_found"
STATUS_NO_IMAGE = "no_image"
STATUS_ERROR = "error"

SCRAPE_STATUSES = (STATUS_OK, STATUS_NOT_FOUND, STATUS_NO_IMAGE, STATUS_ERROR)


@dataclass(frozen=True)
class CatalogItem:
    """One catalog perfume needing an image."""

    id: str
    nombre: str
    marca: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["CatalogItem"]:
        item_id = str(data.get("id") or "").strip()
        nombre = str(data.get("nombre") or "").strip()
        if not item_id or not nombre:
            return None
        return cls(id=item_id, nombre=nombre, marca=str(data.get("marca") or "").strip())

    @property
    def image_filename(self) -> str:
        return f"{self.id}.jpg"


@dataclass
class ScrapeOutcome:
    """Result ledger record for one catalog item."""

    status: str
    url: Optional[str] = None
    file: Optional[str] = None
    fragrantica: Optional[str] = None
    query: Optional[str] = None
    error: Optional[str] = None

    def __post_init__(self):
        if self.status not in SCRAPE_STATUSES:
            raise ValueError(f"Unknown scrape status: {self.status}")

    def to_dict(self) -> Dict[str, Any]:
        data = {"status": self.status}
        for key in ("url", "file", "fragrantica", "query", "error"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScrapeOutcome":
        return cls(
            status=data.get("status", STATUS_ERROR),
            url=data.get("url"),
            file=data.get("file"),
            fragrantica=data.get("fragrantica"),
            query=data.get("query"),
            error=data.get("error"),
        )

    @property
    def is_ok(self) -> bool:
        return self.status == STATUS_OK


@dataclass
class UploadOutcome:
    """Upload ledger record: either a hosted URL or an error."""

    cloudinary_url: Optional[str] = None
    fragrantica: Optional[str] = None
    uploaded_at: Optional[str] = None
    error: Optional[str] = None
    attempted_at: Optional[str] = None

    @classmethod
    def success(cls, cloudinary_url: str, fragrantica: Optional[str]) -> "UploadOutcome":
        return cls(cloudinary_url=cloudinary_url, fragrantica=fragrantica, uploaded_at=now_iso())

    @classmethod
    def failure(cls, error: str) -> "UploadOutcome":
        return cls(error=error, attempted_at=now_iso())

    @property
    def is_success(self) -> bool:
        return bool(self.cloudinary_url)

    def to_dict(self) -> Dict[str, Any]:
        if self.is_success:
            return {
                "cloudinaryUrl": self.cloudinary_url,
                "fragrantica": self.fragrantica,
                "uploadedAt": self.uploaded_at,
            }
        return {"error": self.error, "attemptedAt": self.attempted_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UploadOutcome":
        return cls(
            cloudinary_url=data.get("cloudinaryUrl"),
            fragrantica=data.get("fragrantica"),
            uploaded_at=data.get("uploadedAt"),
            error=data.get("error"),
            attempted_at=data.get("attemptedAt"),
        )


@dataclass
class RunSummary:
    """End-of-run tally shared by both orchestrators."""

    success: int = 0
    failed: int = 0
    skipped: int = 0
    outputs: Dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.success + self.failed + self.skipped

    def as_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "failed": self.failed,
            "skipped": self.skipped,
            "outputs": dict(self.outputs),
        }


Base = declarative_base()


class LedgerEntry(Base):
    """Key-value ledger row (alternative to the JSON ledger files)."""

    __tablename__ = "ledger_entries"
    __table_args__ = (UniqueConstraint("ledger", "item_id", name="uq_ledger_item"),)

    id = Column(Integer, primary_key=True)
    ledger = Column(String(50), nullable=False, index=True)  # 'results', 'uploads'
    item_id = Column(String(100), nullable=False)
    payload = Column(Text, nullable=False)  # JSON
    updated_at = Column(DateTime, default=now_utc, onupdate=now_utc)

    def __repr__(self):
        return f"<LedgerEntry(ledger='{self.ledger}', item_id='{self.item_id}')>"


def get_engine(config: dict, backend: Optional[str] = None):
    """Create database engine for the SQL ledger backend."""
    storage = config.get("storage", {})
    backend = backend or storage.get("ledger_backend", "sqlite")

    if backend == "sqlite":
        db_path = storage.get("sqlite", {}).get("database_path", "data/ledger.db")
        return create_engine(f"sqlite:///{db_path}")
    elif backend == "url":
        db_url = str(storage.get("database_url") or "").strip()
        if not db_url:
            raise ValueError("storage.database_url is required for the 'url' ledger backend")
        return create_engine(db_url)
    else:
        raise ValueError(f"Unsupported database backend: {backend}")


def init_db(engine):
    """Initialize database tables."""
    Base.metadata.create_all(engine)


def get_session_factory(engine):
    """Get session factory for database operations."""
    return sessionmaker(bind=engine)
