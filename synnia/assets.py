# synnia/assets.py
"""
Asset store.

Assets are the typed content payloads owned by graph nodes. Each asset
carries a fingerprint of its value that is recomputed on every mutation;
subscribers (the staleness propagator, the history recorder) are notified
after each change.
"""

import copy
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .hashing import DEFAULT_ALGORITHM, stable_hash

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 100


class AssetKind(Enum):
    """Asset payload variants."""
    TEXT = "text"
    IMAGE = "image"
    RECORD = "record"
    ARRAY = "array"

    @classmethod
    def parse(cls, kind: "AssetKind | str") -> "AssetKind":
        if isinstance(kind, cls):
            return kind
        try:
            return cls(kind)
        except ValueError:
            raise ValueError(f"Unknown asset kind: {kind}") from None


@dataclass
class AssetSys:
    """Bookkeeping metadata for an asset."""
    name: str = ""
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    source: str = "user"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AssetSys":
        now = time.time()
        return cls(
            name=data.get("name", ""),
            created_at=data.get("created_at", now),
            updated_at=data.get("updated_at", now),
            source=data.get("source", "user"),
        )


@dataclass
class AssetMeta:
    """Summary derived from an asset value (used for previews)."""
    preview: Optional[str] = None
    length: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in {
            "preview": self.preview,
            "length": self.length,
            "width": self.width,
            "height": self.height,
        }.items() if v is not None}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "AssetMeta":
        data = data or {}
        return cls(
            preview=data.get("preview"),
            length=data.get("length"),
            width=data.get("width"),
            height=data.get("height"),
        )


def derive_meta(kind: AssetKind, value: Any) -> AssetMeta:
    """Compute the value summary for a given asset kind."""
    if kind is AssetKind.TEXT:
        text = value if isinstance(value, str) else ""
        return AssetMeta(preview=text[:PREVIEW_LENGTH], length=len(text))
    if kind is AssetKind.ARRAY:
        return AssetMeta(length=len(value) if isinstance(value, list) else 0)
    if kind is AssetKind.RECORD:
        return AssetMeta(length=len(value) if isinstance(value, dict) else 0)
    if kind is AssetKind.IMAGE:
        if isinstance(value, dict):
            return AssetMeta(
                preview=value.get("src") or value.get("url"),
                width=value.get("width"),
                height=value.get("height"),
            )
        if isinstance(value, str):
            return AssetMeta(preview=value)
    return AssetMeta()


def default_value(kind: AssetKind) -> Any:
    return {
        AssetKind.TEXT: "",
        AssetKind.IMAGE: "",
        AssetKind.RECORD: {},
        AssetKind.ARRAY: [],
    }[kind]


@dataclass
class Asset:
    """
    A typed content payload.

    Attributes:
        id: Asset identifier
        kind: Payload variant
        value: The content itself (str for text/image, dict for record, list for array)
        value_meta: Derived summary of the value
        config: Schema/format configuration, or None
        sys: Name, timestamps and origin
        hash: Fingerprint of value
    """
    id: str
    kind: AssetKind
    value: Any
    value_meta: AssetMeta = field(default_factory=AssetMeta)
    config: Optional[Dict[str, Any]] = None
    sys: AssetSys = field(default_factory=AssetSys)
    hash: str = ""

    @property
    def schema(self) -> List[Dict[str, Any]]:
        """Field schema from config, if any."""
        if not self.config:
            return []
        return list(self.config.get("schema") or [])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "value": self.value,
            "value_meta": self.value_meta.to_dict(),
            "config": self.config,
            "sys": self.sys.to_dict(),
            "hash": self.hash,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Asset":
        return cls(
            id=data["id"],
            kind=AssetKind.parse(data["kind"]),
            value=data.get("value"),
            value_meta=AssetMeta.from_dict(data.get("value_meta")),
            config=data.get("config"),
            sys=AssetSys.from_dict(data.get("sys", {})),
            hash=data.get("hash", ""),
        )


# (asset_id, old_hash, new_hash)
AssetListener = Callable[[str, str, str], None]


@dataclass
class HistoryEntry:
    """A snapshot of an asset value."""
    asset_id: str
    content_hash: str
    value: Any
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "asset_id": self.asset_id,
            "content_hash": self.content_hash,
            "value": self.value,
            "created_at": self.created_at,
        }


class AssetHistory:
    """
    Per-asset value snapshots, newest first.

    A snapshot is only kept when the content hash is new for that asset, and
    each asset keeps at most ``limit`` snapshots.
    """

    def __init__(self, limit: int = 50):
        self.limit = limit
        self._entries: Dict[str, List[HistoryEntry]] = {}

    def record(self, asset: Asset) -> bool:
        """Snapshot an asset's current value. Returns False if already recorded."""
        entries = self._entries.setdefault(asset.id, [])
        if any(e.content_hash == asset.hash for e in entries):
            return False
        entries.insert(0, HistoryEntry(
            asset_id=asset.id,
            content_hash=asset.hash,
            value=copy.deepcopy(asset.value),
        ))
        del entries[self.limit:]
        return True

    def history(self, asset_id: str, limit: Optional[int] = None) -> List[HistoryEntry]:
        entries = self._entries.get(asset_id, [])
        return list(entries[:limit] if limit is not None else entries)

    def get(self, asset_id: str, content_hash: str) -> Optional[HistoryEntry]:
        for entry in self._entries.get(asset_id, []):
            if entry.content_hash == content_hash:
                return entry
        return None

    def count(self, asset_id: str) -> int:
        return len(self._entries.get(asset_id, []))

    def forget(self, asset_id: str) -> None:
        self._entries.pop(asset_id, None)


class AssetStore:
    """
    Repository of assets keyed by id.

    All mutation goes through this class. Each mutating call recomputes the
    fingerprint and ``updated_at`` and then notifies subscribers.
    """

    def __init__(
        self,
        algorithm: str = DEFAULT_ALGORITHM,
        history: Optional[AssetHistory] = None,
    ):
        self.algorithm = algorithm
        self.history = history
        self._assets: Dict[str, Asset] = {}
        self._listeners: List[AssetListener] = []

    def __contains__(self, asset_id: str) -> bool:
        return asset_id in self._assets

    def __len__(self) -> int:
        return len(self._assets)

    def ids(self) -> List[str]:
        return list(self._assets)

    def subscribe(self, listener: AssetListener) -> Callable[[], None]:
        """Register a change listener. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def hash_value(self, value: Any) -> str:
        return stable_hash(value, self.algorithm)

    def create(
        self,
        kind: AssetKind | str,
        value: Any = None,
        meta: Optional[AssetMeta] = None,
        *,
        name: str = "",
        config: Optional[Dict[str, Any]] = None,
        source: str = "user",
        asset_id: Optional[str] = None,
    ) -> str:
        """Create an asset and return its id."""
        kind = AssetKind.parse(kind)
        if value is None:
            value = default_value(kind)
        value = copy.deepcopy(value)
        asset_id = asset_id or f"asset-{uuid.uuid4().hex[:12]}"
        if asset_id in self._assets:
            raise ValueError(f"Asset {asset_id} already exists")

        asset = Asset(
            id=asset_id,
            kind=kind,
            value=value,
            value_meta=meta or derive_meta(kind, value),
            config=copy.deepcopy(config),
            sys=AssetSys(name=name, source=source),
            hash=self.hash_value(value),
        )
        self._assets[asset_id] = asset
        if self.history is not None:
            self.history.record(asset)
        logger.debug(f"Created {kind.value} asset {asset_id}")
        return asset_id

    def add(self, asset: Asset) -> None:
        """Insert a fully formed asset (used when loading a project)."""
        asset.hash = self.hash_value(asset.value)
        self._assets[asset.id] = asset

    def get(self, asset_id: Optional[str]) -> Optional[Asset]:
        if asset_id is None:
            return None
        return self._assets.get(asset_id)

    def _require(self, asset_id: str) -> Asset:
        asset = self._assets.get(asset_id)
        if asset is None:
            raise KeyError(f"Asset {asset_id} not found")
        return asset

    def set_value(self, asset_id: str, value: Any, meta: Optional[AssetMeta] = None) -> Asset:
        """Replace an asset's value."""
        asset = self._require(asset_id)
        old_hash = asset.hash
        asset.value = copy.deepcopy(value)
        asset.value_meta = meta or derive_meta(asset.kind, asset.value)
        self._touch(asset)
        if self.history is not None and asset.hash != old_hash:
            self.history.record(asset)
        self._notify(asset_id, old_hash, asset.hash)
        return asset

    def update_config(self, asset_id: str, patch: Dict[str, Any]) -> Asset:
        """Shallow-merge into an asset's config."""
        asset = self._require(asset_id)
        asset.config = {**(asset.config or {}), **copy.deepcopy(patch)}
        self._touch(asset)
        self._notify(asset_id, asset.hash, asset.hash)
        return asset

    def update_sys(self, asset_id: str, patch: Dict[str, Any]) -> Asset:
        """Update name/source metadata."""
        asset = self._require(asset_id)
        if "name" in patch:
            asset.sys.name = patch["name"]
        if "source" in patch:
            asset.sys.source = patch["source"]
        self._touch(asset)
        self._notify(asset_id, asset.hash, asset.hash)
        return asset

    def update_fields(self, asset_id: str, updates: Dict[str, Any]) -> Asset:
        """Merge field values into a record asset (non-records are replaced)."""
        asset = self._require(asset_id)
        if isinstance(asset.value, dict):
            value = {**asset.value, **updates}
        else:
            value = dict(updates)
        return self.set_value(asset_id, value)

    def delete(self, asset_id: str) -> bool:
        if self._assets.pop(asset_id, None) is None:
            return False
        if self.history is not None:
            self.history.forget(asset_id)
        logger.debug(f"Deleted asset {asset_id}")
        return True

    def restore(self, asset_id: str, content_hash: str) -> Asset:
        """Re-apply a snapshot from the history."""
        if self.history is None:
            raise ValueError("Asset history is disabled")
        entry = self.history.get(asset_id, content_hash)
        if entry is None:
            raise KeyError(f"No snapshot {content_hash[:12]} for asset {asset_id}")
        return self.set_value(asset_id, entry.value)

    def _touch(self, asset: Asset) -> None:
        asset.hash = self.hash_value(asset.value)
        asset.sys.updated_at = max(time.time(), asset.sys.updated_at)

    def _notify(self, asset_id: str, old_hash: str, new_hash: str) -> None:
        for listener in list(self._listeners):
            listener(asset_id, old_hash, new_hash)

    def to_dict(self) -> Dict[str, Any]:
        return {asset_id: asset.to_dict() for asset_id, asset in self._assets.items()}

    def load_dict(self, data: Dict[str, Any]) -> None:
        for asset_data in data.values():
            self.add(Asset.from_dict(asset_data))
