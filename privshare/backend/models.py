# privshare/backend/models.py
"""
Data models for PrivShare.

Records are plain dataclasses with to_dict()/from_mapping() helpers. The
wire form keeps the camelCase field names used by already published
records so existing share codes keep resolving.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

LOG = logging.getLogger("privshare.session")


def now_ms() -> int:
    return int(time.time() * 1000)


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def provider_service_url(provider_info: Any) -> Optional[str]:
    """
    Extract the direct retrieval endpoint from recorded provider info.

    Accepts the provider reported at upload time, as a dict or as an
    object (products.PDP.data.serviceURL, or a top-level serviceURL /
    service_url), or a bare URL string.
    """
    if not provider_info:
        return None
    if isinstance(provider_info, str):
        return provider_info.rstrip("/") or None
    if isinstance(provider_info, (int, float, bool, list, tuple)):
        return None

    url = _field(_field(_field(_field(provider_info, "products"), "PDP"), "data"), "serviceURL")
    if not url:
        url = _field(provider_info, "serviceURL") or _field(provider_info, "service_url")
    return url.rstrip("/") if isinstance(url, str) and url else None


@dataclass
class FileMetadataRecord:
    """Published binding of a share code to a content id and file metadata."""

    file_name: str
    file_size: int
    mime_type: str
    is_encrypted: bool
    piece_cid: str
    encryption_key: Optional[str] = None
    iv: Optional[str] = None
    uploader: Optional[str] = None
    upload_time: Optional[int] = None
    expires_at: Optional[int] = None
    provider_info: Any = None
    share_code: Optional[str] = None
    timestamp: Optional[int] = None
    version: Optional[str] = None

    @property
    def provider_hint(self) -> Optional[str]:
        return provider_service_url(self.provider_info)

    @property
    def requires_key(self) -> bool:
        return bool(self.is_encrypted)

    def metadata_dict(self) -> Dict[str, Any]:
        """The nested `metadata` object of the wire form."""
        d = {
            "fileName": self.file_name,
            "fileSize": self.file_size,
            "mimeType": self.mime_type,
            "isEncrypted": self.is_encrypted,
            "encryptionKey": self.encryption_key,
            "iv": self.iv,
            "uploader": self.uploader,
            "uploadTime": self.upload_time,
        }
        if self.expires_at is not None:
            d["expiresAt"] = self.expires_at
        return d

    def to_dict(self) -> Dict[str, Any]:
        return {
            "shareCode": self.share_code,
            "pieceCid": self.piece_cid,
            "metadata": self.metadata_dict(),
            "providerInfo": self.provider_info,
            "timestamp": self.timestamp,
            "version": self.version,
        }

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "FileMetadataRecord":
        """
        Build a record from a published mapping document.

        pieceCid and providerInfo live at the top level of the document,
        file details under `metadata`.
        """
        if not isinstance(data, dict):
            raise ValueError("Mapping document must be a JSON object")
        meta = data.get("metadata") or {}
        if not isinstance(meta, dict):
            raise ValueError("Mapping document has no metadata object")

        return cls(
            file_name=meta.get("fileName") or "",
            file_size=int(meta.get("fileSize") or 0),
            mime_type=meta.get("mimeType") or "application/octet-stream",
            is_encrypted=bool(meta.get("isEncrypted")),
            piece_cid=data.get("pieceCid") or meta.get("pieceCid") or "",
            encryption_key=meta.get("encryptionKey"),
            iv=meta.get("iv"),
            uploader=meta.get("uploader"),
            upload_time=_optional_int(meta.get("uploadTime")),
            expires_at=_optional_int(meta.get("expiresAt")),
            provider_info=data.get("providerInfo"),
            share_code=data.get("shareCode"),
            timestamp=_optional_int(data.get("timestamp")),
            version=data.get("version"),
        )


def _optional_int(value: Any) -> Optional[int]:
    # Large numbers may have been published as decimal text
    if value is None or value == "":
        return None
    return int(value)


@dataclass
class PublishReceipt:
    """Result of publishing a mapping to the record store."""
    ipfs_hash: str
    share_code: str
    piece_cid: str


@dataclass
class UploadResult:
    share_code: str
    piece_cid: str
    file_name: str
    file_size: int
    is_encrypted: bool
    encryption_key: Optional[str] = None
    tx_hash: Optional[str] = None
    share_text: str = ""


class UploadStage(str, Enum):
    """Upload state machine states."""
    INIT = "init"
    ENCRYPTING = "encrypting"
    PREFLIGHT_CHECKED = "preflight_checked"
    PROVIDER_NEGOTIATING = "provider_negotiating"
    UPLOADING = "uploading"
    PIECE_CONFIRMED = "piece_confirmed"
    DATASET_CONFIRMING = "dataset_confirming"
    METADATA_PUBLISHING = "metadata_publishing"
    DONE = "done"
    FAILED = "failed"


class DownloadStage(str, Enum):
    """Download progress states."""
    VALIDATING = "validating"
    LOOKING_UP = "looking_up"
    FETCHING = "fetching"
    PROCESSING = "processing"
    DECRYPTING = "decrypting"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class ProgressEvent:
    stage: str
    progress: int
    status: str


ProgressListener = Callable[[ProgressEvent], None]


@dataclass
class Session:
    """
    Transient progress state of one upload or download run.

    Progress never decreases while a run is active; fail() and reset()
    are the only ways back to 0.
    """

    stage: str
    listener: Optional[ProgressListener] = None
    progress: int = 0
    status: str = ""
    history: List[ProgressEvent] = field(default_factory=list)

    def advance(self, stage: Optional[str] = None, progress: Optional[int] = None, status: Optional[str] = None):
        if stage is not None:
            self.stage = stage
        if progress is not None:
            self.progress = max(self.progress, min(100, int(progress)))
        if status is not None:
            self.status = status
        self._emit()

    def fail(self, message: str, failed_stage: str):
        self.stage = failed_stage
        self.progress = 0
        self.status = message
        self._emit()

    def _emit(self):
        event = ProgressEvent(stage=str(getattr(self.stage, "value", self.stage)), progress=self.progress, status=self.status)
        self.history.append(event)
        LOG.debug("progress %s%% [%s] %s", event.progress, event.stage, event.status)
        if self.listener is not None:
            try:
                self.listener(event)
            except Exception:
                LOG.exception("Progress listener raised; continuing")


@dataclass
class UploadSession(Session):
    """Upload run state, including results accumulated from provider callbacks."""

    stage: str = UploadStage.INIT
    selected_provider: Any = None
    data_set: Any = None
    data_sets: List[Any] = field(default_factory=list)
    piece_cid: Optional[str] = None
    tx_hash: Optional[str] = None
    share_code: Optional[str] = None

    def fail(self, message: str, failed_stage: str = UploadStage.FAILED):
        # Partial results are discarded so a retry starts clean
        self.piece_cid = None
        self.tx_hash = None
        self.share_code = None
        super().fail(message, failed_stage)

    def reset(self):
        self.stage = UploadStage.INIT
        self.progress = 0
        self.status = ""
        self.selected_provider = None
        self.data_set = None
        self.data_sets = []
        self.piece_cid = None
        self.tx_hash = None
        self.share_code = None
        self.history = []


@dataclass
class DownloadSession(Session):
    stage: str = DownloadStage.VALIDATING
    record: Optional[FileMetadataRecord] = None

    def fail(self, message: str, failed_stage: str = DownloadStage.FAILED):
        super().fail(message, failed_stage)
