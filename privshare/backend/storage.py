# privshare/backend/storage.py
"""
Interfaces of the external collaborators used by the upload orchestrator.

PrivShare does not talk to the storage network or the wallet itself. The
host application passes in objects satisfying these protocols: an
identity able to sign storage transactions, and a storage-network client
that negotiates a provider/data set and uploads payload bytes.

Callback contract: every callback is optional and fires at most once,
except on_data_set_creation_progress which may fire repeatedly.
"""

from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Protocol, runtime_checkable


@runtime_checkable
class Identity(Protocol):
    """Wallet/session collaborator."""

    address: Optional[str]
    signer: Any

    def has_identity(self) -> bool:
        ...


@dataclass
class DataSetCreationStatus:
    """Partial status reported while a new data set is being created."""
    transaction_success: bool = False
    server_confirmed: bool = False
    elapsed_ms: int = 0


@dataclass
class StorageCallbacks:
    on_provider_selected: Optional[Callable[[Any], None]] = None
    on_data_set_resolved: Optional[Callable[[Any], None]] = None
    on_data_set_creation_started: Optional[Callable[[Any], None]] = None
    on_data_set_creation_progress: Optional[Callable[[DataSetCreationStatus], None]] = None


@dataclass
class UploadCallbacks:
    on_upload_complete: Optional[Callable[[Any], None]] = None
    on_piece_added: Optional[Callable[[Any], None]] = None
    on_piece_confirmed: Optional[Callable[[Any], None]] = None


@dataclass
class StorageOptions:
    """Options for StorageClient.create_storage; provider_id None means auto-select."""
    provider_id: Optional[int] = None
    with_cdn: bool = False


@dataclass
class UploadReceipt:
    piece_cid: Any


@runtime_checkable
class StorageService(Protocol):
    async def upload(self, data: bytes, callbacks: UploadCallbacks) -> UploadReceipt:
        ...


@runtime_checkable
class StorageClient(Protocol):
    async def find_data_sets(self, address: str) -> List[Any]:
        ...

    async def create_storage(self, options: StorageOptions, callbacks: StorageCallbacks) -> StorageService:
        ...


def fire(callback: Optional[Callable[..., None]], *args) -> None:
    """Invoke an optional callback."""
    if callback is not None:
        callback(*args)
