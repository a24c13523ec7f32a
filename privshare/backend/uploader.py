# privshare/backend/uploader.py
"""
Upload orchestration for PrivShare.

Handles:
- Optional client-side encryption of the payload
- Preflight: identity check, data set discovery, connectivity probe
- Storage provider negotiation with bounded retry and one fallback provider
- Payload upload with piece upload / on-chain add / on-chain confirm checkpoints
- Share code minting and metadata publication

States run strictly in order:
INIT -> ENCRYPTING -> PREFLIGHT_CHECKED -> PROVIDER_NEGOTIATING -> UPLOADING
-> PIECE_CONFIRMED -> DATASET_CONFIRMING -> METADATA_PUBLISHING -> DONE,
with FAILED reachable from any of them.
"""

import asyncio
import logging
import mimetypes
from pathlib import Path
from typing import Any, NamedTuple, Optional

import requests

from privshare.config import (
    CHAIN_RPC_URL,
    FALLBACK_PROVIDER_ID,
    RPC_TIMEOUT,
    STORAGE_CREATE_RETRIES,
    STORAGE_RETRY_DELAY,
)
from privshare.errors import ProviderSelectionError, StorageUploadError, ValidationError
from privshare.shared import sharecode
from privshare.shared.codec import chunked_decode
from privshare.shared.crypto import encrypt_file, generate_key, validate_key
from privshare.backend import net
from privshare.backend.models import (
    FileMetadataRecord,
    ProgressListener,
    UploadResult,
    UploadSession,
    UploadStage,
    now_ms,
)
from privshare.backend.records import RecordStore
from privshare.backend.storage import (
    DataSetCreationStatus,
    Identity,
    StorageCallbacks,
    StorageClient,
    StorageOptions,
    StorageService,
    UploadCallbacks,
)

LOG = logging.getLogger("privshare.uploader")

DEFAULT_MIME_TYPE = "application/octet-stream"

# Substrings used to classify provider negotiation failures
TRANSIENT_MARKERS = ("500", "502", "503", "504", "internal server error", "timed out", "timeout")
TRANSACTION_MARKERS = ("failed to estimate gas", "insufficient funds", "execution reverted", "nonce")
ACCESS_MARKERS = ("401", "403", "forbidden", "unauthorized", "access denied", "not approved")


class StorageAttempt(NamedTuple):
    """Outcome of a bounded create_storage retry loop."""
    service: Optional[StorageService]
    error: Optional[BaseException]
    attempts: int

    @property
    def ok(self) -> bool:
        return self.service is not None


def classify_provider_failure(
    primary_error: Optional[BaseException],
    fallback_error: Optional[BaseException],
) -> ProviderSelectionError:
    """Turn the final negotiation failure into user-actionable guidance."""
    message = str(fallback_error) if fallback_error else "Unknown error"
    lowered = message.lower()

    if any(marker in lowered for marker in TRANSIENT_MARKERS):
        reason = ProviderSelectionError.TRANSIENT_NETWORK
        text = (
            "Network connection issues. Please check your internet connection and try again. "
            "Both providers returned server errors. This might be a temporary network issue."
        )
    elif any(marker in lowered for marker in TRANSACTION_MARKERS):
        reason = ProviderSelectionError.TRANSACTION_FAILED
        text = (
            "Blockchain transaction failed. This might be due to network congestion "
            "or insufficient gas. Please try again later."
        )
    elif any(marker in lowered for marker in ACCESS_MARKERS):
        reason = ProviderSelectionError.ACCESS_DENIED
        text = (
            "The storage provider denied access. Check that your wallet has approved "
            "the storage service and try again."
        )
    else:
        reason = ProviderSelectionError.UNKNOWN
        text = (
            "Both auto-selected and fallback providers failed. "
            f"Auto-selected error: {primary_error}. Fallback error: {message}"
        )

    return ProviderSelectionError(
        text, reason=reason, primary_error=primary_error, fallback_error=fallback_error,
    )


def _tx_hash(transaction: Any) -> Optional[str]:
    if transaction is None:
        return None
    if isinstance(transaction, dict):
        return transaction.get("hash")
    return getattr(transaction, "hash", None)


class SessionHandlers:
    """
    Storage-network callbacks bound to one upload session.

    Values reported by the callbacks (selected provider, data set, piece
    cid, tx hash) are written to the session so they can be read after
    the awaited call returns.
    """

    def __init__(self, session: UploadSession, fallback: bool = False):
        self.session = session
        self.fallback = fallback

    def _status(self, text: str) -> str:
        return f"{text} (fallback provider)" if self.fallback else text

    def storage_callbacks(self) -> StorageCallbacks:
        return StorageCallbacks(
            on_provider_selected=self.provider_selected,
            on_data_set_resolved=self.data_set_resolved,
            on_data_set_creation_started=self.data_set_creation_started,
            on_data_set_creation_progress=self.data_set_creation_progress,
        )

    def upload_callbacks(self) -> UploadCallbacks:
        return UploadCallbacks(
            on_upload_complete=self.upload_complete,
            on_piece_added=self.piece_added,
            on_piece_confirmed=self.piece_confirmed,
        )

    def provider_selected(self, provider: Any):
        LOG.info(self._status("Storage provider selected"))
        self.session.selected_provider = provider
        self.session.advance(status=self._status("Storage provider selected"))

    def data_set_resolved(self, info: Any):
        LOG.info(self._status("Data set resolved"))
        self.session.data_set = info
        self.session.advance(progress=30, status=self._status("Existing dataset found and resolved"))

    def data_set_creation_started(self, transaction: Any):
        LOG.info(f"Data set creation started (tx {_tx_hash(transaction)})")
        self.session.advance(progress=35, status=self._status("Creating new dataset on blockchain..."))

    def data_set_creation_progress(self, status: DataSetCreationStatus):
        if getattr(status, "transaction_success", False):
            self.session.advance(progress=45, status="Dataset transaction confirmed on chain")
        if getattr(status, "server_confirmed", False):
            elapsed = round(getattr(status, "elapsed_ms", 0) / 1000)
            self.session.advance(progress=50, status=f"Dataset ready! ({elapsed}s)")

    def upload_complete(self, piece: Any):
        self.session.piece_cid = str(piece)
        self.session.advance(
            UploadStage.PIECE_CONFIRMED, 80,
            "File uploaded! Signing msg to add pieces to the dataset",
        )

    def piece_added(self, transaction: Any):
        tx_hash = _tx_hash(transaction)
        if tx_hash:
            self.session.tx_hash = tx_hash
        suffix = f" (txHash: {tx_hash})" if tx_hash else ""
        self.session.advance(
            UploadStage.DATASET_CONFIRMING, 85,
            f"Waiting for transaction to be confirmed on chain{suffix}",
        )

    def piece_confirmed(self, *_):
        self.session.advance(progress=90, status="Data pieces added to dataset successfully")


class Uploader:
    """
    Drives one upload per call to upload(); each call gets its own session.
    """

    def __init__(
        self,
        storage_client: StorageClient,
        identity: Identity,
        record_store: RecordStore = None,
        retries: int = None,
        retry_delay: float = None,
        fallback_provider_id: int = None,
        rpc_url: Optional[str] = CHAIN_RPC_URL,
        rpc_session: requests.Session = None,
        listener: Optional[ProgressListener] = None,
    ):
        self.storage_client = storage_client
        self.identity = identity
        self.record_store = record_store or RecordStore()
        self.retries = STORAGE_CREATE_RETRIES if retries is None else retries
        self.retry_delay = STORAGE_RETRY_DELAY if retry_delay is None else retry_delay
        self.fallback_provider_id = (
            FALLBACK_PROVIDER_ID if fallback_provider_id is None else fallback_provider_id
        )
        self.rpc_url = rpc_url
        self.rpc_session = rpc_session or net.make_session(retries=0)
        self.listener = listener

    async def upload(
        self,
        data: bytes,
        file_name: str,
        mime_type: str = None,
        encrypt: bool = False,
        key: str = None,
        session: UploadSession = None,
    ) -> UploadResult:
        """
        Upload a payload and publish its share code.

        Args:
            data: File bytes
            file_name: Name recorded in the metadata
            mime_type: Guessed from file_name when omitted
            encrypt: Encrypt client-side before upload
            key: Custom 4-12 character key; generated when encrypt is set and key is empty
            session: Session to report progress on (a fresh one by default)

        Raises:
            ValidationError, EncryptionError, ProviderSelectionError,
            StorageUploadError, PublishError
        """
        if session is None:
            session = UploadSession(listener=self.listener)
        session.reset()

        try:
            return await self._run(session, data, file_name, mime_type, encrypt, key)
        except Exception as e:
            LOG.error(f"Upload of {file_name!r} failed: {e}")
            session.fail(f"Upload failed: {e}")
            raise

    async def upload_file(
        self,
        path,
        encrypt: bool = False,
        key: str = None,
        session: UploadSession = None,
    ) -> UploadResult:
        """Read a file from disk and upload it under its own name."""
        path = Path(path)
        data = await asyncio.to_thread(path.read_bytes)
        return await self.upload(data, path.name, encrypt=encrypt, key=key, session=session)

    async def _run(
        self,
        session: UploadSession,
        data: bytes,
        file_name: str,
        mime_type: Optional[str],
        encrypt: bool,
        key: Optional[str],
    ) -> UploadResult:
        if not file_name:
            raise ValidationError("File name is required")
        if self.storage_client is None:
            raise ValidationError("Storage client not available. Please check your wallet connection and try again.")
        if self.identity is None or not self.identity.has_identity():
            raise ValidationError("Wallet not connected. Please connect your wallet to upload files.")

        data = bytes(data)
        mime_type = mime_type or mimetypes.guess_type(file_name)[0] or DEFAULT_MIME_TYPE

        encryption_key = None
        iv = None
        if encrypt:
            encryption_key = validate_key(key) if key else generate_key()
            session.advance(UploadStage.ENCRYPTING, 5, "Encrypting file...")
            encrypted = await asyncio.to_thread(encrypt_file, data, encryption_key)
            iv = encrypted.iv
            payload = chunked_decode(encrypted.encrypted_data)
        else:
            session.advance(progress=5, status="Preparing file for upload...")
            payload = data

        # Preflight
        session.advance(progress=10, status="Initializing file upload to Filecoin...")
        session.data_sets = list(await self.storage_client.find_data_sets(self.identity.address) or [])
        LOG.info(f"Found {len(session.data_sets)} existing data sets for {self.identity.address}")

        await self._check_connectivity(session)
        session.advance(UploadStage.PREFLIGHT_CHECKED, 20, "Preflight checks complete")

        # Provider negotiation
        session.advance(UploadStage.PROVIDER_NEGOTIATING, status="Selecting storage provider...")
        service = await self._negotiate(session)

        # Upload
        session.advance(UploadStage.UPLOADING, 55, "Uploading file to storage provider...")
        handlers = SessionHandlers(session)
        try:
            receipt = await service.upload(payload, handlers.upload_callbacks())
        except Exception as e:
            raise StorageUploadError(f"Storage provider rejected the upload: {e}") from e

        piece_cid = str(receipt.piece_cid)
        session.piece_cid = piece_cid
        LOG.info(f"Uploaded {len(payload)} bytes as piece {piece_cid}")

        # Publish only after the piece is confirmed on chain
        share_code = sharecode.generate()
        session.share_code = share_code
        session.advance(UploadStage.METADATA_PUBLISHING, 90, "Publishing share code...")

        record = FileMetadataRecord(
            file_name=file_name,
            file_size=len(data),
            mime_type=mime_type,
            is_encrypted=encrypt,
            piece_cid=piece_cid,
            encryption_key=encryption_key,
            iv=iv,
            uploader=self.identity.address,
            upload_time=now_ms(),
        )
        await self.record_store.publish(share_code, piece_cid, record, session.selected_provider)
        session.advance(progress=95, status="Share code published")

        result = UploadResult(
            share_code=share_code,
            piece_cid=piece_cid,
            file_name=file_name,
            file_size=len(data),
            is_encrypted=encrypt,
            encryption_key=encryption_key,
            tx_hash=session.tx_hash,
            share_text=sharecode.format_share_text(share_code, encryption_key),
        )
        session.advance(UploadStage.DONE, 100, "File successfully stored on Filecoin!")
        return result

    async def _check_connectivity(self, session: UploadSession):
        """Advisory chain RPC probe; problems only change the status text."""
        if not self.rpc_url:
            return

        session.advance(status="Checking network connectivity...")
        payload = {"jsonrpc": "2.0", "method": "Filecoin.ChainHead", "params": [], "id": 1}
        try:
            resp = await net.request(self.rpc_session, "POST", self.rpc_url, json=payload, timeout=RPC_TIMEOUT)
            healthy = resp.ok
            detail = net.describe_status(resp)
        except requests.RequestException as e:
            healthy = False
            detail = str(e)

        if healthy:
            LOG.debug("Network connectivity test passed")
        else:
            LOG.warning(f"Network connectivity test failed: {detail}")
            session.advance(status="Network connectivity issues detected, proceeding with caution...")

    async def _negotiate(self, session: UploadSession) -> StorageService:
        primary = await self._create_storage_with_retry(
            session, StorageOptions(), SessionHandlers(session),
        )
        if primary.ok:
            return primary.service

        LOG.warning(
            f"Auto provider selection failed after {primary.attempts} attempts, "
            f"trying fallback provider ID {self.fallback_provider_id}: {primary.error}"
        )
        session.advance(
            progress=30,
            status=f"Provider failed, trying fallback provider (ID: {self.fallback_provider_id})...",
        )

        fallback = await self._create_storage_with_retry(
            session,
            StorageOptions(provider_id=self.fallback_provider_id),
            SessionHandlers(session, fallback=True),
        )
        if fallback.ok:
            return fallback.service

        LOG.error(f"Fallback provider also failed: {fallback.error}")
        raise classify_provider_failure(primary.error, fallback.error)

    async def _create_storage_with_retry(
        self,
        session: UploadSession,
        options: StorageOptions,
        handlers: SessionHandlers,
    ) -> StorageAttempt:
        """Up to `retries` extra attempts with a fixed delay between them."""
        total = self.retries + 1
        last_error = None

        for attempt in range(1, total + 1):
            try:
                service = await self.storage_client.create_storage(options, handlers.storage_callbacks())
                return StorageAttempt(service=service, error=None, attempts=attempt)
            except Exception as e:
                last_error = e
                LOG.warning(f"Storage creation attempt {attempt}/{total} failed: {e}")

            if attempt < total:
                session.advance(status=f"Retrying storage creation... (attempt {attempt + 1}/{total})")
                await asyncio.sleep(self.retry_delay)

        return StorageAttempt(service=None, error=last_error, attempts=total)
