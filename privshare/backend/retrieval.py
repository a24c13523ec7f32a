# privshare/backend/retrieval.py
"""
Retrieval cascade for PrivShare.

Given a share code: resolve the record, fetch the content bytes, and
decrypt them when the record says they are encrypted.

Fetch order:
1. The provider endpoint recorded at upload time, tried once
2. Each known public gateway, trying each endpoint convention in turn

Attempts are strictly sequential and the first success wins. There are no
retries inside a single endpoint attempt.
"""

import asyncio
import logging
from typing import List, Optional, Sequence

import requests

from privshare.config import FETCH_TIMEOUT, GATEWAY_ENDPOINTS, KNOWN_GATEWAYS
from privshare.errors import AllProvidersExhausted, MissingKeyError, ValidationError
from privshare.shared import sharecode
from privshare.shared.crypto import decrypt_bytes, validate_key
from privshare.backend import net
from privshare.backend.models import (
    DownloadSession,
    DownloadStage,
    FileMetadataRecord,
    ProgressListener,
)
from privshare.backend.records import RecordStore

LOG = logging.getLogger("privshare.retrieval")

PIECE_ENDPOINT = "{base}/piece/{cid}"


class RetrievalCascade:
    """Preview, fetch and download shared files."""

    def __init__(
        self,
        record_store: RecordStore = None,
        gateways: Sequence[str] = None,
        endpoints: Sequence[str] = None,
        session: requests.Session = None,
        timeout: float = FETCH_TIMEOUT,
        listener: Optional[ProgressListener] = None,
    ):
        self.record_store = record_store or RecordStore()
        self.gateways = [g.rstrip("/") for g in (KNOWN_GATEWAYS if gateways is None else gateways)]
        self.endpoints = list(GATEWAY_ENDPOINTS if endpoints is None else endpoints)
        self.session = session or net.make_session(retries=0)
        self.timeout = timeout
        self.listener = listener

    async def preview(self, share_code: str) -> FileMetadataRecord:
        """Resolve metadata only, so the caller can tell whether a key is needed."""
        return await self.record_store.resolve(share_code)

    def candidate_urls(self, piece_cid: str, provider_hint: Optional[str] = None) -> List[str]:
        """Every URL fetch() would try, in order."""
        urls = []
        if provider_hint:
            urls.append(PIECE_ENDPOINT.format(base=provider_hint.rstrip("/"), cid=piece_cid))
        for gateway in self.gateways:
            for endpoint in self.endpoints:
                urls.append(endpoint.format(base=gateway, cid=piece_cid))
        return urls

    async def fetch(self, piece_cid: str, provider_hint: Optional[str] = None) -> bytes:
        """
        Fetch content bytes by content id.

        Raises:
            ValidationError: Empty content id
            AllProvidersExhausted: Every endpoint failed; wraps the last failure
        """
        if not isinstance(piece_cid, str) or not piece_cid.strip():
            raise ValidationError("Invalid PieceCID format")
        piece_cid = piece_cid.strip()

        last_error = None
        attempts = 0
        for url in self.candidate_urls(piece_cid, provider_hint):
            attempts += 1
            try:
                resp = await net.request(self.session, "GET", url, timeout=self.timeout)
            except requests.RequestException as e:
                last_error = f"{url}: {e}"
                LOG.debug(f"Fetch failed from {url}: {e}")
                continue

            if resp.ok:
                LOG.info(f"Downloaded {piece_cid} from {url} ({len(resp.content)} bytes)")
                return resp.content

            last_error = f"{url}: HTTP {net.describe_status(resp)}"
            LOG.debug(f"Fetch failed from {url}: {net.describe_status(resp)}")

        LOG.error(f"Failed to fetch {piece_cid} from any provider ({attempts} attempts)")
        raise AllProvidersExhausted(last_error=last_error, attempts=attempts)

    async def download(
        self,
        share_code: str,
        key: Optional[str] = None,
        session: DownloadSession = None,
    ) -> bytes:
        """
        Resolve, fetch and (if needed) decrypt a shared file.

        Raises:
            ValidationError, MissingKeyError, RecordNotFoundError,
            RecordLookupError, AllProvidersExhausted, DecryptionError
        """
        if session is None:
            session = DownloadSession(listener=self.listener)

        try:
            return await self._run(session, share_code, key)
        except Exception as e:
            LOG.error(f"Download of {share_code} failed: {e}")
            session.fail(f"Download failed: {e}")
            raise

    async def _run(self, session: DownloadSession, share_code: str, key: Optional[str]) -> bytes:
        session.advance(DownloadStage.VALIDATING, 0, "Validating share code...")
        if not sharecode.validate(share_code):
            raise ValidationError("Invalid share code format")
        if key is not None and not key.strip():
            key = None
        if key is not None:
            validate_key(key)

        session.advance(DownloadStage.LOOKING_UP, 20, "Looking up file...")
        record = await self.preview(share_code)
        session.record = record

        if record.is_encrypted and not key:
            raise MissingKeyError()

        session.advance(DownloadStage.FETCHING, 40, "Downloading file...")
        raw = await self.fetch(record.piece_cid, record.provider_hint)

        session.advance(DownloadStage.PROCESSING, 70, "Processing file...")
        if record.is_encrypted:
            session.advance(DownloadStage.DECRYPTING, 90, "Decrypting file...")
            data = await asyncio.to_thread(decrypt_bytes, raw, key, record.iv or "")
        else:
            data = raw

        session.advance(DownloadStage.DONE, 100, "File downloaded successfully!")
        return data
