# privshare/backend/records.py
"""
Metadata record store for PrivShare.

Share code -> content id bindings are published as JSON documents to a
pinning service (Pinata) and tagged with the bare share code as an indexed
key/value attribute. Lookups list pins by that attribute and fetch the
document body through the gateway.

The store is append-only and eventually consistent: a resolve() issued
right after publish() may not see the new record yet. Nothing here polls
or retries on NotFound; that is left to the caller.
"""

import json
import logging
from typing import Any, Dict, Optional, Union

import requests

from privshare.config import (
    LOOKUP_TIMEOUT,
    PINATA_API_KEY,
    PINATA_API_SECRET,
    PINATA_API_URL,
    PINATA_GATEWAY_URL,
    PINATA_JWT,
    PUBLISH_TIMEOUT,
    RECORD_NAME_PREFIX,
    RECORD_SCHEMA_VERSION,
)
from privshare.errors import (
    ConfigurationError,
    PublishError,
    RecordLookupError,
    RecordNotFoundError,
    ValidationError,
)
from privshare.shared import sharecode
from privshare.shared.codec import to_json_safe
from privshare.backend import net
from privshare.backend.models import FileMetadataRecord, PublishReceipt, now_ms

LOG = logging.getLogger("privshare.records")


class RecordStore:
    """Pinata-backed publication and lookup of share code mappings."""

    def __init__(
        self,
        api_url: str = None,
        gateway_url: str = None,
        jwt: str = None,
        api_key: str = None,
        api_secret: str = None,
        session: requests.Session = None,
        publish_timeout: float = PUBLISH_TIMEOUT,
        lookup_timeout: float = LOOKUP_TIMEOUT,
    ):
        self.api_url = (api_url or PINATA_API_URL).rstrip("/")
        self.gateway_url = (gateway_url or PINATA_GATEWAY_URL).rstrip("/")
        self.jwt = jwt if jwt is not None else PINATA_JWT
        self.api_key = api_key if api_key is not None else PINATA_API_KEY
        self.api_secret = api_secret if api_secret is not None else PINATA_API_SECRET
        self.session = session or net.make_session(retries=1)
        self.publish_timeout = publish_timeout
        self.lookup_timeout = lookup_timeout

    def _headers(self) -> Dict[str, str]:
        """Auth headers: bearer token if available, else key/secret pair."""
        if self.jwt:
            return {
                "Authorization": f"Bearer {self.jwt}",
                "Content-Type": "application/json",
            }
        if self.api_key and self.api_secret:
            return {
                "pinata_api_key": self.api_key,
                "pinata_secret_api_key": self.api_secret,
                "Content-Type": "application/json",
            }
        raise ConfigurationError("Pinata configuration missing")

    # =========================================================================
    # Publish
    # =========================================================================

    async def publish(
        self,
        share_code: str,
        piece_cid: str,
        metadata: Union[Dict[str, Any], FileMetadataRecord],
        provider_info: Any = None,
    ) -> PublishReceipt:
        """
        Publish the mapping for a freshly minted share code.

        Raises:
            PublishError: The service rejected the write or was unreachable.
                There is no local fallback.
        """
        if not sharecode.validate(share_code):
            raise ValidationError(f"Invalid share code format: {share_code}")
        if isinstance(metadata, FileMetadataRecord):
            metadata = metadata.metadata_dict()

        code = sharecode.extract_key(share_code)
        mapping = to_json_safe({
            "shareCode": code,
            "pieceCid": piece_cid,
            "metadata": metadata,
            "providerInfo": provider_info,
            "timestamp": now_ms(),
            "version": RECORD_SCHEMA_VERSION,
        })

        try:
            body = json.dumps({
                "pinataContent": mapping,
                "pinataMetadata": {
                    "name": f"{RECORD_NAME_PREFIX}{code}",
                    "keyvalues": {
                        "shareCode": code,
                        "pieceCid": piece_cid,
                    },
                },
            })
            headers = self._headers()
        except (TypeError, ValueError, ConfigurationError) as e:
            raise PublishError(f"Failed to store mapping: {e}") from e

        url = f"{self.api_url}/pinning/pinJSONToIPFS"
        try:
            resp = await net.request(
                self.session, "POST", url,
                data=body, headers=headers, timeout=self.publish_timeout,
            )
        except requests.RequestException as e:
            LOG.error(f"Failed to store mapping for {code}: {e}")
            raise PublishError(f"Record store unreachable: {e}") from e

        if not resp.ok:
            LOG.error(f"Pinata rejected mapping for {code}: {net.describe_status(resp)}")
            raise PublishError(f"Pinata API error: {net.describe_status(resp)}")

        try:
            ipfs_hash = resp.json()["IpfsHash"]
        except (ValueError, KeyError, TypeError) as e:
            raise PublishError("Pinata API returned an unexpected response") from e

        LOG.info(f"Mapping stored for {code}: {ipfs_hash}")
        return PublishReceipt(ipfs_hash=ipfs_hash, share_code=share_code, piece_cid=piece_cid)

    # =========================================================================
    # Lookup
    # =========================================================================

    async def resolve(self, share_code: str) -> FileMetadataRecord:
        """
        Resolve a share code to its published record.

        Raises:
            ValidationError: Malformed share code (no network call made)
            RecordNotFoundError: Nothing published under the code
            RecordLookupError: Service error
        """
        if not sharecode.validate(share_code):
            raise ValidationError("Invalid share code format")

        code = sharecode.extract_key(share_code)
        ipfs_hash = await self._find_pin(code)
        mapping = await self._fetch_mapping(ipfs_hash)

        try:
            record = FileMetadataRecord.from_mapping(mapping)
        except (TypeError, ValueError) as e:
            raise RecordLookupError(f"Malformed mapping document {ipfs_hash}: {e}") from e

        if not record.piece_cid:
            raise RecordNotFoundError()
        if not record.share_code:
            record.share_code = code

        LOG.info(f"Resolved {code} -> {record.piece_cid}")
        return record

    async def get_piece_cid(self, share_code: str) -> Optional[str]:
        """Content id for a share code, or None when nothing is published."""
        try:
            record = await self.resolve(share_code)
        except RecordNotFoundError:
            return None
        return record.piece_cid

    async def _find_pin(self, code: str) -> str:
        try:
            headers = self._headers()
        except ConfigurationError as e:
            raise RecordLookupError(str(e)) from e

        query = json.dumps({"shareCode": {"value": code, "op": "eq"}})
        url = f"{self.api_url}/data/pinList"
        try:
            resp = await net.request(
                self.session, "GET", url,
                params={"metadata[keyvalues]": query},
                headers=headers, timeout=self.lookup_timeout,
            )
        except requests.RequestException as e:
            LOG.error(f"Failed to query record store for {code}: {e}")
            raise RecordLookupError(f"Unable to query metadata: {e}") from e

        if not resp.ok:
            raise RecordLookupError(f"Pinata API error: {net.describe_status(resp)}")

        try:
            rows = resp.json().get("rows") or []
        except (ValueError, AttributeError) as e:
            raise RecordLookupError("Pinata API returned an unexpected response") from e

        if not rows:
            LOG.warning(f"No mapping found for {code}")
            raise RecordNotFoundError()

        try:
            ipfs_hash = rows[0].get("ipfs_pin_hash")
        except (AttributeError, KeyError, TypeError) as e:
            raise RecordLookupError("Pinata API returned an unexpected response") from e

        if not ipfs_hash:
            raise RecordLookupError("Pin listing has no content hash")
        return ipfs_hash

    async def _fetch_mapping(self, ipfs_hash: str) -> Dict[str, Any]:
        url = f"{self.gateway_url}/ipfs/{ipfs_hash}"
        try:
            resp = await net.request(self.session, "GET", url, timeout=self.lookup_timeout)
        except requests.RequestException as e:
            raise RecordLookupError(f"Unable to get metadata from IPFS: {e}") from e

        if not resp.ok:
            LOG.error(f"Gateway returned {net.describe_status(resp)} for {ipfs_hash}")
            raise RecordLookupError(f"Unable to get metadata from IPFS: {net.describe_status(resp)}")

        try:
            return resp.json()
        except ValueError as e:
            raise RecordLookupError(f"Mapping document {ipfs_hash} is not JSON") from e
