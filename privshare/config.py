# privshare/config.py
"""
Central configuration for PrivShare.
Can be overridden via environment variables.

Record store credentials (one of):
  - PINATA_JWT: Bearer token for the Pinata API (preferred)
  - PINATA_API_KEY + PINATA_API_SECRET: Legacy key/secret pair

Optional environment variables:
  - PINATA_API_URL / PINATA_GATEWAY_URL: Record store endpoints
  - KNOWN_GATEWAYS: Comma-separated list of public gateways tried on download
  - STORAGE_CREATE_RETRIES: Retries for storage/data set creation (default: 2)
  - STORAGE_RETRY_DELAY: Seconds between those retries (default: 2.0)
  - FALLBACK_PROVIDER_ID: Provider forced when auto-selection fails (default: 3)
  - CHAIN_RPC_URL: JSON-RPC endpoint used for the connectivity probe
"""

import os


def _env_list(name: str, default: str) -> list:
    raw = os.environ.get(name, default)
    return [item.strip().rstrip("/") for item in raw.split(",") if item.strip()]


# Record store (Pinata)
PINATA_JWT = os.environ.get("PINATA_JWT")
PINATA_API_KEY = os.environ.get("PINATA_API_KEY")
PINATA_API_SECRET = os.environ.get("PINATA_API_SECRET")
PINATA_API_URL = os.environ.get("PINATA_API_URL", "https://api.pinata.cloud")
PINATA_GATEWAY_URL = os.environ.get("PINATA_GATEWAY_URL", "https://gateway.pinata.cloud")
RECORD_SCHEMA_VERSION = "1.0"
RECORD_NAME_PREFIX = "privshare-mapping-"

# Share codes
SHARE_CODE_SCHEME = "privshare"
SHARE_CODE_PREFIX = f"{SHARE_CODE_SCHEME}://"
SHARE_CODE_LENGTH = 16
SHARE_CODE_GROUP = 4
SHARE_CODE_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"

# Codec
CODEC_CHUNK_SIZE = int(os.environ.get("CODEC_CHUNK_SIZE", 8192))  # 8 KB

# Encryption
# AES-256-CBC, key expanded from a short user string
AES_KEY_SIZE = 32  # 256 bits
AES_IV_SIZE = 16  # 128 bits
KEY_MIN_LENGTH = 4
KEY_MAX_LENGTH = 12

# Storage negotiation
STORAGE_CREATE_RETRIES = int(os.environ.get("STORAGE_CREATE_RETRIES", 2))
STORAGE_RETRY_DELAY = float(os.environ.get("STORAGE_RETRY_DELAY", 2.0))  # seconds
FALLBACK_PROVIDER_ID = int(os.environ.get("FALLBACK_PROVIDER_ID", 3))

# Network timeouts (seconds)
FETCH_TIMEOUT = float(os.environ.get("FETCH_TIMEOUT", 30.0))
PUBLISH_TIMEOUT = float(os.environ.get("PUBLISH_TIMEOUT", 15.0))
LOOKUP_TIMEOUT = float(os.environ.get("LOOKUP_TIMEOUT", 15.0))
RPC_TIMEOUT = float(os.environ.get("RPC_TIMEOUT", 5.0))

# Connectivity probe (advisory only, never fails an upload)
CHAIN_RPC_URL = os.environ.get("CHAIN_RPC_URL", "https://api.calibration.node.glif.io/rpc/v1")

# Retrieval cascade, tried in order after the recorded provider
KNOWN_GATEWAYS = _env_list(
    "KNOWN_GATEWAYS",
    ",".join([
        "https://ipfs.io",
        "https://cloudflare-ipfs.com",
        "https://dweb.link",
        "https://gateway.pinata.cloud",
        "https://api.web3.storage",
        "https://ipfs.filebase.io",
        "https://ipfs.eth.aragon.network",
        "https://ipfs.fleek.co",
    ]),
)

# Endpoint conventions tried against each gateway
GATEWAY_ENDPOINTS = (
    "{base}/ipfs/{cid}",
    "{base}/ipfs/{cid}?format=raw",
    "{base}/api/v0/cat?arg={cid}",
    "{base}/piece/{cid}",
)

# Logging
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s [privshare] %(levelname)s: %(message)s"
