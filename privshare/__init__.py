"""
PrivShare: share files through decentralized storage with a short share code.

Upload:   Uploader(storage_client, identity).upload(data, name, encrypt=True)
Download: RetrievalCascade().download(share_code, key)
"""

import logging

from privshare.config import LOG_FORMAT, LOG_LEVEL
from privshare.errors import (
    AllProvidersExhausted,
    ConfigurationError,
    DecodeError,
    DecryptionError,
    EncryptionError,
    MissingKeyError,
    PrivShareError,
    ProviderSelectionError,
    PublishError,
    RecordLookupError,
    RecordNotFoundError,
    StorageUploadError,
    ValidationError,
)
from privshare.backend.models import (
    FileMetadataRecord,
    ProgressEvent,
    UploadResult,
    UploadSession,
    UploadStage,
)
from privshare.backend.records import RecordStore
from privshare.backend.retrieval import RetrievalCascade
from privshare.backend.uploader import Uploader

__version__ = "0.1.0"

logging.getLogger("privshare").addHandler(logging.NullHandler())


def configure_logging(level: str = None) -> logging.Logger:
    """Attach a stream handler to the privshare logger for host applications."""
    logger = logging.getLogger("privshare")
    if not any(type(h) is logging.StreamHandler for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(level or LOG_LEVEL)
    return logger


__all__ = [
    "AllProvidersExhausted",
    "ConfigurationError",
    "DecodeError",
    "DecryptionError",
    "EncryptionError",
    "MissingKeyError",
    "PrivShareError",
    "ProviderSelectionError",
    "PublishError",
    "RecordLookupError",
    "RecordNotFoundError",
    "StorageUploadError",
    "ValidationError",
    "FileMetadataRecord",
    "ProgressEvent",
    "UploadResult",
    "UploadSession",
    "UploadStage",
    "RecordStore",
    "RetrievalCascade",
    "Uploader",
    "configure_logging",
]
