from ._config import AmazonRegistryConfig, RemoteRegistryConfig
from ._helper import extract_digest
from ._models import (
    ImageDetail,
    ImageIdentity,
    PullResult,
    RegistryRepository,
    ScanFailure,
)
from .component import RemoteRegistry
from .manager import RegistryManager

__all__ = [
    "AmazonRegistryConfig",
    "ImageDetail",
    "ImageIdentity",
    "PullResult",
    "RegistryManager",
    "RegistryRepository",
    "RemoteRegistry",
    "RemoteRegistryConfig",
    "ScanFailure",
    "extract_digest",
]
