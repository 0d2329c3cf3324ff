from __future__ import annotations

import json
import logging
import re

from ._config import ALL_REGISTRIES, DEFAULT_REGISTRY_ID
from ._models import ImageIdentity, RegistryRepository

logger = logging.getLogger(__name__)

SHA256_PREFIX = "sha256:"
SHA256_LENGTH = 64
SHA256_PATTERN = re.compile(r"[0-9a-f]{64}")
DOCKER_LOGIN = "docker login"


def extract_digest(manifest: str | None) -> str:
    """Get the config digest of an image manifest.

    The config descriptor digest is what the local container engine
    uses as the image id. It differs from the digest the registry
    computes over the manifest itself.

    The manifest is parsed as JSON and ``config.digest`` is read.
    Text that is not a manifest with a config descriptor is scanned
    for the first ``sha256:`` marker instead.

    Args:
        manifest: Raw manifest text.

    Returns:
        The 64 hex characters of the digest, without the ``sha256:``
        prefix, or an empty string if no complete digest is found.
    """
    if manifest is None or not manifest.strip():
        logger.debug("Manifest is blank, no digest to extract")
        return ""

    config_digest = _get_config_digest(manifest)
    if config_digest is None:
        return _scan_digest(manifest)

    digest = config_digest.removeprefix(SHA256_PREFIX)
    if config_digest.startswith(SHA256_PREFIX) and SHA256_PATTERN.fullmatch(
        digest
    ):
        return digest
    logger.error("Config digest %r is not a sha256 digest", config_digest)
    return ""


def _get_config_digest(manifest: str) -> str | None:
    try:
        document = json.loads(manifest)
    except ValueError:
        return None
    if not isinstance(document, dict):
        return None
    config = document.get("config")
    if not isinstance(config, dict):
        return None
    digest = config.get("digest")
    return digest if isinstance(digest, str) else None


def _scan_digest(manifest: str) -> str:
    index = manifest.find(SHA256_PREFIX)
    if index < 0:
        logger.warning("No %s digest found in manifest", SHA256_PREFIX)
        return ""
    start = index + len(SHA256_PREFIX)
    digest = manifest[start : start + SHA256_LENGTH]
    if len(digest) < SHA256_LENGTH:
        logger.error("Could not get config digest, manifest is truncated")
        logger.debug("Manifest content - %s", manifest)
        return ""
    return digest


def resolve_scan_registry_ids(registry_ids: list[str] | None) -> list[str]:
    """Registries to walk during enumeration.

    No ids, only blank ids, or any wildcard id all mean the
    default registry of the logged-in account.
    """
    ids = [id.strip() for id in registry_ids or []]
    if not any(ids) or any(id in ALL_REGISTRIES for id in ids):
        return [DEFAULT_REGISTRY_ID]
    return list(dict.fromkeys(ids))


def resolve_login_registry_ids(registry_ids: list[str] | None) -> list[str]:
    """Registries to request login for. Empty means the default."""
    ids = [id.strip() for id in registry_ids or []]
    if any(id in ALL_REGISTRIES for id in ids):
        return []
    return list(dict.fromkeys(id for id in ids if id))


def parse_login_line(line: str) -> str | None:
    """Get the registry an engine login command logs in to.

    Returns:
        The last token of the command, or None if the line is not
        a usable login command.
    """
    if not line.startswith(DOCKER_LOGIN):
        return None
    tokens = line.split()
    if len(tokens) < 2:
        logger.info("Invalid docker login command, skipping")
        return None
    return tokens[-1]


class PullReferenceTable:
    """Lookup state that turns an image into a pull reference.

    Filled while enumerating and cleared before every enumeration.

    Attributes:
        repository_uris: Repository name to repository URI.
        digest_tags: Canonical digest to the tag to pull it by.
    """

    repository_uris: dict[str, str]
    digest_tags: dict[str, str]

    def __init__(self):
        self.repository_uris = dict()
        self.digest_tags = dict()

    def clear(self) -> None:
        self.repository_uris.clear()
        self.digest_tags.clear()

    def add_repository(self, repository: RegistryRepository) -> None:
        self.repository_uris[repository.name] = repository.uri

    def add_image(self, image: ImageIdentity) -> None:
        if not image.canonical_digest or not image.primary_tag:
            return
        previous = self.digest_tags.get(image.canonical_digest)
        if previous is not None and previous != image.primary_tag:
            logger.debug(
                "Digest %s already tagged %s, now %s",
                image.canonical_digest,
                previous,
                image.primary_tag,
            )
        self.digest_tags[image.canonical_digest] = image.primary_tag

    def get_pull_reference(self, image: ImageIdentity) -> str:
        uri = self.repository_uris.get(image.repository_name)
        tag = self.digest_tags.get(image.canonical_digest)
        if not uri or not tag:
            return ""
        return f"{uri}:{tag}"


class ImageSelector:
    """Selects which enumerated images get pulled.

    An image is selected when its repository name matches a name
    pattern and either a tag matches a tag pattern or one of its
    digests matches a digest pattern. Patterns must match fully.
    """

    names: list[re.Pattern]
    tags: list[re.Pattern]
    digests: list[re.Pattern]

    def __init__(
        self,
        names: list[str],
        tags: list[str],
        digests: list[str],
    ):
        self.names = [re.compile(p) for p in names]
        self.tags = [re.compile(p) for p in tags]
        self.digests = [re.compile(p) for p in digests]

    def matches(self, image: ImageIdentity) -> bool:
        if not self._any_match(self.names, [image.repository_name]):
            return False
        if self._any_match(self.tags, image.tags):
            return True
        digests = [d for d in (image.digest, image.canonical_digest) if d]
        return self._any_match(self.digests, digests)

    def _any_match(self, patterns: list[re.Pattern], values: list[str]):
        return any(p.fullmatch(v) for p in patterns for v in values)
