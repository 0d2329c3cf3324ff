from datetime import datetime
from typing import Literal

from pydantic import ConfigDict

from regscan.core import DataModel


class RegistryRepository(DataModel):
    """Repository in a remote registry.

    Attributes:
        name: Repository name.
        uri: Repository URI, the prefix of every pull reference.
        registry_id: Registry (account) that owns the repository.
    """

    name: str
    uri: str
    registry_id: str | None = None


class ImageDetail(DataModel):
    """Image as listed by the registry.

    Attributes:
        repository_name: Repository name.
        registry_id: Registry (account) that owns the image.
        digest: Digest computed by the registry provider.
        tags: Tags, in the order the registry reports them.
        pushed_at: Push time.
    """

    repository_name: str
    registry_id: str | None = None
    digest: str
    tags: list[str] = []
    pushed_at: datetime | None = None


class ImageIdentity(DataModel):
    """Image discovered in a remote registry.

    Two identities are equal when registry, repository and provider
    digest are equal, whatever their tags or manifest.

    Attributes:
        registry_id: Registry (account) that owns the image.
        repository_name: Repository name.
        digest: Digest computed by the registry provider.
        tags: Tags of the image.
        pushed_at: Push time.
        manifest: Raw image manifest.
        primary_tag: Tag used to build the pull reference.
        canonical_digest: Config digest from the manifest, as the
            local container engine identifies the image. Empty when
            the manifest could not be read.
    """

    model_config = ConfigDict(frozen=True)

    registry_id: str
    repository_name: str
    digest: str
    tags: list[str] = []
    pushed_at: datetime | None = None
    manifest: str = ""
    primary_tag: str | None = None
    canonical_digest: str = ""

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.registry_id, self.repository_name, self.digest)

    def __hash__(self) -> int:
        return hash(self.key)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ImageIdentity):
            return NotImplemented
        return self.key == other.key


class ScanFailure(DataModel):
    """Failure confined to one scope of a scan.

    Attributes:
        stage: Step of the walk that failed.
        registry_id: Registry being scanned.
        repository_name: Repository being scanned, if any.
        digest: Image digest, for image lookups.
        code: Provider error code, if any.
        reason: Error message.
    """

    stage: Literal["repositories", "image_details", "images"]
    registry_id: str | None = None
    repository_name: str | None = None
    digest: str | None = None
    code: str | None = None
    reason: str


class PullResult(DataModel):
    """Result of pulling one image.

    Attributes:
        reference: Full pull reference (repository URI and tag).
        image: Pulled image.
        pulled: Whether the container engine pulled the image.
    """

    reference: str
    image: ImageIdentity
    pulled: bool
