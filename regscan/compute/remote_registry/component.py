from regscan.core import Component, Response, operation

from ._models import ImageIdentity, PullResult, ScanFailure


class RemoteRegistry(Component):
    def __init__(self, **kwargs):
        """Initialize.

        The provider is selected once, when the component is bound,
        and owns its own registry client.
        """
        super().__init__(**kwargs)

    @operation()
    def is_tooling_available(self) -> Response[bool]:
        """Check that the registry command line tooling is installed.

        Returns:
            True if the tooling can be run.
        """
        ...

    @operation()
    def login(self) -> Response[bool]:
        """Log the container engine in to the configured registries.

        Returns:
            True if at least one registry accepted the login.
        """
        ...

    @operation()
    def enumerate_images(self) -> Response[set[ImageIdentity]]:
        """Walk registries, repositories and images.

        Replaces the images and lookup state of any previous run.

        Returns:
            Images found, deduplicated by registry, repository
            and provider digest.
        """
        ...

    @operation()
    def get_full_pull_reference(self, image: ImageIdentity) -> Response[str]:
        """Build the pull reference of an enumerated image.

        Args:
            image: Image returned by the last enumeration.

        Returns:
            ``<repository-uri>:<tag>``, or an empty string if the
            repository URI or tag was not seen while enumerating.
        """
        ...

    @operation()
    def get_failures(self) -> Response[list[ScanFailure]]:
        """Get the failures of the last enumeration.

        Returns:
            One entry per registry, repository or image that
            could not be read.
        """
        ...

    @operation()
    def pull(self) -> Response[list[PullResult]]:
        """Log in, enumerate and pull the selected images.

        Returns:
            One result per pull attempted.
        """
        ...

    @operation()
    def remove(self) -> Response[list[str]]:
        """Remove the images pulled by this registry.

        Returns:
            References removed from the container engine.
        """
        ...

    @operation()
    def close(self) -> Response[None]:
        """Close the registry client."""
        pass

    @operation()
    async def ais_tooling_available(self) -> Response[bool]:
        """Check that the registry command line tooling is installed.

        Returns:
            True if the tooling can be run.
        """
        ...

    @operation()
    async def alogin(self) -> Response[bool]:
        """Log the container engine in to the configured registries.

        Returns:
            True if at least one registry accepted the login.
        """
        ...

    @operation()
    async def aenumerate_images(self) -> Response[set[ImageIdentity]]:
        """Walk registries, repositories and images.

        Returns:
            Images found.
        """
        ...

    @operation()
    async def aget_full_pull_reference(
        self, image: ImageIdentity
    ) -> Response[str]:
        """Build the pull reference of an enumerated image.

        Args:
            image: Image returned by the last enumeration.

        Returns:
            Pull reference, or an empty string.
        """
        ...

    @operation()
    async def aget_failures(self) -> Response[list[ScanFailure]]:
        """Get the failures of the last enumeration."""
        ...

    @operation()
    async def apull(self) -> Response[list[PullResult]]:
        """Log in, enumerate and pull the selected images.

        Returns:
            One result per pull attempted.
        """
        ...

    @operation()
    async def aremove(self) -> Response[list[str]]:
        """Remove the images pulled by this registry.

        Returns:
            References removed from the container engine.
        """
        ...

    @operation()
    async def aclose(self) -> Response[None]:
        """Close the registry client."""
        pass
