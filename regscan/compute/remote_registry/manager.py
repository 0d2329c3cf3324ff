"""
Fan-out over the configured remote registries.
"""

from __future__ import annotations

__all__ = ["RegistryManager"]

import logging
from typing import Any

from ._config import RemoteRegistryConfig
from ._models import ImageIdentity, PullResult
from .component import RemoteRegistry

logger = logging.getLogger(__name__)

AMAZON_ELASTIC_CONTAINER_REGISTRY = "amazon_elastic_container_registry"


class RegistryManager:
    """Owns one remote registry per enabled provider.

    Registries run one after another. Each registry contains its own
    failures, so a failing registry does not stop the others.
    """

    enabled: bool
    registries: list[RemoteRegistry]

    def __init__(
        self,
        config: RemoteRegistryConfig | None,
        executor: Any = None,
    ):
        """Initialize.

        Args:
            config:
                Remote registry settings. None disables every operation.
            executor:
                Runs the registry and container engine commands.
        """
        self.enabled = config is not None and config.enabled
        self.registries = []
        if config is None or not self.enabled:
            logger.debug("Remote registries are disabled")
            return
        if config.amazon.enabled:
            self.registries.append(
                RemoteRegistry(
                    __handle__=AMAZON_ELASTIC_CONTAINER_REGISTRY,
                    __provider__=dict(
                        type=AMAZON_ELASTIC_CONTAINER_REGISTRY,
                        parameters=dict(
                            registry_ids=config.amazon.registry_ids,
                            region=config.amazon.region,
                            profile_name=config.amazon.profile_name,
                            login_sudo=config.login_sudo,
                            image_names=config.image_names,
                            image_tags=config.image_tags,
                            image_digests=config.image_digests,
                            max_pull_images=config.max_pull_images,
                            executor=executor,
                        ),
                    ),
                )
            )

    def login_all(self) -> dict[str, bool]:
        results = {}
        for registry in self._available_registries():
            results[registry.__handle__] = registry.login().result
        return results

    def enumerate_all(self) -> set[ImageIdentity]:
        images: set[ImageIdentity] = set()
        for registry in self._available_registries():
            images |= registry.enumerate_images().result
        return images

    def pull_all(self) -> list[PullResult]:
        results: list[PullResult] = []
        for registry in self._available_registries():
            results.extend(registry.pull().result)
        return results

    def remove_all_pulled(self) -> list[str]:
        removed: list[str] = []
        for registry in self.registries:
            removed.extend(registry.remove().result)
        return removed

    def close(self) -> None:
        for registry in self.registries:
            registry.close()

    def _available_registries(self) -> list[RemoteRegistry]:
        return [
            registry
            for registry in self.registries
            if registry.is_tooling_available().result
        ]
