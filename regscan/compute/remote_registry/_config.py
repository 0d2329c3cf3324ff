from __future__ import annotations

import re

from pydantic import ValidationError, field_validator

from regscan.core import DataModel, YamlLoader
from regscan.core.exceptions import BadRequestError

DEFAULT_REGISTRY_ID = ""
ALL_REGISTRIES = frozenset({"*", ".*.*"})
MATCH_ALL = ".*.*"


class AmazonRegistryConfig(DataModel):
    """Amazon Elastic Container Registry settings.

    Attributes:
        enabled: Scan Amazon registries.
        registry_ids: Registry (account) ids to scan. Empty, blank or
            wildcard entries mean the default registry of the
            logged-in account.
        region: AWS region. None uses the AWS default chain.
        profile_name: AWS profile to use.
    """

    enabled: bool = False
    registry_ids: list[str] = []
    region: str | None = None
    profile_name: str | None = None


class RemoteRegistryConfig(DataModel):
    """Remote registry settings.

    Attributes:
        enabled: Global switch; nothing runs when disabled.
        login_sudo: Prefix engine login commands with sudo on Unix.
        image_names: Repository name patterns to pull.
        image_tags: Tag patterns to pull.
        image_digests: Digest patterns to pull.
        max_pull_images: Pull at most this many images per registry
            provider. 0 means no limit.
        amazon: Amazon registry settings.
    """

    enabled: bool = False
    login_sudo: bool = True
    image_names: list[str] = [MATCH_ALL]
    image_tags: list[str] = [MATCH_ALL]
    image_digests: list[str] = []
    max_pull_images: int = 0
    amazon: AmazonRegistryConfig = AmazonRegistryConfig()

    @field_validator("image_names", "image_tags", "image_digests")
    @classmethod
    def _check_patterns(cls, patterns: list[str]) -> list[str]:
        for pattern in patterns:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid pattern {pattern!r}: {e}") from e
        return patterns

    @field_validator("max_pull_images")
    @classmethod
    def _check_max_pull_images(cls, value: int) -> int:
        if value < 0:
            raise ValueError("max_pull_images must not be negative")
        return value

    @staticmethod
    def from_yaml(path: str) -> RemoteRegistryConfig:
        obj = YamlLoader.load(path=path)
        if not isinstance(obj, dict):
            raise BadRequestError(f"Configuration in {path} is not a mapping")
        try:
            return RemoteRegistryConfig.from_dict(
                obj.get("remote_registry", obj)
            )
        except ValidationError as e:
            raise BadRequestError(
                f"Invalid configuration in {path}: {e}"
            ) from e
