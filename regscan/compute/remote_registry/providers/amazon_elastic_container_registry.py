"""
Remote registry on Amazon Elastic Container Registry.
"""

from __future__ import annotations

__all__ = ["AmazonElasticContainerRegistry"]

import logging
import os
import re
from typing import Any

import boto3
from botocore.exceptions import ClientError
from regscan.compute._common import CommandExecutor
from regscan.core import Context, NCall, Provider, Response
from regscan.core.exceptions import BadRequestError

from .._config import MATCH_ALL
from .._helper import (
    ImageSelector,
    PullReferenceTable,
    extract_digest,
    parse_login_line,
    resolve_login_registry_ids,
    resolve_scan_registry_ids,
)
from .._models import (
    ImageDetail,
    ImageIdentity,
    PullResult,
    RegistryRepository,
    ScanFailure,
)

logger = logging.getLogger(__name__)

AWS_VERSION = "aws --version"
AWS_ECR_GET_LOGIN = "aws ecr get-login --no-include-email"
DOCKER_PULL = "docker pull"
DOCKER_REMOVE = "docker rmi"
SUDO_PREFIX = "sudo "


class AmazonElasticContainerRegistry(Provider):
    registry_ids: list[str]
    region: str | None
    login_sudo: bool
    image_names: list[str]
    image_tags: list[str]
    image_digests: list[str]
    max_pull_images: int
    aws_access_key_id: str | None
    aws_secret_access_key: str | None
    aws_session_token: str | None
    profile_name: str | None
    executor: Any
    nparams: dict[str, Any]

    _client: Any
    _init: bool = False
    _unix: bool = False
    _default_registry_id: str | None
    _tooling_available: bool | None
    _lookup: PullReferenceTable
    _selector: ImageSelector
    _images: set[ImageIdentity]
    _failures: list[ScanFailure]
    _pulled: list[str]

    def __init__(
        self,
        registry_ids: list[str] | None = None,
        region: str | None = None,
        login_sudo: bool = False,
        image_names: list[str] | None = None,
        image_tags: list[str] | None = None,
        image_digests: list[str] | None = None,
        max_pull_images: int = 0,
        aws_access_key_id: str | None = None,
        aws_secret_access_key: str | None = None,
        aws_session_token: str | None = None,
        profile_name: str | None = None,
        executor: Any = None,
        nparams: dict[str, Any] = dict(),
        **kwargs,
    ):
        """Initialize.

        Args:
            registry_ids:
                AWS account ids of the registries to scan.
                None, blank or wildcard ids scan the default
                registry of the logged-in account.
            region:
                AWS region of the registries.
                If None, uses the AWS default region.
            login_sudo:
                Run docker login commands with sudo on Unix.
            image_names:
                Repository name patterns to pull.
            image_tags:
                Tag patterns to pull.
            image_digests:
                Digest patterns to pull.
            max_pull_images:
                Maximum number of images to pull. 0 means no limit.
            aws_access_key_id:
                AWS access key ID for authentication.
            aws_secret_access_key:
                AWS secret access key for authentication.
            aws_session_token:
                AWS session token for temporary credentials.
            profile_name:
                AWS profile name to use for authentication.
            executor:
                Runs the aws and docker commands.
                Defaults to a subprocess executor.
            nparams:
                Additional parameters for the ECR client.
        """
        self.registry_ids = list(registry_ids or [])
        self.region = region
        self.login_sudo = login_sudo
        self.image_names = (
            list(image_names) if image_names is not None else [MATCH_ALL]
        )
        self.image_tags = (
            list(image_tags) if image_tags is not None else [MATCH_ALL]
        )
        self.image_digests = list(image_digests or [])
        self.max_pull_images = max_pull_images
        self.aws_access_key_id = aws_access_key_id
        self.aws_secret_access_key = aws_secret_access_key
        self.aws_session_token = aws_session_token
        self.profile_name = profile_name
        self.executor = executor or CommandExecutor()
        self.nparams = nparams
        self._init = False
        self._client = None
        self._unix = os.name == "posix"
        self._default_registry_id = None
        self._tooling_available = None
        self._lookup = PullReferenceTable()
        self._images = set()
        self._failures = []
        self._pulled = []
        try:
            self._selector = ImageSelector(
                names=self.image_names,
                tags=self.image_tags,
                digests=self.image_digests,
            )
        except re.error as e:
            raise BadRequestError(f"Invalid image pattern: {e}") from e
        super().__init__(**kwargs)

    def __setup__(self, context: Context | None = None) -> None:
        if self._init:
            return

        session_kwargs = {}
        if self.aws_access_key_id:
            session_kwargs["aws_access_key_id"] = self.aws_access_key_id
        if self.aws_secret_access_key:
            session_kwargs["aws_secret_access_key"] = (
                self.aws_secret_access_key
            )
        if self.aws_session_token:
            session_kwargs["aws_session_token"] = self.aws_session_token
        if self.profile_name:
            session_kwargs["profile_name"] = self.profile_name

        session = boto3.Session(**session_kwargs)
        self._client = session.client(
            "ecr", region_name=self.region, **self.nparams
        )
        self._init = True

    @property
    def default_registry_id(self) -> str | None:
        return self._default_registry_id

    def is_tooling_available(self) -> Response[bool]:
        if self._tooling_available is not None:
            return Response(result=self._tooling_available)
        installed = self.executor.execute(AWS_VERSION).exit_code == 0
        self._tooling_available = installed
        if not installed:
            logger.error(
                "AWS CLI is not installed or its path "
                "is not configured correctly"
            )
        return Response(result=installed)

    def login(self) -> Response[bool]:
        registry_ids = resolve_login_registry_ids(self.registry_ids)
        command = AWS_ECR_GET_LOGIN
        if registry_ids:
            command += " --registry-ids " + " ".join(registry_ids)
        else:
            logger.info("No registry ids configured, logging in to default")
        if self.region:
            command += f" --region {self.region}"

        result = self.executor.execute(command)
        if result.exit_code != 0:
            logger.info("Login to registries %s failed", registry_ids)
            logger.debug("Login failed with exit code %s", result.exit_code)
            return Response(result=False)

        logged_in = False
        for line in result.output:
            registry = parse_login_line(line)
            if registry is None:
                continue
            login_command = line
            if self._unix and self.login_sudo:
                login_command = SUDO_PREFIX + login_command
            success = self.executor.execute(login_command).exit_code == 0
            logged_in = logged_in or success
            logger.info(
                "Login to registry: %s - %s",
                registry,
                "OK" if success else "Failed",
            )

        # Only a single configured id names the default registry.
        if logged_in and len(self.registry_ids) == len(registry_ids) == 1:
            self._default_registry_id = registry_ids[0]
        return Response(result=logged_in)

    def enumerate_images(self) -> Response[set[ImageIdentity]]:
        self.__setup__()
        self._lookup.clear()
        self._images = set()
        self._failures = []

        for registry_id in resolve_scan_registry_ids(self.registry_ids):
            logger.debug("Scanning registry '%s'", registry_id)
            for repository in self._get_repositories(registry_id):
                details = self._get_image_details(repository.name, registry_id)
                for detail in details:
                    for image in self._get_images(detail, registry_id):
                        self._images.discard(image)
                        self._images.add(image)
                        self._lookup.add_image(image)

        logger.debug("Found %s images", len(self._images))
        return Response(result=set(self._images))

    def get_full_pull_reference(self, image: ImageIdentity) -> Response[str]:
        return Response(result=self._lookup.get_pull_reference(image))

    def get_failures(self) -> Response[list[ScanFailure]]:
        return Response(result=list(self._failures))

    def pull(self) -> Response[list[PullResult]]:
        if not self.is_tooling_available().result:
            return Response(result=[])
        if not self.login().result:
            logger.warning("Login failed, pulling images may fail")

        results: list[PullResult] = []
        images = sorted(
            self.enumerate_images().result,
            key=lambda image: image.key,
        )
        for image in images:
            if not self._selector.matches(image):
                continue
            if self.max_pull_images and len(results) >= self.max_pull_images:
                logger.info(
                    "Reached the limit of %s images to pull",
                    self.max_pull_images,
                )
                break
            reference = self._lookup.get_pull_reference(image)
            if not reference:
                logger.warning(
                    "No pull reference for %s@%s, skipping",
                    image.repository_name,
                    image.digest,
                )
                continue
            result = self.executor.execute(f"{DOCKER_PULL} {reference}")
            pulled = result.exit_code == 0
            if pulled:
                self._pulled.append(reference)
            else:
                logger.warning("Could not pull %s", reference)
            results.append(
                PullResult(reference=reference, image=image, pulled=pulled)
            )
        return Response(result=results)

    def remove(self) -> Response[list[str]]:
        removed = []
        for reference in self._pulled:
            result = self.executor.execute(f"{DOCKER_REMOVE} {reference}")
            if result.exit_code == 0:
                removed.append(reference)
            else:
                logger.warning("Could not remove %s", reference)
        self._pulled = []
        return Response(result=removed)

    def close(self) -> Response[None]:
        self._client = None
        self._tooling_available = None
        self._init = False
        return Response(result=None)

    def _get_repositories(
        self, registry_id: str
    ) -> list[RegistryRepository]:
        args: dict[str, Any] = {}
        if registry_id:
            args["registryId"] = registry_id
        call = NCall(
            self._paginate,
            {"operation": "describe_repositories", "args": args},
        )
        pages, error = call.invoke(return_error=True)
        if error is not None:
            registry = registry_id or self._default_registry_id
            logger.error(
                "Could not get repositories of registry - %s", registry
            )
            logger.error("%s", error)
            self._add_failure(error, "repositories", registry)
            return []

        repositories = []
        for page in pages:
            for item in page.get("repositories", []):
                repository = RegistryRepository(
                    name=item["repositoryName"],
                    uri=item.get("repositoryUri", ""),
                    registry_id=item.get("registryId"),
                )
                self._lookup.add_repository(repository)
                repositories.append(repository)
        return repositories

    def _get_image_details(
        self, repository_name: str, registry_id: str
    ) -> list[ImageDetail]:
        if not repository_name or not repository_name.strip():
            logger.debug("Repository name is blank, no images to list")
            return []

        args: dict[str, Any] = {"repositoryName": repository_name}
        if registry_id:
            args["registryId"] = registry_id
        call = NCall(
            self._paginate,
            {"operation": "describe_images", "args": args},
        )
        pages, error = call.invoke(return_error=True)
        if error is not None:
            registry = registry_id or self._default_registry_id
            logger.error(
                "Could not get images of repository %s - on registry - %s",
                repository_name,
                registry,
            )
            logger.error("%s", error)
            self._add_failure(
                error, "image_details", registry, repository_name
            )
            return []

        details = []
        for page in pages:
            for item in page.get("imageDetails", []):
                details.append(
                    ImageDetail(
                        repository_name=repository_name,
                        registry_id=item.get("registryId") or registry_id,
                        digest=item.get("imageDigest", ""),
                        tags=item.get("imageTags", []),
                        pushed_at=item.get("imagePushedAt"),
                    )
                )
        logger.debug(
            "Repository %s has %s images", repository_name, len(details)
        )
        return details

    def _get_images(
        self, detail: ImageDetail, registry_id: str
    ) -> list[ImageIdentity]:
        if not detail.digest:
            logger.debug(
                "Image of %s has no digest, skipping", detail.repository_name
            )
            return []

        args: dict[str, Any] = {
            "repositoryName": detail.repository_name,
            "imageIds": [{"imageDigest": detail.digest}],
        }
        if detail.registry_id:
            args["registryId"] = detail.registry_id
        call = NCall(self._client.batch_get_image, args)
        response, error = call.invoke(return_error=True)
        registry = detail.registry_id or registry_id
        if error is not None:
            logger.error(
                "Could not get image information of repository - %s",
                detail.repository_name,
            )
            logger.error("%s", error)
            self._add_failure(
                error,
                "images",
                registry,
                detail.repository_name,
                detail.digest,
            )
            return []

        failures = response.get("failures", [])
        if failures:
            logger.info("Errors received when trying to get images:")
        for failure in failures:
            logger.info("%s", failure)
            self._failures.append(
                ScanFailure(
                    stage="images",
                    registry_id=registry,
                    repository_name=detail.repository_name,
                    digest=failure.get("imageId", {}).get("imageDigest"),
                    code=failure.get("failureCode"),
                    reason=failure.get("failureReason", ""),
                )
            )

        images = []
        for item in response.get("images", []):
            manifest = item.get("imageManifest", "")
            tag = item.get("imageId", {}).get("imageTag")
            images.append(
                ImageIdentity(
                    registry_id=item.get("registryId") or registry,
                    repository_name=detail.repository_name,
                    digest=detail.digest,
                    tags=detail.tags,
                    pushed_at=detail.pushed_at,
                    manifest=manifest,
                    primary_tag=tag or next(iter(detail.tags), None),
                    canonical_digest=extract_digest(manifest),
                )
            )
        return images

    def _paginate(self, operation: str, args: dict[str, Any]) -> list[dict]:
        paginator = self._client.get_paginator(operation)
        return list(paginator.paginate(**args))

    def _add_failure(
        self,
        error: Exception,
        stage: str,
        registry_id: str | None,
        repository_name: str | None = None,
        digest: str | None = None,
    ) -> None:
        code = None
        if isinstance(error, ClientError):
            code = error.response.get("Error", {}).get("Code")
        self._failures.append(
            ScanFailure(
                stage=stage,
                registry_id=registry_id,
                repository_name=repository_name,
                digest=digest,
                code=code,
                reason=str(error),
            )
        )
