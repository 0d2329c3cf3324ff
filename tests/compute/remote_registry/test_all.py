import pytest

from regscan.compute._common import CommandResult
from regscan.compute.remote_registry import ImageIdentity

from ._data import (
    StubImage,
    add_image,
    add_image_details,
    add_registry,
    add_repositories,
    repository_uri,
)
from ._providers import FakeExecutor, get_component, get_stubber
from ._sync_and_async_client import RemoteRegistryClient

REGISTRY_1 = "111111111111"
REGISTRY_2 = "222222222222"

LOGIN_1 = (
    "docker login -u AWS -p secret1 "
    f"https://{REGISTRY_1}.dkr.ecr.us-east-1.amazonaws.com"
)
LOGIN_2 = (
    "docker login -u AWS -p secret2 "
    f"https://{REGISTRY_2}.dkr.ecr.us-east-1.amazonaws.com"
)
GET_LOGIN = "aws ecr get-login --no-include-email"


def login_executor(*lines: str, **results: CommandResult) -> FakeExecutor:
    canned = {GET_LOGIN: CommandResult(exit_code=0, output=list(lines))}
    canned.update(results)
    return FakeExecutor(canned)


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_enumerate_multiple_registries(async_call: bool):
    component = get_component(registry_ids=[REGISTRY_1, REGISTRY_2])
    client = RemoteRegistryClient(component, async_call)
    stubber = get_stubber(component)

    images = {
        REGISTRY_1: {
            "orders": [StubImage("orders", ["v1", "latest"])],
            "billing": [StubImage("billing", ["2.0"])],
        },
        REGISTRY_2: {
            "search": [StubImage("search", ["stable"])],
            "gateway": [StubImage("gateway", ["1.4.2"])],
        },
    }
    add_registry(stubber, REGISTRY_1, images[REGISTRY_1])
    add_registry(stubber, REGISTRY_2, images[REGISTRY_2])

    res = await client.enumerate_images()
    result = res.result
    stubber.assert_no_pending_responses()

    assert len(result) == 4
    by_repository = {image.repository_name: image for image in result}
    for registry_id, repositories in images.items():
        for name, (stub,) in repositories.items():
            image = by_repository[name]
            assert image.registry_id == registry_id
            assert image.digest == stub.digest
            assert image.tags == stub.tags
            assert image.primary_tag == stub.tags[0]
            assert image.canonical_digest == stub.config_digest
            assert image.manifest == stub.manifest

            res = await client.get_full_pull_reference(image=image)
            expected = f"{repository_uri(registry_id, name)}:{stub.tags[0]}"
            assert res.result == expected

    res = await client.get_failures()
    assert res.result == []


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
@pytest.mark.parametrize(
    "registry_ids",
    [[], [""], ["  "], ["*"], [".*.*"], [REGISTRY_1, "*"]],
)
async def test_enumerate_default_registry(
    async_call: bool, registry_ids: list[str]
):
    component = get_component(registry_ids=registry_ids)
    client = RemoteRegistryClient(component, async_call)
    stubber = get_stubber(component)
    stub = StubImage("orders", ["v1"])
    add_registry(stubber, REGISTRY_1, {"orders": [stub]}, scoped=False)

    res = await client.enumerate_images()
    stubber.assert_no_pending_responses()

    (image,) = res.result
    assert image.registry_id == REGISTRY_1
    assert image.canonical_digest == stub.config_digest


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_enumerate_repository_error(async_call: bool):
    component = get_component(registry_ids=[REGISTRY_1, REGISTRY_2])
    client = RemoteRegistryClient(component, async_call)
    stubber = get_stubber(component)

    add_repositories(stubber, REGISTRY_1, ["missing", "orders"])
    stubber.add_client_error(
        "describe_images",
        service_error_code="RepositoryNotFoundException",
        service_message="The repository does not exist",
        expected_params={
            "repositoryName": "missing",
            "registryId": REGISTRY_1,
        },
    )
    orders = StubImage("orders", ["v1"])
    add_image_details(stubber, REGISTRY_1, "orders", [orders])
    add_image(stubber, REGISTRY_1, "orders", orders)
    add_registry(stubber, REGISTRY_2, {"search": [StubImage("search")]})

    res = await client.enumerate_images()
    stubber.assert_no_pending_responses()

    names = sorted(image.repository_name for image in res.result)
    assert names == ["orders", "search"]

    res = await client.get_failures()
    (failure,) = res.result
    assert failure.stage == "image_details"
    assert failure.registry_id == REGISTRY_1
    assert failure.repository_name == "missing"
    assert failure.code == "RepositoryNotFoundException"


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_enumerate_registry_error(async_call: bool):
    component = get_component(registry_ids=[REGISTRY_1, REGISTRY_2])
    client = RemoteRegistryClient(component, async_call)
    stubber = get_stubber(component)

    stubber.add_client_error(
        "describe_repositories",
        service_error_code="AccessDeniedException",
        service_message="Not authorized",
        expected_params={"registryId": REGISTRY_1},
    )
    add_registry(stubber, REGISTRY_2, {"search": [StubImage("search")]})

    res = await client.enumerate_images()
    stubber.assert_no_pending_responses()

    (image,) = res.result
    assert image.registry_id == REGISTRY_2

    res = await client.get_failures()
    (failure,) = res.result
    assert failure.stage == "repositories"
    assert failure.registry_id == REGISTRY_1
    assert failure.code == "AccessDeniedException"


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_enumerate_batch_failures(async_call: bool):
    component = get_component(registry_ids=[REGISTRY_1])
    client = RemoteRegistryClient(component, async_call)
    stubber = get_stubber(component)

    gone = StubImage("orders", ["old"])
    kept = StubImage("orders-api", ["v2"])
    add_repositories(stubber, REGISTRY_1, ["orders"])
    add_image_details(stubber, REGISTRY_1, "orders", [gone, kept])
    stubber.add_response(
        "batch_get_image",
        {
            "images": [],
            "failures": [
                {
                    "imageId": {"imageDigest": gone.digest},
                    "failureCode": "ImageNotFound",
                    "failureReason": "Requested image not found",
                }
            ],
        },
        {
            "registryId": REGISTRY_1,
            "repositoryName": "orders",
            "imageIds": [{"imageDigest": gone.digest}],
        },
    )
    add_image(stubber, REGISTRY_1, "orders", kept)

    res = await client.enumerate_images()
    stubber.assert_no_pending_responses()

    (image,) = res.result
    assert image.digest == kept.digest

    res = await client.get_failures()
    (failure,) = res.result
    assert failure.stage == "images"
    assert failure.digest == gone.digest
    assert failure.code == "ImageNotFound"


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_enumerate_is_idempotent(async_call: bool):
    component = get_component(registry_ids=[REGISTRY_1])
    client = RemoteRegistryClient(component, async_call)
    stubber = get_stubber(component)
    repositories = {
        "orders": [StubImage("orders", ["v1"])],
        "billing": [StubImage("billing", ["v2"])],
    }
    add_registry(stubber, REGISTRY_1, repositories)
    add_registry(stubber, REGISTRY_1, repositories)

    first = (await client.enumerate_images()).result
    second = (await client.enumerate_images()).result
    stubber.assert_no_pending_responses()

    assert first == second
    assert len(second) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_enumerate_replaces_previous_run(async_call: bool):
    component = get_component(registry_ids=[REGISTRY_1])
    client = RemoteRegistryClient(component, async_call)
    stubber = get_stubber(component)
    orders = StubImage("orders", ["v1"])
    billing = StubImage("billing", ["v2"])
    add_registry(
        stubber, REGISTRY_1, {"orders": [orders], "billing": [billing]}
    )
    add_registry(stubber, REGISTRY_1, {"orders": [orders]})

    first = (await client.enumerate_images()).result
    second = (await client.enumerate_images()).result
    stubber.assert_no_pending_responses()

    assert len(first) == 2
    (image,) = second
    assert image.repository_name == "orders"

    (stale,) = [i for i in first if i.repository_name == "billing"]
    res = await client.get_full_pull_reference(image=stale)
    assert res.result == ""


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_enumerate_unreadable_manifest(async_call: bool):
    component = get_component(registry_ids=[REGISTRY_1])
    client = RemoteRegistryClient(component, async_call)
    stubber = get_stubber(component)
    truncated = StubImage(
        "orders", ["v1"], manifest_text='{"config": {"digest": "sha256:2c73'
    )
    add_registry(stubber, REGISTRY_1, {"orders": [truncated]})

    res = await client.enumerate_images()

    (image,) = res.result
    assert image.canonical_digest == ""
    res = await client.get_full_pull_reference(image=image)
    assert res.result == ""


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_enumerate_untagged_image(async_call: bool):
    component = get_component(registry_ids=[REGISTRY_1])
    client = RemoteRegistryClient(component, async_call)
    stubber = get_stubber(component)
    add_registry(stubber, REGISTRY_1, {"orders": [StubImage("orders", [])]})

    (image,) = (await client.enumerate_images()).result

    assert image.primary_tag is None
    assert image.tags == []
    res = await client.get_full_pull_reference(image=image)
    assert res.result == ""


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_pull_reference_before_enumeration(async_call: bool):
    client = RemoteRegistryClient(get_component(), async_call)
    image = ImageIdentity(
        registry_id=REGISTRY_1,
        repository_name="orders",
        digest="sha256:" + "a" * 64,
        primary_tag="v1",
        canonical_digest="b" * 64,
    )

    res = await client.get_full_pull_reference(image=image)
    assert res.result == ""


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_tooling(async_call: bool):
    executor = FakeExecutor()
    client = RemoteRegistryClient(get_component(executor), async_call)
    res = await client.is_tooling_available()
    assert res.result is True
    assert executor.commands == ["aws --version"]

    executor = FakeExecutor({"aws": CommandResult(exit_code=127)})
    client = RemoteRegistryClient(get_component(executor), async_call)
    res = await client.is_tooling_available()
    assert res.result is False


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_tooling_checked_once(async_call: bool):
    executor = FakeExecutor({"aws": CommandResult(exit_code=127)})
    component = get_component(executor)
    client = RemoteRegistryClient(component, async_call)

    assert (await client.is_tooling_available()).result is False
    assert (await client.is_tooling_available()).result is False
    assert executor.commands == ["aws --version"]

    await client.close()
    assert (await client.is_tooling_available()).result is False
    assert executor.commands == ["aws --version", "aws --version"]


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_login_single_registry(async_call: bool):
    executor = login_executor("Login Succeeded?", LOGIN_1)
    component = get_component(executor, registry_ids=[REGISTRY_1])
    client = RemoteRegistryClient(component, async_call)

    res = await client.login()

    assert res.result is True
    assert executor.commands == [
        f"{GET_LOGIN} --registry-ids {REGISTRY_1} --region us-east-1",
        LOGIN_1,
    ]
    assert component.__provider__.default_registry_id == REGISTRY_1


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_login_multiple_registries(async_call: bool):
    executor = login_executor(LOGIN_1, LOGIN_2)
    component = get_component(
        executor, registry_ids=[REGISTRY_1, REGISTRY_2]
    )
    client = RemoteRegistryClient(component, async_call)

    res = await client.login()

    assert res.result is True
    assert executor.commands == [
        f"{GET_LOGIN} --registry-ids {REGISTRY_1} {REGISTRY_2}"
        " --region us-east-1",
        LOGIN_1,
        LOGIN_2,
    ]
    assert component.__provider__.default_registry_id is None


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
@pytest.mark.parametrize("registry_ids", [[], [""], ["*"]])
async def test_login_default_registry(
    async_call: bool, registry_ids: list[str]
):
    executor = login_executor(LOGIN_1)
    component = get_component(executor, registry_ids=registry_ids)
    client = RemoteRegistryClient(component, async_call)

    res = await client.login()

    assert res.result is True
    assert executor.commands[0] == f"{GET_LOGIN} --region us-east-1"
    assert component.__provider__.default_registry_id is None


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
@pytest.mark.parametrize(
    "registry_ids",
    [[REGISTRY_1, ""], [REGISTRY_1, REGISTRY_1], [REGISTRY_1, "*"]],
)
async def test_login_does_not_record_default(
    async_call: bool, registry_ids: list[str]
):
    executor = login_executor(LOGIN_1)
    component = get_component(executor, registry_ids=registry_ids)
    client = RemoteRegistryClient(component, async_call)

    res = await client.login()

    assert res.result is True
    assert component.__provider__.default_registry_id is None


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_login_request_fails(async_call: bool):
    executor = FakeExecutor({GET_LOGIN: CommandResult(exit_code=255)})
    component = get_component(executor, registry_ids=[REGISTRY_1])
    client = RemoteRegistryClient(component, async_call)

    res = await client.login()

    assert res.result is False
    assert len(executor.commands) == 1
    assert component.__provider__.default_registry_id is None


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_login_partial_success(async_call: bool):
    executor = login_executor(
        LOGIN_1, LOGIN_2, **{LOGIN_1: CommandResult(exit_code=1)}
    )
    component = get_component(
        executor, registry_ids=[REGISTRY_1, REGISTRY_2]
    )
    client = RemoteRegistryClient(component, async_call)

    res = await client.login()
    assert res.result is True


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_login_all_engine_logins_fail(async_call: bool):
    executor = login_executor(
        LOGIN_1, **{"docker login": CommandResult(exit_code=1)}
    )
    component = get_component(executor, registry_ids=[REGISTRY_1])
    client = RemoteRegistryClient(component, async_call)

    res = await client.login()

    assert res.result is False
    assert component.__provider__.default_registry_id is None


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_login_sudo(async_call: bool):
    executor = login_executor(LOGIN_1)
    component = get_component(
        executor, registry_ids=[REGISTRY_1], login_sudo=True
    )
    component.__provider__._unix = True
    client = RemoteRegistryClient(component, async_call)

    await client.login()
    assert executor.commands[-1] == f"sudo {LOGIN_1}"

    executor.commands.clear()
    component.__provider__._unix = False
    await client.login()
    assert executor.commands[-1] == LOGIN_1


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_pull_and_remove(async_call: bool):
    executor = login_executor(LOGIN_1)
    component = get_component(executor, registry_ids=[REGISTRY_1])
    client = RemoteRegistryClient(component, async_call)
    stubber = get_stubber(component)
    add_registry(
        stubber,
        REGISTRY_1,
        {
            "orders": [StubImage("orders", ["v1"])],
            "billing": [StubImage("billing", ["v2"])],
        },
    )
    orders_ref = f"{repository_uri(REGISTRY_1, 'orders')}:v1"
    billing_ref = f"{repository_uri(REGISTRY_1, 'billing')}:v2"

    res = await client.pull()
    stubber.assert_no_pending_responses()

    assert sorted(r.reference for r in res.result) == sorted(
        [orders_ref, billing_ref]
    )
    assert all(r.pulled for r in res.result)
    assert f"docker pull {orders_ref}" in executor.commands
    assert f"docker pull {billing_ref}" in executor.commands

    res = await client.remove()
    assert sorted(res.result) == sorted([orders_ref, billing_ref])
    assert f"docker rmi {orders_ref}" in executor.commands

    res = await client.remove()
    assert res.result == []


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_pull_without_tooling(async_call: bool):
    executor = FakeExecutor({"aws --version": CommandResult(exit_code=127)})
    component = get_component(executor, registry_ids=[REGISTRY_1])
    client = RemoteRegistryClient(component, async_call)
    stubber = get_stubber(component)

    res = await client.pull()

    assert res.result == []
    assert executor.commands == ["aws --version"]
    stubber.assert_no_pending_responses()


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_pull_after_failed_login(async_call: bool):
    executor = FakeExecutor({GET_LOGIN: CommandResult(exit_code=1)})
    component = get_component(executor, registry_ids=[REGISTRY_1])
    client = RemoteRegistryClient(component, async_call)
    stubber = get_stubber(component)
    add_registry(stubber, REGISTRY_1, {"orders": [StubImage("orders")]})

    res = await client.pull()

    (result,) = res.result
    assert result.reference == f"{repository_uri(REGISTRY_1, 'orders')}:latest"


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_pull_failure_not_removed(async_call: bool):
    failing_ref = f"{repository_uri(REGISTRY_1, 'orders')}:v1"
    executor = login_executor(
        LOGIN_1, **{f"docker pull {failing_ref}": CommandResult(exit_code=1)}
    )
    component = get_component(executor, registry_ids=[REGISTRY_1])
    client = RemoteRegistryClient(component, async_call)
    stubber = get_stubber(component)
    add_registry(
        stubber, REGISTRY_1, {"orders": [StubImage("orders", ["v1"])]}
    )

    (result,) = (await client.pull()).result
    assert result.pulled is False

    res = await client.remove()
    assert res.result == []


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
@pytest.mark.parametrize(
    "parameters, expected",
    [
        (dict(image_names=["orders"]), ["orders"]),
        (dict(image_names=["bill.*"]), ["billing"]),
        (dict(image_tags=["v\\d+"]), ["orders"]),
        (
            dict(image_tags=[], image_digests=["sha256:.*"]),
            ["billing", "orders"],
        ),
        (dict(image_tags=[]), []),
        (dict(max_pull_images=1), ["billing"]),
    ],
)
async def test_pull_selection(
    async_call: bool, parameters: dict, expected: list[str]
):
    executor = login_executor(LOGIN_1)
    component = get_component(
        executor, registry_ids=[REGISTRY_1], **parameters
    )
    client = RemoteRegistryClient(component, async_call)
    stubber = get_stubber(component)
    add_registry(
        stubber,
        REGISTRY_1,
        {
            "orders": [StubImage("orders", ["v1"])],
            "billing": [StubImage("billing", ["stable"])],
        },
    )

    res = await client.pull()

    assert sorted(r.image.repository_name for r in res.result) == expected


@pytest.mark.asyncio
@pytest.mark.parametrize("async_call", [False, True])
async def test_close(async_call: bool):
    component = get_component()
    client = RemoteRegistryClient(component, async_call)
    component.__setup__()
    assert component.__provider__._client is not None

    await client.close()
    assert component.__provider__._client is None
