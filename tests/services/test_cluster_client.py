import pytest

from services import EnvironmentClusterClient


@pytest.mark.asyncio
async def test_explicit_entry_wins():
    client = EnvironmentClusterClient(
        environ={"POD_SERVICE_ACCOUNT": "from-env"},
        service_accounts={"default/operator-0": "explicit"},
    )
    assert await client.get_pod_service_account("default", "operator-0") == "explicit"


@pytest.mark.asyncio
async def test_falls_back_to_environment():
    client = EnvironmentClusterClient(environ={"POD_SERVICE_ACCOUNT": "operator-sa"})
    assert await client.get_pod_service_account("prod", "operator-1") == "operator-sa"


@pytest.mark.asyncio
async def test_unknown_pod_raises_lookup_error():
    client = EnvironmentClusterClient(environ={})
    with pytest.raises(LookupError, match="prod/operator-1"):
        await client.get_pod_service_account("prod", "operator-1")
