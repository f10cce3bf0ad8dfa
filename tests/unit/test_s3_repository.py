import pytest
import urllib3

from sensory_share_gateway.exceptions import UpstreamTransferError
from sensory_share_gateway.models import StorageConfig
from sensory_share_gateway.repositories import S3Repository
from sensory_share_gateway.utils.crypto import SecretCipher


@pytest.fixture(scope="module")
def cipher() -> SecretCipher:
    return SecretCipher("unit-test-secret")


def _repo(cipher, **kwargs) -> S3Repository:
    # без повторов на транспорте: каждая ошибка сети возвращается сразу
    return S3Repository(cipher, http_client=urllib3.PoolManager(retries=False), **kwargs)


def _config(cipher, endpoint_url: str) -> StorageConfig:
    return StorageConfig(
        id="cfg",
        name="cfg",
        endpoint_url=endpoint_url,
        region="us-east-1",
        bucket_name="bucket",
        access_key_id="ak",
        secret_access_key=cipher.encrypt("sk"),
        path_style=True,
    )


async def test_put_object_network_failure_is_upstream_error(cipher, dropping_server):
    base_url, _ = dropping_server

    with pytest.raises(UpstreamTransferError):
        await _repo(cipher).put_object(_config(cipher, base_url), "dir/file.txt", b"hello", "text/plain")


async def test_check_connection_network_failure_is_upstream_error(cipher, dropping_server):
    base_url, _ = dropping_server

    with pytest.raises(UpstreamTransferError):
        await _repo(cipher).check_connection(_config(cipher, base_url))


async def test_touch_ancestors_is_best_effort(cipher, dropping_server):
    base_url, accepted = dropping_server

    await _repo(cipher).touch_ancestors(_config(cipher, base_url), "a/b/key.txt")

    # по одному stat на маркер 'a/' и 'a/b/'
    assert len(accepted) == 2


async def test_expired_presigned_urls_are_evicted(cipher):
    repo = _repo(cipher, url_cache_ttl=0)
    config = _config(cipher, "http://s3.test")

    for key in ("a.txt", "b.txt", "c.txt"):
        await repo.presign_get(config, key)

    assert len(repo._url_cache) == 1


async def test_presigned_url_is_served_from_cache(cipher):
    repo = _repo(cipher)
    config = _config(cipher, "http://s3.test")

    first = await repo.presign_get(config, "a.txt", as_attachment=True)

    assert await repo.presign_get(config, "a.txt", as_attachment=True) == first
    assert len(repo._url_cache) == 1
