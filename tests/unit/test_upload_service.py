import pytest
from urllib3.exceptions import MaxRetryError

from sensory_share_gateway.exceptions import (
    CapacityError,
    ConflictError,
    DatabaseError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from sensory_share_gateway.models import (
    AuthType,
    CommitRequest,
    DirectUploadOptions,
    Identity,
    Mount,
    PresignRequest,
)

pytestmark = pytest.mark.asyncio

BASE_URL = "https://share.test"


async def _presign_and_put(uploads, store, identity, config, data: bytes, **extra):
    """Шаг presign + то, что клиент делает сам: PUT байтов по выданному URL."""
    presigned = await uploads.presign(
        identity, PresignRequest(s3_config_id=config.id, filename="data.bin", size=len(data), **extra)
    )
    store.objects[(config.id, presigned.storage_path)] = (data, presigned.contentType)
    return presigned


# ――― presign / commit ――― #

async def test_presign_then_commit(uploads, files, store, cache, admin, admin_config):
    # --- ARRANGE ---
    cache.set(admin_config.id, "/uploads", ["stale listing"])

    # --- ACT ---
    presigned = await _presign_and_put(uploads, store, admin, admin_config, b"x" * 42)
    placeholder = await files.get(presigned.file_id)
    result = await uploads.commit(
        admin,
        CommitRequest(file_id=presigned.file_id, etag='abc', size=42, remark="monthly", max_views=3),
        BASE_URL,
    )

    # --- ASSERT ---
    assert placeholder.size == 0 and placeholder.etag is None
    assert presigned.storage_path.startswith("uploads/")
    assert presigned.provider_type == "Cloudflare R2"
    assert presigned.contentType == "application/octet-stream"

    record = await files.get(presigned.file_id)
    assert record.size == 42
    assert record.etag == "abc"
    assert record.created_by == "admin-1"
    assert record.max_views == 3
    assert result.url == f"/file/{presigned.slug}"
    assert result.hasPassword is False
    assert result.previewUrl == f"{BASE_URL}/api/file-view/{presigned.slug}"
    assert result.s3_direct_download_url.endswith("disposition=attachment")
    assert store.touched == [presigned.storage_path]
    assert cache.get(admin_config.id, "/uploads") is None


async def test_commit_without_etag_still_persists_size(uploads, files, store, admin, admin_config):
    presigned = await _presign_and_put(uploads, store, admin, admin_config, b"payload")

    await uploads.commit(admin, CommitRequest(file_id=presigned.file_id, size=7))

    record = await files.get(presigned.file_id)
    assert record.etag is None
    assert record.size == 7


async def test_commit_quota_rejection_rolls_back(uploads, files, store, configs, admin, admin_config):
    # --- ARRANGE ---
    admin_config.total_storage_bytes = 100
    await files.insert(id="old", slug="old", filename="old.bin", storage_path="uploads/old.bin",
                       s3_url="u", s3_config_id=admin_config.id, size=80)
    presigned = await _presign_and_put(uploads, store, admin, admin_config, b"y" * 10)

    # --- ACT ---
    with pytest.raises(CapacityError) as exc_info:
        await uploads.commit(admin, CommitRequest(file_id=presigned.file_id, size=50))

    # --- ASSERT ---
    assert "removed" in exc_info.value.message
    assert await files.get(presigned.file_id) is None
    assert (admin_config.id, presigned.storage_path) not in store.objects
    assert await files.get("old") is not None


async def test_commit_quota_rejection_survives_record_delete_failure(uploads, files, store, admin, admin_config,
                                                                  monkeypatch):
    admin_config.total_storage_bytes = 10
    presigned = await _presign_and_put(uploads, store, admin, admin_config, b"y" * 5)

    async def _db_down(file_id):
        raise DatabaseError("db down")

    monkeypatch.setattr(files, "delete", _db_down)

    with pytest.raises(CapacityError):
        await uploads.commit(admin, CommitRequest(file_id=presigned.file_id, size=50))

    assert (admin_config.id, presigned.storage_path) not in store.objects


async def test_presign_pre_check_uses_declared_size(uploads, admin, admin_config):
    admin_config.total_storage_bytes = 10

    with pytest.raises(CapacityError):
        await uploads.presign(admin, PresignRequest(s3_config_id=admin_config.id, filename="a.bin", size=11))


async def test_presign_respects_system_upload_limit(uploads, settings_repo, admin, admin_config):
    settings_repo.max_upload_bytes = 5

    with pytest.raises(CapacityError):
        await uploads.presign(admin, PresignRequest(s3_config_id=admin_config.id, filename="a.bin", size=6))


async def test_presign_validation(uploads, admin, admin_config):
    with pytest.raises(ValidationError):
        await uploads.presign(admin, PresignRequest(filename="a.bin"))
    with pytest.raises(ValidationError):
        await uploads.presign(admin, PresignRequest(s3_config_id=admin_config.id))
    with pytest.raises(NotFoundError):
        await uploads.presign(admin, PresignRequest(s3_config_id="missing", filename="a.bin"))


async def test_presign_with_foreign_config_is_forbidden(uploads, public_config, admin):
    with pytest.raises(PermissionDeniedError):
        await uploads.presign(admin, PresignRequest(s3_config_id=public_config.id, filename="a.bin"))


async def test_commit_by_other_identity_is_forbidden(uploads, store, admin, admin_config):
    presigned = await _presign_and_put(uploads, store, admin, admin_config, b"z")
    intruder = Identity(auth_type=AuthType.ADMIN, user_id="admin-2")

    with pytest.raises(PermissionDeniedError):
        await uploads.commit(intruder, CommitRequest(file_id=presigned.file_id, size=1))


async def test_commit_unknown_file(uploads, admin):
    with pytest.raises(NotFoundError):
        await uploads.commit(admin, CommitRequest(file_id="nope"))


async def test_password_shadow_follows_commit(uploads, files, store, admin, admin_config):
    presigned = await _presign_and_put(uploads, store, admin, admin_config, b"secret")

    result = await uploads.commit(admin, CommitRequest(file_id=presigned.file_id, size=6, password="p@ss"), BASE_URL)
    assert result.hasPassword is True
    assert await files.get_plain_password(presigned.file_id) == "p@ss"
    assert (await files.get(presigned.file_id)).password != "p@ss"
    assert result.proxy_preview_url.endswith("?password=p%40ss")

    result = await uploads.commit(admin, CommitRequest(file_id=presigned.file_id, size=6), BASE_URL)
    assert result.hasPassword is False
    assert await files.get_plain_password(presigned.file_id) is None


async def test_commit_expiry(uploads, files, store, admin, admin_config):
    presigned = await _presign_and_put(uploads, store, admin, admin_config, b"e")

    result = await uploads.commit(admin, CommitRequest(file_id=presigned.file_id, size=1, expires_in="24"))

    record = await files.get(presigned.file_id)
    assert result.expiresAt is not None
    assert (record.expires_at - record.created_at).total_seconds() == pytest.approx(24 * 3600, abs=60)


# ――― direct ――― #

async def test_direct_upload_report_pdf(uploads, files, store, admin, admin_config):
    """10 байт report.pdf без пароля и срока: pdf, без expires/max_views, обе ссылки."""
    result = await uploads.upload_direct(admin, "report.pdf", b"0123456789", DirectUploadOptions(), BASE_URL)

    assert result.size == 10
    assert result.mimetype == "application/pdf"
    assert result.expires_at is None
    assert result.max_views is None
    assert result.requires_password is False
    assert result.use_proxy == 1
    assert result.created_by == "admin-1"
    assert result.previewUrl == f"{BASE_URL}/api/file-view/{result.slug}"
    assert result.downloadUrl == f"{BASE_URL}/api/file-download/{result.slug}"
    assert result.s3_direct_preview_url.startswith("https://s3.test/private-bucket/uploads/")

    record = await files.get(result.id)
    assert store.objects[(admin_config.id, record.storage_path)] == (b"0123456789", "application/pdf")
    assert record.storage_path.endswith("-report.pdf")


async def test_direct_upload_uses_default_config(uploads, files, admin, make_api_key):
    admin_result = await uploads.upload_direct(admin, "a.txt", b"a", DirectUploadOptions())
    key_result = await uploads.upload_direct(make_api_key(), "b.txt", b"b", DirectUploadOptions())

    assert (await files.get(admin_result.id)).s3_config_id == "cfg-admin"
    assert (await files.get(key_result.id)).s3_config_id == "cfg-public"
    assert key_result.created_by == "apikey:key-1"


async def test_direct_upload_without_any_config(uploads):
    stranger = Identity(auth_type=AuthType.ADMIN, user_id="admin-2")

    with pytest.raises(ValidationError):
        await uploads.upload_direct(stranger, "a.txt", b"a", DirectUploadOptions())


async def test_api_key_cannot_use_private_config(uploads, make_api_key, admin_config):
    with pytest.raises(PermissionDeniedError):
        await uploads.upload_direct(
            make_api_key(), "a.txt", b"a", DirectUploadOptions(s3_config_id=admin_config.id)
        )


async def test_direct_upload_options(uploads, files, admin):
    options = DirectUploadOptions(
        path="docs/2024", password="pw", max_views="5", expires_in="1",
        original_filename="true", use_proxy="0", remark="hello",
    )

    result = await uploads.upload_direct(admin, "notes.md", b"# notes", options, BASE_URL)

    record = await files.get(result.id)
    assert record.storage_path == "uploads/docs/2024/notes.md"
    assert result.used_original_filename is True
    assert result.max_views == 5
    assert result.expires_at is not None
    assert result.requires_password is True
    assert result.use_proxy == 0
    assert result.previewUrl == result.s3_direct_preview_url
    assert result.proxy_download_url == f"{BASE_URL}/api/file-download/{result.slug}?password=pw"
    assert await files.get_plain_password(result.id) == "pw"


async def test_override_round_trip(uploads, files, store, admin, admin_config):
    # --- ARRANGE ---
    first = await uploads.upload_direct(admin, "v1.txt", b"first", DirectUploadOptions(slug="shared"))
    first_key = (await files.get(first.id)).storage_path

    # --- ACT ---
    second = await uploads.upload_direct(
        admin, "v2.txt", b"second version", DirectUploadOptions(slug="shared", override="true")
    )

    # --- ASSERT ---
    records = [r for r in files.records.values() if r.slug == "shared"]
    assert len(records) == 1
    assert records[0].id == second.id
    assert records[0].size == len(b"second version")
    assert records[0].storage_path != first_key
    assert (admin_config.id, first_key) not in store.objects


async def test_override_by_other_creator_is_forbidden(uploads, files, admin, make_api_key):
    original = await uploads.upload_direct(admin, "mine.txt", b"mine", DirectUploadOptions(slug="taken"))

    with pytest.raises(PermissionDeniedError):
        await uploads.upload_direct(
            make_api_key(), "theirs.txt", b"theirs", DirectUploadOptions(slug="taken", override="true")
        )

    record = await files.get_by_slug("taken")
    assert record.id == original.id
    assert record.size == 4


async def test_duplicate_slug_without_override_conflicts(uploads, admin):
    await uploads.upload_direct(admin, "a.txt", b"a", DirectUploadOptions(slug="dup"))

    with pytest.raises(ConflictError):
        await uploads.upload_direct(admin, "b.txt", b"b", DirectUploadOptions(slug="dup"))


async def test_override_cleanup_failure_does_not_abort(uploads, files, store, admin):
    await uploads.upload_direct(admin, "a.txt", b"a", DirectUploadOptions(slug="sticky"))
    store.fail_deletes = True

    result = await uploads.upload_direct(admin, "b.txt", b"bb", DirectUploadOptions(slug="sticky", override="true"))

    assert (await files.get_by_slug("sticky")).id == result.id


async def test_failed_insert_removes_transferred_object(uploads, files, store, admin, monkeypatch):
    async def _lost_race(**fields):
        raise ConflictError("Slug is already taken")

    monkeypatch.setattr(files, "insert", _lost_race)

    with pytest.raises(ConflictError):
        await uploads.upload_direct(admin, "a.txt", b"a", DirectUploadOptions())

    assert store.objects == {}


async def test_direct_quota(uploads, admin, admin_config):
    admin_config.total_storage_bytes = 15
    await uploads.upload_direct(admin, "a.bin", b"x" * 10, DirectUploadOptions())

    with pytest.raises(CapacityError):
        await uploads.upload_direct(admin, "b.bin", b"x" * 10, DirectUploadOptions())


# ――― API-ключи и точки монтирования ――― #

async def test_api_key_writes_under_its_mount_sub_path(uploads, files, mounts, public_config, make_api_key):
    mounts.mounts = [
        Mount(id="m1", name="team", storage_config_id=public_config.id, mount_path="/team", is_public=True),
        Mount(id="m2", name="docs", storage_config_id=public_config.id, mount_path="/team/docs", is_public=True),
    ]

    result = await uploads.upload_direct(
        make_api_key("/team/docs/reports"), "q1.txt", b"q1", DirectUploadOptions(path="2024")
    )

    record = await files.get(result.id)
    assert record.storage_path.startswith("reports/2024/")


async def test_api_key_without_mount_access_is_denied(uploads, store, mounts, public_config, make_api_key):
    mounts.mounts = [
        Mount(id="m1", name="team", storage_config_id=public_config.id, mount_path="/team", is_public=True),
    ]

    with pytest.raises(PermissionDeniedError):
        await uploads.presign(
            make_api_key("/elsewhere"), PresignRequest(s3_config_id=public_config.id, filename="a.txt")
        )
    assert store.objects == {}


async def test_directory_touch_network_failure_does_not_fail_upload(uploads, files, store, cache, admin, admin_config,
                                                                     monkeypatch):
    async def _unreachable(config, key):
        raise MaxRetryError(None, "https://r2.test", "connection reset")

    monkeypatch.setattr(store, "touch_ancestors", _unreachable)
    cache.set(admin_config.id, "/uploads", ["stale listing"])

    result = await uploads.upload_direct(admin, "c.txt", b"abc", DirectUploadOptions(path="a/b"), BASE_URL)

    assert await files.get(result.id) is not None
    assert cache.get(admin_config.id, "/uploads") is None
