"""
Координатор загрузок. Два протокола сходятся здесь:

* presign/commit - на этапе presign создаётся запись-заготовка (size=0, etag=None)
  и выдаётся presigned PUT URL; клиент сам льёт байты в хранилище и вызывает commit;
* direct - байты приходят в теле запроса, передаются в хранилище через
  UploadDispatcher, и запись создаётся сразу полной.

Ни одна многошаговая последовательность здесь не транзакционна. Квота и slug
проверяются чтением и могут быть обойдены параллельными запросами; уникальность
slug в итоге гарантирует индекс files.slug.
"""
import logging
import uuid
from typing import Optional
from urllib.parse import quote

from sensory_share_gateway.exceptions import (
    GatewayError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from sensory_share_gateway.models import (
    CommitRequest,
    CommitResult,
    DirectUploadOptions,
    DirectUploadResult,
    FileRecord,
    Identity,
    PresignRequest,
    PresignResult,
    ShareLinks,
    StorageConfig,
)
from sensory_share_gateway.repositories import (
    FileRepository,
    MountRepository,
    S3Repository,
    SettingsRepository,
    StorageConfigRepository,
)
from sensory_share_gateway.services.directory_cache import DirectoryCache, clear_cache
from sensory_share_gateway.services.path_resolver import build_storage_key, normalize_path, resolve_storage_prefix
from sensory_share_gateway.services.quota_guard import QuotaGuard, check_upload_limit
from sensory_share_gateway.services.slug_allocator import SlugAllocator
from sensory_share_gateway.services.upload_dispatcher import UploadDispatcher, resolve_content_type
from sensory_share_gateway.utils.aio import run_io_bound
from sensory_share_gateway.utils.crypto import hash_password
from sensory_share_gateway.utils.files import generate_short_id, mimetype_from_filename
from sensory_share_gateway.utils.records import coerce_non_negative, expiry_from_hours, positive_or_none

logger = logging.getLogger(__name__)


class UploadService:
    def __init__(
        self,
        files: FileRepository,
        configs: StorageConfigRepository,
        mounts: MountRepository,
        settings: SettingsRepository,
        store: S3Repository,
        dispatcher: UploadDispatcher,
        cache: DirectoryCache,
        slugs: SlugAllocator | None = None,
        quota: QuotaGuard | None = None,
        short_id_length: int = 6,
    ):
        self._files = files
        self._configs = configs
        self._mounts = mounts
        self._settings = settings
        self._store = store
        self._dispatcher = dispatcher
        self._cache = cache
        self._slugs = slugs or SlugAllocator(files, length=short_id_length)
        self._quota = quota or QuotaGuard(files)
        self._short_id_length = short_id_length

    # ――― presign / commit ――― #

    async def presign(self, identity: Identity, req: PresignRequest) -> PresignResult:
        if not req.s3_config_id:
            raise ValidationError("s3_config_id is required")
        if not req.filename:
            raise ValidationError("filename is required")

        if req.size:
            check_upload_limit(req.size, await self._settings.get_max_upload_size_bytes())

        config = await self._configs.get(req.s3_config_id)
        if config is None:
            raise NotFoundError("Storage configuration not found")

        # оптимистичная проверка по заявленному размеру, окончательная - в commit
        if req.size:
            await self._quota.admit(config, req.size)

        self._ensure_config_usable(identity, config)

        slug = await self._slugs.allocate(req.slug, req.override)
        if req.override and req.slug:
            await self._replace_existing(identity, req.slug)

        key = await self._storage_key(identity, config, req.path, req.filename)
        mimetype = mimetype_from_filename(req.filename)
        logger.info(f"Presign: inferred content type {mimetype} for {req.filename!r}")

        upload_url = await self._store.presign_put(config, key, mimetype)
        s3_url = self._store.build_public_url(config, key)

        record = await self._files.insert(
            id=str(uuid.uuid4()),
            slug=slug,
            filename=req.filename,
            storage_path=key,
            s3_url=s3_url,
            s3_config_id=config.id,
            mimetype=mimetype,
            size=0,
            etag=None,
            created_by=identity.creator,
        )
        logger.info(f"Placeholder {record.id} registered: slug={slug} key={key}")

        return PresignResult(
            file_id=record.id,
            upload_url=upload_url,
            storage_path=key,
            s3_url=s3_url,
            slug=slug,
            provider_type=config.provider.value,
            contentType=mimetype,
        )

    async def commit(self, identity: Identity, req: CommitRequest, base_url: str = "") -> CommitResult:
        if not req.file_id:
            raise ValidationError("file_id is required")

        file = await self._files.get(req.file_id)
        if file is None:
            raise NotFoundError("File not found")
        if file.created_by and file.created_by != identity.creator:
            raise PermissionDeniedError("You are not allowed to commit this file")

        if identity.is_admin:
            config = await self._configs.get_for_admin(file.s3_config_id, identity.user_id)
        else:
            config = await self._configs.get_public(file.s3_config_id)
        if config is None:
            raise ValidationError("Invalid storage configuration or no access to it")

        # пустой/нулевой size означает "оставить как есть"
        size = coerce_non_negative(req.size, default=0) if req.size else None

        admission = await self._quota.check(config, size or 0, exclude_file_id=file.id)
        if not admission.admitted:
            if not await self._store.delete_object(config, file.storage_path):
                logger.error(f"Over-quota object {file.storage_path} left in bucket {config.bucket_name}")
            try:
                await self._files.delete(file.id)
            except GatewayError as e:
                logger.error(f"Failed to delete over-quota record {file.id}: {e}")
            raise admission.to_error("The uploaded file has been removed.")

        if not req.etag:
            logger.warning(f"Commit of file {file.id} without ETag, storing null")

        password_hash = await run_io_bound(hash_password, req.password) if req.password else None
        patch = {
            "etag": req.etag or None,
            "created_by": identity.creator,
            "remark": req.remark or None,
            "password": password_hash,
            "expires_at": expiry_from_hours(req.expires_in),
            "max_views": positive_or_none(req.max_views),
        }
        if size is not None:
            patch["size"] = size

        updated = await self._files.update(file.id, patch)
        if updated is None:
            raise NotFoundError("File disappeared during commit")

        if req.password:
            await self._files.upsert_password(file.id, req.password)
        else:
            await self._files.delete_password(file.id)

        await self._after_write(config, updated.storage_path)
        links = await self._share_links(config, updated, req.password, base_url)

        return CommitResult(
            id=updated.id,
            slug=updated.slug,
            filename=updated.filename,
            storage_path=updated.storage_path,
            s3_url=updated.s3_url,
            mimetype=updated.mimetype,
            size=updated.size,
            remark=updated.remark,
            created_at=updated.created_at,
            updated_at=updated.updated_at,
            hasPassword=updated.has_password,
            expiresAt=updated.expires_at,
            maxViews=updated.max_views,
            url=f"/file/{updated.slug}",
            use_proxy=int(updated.use_proxy),
            **links.model_dump(),
        )

    # ――― direct ――― #

    async def upload_direct(
        self,
        identity: Identity,
        filename: str,
        data: bytes,
        options: DirectUploadOptions,
        base_url: str = "",
        declared_content_type: Optional[str] = None,
    ) -> DirectUploadResult:
        if not filename or not filename.strip():
            raise ValidationError("filename is required")

        config = await self._resolve_direct_config(identity, options.s3_config_id)

        size = len(data)
        check_upload_limit(size, await self._settings.get_max_upload_size_bytes())
        await self._quota.admit(config, size)

        slug = await self._slugs.allocate(options.slug, options.override)
        if options.override and options.slug:
            await self._replace_existing(identity, options.slug)

        content_type = resolve_content_type(filename, declared_content_type)
        key = await self._storage_key(identity, config, options.path, filename, options.original_filename)

        etag = await self._dispatcher.put(config, key, data, content_type)
        s3_url = self._store.build_public_url(config, key)

        password_hash = await run_io_bound(hash_password, options.password) if options.password else None
        try:
            record = await self._files.insert(
                id=str(uuid.uuid4()),
                slug=slug,
                filename=filename,
                storage_path=key,
                s3_url=s3_url,
                s3_config_id=config.id,
                mimetype=content_type,
                size=size,
                etag=etag,
                created_by=identity.creator,
                remark=options.remark,
                password=password_hash,
                expires_at=expiry_from_hours(options.expires_in),
                max_views=positive_or_none(options.max_views),
                use_proxy=options.use_proxy,
            )
        except GatewayError:
            # байты уже в бакете, а записи нет - объект станет сиротой
            await self._store.delete_object(config, key)
            raise

        if options.password:
            await self._files.upsert_password(record.id, options.password)

        await self._after_write(config, key)
        links = await self._share_links(config, record, options.password, base_url)
        logger.info(f"Direct upload done: slug={slug} key={key} size={size}")

        return DirectUploadResult(
            id=record.id,
            slug=record.slug,
            filename=record.filename,
            mimetype=content_type,
            size=record.size,
            remark=record.remark or "",
            created_at=record.created_at,
            requires_password=record.has_password,
            views=record.views,
            max_views=record.max_views,
            expires_at=record.expires_at,
            use_proxy=int(record.use_proxy),
            created_by=identity.creator,
            used_original_filename=options.original_filename,
            **links.model_dump(),
        )

    # ――― helpers ――― #

    @staticmethod
    def _ensure_config_usable(identity: Identity, config: StorageConfig) -> None:
        if identity.is_admin and config.admin_id != identity.user_id:
            raise PermissionDeniedError("You are not allowed to use this storage configuration")
        if not identity.is_admin and not config.is_public:
            raise PermissionDeniedError("API keys may only use public storage configurations")

    async def _resolve_direct_config(self, identity: Identity, config_id: Optional[str]) -> StorageConfig:
        """Явный s3_config_id, иначе конфигурация по умолчанию, иначе любая доступная."""
        if config_id:
            if not identity.is_admin and await self._configs.get_public(config_id) is None:
                raise PermissionDeniedError("API keys may only use public storage configurations")
            config = await self._configs.get(config_id)
            if config is None:
                raise NotFoundError("Storage configuration not found")
        else:
            owner = identity.user_id if identity.is_admin else None
            config = await self._configs.find_default(owner) or await self._configs.find_any(owner)
            if config is None:
                if identity.is_admin:
                    raise ValidationError(
                        "No storage configuration available for your account, create one or pass s3_config_id"
                    )
                raise ValidationError("No public storage configuration available, ask an administrator")
            logger.info(f"No s3_config_id given, using {config.name} ({config.id})")

        self._ensure_config_usable(identity, config)
        return config

    async def _storage_key(
        self,
        identity: Identity,
        config: StorageConfig,
        custom_path: Optional[str],
        filename: str,
        use_original_filename: bool = False,
    ) -> str:
        prefix = ""
        if not identity.is_admin and normalize_path(identity.basic_path) != "/":
            mounts = await self._mounts.list_active()
            prefix = resolve_storage_prefix(identity.basic_path, config, mounts)
        short_id = generate_short_id(self._short_id_length)
        return build_storage_key(prefix, config, custom_path, filename, short_id, use_original_filename)

    async def _replace_existing(self, identity: Identity, slug: str) -> None:
        """
        Override: удаляет прежний объект, запись и пароль с тем же slug.
        Чужой файл перезаписать нельзя. Сбой самой очистки не прерывает загрузку.
        """
        existing = await self._files.get_by_slug(slug)
        if existing is None:
            return
        if existing.created_by != identity.creator:
            raise PermissionDeniedError("You are not allowed to override a file created by another user")

        logger.info(f"Override: removing previous file {existing.id} with slug '{slug}'")
        try:
            old_config = await self._configs.get(existing.s3_config_id)
            if old_config is not None:
                if not await self._store.delete_object(old_config, existing.storage_path):
                    logger.warning(f"Could not delete {existing.storage_path} from storage, removing record anyway")
            await self._files.delete(existing.id)
            clear_cache(self._cache, existing.s3_config_id)
        except GatewayError as e:
            logger.error(f"Failed to clean up previous file {existing.id}: {e}")

    async def _after_write(self, config: StorageConfig, key: str) -> None:
        try:
            await self._store.touch_ancestors(config, key)
        except Exception as e:
            logger.warning(f"Failed to update directory timestamps for {key}: {e}")
        clear_cache(self._cache, config.id)

    async def _share_links(
        self, config: StorageConfig, record: FileRecord, password: Optional[str], base_url: str
    ) -> ShareLinks:
        preview_direct = await self._store.presign_get(
            config, record.storage_path, None, False, record.mimetype, enable_cache=False
        )
        download_direct = await self._store.presign_get(
            config, record.storage_path, None, True, record.mimetype, enable_cache=False
        )

        base = base_url.rstrip("/")
        suffix = f"?password={quote(password, safe='')}" if password else ""
        proxy_preview = f"{base}/api/file-view/{record.slug}{suffix}"
        proxy_download = f"{base}/api/file-download/{record.slug}{suffix}"

        return ShareLinks(
            previewUrl=proxy_preview if record.use_proxy else preview_direct,
            downloadUrl=proxy_download if record.use_proxy else download_direct,
            s3_direct_preview_url=preview_direct,
            s3_direct_download_url=download_direct,
            proxy_preview_url=proxy_preview,
            proxy_download_url=proxy_download,
        )
