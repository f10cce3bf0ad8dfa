from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, Request

from sensory_share_gateway.client import ShareGateway
from sensory_share_gateway.models import CommitRequest, DirectUploadOptions, Identity, PresignRequest
from .auth import get_gateway, require_file_permission

router = APIRouter(prefix="/api", tags=["Uploads"])


def ok(data, message: str = "success") -> dict:
    return {"code": 200, "message": message, "data": data, "success": True}


def _base_url(request: Request) -> str:
    return str(request.base_url).rstrip("/")


@router.post("/s3/presign")
async def presign_upload(
    body: PresignRequest,
    identity: Annotated[Identity, Depends(require_file_permission)],
    gateway: Annotated[ShareGateway, Depends(get_gateway)],
):
    """Шаг 1: заготовка записи и presigned PUT URL для загрузки напрямую в хранилище."""
    result = await gateway.uploads.presign(identity, body)
    return ok(result.model_dump(mode="json"), "Presigned upload URL generated")


@router.post("/s3/commit")
async def commit_upload(
    body: CommitRequest,
    request: Request,
    identity: Annotated[Identity, Depends(require_file_permission)],
    gateway: Annotated[ShareGateway, Depends(get_gateway)],
):
    """Шаг 2: клиент сообщил ETag/размер, запись становится полной."""
    result = await gateway.uploads.commit(identity, body, _base_url(request))
    return ok(result.model_dump(mode="json"), "File committed")


@router.put("/upload-direct/{filename}")
async def upload_direct(
    filename: str,
    request: Request,
    identity: Annotated[Identity, Depends(require_file_permission)],
    gateway: Annotated[ShareGateway, Depends(get_gateway)],
    s3_config_id: Optional[str] = None,
    slug: Optional[str] = None,
    path: Optional[str] = None,
    remark: Optional[str] = None,
    password: Optional[str] = None,
    expires_in: Optional[str] = None,
    max_views: Optional[str] = None,
    override: Optional[str] = None,
    original_filename: Optional[str] = None,
    use_proxy: Optional[str] = None,
    content_type: Annotated[Optional[str], Header()] = None,
):
    """Загрузка одним запросом: тело запроса - сырые байты файла."""
    options = DirectUploadOptions(
        s3_config_id=s3_config_id,
        slug=slug,
        path=path,
        remark=remark or "",
        password=password,
        expires_in=expires_in,
        max_views=max_views,
        override=override,
        original_filename=original_filename,
        use_proxy=use_proxy,
    )
    data = await request.body()
    result = await gateway.uploads.upload_direct(
        identity, filename, data, options, _base_url(request), declared_content_type=content_type
    )
    return ok(result.model_dump(mode="json"), "File uploaded")
