from datetime import datetime, timedelta, timezone
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from jose import JWTError, jwt
from pydantic import BaseModel

from sensory_share_gateway.client import ShareGateway
from sensory_share_gateway.config import get_settings
from sensory_share_gateway.exceptions import PermissionDeniedError
from sensory_share_gateway.models import ApiKeyScope, AuthType, Identity

ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24


class TokenData(BaseModel):
    sub: str | None = None


def get_gateway(request: Request) -> ShareGateway:
    return request.app.state.gateway


def create_access_token(admin_id: str, expires_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES) -> str:
    """JWT администратора. sub - id администратора."""
    gw = get_settings().gateway
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    return jwt.encode({"sub": admin_id, "exp": expire}, gw.jwt_secret, algorithm=gw.jwt_algorithm)


def _split_authorization(value: Optional[str]) -> tuple[str, str]:
    if not value or " " not in value:
        return "", ""
    scheme, _, credentials = value.partition(" ")
    return scheme.lower(), credentials.strip()


async def get_identity(
    gateway: Annotated[ShareGateway, Depends(get_gateway)],
    authorization: Annotated[Optional[str], Header()] = None,
    x_api_key: Annotated[Optional[str], Header()] = None,
) -> Identity:
    """
    Кто делает запрос: администратор (Authorization: Bearer <jwt>)
    или API-ключ (X-API-KEY: <key> либо Authorization: ApiKey <key>).
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    scheme, credentials = _split_authorization(authorization)

    api_key = x_api_key or (credentials if scheme == "apikey" else None)
    if api_key:
        record = await gateway.api_keys.get_by_key(api_key)
        if record is None:
            raise credentials_exception
        await gateway.api_keys.touch_last_used(record.id)
        return Identity(
            auth_type=AuthType.APIKEY,
            user_id=record.id,
            scope=ApiKeyScope(
                basic_path=record.basic_path,
                text_permission=record.text_permission,
                file_permission=record.file_permission,
                mount_permission=record.mount_permission,
            ),
        )

    if scheme != "bearer" or not credentials:
        raise credentials_exception

    gw = get_settings().gateway
    try:
        payload = jwt.decode(credentials, gw.jwt_secret, algorithms=[gw.jwt_algorithm])
        token_data = TokenData(sub=payload.get("sub"))
    except JWTError:
        raise credentials_exception
    if token_data.sub is None:
        raise credentials_exception

    return Identity(auth_type=AuthType.ADMIN, user_id=token_data.sub)


async def require_file_permission(identity: Annotated[Identity, Depends(get_identity)]) -> Identity:
    """Администратор проходит всегда; API-ключу нужен file_permission."""
    if identity.is_admin:
        return identity
    if identity.scope is None or not identity.scope.file_permission:
        raise PermissionDeniedError("API key has no file permission")
    return identity
