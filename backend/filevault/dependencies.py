from fastapi import Depends, Header, HTTPException, Request, status

from filevault.core.container import Container
from filevault.core.exceptions import RateLimitedError
from filevault.monitoring.setup import report_rate_limited
from filevault.services.file_service import FileService


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_file_service(container: Container = Depends(get_container)) -> FileService:
    return container.file_service


def parse_user_id(value: str | None) -> int | None:
    """A positive integer user id, or None when the header value is not one."""
    if not value or not value.isascii() or not value.isdigit():
        return None
    user_id = int(value)
    return user_id if user_id >= 1 else None


def get_current_user_id(x_user_id: str | None = Header(None)) -> int:
    """The id of the caller, as authenticated by the upstream gateway."""
    user_id = parse_user_id(x_user_id)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user_id


def rate_limit_identity(request: Request) -> str:
    """Key by the caller's user id when it is well-formed, else by client address."""
    user_id = parse_user_id(request.headers.get("x-user-id"))
    if user_id is not None:
        return f"user:{user_id}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


async def enforce_rate_limit(request: Request, container: Container = Depends(get_container)) -> None:
    decision = await container.rate_limiter.check(rate_limit_identity(request))
    if not decision.allowed:
        report_rate_limited()
        raise RateLimitedError(decision.retry_after)
