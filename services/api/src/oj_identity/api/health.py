"""健康检查接口。"""

from fastapi import APIRouter, Depends, Request, status

from oj_identity.dependencies import get_auth_service
from oj_identity.errors import StorageError
from oj_identity.schemas.common import ErrorResponse, HealthStatusData, SuccessResponse
from oj_identity.services import AuthService
from oj_identity.storage.errors import StoreError
from oj_identity.utils.response import success

router = APIRouter(prefix="/health", tags=["health"])


@router.get(
    "/live",
    summary="存活探针",
    description="用于容器编排系统检测服务进程是否存活。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[HealthStatusData],
    responses={500: {"model": ErrorResponse}},
)
def live(request: Request):
    """仅表示进程存活，不校验外部依赖。"""
    return success(request, {"status": "ok"})


@router.get(
    "/ready",
    summary="就绪探针",
    description="通过存储往返检测服务是否具备对外提供能力。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[HealthStatusData],
    responses={500: {"model": ErrorResponse}},
)
def ready(request: Request, service: AuthService = Depends(get_auth_service)):
    """执行一次存储往返验证数据库可用。"""
    try:
        service.repository.store.ping(timeout=service.settings.storage_timeout_seconds)
    except StoreError as exc:
        raise StorageError("storage not ready", details={"operation": "store.ping"}) from exc
    return success(request, {"status": "ready"})
