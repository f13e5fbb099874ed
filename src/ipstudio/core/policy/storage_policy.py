"""存储资源访问控制

资源路径的第一级目录被视为所属用户 ID（{user_id}/...）。
insert 对任意已认证身份放行，update/delete 要求路径归属一致，
两者有意不对称：能上传不代表之后能覆盖或删除。
"""

import structlog
from pydantic import BaseModel, ConfigDict, Field

from ..config import GENERATED_IMAGES_BUCKET
from ..exceptions import UnauthorizedError, ValidationError
from ..models.enums import BucketVisibility, Operation
from ..models.identity import IdentityContext

log = structlog.get_logger()


class AssetBucket(BaseModel):
    """存储桶描述"""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="存储桶名称")
    visibility: BucketVisibility = Field(description="可见性")


GENERATED_IMAGES = AssetBucket(
    name=GENERATED_IMAGES_BUCKET,
    visibility=BucketVisibility.PUBLIC,
)


def owner_segment(asset_path: str) -> str | None:
    """提取资源路径的第一级目录

    根目录下的文件没有目录段，返回 None（不属于任何用户）。
    """
    parts = asset_path.strip("/").split("/")
    folders = parts[:-1]
    if not folders or not folders[0]:
        return None
    return folders[0]


def asset_path_for(owner_id: str, *parts: str) -> str:
    """按约定拼接用户资源路径：{owner_id}/{parts...}"""
    if not owner_id or "/" in owner_id:
        raise ValidationError("owner_id", "must be a non-empty single path segment")
    segments = [p.strip("/") for p in parts if p and p.strip("/")]
    if not segments:
        raise ValidationError("asset_path", "file name is required")
    return "/".join([owner_id, *segments])


def authorize_asset(
    identity: IdentityContext,
    operation: Operation,
    asset_path: str,
    bucket_visibility: BucketVisibility,
) -> bool:
    """判断身份是否可对资源执行操作

    Args:
        identity: 调用方身份
        operation: 操作类型
        asset_path: 桶内对象路径
        bucket_visibility: 所在存储桶可见性

    Returns:
        True 表示允许，False 表示拒绝
    """
    owner = owner_segment(asset_path)
    is_owner = identity.user_id is not None and owner == identity.user_id

    if operation == Operation.READ:
        return bucket_visibility == BucketVisibility.PUBLIC or is_owner
    if operation == Operation.INSERT:
        return identity.is_authenticated
    return is_owner


def require_asset_access(
    identity: IdentityContext,
    operation: Operation,
    asset_path: str,
    bucket: AssetBucket = GENERATED_IMAGES,
) -> None:
    """authorize_asset() 的断言版本

    Raises:
        UnauthorizedError: 无权操作该资源
    """
    if not authorize_asset(identity, operation, asset_path, bucket.visibility):
        log.debug(
            "asset_access_denied",
            operation=operation.value,
            bucket=bucket.name,
            owner=owner_segment(asset_path),
            user_id=identity.user_id,
            role=identity.role.value,
        )
        raise UnauthorizedError(operation.value, f"asset in {bucket.name}")
