"""访问控制策略：记录级 authorize() 与存储资源级 authorize_asset()"""

from .access_control import authorize, require
from .storage_policy import (
    GENERATED_IMAGES,
    AssetBucket,
    asset_path_for,
    authorize_asset,
    owner_segment,
    require_asset_access,
)

__all__ = [
    "authorize",
    "require",
    "authorize_asset",
    "require_asset_access",
    "owner_segment",
    "asset_path_for",
    "AssetBucket",
    "GENERATED_IMAGES",
]
