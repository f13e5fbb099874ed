"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、存储超时、分页大小、生成图片存储桶等可配置常量。
"""

import os
from pathlib import Path


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("IPSTUDIO_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "IPSTUDIO_DB_PATH",
        str(_get_base_dir() / "sqlite" / "ipstudio.db"),
    )


# 单次存储操作默认超时（秒），超时视为可重试失败
STORE_TIMEOUT_S: float = float(os.environ.get("IPSTUDIO_STORE_TIMEOUT_S", "5.0"))

# SQLite busy_timeout（毫秒）
BUSY_TIMEOUT_MS: int = int(os.environ.get("IPSTUDIO_BUSY_TIMEOUT_MS", "5000"))

# 列表查询分页
DEFAULT_PAGE_SIZE: int = int(os.environ.get("IPSTUDIO_DEFAULT_PAGE_SIZE", "20"))
MAX_PAGE_SIZE: int = int(os.environ.get("IPSTUDIO_MAX_PAGE_SIZE", "100"))

# 生成图片存储桶（公开可读）
GENERATED_IMAGES_BUCKET: str = "generated-images"
