"""应用配置管理."""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """应用配置（环境变量）."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # 存储配置
    database_url: str = "sqlite+aiosqlite:///./feedrelay.db"

    # Telegram 配置
    bot_token: str = ""
    telegram_api_base: str = "https://api.telegram.org"

    # 白名单，逗号分隔的 owner ID（为空表示所有人可用）
    allowed_owners: str = ""

    # 配额限制（0 表示不限制）
    max_feeds_per_destination: int = 10
    max_total_feeds_by_owner: int = 200
    max_active_feeds_by_owner: int = 20

    # 更新任务配置
    update_interval_minutes: int = 60
    update_pass_timeout_seconds: float = 60.0
    update_on_startup: bool = True
    fetch_timeout_seconds: float = 30.0

    # 隔离策略
    failure_window_hours: float = 12.0
    failure_threshold: int = 9

    # 请求限流（0 表示不限制）
    request_limit: int = 30
    request_window_minutes: int = 60

    @property
    def allowed_owner_ids(self) -> frozenset[int]:
        """解析后的白名单."""
        return frozenset(
            int(part) for part in self.allowed_owners.split(",") if part.strip()
        )

    @field_validator(
        "max_feeds_per_destination",
        "max_total_feeds_by_owner",
        "max_active_feeds_by_owner",
        "failure_threshold",
        "request_limit",
    )
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            msg = "限制值不能为负数"
            raise ValueError(msg)
        return value


@lru_cache
def get_settings() -> Settings:
    """获取应用配置（带缓存）."""
    return Settings()
