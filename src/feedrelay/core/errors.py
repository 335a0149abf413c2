"""存储层错误定义."""


class StoreError(Exception):
    """存储访问失败（可在下一轮重试）."""


class QuotaExceeded(Exception):
    """订阅配额超限."""

    which = "quota"

    def __init__(self, limit: int, current: int) -> None:
        self.limit = limit
        self.current = current
        super().__init__(f"{self.which}: {current}/{limit}")


class ChatLimitExceeded(QuotaExceeded):
    """目标已达到订阅数上限."""

    which = "destination"


class OwnerTotalLimitExceeded(QuotaExceeded):
    """用户创建的 Feed 总数已达上限."""

    which = "owner_total"


class OwnerActiveLimitExceeded(QuotaExceeded):
    """用户的有效订阅数已达上限."""

    which = "owner_active"


class AlreadySubscribed(Exception):
    """目标已订阅该 Feed."""
