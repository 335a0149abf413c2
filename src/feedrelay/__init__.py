"""FeedRelay - RSS/Atom 订阅推送服务."""

__version__ = "0.1.0"
