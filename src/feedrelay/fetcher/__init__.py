"""Feed 抓取模块."""

from feedrelay.fetcher.source import (
    Document,
    FeedItem,
    FeedSource,
    FetchError,
    HttpFeedSource,
    parse_document,
)

__all__ = [
    "Document",
    "FeedItem",
    "FeedSource",
    "FetchError",
    "HttpFeedSource",
    "parse_document",
]
