"""HTML 解析工具."""

import re

from bs4 import BeautifulSoup


def html_to_text(html: str) -> str:
    """
    将条目描述中的 HTML 转换为纯文本.

    Args:
        html: HTML 内容（也可能本身就是纯文本）

    Returns:
        提取的纯文本内容
    """
    if not html:
        return ""

    # 纯文本直接清理空白
    if "<" not in html:
        return _collapse_lines(html)

    soup = BeautifulSoup(html, "lxml")

    for element in soup(["script", "style"]):
        element.decompose()

    # 换行标签保留为换行
    for br in soup.find_all("br"):
        br.replace_with("\n")

    return _collapse_lines(soup.get_text(separator="\n"))


def _collapse_lines(text: str) -> str:
    """去掉空行和行首尾空白."""
    lines = [line.strip() for line in text.split("\n")]
    text = "\n".join(line for line in lines if line)
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def clip_text(text: str, limit: int, suffix: str = "…") -> str:
    """
    截断文本到指定长度.

    Args:
        text: 原文本
        limit: 最大字符数（含后缀）
        suffix: 截断时追加的后缀

    Returns:
        不超过 limit 的文本
    """
    if len(text) <= limit:
        return text
    return text[: max(0, limit - len(suffix))].rstrip() + suffix
