"""
网页获取工具

HTML 转为纯文本，JSON 格式化，其它内容原样返回。
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional

import httpx

from .. import __version__
from ..schema import ToolResult
from .base import Tool

MAX_OUTPUT_CHARS = 50_000
FETCH_TIMEOUT = 30.0
MAX_REDIRECTS = 10
USER_AGENT = f"xiaozhua/{__version__}"

_HTML_ENTITIES = [
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&apos;", "'"),
    ("&nbsp;", " "),
]


def remove_tag_blocks(html: str, tag: str) -> str:
    """删除 <tag ...>...</tag> 整块，未闭合时删到结尾"""
    return re.sub(
        rf"<{tag}\b.*?(?:</{tag}>|$)", "", html, flags=re.DOTALL | re.IGNORECASE
    )


def strip_tags(html: str) -> str:
    return re.sub(r"<[^>]*>", " ", html)


def decode_html_entities(text: str) -> str:
    for entity, char in _HTML_ENTITIES:
        text = text.replace(entity, char)
    return text


def collapse_whitespace(text: str) -> str:
    """行内空白合并为一个空格，连续空行最多保留一个"""
    text = text.replace("\r", "")
    text = re.sub(r"[^\S\n]+", " ", text)
    text = re.sub(r"[^\S\n]*\n[^\S\n]*", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def html_to_text(html: str) -> str:
    """简单的 HTML 转文本"""
    html = remove_tag_blocks(html, "script")
    html = remove_tag_blocks(html, "style")
    return collapse_whitespace(decode_html_entities(strip_tags(html)))


def truncate_output(content: str) -> str:
    if len(content) <= MAX_OUTPUT_CHARS:
        return content
    return (
        f"{content[:MAX_OUTPUT_CHARS]}\n\n"
        f"[truncated: {len(content)} characters total, showing first {MAX_OUTPUT_CHARS}]"
    )


class WebFetchTool(Tool):
    """网页获取工具"""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    @property
    def name(self) -> str:
        return "web_fetch"

    @property
    def description(self) -> str:
        return (
            "Fetch content from a URL. Returns the page content as text. "
            "Supports HTML (converted to readable text), JSON, and plain text."
        )

    @property
    def parameters(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "required": ["url"],
            "properties": {
                "url": {
                    "type": "string",
                    "description": "The URL to fetch",
                },
                "prompt": {
                    "type": "string",
                    "description": "Optional instruction for what to extract from the page",
                },
            },
        }

    async def execute(self, url: str, prompt: Optional[str] = None) -> ToolResult:
        if not url.startswith(("http://", "https://")):
            return ToolResult(
                content=f"Invalid URL scheme. Only http:// and https:// are supported: {url}",
                is_error=True,
            )

        async with httpx.AsyncClient(
            timeout=FETCH_TIMEOUT,
            follow_redirects=True,
            max_redirects=MAX_REDIRECTS,
            transport=self._transport,
        ) as client:
            try:
                response = await client.get(url, headers={"User-Agent": USER_AGENT})
            except httpx.HTTPError as e:
                return ToolResult(content=f"Failed to fetch URL '{url}': {e}", is_error=True)

        if not response.is_success:
            return ToolResult(
                content=(
                    f"HTTP error {response.status_code} fetching '{url}': "
                    f"{response.reason_phrase or 'unknown'}"
                ),
                is_error=True,
            )

        content_type = response.headers.get("content-type", "").lower()
        body = response.text
        if "text/html" in content_type:
            processed = html_to_text(body)
        elif "json" in content_type:
            try:
                processed = json.dumps(json.loads(body), indent=2, ensure_ascii=False)
            except json.JSONDecodeError:
                processed = body
        else:
            processed = body

        header = f"URL: {url}\n"
        if prompt:
            header += f"Prompt: {prompt}\n"
        return ToolResult(content=f"{header}\n---\n\n{truncate_output(processed)}")
