"""图片附件：检测提示词中的图片路径并编码为 base64"""

from __future__ import annotations

import base64
import logging
from pathlib import Path
from typing import List, Optional, Tuple

from .errors import ImageError
from .schema import ImageBlock, ImageSource, Message, TextBlock

logger = logging.getLogger(__name__)

MAX_IMAGE_SIZE = 20 * 1024 * 1024

MEDIA_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
}


def _extension(path: str) -> str:
    return Path(path).suffix.lstrip(".").lower()


def is_image_path(path: str) -> bool:
    return _extension(path) in MEDIA_TYPES


def media_type_for_extension(path: str) -> Optional[str]:
    return MEDIA_TYPES.get(_extension(path))


def load_image_from_path(path: str) -> ImageBlock:
    """读取图片文件为 ImageBlock"""
    file_path = Path(path)
    try:
        size = file_path.stat().st_size
    except OSError as e:
        raise ImageError(f"Cannot access image file: {path}: {e}") from e

    if size > MAX_IMAGE_SIZE:
        raise ImageError(f"Image file too large: {size} bytes (max {MAX_IMAGE_SIZE} bytes)")

    media_type = media_type_for_extension(path)
    if media_type is None:
        raise ImageError(f"Unsupported image format: {path}")

    try:
        data = file_path.read_bytes()
    except OSError as e:
        raise ImageError(f"Failed to read image file: {path}: {e}") from e

    return ImageBlock(
        source=ImageSource(
            type="base64",
            media_type=media_type,
            data=base64.b64encode(data).decode("ascii"),
        )
    )


def detect_image_paths(text: str) -> List[str]:
    """按空白切分，返回存在于磁盘上的图片路径"""
    return [token for token in text.split() if is_image_path(token) and Path(token).exists()]


def build_user_message(text: str) -> Tuple[Message, List[str]]:
    """构建用户消息，附加提示词中引用的图片

    返回消息和成功附加的图片路径；加载失败的图片只记录警告。
    """
    image_paths = detect_image_paths(text)
    if not image_paths:
        return Message.user(text), []

    blocks: list = [TextBlock(text=text)]
    attached = []
    for path in image_paths:
        try:
            blocks.append(load_image_from_path(path))
        except ImageError as e:
            logger.warning("Could not load image '%s': %s", path, e)
            continue
        attached.append(path)
    return Message(role="user", content=blocks), attached
