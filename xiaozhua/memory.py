"""持久记忆文件 (~/.xiaozhua/memory)"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from .config import home_dir


def memory_dir() -> Path:
    return home_dir() / "memory"


def read_memory_file(name: str, directory: Optional[Path] = None) -> Optional[str]:
    """读取记忆文件，不存在时返回 None"""
    path = (directory or memory_dir()) / name
    if not path.exists():
        return None
    return path.read_text(encoding="utf-8")


def write_memory_file(name: str, content: str, directory: Optional[Path] = None) -> Path:
    directory = directory or memory_dir()
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(content, encoding="utf-8")
    return path


def list_memory_files(directory: Optional[Path] = None) -> List[str]:
    """按名称排序的记忆文件列表"""
    directory = directory or memory_dir()
    if not directory.is_dir():
        return []
    return sorted(p.name for p in directory.iterdir())
