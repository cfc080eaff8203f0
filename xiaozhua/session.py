"""会话管理模块

会话文件是消息列表的 JSON，保存时先写临时文件再 rename。
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

from pydantic import TypeAdapter, ValidationError

from .errors import SessionError
from .schema import Message

logger = logging.getLogger(__name__)

_MESSAGES_ADAPTER = TypeAdapter(List[Message])


def sanitize_session_name(name: str) -> str:
    """只保留文件名部分，去掉前导点和 .json 后缀"""
    cleaned = Path(name).name.lstrip(".")
    if cleaned.endswith(".json"):
        cleaned = cleaned[: -len(".json")]
    if not cleaned:
        raise ValueError(f"Invalid session name: '{name}'")
    return cleaned


class Session:
    """单个会话：消息列表 + 文件路径"""

    def __init__(self, path: Path, messages: Optional[List[Message]] = None):
        self.path = Path(path)
        self._messages: List[Message] = list(messages or [])

    @property
    def name(self) -> str:
        return self.path.stem

    @property
    def messages(self) -> List[Message]:
        return self._messages

    @classmethod
    def load(cls, path: Path) -> "Session":
        path = Path(path)
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            raise SessionError(f"reading session {path}: {e}") from e
        try:
            messages = _MESSAGES_ADAPTER.validate_json(raw)
        except ValidationError as e:
            raise SessionError(f"parsing session {path}: {e}") from e
        return cls(path, messages)

    def save(self) -> None:
        directory = self.path.parent
        temp_path = directory / f".session-{uuid.uuid4()}.tmp"
        data = [m.model_dump(mode="json") for m in self._messages]
        try:
            directory.mkdir(parents=True, exist_ok=True)
            temp_path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(temp_path, self.path)
        except OSError as e:
            temp_path.unlink(missing_ok=True)
            raise SessionError(f"saving session {self.path}: {e}") from e

    def add_user_message(self, text: str) -> None:
        self._messages.append(Message.user(text))

    def add_assistant_message(self, content: List[Any]) -> None:
        self._messages.append(Message.assistant(content))

    def push_message(self, message: Message) -> None:
        self._messages.append(message)

    def replace_messages(self, messages: List[Message]) -> None:
        self._messages = list(messages)

    def truncate(self, length: int) -> None:
        """回滚到指定长度"""
        del self._messages[length:]

    def clear_messages(self) -> None:
        self._messages.clear()

    def __len__(self) -> int:
        return len(self._messages)


@dataclass
class SessionInfo:
    """会话列表条目"""

    name: str
    path: Path
    updated_at: datetime
    size: int


class SessionManager:
    """会话管理器"""

    def __init__(self, sessions_dir: str | Path = "~/.xiaozhua/sessions"):
        self.sessions_dir = Path(sessions_dir).expanduser()

    def session_path(self, name: str) -> Path:
        """会话文件路径，始终位于 sessions_dir 内"""
        return self.sessions_dir / f"{sanitize_session_name(name)}.json"

    def load_or_create(self, name: str) -> Session:
        path = self.session_path(name)
        if path.exists():
            return Session.load(path)
        return Session(path)

    def list_sessions(self) -> List[SessionInfo]:
        """列出所有会话，最近修改的在前"""
        if not self.sessions_dir.is_dir():
            return []

        sessions = []
        for f in self.sessions_dir.glob("*.json"):
            try:
                stat = f.stat()
            except OSError as e:
                logger.warning("Skipping session %s: %s", f, e)
                continue
            sessions.append(
                SessionInfo(
                    name=f.stem,
                    path=f,
                    updated_at=datetime.fromtimestamp(stat.st_mtime),
                    size=stat.st_size,
                )
            )
        sessions.sort(key=lambda s: s.updated_at, reverse=True)
        return sessions

    def delete(self, name: str) -> bool:
        """删除会话"""
        path = self.session_path(name)
        if path.exists():
            path.unlink()
            return True
        return False
