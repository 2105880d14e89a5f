"""Local filesystem chat store.

Stores each chat as a JSON file under a unified data root with optional
namespace prefix::

    {data_root}/{prefix}/chats/{chat_id}/chat.json

When prefix is None, the path collapses to::

    {data_root}/chats/{chat_id}/chat.json

Uses ``anyio.to_thread.run_sync`` for non-blocking file I/O.

Writes are atomic: data is written to a temporary file in the same directory,
then renamed to the target path.  This prevents corrupt reads if the process
is killed mid-write.
"""

from __future__ import annotations

import contextlib
import os
import shutil
import tempfile
import uuid
from functools import partial
from pathlib import Path

from anyio import to_thread
from loguru import logger
from pydantic import ValidationError

from parley.chat_runtime.models.chat import Chat
from parley.chat_runtime.store.base import ChatNotFoundError


class LocalChatStore:
    """Local filesystem implementation of the ChatStore protocol.

    Layout::

        {base}/chats/{chat_id}/chat.json

    Where ``base`` is ``data_root / prefix`` (or just ``data_root`` if no prefix).
    """

    def __init__(self, data_root: str | Path, prefix: str | None = None) -> None:
        base = Path(data_root)
        if prefix:
            base = base / prefix
        self._base = base / "chats"

    def _chat_path(self, chat_id: str) -> Path:
        return self._base / chat_id / "chat.json"

    # -- Write -----------------------------------------------------------------

    async def create_chat(self, chat: Chat) -> str:
        chat_id = uuid.uuid4().hex
        data = chat.model_copy(update={"id": chat_id}).model_dump_json(indent=2)
        await to_thread.run_sync(partial(_atomic_write, self._chat_path(chat_id), data))
        logger.debug("Chat created: {}", chat_id)
        return chat_id

    async def update_chat(self, chat_id: str, chat: Chat) -> None:
        data = chat.model_copy(update={"id": chat_id}).model_dump_json(indent=2)
        await to_thread.run_sync(partial(_atomic_write, self._chat_path(chat_id), data))

    # -- Read ------------------------------------------------------------------

    async def get_chat(self, chat_id: str) -> Chat:
        path = self._chat_path(chat_id)
        try:
            raw = await to_thread.run_sync(partial(_read_file, path))
        except FileNotFoundError:
            raise ChatNotFoundError(chat_id) from None
        return Chat.model_validate_json(raw)

    async def list_chats(self) -> list[Chat]:
        raws = await to_thread.run_sync(partial(_read_all, self._base))
        chats: list[Chat] = []
        for path, raw in raws:
            try:
                chats.append(Chat.model_validate_json(raw))
            except ValidationError:
                logger.warning("Skipping unreadable chat file {}", path)
        chats.sort(key=lambda c: c.created_at, reverse=True)
        return chats

    # -- Delete ----------------------------------------------------------------

    async def delete_chat(self, chat_id: str) -> None:
        await to_thread.run_sync(partial(_rmtree, self._base / chat_id))
        logger.debug("Chat deleted: {}", chat_id)


# -- Sync helpers (run in thread pool) -----------------------------------------


def _atomic_write(path: Path, data: str) -> None:
    """Write data atomically: temp file + rename.

    Ensures readers never see a partially-written file.  The temp file is
    created in the same directory so ``os.replace`` is atomic on POSIX.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up temp file on any failure.
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise


def _read_file(path: Path) -> str:
    """Read file contents.  Raises ``FileNotFoundError`` if missing."""
    return path.read_text(encoding="utf-8")


def _read_all(base: Path) -> list[tuple[Path, str]]:
    if not base.exists():
        return []
    results: list[tuple[Path, str]] = []
    for path in sorted(base.glob("*/chat.json")):
        with contextlib.suppress(FileNotFoundError):
            results.append((path, path.read_text(encoding="utf-8")))
    return results


def _rmtree(path: Path) -> None:
    """Remove directory tree.  No-op if path doesn't exist."""
    if path.exists():
        shutil.rmtree(path)
