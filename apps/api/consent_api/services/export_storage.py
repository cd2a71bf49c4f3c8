"""On-disk storage for data export documents."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any
from uuid import UUID

from consent_api.core.config import settings

logger = logging.getLogger(__name__)


class ExportStorage:
    """One JSON file per export, named by its export id."""

    def __init__(self, base_dir: Path | None = None) -> None:
        self.base_dir = base_dir or settings.export_dir

    def path_for(self, export_id: UUID) -> Path:
        return self.base_dir / f"{export_id}.json"

    async def write(self, export_id: UUID, document: dict[str, Any]) -> Path:
        path = self.path_for(export_id)
        body = json.dumps(document, indent=2, default=str)
        await asyncio.to_thread(self._write, path, body)
        logger.info("Export written: id=%s bytes=%d", export_id, len(body))
        return path

    async def read(self, export_id: UUID) -> bytes | None:
        path = self.path_for(export_id)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            logger.warning("Export file missing: id=%s", export_id)
            return None

    async def delete(self, export_id: UUID) -> bool:
        path = self.path_for(export_id)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            return False
        return True

    @staticmethod
    def _write(path: Path, body: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(body, encoding="utf-8")
