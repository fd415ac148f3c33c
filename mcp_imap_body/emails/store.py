import asyncio
from pathlib import Path

from pydantic import BaseModel

from mcp_imap_body.emails import BodyStore
from mcp_imap_body.emails.models import StoredBody
from mcp_imap_body.log import logger


def _key(email: str, message_id: str) -> str:
    return f"{email}\x00{message_id}"


class InMemoryBodyStore(BodyStore):
    def __init__(self):
        self.records: dict[str, StoredBody] = {}

    async def update_body(self, record: StoredBody) -> None:
        self.records[_key(record.email, record.message_id)] = record

    async def get_body(self, email: str, message_id: str) -> StoredBody | None:
        return self.records.get(_key(email, message_id))


class _StoredBodies(BaseModel):
    bodies: list[StoredBody] = []


class JsonFileBodyStore(BodyStore):
    """Keeps all records in one JSON file, rewritten on every update."""

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()
        self._lock = asyncio.Lock()

    def _load(self) -> dict[str, StoredBody]:
        if not self.path.exists():
            return {}
        stored = _StoredBodies.model_validate_json(self.path.read_text(encoding="utf-8"))
        return {_key(r.email, r.message_id): r for r in stored.bodies}

    def _dump(self, records: dict[str, StoredBody]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = _StoredBodies(bodies=list(records.values())).model_dump_json(indent=2)
        self.path.write_text(payload, encoding="utf-8")

    async def update_body(self, record: StoredBody) -> None:
        async with self._lock:
            records = self._load()
            records[_key(record.email, record.message_id)] = record
            self._dump(records)
        logger.debug(f"Stored body for {record.message_id} in {self.path}")

    async def get_body(self, email: str, message_id: str) -> StoredBody | None:
        async with self._lock:
            return self._load().get(_key(email, message_id))
