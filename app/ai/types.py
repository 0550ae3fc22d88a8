from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class DocumentPayload:
    filename: str
    mime_type: str
    data_b64: str


class AIClient(Protocol):
    model: str

    async def generate_json(self, *, prompt: str, document: DocumentPayload) -> str: ...
