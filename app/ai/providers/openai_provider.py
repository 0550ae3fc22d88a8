from __future__ import annotations

import os
from typing import Optional

from openai import AsyncOpenAI

from app.ai.types import DocumentPayload


class OpenAIProvider:
    def __init__(
        self,
        model: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_s: float = 60.0,
        temperature: float = 0.2,
        max_output_tokens: int = 900,
    ):
        self.model = model
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens
        key = (api_key or os.getenv("OPENAI_API_KEY") or "").strip()
        if not key:
            raise RuntimeError("OPENAI_API_KEY is missing")

        # Retries stay off: one screening call is one round trip.
        self._client = AsyncOpenAI(
            api_key=key,
            base_url=(base_url or os.getenv("OPENAI_BASE_URL") or None),
            timeout=float(os.getenv("OPENAI_TIMEOUT_S", str(timeout_s))),
            max_retries=0,
        )

    async def generate_json(self, *, prompt: str, document: DocumentPayload) -> str:
        response = await self._client.chat.completions.create(
            model=self.model,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "file",
                            "file": {
                                "filename": document.filename,
                                "file_data": f"data:{document.mime_type};base64,{document.data_b64}",
                            },
                        },
                        {"type": "text", "text": prompt},
                    ],
                }
            ],
            temperature=self._temperature,
            response_format={"type": "json_object"},
            max_tokens=self._max_output_tokens,
        )
        content = response.choices[0].message.content if response.choices else ""
        return content or ""
