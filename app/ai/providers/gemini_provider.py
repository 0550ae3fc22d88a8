from __future__ import annotations

import os
from typing import Any, Optional

from langchain_core.messages import HumanMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from app.ai.types import DocumentPayload


def _content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(str(part.get("text") or ""))
        return "".join(parts)
    return ""


class GeminiProvider:
    def __init__(
        self,
        model: str,
        api_key: Optional[str] = None,
        temperature: float = 0.2,
    ):
        self.model = model
        # Prefer GEMINI_API_KEY, fallback to GOOGLE_API_KEY
        key = (api_key or os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY") or "").strip()
        if not key:
            raise RuntimeError("GEMINI_API_KEY (or GOOGLE_API_KEY) is missing")

        self._llm = ChatGoogleGenerativeAI(
            model=model,
            google_api_key=key,
            temperature=temperature,
            max_retries=0,
            response_mime_type="application/json",
        )

    async def generate_json(self, *, prompt: str, document: DocumentPayload) -> str:
        message = HumanMessage(
            content=[
                {"type": "media", "mime_type": document.mime_type, "data": document.data_b64},
                {"type": "text", "text": prompt},
            ]
        )
        response = await self._llm.ainvoke([message])
        return _content_text(response.content)
