"""
Receipt extraction via the Gemini ``generateContent`` REST endpoint.

The service is treated as a black box: bytes in, ``ReceiptExtract`` out.
Every kind of failure surfaces as a single ``ExtractionError``.
"""
from __future__ import annotations

import base64
import json
import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from app.config import settings
from app.pipeline.errors import ExtractionError
from app.schemas import ReceiptExtract

logger = logging.getLogger(__name__)

INVOICE_CATEGORIES = ["適格", "区分記載"]

RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "store_name": {"type": "STRING"},
        "transaction_date": {"type": "STRING"},
        "total_amount": {"type": "INTEGER"},
        "tax_amount": {"type": "INTEGER"},
        "invoice_category": {"type": "STRING", "enum": INVOICE_CATEGORIES},
        "suggested_debit_account": {"type": "STRING"},
        "description": {"type": "STRING"},
        "memo": {"type": "STRING"},
        "items_summary": {"type": "STRING"},
    },
    "propertyOrdering": [
        "store_name",
        "transaction_date",
        "total_amount",
        "tax_amount",
        "invoice_category",
        "suggested_debit_account",
        "description",
        "memo",
        "items_summary",
    ],
}

DEFAULT_PROMPT = """
You are a bookkeeper familiar with Japanese accounting practice.
Read the attached receipt (image or PDF) and return only JSON matching the schema.

- transaction_date: YYYY-MM-DD; prefer issue date, then usage date, then order date.
- total_amount: tax-inclusive total in yen, integer.
- tax_amount: consumption tax in yen, integer; 0 when not printed.
- invoice_category: "適格" if a qualified invoice registration number is present, otherwise "区分記載".
- suggested_debit_account: expense account inferred from the items ("雑費" when unsure).
- items_summary: store name plus main items, short.
""".strip()


class GeminiExtractor:
    """Thin HTTP client for structured receipt extraction."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        prompt: str = DEFAULT_PROMPT,
        client: Optional[httpx.Client] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.LLM_API_KEY
        self.model = model or settings.LLM_MODEL
        self.base_url = (base_url or settings.LLM_BASE_URL).rstrip("/")
        self.prompt = prompt
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(
                connect=10.0,
                read=float(timeout or settings.LLM_TIMEOUT_SECONDS),
                write=30.0,
                pool=10.0,
            ),
        )

    def close(self) -> None:
        self._client.close()

    def _payload(self, data: bytes, mime_type: str) -> dict[str, Any]:
        return {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": self.prompt},
                        {
                            "inline_data": {
                                "mime_type": mime_type,
                                "data": base64.b64encode(data).decode("ascii"),
                            }
                        },
                    ],
                }
            ],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": RESPONSE_SCHEMA,
            },
        }

    @staticmethod
    def _response_text(body: Any) -> str:
        if not isinstance(body, dict):
            raise ExtractionError("Extraction response is not a JSON object")
        candidates = body.get("candidates") or []
        if not candidates or not isinstance(candidates[0], dict):
            raise ExtractionError("Extraction returned no candidates")
        content = candidates[0].get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list):
            parts = []
        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
        if not text.strip():
            raise ExtractionError("Extraction returned an empty response")
        return text

    def extract(self, data: bytes, mime_type: str) -> ReceiptExtract:
        if not self.api_key:
            raise ExtractionError("LLM_API_KEY is not configured")

        url = f"{self.base_url}/models/{self.model}:generateContent"
        try:
            response = self._client.post(
                url,
                json=self._payload(data, mime_type),
                headers={"x-goog-api-key": self.api_key},
            )
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as e:
            raise ExtractionError(f"Extraction timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            raise ExtractionError(
                f"Extraction API error {e.response.status_code} for model '{self.model}'"
            ) from e
        except httpx.RequestError as e:
            raise ExtractionError(f"Extraction request failed: {e}") from e
        except ValueError as e:
            raise ExtractionError(f"Extraction response is not JSON: {e}") from e

        text = self._response_text(body)
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            raise ExtractionError(f"Extraction output is not valid JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise ExtractionError("Extraction output is not a JSON object")

        try:
            extract = ReceiptExtract.model_validate(parsed)
        except ValidationError as e:
            raise ExtractionError(f"Extraction output does not match schema: {e}") from e

        logger.debug("Extracted receipt from %s (%s)", extract.store_name or "?", self.model)
        return extract
