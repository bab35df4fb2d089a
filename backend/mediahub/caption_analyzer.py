"""
Caption analysis: extracts product fields from a Telegram caption.

Caption convention used by the channel:
    <product name> #<VENDOR><mmDDyy>[...] x<quantity> (<notes>)
e.g. "Blue Widget #ABC123124 x 3 (damaged box)".

The rule parser always works offline. When an OpenAI key is configured
the LLM is asked first and the rule parser is the fallback.
"""
import json
import logging
import re
from datetime import date, datetime, timezone
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

_CODE_RE = re.compile(r"#\s*([A-Za-z0-9-]+)")
_QUANTITY_RE = re.compile(r"(?:^|\s)x\s*(\d+)\b", re.IGNORECASE)
_NOTES_RE = re.compile(r"\(([^)]*)\)")
_VENDOR_RE = re.compile(r"^([A-Za-z]+)")
_DATE_DIGITS_RE = re.compile(r"(\d{6})")

ANALYSIS_FIELDS = ("product_name", "product_code", "quantity", "vendor_uid", "purchase_date", "notes")

_SYSTEM_PROMPT = """Extract product information from captions following these rules:

1. product_name: Product name from caption
2. product_code: Code after # (without the #)
3. quantity: Number after "x" (if present), ignore anything in () which should be added to notes
4. vendor_uid: Letters before numbers in the code
5. purchase_date: Convert 6 digits from code (mmDDyy) to YYYY-MM-DD
6. notes: Any text in parentheses or text that is not part of the product name, product code, purchase date, vendor uid, or quantity

Return a JSON object with: product_name, product_code, quantity, vendor_uid,
purchase_date, notes (null when absent) and confidence_score (0..1)."""


def _parse_purchase_date(code: str) -> Optional[str]:
    letters = _VENDOR_RE.match(code)
    digits = _DATE_DIGITS_RE.search(code[letters.end():] if letters else code)
    if not digits:
        return None
    raw = digits.group(1)
    month, day, year = int(raw[0:2]), int(raw[2:4]), 2000 + int(raw[4:6])
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def parse_caption(caption: Optional[str]) -> Optional[dict]:
    """Rule-based extraction. Returns None for an empty caption."""
    if not caption or not caption.strip():
        return None

    text = caption.strip()
    notes = [n.strip() for n in _NOTES_RE.findall(text) if n.strip()]
    remainder = _NOTES_RE.sub(" ", text)

    product_code = vendor_uid = purchase_date = None
    code_match = _CODE_RE.search(remainder)
    if code_match:
        product_code = code_match.group(1)
        vendor = _VENDOR_RE.match(product_code)
        vendor_uid = vendor.group(1).upper() if vendor else None
        purchase_date = _parse_purchase_date(product_code)

    quantity = None
    qty_match = _QUANTITY_RE.search(remainder)
    if qty_match:
        quantity = int(qty_match.group(1))

    # Product name is whatever precedes the code / quantity marker
    cut = len(remainder)
    for m in (code_match, qty_match):
        if m:
            cut = min(cut, m.start())
    product_name = re.sub(r"\s+", " ", remainder[:cut]).strip(" -,.:") or None

    return {
        "product_name": product_name,
        "product_code": product_code,
        "quantity": quantity,
        "vendor_uid": vendor_uid,
        "purchase_date": purchase_date,
        "notes": "; ".join(notes) or None,
        "raw_caption": caption,
        "analyzed_at": datetime.now(timezone.utc).isoformat(),
        "parsing_method": "rules",
    }


class CaptionAnalyzer:
    """Caption -> analyzed_content dict (LLM when configured, rules otherwise)."""

    def __init__(
        self,
        api_key: str = "",
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def analyze(self, caption: Optional[str]) -> Optional[dict]:
        if not caption or not caption.strip():
            return None
        if self._api_key:
            try:
                return await self._analyze_with_llm(caption)
            except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as e:
                logger.warning("[CAPTION] LLM analysis failed, using rule parser: %s", e)
        return parse_caption(caption)

    async def _analyze_with_llm(self, caption: str) -> dict:
        resp = await self._client.post(
            f"{self._base_url}/chat/completions",
            headers={"Authorization": f"Bearer {self._api_key}"},
            json={
                "model": self._model,
                "messages": [
                    {"role": "system", "content": _SYSTEM_PROMPT},
                    {"role": "user", "content": caption},
                ],
                "temperature": 0.1,
                "response_format": {"type": "json_object"},
            },
        )
        resp.raise_for_status()
        content = resp.json()["choices"][0]["message"]["content"]
        parsed: dict[str, Any] = json.loads(content)
        result = {field: parsed.get(field) for field in ANALYSIS_FIELDS}
        if result["quantity"] is not None:
            result["quantity"] = int(result["quantity"])
        result.update({
            "confidence_score": parsed.get("confidence_score"),
            "raw_caption": caption,
            "analyzed_at": datetime.now(timezone.utc).isoformat(),
            "parsing_method": "llm",
        })
        return result

    async def close(self) -> None:
        if not self._client.is_closed:
            await self._client.aclose()
