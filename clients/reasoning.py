"""HTTP client for the external reasoning service.

Two endpoints: `think` (conversational reply plus an optional emotion
shift) and `reflect` (a single inner thought from recent memories).
Both calls are blocking; bridges run them through asyncio.to_thread.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Literal, Optional, Tuple

import requests
from pydantic import BaseModel, Field, ValidationError

from config_loader import get_reasoning_config
from substrate.state import RANGES

logger = logging.getLogger(__name__)

SHIFT_PATTERN = re.compile(r"\n?SHIFT:\s*(\{[^}]*\})\s*$")


class ReasoningError(RuntimeError):
    """The service could not be reached or answered with something unusable."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class HistoryMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ThinkRequest(BaseModel):
    content: str
    context: List[str] = Field(default_factory=list)
    selfState: Dict[str, float]
    conversationHistory: List[HistoryMessage] = Field(default_factory=list)
    empathicState: Optional[Dict[str, Any]] = None
    tomInference: Optional[Dict[str, Any]] = None
    recentMemories: Optional[List[str]] = None
    detectedEmotions: Optional[Dict[str, Any]] = None


class ThinkResponse(BaseModel):
    text: str
    emotionShift: Optional[Dict[str, float]] = None


class Mood(BaseModel):
    valence: float
    arousal: float
    energy: float


class ReflectRequest(BaseModel):
    memories: List[str] = Field(default_factory=list, max_length=5)
    mood: Mood
    recentStream: Optional[str] = None


class ReflectResponse(BaseModel):
    thought: str = ""


def coerce_shift(raw: Any) -> Optional[Dict[str, float]]:
    """Turn a raw emotion-shift value into a clean partial delta.

    Anything malformed yields None (no shift). Unknown dimension names are
    dropped; booleans and non-numbers make the whole shift malformed.
    """
    if raw is None:
        return None
    if not isinstance(raw, dict):
        logger.warning("Ignoring malformed emotion shift: %r", raw)
        return None
    shift: Dict[str, float] = {}
    for key, value in raw.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            logger.warning("Ignoring malformed emotion shift: %r", raw)
            return None
        if key not in RANGES:
            logger.debug("Dropping unknown shift dimension %r", key)
            continue
        shift[key] = float(value)
    return shift or None


def split_shift_block(text: str) -> Tuple[str, Optional[Dict[str, float]]]:
    """Strip a trailing `SHIFT: {...}` line from a reply.

    Returns the cleaned text and the parsed shift. A block that does not
    parse leaves the text untouched and yields no shift.
    """
    match = SHIFT_PATTERN.search(text)
    if not match:
        return text, None
    try:
        raw = json.loads(match.group(1))
    except json.JSONDecodeError:
        logger.warning("Unparseable SHIFT block in reply")
        return text, None
    return text[: match.start()].strip(), coerce_shift(raw)


class ReasoningClient:
    """Talks to the think/reflect endpoints over HTTP."""

    def __init__(
        self,
        base_url: str,
        think_path: str = "/api/mind/think",
        reflect_path: str = "/api/mind/reflect",
        api_token: Optional[str] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not base_url:
            raise ValueError("Reasoning service base_url must be configured")
        self.base_url = base_url.rstrip("/")
        self.think_path = think_path
        self.reflect_path = reflect_path
        self.api_token = api_token
        self.timeout = timeout
        self._http = session or requests

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            resp = self._http.post(url, headers=self._headers(), json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ReasoningError(f"POST {path} failed: {exc}") from exc
        if not 200 <= resp.status_code < 300:
            raise ReasoningError(f"POST {path} returned {resp.status_code}", status_code=resp.status_code)
        try:
            data = resp.json()
        except ValueError as exc:
            raise ReasoningError(f"POST {path} returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise ReasoningError(f"POST {path} returned {type(data).__name__}, expected object")
        return data

    def think(self, request: ThinkRequest) -> ThinkResponse:
        data = self._post(self.think_path, request.model_dump(exclude_none=True))
        text = data.get("text")
        if not isinstance(text, str):
            raise ReasoningError("Think response has no text")
        shift = coerce_shift(data.get("emotionShift"))
        if shift is None and "emotionShift" not in data:
            text, shift = split_shift_block(text)
        return ThinkResponse(text=text, emotionShift=shift)

    def reflect(self, request: ReflectRequest) -> ReflectResponse:
        data = self._post(self.reflect_path, request.model_dump(exclude_none=True))
        try:
            return ReflectResponse.model_validate(data)
        except ValidationError as exc:
            raise ReasoningError(f"Malformed reflect response: {exc}") from exc


def get_reasoning_client(**overrides: Any) -> ReasoningClient:
    cfg = get_reasoning_config()
    params = {
        "base_url": cfg["base_url"],
        "think_path": cfg.get("think_path", "/api/mind/think"),
        "reflect_path": cfg.get("reflect_path", "/api/mind/reflect"),
        "api_token": cfg.get("api_token"),
        "timeout": cfg.get("timeout", 30),
    }
    params.update({k: v for k, v in overrides.items() if v is not None})
    return ReasoningClient(**params)
