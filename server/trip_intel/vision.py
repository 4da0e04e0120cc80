from __future__ import annotations

import asyncio
import hashlib
import io
import logging
import mimetypes
import time
from typing import Any, List, Optional, Protocol, Tuple

import aiohttp
import google.generativeai as genai
from PIL import Image, UnidentifiedImageError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .config import Settings
from .errors import ConfigError, DocumentFetchError
from .logging_utils import log_event
from .models import DocumentImage
from .pdf_processor import PDFProcessor

logger = logging.getLogger("tripintel.vision")

SYSTEM_INSTRUCTION = (
    "You read travel documents for a trip-planning app. "
    "Follow the output format in the prompt exactly. Return no commentary."
)


class VisionModel(Protocol):
    async def generate(self, prompt: str, image: DocumentImage, *, json_output: bool = False) -> str: ...


class GeminiVisionModel:
    """Gemini-backed `generate(prompt, image) -> text` capability."""

    def __init__(self, api_key: str, model: str, *, max_output_tokens: int = 8192) -> None:
        if not api_key:
            raise ConfigError("GOOGLE_API_KEY is required for the vision model")
        genai.configure(api_key=api_key)
        self.model_name = model
        self._model = genai.GenerativeModel(model, system_instruction=SYSTEM_INSTRUCTION)
        self._max_output_tokens = max_output_tokens
        # Classification and extraction see the same document; render it once
        self._rendered: Optional[Tuple[str, List[Any]]] = None

    async def _image_parts(self, image: DocumentImage) -> List[Any]:
        digest = hashlib.sha1(image.data).hexdigest()
        if self._rendered is not None and self._rendered[0] == digest:
            return list(self._rendered[1])

        if image.is_pdf:
            parts: List[Any] = list(await PDFProcessor.convert(image.data))
        else:
            try:
                img = Image.open(io.BytesIO(image.data))
                img.load()
            except (UnidentifiedImageError, OSError) as e:
                raise DocumentFetchError(f"Unreadable image '{image.filename}': {e}") from e
            parts = [img]

        self._rendered = (digest, parts)
        return list(parts)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(Exception),
        reraise=True,
    )
    async def _call(self, content: List[Any], json_output: bool) -> Any:
        config = genai.types.GenerationConfig(
            temperature=0,
            max_output_tokens=self._max_output_tokens,
            response_mime_type="application/json" if json_output else "text/plain",
        )
        return await self._model.generate_content_async(content, generation_config=config)

    async def generate(self, prompt: str, image: DocumentImage, *, json_output: bool = False) -> str:
        parts = await self._image_parts(image)

        t0 = time.time()
        log_event(logger, "gemini_call_started", model=self.model_name, pages=len(parts), json_output=json_output)
        response = await self._call([prompt, *parts], json_output)

        usage = getattr(response, "usage_metadata", None)
        log_event(
            logger,
            "gemini_call_finished",
            model=self.model_name,
            duration_ms=int((time.time() - t0) * 1000),
            tokens_total=getattr(usage, "total_token_count", 0) if usage else 0,
            tokens_in=getattr(usage, "prompt_token_count", 0) if usage else 0,
            tokens_out=getattr(usage, "candidates_token_count", 0) if usage else 0,
        )
        try:
            return response.text or ""
        except ValueError:
            # Raised by the SDK when the candidate was blocked or empty
            log_event(logger, "gemini_empty_response", level=logging.WARNING, model=self.model_name)
            return ""


def build_vision_model(settings: Settings) -> Optional[GeminiVisionModel]:
    """None when no Gemini credential is configured; callers fall back."""
    if not settings.vision_enabled:
        log_event(logger, "vision_model_disabled", level=logging.WARNING, reason="GOOGLE_API_KEY missing")
        return None
    return GeminiVisionModel(
        settings.google_api_key or "",
        settings.model,
        max_output_tokens=settings.max_output_tokens,
    )


def guess_mime_type(filename: Optional[str], header_value: Optional[str] = None) -> str:
    if header_value:
        mime = header_value.split(";")[0].strip().lower()
        if mime and mime != "application/octet-stream":
            return mime
    guessed, _ = mimetypes.guess_type(filename or "")
    return guessed or "application/octet-stream"


class DocumentFetcher:
    """Downloads the uploaded document behind a storage download URL."""

    def __init__(self, timeout: float = 30.0) -> None:
        self._timeout = timeout

    async def fetch(self, url: str, filename: str = "") -> DocumentImage:
        timeout = aiohttp.ClientTimeout(total=self._timeout, connect=5)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as r:
                    if r.status != 200:
                        raise DocumentFetchError(f"Download failed: {r.status}")
                    data = await r.read()
                    mime = guess_mime_type(filename, r.headers.get("Content-Type"))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DocumentFetchError(f"Download failed: {e!r}") from e

        if not data:
            raise DocumentFetchError("Downloaded document is empty")

        log_event(logger, "document_fetched", size=len(data), mime_type=mime, field_filename=filename)
        return DocumentImage(data=data, mime_type=mime, filename=filename)
