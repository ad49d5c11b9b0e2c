# --- hexvis_lib/llm.py ---
import json
import logging
import time
from typing import Any, Callable, Optional, Sequence

import requests

from core.log_utils import format_text_for_log
from hexvis_lib.directions import DIRECTIONS
from hexvis_lib.errors import TimeoutError, TransportError, ValidationError
from hexvis_lib.rendering.rasterizer import PNG_DATA_URL_PREFIX

log_llm = logging.getLogger("hexvis.llm")

VISION_TIMEOUT_S = 300  # 5 minutes; vision models on local hardware are slow
VISION_TEMPERATURE = 0.3
CHAT_COMPLETIONS_PATH = "/v1/chat/completions"
# One byte per read: iter_content returns as soon as anything arrives, so the
# deadline is checked even when a server sends its body very slowly.
READ_CHUNK_BYTES = 1


class CancelToken:
    """
    Deadline for a single inference call.

    The clock is injectable so tests can expire a token without waiting.
    """

    def __init__(self, timeout_s: float = VISION_TIMEOUT_S, clock: Callable[[], float] = time.monotonic):
        self.timeout_s = timeout_s
        self._clock = clock
        self._deadline = clock() + timeout_s
        self._cancelled = False

    def remaining(self) -> float:
        return max(0.0, self._deadline - self._clock())

    @property
    def expired(self) -> bool:
        return self._clock() >= self._deadline

    @property
    def cancelled(self) -> bool:
        return self._cancelled or self.expired

    def cancel(self) -> None:
        self._cancelled = True


def to_image_url(image: str) -> str:
    """Passes data URLs through; prefixes raw base64 with the PNG media type."""
    if image.startswith("data:image/"):
        return image
    return PNG_DATA_URL_PREFIX + image


def _validate_request(images: Sequence[Any], base_url: str, model: str) -> None:
    if images is None or len(images) != len(DIRECTIONS):
        count = 0 if images is None else len(images)
        raise ValidationError(
            f"Exactly {len(DIRECTIONS)} images are required (one per edge), got {count}"
        )
    for i, image in enumerate(images, start=1):
        if not isinstance(image, str) or not image:
            raise ValidationError(f"Image {i} must be a non-empty base64 string or data URL")
    if not base_url or not model:
        raise ValidationError("Both the inference endpoint URL and the model are required")


def build_payload(
    images: Sequence[str], model: str, system_prompt: str, user_prompt: str, temperature: float
) -> dict:
    """Chat-completion request body; images keep the order they were given in."""
    content = [{"type": "text", "text": user_prompt}]
    content.extend({"type": "image_url", "image_url": {"url": to_image_url(img)}} for img in images)
    return {
        "model": model,
        "temperature": temperature,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": content},
        ],
    }


def _read_body(response: requests.Response, token: CancelToken, url: str) -> str:
    """
    Drains a streamed response, checking the token between reads.

    The socket timeout only bounds each individual wait, so a server that
    keeps dripping bytes is cut off here once the deadline passes.
    """
    chunks = []
    try:
        for chunk in response.iter_content(chunk_size=READ_CHUNK_BYTES):
            if token.expired:
                token.cancel()
                log_llm.error("Vision response from %s exceeded %gs; closing.", url, token.timeout_s)
                raise TimeoutError(token.timeout_s)
            chunks.append(chunk)
    except requests.exceptions.RequestException as e:
        if token.expired:
            token.cancel()
            raise TimeoutError(token.timeout_s) from e
        raise TransportError(
            f"Connection to {url} failed while reading the response: {e}",
            status_code=response.status_code,
        ) from e
    finally:
        response.close()

    if token.expired:
        token.cancel()
        raise TimeoutError(token.timeout_s)
    # Chat-completion bodies are JSON, which is always UTF-8 on the wire.
    return b"".join(chunks).decode("utf-8", errors="replace")


def _extract_content(data: Any, status_code: int, body: str) -> str:
    """Returns choices[0].message.content; any other body shape is an upstream fault."""

    def malformed(reason: str) -> TransportError:
        return TransportError(
            f"Vision API returned an unexpected body ({reason})",
            status_code=status_code,
            body=body,
        )

    if not isinstance(data, dict):
        raise malformed("not a JSON object")
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        raise malformed("'choices' is not a non-empty list")
    first = choices[0]
    if not isinstance(first, dict) or not isinstance(first.get("message"), dict):
        raise malformed("'choices[0].message' is not an object")
    content = first["message"].get("content")
    if content is None:
        return ""
    if not isinstance(content, str):
        raise malformed("message content is not a string")
    return content


def query_vision_llm(
    images: Sequence[str],
    base_url: str,
    model: str,
    system_prompt: str,
    user_prompt: str,
    temperature: float = VISION_TEMPERATURE,
    token: Optional[CancelToken] = None,
    session: Optional[requests.Session] = None,
) -> str:
    """
    Sends the six edge images and both prompts to an OpenAI-compatible
    chat-completion endpoint and returns the model's answer untouched.

    Args:
        images: Six PNG data URLs or raw base64 strings, in canonical order.
        base_url: Server root, e.g. http://localhost:1234.
        model: The vision model identifier.
        system_prompt: Instruction block sent as the system message.
        user_prompt: Instruction block sent with the images.
        temperature: Sampling temperature.
        token: Deadline for the call; a fresh 5-minute token if omitted.
        session: Optional requests.Session to send through.

    Returns:
        The text of the first choice's message.

    Raises:
        ValidationError: Bad image count or missing URL/model. Nothing is sent.
        TimeoutError: The token expired before, during or while reading the response.
        TransportError: Connection failure, non-2xx status, or a body that is not
            a chat-completion object with a string message content.
    """
    _validate_request(images, base_url, model)
    token = token or CancelToken()
    if token.cancelled:
        raise TimeoutError(token.timeout_s)

    url = f"{base_url.rstrip('/')}{CHAT_COMPLETIONS_PATH}"
    payload = build_payload(images, model, system_prompt, user_prompt, temperature)
    http = session or requests

    log_llm.debug(
        "Querying vision LLM:\n  - Model: %s\n  - URL: %s\n  - Images: %d\n  - System: %s\n  - User: %s",
        model,
        url,
        len(images),
        format_text_for_log(system_prompt),
        format_text_for_log(user_prompt),
    )
    # urllib3 rejects a zero timeout, and a zero budget means we are already late.
    budget = token.remaining()
    if budget <= 0:
        token.cancel()
        raise TimeoutError(token.timeout_s)

    start_time = time.monotonic()
    try:
        response = http.post(url, json=payload, stream=True, timeout=budget)
    except requests.exceptions.Timeout as e:
        token.cancel()
        log_llm.error("Vision request to %s timed out: %s", url, e)
        raise TimeoutError(token.timeout_s) from e
    except requests.exceptions.RequestException as e:
        log_llm.error("Failed to reach vision endpoint at %s: %s", url, e)
        raise TransportError(f"Could not reach vision endpoint at {url}: {e}") from e

    body = _read_body(response, token, url)

    if not response.ok:
        log_llm.error("Vision API returned HTTP %d: %s", response.status_code, body)
        raise TransportError(
            f"Vision API error: {response.status_code} {response.reason}",
            status_code=response.status_code,
            body=body,
        )

    try:
        data = json.loads(body)
    except ValueError as e:
        raise TransportError(
            "Vision API returned a non-JSON body",
            status_code=response.status_code,
            body=body,
        ) from e

    content = _extract_content(data, response.status_code, body)
    log_llm.debug(
        "Vision LLM response received:\n  - Model: %s\n  - Duration: %.2fs\n  - Response: %s",
        model,
        time.monotonic() - start_time,
        format_text_for_log(content),
    )
    return content
