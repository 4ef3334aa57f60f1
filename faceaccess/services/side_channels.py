"""
Best-effort collaborators of the validation pipeline: face image storage and
the natural-language action suggestion. Failures come back as warnings on a
SideChannelResult instead of exceptions.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from ..core.config import settings
from ..core.minio_client import MinIOClient, minio_client

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SideChannelResult:
    value: Optional[str] = None
    warning: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.warning is None

    @classmethod
    def success(cls, value: Optional[str]) -> "SideChannelResult":
        return cls(value=value)

    @classmethod
    def failure(cls, warning: str) -> "SideChannelResult":
        return cls(value=None, warning=warning)


def strip_data_url(image_data: str) -> str:
    """Drop a ``data:image/...;base64,`` prefix if present"""
    if image_data.startswith("data:") and "," in image_data:
        return image_data.split(",", 1)[1]
    return image_data


def decode_image_data(image_data: str) -> bytes:
    try:
        return base64.b64decode(strip_data_url(image_data), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid image data: {e}") from e


class FaceImageUploader:
    """Stores face captures as ``<id>.jpeg`` so a new capture replaces the old one"""

    def __init__(self, client: Optional[MinIOClient] = None):
        self.client = client or minio_client

    async def upload(self, owner_id: str, image_data: str, is_observed_user: bool) -> SideChannelResult:
        kind = "observed user" if is_observed_user else "user"
        try:
            data = decode_image_data(image_data)
        except ValueError as e:
            return SideChannelResult.failure(f"Failed to decode image for {kind} {owner_id}: {e}")

        object_name = f"{owner_id}.jpeg"

        def _upload_sync():
            return self.client.upload_image(
                bucket=self.client.bucket_faces,
                object_name=object_name,
                data=data,
                content_type="image/jpeg",
            )

        try:
            loop = asyncio.get_running_loop()
            url = await loop.run_in_executor(None, _upload_sync)
        except Exception as e:
            return SideChannelResult.failure(f"Failed to upload image for {kind} {owner_id}: {e}")

        logger.info(f"Uploaded face image for {kind} {owner_id}: {url}")
        return SideChannelResult.success(url)


NEW_OBSERVED_PROMPT = (
    "A new observed user has been detected. Based on the provided face image, what immediate "
    "action or assessment would you suggest for this user in an access control system? Keep it "
    "concise (max 15 words) and action-oriented. Examples: 'Review for permanent access', "
    "'Monitor closely for unusual activity', 'Categorize as visitor'."
)


def build_existing_observed_prompt(
    user_id: Optional[str],
    status_name: Optional[str],
    expires_at: Optional[str],
    zone_names: List[str],
) -> str:
    return (
        f"An existing observed user (ID: {user_id or 'N/A'}) has been detected. "
        f"Their current status is '{status_name or 'unknown'}'. "
        f"Their access is set to expire on '{expires_at or 'N/A'}'. "
        f"They have previously accessed zones: {', '.join(zone_names) or 'None'}. "
        "Based on their face image and this context, what AI action would you suggest for this "
        "user in an access control system? Keep it concise (max 20 words) and action-oriented. "
        "Examples: 'Extend temporal access', 'Block access immediately', 'Re-evaluate status'."
    )


class ActionSuggester:
    """Asks Gemini for a short suggested action about an observed face"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.gemini_api_key
        self.model = model or settings.gemini_model
        self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
        self.timeout = timeout or settings.gemini_timeout_secs
        self.transport = transport

    async def suggest(self, image_data: Optional[str], prompt: str) -> SideChannelResult:
        if not image_data:
            logger.debug("No image data provided for AI suggestion, skipping")
            return SideChannelResult.success(None)
        if not self.api_key:
            return SideChannelResult.failure("GEMINI_API_KEY is not set, AI suggestion skipped.")

        payload: Dict[str, Any] = {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": prompt},
                        {"inlineData": {"mimeType": "image/jpeg", "data": strip_data_url(image_data)}},
                    ],
                }
            ]
        }
        url = f"{self.base_url}/models/{self.model}:generateContent"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, params={"key": self.api_key}, json=payload)
                result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            return SideChannelResult.failure(f"AI suggestion request failed: {e}")

        try:
            suggestion = result["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            error = result.get("error", {}) if isinstance(result, dict) else {}
            detail = error.get("message") if isinstance(error, dict) else None
            return SideChannelResult.failure(
                f"AI did not return a valid suggestion: {detail or response.status_code}"
            )

        if not isinstance(suggestion, str):
            return SideChannelResult.failure(
                f"AI did not return a valid suggestion: unexpected {type(suggestion).__name__} text part"
            )

        suggestion = suggestion.strip()
        logger.info(f"AI suggestion generated: {suggestion}")
        return SideChannelResult.success(suggestion or None)
