# image_client.py - Image generation client
# This file calls the image generation API used by the image post-processing step.

import logging
from typing import Any, Dict, Optional

import httpx

from .config import Settings
from .errors import ImageGenerationError

logger = logging.getLogger(__name__)

class ImageClient:
    def __init__(self, base_url: str, api_key: Optional[str] = None, timeout: float = 60.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self.http_client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"), headers=headers, timeout=timeout, transport=transport
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["ImageClient"]:
        if not settings.image_api_url:
            return None
        return cls(settings.image_api_url, settings.image_api_key, settings.image_timeout)

    async def generate(self, prompt: str, style: str = "photographic",
                       aspect_ratio: str = "16:9", quality: str = "high") -> Dict[str, Any]:
        """Generate one image and return its description (image_url, width, height, ...)."""
        payload = {"prompt": prompt, "style": style, "aspect_ratio": aspect_ratio, "quality": quality}
        try:
            response = await self.http_client.post("/api/v1/images/generate", json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            raise ImageGenerationError(f"HTTP {e.response.status_code}: {e.response.text[:200]}")
        except httpx.HTTPError as e:
            raise ImageGenerationError(f"Image API unreachable: {str(e)}")
        except ValueError:
            raise ImageGenerationError("Image API returned a non-JSON body")

        images = body.get("images") if isinstance(body, dict) else None
        if not images or not images[0].get("image_url"):
            raise ImageGenerationError("Image API returned no image")
        logger.info(f"Generated image {images[0]['image_url']}")
        return images[0]

    async def close(self):
        await self.http_client.aclose()
