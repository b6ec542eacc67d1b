"""
Image upload relay to the Cloudinary upload API
"""

import base64
import hashlib
import logging
import time
from typing import Dict, Any

import httpx

from supportdesk import config

logger = logging.getLogger(__name__)


class UploadError(Exception):
    pass


def to_data_uri(content: bytes, content_type: str) -> str:
    return f"data:{content_type};base64,{base64.b64encode(content).decode('ascii')}"


def sign_params(params: Dict[str, Any], api_secret: str) -> str:
    """Cloudinary signature: sha1 of the sorted ``key=value`` pairs joined by ``&`` plus the secret"""
    to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params))
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


async def upload_image(content: bytes, content_type: str) -> Dict[str, str]:
    if not (config.CLOUDINARY_CLOUD_NAME and config.CLOUDINARY_API_KEY and config.CLOUDINARY_API_SECRET):
        raise UploadError("Cloudinary credentials not configured")

    params = {"folder": config.CLOUDINARY_FOLDER, "timestamp": int(time.time())}
    form = {
        **params,
        "file": to_data_uri(content, content_type),
        "api_key": config.CLOUDINARY_API_KEY,
        "signature": sign_params(params, config.CLOUDINARY_API_SECRET),
    }
    url = f"https://api.cloudinary.com/v1_1/{config.CLOUDINARY_CLOUD_NAME}/image/upload"

    try:
        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.post(url, data=form)
    except httpx.HTTPError as e:
        raise UploadError(f"Image host unreachable: {e}") from e

    if response.status_code != 200:
        raise UploadError(f"Image host error {response.status_code}: {response.text}")

    try:
        result = response.json()
        uploaded = {"url": result["secure_url"], "public_id": result["public_id"]}
    except (ValueError, KeyError, TypeError) as e:
        raise UploadError(f"Unexpected image host response: {response.text[:200]}") from e

    logger.info(f"Uploaded image {uploaded['public_id']}")
    return uploaded
