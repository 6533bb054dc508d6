"""Pinata IPFS client for pinning generated images and their metadata."""

import json
import re
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
import structlog

from promptmint.services.exceptions import (
    IPFSAuthError,
    IPFSNetworkError,
    IPFSRateLimitError,
    IPFSValidationError,
)

logger = structlog.get_logger(__name__)

UPLOAD_TIMEOUT_SECONDS = 30.0


def _slug(prompt: str, limit: int = 40) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", prompt.lower()).strip("-")
    return slug[:limit].rstrip("-") or "untitled"


def _raise_for_pinata_status(response: httpx.Response, endpoint: str) -> None:
    if response.status_code == 429:
        raise IPFSRateLimitError(f"Rate limit exceeded: {response.text}")
    elif response.status_code in (500, 502, 503):
        raise IPFSNetworkError(f"Service unavailable ({response.status_code}): {response.text}")
    elif response.status_code == 401:
        raise IPFSAuthError(
            "Unauthorized: Invalid API key. Check PINATA_JWT configuration in .env file."
        )
    elif response.status_code == 403:
        raise IPFSAuthError(
            f"Forbidden: Access denied. Check PINATA_JWT permissions (requires {endpoint} access)."
        )
    elif response.status_code == 400:
        raise IPFSValidationError(f"Bad request: {response.text}")

    response.raise_for_status()


class PinataClient:
    """IPFS upload client using Pinata pinning service."""

    def __init__(
        self,
        jwt_token: str,
        gateway_domain: str = "gateway.pinata.cloud",
        base_url: str = "https://api.pinata.cloud",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Pinata client.

        Args:
            jwt_token: Pinata API JWT token (from PINATA_JWT env var)
            gateway_domain: Gateway domain for preview URLs (default: public gateway)
            base_url: Pinata API root
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.jwt_token = jwt_token
        self.gateway_domain = gateway_domain
        self.base_url = base_url
        self.transport = transport
        self.headers = {
            "Authorization": f"Bearer {jwt_token}",
            "Content-Type": "application/json",
        }

    async def download(self, image_url: str) -> bytes:
        """Fetch generated image bytes from the provider CDN."""
        try:
            async with httpx.AsyncClient(
                timeout=UPLOAD_TIMEOUT_SECONDS, transport=self.transport
            ) as client:
                response = await client.get(image_url)
                response.raise_for_status()
                return response.content
        except httpx.TimeoutException as e:
            raise IPFSNetworkError(f"Image download timeout: {str(e)}")
        except httpx.HTTPError as e:
            raise IPFSNetworkError(f"Failed to download image: {str(e)}")

    async def upload_image(self, image_data: bytes, prompt: str) -> str:
        """Upload image bytes to IPFS via Pinata.

        Args:
            image_data: PNG bytes of the generated image
            prompt: Prompt the image was generated from (used for the pin name)

        Returns:
            IPFS CID (CIDv1, e.g. "bafkrei...")

        Raises:
            IPFSNetworkError: Network timeout, service unavailable (5xx)
            IPFSRateLimitError: Rate limit (429)
            IPFSAuthError: Invalid API key (401), forbidden (403)
            IPFSValidationError: Bad request (400)
        """
        filename = f"promptmint-{_slug(prompt)}.png"
        pinata_metadata = {
            "name": filename,
            "keyvalues": {
                "uploadedBy": "PromptMint",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        }

        headers = self.headers.copy()
        # Remove Content-Type for multipart upload
        del headers["Content-Type"]

        try:
            async with httpx.AsyncClient(
                timeout=UPLOAD_TIMEOUT_SECONDS, transport=self.transport
            ) as client:
                response = await client.post(
                    f"{self.base_url}/pinning/pinFileToIPFS",
                    headers=headers,
                    files={"file": (filename, image_data, "image/png")},
                    data={
                        "pinataOptions": '{"cidVersion": 1}',
                        "pinataMetadata": json.dumps(pinata_metadata),
                    },
                )
                _raise_for_pinata_status(response, "pinFileToIPFS")
                cid = response.json()["IpfsHash"]
        except httpx.TimeoutException as e:
            raise IPFSNetworkError(f"Request timeout after {UPLOAD_TIMEOUT_SECONDS:.0f}s: {str(e)}")
        except httpx.HTTPError as e:
            raise IPFSNetworkError(f"Network error: {str(e)}")

        logger.info("ipfs.image_pinned", cid=cid, filename=filename, size_bytes=len(image_data))
        return cid

    async def upload_metadata(self, metadata: dict[str, Any], prompt: str) -> str:
        """Upload ERC-721 metadata JSON to IPFS via Pinata.

        Args:
            metadata: ERC721 metadata dictionary (name, description, image, attributes)
            prompt: Prompt the token was generated from (used for the pin name)

        Returns:
            IPFS CID (CIDv1)
        """
        metadata_filename = f"promptmint-{_slug(prompt)}-metadata.json"
        payload = {
            "pinataContent": metadata,
            "pinataOptions": {"cidVersion": 1},
            "pinataMetadata": {
                "name": metadata_filename,
                "keyvalues": {"uploadedBy": "PromptMint"},
            },
        }

        try:
            async with httpx.AsyncClient(
                timeout=UPLOAD_TIMEOUT_SECONDS, transport=self.transport
            ) as client:
                response = await client.post(
                    f"{self.base_url}/pinning/pinJSONToIPFS",
                    headers=self.headers,
                    json=payload,
                )
                _raise_for_pinata_status(response, "pinJSONToIPFS")
                cid = response.json()["IpfsHash"]
        except httpx.TimeoutException as e:
            raise IPFSNetworkError(f"Request timeout after {UPLOAD_TIMEOUT_SECONDS:.0f}s: {str(e)}")
        except httpx.HTTPError as e:
            raise IPFSNetworkError(f"Network error: {str(e)}")

        logger.info("ipfs.metadata_pinned", cid=cid, filename=metadata_filename)
        return cid

    def get_gateway_url(self, cid: str) -> str:
        """Convert CID to gateway URL for browser access.

        Returns:
            Gateway URL (e.g., "https://gateway.pinata.cloud/ipfs/<CID>")
        """
        return f"https://{self.gateway_domain}/ipfs/{cid}"
