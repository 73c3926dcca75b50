"""Cloudinary unsigned upload client."""

from pathlib import Path
from typing import Any, Dict, Optional

import requests
from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from perfume_scraper.config_loader import get_cloudinary_config, require_setting


CLOUDINARY_UPLOAD_URL = "https://api.cloudinary.com/v1_1/{cloud_name}/image/upload"


class UploadHttpError(Exception):
    """Raised when Cloudinary answers with a non-2xx status."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Cloudinary HTTP {status_code}: {body}")


class CloudinaryUploader:
    """Upload local images with an unsigned upload preset."""

    def __init__(
        self,
        cloud_name: str,
        upload_preset: str,
        folder: str = "belle-parfumerie/perfumes",
        timeout: float = 60,
        session: Optional[requests.Session] = None,
    ):
        self.cloud_name = cloud_name
        self.upload_preset = upload_preset
        self.folder = folder
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "CloudinaryUploader":
        """Build the uploader, failing fast on missing account settings."""
        cfg = get_cloudinary_config(config)
        return cls(
            cloud_name=require_setting(cfg.get("cloud_name"), "NEXT_PUBLIC_CLOUDINARY_CLOUD_NAME"),
            upload_preset=require_setting(cfg.get("upload_preset"), "NEXT_PUBLIC_CLOUDINARY_UPLOAD_PRESET"),
            folder=cfg.get("folder", "belle-parfumerie/perfumes"),
            timeout=float(config.get("publishing", {}).get("upload_timeout", 60)),
        )

    @property
    def endpoint(self) -> str:
        return CLOUDINARY_UPLOAD_URL.format(cloud_name=self.cloud_name)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
        reraise=True,
    )
    def upload(self, file_path, public_id: str) -> str:
        """Upload file_path under folder/public_id and return its secure URL."""
        path = Path(file_path)
        with open(path, "rb") as fh:
            response = self.session.post(
                self.endpoint,
                data={
                    "upload_preset": self.upload_preset,
                    "folder": self.folder,
                    "public_id": public_id,
                },
                files={"file": (f"{public_id}.jpg", fh, "image/jpeg")},
                timeout=self.timeout,
            )

        if not 200 <= response.status_code < 300:
            raise UploadHttpError(response.status_code, response.text)

        secure_url = response.json().get("secure_url")
        if not secure_url:
            raise UploadHttpError(response.status_code, f"missing secure_url in response: {response.text}")
        logger.debug(f"Cloudinary upload {public_id}: {secure_url}")
        return secure_url
