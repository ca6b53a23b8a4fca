from __future__ import annotations

import base64
import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from shared.contracts.models import PrescriptionFormData


logger = logging.getLogger(__name__)

TEXT_ENDPOINT = "/generate/textinput"
IMAGE_ENDPOINT = "/generate/image"


class ExtractionError(Exception):
    """The extraction service was unreachable or returned an unusable answer."""


class PrescriptionExtractionClient:
    """Client for the external text/image -> prescription translator.

    The service is opaque; its answer is only trusted once it validates as
    :class:`PrescriptionFormData`.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._client = httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "PrescriptionExtractionClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def extract_from_text(self, text: str) -> PrescriptionFormData:
        if not text or not text.strip():
            raise ValueError("text is required")
        return self._extract(TEXT_ENDPOINT, {"data": text})

    def extract_from_image(self, image: bytes) -> PrescriptionFormData:
        if not image:
            raise ValueError("image is required")
        encoded = base64.b64encode(image).decode("ascii")
        return self._extract(IMAGE_ENDPOINT, {"imageBase64": encoded})

    def _extract(self, path: str, body: dict[str, str]) -> PrescriptionFormData:
        try:
            response = self._client.post(path, json=body)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise ExtractionError(f"Extraction service unreachable: {exc}") from exc
        except ValueError as exc:
            raise ExtractionError("Extraction service returned invalid JSON") from exc

        if isinstance(payload, dict):
            for key in ("prescription", "data"):
                if isinstance(payload.get(key), dict):
                    payload = payload[key]
                    break

        try:
            return PrescriptionFormData.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Extraction answer did not validate: %s", exc.errors())
            raise ExtractionError("Extraction service returned an incomplete prescription") from exc
