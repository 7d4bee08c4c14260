"""Client for the prediction gateway, plus the image-to-vector conversion it needs."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Tuple

import numpy as np
import requests
from PIL import Image

from mqgw.serving.schemas import IMAGE_SIZE, PredictResponse
from mqgw.utils.logging import get_logger

LOG = get_logger(__name__)

IMAGE_SIDE = 28


class GatewayClientError(RuntimeError):
    pass


def load_image_vector(path: str | Path) -> np.ndarray:
    """Read a 28x28 image as a flat, row-major vector of grayscale values in [0, 1]."""
    with Image.open(path) as img:
        width, height = img.size
        if (width, height) != (IMAGE_SIDE, IMAGE_SIDE):
            raise ValueError(f"image must be {IMAGE_SIDE}x{IMAGE_SIDE} pixels, got {width}x{height}")
        gray = np.asarray(img.convert("L"), dtype=np.float32)
    return (gray / 255.0).reshape(-1)


class GatewayClient:
    def __init__(self, url: str, timeout: float = 10.0) -> None:
        self.url = url.rstrip("/")
        self.timeout = timeout

    def predict(self, image: np.ndarray) -> PredictResponse:
        vector = np.asarray(image, dtype=np.float32).reshape(-1)
        if vector.size != IMAGE_SIZE:
            raise ValueError(f"Image data must have a length of {IMAGE_SIZE}, got {vector.size}")
        payload: Dict[str, Any] = {"image": vector.astype(float).tolist()}
        try:
            resp = requests.post(f"{self.url}/predict", json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            raise GatewayClientError(f"request failed: {exc}") from exc
        if resp.status_code != 200:
            raise GatewayClientError(f"server returned error status {resp.status_code}: {resp.text}")
        return PredictResponse.model_validate(resp.json())

    def predict_file(self, path: str | Path) -> PredictResponse:
        return self.predict(load_image_vector(path))

    def health(self) -> Tuple[int, Dict[str, Any]]:
        resp = requests.get(f"{self.url}/health", timeout=self.timeout)
        return resp.status_code, resp.json()
