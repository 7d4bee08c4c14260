"""Request/response schemas for the gateway and the broker wire format."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, StrictFloat, field_validator

IMAGE_SIZE = 784
CLASS_COUNT = 10


class PredictRequest(BaseModel):
    image: List[StrictFloat] = Field(..., description="Flattened 28x28 grayscale image, row-major, values in [0, 1]")

    @field_validator("image")
    @classmethod
    def check_image_length(cls, value: List[float]) -> List[float]:
        if len(value) != IMAGE_SIZE:
            raise ValueError(f"Image data must have a length of {IMAGE_SIZE}")
        return [float(v) for v in value]


class PredictResponse(BaseModel):
    digit: int
    probabilities: List[float]

    @field_validator("probabilities")
    @classmethod
    def check_probabilities_length(cls, value: List[float]) -> List[float]:
        if len(value) != CLASS_COUNT:
            raise ValueError(f"Probabilities must have a length of {CLASS_COUNT}")
        return value


class ErrorResponse(BaseModel):
    error: str
    message: str


class HealthResponse(BaseModel):
    status: str
    service: str
    details: Optional[str] = None
