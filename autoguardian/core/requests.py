"""
Typed request values produced by the request validator.

All values are immutable and carry already-normalized fields.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Identity:
    """Authenticated owner of a request."""
    user_id: str
    email: Optional[str] = None


@dataclass(frozen=True)
class Vehicle:
    """Vehicle supplied with each request."""
    make: str
    model: str
    year: Optional[int] = None
    mileage: Optional[int] = None

    @property
    def label(self) -> str:
        """Year, make and model on one line, e.g. ``2019 Toyota Camry``."""
        parts = [str(self.year)] if self.year is not None else []
        parts.extend([self.make, self.model])
        return " ".join(parts)


@dataclass(frozen=True)
class SymptomRequest:
    vehicle: Vehicle
    description: str


@dataclass(frozen=True)
class ObdRequest:
    vehicle: Vehicle
    code: str


@dataclass(frozen=True)
class QuoteRequest:
    """Repair quote submitted as text or as a base64-encoded photo."""
    vehicle: Vehicle
    input_type: str
    quote_text: Optional[str] = None
    image_data: Optional[str] = None
    mime_type: Optional[str] = None

    @property
    def is_image(self) -> bool:
        return self.input_type == "image"
