"""
Request validation for the analysis endpoints.

Turns raw JSON bodies into typed request values. Validation is pure:
no I/O, no logging, and nothing is sent to the model until it passes.
"""

import base64
import binascii
import re
from typing import Any, Dict, Optional

from .errors import InvalidInput, Unauthenticated
from .requests import Identity, ObdRequest, QuoteRequest, SymptomRequest, Vehicle

MIN_TEXT_LENGTH = 10
OBD_CODE_PATTERN = re.compile(r"^[PBCU][0-9]{4}$", re.IGNORECASE)
SUPPORTED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")
DEFAULT_IMAGE_TYPE = "image/jpeg"

_DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,(?P<data>.*)$", re.DOTALL)

MAKE_AND_MODEL_REQUIRED = "Please provide your vehicle make and model."


def require_identity(identity: Optional[Identity], message: Optional[str] = None) -> Identity:
    """Return the identity or raise Unauthenticated."""
    if identity is None:
        raise Unauthenticated(message)
    return identity


def _coerce_int(value: Any, field: str) -> Optional[int]:
    """Accept ints, integral floats and numeric strings; None passes through."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise InvalidInput(f"Vehicle {field} must be a number.")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().replace(",", "").isdigit():
        return int(value.strip().replace(",", ""))
    raise InvalidInput(f"Vehicle {field} must be a number.")


def _clean_str(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip()


def _parse_vehicle(raw: Any, require_year_and_mileage: bool, message: str) -> Vehicle:
    if not isinstance(raw, dict):
        raise InvalidInput(message)

    make = _clean_str(raw.get("make"))
    model = _clean_str(raw.get("model"))
    year = _coerce_int(raw.get("year"), "year")
    mileage = _coerce_int(raw.get("mileage"), "mileage")

    if not make or not model:
        raise InvalidInput(message)
    if require_year_and_mileage and (not year or not mileage):
        raise InvalidInput(message)
    if year is not None and year <= 0:
        raise InvalidInput("Vehicle year must be a positive number.")
    if mileage is not None and mileage < 0:
        raise InvalidInput("Vehicle mileage cannot be negative.")

    return Vehicle(make=make, model=model, year=year, mileage=mileage)


def validate_symptom_request(payload: Dict[str, Any]) -> SymptomRequest:
    """Validate a symptom analysis body.

    Requires a complete vehicle (year, make, model, mileage) and a
    description of at least 10 characters after trimming.

    Raises:
        InvalidInput: If any field is missing or malformed
    """
    vehicle_raw = payload.get("vehicle")
    description = payload.get("description")

    if not vehicle_raw or not description:
        raise InvalidInput("Vehicle information and symptom description are required.")

    vehicle = _parse_vehicle(
        vehicle_raw,
        require_year_and_mileage=True,
        message="Please provide complete vehicle details (year, make, model, mileage).",
    )

    if not isinstance(description, str) or len(description.strip()) < MIN_TEXT_LENGTH:
        raise InvalidInput(
            "Please provide a more detailed description of the symptoms "
            f"(at least {MIN_TEXT_LENGTH} characters)."
        )

    return SymptomRequest(vehicle=vehicle, description=description.strip())


def validate_obd_request(payload: Dict[str, Any]) -> ObdRequest:
    """Validate an OBD-II lookup body.

    The code must match exactly, surrounding whitespace included, and is
    normalized to upper case.
    """
    code = payload.get("code")
    if not isinstance(code, str) or not OBD_CODE_PATTERN.fullmatch(code):
        raise InvalidInput("Please enter a valid OBD-II code (e.g. P0420).")

    vehicle = _parse_vehicle(
        payload.get("vehicle"),
        require_year_and_mileage=False,
        message=MAKE_AND_MODEL_REQUIRED,
    )
    return ObdRequest(vehicle=vehicle, code=code.upper())


def _split_image(image: str, mime_type: Any):
    """Accept raw base64 or a data URL; return (base64 data, mime type)."""
    match = _DATA_URL_PATTERN.match(image.strip())
    if match:
        data = match.group("data")
        mime = mime_type or match.group("mime")
    else:
        data = image.strip()
        mime = mime_type

    if not mime:
        mime = DEFAULT_IMAGE_TYPE
    if not isinstance(mime, str) or mime.lower() not in SUPPORTED_IMAGE_TYPES:
        raise InvalidInput(
            "Unsupported image type. Please upload a JPEG, PNG, GIF or WebP photo."
        )
    mime = mime.lower()

    try:
        base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidInput("The uploaded image could not be read. Please try another photo.")

    return data, mime


def validate_quote_request(payload: Dict[str, Any]) -> QuoteRequest:
    """Validate a quote check body.

    ``type`` selects the path: ``image`` needs a base64 ``image`` (and
    optionally ``mimeType``), ``text`` needs ``quoteText`` of at least
    10 characters after trimming.
    """
    vehicle = _parse_vehicle(
        payload.get("vehicle"),
        require_year_and_mileage=False,
        message=MAKE_AND_MODEL_REQUIRED,
    )

    input_type = payload.get("type")
    image = payload.get("image")
    quote_text = payload.get("quoteText")

    if input_type == "image" and isinstance(image, str) and image.strip():
        data, mime = _split_image(image, payload.get("mimeType"))
        return QuoteRequest(
            vehicle=vehicle,
            input_type="image",
            image_data=data,
            mime_type=mime,
        )

    if input_type == "text" and isinstance(quote_text, str) and quote_text:
        if len(quote_text.strip()) < MIN_TEXT_LENGTH:
            raise InvalidInput("Please provide more detail about the quote.")
        return QuoteRequest(
            vehicle=vehicle,
            input_type="text",
            quote_text=quote_text.strip(),
        )

    raise InvalidInput("Please provide a quote (text or image).")
