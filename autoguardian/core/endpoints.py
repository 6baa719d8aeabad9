"""
The three analysis endpoints: symptom analysis, OBD-II lookup, quote check.
"""

from dataclasses import replace
from typing import Any, Dict, Mapping

from autoguardian.storage.models import ConsultationRecord, ObdLookupRecord, QuoteCheckRecord

from .analysis import AnalysisEndpoint
from .parser import read_field
from .prompts import compose_obd_prompt, compose_quote_prompt, compose_symptom_prompt
from .requests import Identity, ObdRequest, QuoteRequest, SymptomRequest
from .validation import validate_obd_request, validate_quote_request, validate_symptom_request


def _as_text(value: Any):
    return value if isinstance(value, str) else None


def _as_number(value: Any):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def build_consultation_record(
    identity: Identity, request: SymptomRequest, diagnosis: Dict[str, Any]
) -> ConsultationRecord:
    vehicle = request.vehicle
    return ConsultationRecord(
        user_id=identity.user_id,
        result=diagnosis,
        vehicle_year=vehicle.year,
        vehicle_make=vehicle.make,
        vehicle_model=vehicle.model,
        vehicle_mileage=vehicle.mileage,
        description=request.description,
        severity=_as_text(read_field(diagnosis, "urgency", "level")),
    )


def build_obd_record(
    identity: Identity, request: ObdRequest, result: Dict[str, Any]
) -> ObdLookupRecord:
    vehicle = request.vehicle
    return ObdLookupRecord(
        user_id=identity.user_id,
        result=result,
        vehicle_year=vehicle.year,
        vehicle_make=vehicle.make,
        vehicle_model=vehicle.model,
        code=request.code,
        severity=_as_text(read_field(result, "severity")),
    )


def build_quote_record(
    identity: Identity, request: QuoteRequest, result: Dict[str, Any]
) -> QuoteCheckRecord:
    vehicle = request.vehicle
    return QuoteCheckRecord(
        user_id=identity.user_id,
        result=result,
        vehicle_year=vehicle.year,
        vehicle_make=vehicle.make,
        vehicle_model=vehicle.model,
        input_type=request.input_type,
        quote_text=request.quote_text,
        overall_verdict=_as_text(read_field(result, "overallVerdict")),
        total_quoted=_as_number(read_field(result, "totalQuoted")),
    )


SYMPTOM_ANALYSIS = AnalysisEndpoint(
    name="symptom",
    sign_in_message="Please sign in to use the symptom analyzer.",
    validate=validate_symptom_request,
    compose=compose_symptom_prompt,
    build_record=build_consultation_record,
    result_key="diagnosis",
    max_tokens=2048,
    quota_limited=True,
)

OBD_LOOKUP = AnalysisEndpoint(
    name="obd",
    sign_in_message="Please sign in to use the OBD lookup.",
    validate=validate_obd_request,
    compose=compose_obd_prompt,
    build_record=build_obd_record,
    max_tokens=2048,
)

QUOTE_CHECK = AnalysisEndpoint(
    name="quote",
    sign_in_message="Please sign in to use the quote checker.",
    validate=validate_quote_request,
    compose=compose_quote_prompt,
    build_record=build_quote_record,
    max_tokens=3000,
)

DEFAULT_ENDPOINTS = {
    endpoint.name: endpoint for endpoint in (SYMPTOM_ANALYSIS, OBD_LOOKUP, QUOTE_CHECK)
}


def build_endpoints(max_tokens: Mapping[str, int]) -> Dict[str, AnalysisEndpoint]:
    """Endpoints keyed by name, with token limits overridden from config."""
    return {
        name: replace(endpoint, max_tokens=max_tokens.get(name, endpoint.max_tokens))
        for name, endpoint in DEFAULT_ENDPOINTS.items()
    }
