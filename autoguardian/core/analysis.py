"""
Structured-inference endpoint pipeline.

Every analysis endpoint runs the same linear chain:

1. Validate - identity present, body well-formed
2. Gate - free-tier quota (only for metered endpoints)
3. Compose - render the fixed prompt template
4. Infer - one synchronous model call
5. Parse - strip code fences, parse JSON
6. Persist - best-effort insert of one usage record

Validation and quota failures stop the chain before the model is called.
A persistence failure is logged and never changes the prepared response.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .errors import InvalidInput
from .parser import parse_model_json
from .prompts import ComposedPrompt
from .requests import Identity
from .usage_gate import UsageDecision, UsageGate
from .validation import require_identity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisEndpoint:
    """Configuration of one analysis endpoint.

    The three endpoints differ only in these fields; the pipeline itself
    lives in AnalysisService.
    """
    name: str
    sign_in_message: str
    validate: Callable[[Dict[str, Any]], Any]
    compose: Callable[[Any], ComposedPrompt]
    build_record: Callable[[Identity, Any, Dict[str, Any]], Any]
    result_key: str = "result"
    max_tokens: int = 2048
    quota_limited: bool = False


@dataclass(frozen=True)
class AnalysisOutcome:
    """Successful result of one pipeline run."""
    endpoint: AnalysisEndpoint
    result: Dict[str, Any]
    usage: Optional[UsageDecision] = None

    @property
    def remaining_consultations(self) -> Optional[int]:
        return self.usage.remaining_after_request if self.usage else None

    def to_body(self) -> Dict[str, Any]:
        """JSON body returned to the caller."""
        body: Dict[str, Any] = {"success": True, self.endpoint.result_key: self.result}
        if self.endpoint.quota_limited:
            body["remainingConsultations"] = self.remaining_consultations
        return body


class AnalysisService:
    """Runs analysis endpoints against injected collaborators."""

    def __init__(self, inference_client, repository, usage_gate: UsageGate):
        self.inference_client = inference_client
        self.repository = repository
        self.usage_gate = usage_gate

    def run(
        self,
        endpoint: AnalysisEndpoint,
        identity: Optional[Identity],
        payload: Any,
    ) -> AnalysisOutcome:
        """Run the full pipeline for one request.

        Args:
            endpoint: Which analysis to perform
            identity: Authenticated owner, or None
            payload: Decoded JSON request body

        Returns:
            AnalysisOutcome with the parsed model result

        Raises:
            AutoGuardianError: Any terminal failure; persistence errors
                are never raised
        """
        identity = require_identity(identity, endpoint.sign_in_message)
        if not isinstance(payload, dict):
            raise InvalidInput("Request body must be a JSON object.")

        request = endpoint.validate(payload)

        usage = None
        if endpoint.quota_limited:
            usage = self.usage_gate.check(identity)

        prompt = endpoint.compose(request)
        raw_text = self.inference_client.complete(prompt, endpoint.max_tokens)
        result = parse_model_json(raw_text)

        outcome = AnalysisOutcome(endpoint=endpoint, result=result, usage=usage)
        self._persist(endpoint, identity, request, result)

        logger.info("Completed %s analysis for %s", endpoint.name, identity.user_id)
        return outcome

    def _persist(
        self,
        endpoint: AnalysisEndpoint,
        identity: Identity,
        request: Any,
        result: Dict[str, Any],
    ) -> None:
        try:
            record = endpoint.build_record(identity, request, result)
            self.repository.insert_record(record)
        except Exception as e:
            logger.error(
                "Error saving %s record for %s: %s", endpoint.name, identity.user_id, e
            )
