"""
Request-scoped dependencies.

Collaborators live on ``app.state`` (set up once by ``create_app``); the
authenticated identity is resolved per request and passed to handlers as
an explicit argument.
"""

from typing import Optional

from fastapi import Request

from autoguardian.core.requests import Identity

BEARER_PREFIX = "bearer "


def get_identity(request: Request) -> Optional[Identity]:
    """Resolve ``Authorization: Bearer <token>`` to an identity, or None."""
    header = request.headers.get("authorization", "")
    if not header.lower().startswith(BEARER_PREFIX):
        return None
    token = header[len(BEARER_PREFIX):].strip()
    return request.app.state.repository.get_identity_by_token(token)


def get_analysis_service(request: Request):
    return request.app.state.analysis_service


def get_repository(request: Request):
    return request.app.state.repository


def get_billing(request: Request):
    return request.app.state.billing
