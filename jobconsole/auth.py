"""Operator key check for the console routes that change job state."""
import secrets
from typing import Optional

import structlog
from fastapi import HTTPException, Request, Security
from fastapi.security.api_key import APIKeyHeader

from . import config
from . import metrics

logger = structlog.get_logger(__name__)

OPERATOR_KEY_HEADER = "X-API-Key"

operator_key = APIKeyHeader(
    name=OPERATOR_KEY_HEADER,
    auto_error=False,
    description="Operator key needed to create, cancel, retry or delete jobs",
)


def key_matches(presented: str, expected: str) -> bool:
    return secrets.compare_digest(presented.encode(), expected.encode())


async def require_operator(request: Request, presented: Optional[str] = Security(operator_key)) -> bool:
    if presented and key_matches(presented, config.API_KEY):
        return True
    reason = "invalid" if presented else "missing"
    metrics.mutations_rejected_total.labels(reason).inc()
    logger.warning("mutation_rejected", reason=reason, method=request.method, path=request.url.path)
    if reason == "missing":
        raise HTTPException(
            status_code=401,
            detail=f"Send the operator key in the {OPERATOR_KEY_HEADER} header to change jobs",
            headers={"WWW-Authenticate": "ApiKey"},
        )
    raise HTTPException(status_code=403, detail="Operator key not recognised")
