from __future__ import annotations

import hmac
import logging
from typing import Annotated

from fastapi import Header, HTTPException, Request

from home_api.settings import Settings, get_settings

BEARER_PREFIX = "bearer "
logger = logging.getLogger(__name__)


def _reject_foreign_origin(request: Request, settings: Settings) -> None:
	origin = request.headers.get("origin")
	if origin is None or settings.is_allowed_origin(origin):
		return

	logger.warning("Rejected %s %s from origin %s.", request.method, request.url.path, origin)
	raise HTTPException(status_code=403, detail="Origin not allowed.")


def _presented_token(x_api_key: str | None, authorization: str | None) -> str | None:
	if x_api_key is not None:
		return x_api_key.strip()

	if authorization is not None and authorization.lower().startswith(BEARER_PREFIX):
		return authorization[len(BEARER_PREFIX):].strip()

	return None


def verify_api_token(
	request: Request,
	x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
	authorization: Annotated[str | None, Header()] = None,
) -> None:
	"""Gate the investment routes behind the optional shared token.

	Home Assistant REST sensors send ``Authorization: Bearer <token>``; other
	callers may use ``X-API-Key``. Without a configured token only the origin
	check applies.
	"""
	settings = get_settings()
	_reject_foreign_origin(request, settings)

	expected_token = settings.api_token_value()
	if expected_token is None:
		return

	presented_token = _presented_token(x_api_key, authorization)
	if presented_token is None:
		raise HTTPException(status_code=401, detail="Missing API token.")

	if not hmac.compare_digest(presented_token.encode(), expected_token.encode()):
		raise HTTPException(status_code=401, detail="Invalid API token.")
