"""Request id lookup for endpoints and error handlers.

`ObservabilityMiddleware` stores the id on ``request.state`` and echoes it in
the ``X-Request-Id`` response header; outside a request the bound logging
context is consulted instead.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from timepass.obs import logging as obs_logging

REQUEST_ID_ATTR = "request_id"
REQUEST_ID_HEADER = "X-Request-Id"


def get_request_id(request: Optional[Request] = None, default: str = "unknown") -> str:
    if request is not None:
        rid = getattr(request.state, REQUEST_ID_ATTR, None)
        if rid:
            return str(rid)
    return obs_logging.current_request_id() or default
