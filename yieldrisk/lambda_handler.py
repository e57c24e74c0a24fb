"""
AWS Lambda handlers: market metrics, cache administration, performance stats.

PURPOSE:
- Entry points behind API Gateway. Each one normalises the proxy event, calls the
  MarketMetricsService, validates the success envelope against its schema and
  returns an HTTP-style response.

CONTEXT:
- One MarketMetricsService (and so one MetricsCache) is built per warm Lambda
  container on first use; set_service() swaps it, mainly for tests.
- Logs are JSON with request_id and correlation_id bound for CloudWatch queries.

STATUS CODES:
- 200 success, 400 missing/malformed input, 405 wrong method, 500 anything else.
"""

from __future__ import annotations
import json
import time
import traceback
from typing import Any, Dict, Optional

from jsonschema import ValidationError

from yieldrisk.api_io import (
    error_envelope,
    error_to_string,
    now_ms,
    ok_envelope,
    validate_cache_action,
    validate_cache_response,
    validate_metrics_response,
)
from yieldrisk.cache.metrics_cache import MetricsCache
from yieldrisk.errors import InvalidInputError
from yieldrisk.logging_setup import configure_logging
from yieldrisk.market_metrics_service import MarketMetricsService, generate_request_id
from yieldrisk.observability import init_observability
from yieldrisk.providers.loader import load_provider


log = configure_logging()
init_observability()

_service: Optional[MarketMetricsService] = None


def get_service() -> MarketMetricsService:
    """Return the container-wide service, building it on first use."""
    global _service
    if _service is None:
        _service = MarketMetricsService(provider=load_provider(), cache=MetricsCache())
    return _service


def set_service(service: Optional[MarketMetricsService]) -> None:
    global _service
    _service = service


# -------------------- Event helpers -------------------- #

def _response(body: Dict[str, Any], status_code: int = 200) -> Dict[str, Any]:
    """Wrap a dict into an API Gateway compatible response."""
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }


def _method(event: Dict[str, Any]) -> Optional[str]:
    """HTTP method from a REST (v1) or HTTP API (v2) proxy event, if present."""
    method = event.get("httpMethod")
    if not method:
        method = ((event.get("requestContext") or {}).get("http") or {}).get("method")
    return method.upper() if isinstance(method, str) else None


def _body(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Normalise the request body.

    raises:
    - InvalidInputError – body is a string that is not a JSON object.
    """
    body = event.get("body")
    if body is None:
        return {}
    if isinstance(body, str):
        if not body.strip():
            return {}
        try:
            body = json.loads(body)
        except json.JSONDecodeError as e:
            raise InvalidInputError(f"Request body is not valid JSON: {e.msg}") from e
    if not isinstance(body, dict):
        raise InvalidInputError("Request body must be a JSON object")
    return body


def _pool_id(event: Dict[str, Any]) -> Any:
    """Pool id from the path, then the query string, then the body."""
    path = event.get("pathParameters") or {}
    if path.get("id"):
        return path["id"]
    query = event.get("queryStringParameters") or {}
    for key in ("id", "poolId"):
        if query.get(key):
            return query[key]
    body = _body(event)
    return body.get("poolId") or body.get("id")


def _bind(event: Dict[str, Any], context: Any, request_id: str):
    aws_request_id = getattr(context, "aws_request_id", None)
    correlation_id = (event.get("headers") or {}).get("x-correlation-id") or request_id
    return log.bind(request_id=request_id, aws_request_id=aws_request_id, correlation_id=correlation_id)


# -------------------- Handlers -------------------- #

def market_metrics_handler(event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
    """
    GET /opportunities/{id}/market

    flow:
    1) Reject non-GET methods (405).
    2) Resolve the pool id; missing/malformed -> 400 before any provider call.
    3) Call MarketMetricsService.get_market_metrics.
    4) Validate the success envelope; a violation becomes a 500.
    5) Provider and unexpected errors -> 500 with the underlying message.
    """
    t0 = time.time()
    event = event if isinstance(event, dict) else {}
    fallback_id = generate_request_id()
    bound = _bind(event, context, fallback_id)
    bound.info("request.received", route="market_metrics")

    method = _method(event)
    if method is not None and method != "GET":
        return _response(error_envelope("Method not allowed", fallback_id), 405)

    try:
        result = get_service().get_market_metrics(_pool_id(event))
        body = ok_envelope(
            result["metrics"],
            request_id=result["request_id"],
            processingTime=result["processing_time_ms"],
            cacheStatus=result["cache_status"],
        )
        validate_metrics_response(body)
        bound.info("response.success", cache_status=result["cache_status"],
                   latency_ms=round((time.time() - t0) * 1000, 1))
        return _response(body, 200)

    except InvalidInputError as e:
        bound.warning("response.invalid_input", error=str(e))
        return _response(error_envelope(str(e), fallback_id), 400)

    except ValidationError as e:
        bound.error("response.schema_invalid", error=error_to_string(e))
        return _response(error_envelope(f"Response schema violation: {error_to_string(e)}", fallback_id), 500)

    except Exception as e:
        bound.error(
            "response.error",
            error=str(e),
            error_type=type(e).__name__,
            traceback=traceback.format_exc(limit=2),
            latency_ms=round((time.time() - t0) * 1000, 1),
        )
        return _response(error_envelope(error_to_string(e), fallback_id), 500)


def cache_admin_handler(event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
    """
    POST /performance/cache with {"action": "clear" | "stats" | "reset"}.

    - clear: drops all cached metrics (hit/miss counters are kept).
    - stats: returns the cache statistics snapshot.
    - reset: zeroes the hit/miss and request counters.
    Unknown or missing actions are a 400.
    """
    event = event if isinstance(event, dict) else {}
    request_id = generate_request_id("cache")
    bound = _bind(event, context, request_id)
    bound.info("request.received", route="cache_admin")

    method = _method(event)
    if method is not None and method != "POST":
        return _response(error_envelope("Method not allowed", request_id), 405)

    try:
        payload = _body(event)
        try:
            validate_cache_action(payload)
        except ValidationError as e:
            raise InvalidInputError(f"Invalid action: {error_to_string(e)}") from e

        service = get_service()
        action = payload["action"]
        if action == "clear":
            service.clear_cache()
            body = {"success": True, "message": "Cache cleared successfully",
                    "timestamp": now_ms(), "requestId": request_id}
        elif action == "reset":
            service.reset_stats()
            body = ok_envelope(service.get_cache_stats(), request_id=request_id,
                               message="Cache statistics reset")
        else:
            body = ok_envelope(service.get_cache_stats(), request_id=request_id)

        validate_cache_response(body)
        bound.info("response.success", action=action)
        return _response(body, 200)

    except InvalidInputError as e:
        bound.warning("response.invalid_input", error=str(e))
        return _response(error_envelope(str(e), request_id), 400)

    except Exception as e:
        bound.error("response.error", error=str(e), traceback=traceback.format_exc(limit=2))
        return _response(error_envelope(error_to_string(e), request_id), 500)


def performance_stats_handler(event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
    """GET /performance/stats: request counters merged with cache size and hit rate."""
    event = event if isinstance(event, dict) else {}
    request_id = generate_request_id("perf")
    bound = _bind(event, context, request_id)
    try:
        body = ok_envelope(get_service().get_metrics(), request_id=request_id)
        return _response(body, 200)
    except Exception as e:
        bound.error("response.error", error=str(e), traceback=traceback.format_exc(limit=2))
        return _response(error_envelope(error_to_string(e), request_id), 500)
