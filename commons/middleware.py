import logging
import time
import uuid

from django.utils.deprecation import MiddlewareMixin

logger = logging.getLogger("django.request")


class RequestLogMiddleware(MiddlewareMixin):
    """
    Uma linha de log por requisição: request id, rota, status, latência e
    tenant do usuário autenticado (quando houver).
    """

    def process_request(self, request):
        request.request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request._start_time = time.monotonic()

    def process_response(self, request, response):
        inicio = getattr(request, "_start_time", None)
        latency = int((time.monotonic() - inicio) * 1000) if inicio is not None else None
        user = getattr(request, "user", None)

        logger.info(
            "http_request",
            extra={
                "event": "http_request",
                "request_id": getattr(request, "request_id", "-"),
                "path": request.path,
                "method": request.method,
                "status": response.status_code,
                "latency_ms": latency,
                "tenant_id": getattr(user, "tenant_id_fiscal", None),
            },
        )
        response["X-Request-ID"] = getattr(request, "request_id", "-")
        return response
