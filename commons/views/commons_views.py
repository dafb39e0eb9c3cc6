import logging
from datetime import datetime, timezone

from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger("fiscal")


def liveness(request):
    return JsonResponse({"ok": True})


def readiness(request):
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1")
            cur.fetchone()
    except DatabaseError as e:
        logger.error("readiness_banco_indisponivel", extra={"event": "readiness", "error": str(e)})
        return JsonResponse({"ok": False, "error": str(e)}, status=503)

    return JsonResponse({
        "ok": True,
        "ambiente_fiscal": settings.FISCAL.get("AMBIENTE"),
        "autoridade_client": settings.FISCAL.get("AUTORIDADE_CLIENT"),
    })


def time_now(request):
    now = datetime.now(timezone.utc).astimezone()
    return JsonResponse({"now": now.isoformat()})
