from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse


def health_view(_request):
    """Report database reachability and the active payment wiring."""
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
        db_ok = True
    except DatabaseError:
        db_ok = False

    return JsonResponse(
        {
            "ok": db_ok,
            "components": {
                "db": {"ok": db_ok},
                "payments": {
                    "adapter": "http" if settings.USE_HTTP_ADAPTERS else "stub",
                    "webhook_verification": settings.MP_WEBHOOK_VERIFICATION,
                },
            },
        },
        status=200 if db_ok else 503,
    )
