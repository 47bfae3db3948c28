from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse

from apps.orders.http_adapters import rewards_circuit_state


def health_view(_request):
    """Liveness plus readiness: the database must answer, the rewards
    circuit state is reported but does not fail the probe (placements
    degrade to REWARDS_UNAVAILABLE on their own)."""
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
        db_ok = True
    except DatabaseError:
        db_ok = False

    rewards = {"adapter": "http" if getattr(settings, "USE_HTTP_ADAPTERS", True) else "stub"}
    if rewards["adapter"] == "http":
        rewards["circuit"] = rewards_circuit_state()

    code = 200 if db_ok else 503
    return JsonResponse(
        {"ok": db_ok, "components": {"db": {"ok": db_ok}, "rewards": rewards}},
        status=code,
    )
