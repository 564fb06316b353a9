import logging

from django.core.cache import cache
from django.db import DatabaseError, connections
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def healthz(request):
    """Liveness probe: database round trip plus a cache write/read."""
    checks = {'db': False, 'cache': False}
    try:
        with connections['default'].cursor() as c:
            c.execute('SELECT 1')
            row = c.fetchone()
        checks['db'] = bool(row and row[0] == 1)
    except DatabaseError:
        logger.exception('health check: database unavailable')
    try:
        cache.set('healthz:ping', 'pong', 5)
        checks['cache'] = cache.get('healthz:ping') == 'pong'
    except Exception:
        logger.exception('health check: cache unavailable')
    ok = all(checks.values())
    return JsonResponse({'ok': ok, **checks}, status=200 if ok else 503)
