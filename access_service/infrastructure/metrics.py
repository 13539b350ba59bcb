from prometheus_client import Counter, Histogram, generate_latest
from fastapi import Response

# Метрики для HTTP запросов
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint']
)

# Метрики заявок на доступ
admin_request_transitions_total = Counter(
    'admin_request_transitions_total',
    'Admin request state transitions and role revocations',
    ['action']
)
admin_request_rate_limited_total = Counter(
    'admin_request_rate_limited_total',
    'Admin request creations rejected by the rate limiter'
)

# События безопасности
security_events_total = Counter(
    'security_events_total',
    'Security relevant events',
    ['event']
)

def metrics_endpoint():
    """Endpoint для Prometheus метрик"""
    return Response(content=generate_latest(), media_type="text/plain")
