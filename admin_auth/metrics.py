"""
Prometheus metrics for admin_auth.

Provides observability metrics for monitoring:
- HTTP requests and performance
- Admin authentication, MFA step-up and sessions
- Risk scoring and IP allow-list changes
- Audit sink health
"""

from prometheus_client import Counter, Gauge, Histogram, Info

# ============================================================================
# Application Info
# ============================================================================

app_info = Info('admin_auth', 'Admin auth application info')

# ============================================================================
# HTTP Metrics
# ============================================================================

http_requests_total = Counter(
    'admin_auth_http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration_seconds = Histogram(
    'admin_auth_http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
)

http_requests_in_progress = Gauge(
    'admin_auth_http_requests_in_progress',
    'Number of HTTP requests currently being processed',
    ['method', 'endpoint']
)

# ============================================================================
# Authentication Metrics
# ============================================================================

admin_login_attempts_total = Counter(
    'admin_login_attempts_total',
    'Total admin login attempts',
    ['status']  # success, mfa_required, invalid_key, locked, denied, invalid_mfa, error
)

admin_mfa_verifications_total = Counter(
    'admin_mfa_verifications_total',
    'Total MFA step-up verification attempts',
    ['status']  # success, invalid_code, invalid_token, ip_mismatch
)

admin_session_validations_total = Counter(
    'admin_session_validations_total',
    'Total admin session validations',
    ['result']  # valid, not_found, expired, ip_mismatch
)

admin_sessions_created_total = Counter(
    'admin_sessions_created_total',
    'Total admin sessions created'
)

admin_pending_mfa_tokens = Gauge(
    'admin_pending_mfa_tokens',
    'Number of MFA pending tokens held in process memory'
)

# ============================================================================
# Risk Metrics
# ============================================================================

admin_risk_score = Histogram(
    'admin_risk_score',
    'Risk score computed at authentication',
    buckets=(0, 15, 30, 40, 50, 60, 70, 85, 100, 150)
)

admin_risk_factors_total = Counter(
    'admin_risk_factors_total',
    'Risk factors raised at authentication',
    ['factor']
)

ip_allowlist_changes_total = Counter(
    'admin_ip_allowlist_changes_total',
    'IP allow-list mutations',
    ['operation', 'status']  # operation: add, remove
)

# ============================================================================
# Audit Metrics
# ============================================================================

audit_write_failures_total = Counter(
    'admin_audit_write_failures_total',
    'Audit log writes that failed and were dropped',
    ['action']
)
