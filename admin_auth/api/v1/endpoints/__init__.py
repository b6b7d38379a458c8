from admin_auth.api.v1.endpoints import audit, auth, ip_management, monitoring

__all__ = ["audit", "auth", "ip_management", "monitoring"]
