"""
API tests for IP allow-list, audit and monitoring endpoints
"""

import pytest

from tests.support import API, ALLOWED_IP, OUTSIDE_IP, headers

pytestmark = pytest.mark.integration


class TestAuthRequired:

    @pytest.mark.parametrize("method,path", [
        ("GET", "/ip-management"),
        ("POST", "/ip-management/risk"),
        ("GET", "/audit/logs"),
        ("GET", "/monitoring/alerts"),
    ])
    def test_missing_token(self, client, method, path):
        response = client.request(method, f"{API}{path}", headers=headers(), json={"ip": "1.2.3.4"})

        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_SESSION"

    def test_token_from_other_ip(self, client, admin_token):
        response = client.get(f"{API}/ip-management", headers=headers(ip=OUTSIDE_IP, token=admin_token))

        assert response.status_code == 401

        # The session was revoked by the mismatch
        response = client.get(f"{API}/ip-management", headers=headers(token=admin_token))
        assert response.status_code == 401


class TestIpManagement:

    def test_list(self, client, admin_token):
        response = client.get(f"{API}/ip-management", headers=headers(token=admin_token))

        assert response.status_code == 200
        data = response.json()
        assert data["allowedIps"] == ["10.0.0.0/8"]
        assert data["count"] == 1
        assert "timestamp" in data

    def test_add_and_remove(self, client, admin_token):
        auth_headers = headers(token=admin_token)

        response = client.post(
            f"{API}/ip-management",
            json={"ip": "203.0.113.0/24", "label": "office"},
            headers=auth_headers
        )
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["label"] == "office"

        response = client.request(
            "DELETE", f"{API}/ip-management", json={"ip": "203.0.113.0/24"}, headers=auth_headers
        )
        assert response.status_code == 200
        assert response.json()["success"] is True

        response = client.get(f"{API}/ip-management", headers=auth_headers)
        assert response.json()["allowedIps"] == ["10.0.0.0/8"]

    @pytest.mark.parametrize("ip", ["10.0.0.0/40", "10.0.0.0/²", "١.٢.٣.٤"])
    def test_add_invalid(self, client, admin_token, ip):
        response = client.post(f"{API}/ip-management", json={"ip": ip}, headers=headers(token=admin_token))

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_remove_own_ip_rejected(self, client, admin_token):
        auth_headers = headers(token=admin_token)
        client.post(f"{API}/ip-management", json={"ip": ALLOWED_IP}, headers=auth_headers)

        response = client.request("DELETE", f"{API}/ip-management", json={"ip": ALLOWED_IP}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_remove_last_entry_rejected(self, client, admin_token):
        response = client.request(
            "DELETE", f"{API}/ip-management", json={"ip": "10.0.0.0/8"}, headers=headers(token=admin_token)
        )
        assert response.status_code == 400

    def test_remove_absent(self, client, admin_token):
        response = client.request(
            "DELETE", f"{API}/ip-management", json={"ip": "192.0.2.1"}, headers=headers(token=admin_token)
        )

        assert response.status_code == 200
        assert response.json()["success"] is False


class TestIpRisk:

    def test_risk_for_unknown_ip(self, client, admin_token):
        response = client.post(
            f"{API}/ip-management/risk",
            json={"ip": OUTSIDE_IP, "geoLocation": {"lat": 1.0, "lng": 2.0, "country": "XX"}},
            headers=headers(token=admin_token)
        )

        assert response.status_code == 200
        data = response.json()
        assert data["ip"] == OUTSIDE_IP
        assert data["riskScore"] == 75
        assert data["riskLevel"] == "high"
        assert data["factors"] == ["not_in_allowed_list", "first_time_access", "high_risk_country"]
        assert data["isAllowed"] is False

    def test_risk_for_known_ip(self, client, admin_token):
        response = client.post(f"{API}/ip-management/risk", json={"ip": ALLOWED_IP}, headers=headers(token=admin_token))

        data = response.json()
        assert data["riskScore"] == 0
        assert data["riskLevel"] == "low"
        assert data["isAllowed"] is True

    def test_risk_invalid_ip(self, client, admin_token):
        response = client.post(f"{API}/ip-management/risk", json={"ip": "not-an-ip"}, headers=headers(token=admin_token))

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"


class TestAudit:

    def test_logs(self, client, admin_token):
        response = client.get(f"{API}/audit/logs", params={"action": "ADMIN_LOGIN"}, headers=headers(token=admin_token))

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["page"] == 1
        assert data["pageSize"] == 20
        entry = data["logs"][0]
        assert entry["action"] == "ADMIN_LOGIN"
        assert entry["ipAddress"] == ALLOWED_IP
        assert entry["metadata"]["risk_score"] == 15

    def test_access_logs(self, client, admin_token):
        response = client.get(f"{API}/audit/access", headers=headers(token=admin_token))

        assert response.status_code == 200
        assert [log["action"] for log in response.json()] == ["ADMIN_LOGIN"]

    def test_export_csv(self, client, admin_token):
        response = client.get(f"{API}/audit/export", params={"format": "csv"}, headers=headers(token=admin_token))

        assert response.status_code == 200
        data = response.json()
        assert data["format"] == "csv"
        assert data["data"].startswith("id,userId,action,resource,ipAddress,metadata,createdAt")

    def test_export_unknown_format(self, client, admin_token):
        response = client.get(f"{API}/audit/export", params={"format": "xml"}, headers=headers(token=admin_token))
        assert response.status_code == 400


class TestMonitoring:

    def test_session_stats(self, client, admin_token):
        response = client.get(f"{API}/monitoring/sessions", params={"period": "week"}, headers=headers(token=admin_token))

        assert response.status_code == 200
        data = response.json()
        assert data["period"] == "week"
        assert data["totalSessions"] == 1
        assert data["activeSessions"] == 1
        assert data["byBrowser"] == {"Chrome": 1}

    def test_invalid_period(self, client, admin_token):
        response = client.get(f"{API}/monitoring/sessions", params={"period": "year"}, headers=headers(token=admin_token))
        assert response.status_code == 400

    def test_performance(self, client, admin_token):
        client.post(f"{API}/auth/login", json={"key": "wrong"}, headers=headers())

        response = client.get(f"{API}/monitoring/performance", headers=headers(token=admin_token))

        assert response.status_code == 200
        data = response.json()
        # Key provisioning, one login and one failed login
        assert data["requestRate"] == 3
        assert data["errorRate"] == pytest.approx(33.33)
        assert data["avgResponseTime"] is not None

    def test_performance_requires_session(self, client):
        response = client.get(f"{API}/monitoring/performance", headers=headers())
        assert response.status_code == 401

    def test_alerts(self, client, admin_token):
        response = client.get(f"{API}/monitoring/alerts", headers=headers(token=admin_token))

        assert response.status_code == 200
        assert response.json() == {"anomalies": []}


class TestOperational:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["checks"]["database"] == "healthy"

    def test_metrics(self, client, admin_token):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "admin_login_attempts_total" in response.text
