"""Health and service-level API behaviour."""


class TestHealthEndpoint:
    def test_liveness_returns_200(self, api):
        response = api.client.get("/api/health/live")
        assert response.status_code == 200
        assert response.json() == {"status": "alive"}

    def test_root_returns_json(self, api):
        data = api.client.get("/").json()
        assert "name" in data
        assert "version" in data

    def test_security_headers(self, api):
        response = api.client.get("/api/health/live")
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["x-frame-options"] == "SAMEORIGIN"

    def test_unknown_route_uses_error_envelope(self, api):
        response = api.client.get("/api/does-not-exist")
        assert response.status_code == 404
        assert response.json()["status"] == "error"
        assert response.json()["error"]["code"] == "not_found"


class _Session:
    def __init__(self, fail=False):
        self.fail = fail

    async def execute(self, statement):
        if self.fail:
            raise ConnectionError("database down")


class _PingingRedis:
    async def ping(self):
        return True


class TestReadiness:
    def _install(self, monkeypatch, db_fails=False, redis_up=True):
        from xfactor_api.api.routes import health
        from xfactor_api.core.database import get_db
        from xfactor_api.main import app

        class _Cache:
            client = _PingingRedis() if redis_up else None

        async def _cache():
            return _Cache()

        monkeypatch.setattr(health, "get_redis_cache", _cache)
        app.dependency_overrides[get_db] = lambda: _Session(fail=db_fails)

    def test_ready_when_all_dependencies_answer(self, api, monkeypatch):
        self._install(monkeypatch)
        response = api.client.get("/api/health/ready")
        assert response.status_code == 200
        assert response.json() == {
            "status": "ready",
            "checks": {"database": "ready", "redis": "ready", "storage": "ready"},
        }

    def test_not_ready_without_redis(self, api, monkeypatch):
        self._install(monkeypatch, redis_up=False)
        response = api.client.get("/api/health/ready")
        assert response.status_code == 503
        assert response.json()["checks"]["redis"] == "not_ready"

    def test_health_reports_degraded_database(self, api, monkeypatch):
        self._install(monkeypatch, db_fails=True)
        response = api.client.get("/api/health")
        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "degraded"
        assert body["services"]["database"] == "unhealthy"
        assert body["errors"] == {"database": "database down"}
