import pytest
from httpx import ASGITransport, AsyncClient

from voxhub.api.deps import storage_provider
from voxhub.core.config import get_settings
from voxhub.core.ratelimit import reset_rate_limits
from voxhub.core.security import create_access_token
from voxhub.integrations.storage.local import LocalStorageProvider
from voxhub.main import create_app

BASE_URL = "http://testserver"


@pytest.fixture(autouse=True)
def settings_env(monkeypatch, tmp_path):
    monkeypatch.setenv("STORAGE_PROVIDER", "local")
    monkeypatch.setenv("STORAGE_LOCAL_DIR", str(tmp_path / "storage"))
    monkeypatch.setenv("STORAGE_LOCAL_BASE_URL", BASE_URL)
    monkeypatch.setenv("SUPABASE_JWT_SECRET", "test-supabase-jwt-secret")
    monkeypatch.setenv("STORAGE_SIGNING_KEY", "test-storage-signing-key")
    get_settings.cache_clear()
    reset_rate_limits()
    yield get_settings()
    get_settings.cache_clear()
    reset_rate_limits()


@pytest.fixture
def provider(tmp_path):
    return LocalStorageProvider(tmp_path / "storage", min_part_size=4)


@pytest.fixture
def app(provider):
    app = create_app()
    app.dependency_overrides[storage_provider] = lambda: provider
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url=BASE_URL) as ac:
        yield ac


@pytest.fixture
def auth_headers():
    def make(user_id: str = "u1") -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return make
