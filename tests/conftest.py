import base64
import copy
import datetime
import os
from types import SimpleNamespace

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
from fastapi.testclient import TestClient
from jose import jwt
from PIL import Image
from postgrest.exceptions import APIError

# Parametrize arguments are built at collection time, before the autouse
# settings fixture runs, so the pass secret must be present at import.
os.environ.setdefault("PASS_AUTH_SECRET", "test-pass-auth-secret")

from app.api.deps import reset_dependencies
from app.core.config import settings
from app.core.errors import NotificationDispatchFailure
from app.services.apns import reset_apns_client
from database.supabase_client import override_supabase_client

PASS_AUTH_SECRET = "test-pass-auth-secret"
JWT_SECRET = "test-jwt-secret"


def stale_schema_error(column: str, table: str) -> APIError:
    return APIError({
        "message": f"Could not find the '{column}' column of '{table}' in the schema cache",
        "code": "PGRST204",
        "details": None,
        "hint": None,
    })


class FakeQuery:
    """Chainable stand-in for a PostgREST request builder over in-memory rows."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.operation = "select"
        self.filters = []
        self.payload = None
        self.on_conflict = None
        self.row_limit = None
        self._negate = False

    def select(self, *columns):
        self.operation = "select"
        return self

    def insert(self, data):
        self.operation = "insert"
        self.payload = data
        return self

    def upsert(self, data, on_conflict: str = ""):
        self.operation = "upsert"
        self.payload = data
        self.on_conflict = [c.strip() for c in on_conflict.split(",") if c.strip()]
        return self

    def update(self, data):
        self.operation = "update"
        self.payload = data
        return self

    def delete(self):
        self.operation = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    @property
    def not_(self):
        self._negate = True
        return self

    def is_(self, column, value):
        negate, self._negate = self._negate, False
        if value == "null":
            check = lambda row: row.get(column) is None  # noqa: E731
        else:
            check = lambda row: row.get(column) == value  # noqa: E731
        self.filters.append((lambda row: not check(row)) if negate else check)
        return self

    def order(self, *args, **kwargs):
        return self

    def limit(self, count):
        self.row_limit = count
        return self

    def _matches(self, row) -> bool:
        return all(f(row) for f in self.filters)

    def execute(self):
        self.db.calls.append((self.table, self.operation))
        error = self.db.pop_failure(self.table, self.operation)
        if error:
            raise error

        rows = self.db.tables.setdefault(self.table, [])

        if self.operation == "select":
            data = [copy.deepcopy(r) for r in rows if self._matches(r)]
            if self.row_limit is not None:
                data = data[: self.row_limit]
            return SimpleNamespace(data=data)

        if self.operation == "insert":
            record = copy.deepcopy(self.payload)
            rows.append(record)
            return SimpleNamespace(data=[copy.deepcopy(record)])

        if self.operation == "upsert":
            record = copy.deepcopy(self.payload)
            for row in rows:
                if all(row.get(k) == record.get(k) for k in self.on_conflict):
                    row.update(record)
                    return SimpleNamespace(data=[copy.deepcopy(row)])
            rows.append(record)
            return SimpleNamespace(data=[copy.deepcopy(record)])

        if self.operation == "update":
            for column in self.payload:
                if column in self.db.missing_columns.get(self.table, set()):
                    raise stale_schema_error(column, self.table)
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(copy.deepcopy(self.payload))
                    updated.append(copy.deepcopy(row))
            return SimpleNamespace(data=updated)

        if self.operation == "delete":
            removed = [r for r in rows if self._matches(r)]
            self.db.tables[self.table] = [r for r in rows if not self._matches(r)]
            return SimpleNamespace(data=removed)

        raise AssertionError(f"Unsupported operation {self.operation}")


class FakeSupabase:
    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.missing_columns: dict[str, set[str]] = {}
        self.failures: list[tuple[str, str, Exception]] = []
        self.calls: list[tuple[str, str]] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def fail_on(self, table: str, operation: str, error: Exception, times: int = 1):
        for _ in range(times):
            self.failures.append((table, operation, error))

    def pop_failure(self, table: str, operation: str):
        for index, (t, op, error) in enumerate(self.failures):
            if t == table and op == operation:
                del self.failures[index]
                return error
        return None

    def rows(self, table: str) -> list[dict]:
        return self.tables.setdefault(table, [])


class FakeAPNsClient:
    def __init__(self, rejected: set[str] | None = None):
        self.rejected = rejected or set()
        self.sent: list[tuple[str, str | None]] = []

    async def send_pass_update(self, push_token: str, topic: str | None = None) -> bool:
        if push_token in self.rejected:
            raise NotificationDispatchFailure(f"Push rejected for {push_token[:8]}...: 410 - Unregistered")
        self.sent.append((push_token, topic))
        return True


@pytest.fixture(autouse=True)
def fake_db():
    db = FakeSupabase()
    override_supabase_client(db)
    yield db
    override_supabase_client(None)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "pass_auth_secret", PASS_AUTH_SECRET)
    monkeypatch.setattr(settings, "supabase_jwt_secret", JWT_SECRET)
    monkeypatch.setattr(settings, "base_url", "http://localhost:8000")
    monkeypatch.setattr(settings, "pass_type_id", "pass.com.vigocoffee.loyalty")
    monkeypatch.setattr(settings, "gift_card_pass_type_id", "pass.com.vigocoffee.giftcard")
    monkeypatch.setattr(settings, "apns_key_id", "")
    monkeypatch.setattr(settings, "apns_team_id", "")
    monkeypatch.setattr(settings, "apns_key_base64", "")
    monkeypatch.setattr(settings, "apple_team_id", "")
    monkeypatch.setattr(settings, "apple_pass_cert_base64", "")
    monkeypatch.setattr(settings, "apple_pass_key_base64", "")
    monkeypatch.setattr(settings, "apple_pass_password", None)
    monkeypatch.setattr(settings, "apple_wwdr_cert_base64", "")
    monkeypatch.setattr(settings, "gift_card_pass_cert_base64", "")
    monkeypatch.setattr(settings, "gift_card_pass_key_base64", "")
    monkeypatch.setattr(settings, "gift_card_pass_password", None)
    monkeypatch.setattr(settings, "gift_card_wwdr_cert_base64", "")
    monkeypatch.setattr(settings, "pass_assets_dir", str(tmp_path / "no-assets"))
    reset_dependencies()
    reset_apns_client()
    yield
    reset_dependencies()
    reset_apns_client()


@pytest.fixture(scope="session")
def signing_identity():
    """Self-signed certificate and key standing in for the pass certificate."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "Pass Type ID: pass.com.vigocoffee.loyalty")])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .sign(key, hashes.SHA256())
    )
    cert_pem = cert.public_bytes(serialization.Encoding.PEM)
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    return SimpleNamespace(cert=cert, cert_pem=cert_pem, key_pem=key_pem)


@pytest.fixture
def signing_settings(monkeypatch, signing_identity):
    monkeypatch.setattr(settings, "apple_team_id", "TEAM123456")
    monkeypatch.setattr(settings, "apple_pass_cert_base64", base64.b64encode(signing_identity.cert_pem).decode())
    monkeypatch.setattr(settings, "apple_pass_key_base64", base64.b64encode(signing_identity.key_pem).decode())
    monkeypatch.setattr(settings, "apple_wwdr_cert_base64", base64.b64encode(signing_identity.cert_pem).decode())
    return signing_identity


@pytest.fixture
def assets_dir(monkeypatch, tmp_path):
    directory = tmp_path / "pass_assets"
    directory.mkdir()
    Image.new("RGBA", (29, 29), (0, 0, 0, 255)).save(directory / "icon.png")
    Image.new("RGBA", (160, 50), (255, 255, 255, 255)).save(directory / "logo.png")
    Image.new("RGBA", (40, 40), (200, 30, 40, 255)).save(directory / "tiger-red.png")
    Image.new("RGBA", (40, 40), (255, 255, 255, 255)).save(directory / "tiger-white.png")
    monkeypatch.setattr(settings, "pass_assets_dir", str(directory))
    return directory


@pytest.fixture
def fake_apns():
    client = FakeAPNsClient()
    reset_apns_client(client)
    return client


@pytest.fixture
def client():
    from app.main import create_app

    return TestClient(create_app())


@pytest.fixture
def employee(fake_db):
    record = {"id": "emp-1", "full_name": "Barista", "role": "employee", "is_active": True}
    fake_db.rows("employees").append(record)
    return record


@pytest.fixture
def bearer_headers():
    """Build Authorization headers carrying a Supabase access token for a user id."""

    def make(user_id: str) -> dict:
        token = jwt.encode(
            {
                "sub": user_id,
                "aud": "authenticated",
                "exp": datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(hours=1),
            },
            JWT_SECRET,
            algorithm="HS256",
        )
        return {"Authorization": f"Bearer {token}"}

    return make


@pytest.fixture
def employee_headers(employee, bearer_headers):
    return bearer_headers(employee["id"])


@pytest.fixture
def customer(fake_db):
    record = {
        "id": "cust-0001",
        "full_name": "Ana Lopez",
        "points_balance": 9,
        "total_purchases": 9,
        "redeemed_rewards": {"coffees": [], "meals": []},
        "updated_at": "2024-05-01T12:00:00.250000+00:00",
    }
    fake_db.rows("profiles").append(record)
    return record


@pytest.fixture
def make_apns_client():
    return FakeAPNsClient
