# Shared pytest fixtures
from __future__ import annotations
import tempfile
from pathlib import Path

import pytest

from mileage_import.db.store import InMemoryStore
from mileage_import.models.route import RouteLeg
from mileage_import.models.schedule_entry import UserSettings
from mileage_import.services.errors import RoutingError

METERS_PER_TEST_MILE = 1609.34


class FakeProvider:
    """Routing provider stand-in: every leg is `miles` long unless overridden.

    - distances[(origin, destination)] overrides the length of one leg
    - destinations listed in fail_on raise RoutingError
    - calls keeps (origin, destination) in call order
    """

    def __init__(self, miles: float = 10.0) -> None:
        self.miles = miles
        self.distances: dict[tuple[str, str], float] = {}
        self.fail_on: set[str] = set()
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    def close(self) -> None:
        self.closed = True

    def route(self, origin: str, destination: str, api_key: str) -> RouteLeg:
        self.calls.append((origin, destination))
        if destination in self.fail_on:
            raise RoutingError("Google Directions API error: NOT_FOUND", status="NOT_FOUND")
        miles = self.distances.get((origin, destination), self.miles)
        return RouteLeg(
            distance_miles=miles,
            duration_seconds=int(miles * 60),
            resolved_start_address=origin,
            resolved_end_address=destination,
        )


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """timezone: UTC
error_log_dir: ./logs
routing:
  timeout_seconds: 5
  cost_per_call: 0.005
defaults:
  api_key: test-key
  default_start_address: HQ
  mileage_rate: 0.5
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def clean_env(monkeypatch):
    # .env / 実環境の値がテストへ漏れないようにする
    for name in (
        "GOOGLE_MAPS_API_KEY",
        "DEFAULT_START_ADDRESS",
        "DEFAULT_END_ADDRESS",
        "DATABASE_URL",
        "PGDSN",
        "IMPORT_USER_ID",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture()
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def user_settings() -> UserSettings:
    return UserSettings(user_id="u1", api_key="test-key", default_start_address="HQ", mileage_rate=0.5)
