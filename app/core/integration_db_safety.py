from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.engine import make_url

TEST_DB_MARKERS = ("test", "pytest")
LOCAL_DB_HOSTS = frozenset({"localhost", "127.0.0.1", "::1", "postgres", "qcm_postgres"})


@dataclass(frozen=True, slots=True)
class IntegrationDbCheck:
    database_name: str
    host: str
    problem: str | None = None

    @property
    def is_safe(self) -> bool:
        return self.problem is None


def check_integration_db(database_url: str) -> IntegrationDbCheck:
    url = make_url(database_url)
    database_name = (url.database or "").strip()
    host = (url.host or "").strip().lower()

    problem: str | None = None
    if url.get_backend_name() != "postgresql":
        problem = "integration tests run against PostgreSQL only"
    elif not any(marker in database_name.lower() for marker in TEST_DB_MARKERS):
        problem = "database name must contain 'test'"
    elif host not in LOCAL_DB_HOSTS:
        problem = f"host '{host}' is not a local test host"
    return IntegrationDbCheck(database_name=database_name, host=host, problem=problem)


def assert_safe_integration_db(database_url: str) -> None:
    check = check_integration_db(database_url)
    if check.is_safe:
        return
    raise RuntimeError(
        "Refusing to truncate coop tables: "
        f"{check.problem} (database='{check.database_name}', host='{check.host}'). "
        "Point DATABASE_URL at a dedicated local database such as 'qcm_coop_test'."
    )
