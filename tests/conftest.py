# Shared pytest fixtures
from __future__ import annotations
import random
import tempfile
from pathlib import Path

import pytest

from livestock_import.config.loader import build_config
from livestock_import.logging.init import reset_logging


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def sample_config_yaml() -> str:
    return """default_programme: KPMD
programmes: [KPMD, RANGE]
chunk_size: 2
timezone: UTC
cache:
  ttl_seconds: 300
  prefix: admin-page
collections:
  offtakes:
    path: offtakes
    kind: offtake
    cache_page: livestock-offtake
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
def import_config():
    return build_config({"default_programme": "KPMD", "chunk_size": 2})


@pytest.fixture()
def fixed_clock():
    # 2024-01-12T00:00:00Z
    return lambda: 1705017600.0


@pytest.fixture()
def seeded_rng() -> random.Random:
    return random.Random(7)


@pytest.fixture()
def jane_doe_csv() -> str:
    return (
        "Farmer Name,ID Number,Live Weight 1,Carcass Weight 1,Price 1,"
        "Live Weight 2,Carcass Weight 2,Price 2\n"
        '"Jane Doe","12345","40","20","1000","35","18","900"\n'
    )


@pytest.fixture()
def write_csv(temp_workdir: Path):
    def _write(name: str, text: str) -> Path:
        path = temp_workdir / "data" / name
        path.write_text(text, encoding="utf-8")
        return path
    return _write
