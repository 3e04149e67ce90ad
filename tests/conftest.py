import sys
from pathlib import Path
from unittest.mock import patch

import pytest
from dotenv import load_dotenv


def _ensure_project_root_on_path() -> None:
    this_file = Path(__file__).resolve()
    project_root = this_file.parent.parent
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))


_ensure_project_root_on_path()

ENGINE_ENV_VARS = ("GRAPH_MODULES_DIR", "GRAPH_EMITTED_DIR", "GRAPH_OUTPUT_FORMAT", "LOG_LEVEL")

TEST_MODULE = """
module: eh
version: "1.0"
types:
  - kind: struct
    name: Stats
    fields:
      - {name: hp, type: int, min: 1, max: 100, default: 10}
      - {name: speed, type: float}
  - kind: struct
    name: Item
    fields:
      - {name: id, type: string}
      - {name: price, type: int, min: 0, alias: cost}
      - {name: stats, type: Stats, inline: true}
      - {name: tags, type: list<string>}
      - {name: note, type: optional<string>}
  - kind: enum
    name: Reward
    variants:
      - {tag: item, type: Item}
      - {tag: credits, type: int}
  - kind: struct
    name: Shadow
    fields:
      - {name: hp, type: string}
      - {name: stats, type: Stats, inline: true}
  - kind: struct
    name: Aliased
    fields:
      - {name: level, type: int, alias: hp}
      - {name: stats, type: Stats, inline: true}
  - kind: struct
    name: Bounded
    fields:
      - {name: chance, type: float, min: 0.5, max: 1}
      - {name: count, type: int, min: 3}
groups:
  - name: loot
    types:
      - kind: struct
        name: drop
        fields:
          - {name: reward, type: Reward}
          - {name: weight, type: float, default: 1.5}
"""


@pytest.fixture(autouse=True)
def test_env_isolation(tmp_path, monkeypatch):
    """Point .env loading at an isolated temporary file and clear engine variables for each test."""
    env_dir = tmp_path / "isolated_env"
    env_dir.mkdir()
    dotenv_path = env_dir / ".env"
    dotenv_path.touch()

    for var in ENGINE_ENV_VARS:
        monkeypatch.delenv(var, raising=False)

    with patch("config.settings.load_dotenv", lambda *args, **kwargs: load_dotenv(dotenv_path)):
        yield


@pytest.fixture
def eh_module():
    from core.schema import parse_module_source, to_module

    return to_module(parse_module_source(TEST_MODULE, origin="eh.yaml"))


@pytest.fixture
def registry(eh_module):
    from core.types_registry import TypesRegistry

    return TypesRegistry.load([eh_module])


@pytest.fixture
def project_dir(tmp_path):
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def modules_dir(tmp_path):
    path = tmp_path / "modules"
    path.mkdir()
    (path / "eh.yaml").write_text(TEST_MODULE, encoding="utf-8")
    return path
