import csv
import json

import pytest

from petridish.config import SimulationConfig
from petridish.headless import run_headless


def _read_csv(path):
    with path.open(newline="") as handle:
        return list(csv.reader(handle))


def test_headless_basic_log_header(tmp_path):
    log_path = tmp_path / "basic.csv"
    run_headless(steps=2, seed=1, log_path=log_path, deterministic_log=True, log_format="basic")
    rows = _read_csv(log_path)
    assert len(rows) == 3
    assert rows[0] == [
        "tick",
        "now_ms",
        "population",
        "food",
        "births",
        "deaths",
        "avg_energy",
        "tick_ms",
    ]


def test_headless_detailed_log_counts_add_up(tmp_path):
    log_path = tmp_path / "detailed.csv"
    run_headless(steps=3, seed=2, log_path=log_path, deterministic_log=True, log_format="detailed")
    rows = _read_csv(log_path)
    assert len(rows) == 4
    header = rows[0]
    idx = {name: i for i, name in enumerate(header)}
    for name in ["blue", "purple", "red", "kills", "pellets_eaten", "collision_pairs", "corpses"]:
        assert name in idx

    first_row = rows[1]
    population = int(first_row[idx["population"]])
    per_kind = sum(int(first_row[idx[kind]]) for kind in ("blue", "purple", "red"))
    assert population == per_kind
    assert int(first_row[idx["tick"]]) == 1
    assert float(first_row[idx["now_ms"]]) == pytest.approx(1000.0 / 60.0, abs=1e-3)
    assert float(first_row[idx["tick_ms"]]) == 0.0


def test_headless_deterministic_with_seed(tmp_path):
    first = tmp_path / "a.csv"
    second = tmp_path / "b.csv"
    run_headless(steps=60, seed=42, log_path=first, deterministic_log=True)
    run_headless(steps=60, seed=42, log_path=second, deterministic_log=True)
    assert first.read_text() == second.read_text()


def test_headless_summary_output(tmp_path):
    summary_path = tmp_path / "summary.json"
    world = run_headless(
        steps=4,
        seed=3,
        log_path=None,
        deterministic_log=True,
        log_format="basic",
        summary_path=summary_path,
        scenario="peaceful",
    )
    payload = json.loads(summary_path.read_text())
    assert payload["steps"] == 4
    assert payload["seed"] == 3
    assert payload["scenario"] == "peaceful"
    assert payload["final_counts"]["blue"] == len(world.agents)
    assert "tick_ms" in payload
    assert "population" in payload
    assert "blue" in payload["averages"]


def test_headless_replays_auto_food_on_simulated_clock():
    world = run_headless(steps=150, seed=5, log_path=None, scenario="empty")
    assert world.foods == []

    # level 3 drops a pellet every second; 150 frames is two and a half seconds
    world = run_headless(steps=150, seed=5, log_path=None, scenario="empty", auto_food_level=3)
    assert world.auto_food_enabled
    assert world.auto_food_interval_ms == 1000.0
    assert len(world.foods) == 2


def test_headless_leaves_caller_config_untouched():
    config = SimulationConfig(seed=1)
    world = run_headless(steps=2, seed=99, log_path=None, scenario="empty", config=config)
    assert config.seed == 1
    assert world.config.seed == 99


def test_headless_rejects_unknown_options(tmp_path):
    with pytest.raises(ValueError):
        run_headless(steps=1, seed=1, log_path=None, log_format="fancy")
    with pytest.raises(ValueError):
        run_headless(steps=1, seed=1, log_path=None, scenario="jungle")
