from __future__ import annotations

import textwrap

from pytest import approx

from petridish.config import SimulationConfig, load_config
from petridish.genome import Genome


def test_empty_mapping_gives_defaults():
    config = load_config({})
    assert config == SimulationConfig()
    assert config.frame_ms == approx(1000.0 / 60.0)


def test_yaml_overrides_nested_sections(tmp_path):
    path = tmp_path / "sim.yaml"
    path.write_text(
        textwrap.dedent(
            """
            width: 640
            seed: 77
            food:
              nutrition: 30
              grow:
                interval_ms: 3000
            death:
              nutrient_delay_ms: 4000
            species:
              red:
                move_cost: 3.0
            priors:
              purple:
                radius: 9
            rates:
              auto_food_ms:
                3: 500
            tools:
              bulk_spawn_max: 50
            """
        )
    )

    config = SimulationConfig.from_yaml(path)

    assert config.width == 640
    assert config.height == 640.0
    assert config.seed == 77
    assert config.food.nutrition == 30
    assert config.food.radius == 4.0
    assert config.food.grow.interval_ms == 3000
    assert config.food.grow.jitter_ms == 400.0
    assert config.death.nutrient_delay_ms == 4000
    assert config.species.red.move_cost == 3.0
    # untouched fields of an overridden species keep their values
    assert config.species.red.hunts_others is True
    assert config.species.blue == SimulationConfig().species.blue
    assert config.priors.purple.radius == 9
    assert config.priors.purple.max_speed == approx(1.65)
    assert config.priors.blue == Genome()
    assert config.rates.auto_food_ms == {1: 3000.0, 2: 2000.0, 3: 500.0}
    assert config.tools.bulk_spawn_max == 50


def test_blank_yaml_file_is_default(tmp_path):
    path = tmp_path / "blank.yaml"
    path.write_text("")
    assert SimulationConfig.from_yaml(path) == SimulationConfig()
