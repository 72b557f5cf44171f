import pytest

from petridish.config import SimulationConfig
from petridish.genome import TRAIT_RANGES
from petridish.world import World


@pytest.mark.slow
def test_long_run_stays_bounded_and_fast():
    config = SimulationConfig(seed=2024)
    world = World(config)
    world.load_scenario("ecosystem")
    world.place_obstacle(10, 10)
    world.place_obstacle(11, 10)

    tick_ms = []
    births = 0
    for step in range(3600):
        if step % 120 == 0:
            world.add_random_food()
        metrics = world.tick()
        tick_ms.append(metrics.tick_duration_ms)
        births += metrics.births
        assert metrics.population <= config.max_population

    for agent in world.agents:
        # collision separation runs after containment and may nudge a cell past its margin
        assert 0.0 <= agent.position.x <= config.width
        assert 0.0 <= agent.position.y <= config.height
        assert 0.0 <= agent.energy <= agent.max_energy
        for name, (low, high) in TRAIT_RANGES.items():
            assert low <= getattr(agent.genome, name) <= high

    average_tick_ms = sum(tick_ms) / len(tick_ms)
    summary = f"final_pop={len(world.agents)}, births={births}, avg_tick_ms={average_tick_ms:.2f}"
    assert births > 0, summary
    assert average_tick_ms <= 35.0, summary
