import asyncio
import json

from petridish.app.server import SimulationController
from petridish.config import RateTables, SimulationConfig


def _controller(**kwargs) -> SimulationController:
    return SimulationController(SimulationConfig(seed=4, **kwargs), scenario="empty")


def test_snapshot_queue_ack_cleanup() -> None:
    controller = _controller()

    async def exercise() -> None:
        controller.world.tick()
        await controller._broadcast_snapshot()
        controller.world.tick()
        await controller._broadcast_snapshot()
        async with controller._queue_lock:
            queued_ticks = [item.tick for item in controller._snapshot_queue]
        assert queued_ticks == [1, 2]
        await controller.acknowledge(1)
        async with controller._queue_lock:
            remaining_ticks = [item.tick for item in controller._snapshot_queue]
        assert remaining_ticks == [2]

    asyncio.run(exercise())


def test_advance_broadcasts_on_interval_and_serializes_world() -> None:
    controller = SimulationController(SimulationConfig(seed=9), broadcast_interval=2, scenario="ecosystem")

    async def exercise() -> None:
        await controller.advance()
        await controller.advance()
        await controller.advance()
        assert controller.tick == 3
        queued = list(controller._snapshot_queue)
        assert [item.tick for item in queued] == [2]
        message = json.loads(queued[0].payload)
        assert message["type"] == "snapshot"
        payload = message["payload"]
        assert payload["metadata"]["width"] == 960.0
        assert len(payload["agents"]) == payload["metrics"]["population"]
        assert set(payload["history"]) == {"blue", "purple", "red", "food"}

    asyncio.run(exercise())


def test_reset_reloads_scenario_and_clears_queue() -> None:
    controller = _controller()

    async def exercise() -> None:
        await controller.run_command("spawn blue 5")
        await controller.advance()
        await controller.reset("peaceful")
        assert controller.scenario == "peaceful"
        assert controller.tick == 0
        assert controller.world.counts()["blue"] == 30
        assert [item.tick for item in controller._snapshot_queue] == [0]
        await controller.shutdown()

    asyncio.run(exercise())


def test_commands_and_auto_food_timer() -> None:
    controller = _controller(rates=RateTables(auto_food_ms={1: 3000.0, 2: 2000.0, 3: 10.0}))

    async def exercise() -> None:
        lines = await controller.run_command("spawn food 3")
        assert lines == ["spawned 3 food pellets"]
        assert len(controller.world.foods) == 3

        interval = await controller.set_auto_food(3)
        assert interval == 10.0
        assert controller._auto_food_task is not None
        await asyncio.sleep(0.2)
        assert len(controller.world.foods) > 3

        assert await controller.set_auto_food(None) == 0.0
        assert not controller.world.auto_food_enabled
        assert controller._auto_food_task is None
        await controller.shutdown()

    asyncio.run(exercise())


def test_snapshot_queue_is_bounded_without_acks() -> None:
    controller = SimulationController(SimulationConfig(seed=4), broadcast_interval=2, scenario="empty", queue_limit=5)

    async def exercise() -> None:
        for _ in range(40):
            await controller.advance()
        async with controller._queue_lock:
            queued_ticks = [item.tick for item in controller._snapshot_queue]
        assert queued_ticks == [32, 34, 36, 38, 40]

    asyncio.run(exercise())
