from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Set

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pygame.math import Vector2

from ..commands import execute_command
from ..config import AppConfig, SimulationConfig
from ..world import SCENARIOS, World

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueuedSnapshot:
    tick: int
    payload: str


class SimulationController:
    """Drives a ``World`` from asyncio tasks.

    The frame loop and the auto-food timer both take ``_lock`` before they
    touch the world, so a tick is never interleaved with a food drop.
    """

    def __init__(
        self,
        config: SimulationConfig,
        broadcast_interval: int = 1,
        scenario: str = "ecosystem",
        queue_limit: int = 120,
    ):
        self.config = config
        self.world = World(config)
        self.scenario = scenario
        self.world.load_scenario(scenario)
        self.broadcast_interval = max(1, broadcast_interval)
        self.running = False
        self.speed_multiplier = 1.0
        self.clients: Set[WebSocket] = set()
        self._client_last_sent: Dict[WebSocket, int] = {}
        # oldest unacknowledged snapshots fall off once the limit is reached
        self._snapshot_queue: deque[QueuedSnapshot] = deque(maxlen=max(1, queue_limit))
        self._lock = asyncio.Lock()
        self._queue_lock = asyncio.Lock()
        self._frame_task: asyncio.Task | None = None
        self._auto_food_task: asyncio.Task | None = None

    @property
    def tick(self) -> int:
        return self.world.tick_count

    async def start(self) -> None:
        if self._frame_task is None:
            self._frame_task = asyncio.create_task(self._loop())
        self.running = True
        self._sync_auto_food()

    async def stop(self) -> None:
        self.running = False

    async def shutdown(self) -> None:
        self.running = False
        for task in (self._frame_task, self._auto_food_task):
            if task is not None:
                task.cancel()
        self._frame_task = None
        self._auto_food_task = None

    async def reset(self, scenario: str | None = None) -> None:
        async with self._lock:
            if scenario is not None:
                self.scenario = scenario
            self.world.load_scenario(self.scenario)
        async with self._queue_lock:
            self._snapshot_queue.clear()
        for client in self._client_last_sent:
            self._client_last_sent[client] = -1
        self._sync_auto_food()
        await self._broadcast_snapshot()

    async def advance(self) -> None:
        async with self._lock:
            self.world.tick()
        if self.tick % self.broadcast_interval == 0:
            await self._broadcast_snapshot()

    async def run_command(self, text: str) -> List[str]:
        async with self._lock:
            lines = execute_command(self.world, text)
        self._sync_auto_food()
        return lines

    async def set_auto_food(self, level: int | None) -> float:
        async with self._lock:
            if level is None:
                self.world.stop_auto_food()
                interval = 0.0
            else:
                interval = self.world.set_auto_food_level(level, enable=True)
        self._sync_auto_food()
        return interval

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.time_step / self.speed_multiplier)
            if not self.running:
                continue
            await self.advance()

    def _sync_auto_food(self) -> None:
        # restart so a new interval takes effect immediately
        if self._auto_food_task is not None:
            self._auto_food_task.cancel()
            self._auto_food_task = None
        if self.world.auto_food_enabled:
            try:
                self._auto_food_task = asyncio.get_running_loop().create_task(self._auto_food_loop())
            except RuntimeError:
                logger.debug("no running loop; auto food timer deferred until start")

    async def _auto_food_loop(self) -> None:
        while self.world.auto_food_enabled:
            await asyncio.sleep(self.world.auto_food_interval_ms / 1000.0)
            async with self._lock:
                if not self.world.auto_food_enabled:
                    break
                self.world.add_random_food()

    async def acknowledge(self, tick: int) -> None:
        async with self._queue_lock:
            while self._snapshot_queue and self._snapshot_queue[0].tick <= tick:
                self._snapshot_queue.popleft()

    def _serialize_snapshot(self) -> QueuedSnapshot:
        snapshot = self.world.snapshot()
        payload = {
            "type": "snapshot",
            "tick": snapshot.tick,
            "payload": {
                "tick": snapshot.tick,
                "now_ms": snapshot.now_ms,
                "metrics": asdict(snapshot.metrics) if snapshot.metrics is not None else None,
                "agents": snapshot.agents,
                "foods": snapshot.foods,
                "obstacles": snapshot.obstacles,
                "corpses": snapshot.corpses,
                "averages": snapshot.averages,
                "history": snapshot.history,
                "metadata": asdict(snapshot.metadata),
            },
        }
        return QueuedSnapshot(tick=snapshot.tick, payload=json.dumps(payload))

    async def _send_pending_snapshots(self, client: WebSocket) -> None:
        last_sent = self._client_last_sent.get(client, -1)
        async with self._queue_lock:
            pending = [item for item in self._snapshot_queue if item.tick > last_sent]
        for item in pending:
            await client.send_text(item.payload)
            last_sent = item.tick
        self._client_last_sent[client] = last_sent

    async def _broadcast_snapshot(self) -> None:
        queued = self._serialize_snapshot()
        async with self._queue_lock:
            self._snapshot_queue.append(queued)
        stale: Set[WebSocket] = set()
        for client in self.clients:
            try:
                await self._send_pending_snapshots(client)
            except WebSocketDisconnect:
                stale.add(client)
        for client in stale:
            self.clients.discard(client)
            self._client_last_sent.pop(client, None)


def _point(payload: Dict[str, Any]) -> Vector2:
    return Vector2(float(payload.get("x", 0.0)), float(payload.get("y", 0.0)))


app_config = AppConfig()
app = FastAPI(title="Petri Dish Simulation")
controller = SimulationController(
    app_config.simulation,
    broadcast_interval=app_config.broadcast_interval,
    scenario=app_config.scenario,
    queue_limit=app_config.snapshot_queue_limit,
)


@app.on_event("startup")
async def _startup() -> None:
    await controller.start()


@app.on_event("shutdown")
async def _shutdown() -> None:
    await controller.shutdown()


@app.get("/api/status")
async def status() -> JSONResponse:
    world = controller.world
    metrics = world.metrics
    return JSONResponse(
        {
            "running": controller.running,
            "tick": controller.tick,
            "now_ms": world.now_ms,
            "scenario": controller.scenario,
            "counts": world.counts(),
            "food": len(world.foods),
            "auto_food": {"enabled": world.auto_food_enabled, "interval_ms": world.auto_food_interval_ms},
            "metrics": asdict(metrics) if metrics is not None else None,
        }
    )


@app.post("/api/control/start")
async def start_simulation() -> JSONResponse:
    await controller.start()
    return JSONResponse({"running": True})


@app.post("/api/control/stop")
async def stop_simulation() -> JSONResponse:
    await controller.stop()
    return JSONResponse({"running": False})


@app.post("/api/control/reset")
async def reset_simulation(payload: dict | None = None) -> JSONResponse:
    scenario = (payload or {}).get("scenario")
    if scenario is not None and scenario not in SCENARIOS:
        return JSONResponse({"error": f"unknown scenario: {scenario}"}, status_code=400)
    await controller.reset(scenario)
    return JSONResponse({"running": controller.running, "tick": controller.tick, "scenario": controller.scenario})


@app.post("/api/control/speed")
async def set_speed(payload: dict) -> JSONResponse:
    speed = float(payload.get("multiplier", 1.0))
    controller.speed_multiplier = max(0.1, min(5.0, speed))
    return JSONResponse({"multiplier": controller.speed_multiplier})


@app.post("/api/command")
async def run_command(payload: dict) -> JSONResponse:
    lines = await controller.run_command(str(payload.get("text", "")))
    return JSONResponse({"lines": lines})


@app.post("/api/auto-food")
async def auto_food(payload: dict) -> JSONResponse:
    level = payload.get("level")
    interval = await controller.set_auto_food(None if level is None else int(level))
    return JSONResponse({"enabled": controller.world.auto_food_enabled, "interval_ms": interval})


@app.post("/api/tools/agent")
async def place_agent(payload: dict) -> JSONResponse:
    kind = str(payload.get("kind", "blue"))
    try:
        async with controller._lock:
            agent = controller.world.spawn_agent(kind, _point(payload))
    except ValueError:
        return JSONResponse({"error": f"unknown kind: {kind}"}, status_code=400)
    return JSONResponse({"placed": agent is not None, "id": agent.id if agent is not None else None})


@app.post("/api/tools/food")
async def place_food(payload: dict) -> JSONResponse:
    async with controller._lock:
        placed = controller.world.spawn_food(_point(payload))
    return JSONResponse({"placed": placed})


@app.post("/api/tools/obstacle")
async def place_obstacle(payload: dict) -> JSONResponse:
    async with controller._lock:
        col, row = controller.world.obstacle_cell(_point(payload))
        placed = controller.world.place_obstacle(col, row)
    return JSONResponse({"placed": placed, "col": col, "row": row})


@app.post("/api/tools/kill")
async def kill(payload: dict) -> JSONResponse:
    radius = payload.get("radius")
    async with controller._lock:
        killed = controller.world.kill_in_radius(_point(payload), None if radius is None else float(radius))
    return JSONResponse({"killed": killed})


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    await websocket.accept()
    controller.clients.add(websocket)
    controller._client_last_sent[websocket] = -1
    await controller._send_pending_snapshots(websocket)
    try:
        while True:
            message = await websocket.receive_text()
            try:
                payload = json.loads(message)
            except json.JSONDecodeError:
                continue
            if payload.get("type") == "ack":
                tick = payload.get("tick")
                if isinstance(tick, int):
                    await controller.acknowledge(tick)
    except WebSocketDisconnect:
        controller.clients.discard(websocket)
        controller._client_last_sent.pop(websocket, None)


__all__ = ["app", "controller"]
