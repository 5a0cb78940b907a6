"""FastAPI web server — REST API + WebSocket bridge to the cycle channel."""

import asyncio
import logging

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from cogcycle.channel import ChannelClosed
from cogcycle.loop import CognitiveLoop
from cogcycle.renderer import TextRenderer

logger = logging.getLogger("cogcycle.server")

# Settings the API may read and change at runtime
CONFIG_KEYS = (
    "wake_interval_seconds",
    "max_tasks_per_cycle",
    "consolidation_threshold",
    "working_memory_capacity",
    "history_limit",
)


def create_app(
    loop: CognitiveLoop, renderer: TextRenderer | None = None, auto_start: bool = True
) -> FastAPI:
    """Build the app around one cognitive loop. Called from main.py."""
    app = FastAPI(title="cogcycle")
    app.state.loop = loop
    app.state.renderer = renderer or TextRenderer()

    # CORS for development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- WebSocket ---

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket):
        """Events go out as {type, data}; JSON commands come in unchanged."""
        await ws.accept()
        loop.add_ws_client(ws)
        logger.info("WebSocket client connected")
        try:
            while True:
                try:
                    command = await ws.receive_json()
                except ValueError:
                    await ws.send_json(
                        {"type": "ERROR", "data": {"error": "Malformed command: not JSON"}}
                    )
                    continue
                try:
                    loop.channel.post(command)
                except ChannelClosed:
                    await ws.send_json(
                        {"type": "ERROR", "data": {"error": "Cognitive loop is shut down"}}
                    )
        except WebSocketDisconnect:
            logger.info("WebSocket client disconnected")
        finally:
            loop.remove_ws_client(ws)

    # --- REST API ---

    @app.get("/api/status")
    async def get_status():
        return loop.get_status()

    @app.get("/api/cycles")
    async def get_cycles(limit: int = 20):
        return loop.get_history(limit)

    @app.get("/api/events")
    async def get_events(limit: int = 100):
        return list(loop.events)[-limit:]

    @app.get("/api/tasks")
    async def get_tasks(limit: int = 100):
        return list(loop.tasks)[-limit:]

    @app.get("/api/insights")
    async def get_insights(limit: int = 100):
        return list(loop.insights)[-limit:]

    @app.post("/api/wake")
    async def post_wake():
        cycle_id = loop.wake_now()
        return {"ok": True, "cycle_id": cycle_id}

    @app.post("/api/pause")
    async def post_pause():
        loop.pause()
        return {"ok": True, "is_active": loop.is_active}

    @app.post("/api/resume")
    async def post_resume():
        loop.resume()
        return {"ok": True, "is_active": loop.is_active}

    @app.get("/api/ping")
    async def get_ping(timeout: float = 5.0):
        return {"alive": await loop.ping(timeout)}

    @app.get("/api/config")
    async def get_config():
        return {key: loop.settings[key] for key in CONFIG_KEYS}

    @app.post("/api/config")
    async def post_config(request: Request):
        body = await request.json()
        unknown = set(body) - set(CONFIG_KEYS)
        if unknown:
            return {"ok": False, "error": f"unknown settings: {sorted(unknown)}"}
        try:
            loop.update_config(**body)
        except ValueError as e:
            return {"ok": False, "error": str(e)}
        return {"ok": True}

    @app.post("/api/memory")
    async def post_memory(request: Request):
        """Feed an item into working memory."""
        body = await request.json()
        content = body.get("content", "").strip()
        if not content:
            return {"ok": False, "error": "empty content"}
        entry = loop.memory.add(content, body.get("topic") or "general")
        return {"ok": True, "id": entry["id"]}

    @app.post("/api/render")
    async def post_render(request: Request):
        body = await request.json()
        rendered = app.state.renderer.render(str(body.get("content", "")))
        return rendered.to_dict()

    # --- Startup ---

    @app.on_event("startup")
    async def startup():
        if auto_start:
            app.state.loop_task = asyncio.create_task(loop.run())
            logger.info("Cognitive loop starting...")
        else:
            # Worker and event pump only; cycles run on demand
            await loop.start()

    @app.on_event("shutdown")
    async def shutdown():
        await loop.shutdown()
        task = getattr(app.state, "loop_task", None)
        if task:
            await task

    return app
