#!/usr/bin/env python3
"""
Cooking Session Server — FastAPI + WebSocket front for SessionEngine.

Serves the recipe catalog, accepts session commands over REST, and pushes
session state and notices to every connected WebSocket client.

Usage:
    python3 server.py
    # Open http://<host>:8000
"""

import json
import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, field_validator

from recipe_catalog import DIFFICULTIES, STEP_TYPES, RecipeCatalog, default_path
from session_engine import CONFLICT, INVALID_RECIPE, SessionEngine
from session_ticker import SessionTicker

logging.basicConfig(level=logging.INFO)
log = logging.getLogger("cooking")

HOST = os.environ.get("COOK_HOST", "0.0.0.0")
PORT = int(os.environ.get("COOK_PORT", "8000"))
CORS_ORIGINS = os.environ.get("COOK_CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")


@asynccontextmanager
async def lifespan(application):
    global catalog
    catalog = RecipeCatalog(default_path())
    log.info(f"Loaded {len(catalog.items)} recipes")
    log.info(f"Server started — open http://<host>:{PORT} in browser")

    yield

    ticker.stop()
    if engine.active:
        engine.end(engine.active_recipe_id)
    log.info("Server stopped")


app = FastAPI(title="Cooking Session", lifespan=lifespan)

# CORS for Vite dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Shared state ---
engine = SessionEngine()
ticker = SessionTicker(engine)
catalog: RecipeCatalog = RecipeCatalog()


# --- WebSocket manager ---


class ConnectionManager:
    def __init__(self):
        self.connections: list[WebSocket] = []

    async def connect(self, ws: WebSocket):
        await ws.accept()
        self.connections.append(ws)

    def disconnect(self, ws: WebSocket):
        if ws in self.connections:
            self.connections.remove(ws)

    async def broadcast(self, msg: dict):
        data = json.dumps(msg)
        dead = []
        for ws in self.connections:
            try:
                await ws.send_text(data)
            except Exception:
                dead.append(ws)
        for ws in dead:
            self.disconnect(ws)


manager = ConnectionManager()


def build_session():
    """Session message for broadcast: the active session, or an idle marker."""
    active_id = engine.active_recipe_id
    msg = {"type": "session", "active_recipe_id": active_id, "session": None}
    if active_id:
        msg["session"] = engine.current_state(active_id)
    return msg


async def notify(message, severity="info"):
    await manager.broadcast({"type": "notice", "message": message, "severity": severity})


async def _on_tick(result):
    """Ticker callback: push state, announce automatic transitions."""
    await manager.broadcast(build_session())
    if result.get("auto_advanced"):
        if result.get("completed"):
            await notify("Recipe completed", "success")
        else:
            await notify("Auto advanced to next step")


def _sync_ticker(result):
    """Keep the tick source in lock-step with the session's running flag."""
    sess = result.get("session")
    if sess and sess["is_running"]:
        ticker.start(sess["recipe_id"], _on_tick)
    else:
        ticker.stop()


# --- Pydantic models ---


class StepModel(BaseModel):
    id: str | None = None
    description: str = ""
    type: str = "instruction"
    duration_minutes: int
    cooking_settings: dict | None = None
    ingredient_ids: list[str] = []

    @field_validator("duration_minutes")
    @classmethod
    def positive_minutes(cls, v):
        if v <= 0:
            raise ValueError("duration_minutes must be positive")
        return v

    @field_validator("type")
    @classmethod
    def known_type(cls, v):
        if v not in STEP_TYPES:
            raise ValueError(f"type must be one of {', '.join(STEP_TYPES)}")
        return v


class IngredientModel(BaseModel):
    id: str | None = None
    name: str
    quantity: float = 0
    unit: str = ""


class RecipeRequest(BaseModel):
    title: str
    cuisine: str = ""
    difficulty: str = "Easy"
    ingredients: list[IngredientModel] = []
    steps: list[StepModel]
    is_favorite: bool = False

    @field_validator("difficulty")
    @classmethod
    def known_difficulty(cls, v):
        if v not in DIFFICULTIES:
            raise ValueError(f"difficulty must be one of {', '.join(DIFFICULTIES)}")
        return v


class AdvanceRequest(BaseModel):
    is_final: bool | None = None
    next_step_remaining_seconds: int | None = None
    next_overall_remaining_seconds: int | None = None


def _recipe_payload(req: RecipeRequest):
    return req.model_dump(exclude_none=True)


# --- Recipe endpoints ---


@app.get("/api/recipes")
async def api_list_recipes(difficulty: str | None = None, sort: str = "asc", favorites: bool = False):
    return catalog.list(difficulty=difficulty, sort=sort, favorites_only=favorites)


@app.post("/api/recipes")
async def api_create_recipe(req: RecipeRequest):
    try:
        recipe = catalog.add(_recipe_payload(req))
    except ValueError as e:
        return JSONResponse({"ok": False, "error": str(e)}, status_code=422)
    return {"ok": True, "recipe": recipe}


@app.get("/api/recipes/{recipe_id}")
async def api_get_recipe(recipe_id: str):
    recipe = catalog.get(recipe_id)
    if not recipe:
        return JSONResponse({"error": "not found"}, status_code=404)
    return recipe


@app.put("/api/recipes/{recipe_id}")
async def api_update_recipe(recipe_id: str, req: RecipeRequest):
    if engine.active_recipe_id == recipe_id:
        return JSONResponse({"ok": False, "error": "Recipe is being cooked"}, status_code=409)
    try:
        recipe = catalog.update(recipe_id, _recipe_payload(req))
    except ValueError as e:
        return JSONResponse({"ok": False, "error": str(e)}, status_code=422)
    if not recipe:
        return JSONResponse({"error": "not found"}, status_code=404)
    return {"ok": True, "recipe": recipe}


@app.delete("/api/recipes/{recipe_id}")
async def api_delete_recipe(recipe_id: str):
    if engine.active_recipe_id == recipe_id:
        return JSONResponse({"ok": False, "error": "Recipe is being cooked"}, status_code=409)
    if not catalog.delete(recipe_id):
        return JSONResponse({"error": "not found"}, status_code=404)
    return {"ok": True}


@app.post("/api/recipes/{recipe_id}/favorite")
async def api_toggle_favorite(recipe_id: str):
    recipe = catalog.toggle_favorite(recipe_id)
    if not recipe:
        return JSONResponse({"error": "not found"}, status_code=404)
    return {"ok": True, "is_favorite": recipe["is_favorite"]}


# --- Session endpoints ---


@app.get("/api/session")
async def api_get_session():
    return build_session()


@app.get("/api/session/{recipe_id}")
async def api_get_recipe_session(recipe_id: str):
    return {"recipe_id": recipe_id, "session": engine.current_state(recipe_id)}


@app.post("/api/session/{recipe_id}/start")
async def api_start_session(recipe_id: str):
    recipe = catalog.get(recipe_id)
    if not recipe:
        return JSONResponse({"ok": False, "error": "not found"}, status_code=404)
    result = engine.start(recipe_id, recipe)
    if not result["ok"]:
        if result["error"] == CONFLICT:
            await notify("Another session is active", "warning")
            return JSONResponse(result, status_code=409)
        if result["error"] == INVALID_RECIPE:
            return JSONResponse(result, status_code=422)
        return JSONResponse(result, status_code=400)
    _sync_ticker(result)
    await manager.broadcast(build_session())
    await notify("Session started", "success")
    return result


@app.post("/api/session/{recipe_id}/pause")
async def api_pause_session(recipe_id: str):
    result = engine.pause(recipe_id)
    if result["ok"]:
        _sync_ticker(result)
        await manager.broadcast(build_session())
        await notify("Paused")
    return result


@app.post("/api/session/{recipe_id}/resume")
async def api_resume_session(recipe_id: str):
    result = engine.resume(recipe_id)
    if result["ok"]:
        _sync_ticker(result)
        await manager.broadcast(build_session())
        await notify("Resumed")
    return result


@app.post("/api/session/{recipe_id}/toggle")
async def api_toggle_session(recipe_id: str):
    result = engine.toggle(recipe_id)
    if result["ok"]:
        _sync_ticker(result)
        await manager.broadcast(build_session())
        await notify("Resumed" if result["session"]["is_running"] else "Paused")
    return result


@app.post("/api/session/{recipe_id}/advance")
async def api_advance_session(recipe_id: str, req: AdvanceRequest | None = None):
    req = req or AdvanceRequest()
    result = engine.advance(
        recipe_id,
        is_final=req.is_final,
        next_step_remaining_seconds=req.next_step_remaining_seconds,
        next_overall_remaining_seconds=req.next_overall_remaining_seconds,
    )
    if result["ok"]:
        _sync_ticker(result)
        await manager.broadcast(build_session())
        if result.get("completed"):
            await notify("Recipe completed", "success")
        else:
            await notify("Moved to next step")
    return result


@app.post("/api/session/{recipe_id}/end")
async def api_end_session(recipe_id: str):
    result = engine.end(recipe_id)
    if result["ok"]:
        _sync_ticker(result)
        await manager.broadcast(build_session())
        await notify("Session ended", "warning")
    return result


@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await manager.connect(ws)
    try:
        await ws.send_text(json.dumps(build_session()))
    except Exception:
        pass
    try:
        while True:
            await ws.receive_text()
    except WebSocketDisconnect:
        manager.disconnect(ws)
    except Exception:
        manager.disconnect(ws)


@app.get("/{full_path:path}")
async def spa_catch_all(request: Request, full_path: str):
    """Serve static files or fall back to index.html for SPA routing."""
    static_dir = os.path.realpath(os.path.join(os.path.dirname(__file__) or ".", "static"))
    file_path = os.path.realpath(os.path.join(static_dir, full_path))
    # Path traversal guard: file must be inside static_dir
    if not file_path.startswith(static_dir + os.sep) and file_path != static_dir:
        return JSONResponse({"error": "not found"}, status_code=404)
    if full_path and os.path.isfile(file_path):
        return FileResponse(file_path)
    index_path = os.path.join(static_dir, "index.html")
    if os.path.isfile(index_path):
        return FileResponse(index_path, headers={"Cache-Control": "no-cache, no-store, must-revalidate"})
    return JSONResponse({"error": "not found"}, status_code=404)


if __name__ == "__main__":
    ssl_args = {}
    cert = os.path.join(os.path.dirname(__file__) or ".", "cert.pem")
    key = os.path.join(os.path.dirname(__file__) or ".", "key.pem")
    if os.path.isfile(cert) and os.path.isfile(key):
        ssl_args = {"ssl_keyfile": key, "ssl_certfile": cert}
        log.info("HTTPS enabled (cert.pem + key.pem)")
    uvicorn.run(app, host=HOST, port=PORT, **ssl_args)
