"""
meshd.server — HTTP and WebSocket surface for a mesh.

Routes (optionally under a prefix such as ``/api``):

    GET  /mesh/nodes               registry listing
    POST /mesh/register            register or refresh a node
    GET  /terminal/{id}/connect    WebSocket terminal session
    GET  /terminal/{id}/config     node config
    PUT  /terminal/{id}/config     patch node config
    POST /terminal/{id}/execute    relay entry point

JSON responses use the envelope ``{success, data?, error?}``.
"""

import logging
from typing import Any

import aiohttp
from aiohttp import web

from core.errors import InvalidConfig, MeshError, StorageError
from core.types import RegistryEntry
from synapse.mesh import Mesh
from synapse.relay import RelayContext

logger = logging.getLogger(__name__)

MESH = web.AppKey("mesh", Mesh)


class BadRequest(Exception):
    """Malformed request body"""


def ok(data: Any = None, status: int = 200) -> web.Response:
    return web.json_response({"success": True, "data": data}, status=status)


def fail(error: str, status: int) -> web.Response:
    return web.json_response({"success": False, "error": error}, status=status)


@web.middleware
async def envelope_errors(request: web.Request, handler):
    """Turn mesh errors raised by handlers into envelope responses"""
    try:
        return await handler(request)
    except BadRequest as e:
        return fail(str(e), 400)
    except InvalidConfig as e:
        return fail(str(e), 400)
    except StorageError as e:
        logger.error(f"{request.method} {request.path}: {e}")
        return fail(str(e), 500)
    except MeshError as e:
        logger.warning(f"{request.method} {request.path}: {e.render()}")
        return fail(e.render(), 500)
    except web.HTTPException:
        raise
    except Exception:
        logger.exception(f"{request.method} {request.path} failed")
        return fail("internal error", 500)


async def read_json(request: web.Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        raise BadRequest("request body must be JSON")


# ── Registry ────────────────────────────────────────────────────

async def list_nodes(request: web.Request) -> web.Response:
    entries = await request.app[MESH].registry.list_nodes()
    return ok([e.to_dict() for e in entries])


async def register_node(request: web.Request) -> web.Response:
    body = await read_json(request)
    if isinstance(body, dict):
        # createdAt is assigned by the registry
        body.pop("createdAt", None)
    entry = RegistryEntry.from_dict(body)
    stored = await request.app[MESH].registry.register(entry)
    return ok(stored.to_dict())


# ── Terminal ────────────────────────────────────────────────────

async def connect(request: web.Request) -> web.StreamResponse:
    ws = web.WebSocketResponse(heartbeat=30.0)
    if not ws.can_prepare(request).ok:
        return web.Response(status=426, text="Expected Upgrade: websocket")
    await ws.prepare(request)

    node = request.app[MESH].node(request.match_info["id"])
    try:
        session = await node.open_session(ws.send_str)
    except StorageError as e:
        logger.error(f"Node {node.id}: cannot open session: {e}")
        await ws.send_str(f"[ERROR] {e.render()}\r\n")
        await ws.close()
        return ws

    try:
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                await node.on_session_data(session, msg.data)
            elif msg.type == aiohttp.WSMsgType.BINARY:
                await node.on_session_data(session, msg.data.decode("utf-8", errors="replace"))
            elif msg.type == aiohttp.WSMsgType.ERROR:
                logger.warning(f"Node {node.id}: session {session.id} error: {ws.exception()}")
    except Exception:
        # Handshake already sent; report by closing the socket
        logger.exception(f"Node {node.id}: session {session.id} failed")
        await ws.close(code=aiohttp.WSCloseCode.INTERNAL_ERROR, message=b"internal error")
    finally:
        node.on_session_close(session)
    return ws


async def get_config(request: web.Request) -> web.Response:
    node = request.app[MESH].node(request.match_info["id"])
    config = await node.get_config()
    return ok(config.to_dict())


async def put_config(request: web.Request) -> web.Response:
    patch = await read_json(request)
    if not isinstance(patch, dict):
        raise BadRequest("config patch must be an object")
    node = request.app[MESH].node(request.match_info["id"])
    config = await node.update_config(patch)
    return ok(config.to_dict())


async def execute(request: web.Request) -> web.Response:
    body = await read_json(request)
    if not isinstance(body, dict):
        raise BadRequest("body must be an object")
    prompt = body.get("prompt")
    if not isinstance(prompt, str):
        raise BadRequest("prompt must be a string")
    try:
        context = RelayContext.from_dict(body.get("callerId"), body.get("context"))
    except ValueError as e:
        raise BadRequest(str(e))

    node = request.app[MESH].node(request.match_info["id"])
    text = await node.execute(prompt, context.caller_id, context)
    return ok(text)


def create_app(mesh: Mesh, prefix: str = "") -> web.Application:
    """Build the aiohttp application serving ``mesh``"""
    prefix = prefix.rstrip("/")
    app = web.Application(middlewares=[envelope_errors])
    app[MESH] = mesh

    app.router.add_get(f"{prefix}/mesh/nodes", list_nodes)
    app.router.add_post(f"{prefix}/mesh/register", register_node)
    app.router.add_get(f"{prefix}/terminal/{{id}}/connect", connect)
    app.router.add_get(f"{prefix}/terminal/{{id}}/config", get_config)
    app.router.add_put(f"{prefix}/terminal/{{id}}/config", put_config)
    app.router.add_post(f"{prefix}/terminal/{{id}}/execute", execute)

    async def close_mesh(app: web.Application):
        await app[MESH].close()

    app.on_cleanup.append(close_mesh)
    return app
