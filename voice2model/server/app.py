"""HTTP and WebSocket surface of the voice2model server."""

import asyncio
import logging

from aiohttp import web, WSMsgType

from ..errors import ConversionFailed
from ..services.notifier import ClientNotifier
from ..services.session_controller import SessionController
from ..storage.file_manager import FileManager

logger = logging.getLogger(__name__)

CONTROLLER_KEY = web.AppKey("controller", SessionController)
NOTIFIER_KEY = web.AppKey("notifier", ClientNotifier)
FILE_MANAGER_KEY = web.AppKey("file_manager", FileManager)

UPLOAD_FIELD = "audio"
STATIC_PREFIX = "/models"


@web.middleware
async def cors_middleware(request: web.Request, handler):
    if request.method == "OPTIONS":
        response = web.Response()
    else:
        response = await handler(request)
    response.headers["Access-Control-Allow-Origin"] = "*"
    response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
    response.headers["Access-Control-Allow-Headers"] = "Content-Type"
    return response


async def index(request: web.Request) -> web.Response:
    return web.Response(text="Server is running!")


async def status(request: web.Request) -> web.Response:
    return web.json_response(request.app[CONTROLLER_KEY].get_status())


async def start_recording(request: web.Request) -> web.Response:
    controller = request.app[CONTROLLER_KEY]
    try:
        await controller.start()
    except Exception as e:
        logger.error(f"Error starting recording: {e}")
        return web.Response(status=500, text=f"Error starting recording: {e}")
    return web.Response(text="Recording started")


async def stop_recording(request: web.Request) -> web.Response:
    controller = request.app[CONTROLLER_KEY]
    try:
        await controller.stop()
    except Exception as e:
        logger.error(f"Error stopping recording: {e}")
        return web.Response(status=500, text=f"Error stopping recording: {e}")
    return web.Response(text="Recording stopped")


async def upload_audio(request: web.Request) -> web.Response:
    """Accept a pre-recorded file in the multipart field ``audio`` and process it."""
    controller = request.app[CONTROLLER_KEY]
    file_manager = request.app[FILE_MANAGER_KEY]

    if not request.content_type.startswith("multipart/"):
        return web.Response(status=400, text="No file uploaded.")

    upload_path = None
    reader = await request.multipart()
    async for part in reader:
        if part.name != UPLOAD_FIELD or not part.filename:
            continue
        upload_path = file_manager.upload_path(part.filename)
        size = 0
        f = await asyncio.to_thread(open, upload_path, "wb")
        try:
            while True:
                chunk = await part.read_chunk()
                if not chunk:
                    break
                size += len(chunk)
                await asyncio.to_thread(f.write, chunk)
        finally:
            await asyncio.to_thread(f.close)
        logger.info(f"Received file: {upload_path} ({size} bytes)")
        if size == 0:
            file_manager.discard_files(upload_path)
            return web.Response(status=400, text="Uploaded file is empty.")
        break

    if upload_path is None:
        logger.warning("No file uploaded.")
        return web.Response(status=400, text="No file uploaded.")

    try:
        asset = await controller.process_upload(upload_path)
    except ConversionFailed as e:
        logger.error(f"Error converting upload: {e}")
        return web.Response(status=400, text=f"Error processing audio: {e}")
    except Exception as e:
        logger.error(f"Error processing audio: {e}")
        return web.Response(status=500, text=f"Error processing audio: {e}")

    logger.info(f"Generated 3D model at: {asset.local_path}")
    return web.Response(text="Audio processed and model generated.")


async def websocket_handler(request: web.Request) -> web.WebSocketResponse:
    notifier = request.app[NOTIFIER_KEY]
    ws = web.WebSocketResponse(heartbeat=30.0)
    await ws.prepare(request)

    logger.info("WebSocket connection established")
    notifier.subscribe(ws)
    try:
        async for msg in ws:
            if msg.type == WSMsgType.ERROR:
                logger.warning(f"WebSocket closed with exception {ws.exception()}")
    finally:
        notifier.unsubscribe(ws)
        logger.info("WebSocket connection closed")
    return ws


async def _on_shutdown(app: web.Application) -> None:
    await app[NOTIFIER_KEY].close()
    await app[CONTROLLER_KEY].shutdown()


def create_app(controller: SessionController, notifier: ClientNotifier, file_manager: FileManager) -> web.Application:
    """Build the aiohttp application.

    Args:
        controller: Session controller handling start/stop/upload
        notifier: Client notifier that WebSocket observers subscribe to
        file_manager: Storage layout; its models directory is served statically
    """
    app = web.Application(middlewares=[cors_middleware])
    app[CONTROLLER_KEY] = controller
    app[NOTIFIER_KEY] = notifier
    app[FILE_MANAGER_KEY] = file_manager

    app.router.add_get("/", index)
    app.router.add_get("/status", status)
    app.router.add_post("/start", start_recording)
    app.router.add_post("/stop", stop_recording)
    app.router.add_post("/upload", upload_audio)
    app.router.add_get("/ws", websocket_handler)
    app.router.add_static(STATIC_PREFIX, file_manager.models_dir)

    app.on_shutdown.append(_on_shutdown)
    return app
