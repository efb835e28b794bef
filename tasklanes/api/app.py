"""FastAPI web application for tasklanes."""

import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import Body, Depends, FastAPI, Query, Request, WebSocket, WebSocketDisconnect, status
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, Field

from tasklanes.api.errors import error_response
from tasklanes.auth.dependencies import get_current_user
from tasklanes.auth.jwt import user_from_token
from tasklanes.auth.profile import ensure_user_profile
from tasklanes.auth.session import AuthSession
from tasklanes.engine.views import (
    available_tags,
    dashboard_stats,
    make_tag,
    recently_completed,
    search_tasks,
    upcoming_tasks,
)
from tasklanes.errors import NotFound, SyncFailed, TaskLanesError, ValidationError
from tasklanes.models.task import TaskTag
from tasklanes.models.user import CurrentUser
from tasklanes.store.ports import DocumentStore
from tasklanes.sync.codec import to_document_list
from tasklanes.sync.controller import TaskSnapshot, TaskSyncController

load_dotenv()

logger = logging.getLogger(__name__)

# "sql" (default) or "memory"
STORE_BACKEND = os.getenv("STORE_BACKEND", "sql").lower()

# How long a write waits for its result to show up in the live snapshot
SYNC_TIMEOUT_SEC = float(os.getenv("SYNC_TIMEOUT_SEC", "5"))

# Controllers unused for this long are stopped, checked every CONTROLLER_SWEEP_SEC
CONTROLLER_IDLE_SEC = float(os.getenv("CONTROLLER_IDLE_SEC", "300"))
CONTROLLER_SWEEP_SEC = float(os.getenv("CONTROLLER_SWEEP_SEC", "60"))


class ControllerRegistry:
    """One running sync controller per signed-in user, all sharing one store.

    Requests and WebSocket streams hold a lease on their user's controller.
    Controllers with no lease that have been idle for ``idle_timeout``
    seconds are stopped by ``evict_idle``, which closes their subscription.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        idle_timeout: float = CONTROLLER_IDLE_SEC,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.idle_timeout = idle_timeout
        self._clock = clock
        self._controllers: Dict[str, TaskSyncController] = {}
        self._last_used: Dict[str, float] = {}
        self._leases: Dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def _checkout(self, user: CurrentUser, lease: bool) -> TaskSyncController:
        async with self._lock:
            controller = self._controllers.get(user.id)
            if controller is None:
                await ensure_user_profile(self.store, user)
                controller = TaskSyncController(self.store, AuthSession(user))
                await controller.start()
                self._controllers[user.id] = controller
                logger.info(f"Started task controller for user {user.id}")
            self._last_used[user.id] = self._clock()
            if lease:
                self._leases[user.id] = self._leases.get(user.id, 0) + 1
        return controller

    def _release(self, user_id: str) -> None:
        self._leases[user_id] = max(self._leases.get(user_id, 0) - 1, 0)
        if user_id in self._controllers:
            self._last_used[user_id] = self._clock()

    async def _loaded(self, controller: TaskSyncController, user_id: str) -> TaskSyncController:
        try:
            await controller.wait_for(lambda s: not s.loading, timeout=SYNC_TIMEOUT_SEC)
        except asyncio.TimeoutError as e:
            logger.error(f"Tasks for user {user_id} did not load within {SYNC_TIMEOUT_SEC}s")
            raise SyncFailed(f"Tasks did not load within {SYNC_TIMEOUT_SEC}s", operation="subscribe") from e
        return controller

    async def get(self, user: CurrentUser) -> TaskSyncController:
        """Controller for ``user``, started and loaded on first use.

        Raises:
            SyncFailed: If the first snapshot does not arrive in time
        """
        controller = await self._checkout(user, lease=False)
        return await self._loaded(controller, user.id)

    @asynccontextmanager
    async def lease(self, user: CurrentUser) -> AsyncIterator[TaskSyncController]:
        """Loaded controller for ``user`` that is not evicted while the lease is held."""
        controller = await self._checkout(user, lease=True)
        try:
            yield await self._loaded(controller, user.id)
        finally:
            self._release(user.id)

    async def evict_idle(self) -> int:
        """Stop every unleased controller idle for at least ``idle_timeout``.

        Returns:
            Number of controllers stopped
        """
        now = self._clock()
        async with self._lock:
            idle = [
                user_id for user_id, used in self._last_used.items()
                if not self._leases.get(user_id) and now - used >= self.idle_timeout
            ]
            for user_id in idle:
                controller = self._controllers.pop(user_id)
                del self._last_used[user_id]
                self._leases.pop(user_id, None)
                await controller.stop()
                logger.info(f"Stopped idle task controller for user {user_id}")
        return len(idle)

    def __len__(self) -> int:
        return len(self._controllers)

    async def close(self) -> None:
        for controller in list(self._controllers.values()):
            await controller.stop()
        self._controllers.clear()
        self._last_used.clear()
        self._leases.clear()


async def sweep_idle_controllers(registry: ControllerRegistry, interval: float) -> None:
    """Evict idle controllers every ``interval`` seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        evicted = await registry.evict_idle()
        if evicted:
            logger.debug(f"Evicted {evicted} idle controller(s); {len(registry)} running")


def build_store() -> DocumentStore:
    if STORE_BACKEND == "memory":
        from tasklanes.store.memory import InMemoryDocumentStore
        return InMemoryDocumentStore()

    from tasklanes.database.database import DATABASE_URL
    from tasklanes.database.document_store import SqlDocumentStore
    return SqlDocumentStore.from_url(DATABASE_URL)


# Request/response models
class MoveRequest(BaseModel):
    """Body for moving a task to another lane."""
    status: str = Field(..., description="Destination lane")


class ReorderRequest(BaseModel):
    """Body for placing a task at a position in a lane."""
    source_status: str
    destination_status: str
    new_order: int = Field(..., description="Target order index in the destination lane")


class DeleteBatchRequest(BaseModel):
    """Body for deleting several tasks at once."""
    task_ids: List[str]


class TagRequest(BaseModel):
    """Body for creating a custom tag."""
    name: str


class CreateTaskResponse(BaseModel):
    id: str


class DeleteBatchResponse(BaseModel):
    deleted_count: int


def snapshot_payload(snapshot: TaskSnapshot, tasks=None) -> Dict[str, Any]:
    return {
        "version": snapshot.version,
        "owner_id": snapshot.owner_id,
        "loading": snapshot.loading,
        "error": snapshot.error.to_dict() if snapshot.error else None,
        "tasks": to_document_list(list(snapshot.tasks if tasks is None else tasks)),
    }


async def _settle(controller: TaskSyncController, predicate: Callable[[TaskSnapshot], bool]) -> None:
    """Wait until a committed write is visible in the controller's snapshot."""
    try:
        await controller.wait_for(predicate, timeout=SYNC_TIMEOUT_SEC)
    except asyncio.TimeoutError:
        logger.warning(f"Snapshot for user {controller.owner_id} did not catch up within {SYNC_TIMEOUT_SEC}s")


def _touched(task_id: str, previous: TaskSnapshot) -> Callable[[TaskSnapshot], bool]:
    before = previous.get(task_id)
    before_updated = before.updated_at if before else None

    def predicate(snapshot: TaskSnapshot) -> bool:
        task = snapshot.get(task_id)
        return task is not None and task.updated_at != before_updated

    return predicate


async def _stream_snapshots(websocket: WebSocket, controller: TaskSyncController) -> None:
    """Send every snapshot until the client disconnects."""

    async def pump():
        async for snapshot in controller.snapshots():
            await websocket.send_json(snapshot_payload(snapshot))

    sender = asyncio.create_task(pump())
    try:
        # Client messages are ignored; receiving only detects the disconnect
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        sender.cancel()
        await asyncio.gather(sender, return_exceptions=True)


def create_app(store: Optional[DocumentStore] = None) -> FastAPI:
    """Build the API application.

    Args:
        store: Document store to use; built from the environment when omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.registry = ControllerRegistry(store or build_store())
        sweeper = asyncio.create_task(sweep_idle_controllers(app.state.registry, CONTROLLER_SWEEP_SEC))
        logger.info("tasklanes API starting up")
        yield
        sweeper.cancel()
        await asyncio.gather(sweeper, return_exceptions=True)
        await app.state.registry.close()
        close = getattr(app.state.registry.store, "close", None)
        if close is not None:
            close()
        logger.info("tasklanes API shut down")

    app = FastAPI(
        title="tasklanes API",
        description="Per-user task lanes kept in sync with a real-time document store",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.exception_handler(TaskLanesError)
    async def tasklanes_error_handler(request: Request, exc: TaskLanesError):
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        fields = [".".join(str(part) for part in err["loc"][1:]) for err in exc.errors()]
        return error_response(ValidationError("Invalid request body", operation=request.url.path, fields=fields))

    def get_registry(request: Request) -> ControllerRegistry:
        return request.app.state.registry

    async def get_controller(
        user: CurrentUser = Depends(get_current_user),
        registry: ControllerRegistry = Depends(get_registry),
    ) -> AsyncIterator[TaskSyncController]:
        async with registry.lease(user) as controller:
            yield controller

    @app.get("/health")
    async def health():
        """Liveness check."""
        return {"status": "ok"}

    @app.get("/tasks")
    async def list_tasks(
        q: Optional[str] = Query(None, description="Search title and description"),
        controller: TaskSyncController = Depends(get_controller),
    ):
        """Current snapshot, grouped by lane and sorted by order."""
        snapshot = controller.snapshot
        return snapshot_payload(snapshot, search_tasks(snapshot.tasks, q))

    @app.post("/tasks", status_code=status.HTTP_201_CREATED, response_model=CreateTaskResponse)
    async def create_task(
        body: Dict[str, Any] = Body(...),
        controller: TaskSyncController = Depends(get_controller),
    ):
        task_id = await controller.create(body)
        await _settle(controller, lambda s: s.get(task_id) is not None)
        return CreateTaskResponse(id=task_id)

    @app.get("/tasks/{task_id}")
    async def get_task(task_id: str, controller: TaskSyncController = Depends(get_controller)):
        task = controller.get(task_id)
        if task is None:
            raise NotFound(f"Task {task_id} not found", operation="get", task_id=task_id)
        return task.model_dump(mode="json")

    @app.patch("/tasks/{task_id}")
    async def update_task(
        task_id: str,
        body: Dict[str, Any] = Body(...),
        controller: TaskSyncController = Depends(get_controller),
    ):
        previous = controller.snapshot
        await controller.update(task_id, body)
        await _settle(controller, _touched(task_id, previous))
        return controller.get(task_id).model_dump(mode="json")

    @app.post("/tasks/{task_id}/complete")
    async def complete_task(task_id: str, controller: TaskSyncController = Depends(get_controller)):
        previous = controller.snapshot
        await controller.complete(task_id)
        await _settle(controller, _touched(task_id, previous))
        return controller.get(task_id).model_dump(mode="json")

    @app.post("/tasks/{task_id}/move")
    async def move_task(
        task_id: str,
        body: MoveRequest,
        controller: TaskSyncController = Depends(get_controller),
    ):
        previous = controller.snapshot
        await controller.move(task_id, body.status)
        await _settle(controller, _touched(task_id, previous))
        return controller.get(task_id).model_dump(mode="json")

    @app.post("/tasks/{task_id}/reorder")
    async def reorder_task(
        task_id: str,
        body: ReorderRequest,
        controller: TaskSyncController = Depends(get_controller),
    ):
        previous = controller.snapshot
        await controller.reorder(task_id, body.source_status, body.destination_status, body.new_order)
        await _settle(controller, _touched(task_id, previous))
        return snapshot_payload(controller.snapshot)

    @app.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_task(task_id: str, controller: TaskSyncController = Depends(get_controller)):
        await controller.delete(task_id)
        await _settle(controller, lambda s: s.get(task_id) is None)

    @app.post("/tasks/delete-batch", response_model=DeleteBatchResponse)
    async def delete_tasks(
        body: DeleteBatchRequest,
        controller: TaskSyncController = Depends(get_controller),
    ):
        deleted = await controller.delete_batch(body.task_ids)
        await _settle(controller, lambda s: all(s.get(task_id) is None for task_id in body.task_ids))
        return DeleteBatchResponse(deleted_count=deleted)

    @app.get("/tags", response_model=List[TaskTag])
    async def list_tags(controller: TaskSyncController = Depends(get_controller)):
        """Predefined tags plus every custom tag in use."""
        return available_tags(controller.tasks)

    @app.post("/tags", status_code=status.HTTP_201_CREATED, response_model=TaskTag)
    async def create_tag(body: TagRequest, controller: TaskSyncController = Depends(get_controller)):
        """New custom tag with the next palette color. Tags are stored on the tasks that use them."""
        try:
            return make_tag(body.name, existing=available_tags(controller.tasks))
        except ValueError as e:
            raise ValidationError(str(e), operation="create_tag", fields=["name"]) from e

    @app.get("/dashboard")
    async def dashboard(controller: TaskSyncController = Depends(get_controller)):
        tasks = controller.tasks
        return {
            "stats": dashboard_stats(tasks).to_dict(),
            "upcoming": to_document_list(upcoming_tasks(tasks)),
            "recently_completed": to_document_list(recently_completed(tasks)),
        }

    @app.websocket("/ws/tasks")
    async def stream_tasks(websocket: WebSocket, token: str = Query("")):
        """Stream the caller's full snapshot on every change."""
        user = user_from_token(token) if token else None
        if user is None:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        await websocket.accept()
        try:
            async with websocket.app.state.registry.lease(user) as controller:
                logger.info(f"WebSocket stream opened for user {user.id}")
                await _stream_snapshots(websocket, controller)
                logger.info(f"WebSocket stream closed for user {user.id}")
        except SyncFailed as e:
            logger.error(f"WebSocket stream for user {user.id} failed to start: {e}")
            await websocket.close(code=status.WS_1011_INTERNAL_ERROR)

    return app


app = create_app()
