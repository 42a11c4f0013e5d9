import asyncio
from typing import Annotated, AsyncIterator, Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException

from timeclock.core.clock import Clock, system_clock
from timeclock.core.config import settings
from timeclock.core.exceptions import (
    WorkSessionError,
    ValidationError,
    NoActiveSessionError,
    UnauthenticatedError,
    ConstraintViolation,
    NotFoundError,
    TransientPersistenceError,
)
from timeclock.core.identity import StaticIdentity
from timeclock.repositories.work_session_repository import WorkSessionRepository
from timeclock.services.session_lifecycle import SessionLifecycleController


# =============================================================================
# Controller registry: one lifecycle controller per owner
# =============================================================================

class SessionControllerRegistry:
    """
    Keeps one initialized SessionLifecycleController per owner so the
    in-flight guard and ticker are shared by all requests of that owner.

    Controllers are created and initialized under a per-owner lock, so one
    owner's database round trips never hold up another owner. Every get()
    takes a reference that release() gives back; once an owner has no
    request in flight and its controller is idle (no session, nothing
    pending) the controller is evicted and rebuilt from the store on the
    next request.
    """

    def __init__(
        self,
        repository: Optional[WorkSessionRepository] = None,
        clock: Optional[Clock] = None,
        tick_interval: Optional[float] = None,
    ):
        self.repository = repository or WorkSessionRepository()
        self.clock = clock or system_clock
        self.tick_interval = tick_interval
        self._controllers: dict[UUID, SessionLifecycleController] = {}
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._refs: dict[UUID, int] = {}

    def __len__(self) -> int:
        return len(self._controllers)

    def __contains__(self, user_id: UUID) -> bool:
        return user_id in self._controllers

    async def get(self, user_id: UUID) -> SessionLifecycleController:
        """Return the owner's controller; pair every successful call with release()."""
        self._refs[user_id] = self._refs.get(user_id, 0) + 1
        try:
            async with self._locks.setdefault(user_id, asyncio.Lock()):
                controller = self._controllers.get(user_id)
                if controller is None:
                    controller = SessionLifecycleController(
                        self.repository,
                        StaticIdentity(user_id),
                        clock=self.clock,
                        tick_interval=self.tick_interval,
                    )
                    # Only initialized controllers are registered; a failed
                    # start-up is retried by the next request.
                    await controller.initialize()
                    self._controllers[user_id] = controller
                return controller
        except BaseException:
            await self.release(user_id)
            raise

    async def release(self, user_id: UUID) -> None:
        """Give back a reference; evict the controller once unused and idle."""
        refs = self._refs.get(user_id, 0) - 1
        if refs > 0:
            self._refs[user_id] = refs
            return
        self._refs.pop(user_id, None)
        # Nobody holds or waits on the lock any more
        self._locks.pop(user_id, None)
        controller = self._controllers.get(user_id)
        if controller is not None and controller.idle:
            del self._controllers[user_id]
            await controller.close()

    async def close_all(self) -> None:
        controllers, self._controllers = list(self._controllers.values()), {}
        self._locks = {}
        self._refs = {}
        for controller in controllers:
            await controller.close()


controller_registry = SessionControllerRegistry(tick_interval=settings.TICK_INTERVAL_SECONDS)


def get_registry() -> SessionControllerRegistry:
    return controller_registry


Registry = Annotated[SessionControllerRegistry, Depends(get_registry)]


# =============================================================================
# Identity: owner id from the X-User-Id header
# =============================================================================

async def get_current_user_id(
    x_user_id: Annotated[Optional[str], Header(alias="X-User-Id")] = None,
) -> UUID:
    """
    Resolve the owner of the request.

    Authentication happens upstream; the gateway forwards the user id.
    """
    if not x_user_id:
        raise HTTPException(
            status_code=401,
            detail={"code": "UNAUTHENTICATED", "message": "No hay ningún usuario autenticado."}
        )
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=401,
            detail={"code": "INVALID_USER_ID", "message": "Identificador de usuario no válido."}
        )


CurrentUserId = Annotated[UUID, Depends(get_current_user_id)]


async def get_controller(user_id: CurrentUserId, registry: Registry) -> AsyncIterator[SessionLifecycleController]:
    try:
        controller = await registry.get(user_id)
    except WorkSessionError as e:
        raise to_http_exception(e) from e
    try:
        yield controller
    finally:
        await registry.release(user_id)


SessionController = Annotated[SessionLifecycleController, Depends(get_controller)]


# =============================================================================
# Error mapping
# =============================================================================

def to_http_exception(error: WorkSessionError) -> HTTPException:
    """Map a work session error onto an HTTP status with a {code, message} body."""
    if isinstance(error, NoActiveSessionError):
        status_code = 404
    elif isinstance(error, ValidationError):
        status_code = 400 if error.code == "INVALID_DATE_RANGE" else 409
    elif isinstance(error, UnauthenticatedError):
        status_code = 401
    elif isinstance(error, ConstraintViolation):
        status_code = 409
    elif isinstance(error, NotFoundError):
        status_code = 404
    elif isinstance(error, TransientPersistenceError):
        status_code = 503
    else:
        status_code = 500
    return HTTPException(status_code=status_code, detail=error.to_detail())
