from __future__ import annotations

import logging
from typing import Callable, Optional

from app.interview.controller import InterviewSessionController
from app.interview.errors import OperationResult, error_for
from app.interview.gateway import InterviewGateway
from app.interview.models import InterviewConfig, SessionState
from app.session.registry import SessionRegistry, session_registry
from app.system_metrics import set_metric
from app.transcript.engine import TranscriptStreamAdapter
from app.transcript.models import RecognitionBackend

logger = logging.getLogger("session_runtime")


class InterviewRuntime:
    """
    Builds controllers and keeps the registry in step with their lifecycle.
    """

    def __init__(
        self,
        gateway: InterviewGateway,
        backend_factory: Optional[Callable[[], RecognitionBackend]] = None,
        registry: SessionRegistry = session_registry,
        controller_factory: Optional[Callable[..., InterviewSessionController]] = None,
    ):
        self.gateway = gateway
        self.backend_factory = backend_factory
        self.registry = registry
        self.controller_factory = controller_factory or InterviewSessionController

    def new_controller(self) -> InterviewSessionController:
        adapter = None
        if self.backend_factory is not None:
            adapter = TranscriptStreamAdapter(self.backend_factory())
        return self.controller_factory(self.gateway, adapter=adapter)

    async def create(self, config: InterviewConfig) -> tuple[InterviewSessionController, OperationResult]:
        controller = self.new_controller()
        result = await controller.create(config)
        if result.success:
            self.registry.register(controller.session_id, controller)
            set_metric("sessions_registered", len(self.registry))
        return controller, result

    async def controller_for(self, session_id: str) -> InterviewSessionController:
        controller = self.registry.controller(session_id)
        if controller is not None:
            self.registry.touch(session_id)
            return controller

        controller = self.new_controller()
        result = await controller.load(session_id)
        if not result.success:
            await controller.close()
            raise error_for(result.error_kind, result.error or f"Interview {session_id} could not be loaded")

        self.registry.register(session_id, controller)
        set_metric("sessions_registered", len(self.registry))
        logger.info("Controller restored from store | session_id=%s state=%s", session_id, controller.state.value)
        return controller

    def sync(self, controller: InterviewSessionController) -> None:
        if controller.state == SessionState.COMPLETED:
            self.registry.mark_inactive(controller.session_id)
        else:
            self.registry.touch(controller.session_id)

    def release(self, controller: InterviewSessionController) -> None:
        """
        Called when a client lets go of the session; cleanup may reclaim it
        once the TTL passes unless another request touches it first.
        """
        self.registry.mark_inactive(controller.session_id)

    async def cleanup(self, ttl_sec: float, idle_ttl_sec: Optional[float] = None) -> int:
        stale = self.registry.cleanup_inactive(ttl_sec, idle_ttl_sec)
        for controller in stale:
            await controller.close()
        set_metric("sessions_registered", len(self.registry))
        if stale:
            logger.info("Closed stale controllers | count=%s", len(stale))
        return len(stale)
