#!/usr/bin/env python3
"""
FastAPI server module for autoscaler API endpoints
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import uvicorn
from fastapi import Body, FastAPI, HTTPException
from fastapi.responses import JSONResponse

from .. import __version__
from ..core.autoscaler import Autoscaler
from ..core.exceptions import InvalidConfiguration, WorkloadNotFound
from ..core.scheduler import EvaluationScheduler
from ..events import EventType

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class APIServer:
    """FastAPI server for autoscaler endpoints"""

    def __init__(self, autoscaler: Autoscaler, scheduler: EvaluationScheduler,
                 config: Optional[Dict[str, Any]] = None):
        """
        Initialize API server

        Args:
            autoscaler: Autoscaler owning the registry and event recorder
            scheduler: Scheduler used for on-demand cycles
            config: Sanitized configuration dictionary served on /config
        """
        self.autoscaler = autoscaler
        self.scheduler = scheduler
        self.registry = autoscaler.registry
        self.recorder = autoscaler.recorder
        self.config = config or {}
        self.app = FastAPI(
            title="Replica Autoscaler API",
            description="API for managing horizontally autoscaled workloads",
            version=__version__
        )
        self._setup_routes()

    def _get_state(self, workload_id: str):
        try:
            return self.registry.get(workload_id)
        except WorkloadNotFound as e:
            raise HTTPException(status_code=404, detail=e.message)

    def _setup_routes(self):
        """Setup API routes"""

        @self.app.get("/")
        async def root():
            """Root endpoint"""
            return {
                "service": "Replica Autoscaler",
                "version": __version__,
                "timestamp": _now()
            }

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint"""
            states = self.registry.list()
            details = {
                "workloads": len(states),
                "active": sum(1 for s in states if s.spec.active),
                "in_flight": sum(1 for s in states if s.in_flight),
                "scheduler_running": self.scheduler.running,
                "ticks": self.scheduler.tick_count,
                "last_tick_at": self.scheduler.last_tick_at.isoformat() if self.scheduler.last_tick_at else None,
            }
            return JSONResponse(
                content={
                    "status": "healthy",
                    "timestamp": _now(),
                    "details": details
                },
                status_code=200
            )

        @self.app.get("/workloads")
        async def list_workloads():
            """List registered workloads with their current state"""
            workloads = [state.to_dict() for state in self.registry.list()]
            return {"workloads": workloads, "count": len(workloads)}

        @self.app.post("/workloads", status_code=201)
        async def register_workload(spec: Dict[str, Any] = Body(...)):
            """Register or reconfigure a workload"""
            try:
                state = self.registry.register(spec)
            except InvalidConfiguration as e:
                logger.warning(f"Rejected workload configuration: {e}")
                raise HTTPException(status_code=400, detail=e.message)

            self.recorder.record(EventType.WORKLOAD_REGISTERED, state.workload_id,
                                 "workload registered via API")
            return {
                "message": "Workload registered",
                "workload": state.to_dict(),
                "timestamp": _now()
            }

        @self.app.get("/workloads/{workload_id}")
        async def get_workload(workload_id: str):
            """Get one workload"""
            return self._get_state(workload_id).to_dict()

        @self.app.delete("/workloads/{workload_id}")
        async def deactivate_workload(workload_id: str):
            """Stop evaluating a workload; it stays registered"""
            self._get_state(workload_id)
            reason = "deactivated via API"
            state = self.registry.deactivate(workload_id, reason)
            self.recorder.record(EventType.WORKLOAD_DISABLED, workload_id, reason)
            return {
                "message": "Workload deactivated",
                "workload": state.to_dict(),
                "timestamp": _now()
            }

        @self.app.post("/workloads/{workload_id}/enable")
        async def enable_workload(workload_id: str):
            """Resume evaluating a deactivated workload"""
            self._get_state(workload_id)
            state = self.registry.enable(workload_id)
            return {
                "message": "Workload enabled",
                "workload": state.to_dict(),
                "timestamp": _now()
            }

        @self.app.get("/workloads/{workload_id}/events")
        async def get_events(workload_id: str, limit: int = 50):
            """Decision history of a workload, newest last"""
            self._get_state(workload_id)
            events = [event.to_dict() for event in self.recorder.history(workload_id, limit)]
            return {"workload_id": workload_id, "events": events, "count": len(events)}

        @self.app.post("/cycle")
        async def run_cycle():
            """Run one evaluation cycle for every active workload"""
            try:
                results = await self.scheduler.tick()
            except Exception as e:
                logger.error(f"Error running cycle: {e}")
                raise HTTPException(status_code=500, detail=str(e))
            return {
                "results": [result.model_dump(mode="json") for result in results],
                "count": len(results),
                "timestamp": _now()
            }

        @self.app.get("/config")
        async def get_config():
            """Get current autoscaler configuration (sanitized)"""
            return self.config

    def run(self, host: str = "0.0.0.0", port: int = 8080):
        """Run the API server"""
        logger.info(f"Starting API server on {host}:{port}")
        uvicorn.run(self.app, host=host, port=port, log_level="info")
