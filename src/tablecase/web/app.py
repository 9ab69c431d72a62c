from __future__ import annotations

import itertools
import json
import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterator

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from tablecase.application.services.export_service import ExportTask, StaticConfirmer
from tablecase.application.services.fetch_service import RowPageClient
from tablecase.application.services.progress import ProgressRecorder
from tablecase.core.config import AppPaths, EndpointSettings, load_endpoint_settings
from tablecase.core.errors import ValidationError
from tablecase.core.ids import new_uuid
from tablecase.core.time import now_utc_iso
from tablecase.domain.models.endpoint import EndpointInfo
from tablecase.domain.models.export import CsvConfig, ExportOutcome, ProgressEvent
from tablecase.infrastructure.files.export_paths import ExportPathPolicy, ExportTarget
from tablecase.infrastructure.remote.sync_client import SyncClient
from tablecase.infrastructure.store.row_store import RowStore

logger = logging.getLogger(__name__)

ClientFactory = Callable[[EndpointInfo], RowPageClient]


class ExportRequest(BaseModel):
    table_id: str
    server_url: str | None = None
    app_id: str | None = None
    username: str | None = None
    password: str | None = None
    anonymous: bool = False
    include_metadata: bool = False
    formatted: bool = False
    columns: list[str] | None = None
    null_value: str = ""


@dataclass(slots=True)
class ExportJob:
    id: str
    seq: int
    table_id: str
    created_at: str
    task: ExportTask
    recorder: ProgressRecorder

    def to_payload(self, *, include_events: bool = True) -> dict[str, Any]:
        events = self.recorder.snapshot()
        outcome = self.task.outcome
        payload: dict[str, Any] = {
            "id": self.id,
            "table_id": self.table_id,
            "created_at": self.created_at,
            "state": self.task.state.value,
            "percent": events[-1].percent if events else 0,
            "stage": next((e.stage_label for e in reversed(events) if e.stage_label), None),
            "outcome": outcome.to_payload() if outcome is not None else None,
        }
        if include_events:
            payload["events"] = [event.to_payload() for event in events]
        return payload


def create_app(
    paths: AppPaths,
    settings: EndpointSettings | None = None,
    client_factory: ClientFactory | None = None,
) -> FastAPI:
    app = FastAPI(title="tablecase", version="0.1.0")
    endpoint_settings = settings or load_endpoint_settings()
    path_policy = ExportPathPolicy(paths.download_dir)
    jobs: dict[str, ExportJob] = {}
    jobs_lock = threading.Lock()
    job_counter = itertools.count(1)

    def default_client_factory(endpoint: EndpointInfo) -> RowPageClient:
        return SyncClient(
            endpoint,
            fetch_limit=endpoint_settings.fetch_limit,
            timeout_seconds=endpoint_settings.timeout_seconds,
        )

    make_client = client_factory or default_client_factory

    def build_task(req: ExportRequest) -> tuple[ExportTask, ExportTarget]:
        endpoint = EndpointInfo(
            server_url=req.server_url if req.server_url is not None else endpoint_settings.server_url,
            app_id=req.app_id if req.app_id is not None else endpoint_settings.app_id,
            username=req.username if req.username is not None else endpoint_settings.username,
            password=req.password if req.password is not None else endpoint_settings.password,
        ).sanitized(anonymous=req.anonymous)
        table_id = req.table_id.strip()
        try:
            endpoint.validate()
            if not table_id:
                raise ValidationError("Table ID cannot be empty.")
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        config = CsvConfig(
            columns=tuple(req.columns) if req.columns else None,
            include_metadata=req.include_metadata,
            formatted=req.formatted,
            null_value=req.null_value,
        )
        target = ExportTarget(endpoint=endpoint, table_id=table_id, config=config)
        task = ExportTask(
            client=make_client(endpoint),
            store=RowStore(table_id),
            config=config,
            target=target,
            path_policy=path_policy,
            confirmer=StaticConfirmer(),
            interactive=False,
        )
        return task, target

    def register_job(task: ExportTask, target: ExportTarget) -> ExportJob:
        recorder = ProgressRecorder()
        task.subscribe(recorder)
        with jobs_lock:
            job = ExportJob(
                id=new_uuid(),
                seq=next(job_counter),
                table_id=target.table_id,
                created_at=now_utc_iso(),
                task=task,
                recorder=recorder,
            )
            jobs[job.id] = job
        return job

    def get_job(job_id: str) -> ExportJob:
        with jobs_lock:
            job = jobs.get(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail=f"Export job not found: {job_id}")
        return job

    def _sse_event(event: str, payload: dict[str, Any]) -> str:
        return f"event: {event}\ndata: {json.dumps(payload, ensure_ascii=True)}\n\n"

    @app.on_event("shutdown")
    def _cancel_running_jobs() -> None:
        with jobs_lock:
            running = [job for job in jobs.values() if not job.task.state.is_terminal]
        for job in running:
            logger.info("Cancelling export job %s on shutdown", job.id)
            job.task.cancel()

    @app.get("/api/health")
    def api_health() -> dict[str, Any]:
        return {"ok": True, "download_dir": str(paths.download_dir)}

    @app.post("/api/exports")
    def api_start_export(req: ExportRequest) -> dict[str, Any]:
        task, target = build_task(req)
        job = register_job(task, target)
        task.start()
        logger.info("Started export job %s for table %s", job.id, job.table_id)
        return {"ok": True, "job": job.to_payload()}

    @app.get("/api/exports")
    def api_list_exports(limit: int = Query(default=100, ge=1, le=10000)) -> dict[str, Any]:
        with jobs_lock:
            listed = list(jobs.values())
        listed.sort(key=lambda item: item.seq, reverse=True)
        return {
            "ok": True,
            "count": len(listed),
            "jobs": [job.to_payload(include_events=False) for job in listed[:limit]],
        }

    @app.get("/api/exports/{job_id}")
    def api_export_status(job_id: str) -> dict[str, Any]:
        return {"ok": True, "job": get_job(job_id).to_payload()}

    @app.post("/api/exports/{job_id}/cancel")
    def api_cancel_export(job_id: str) -> dict[str, Any]:
        job = get_job(job_id)
        if job.task.state.is_terminal:
            raise HTTPException(status_code=409, detail=f"Export job already {job.task.state.value}: {job_id}")
        job.task.cancel()
        return {"ok": True, "job": job.to_payload(include_events=False)}

    @app.post("/api/exports/stream")
    def api_stream_export(req: ExportRequest) -> StreamingResponse:
        task, target = build_task(req)
        job = register_job(task, target)
        event_queue: queue.Queue[tuple[str, dict[str, Any]] | None] = queue.Queue()

        def on_progress(event: ProgressEvent) -> None:
            event_queue.put(("progress", event.to_payload()))

        def on_outcome(outcome: ExportOutcome) -> None:
            event_queue.put(("outcome", {"job_id": job.id, **outcome.to_payload()}))
            event_queue.put(None)

        task.subscribe(on_progress)
        task.on_outcome(on_outcome)

        def iterator() -> Iterator[str]:
            yield _sse_event("job", {"job_id": job.id, "table_id": job.table_id})
            while True:
                item = event_queue.get()
                if item is None:
                    break
                event, payload = item
                yield _sse_event(event, payload)

        task.start()
        return StreamingResponse(
            iterator(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
            },
        )

    return app
