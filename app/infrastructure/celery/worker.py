# app/infrastructure/celery/worker.py
import logging
import os
import socket

from app.application.services.job_runner import JobRunner
from app.domain.models.job import Job, JobKind
from app.domain.ports.progress_sink import ProgressSink
from app.infrastructure.celery.celery_app import celery_app
from app.infrastructure.dependencies import (
    build_job_queue,
    build_process_use_case,
    build_render_use_case,
    get_artifact_store,
    get_dispatcher,
    get_vault,
)
from app.infrastructure.persistence.database import SessionLocal, init_db

WORKER_ID = f"{socket.gethostname()}:{os.getpid()}"

init_db()


def _run_job(job_id: str):
    logging.info(f"[{job_id}] >>> INICIO DE LA TAREA.")
    db_session = SessionLocal()
    try:
        artifact_store = get_artifact_store()
        queue = build_job_queue(db_session, get_dispatcher())
        process_use_case = build_process_use_case(db_session, queue, artifact_store, get_vault())
        render_use_case = build_render_use_case(db_session, artifact_store)

        def process(job: Job, progress: ProgressSink) -> None:
            process_use_case.execute(
                job.invoice_id,
                progress,
                retry=bool(job.payload.get("retry")),
                resume=job.attempts > 1,
            )

        def render(job: Job, progress: ProgressSink) -> None:
            render_use_case.execute(job.invoice_id)
            progress.report(100)

        runner = JobRunner(queue, {JobKind.PROCESS_INVOICE: process, JobKind.RENDER_INVOICE: render}, WORKER_ID)
        state = runner.run(job_id)
        logging.info(f"[{job_id}] Tarea terminada: {state.value if state else 'omitida'}.")
        return state.value if state else None
    except Exception:
        logging.error(f"[{job_id}] ¡ERROR! Se ha capturado una excepción. Iniciando rollback.", exc_info=True)
        db_session.rollback()
        raise
    finally:
        logging.info(f"[{job_id}] Cerrando sesión de base de datos.")
        db_session.close()


@celery_app.task(name="tasks.process_invoice")
def process_invoice(job_id: str):
    return _run_job(job_id)


@celery_app.task(name="tasks.render_invoice")
def render_invoice(job_id: str):
    return _run_job(job_id)


@celery_app.task(name="tasks.requeue_stalled_jobs")
def requeue_stalled_jobs():
    db_session = SessionLocal()
    try:
        requeued = build_job_queue(db_session, get_dispatcher()).requeue_stalled()
        if requeued:
            logging.warning(f"Jobs reencolados: {', '.join(requeued)}")
        return requeued
    finally:
        db_session.close()


@celery_app.task(name="tasks.monitor_failed_jobs")
def monitor_failed_jobs():
    db_session = SessionLocal()
    try:
        failed = build_job_queue(db_session, get_dispatcher()).failed_jobs(limit=10)
        if failed:
            logging.warning(f"{len(failed)} jobs fallidos pendientes de revisión.")
            for job in failed:
                logging.warning(f"[{job.invoice_id}] {job.id}: {job.last_error}")
        return len(failed)
    finally:
        db_session.close()
