import traceback
from datetime import datetime, timedelta, timezone

from flask import Request, current_app

from .. import db
from ..models import DeveloperLog

MAX_BODY_LOG_CHARS = 4096


def _corpo_requisicao(request: Request | None) -> str | None:
    if request is None:
        return None
    try:
        mt = (getattr(request, "mimetype", None) or "").lower()
        # Tipos binários comuns não devem ser logados
        if mt.startswith("image/") or mt in (
            "application/pdf",
            "application/octet-stream",
        ):
            return "[Corpo binário não logado]"
        texto = request.get_data(as_text=True)
        return (texto or "")[:MAX_BODY_LOG_CHARS]
    except Exception as e_body:
        return f"Falha ao ler o body: {e_body}"


def record_exception(
    error: Exception,
    request: Request | None,
    user_id: str | None,
) -> DeveloperLog | None:
    """
    Grava uma exceção não tratada em ``developer_logs``.
    Chamada pelo handler global de erros; nunca propaga falhas próprias.
    """
    current_app.logger.error(
        "Exceção não tratada: %s", error, exc_info=error
    )
    try:
        log = DeveloperLog()
        log.error_type = type(error).__name__
        log.traceback = "".join(
            traceback.format_exception(
                type(error), error, error.__traceback__
            )
        )
        log.request_url = request.url if request else "N/A"
        log.request_method = request.method if request else "N/A"
        log.request_body = _corpo_requisicao(request)
        log.user_id = user_id

        db.session.add(log)
        db.session.commit()
        return log
    except Exception as e:
        # Se o próprio log falhar, faz rollback e registra no logger
        db.session.rollback()
        current_app.logger.critical(
            f"Falha ao gravar log de erro no DB: {e}"
        )
        return None


def purge_old_logs(days: int | None = None) -> int:
    """
    Remove registros de log mais antigos que ``days``
    (padrão ``LOG_PURGE_DAYS``). Chamada por um job agendado.
    """
    if days is None:
        days = int(current_app.config.get("LOG_PURGE_DAYS", 30))
    try:
        cutoff_date = datetime.now(timezone.utc) - timedelta(days=days)
        deleted_count = (
            db.session.query(DeveloperLog)
            .filter(DeveloperLog.timestamp < cutoff_date)
            .delete(synchronize_session=False)
        )
        db.session.commit()
        current_app.logger.info(
            f"Log Purge: {deleted_count} logs antigos removidos."
        )
        return deleted_count
    except Exception as e:
        db.session.rollback()
        current_app.logger.critical(f"Falha ao purgar logs antigos: {e}")
        return 0


def get_logs_recentes(limite: int = 50) -> list[DeveloperLog]:
    """Logs mais recentes primeiro."""
    return (
        db.session.query(DeveloperLog)
        .order_by(DeveloperLog.timestamp.desc())
        .limit(limite)
        .all()
    )
