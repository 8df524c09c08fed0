import logging
import os
import traceback
from importlib import import_module
from typing import Any

from flask import Flask, jsonify, request
from flask_apscheduler import APScheduler
from flask_login import LoginManager, current_user
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from werkzeug.exceptions import HTTPException

# Extensões globais
db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
scheduler = APScheduler()

BLUEPRINTS = (
    "auth_bp",
    "medicacoes_bp",
    "compromissos_bp",
    "perfis_bp",
    "relatorios_bp",
)


def create_app(_config_name: str | None = None) -> Flask:
    """Application Factory.

    Inicializa Flask, SQLAlchemy, Migrate, Login, o barramento de eventos
    de compromissos e registra blueprints e jobs agendados. Use
    ``"testing"`` para banco SQLite em memória e scheduler parado.
    """
    app = Flask(__name__, instance_relative_config=True)

    from .config import Config, TestingConfig

    if _config_name == "testing":
        app.config.from_object(TestingConfig)
        # Rotas /__dev ficam disponíveis nos testes
        app.debug = True
    else:
        app.config.from_object(Config)
    if not app.config.get("SECRET_KEY"):
        app.config["SECRET_KEY"] = os.environ.get(
            "SECRET_KEY", "dev-secret-key"
        )

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    _registrar_barramento(app)

    from .cli import register_cli

    register_cli(app)
    _registrar_jobs(app)

    for nome in BLUEPRINTS:
        mod = import_module(f"cuidamed.blueprints.{nome}")
        app.register_blueprint(getattr(mod, nome))

    if app.debug:

        @app.route("/__dev/test_raise_exception", methods=["GET", "POST"])
        def __dev_test_raise_exception():  # pragma: no cover
            raise ValueError("Erro de teste de log")

    from . import models  # noqa: F401

    _registrar_handlers(app)
    return app


def _registrar_barramento(app: Flask) -> None:
    """Um barramento por aplicação, injetado nos serviços pelos blueprints."""
    from .services.barramento import BarramentoEventos, CompromissoEvento

    barramento = BarramentoEventos()
    app.extensions["barramento"] = barramento

    def _logar_evento(evento: CompromissoEvento) -> None:
        app.logger.info(
            "Compromisso %s: %s %s",
            evento.tipo,
            evento.item_tipo,
            evento.item_id,
        )

    barramento.inscrever(CompromissoEvento, _logar_evento)


def _registrar_jobs(app: Flask) -> None:
    if app.testing or os.environ.get("DISABLE_SCHEDULER") == "1":
        app.logger.info("Scheduler desabilitado")
        return
    # Outra instância da app (ex.: reloader) já iniciou o scheduler
    if scheduler.running:
        return

    from .services import log_service, medicacao_service

    scheduler.init_app(app)
    scheduler.add_job(
        id="purge_dev_logs",
        func=_com_contexto(app, log_service.purge_old_logs),
        trigger="interval",
        days=1,
        replace_existing=True,
    )
    scheduler.add_job(
        id="gerar_ocorrencias_do_dia",
        func=_com_contexto(app, medicacao_service.gerar_ocorrencias_do_dia),
        trigger="cron",
        hour=0,
        minute=5,
        replace_existing=True,
    )
    if os.environ.get("WERKZEUG_RUN_MAIN") == "true" or not app.debug:
        scheduler.start()


def _registrar_handlers(app: Flask) -> None:
    from .services import log_service

    @login_manager.unauthorized_handler
    def _nao_autenticado():
        return jsonify({"error": "Autenticação necessária"}), 401

    @app.errorhandler(Exception)
    def handle_global_exception(e):
        if isinstance(e, HTTPException):
            return e

        db.session.rollback()
        user_id = None
        if getattr(current_user, "is_authenticated", False):
            user_id = current_user.get_id()
        log_service.record_exception(e, request, user_id)

        payload: dict[str, Any] = {"error": "Erro interno do servidor"}
        if app.config.get("DEV_LOGS_ENABLED"):
            payload["detalhe"] = str(e)
            payload["traceback"] = "".join(
                traceback.format_exception(type(e), e, e.__traceback__)
            )
        return jsonify(payload), 500


def _com_contexto(app: Flask, func):
    """Envolve jobs do APScheduler em um app context."""

    def _job():
        with app.app_context():
            try:
                func()
            except Exception:
                logging.getLogger(__name__).exception(
                    "Falha no job agendado %s", getattr(func, "__name__", func)
                )

    return _job


@login_manager.user_loader
def load_user(user_id: str):  # pragma: no cover - thin wrapper
    from .models import Usuario

    return db.session.get(Usuario, str(user_id))
