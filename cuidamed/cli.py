import click

from . import db
from .seeder import seed_demo


def register_cli(app):
    @app.cli.command("dev-sync-db")
    def dev_sync_db():
        """DEV-only: Drop/Recreate todas as tabelas e popula dados demo.

        Workflow (destrutivo e rápido):
          1) db.drop_all();
          2) db.create_all();
          3) seed_demo() (paciente, cuidador, medicações e compromissos).
        """
        click.echo(
            "[dev-sync-db] Iniciando sincronização destrutiva de DEV..."
        )
        click.echo("[dev-sync-db] Removendo tabelas (se existirem)...")
        try:
            db.drop_all()
        except Exception as e:
            db.session.rollback()
            click.echo(f"[dev-sync-db] Aviso ao remover tabelas: {e}")

        click.echo("[dev-sync-db] Criando tabelas...")
        try:
            db.create_all()
        except Exception as e:
            click.echo(
                f"[dev-sync-db] ERRO ao criar tabelas via create_all: {e}"
            )
            raise

        click.echo("[dev-sync-db] Executando seed (demo)...")
        seed_demo()

        click.echo(
            "[dev-sync-db] Banco de dados sincronizado e populado com sucesso."
        )

    @app.cli.command("gerar-ocorrencias")
    @click.option(
        "--data",
        "data_str",
        default=None,
        help="Dia (YYYY-MM-DD); padrão: hoje no fuso configurado.",
    )
    def gerar_ocorrencias(data_str):
        """Gera as doses do dia para todas as medicações ativas."""
        from .services import medicacao_service
        from .utils.tempo import parse_data

        try:
            dia = parse_data(data_str)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--data")
        total = medicacao_service.gerar_ocorrencias_do_dia(dia)
        click.echo(f"[gerar-ocorrencias] {total} ocorrência(s) criada(s).")

    @app.cli.command("purge-logs")
    @click.option("--dias", type=int, default=None, help="Retenção em dias.")
    def purge_logs(dias):
        """Remove DeveloperLogs mais antigos que a retenção."""
        from .services import log_service

        total = log_service.purge_old_logs(dias)
        click.echo(f"[purge-logs] {total} log(s) removido(s).")

    @app.cli.command("dev-logs")
    @click.option("--limite", type=int, default=20)
    def dev_logs(limite):
        """Lista as exceções mais recentes capturadas pelo handler global."""
        from .services import log_service

        logs = log_service.get_logs_recentes(limite)
        if not logs:
            click.echo("[dev-logs] Nenhum log registrado.")
            return
        for log in logs:
            click.echo(
                f"{log.timestamp:%Y-%m-%d %H:%M:%S} "
                f"{log.error_type} {log.request_method or '-'} "
                f"{log.request_url or ''}"
            )
