from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

"""Model definitions for CuidaMed.

Note: We intentionally do not use Flask-Login's UserMixin here to avoid a
name collision with the soft-delete column `is_active`. Flask-Login only
requires the User class to expose `is_authenticated`, `is_active`,
`is_anonymous`, and `get_id` attributes at runtime.

Todas as chaves primárias são UUIDs em string (um único tipo de id para
medicações, compromissos, perfis e ocorrências).
"""

from . import db


def _novo_id() -> str:
    return str(uuid.uuid4())


def _agora_utc() -> datetime:
    return datetime.now(timezone.utc)


def _enum_valores(enum_cls):
    return [m.value for m in enum_cls]


def _iso(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, datetime) and value.tzinfo is None:
        # SQLite devolve datetimes naive; armazenamos sempre UTC
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


# ----------------------------------
# Enums
# ----------------------------------


class PapelEnum(str, Enum):
    PACIENTE = "paciente"
    ACOMPANHANTE = "acompanhante"
    CUIDADOR = "cuidador"
    ADMIN = "admin"


class StatusPerfilEnum(str, Enum):
    ATIVO = "ativo"
    INATIVO = "inativo"
    PENDENTE = "pendente"


# Estados de uma ocorrência (dose) de medicação
class StatusOcorrenciaEnum(str, Enum):
    PENDENTE = "pendente"
    CONCLUIDO = "concluido"
    EXCLUIDO = "excluido"


class TipoCompromissoEnum(str, Enum):
    CONSULTA = "consulta"
    EXAME = "exame"
    ATIVIDADE = "atividade"


# Estados do Compromisso
class StatusCompromissoEnum(str, Enum):
    AGENDADO = "agendado"
    REALIZADO = "realizado"
    CANCELADO = "cancelado"


class RepeticaoEnum(str, Enum):
    NENHUMA = "none"
    SEMANAL = "weekly"


# ----------------------------------
# Models
# ----------------------------------


class Usuario(db.Model):
    """Conta de acesso (sessão Flask-Login)."""

    __tablename__ = "usuarios"

    id = db.Column(db.String(36), primary_key=True, default=_novo_id)
    email = db.Column(db.String(254), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)

    # Soft-delete: manter contas por questões legais
    is_active = db.Column(
        db.Boolean,
        nullable=False,
        default=True,
        server_default=db.true(),
    )
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_agora_utc
    )

    perfil = db.relationship("Perfil", back_populates="usuario", uselist=False)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Usuario {self.email}>"

    # Flask-Login protocol without inheriting UserMixin
    @property
    def is_authenticated(self) -> bool:  # pragma: no cover - trivial
        return True

    @property
    def is_anonymous(self) -> bool:  # pragma: no cover - trivial
        return False

    def get_id(self) -> str:  # pragma: no cover - trivial
        return str(self.id)


class Perfil(db.Model):
    """Perfil de pessoa no contexto de um paciente.

    - ``paciente_id`` aponta para o perfil do paciente cujo prontuário este
      perfil acompanha (para o próprio paciente, aponta para si mesmo).
    - ``is_gestor``: no máximo um gestor por paciente (garantido no serviço).
    """

    __tablename__ = "perfis"

    id = db.Column(db.String(36), primary_key=True, default=_novo_id)
    usuario_id = db.Column(
        db.String(36), db.ForeignKey("usuarios.id"), nullable=True, index=True
    )
    paciente_id = db.Column(db.String(36), nullable=True, index=True)

    nome = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(254), nullable=True)
    celular = db.Column(db.String(20), nullable=True)  # (81) 98888-8888
    codigo = db.Column(db.String(6), unique=True, nullable=False)

    papel = db.Column(
        db.Enum(
            PapelEnum, name="papel_enum", values_callable=_enum_valores
        ),
        nullable=False,
        default=PapelEnum.PACIENTE,
    )
    status = db.Column(
        db.Enum(
            StatusPerfilEnum,
            name="status_perfil_enum",
            values_callable=_enum_valores,
        ),
        nullable=False,
        default=StatusPerfilEnum.ATIVO,
    )
    is_gestor = db.Column(
        db.Boolean, nullable=False, default=False, server_default=db.false()
    )

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_agora_utc
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=_agora_utc,
        onupdate=_agora_utc,
    )

    usuario = db.relationship("Usuario", back_populates="perfil")

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Perfil {self.codigo} {self.nome} ({self.papel})>"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "paciente_id": self.paciente_id,
            "nome": self.nome,
            "email": self.email,
            "celular": self.celular,
            "codigo": self.codigo,
            "papel": self.papel.value if self.papel else None,
            "status": self.status.value if self.status else None,
            "is_gestor": bool(self.is_gestor),
        }


class Medicacao(db.Model):
    __tablename__ = "medicacoes"

    id = db.Column(db.String(36), primary_key=True, default=_novo_id)
    paciente_id = db.Column(
        db.String(36), db.ForeignKey("perfis.id"), nullable=False, index=True
    )

    nome = db.Column(db.String(200), nullable=False)
    dosagem = db.Column(db.String(100), nullable=False)
    forma = db.Column(db.String(100), nullable=False)
    frequencia = db.Column(db.String(50), nullable=False)
    # Lista de "HH:MM" (formato legado pode conter objetos {hora, status})
    horarios = db.Column(db.JSON, nullable=False, default=list)
    estoque = db.Column(db.Integer, nullable=False, default=0)
    data_inicio = db.Column(db.Date, nullable=True)
    data_fim = db.Column(db.Date, nullable=True)
    ativo = db.Column(
        db.Boolean, nullable=False, default=True, server_default=db.true()
    )
    observacoes = db.Column(db.Text, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_agora_utc
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=_agora_utc,
        onupdate=_agora_utc,
    )

    ocorrencias = db.relationship(
        "OcorrenciaMedicacao",
        back_populates="medicacao",
        cascade="all, delete-orphan",
        lazy="dynamic",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Medicacao {self.nome} {self.dosagem}>"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "paciente_id": self.paciente_id,
            "nome": self.nome,
            "dosagem": self.dosagem,
            "forma": self.forma,
            "frequencia": self.frequencia,
            "horarios": list(self.horarios or []),
            "estoque": self.estoque,
            "data_inicio": _iso(self.data_inicio),
            "data_fim": _iso(self.data_fim),
            "ativo": bool(self.ativo),
            "observacoes": self.observacoes,
        }


class OcorrenciaMedicacao(db.Model):
    """Uma dose agendada (data + hora) de uma medicação."""

    __tablename__ = "ocorrencias_medicacao"
    __table_args__ = (
        db.UniqueConstraint(
            "medicacao_id", "scheduled_at", name="uq_ocorrencia_horario"
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=_novo_id)
    medicacao_id = db.Column(
        db.String(36),
        db.ForeignKey("medicacoes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    paciente_id = db.Column(db.String(36), nullable=False, index=True)

    # UTC
    scheduled_at = db.Column(db.DateTime(timezone=True), nullable=False)
    status = db.Column(
        db.Enum(
            StatusOcorrenciaEnum,
            name="status_ocorrencia_enum",
            values_callable=_enum_valores,
        ),
        nullable=False,
        default=StatusOcorrenciaEnum.PENDENTE,
    )
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by = db.Column(db.String(36), nullable=True)
    # Momento em que saiu de "pendente" (concluída ou excluída)
    finalizado_em = db.Column(db.DateTime(timezone=True), nullable=True)

    medicacao = db.relationship("Medicacao", back_populates="ocorrencias")

    def __repr__(self) -> str:  # pragma: no cover
        return f"<OcorrenciaMedicacao {self.scheduled_at} {self.status}>"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "medicacao_id": self.medicacao_id,
            "scheduled_at": _iso(self.scheduled_at),
            "status": self.status.value if self.status else None,
            "completed_at": _iso(self.completed_at),
        }


class Compromisso(db.Model):
    """Consulta, exame ou atividade agendada para um paciente."""

    __tablename__ = "compromissos"

    id = db.Column(db.String(36), primary_key=True, default=_novo_id)
    paciente_id = db.Column(
        db.String(36), db.ForeignKey("perfis.id"), nullable=False, index=True
    )
    tipo = db.Column(
        db.Enum(
            TipoCompromissoEnum,
            name="tipo_compromisso_enum",
            values_callable=_enum_valores,
        ),
        nullable=False,
        default=TipoCompromissoEnum.CONSULTA,
    )
    titulo = db.Column(db.String(200), nullable=False)

    # Consulta
    especialidade = db.Column(db.String(120), nullable=True)
    medico_profissional = db.Column(db.String(200), nullable=True)
    # Exame
    tipo_exame = db.Column(db.String(120), nullable=True)
    preparo = db.Column(db.Text, nullable=True)
    # Atividade
    duracao_minutos = db.Column(db.Integer, nullable=False, default=60)
    repeticao = db.Column(
        db.Enum(
            RepeticaoEnum, name="repeticao_enum", values_callable=_enum_valores
        ),
        nullable=False,
        default=RepeticaoEnum.NENHUMA,
    )
    dias_semana = db.Column(db.JSON, nullable=True)  # 0=domingo .. 6=sábado

    local_endereco = db.Column(db.String(300), nullable=True)
    data_agendamento = db.Column(db.DateTime(timezone=True), nullable=False)
    status = db.Column(
        db.Enum(
            StatusCompromissoEnum,
            name="status_compromisso_enum",
            values_callable=_enum_valores,
        ),
        nullable=False,
        default=StatusCompromissoEnum.AGENDADO,
    )
    # Momento da última finalização (realizado/cancelado); base do "desfazer"
    finalizado_em = db.Column(db.DateTime(timezone=True), nullable=True)
    observacoes = db.Column(db.Text, nullable=True)
    resultado = db.Column(db.Text, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_agora_utc
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=_agora_utc,
        onupdate=_agora_utc,
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Compromisso {self.tipo} {self.titulo!r}>"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "paciente_id": self.paciente_id,
            "tipo": self.tipo.value if self.tipo else None,
            "titulo": self.titulo,
            "especialidade": self.especialidade,
            "medico_profissional": self.medico_profissional,
            "tipo_exame": self.tipo_exame,
            "preparo": self.preparo,
            "duracao_minutos": self.duracao_minutos,
            "repeticao": self.repeticao.value if self.repeticao else None,
            "dias_semana": list(self.dias_semana or []),
            "local_endereco": self.local_endereco,
            "data_agendamento": _iso(self.data_agendamento),
            "status": self.status.value if self.status else None,
            "observacoes": self.observacoes,
            "resultado": self.resultado,
        }


class DeveloperLog(db.Model):
    """Exceções não tratadas capturadas pelo handler global."""

    __tablename__ = "developer_logs"

    id = db.Column(db.Integer, primary_key=True)
    timestamp = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=_agora_utc,
        index=True,
    )
    error_type = db.Column(db.String(200), nullable=False)
    traceback = db.Column(db.Text, nullable=True)
    request_url = db.Column(db.String(2048), nullable=True)
    request_method = db.Column(db.String(10), nullable=True)
    request_body = db.Column(db.Text, nullable=True)
    user_id = db.Column(db.String(36), nullable=True)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<DeveloperLog {self.id} {self.error_type}>"
