"""Conversores de registros persistidos para os modelos de visualização.

Funções puras, sem efeitos colaterais. Os registros chegam como
dicionários no formato JSON devolvido pelo banco (``Model.to_dict()``).

O campo ``horarios`` de uma medicação pode vir em dois formatos:

- legado: lista de strings ``"HH:MM"`` (:class:`HorarioLegado`);
- objeto: lista de ``{"hora", "status", ...}`` (:class:`HorarioObjeto`).

Os dois são normalizados na borda por :func:`adaptar_horario`; o restante
do código só conhece :class:`HorarioStatus`.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone, tzinfo
from typing import Any, Literal, Optional, Union

from cuidamed.utils.formatadores import (
    forma_gramatical,
    format_datetime_br,
    format_frequencia,
    parse_time_24h,
)
from cuidamed.utils.validacao import HORARIO_RE

logger = logging.getLogger(__name__)

PENDENTE = "pendente"
CONCLUIDO = "concluido"
EXCLUIDO = "excluido"
STATUS_OCORRENCIA = (PENDENTE, CONCLUIDO, EXCLUIDO)

SEM_HORARIO = "-"
# Estoque destacado na listagem a partir deste valor
ESTOQUE_BAIXO = 10
TODOS_CONCLUIDOS = "Todos concluídos hoje"

StatusOcorrencia = Literal["pendente", "concluido", "excluido"]
MotivoRemocao = Literal["completed", "excluded"]

# agendado/realizado/cancelado <-> pendente/concluido/excluido
STATUS_COMPROMISSO_PARA_OCORRENCIA = {
    "agendado": PENDENTE,
    "realizado": CONCLUIDO,
    "cancelado": EXCLUIDO,
}
STATUS_OCORRENCIA_PARA_COMPROMISSO = {
    v: k for k, v in STATUS_COMPROMISSO_PARA_OCORRENCIA.items()
}


class ConversaoError(ValueError):
    """Registro persistido em formato não reconhecido."""


# ----------------------------------
# Tipos
# ----------------------------------


@dataclass(frozen=True)
class HorarioLegado:
    """Horário salvo apenas como texto ``"HH:MM"``."""

    hora: str


@dataclass(frozen=True)
class HorarioObjeto:
    """Horário salvo como objeto com status da ocorrência."""

    hora: str
    status: str = PENDENTE
    occurrence_id: Optional[str] = None
    scheduled_at: Optional[str] = None
    completed_at: Optional[str] = None


HorarioBruto = Union[HorarioLegado, HorarioObjeto]


@dataclass(frozen=True)
class HorarioStatus:
    """Uma ocorrência (dose ou compromisso) no dia."""

    hora: str
    status: StatusOcorrencia = PENDENTE
    occurrence_id: Optional[str] = None
    scheduled_at: Optional[str] = None
    completed_at: Optional[str] = None

    @property
    def valido(self) -> bool:
        return self.hora != SEM_HORARIO

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class MedicacaoCompleta:
    id: str
    nome: str
    dosagem: str
    forma: str
    frequencia: str
    horarios: tuple[HorarioStatus, ...]
    proximo_horario: str
    estoque: int = 0
    status: Literal["ativa", "inativa"] = "ativa"
    removed_from_today: bool = False
    removal_reason: Optional[MotivoRemocao] = None
    is_optimistic: bool = False
    data_inicio: Optional[date] = None
    data_fim: Optional[date] = None
    observacoes: Optional[str] = None

    item_tipo = "medicacao"

    @property
    def proxima_dose(self) -> str:
        return self.proximo_horario

    @property
    def nome_ordenacao(self) -> str:
        return self.nome

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tipo": self.item_tipo,
            "nome": self.nome,
            "dosagem": self.dosagem,
            "forma": self.forma,
            "forma_estoque": forma_gramatical(self.forma, self.estoque),
            "frequencia": self.frequencia,
            "frequencia_texto": format_frequencia(self.frequencia),
            "horarios": [h.to_dict() for h in self.horarios],
            "proxima_dose": self.proximo_horario,
            "estoque": self.estoque,
            "estoque_baixo": self.estoque <= ESTOQUE_BAIXO,
            "status": self.status,
            "removed_from_today": self.removed_from_today,
            "removal_reason": self.removal_reason,
            "is_optimistic": self.is_optimistic,
            "todas_concluidas": todas_doses_concluidas(self),
            "data_inicio": self.data_inicio.isoformat()
            if self.data_inicio
            else None,
            "data_fim": self.data_fim.isoformat() if self.data_fim else None,
            "observacoes": self.observacoes,
        }


@dataclass(frozen=True)
class CompromissoCompleto:
    """Base dos compromissos: uma única ocorrência no dia agendado."""

    id: str
    titulo: str
    data_agendamento: datetime
    horarios: tuple[HorarioStatus, ...]
    proximo_horario: str
    local_endereco: Optional[str] = None
    observacoes: Optional[str] = None
    removed_from_today: bool = False
    removal_reason: Optional[MotivoRemocao] = None
    is_optimistic: bool = False

    item_tipo = "compromisso"

    @property
    def hora(self) -> str:
        return self.horarios[0].hora

    @property
    def status(self) -> str:
        return STATUS_OCORRENCIA_PARA_COMPROMISSO[self.horarios[0].status]

    @property
    def nome_ordenacao(self) -> str:
        return self.titulo

    def _extras(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        dados = {
            "id": self.id,
            "tipo": self.item_tipo,
            "titulo": self.titulo,
            "data_agendamento": self.data_agendamento.isoformat(),
            "data_formatada": format_datetime_br(self.data_agendamento),
            "hora": self.hora,
            "status": self.status,
            "horarios": [h.to_dict() for h in self.horarios],
            "local_endereco": self.local_endereco,
            "observacoes": self.observacoes,
            "removed_from_today": self.removed_from_today,
            "removal_reason": self.removal_reason,
            "is_optimistic": self.is_optimistic,
        }
        dados.update(self._extras())
        return dados


@dataclass(frozen=True)
class ConsultaCompleta(CompromissoCompleto):
    especialidade: Optional[str] = None
    medico_profissional: Optional[str] = None

    item_tipo = "consulta"

    def _extras(self) -> dict[str, Any]:
        return {
            "especialidade": self.especialidade,
            "medico_profissional": self.medico_profissional,
        }


@dataclass(frozen=True)
class ExameCompleto(CompromissoCompleto):
    tipo_exame: Optional[str] = None
    preparo: Optional[str] = None

    item_tipo = "exame"

    def _extras(self) -> dict[str, Any]:
        return {"tipo_exame": self.tipo_exame, "preparo": self.preparo}


@dataclass(frozen=True)
class AtividadeCompleta(CompromissoCompleto):
    duracao_minutos: int = 60
    repeticao: str = "none"
    dias_semana: tuple[int, ...] = field(default_factory=tuple)

    item_tipo = "atividade"

    def _extras(self) -> dict[str, Any]:
        return {
            "duracao_minutos": self.duracao_minutos,
            "repeticao": self.repeticao,
            "dias_semana": list(self.dias_semana),
        }


ItemCompleto = Union[MedicacaoCompleta, CompromissoCompleto]


# ----------------------------------
# Horários
# ----------------------------------


def normalizar_hora(valor: Any) -> str:
    """Valida e completa com zeros: ``"8:5"`` não é aceito, ``"8:05"`` vira
    ``"08:05"``; ``"08h05"`` também é aceito.
    """
    if not isinstance(valor, str):
        raise ConversaoError(f"Horário inválido: {valor!r}")
    texto = parse_time_24h(valor.strip())
    if not HORARIO_RE.match(texto):
        raise ConversaoError(f"Horário inválido: {valor!r}")
    horas, minutos = texto.split(":")
    return f"{int(horas):02d}:{minutos}"


def adaptar_horario(bruto: Any) -> HorarioBruto:
    """Único ponto que inspeciona o formato cru de um horário."""
    if isinstance(bruto, str):
        return HorarioLegado(hora=normalizar_hora(bruto))
    if isinstance(bruto, Mapping) and "hora" in bruto:
        status = bruto.get("status") or PENDENTE
        if status not in STATUS_OCORRENCIA:
            raise ConversaoError(f"Status de horário inválido: {status!r}")
        return HorarioObjeto(
            hora=normalizar_hora(bruto["hora"]),
            status=status,
            occurrence_id=_id_ou_none(bruto.get("occurrence_id")),
            scheduled_at=bruto.get("scheduled_at"),
            completed_at=bruto.get("completed_at"),
        )
    raise ConversaoError(f"Horário em formato desconhecido: {bruto!r}")


def para_horario_status(horario: HorarioBruto) -> HorarioStatus:
    if isinstance(horario, HorarioObjeto):
        return HorarioStatus(
            hora=horario.hora,
            status=horario.status,  # type: ignore[arg-type]
            occurrence_id=horario.occurrence_id,
            scheduled_at=horario.scheduled_at,
            completed_at=horario.completed_at,
        )
    return HorarioStatus(hora=horario.hora)


def ordenar_horarios(
    horarios: Iterable[HorarioStatus],
) -> tuple[HorarioStatus, ...]:
    """Ordena por ``HH:MM`` (string já com zeros à esquerda)."""
    return tuple(sorted(horarios, key=lambda h: h.hora))


def calcular_proxima_dose(horarios: Iterable[HorarioStatus]) -> str:
    """Primeiro horário pendente do dia, ou :data:`TODOS_CONCLUIDOS`."""
    pendentes = sorted(
        h.hora for h in horarios if h.valido and h.status == PENDENTE
    )
    if not pendentes:
        return TODOS_CONCLUIDOS
    return pendentes[0]


def horario_mais_proximo(
    horarios: Iterable[HorarioStatus], agora: datetime
) -> Optional[HorarioStatus]:
    """Horário pendente mais próximo de ``agora`` (dá a volta no dia).

    Um horário que já passou hoje fica a ``24h - atraso`` de distância.
    """
    minutos_agora = agora.hour * 60 + agora.minute
    melhor: Optional[HorarioStatus] = None
    melhor_distancia = 0
    for h in horarios:
        if not h.valido or h.status != PENDENTE:
            continue
        horas, minutos = (int(p) for p in h.hora.split(":"))
        distancia = (horas * 60 + minutos - minutos_agora) % (24 * 60)
        if melhor is None or distancia < melhor_distancia:
            melhor, melhor_distancia = h, distancia
    return melhor


def estado_remocao(
    horarios: Iterable[HorarioStatus],
) -> tuple[bool, Optional[MotivoRemocao]]:
    """``(removed_from_today, removal_reason)`` derivados dos horários.

    Sem horários pendentes o item sai da lista do dia; se houver ao menos
    um concluído o motivo é ``completed``, senão ``excluded``.
    """
    validos = [h for h in horarios if h.valido]
    if not validos or any(h.status == PENDENTE for h in validos):
        return False, None
    if any(h.status == CONCLUIDO for h in validos):
        return True, "completed"
    return True, "excluded"


def todas_doses_concluidas(medicacao: MedicacaoCompleta) -> bool:
    if medicacao.status == "inativa":
        return False
    validos = [h for h in medicacao.horarios if h.valido]
    return bool(validos) and all(h.status == CONCLUIDO for h in validos)


def mesclar_ocorrencias(
    horas: Iterable[str],
    ocorrencias: Iterable[Mapping[str, Any]],
    tz: tzinfo,
) -> list[HorarioStatus]:
    """Associa cada ``HH:MM`` à ocorrência do dia com o mesmo horário local.

    Horários sem ocorrência persistida ficam pendentes.
    """
    por_hora: dict[str, Mapping[str, Any]] = {}
    for occ in ocorrencias:
        agendado = parse_datetime(occ.get("scheduled_at"))
        if agendado is None:
            continue
        por_hora[agendado.astimezone(tz).strftime("%H:%M")] = occ

    resultado = []
    for hora in horas:
        occ = por_hora.get(hora)
        if occ is None:
            resultado.append(HorarioStatus(hora=hora))
            continue
        resultado.append(
            HorarioStatus(
                hora=hora,
                status=occ.get("status") or PENDENTE,
                occurrence_id=_id_ou_none(occ.get("id")),
                scheduled_at=occ.get("scheduled_at"),
                completed_at=occ.get("completed_at"),
            )
        )
    return resultado


# ----------------------------------
# Registros
# ----------------------------------


def parse_datetime(valor: Any) -> Optional[datetime]:
    if valor is None or valor == "":
        return None
    if isinstance(valor, datetime):
        dt = valor
    elif isinstance(valor, str):
        try:
            dt = datetime.fromisoformat(valor.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ConversaoError(f"Data/hora inválida: {valor!r}") from exc
    else:
        raise ConversaoError(f"Data/hora inválida: {valor!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_date(valor: Any) -> Optional[date]:
    if valor is None or valor == "":
        return None
    if isinstance(valor, datetime):
        return valor.date()
    if isinstance(valor, date):
        return valor
    if isinstance(valor, str):
        try:
            return date.fromisoformat(valor[:10])
        except ValueError as exc:
            raise ConversaoError(f"Data inválida: {valor!r}") from exc
    raise ConversaoError(f"Data inválida: {valor!r}")


def _id_ou_none(valor: Any) -> Optional[str]:
    return None if valor is None else str(valor)


def _obrigatorio(registro: Mapping[str, Any], campo: str) -> Any:
    valor = registro.get(campo)
    if valor is None or valor == "":
        raise ConversaoError(f"Campo obrigatório ausente: {campo}")
    return valor


def converter_medicacao(
    registro: Mapping[str, Any],
    ocorrencias: Iterable[Mapping[str, Any]] = (),
    tz: tzinfo = timezone.utc,
) -> MedicacaoCompleta:
    """Converte uma linha de ``medicacoes`` em :class:`MedicacaoCompleta`.

    ``ocorrencias`` são as linhas de ``ocorrencias_medicacao`` do dia; só
    são consultadas para horários no formato legado.
    """
    if not isinstance(registro, Mapping):
        raise ConversaoError(f"Registro de medicação inválido: {registro!r}")

    brutos = registro.get("horarios") or []
    if not isinstance(brutos, list):
        raise ConversaoError("Campo horarios deve ser uma lista")
    adaptados = [adaptar_horario(b) for b in brutos]

    legados = [h.hora for h in adaptados if isinstance(h, HorarioLegado)]
    mesclados = {
        h.hora: h for h in mesclar_ocorrencias(legados, ocorrencias, tz)
    }
    horarios = [
        mesclados[h.hora]
        if isinstance(h, HorarioLegado)
        else para_horario_status(h)
        for h in adaptados
    ]
    if not horarios:
        horarios = [HorarioStatus(hora=SEM_HORARIO)]
    ordenados = ordenar_horarios(horarios)

    ativo = registro.get("ativo", True)
    removido, motivo = estado_remocao(ordenados)
    return MedicacaoCompleta(
        id=str(_obrigatorio(registro, "id")),
        nome=str(_obrigatorio(registro, "nome")),
        dosagem=str(registro.get("dosagem") or ""),
        forma=str(registro.get("forma") or ""),
        frequencia=str(registro.get("frequencia") or ""),
        horarios=ordenados,
        proximo_horario=calcular_proxima_dose(ordenados),
        estoque=int(registro.get("estoque") or 0),
        status="ativa" if ativo else "inativa",
        removed_from_today=removido,
        removal_reason=motivo,
        data_inicio=parse_date(registro.get("data_inicio")),
        data_fim=parse_date(registro.get("data_fim")),
        observacoes=registro.get("observacoes"),
    )


def converter_medicacoes(
    registros: Iterable[Any],
    ocorrencias_por_medicacao: Optional[
        Mapping[str, Iterable[Mapping[str, Any]]]
    ] = None,
    tz: tzinfo = timezone.utc,
) -> list[MedicacaoCompleta]:
    """Converte uma lista, ignorando (e registrando) linhas malformadas."""
    ocorrencias_por_medicacao = ocorrencias_por_medicacao or {}
    convertidas = []
    for registro in registros:
        try:
            med_id = (
                str(registro.get("id"))
                if isinstance(registro, Mapping)
                else ""
            )
            convertidas.append(
                converter_medicacao(
                    registro, ocorrencias_por_medicacao.get(med_id, ()), tz
                )
            )
        except (ConversaoError, TypeError, ValueError) as e:
            logger.warning("Medicação ignorada na conversão: %s", e)
    return convertidas


_CLASSES_COMPROMISSO = {
    "consulta": ConsultaCompleta,
    "exame": ExameCompleto,
    "atividade": AtividadeCompleta,
}


def converter_compromisso(
    registro: Mapping[str, Any], tz: tzinfo = timezone.utc
) -> CompromissoCompleto:
    if not isinstance(registro, Mapping):
        raise ConversaoError(
            f"Registro de compromisso inválido: {registro!r}"
        )
    tipo = registro.get("tipo") or "consulta"
    classe = _CLASSES_COMPROMISSO.get(tipo)
    if classe is None:
        raise ConversaoError(f"Tipo de compromisso desconhecido: {tipo!r}")

    status = registro.get("status") or "agendado"
    status_ocorrencia = STATUS_COMPROMISSO_PARA_OCORRENCIA.get(status)
    if status_ocorrencia is None:
        raise ConversaoError(f"Status de compromisso inválido: {status!r}")

    agendado = parse_datetime(_obrigatorio(registro, "data_agendamento"))
    if agendado is None:
        raise ConversaoError("Compromisso sem data_agendamento")
    local = agendado.astimezone(tz)
    horario = HorarioStatus(
        hora=local.strftime("%H:%M"),
        status=status_ocorrencia,  # type: ignore[arg-type]
        occurrence_id=str(_obrigatorio(registro, "id")),
        scheduled_at=agendado.isoformat(),
    )
    removido, motivo = estado_remocao((horario,))

    comuns: dict[str, Any] = dict(
        id=str(registro["id"]),
        titulo=str(_obrigatorio(registro, "titulo")),
        data_agendamento=local,
        horarios=(horario,),
        proximo_horario=calcular_proxima_dose((horario,)),
        local_endereco=registro.get("local_endereco"),
        observacoes=registro.get("observacoes"),
        removed_from_today=removido,
        removal_reason=motivo,
    )
    if classe is ConsultaCompleta:
        return ConsultaCompleta(
            **comuns,
            especialidade=registro.get("especialidade"),
            medico_profissional=registro.get("medico_profissional"),
        )
    if classe is ExameCompleto:
        return ExameCompleto(
            **comuns,
            tipo_exame=registro.get("tipo_exame"),
            preparo=registro.get("preparo"),
        )
    return AtividadeCompleta(
        **comuns,
        duracao_minutos=int(registro.get("duracao_minutos") or 60),
        repeticao=registro.get("repeticao") or "none",
        dias_semana=tuple(int(d) for d in registro.get("dias_semana") or ()),
    )


def converter_compromissos(
    registros: Iterable[Any], tz: tzinfo = timezone.utc
) -> list[CompromissoCompleto]:
    convertidos = []
    for registro in registros:
        try:
            convertidos.append(converter_compromisso(registro, tz))
        except (ConversaoError, TypeError, ValueError) as e:
            logger.warning("Compromisso ignorado na conversão: %s", e)
    return convertidos
