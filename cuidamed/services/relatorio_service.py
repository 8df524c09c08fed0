"""Relatório de adesão por período.

Cada ocorrência planejada cai em exatamente uma das contagens:

- ``concluidos``: concluída até ``TOLERANCIA`` após o horário;
- ``retardatarios``: concluída depois da tolerância;
- ``excluidos``: cancelada/excluída;
- ``atrasados``: ainda pendente com horário já passado;
- ``faltando``: pendente com horário futuro.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from cuidamed import db
from cuidamed.models import (
    Compromisso,
    OcorrenciaMedicacao,
    StatusCompromissoEnum,
    StatusOcorrenciaEnum,
    TipoCompromissoEnum,
)
from cuidamed.utils.tempo import como_utc, limites_dia, obter_fuso

PERIODOS = ("hoje", "semana", "mes", "personalizado")
CATEGORIAS = ("todas", "medicacao", "consulta", "exame", "atividade")
TOLERANCIA = timedelta(minutes=30)

_STATUS_COMPROMISSO = {
    StatusCompromissoEnum.AGENDADO: "pendente",
    StatusCompromissoEnum.REALIZADO: "concluido",
    StatusCompromissoEnum.CANCELADO: "excluido",
}


@dataclass(frozen=True)
class RegistroOcorrencia:
    categoria: str
    status: str
    scheduled_at: datetime
    completed_at: Optional[datetime] = None


@dataclass
class Totais:
    planejados: int = 0
    concluidos: int = 0
    retardatarios: int = 0
    faltando: int = 0
    atrasados: int = 0
    excluidos: int = 0

    def contar(
        self, registro: RegistroOcorrencia, agora: datetime, tolerancia
    ) -> None:
        self.planejados += 1
        if registro.status == "concluido":
            feito = como_utc(registro.completed_at)
            limite = como_utc(registro.scheduled_at) + tolerancia
            if feito is not None and feito > limite:
                self.retardatarios += 1
            else:
                self.concluidos += 1
        elif registro.status == "excluido":
            self.excluidos += 1
        elif como_utc(registro.scheduled_at) < agora:
            self.atrasados += 1
        else:
            self.faltando += 1

    @property
    def adesao_pct(self) -> float:
        return _pct(self.concluidos + self.retardatarios, self.planejados)

    def to_dict(self, com_percentuais: bool = True) -> dict:
        dados = asdict(self)
        if com_percentuais:
            for campo in (
                "concluidos",
                "retardatarios",
                "faltando",
                "atrasados",
                "excluidos",
            ):
                dados[f"{campo}_pct"] = _pct(dados[campo], self.planejados)
            dados["adesao_pct"] = self.adesao_pct
        return dados


def _pct(parte: int, total: int) -> float:
    if not total:
        return 0.0
    return round(parte * 100.0 / total, 1)


def intervalo_periodo(
    periodo: str,
    agora: Optional[datetime] = None,
    tz=None,
    inicio: Optional[date] = None,
    fim: Optional[date] = None,
) -> tuple[datetime, datetime]:
    """Intervalo ``[inicio, fim)`` em UTC para o período no fuso ``tz``.

    ``semana`` começa no domingo. ``personalizado`` exige ``inicio`` e
    ``fim`` (datas locais, ambas inclusivas).
    """
    if periodo not in PERIODOS:
        raise ValueError(f"Período inválido: {periodo!r}")
    tz = tz or timezone.utc
    hoje = (como_utc(agora) or datetime.now(timezone.utc)).astimezone(tz).date()

    if periodo == "personalizado":
        if inicio is None or fim is None:
            raise ValueError("Período personalizado exige início e fim")
        if fim < inicio:
            raise ValueError("Data final anterior à data inicial")
        primeiro, ultimo = inicio, fim
    elif periodo == "semana":
        # weekday(): segunda=0 .. domingo=6
        primeiro = hoje - timedelta(days=(hoje.weekday() + 1) % 7)
        ultimo = primeiro + timedelta(days=6)
    elif periodo == "mes":
        primeiro = hoje.replace(day=1)
        proximo = (primeiro + timedelta(days=32)).replace(day=1)
        ultimo = proximo - timedelta(days=1)
    else:
        primeiro = ultimo = hoje

    return limites_dia(primeiro, tz)[0], limites_dia(ultimo, tz)[1]


def calcular_adesao(
    registros: Iterable[RegistroOcorrencia],
    agora: Optional[datetime] = None,
    tolerancia: timedelta = TOLERANCIA,
) -> tuple[Totais, dict[str, Totais]]:
    """Totais gerais e por categoria."""
    agora = como_utc(agora) or datetime.now(timezone.utc)
    totais = Totais()
    por_categoria: dict[str, Totais] = {}
    for registro in registros:
        totais.contar(registro, agora, tolerancia)
        por_categoria.setdefault(registro.categoria, Totais()).contar(
            registro, agora, tolerancia
        )
    return totais, por_categoria


def _registros(
    paciente_id: str, inicio: datetime, fim: datetime, categoria: str
) -> list[RegistroOcorrencia]:
    registros: list[RegistroOcorrencia] = []
    if categoria in ("todas", "medicacao"):
        ocorrencias = db.session.query(OcorrenciaMedicacao).filter(
            OcorrenciaMedicacao.paciente_id == paciente_id,
            OcorrenciaMedicacao.scheduled_at >= inicio,
            OcorrenciaMedicacao.scheduled_at < fim,
        )
        for occ in ocorrencias:
            registros.append(
                RegistroOcorrencia(
                    categoria="medicacao",
                    status=(occ.status or StatusOcorrenciaEnum.PENDENTE).value,
                    scheduled_at=occ.scheduled_at,
                    completed_at=occ.completed_at,
                )
            )
    if categoria != "medicacao":
        q = db.session.query(Compromisso).filter(
            Compromisso.paciente_id == paciente_id,
            Compromisso.data_agendamento >= inicio,
            Compromisso.data_agendamento < fim,
        )
        if categoria != "todas":
            q = q.filter(Compromisso.tipo == TipoCompromissoEnum(categoria))
        for c in q:
            registros.append(
                RegistroOcorrencia(
                    categoria=c.tipo.value,
                    status=_STATUS_COMPROMISSO[c.status],
                    scheduled_at=c.data_agendamento,
                    completed_at=c.finalizado_em,
                )
            )
    return registros


def resumo_relatorio(
    paciente_id: str,
    periodo: str = "hoje",
    categoria: str = "todas",
    inicio: Optional[date] = None,
    fim: Optional[date] = None,
    tz_nome: Optional[str] = None,
    agora: Optional[datetime] = None,
) -> dict:
    if categoria not in CATEGORIAS:
        raise ValueError(f"Categoria inválida: {categoria!r}")
    tz = obter_fuso(tz_nome)
    range_inicio, range_fim = intervalo_periodo(periodo, agora, tz, inicio, fim)
    totais, por_categoria = calcular_adesao(
        _registros(paciente_id, range_inicio, range_fim, categoria), agora
    )
    return {
        "periodo": periodo,
        "categoria": categoria,
        "range_start": range_inicio.isoformat(),
        "range_end": range_fim.isoformat(),
        "totals": totais.to_dict(),
        "by_category": {
            nome: t.to_dict(com_percentuais=False)
            for nome, t in sorted(por_categoria.items())
        },
    }
