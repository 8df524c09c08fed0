"""Filtros, ordenação e resumo do dia para as listas de medicações e
compromissos."""
from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from cuidamed.services.conversores import (
    CONCLUIDO,
    EXCLUIDO,
    PENDENTE,
    CompromissoCompleto,
    MedicacaoCompleta,
    todas_doses_concluidas,
)

ABAS = ("hoje", "ativas", "todas")
CATEGORIAS = ("consulta", "exame", "atividade")


def _validar_aba(aba: str) -> str:
    if aba not in ABAS:
        raise ValueError(f"Aba inválida: {aba!r}")
    return aba


def _casa_busca(texto: str, busca: Optional[str]) -> bool:
    if not busca or not busca.strip():
        return True
    return busca.strip().casefold() in (texto or "").casefold()


def vigente_em(medicacao: MedicacaoCompleta, dia: date) -> bool:
    if medicacao.data_inicio and medicacao.data_inicio > dia:
        return False
    if medicacao.data_fim and medicacao.data_fim < dia:
        return False
    return True


def filtrar_medicacoes(
    medicacoes: Iterable[MedicacaoCompleta],
    aba: str = "hoje",
    busca: Optional[str] = None,
    dia: Optional[date] = None,
) -> list[MedicacaoCompleta]:
    """Filtra por aba e busca no nome.

    - ``hoje``: ativas, vigentes em ``dia`` e com ao menos um horário real;
    - ``ativas``: status ativa, sem olhar o dia;
    - ``todas``: inclusive inativas.
    """
    _validar_aba(aba)
    dia = dia or date.today()
    resultado = []
    for med in medicacoes:
        if aba in ("hoje", "ativas") and med.status != "ativa":
            continue
        if aba == "hoje" and (
            not vigente_em(med, dia) or not any(h.valido for h in med.horarios)
        ):
            continue
        if not _casa_busca(med.nome, busca):
            continue
        resultado.append(med)
    return resultado


def ordenar_medicacoes(
    medicacoes: Iterable[MedicacaoCompleta],
) -> list[MedicacaoCompleta]:
    """Incompletas antes das concluídas; depois por nome."""
    return sorted(
        medicacoes,
        key=lambda m: (todas_doses_concluidas(m), m.nome.casefold()),
    )


def filtrar_compromissos(
    compromissos: Iterable[CompromissoCompleto],
    aba: str = "hoje",
    busca: Optional[str] = None,
    categoria: Optional[str] = None,
    dia: Optional[date] = None,
) -> list[CompromissoCompleto]:
    """``hoje``: agendados para ``dia``; ``ativas``: ainda agendados."""
    _validar_aba(aba)
    if categoria in ("", "todos", "todas"):
        categoria = None
    if categoria is not None and categoria not in CATEGORIAS:
        raise ValueError(f"Categoria inválida: {categoria!r}")
    dia = dia or date.today()

    resultado = []
    for comp in compromissos:
        if categoria and comp.item_tipo != categoria:
            continue
        if aba == "hoje" and comp.data_agendamento.date() != dia:
            continue
        if aba == "ativas" and comp.horarios[0].status != PENDENTE:
            continue
        if not _casa_busca(comp.titulo, busca):
            continue
        resultado.append(comp)
    return resultado


def ordenar_compromissos(
    compromissos: Iterable[CompromissoCompleto],
) -> list[CompromissoCompleto]:
    """Pendentes antes dos finalizados; depois pelo horário."""
    return sorted(
        compromissos,
        key=lambda c: (
            c.horarios[0].status != PENDENTE,
            c.data_agendamento.date(),
            c.hora,
        ),
    )


# ----------------------------------
# Resumo do dia
# ----------------------------------


@dataclass(frozen=True)
class ItemDia:
    id: str
    tipo: str
    titulo: str
    hora: str
    status: str
    subtitulo: Optional[str] = None

    @property
    def finalizado(self) -> bool:
        return self.status in (CONCLUIDO, EXCLUIDO)


@dataclass(frozen=True)
class CompromissosDia:
    total: int
    concluidos: int
    restantes: int
    data_local: str
    itens: Sequence[ItemDia] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "concluidos": self.concluidos,
            "restantes": self.restantes,
            "data_local": self.data_local,
            "itens": [
                {
                    "id": i.id,
                    "tipo": i.tipo,
                    "titulo": i.titulo,
                    "subtitulo": i.subtitulo,
                    "hora": i.hora,
                    "status": i.status,
                }
                for i in self.itens
            ],
        }


def resumo_do_dia(
    medicacoes: Iterable[MedicacaoCompleta],
    compromissos: Iterable[CompromissoCompleto],
    dia: date,
) -> CompromissosDia:
    """Uma linha por dose ou compromisso do dia; finalizados (concluídos ou
    excluídos) contam como concluídos."""
    itens: list[ItemDia] = []
    for med in filtrar_medicacoes(medicacoes, "hoje", dia=dia):
        for indice, h in enumerate(med.horarios):
            if not h.valido:
                continue
            itens.append(
                ItemDia(
                    id=h.occurrence_id or f"{med.id}-{indice}",
                    tipo="medicacao",
                    titulo=med.nome,
                    subtitulo=f"{med.dosagem} • {med.forma}",
                    hora=h.hora,
                    status=h.status,
                )
            )
    for comp in filtrar_compromissos(compromissos, "hoje", dia=dia):
        itens.append(
            ItemDia(
                id=comp.id,
                tipo=comp.item_tipo,
                titulo=comp.titulo,
                subtitulo=getattr(comp, "especialidade", None)
                or getattr(comp, "medico_profissional", None)
                or comp.local_endereco,
                hora=comp.hora,
                status=comp.horarios[0].status,
            )
        )
    itens.sort(key=lambda i: i.hora)
    concluidos = sum(1 for i in itens if i.finalizado)
    return CompromissosDia(
        total=len(itens),
        concluidos=concluidos,
        restantes=len(itens) - concluidos,
        data_local=dia.strftime("%d/%m/%Y"),
        itens=tuple(itens),
    )
