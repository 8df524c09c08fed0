"""Máquina de estados das ocorrências do dia (doses e compromissos).

Transições permitidas: ``pendente -> concluido`` e ``pendente -> excluido``.
A volta para ``pendente`` só acontece por :meth:`MaquinaOcorrencias.undo`,
que reaplica o snapshot capturado na transição, dentro da janela de
desfazer (5 segundos por padrão). Existe no máximo uma ação desfazível
por máquina: a última substitui a anterior.

As mutações são gravadas em uma camada otimista por item; dados
autoritativos (vindos do banco) substituem essa camada via
:meth:`MaquinaOcorrencias.reconciliar`.
"""
from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Literal, Optional

from cuidamed.services.barramento import BarramentoEventos, CompromissoEvento
from cuidamed.services.conversores import (
    CONCLUIDO,
    EXCLUIDO,
    PENDENTE,
    HorarioStatus,
    ItemCompleto,
    MotivoRemocao,
    calcular_proxima_dose,
    estado_remocao,
    normalizar_hora,
    ordenar_horarios,
)
from cuidamed.utils.formatadores import format_time_24h

UNDO_JANELA_SEGUNDOS = 5.0

AcaoDesfazivel = Literal["complete", "remove"]


class TransicaoInvalida(ValueError):
    """Transição de status não permitida para a ocorrência."""


@dataclass(frozen=True)
class SnapshotItem:
    """Valores de um item antes de uma transição."""

    horarios: tuple[HorarioStatus, ...]
    proximo_horario: str
    removed_from_today: bool
    removal_reason: Optional[MotivoRemocao]

    @classmethod
    def de(cls, item: ItemCompleto) -> "SnapshotItem":
        return cls(
            horarios=tuple(item.horarios),
            proximo_horario=item.proximo_horario,
            removed_from_today=item.removed_from_today,
            removal_reason=item.removal_reason,
        )

    def aplicar(self, item: ItemCompleto) -> ItemCompleto:
        return replace(
            item,
            horarios=self.horarios,
            proximo_horario=self.proximo_horario,
            removed_from_today=self.removed_from_today,
            removal_reason=self.removal_reason,
        )


@dataclass(frozen=True)
class UndoAction:
    item_id: str
    item_tipo: str
    acao: AcaoDesfazivel
    hora: str
    timestamp: float
    previous_data: SnapshotItem


@dataclass(frozen=True)
class Toast:
    titulo: str
    descricao: str = ""
    variante: Literal["default", "destructive"] = "default"
    # Rótulo do botão de ação (ex.: "Desfazer")
    acao: Optional[str] = None


def _agora_utc() -> datetime:
    return datetime.now(timezone.utc)


class MaquinaOcorrencias:
    """Estado do dia de uma lista de medicações e/ou compromissos.

    ``relogio`` é monotônico e mede apenas a janela de desfazer; ``agora``
    fornece o horário de parede gravado em ``completed_at``.
    """

    def __init__(
        self,
        itens: Iterable[ItemCompleto] = (),
        barramento: Optional[BarramentoEventos] = None,
        relogio: Callable[[], float] = time.monotonic,
        janela: float = UNDO_JANELA_SEGUNDOS,
        on_toast: Optional[Callable[[Toast], None]] = None,
        agora: Callable[[], datetime] = _agora_utc,
    ):
        self._base: dict[str, ItemCompleto] = {}
        self._overlay: dict[str, ItemCompleto] = {}
        self._pendente: Optional[UndoAction] = None
        self.barramento = barramento
        self.relogio = relogio
        self.janela = janela
        self.on_toast = on_toast
        self.agora = agora
        for item in itens:
            self._base[item.id] = item

    # ----------------------------------
    # Leitura
    # ----------------------------------

    def item(self, item_id: str) -> ItemCompleto:
        if item_id in self._overlay:
            return replace(self._overlay[item_id], is_optimistic=True)
        try:
            return self._base[item_id]
        except KeyError:
            raise LookupError(f"Item {item_id} não encontrado") from None

    def itens(self) -> list[ItemCompleto]:
        return [self.item(item_id) for item_id in self._base]

    def principais(self) -> list[ItemCompleto]:
        """Itens ainda visíveis na lista do dia."""
        return [i for i in self.itens() if not i.removed_from_today]

    def removidos(self) -> list[ItemCompleto]:
        return [i for i in self.itens() if i.removed_from_today]

    @property
    def acao_pendente(self) -> Optional[UndoAction]:
        """Ação ainda desfazível; expira ao completar a janela."""
        acao = self._pendente
        if acao is not None and self.relogio() - acao.timestamp >= self.janela:
            self._pendente = None
            return None
        return acao

    def segundos_restantes(self) -> float:
        acao = self.acao_pendente
        if acao is None:
            return 0.0
        return max(0.0, self.janela - (self.relogio() - acao.timestamp))

    # ----------------------------------
    # Transições
    # ----------------------------------

    def complete(
        self, item_id: str, hora: Optional[str] = None
    ) -> ItemCompleto:
        """Marca como concluída a ocorrência ``hora`` (ou a próxima)."""
        return self._finalizar(item_id, hora, "complete")

    def remove(self, item_id: str, hora: Optional[str] = None) -> ItemCompleto:
        """Exclui (cancela) a ocorrência ``hora`` (ou a próxima)."""
        return self._finalizar(item_id, hora, "remove")

    def undo(self, acao: Optional[UndoAction] = None) -> Optional[ItemCompleto]:
        """Reaplica o snapshot da última ação.

        Sem efeito (retorna None) se a janela expirou ou se ``acao`` já foi
        substituída por outra mais recente.
        """
        pendente = self.acao_pendente
        if pendente is None or (acao is not None and acao != pendente):
            return None
        self._pendente = None

        atual = self._overlay.get(pendente.item_id) or self._base[
            pendente.item_id
        ]
        restaurado = pendente.previous_data.aplicar(atual)
        self._gravar(restaurado)
        self._notificar(Toast(titulo="Ação desfeita"))
        return self.item(pendente.item_id)

    def restore(self, item_id: str) -> ItemCompleto:
        """Devolve à lista do dia um item já finalizado (sem limite de tempo)."""
        item = self.item(item_id)
        if not item.removed_from_today:
            return item
        self._gravar(
            replace(
                item,
                removed_from_today=False,
                removal_reason=None,
                is_optimistic=False,
            )
        )
        self._publicar("restore", item)
        self._notificar(Toast(titulo="Item restaurado"))
        return self.item(item_id)

    # ----------------------------------
    # Camada otimista
    # ----------------------------------

    def reconciliar(self, autoritativos: Iterable[ItemCompleto]) -> None:
        """Substitui a base pelos dados autoritativos e descarta a camada
        otimista desses ids."""
        for item in autoritativos:
            self._base[item.id] = item
            self._overlay.pop(item.id, None)

    def descartar(self, item_id: str) -> None:
        """Descarta a camada otimista de um item (ex.: gravação falhou)."""
        self._overlay.pop(item_id, None)
        if self._pendente is not None and self._pendente.item_id == item_id:
            self._pendente = None

    # ----------------------------------
    # Internos
    # ----------------------------------

    def _finalizar(
        self, item_id: str, hora: Optional[str], acao: AcaoDesfazivel
    ) -> ItemCompleto:
        item = self.item(item_id)
        if getattr(item, "status", None) == "inativa":
            raise TransicaoInvalida("Medicação inativa")

        alvo = self._alvo(item, hora)
        if alvo.status != PENDENTE:
            raise TransicaoInvalida(
                f"Ocorrência das {alvo.hora} já está {alvo.status}"
            )

        if acao == "complete":
            novo = replace(
                alvo, status=CONCLUIDO, completed_at=self.agora().isoformat()
            )
        else:
            novo = replace(alvo, status=EXCLUIDO, completed_at=None)
        horarios = ordenar_horarios(
            novo if h is alvo else h for h in item.horarios
        )
        removido, motivo = estado_remocao(horarios)
        atualizado = replace(
            item,
            horarios=horarios,
            proximo_horario=calcular_proxima_dose(horarios),
            removed_from_today=removido,
            removal_reason=motivo,
            is_optimistic=False,
        )

        self._pendente = UndoAction(
            item_id=item_id,
            item_tipo=item.item_tipo,
            acao=acao,
            hora=alvo.hora,
            timestamp=self.relogio(),
            previous_data=SnapshotItem.de(item),
        )
        self._gravar(atualizado)
        self._publicar("complete" if acao == "complete" else "cancel", item)
        self._notificar(self._toast_finalizacao(item, alvo.hora, acao))
        return self.item(item_id)

    def _alvo(self, item: ItemCompleto, hora: Optional[str]) -> HorarioStatus:
        validos = [h for h in item.horarios if h.valido]
        if hora is not None:
            hora = normalizar_hora(hora)
            for h in validos:
                if h.hora == hora:
                    return h
            raise LookupError(f"Horário {hora} não encontrado")
        pendentes = sorted(
            (h for h in validos if h.status == PENDENTE), key=lambda h: h.hora
        )
        if not pendentes:
            raise TransicaoInvalida("Nenhuma ocorrência pendente hoje")
        return pendentes[0]

    def _gravar(self, item: ItemCompleto) -> None:
        # Sem diferença para a base: nada a sobrepor
        base = self._base.get(item.id)
        if base is not None and base == item:
            self._overlay.pop(item.id, None)
        else:
            self._overlay[item.id] = item

    def _publicar(self, tipo: str, item: ItemCompleto) -> None:
        if self.barramento is None:
            return
        self.barramento.publicar(
            CompromissoEvento(
                tipo=tipo,  # type: ignore[arg-type]
                item_id=item.id,
                item_tipo=item.item_tipo,  # type: ignore[arg-type]
            )
        )

    def _notificar(self, toast: Toast) -> None:
        if self.on_toast is not None:
            self.on_toast(toast)

    @staticmethod
    def _toast_finalizacao(
        item: ItemCompleto, hora: str, acao: AcaoDesfazivel
    ) -> Toast:
        if item.item_tipo == "medicacao":
            nome = getattr(item, "nome", "")
            if acao == "complete":
                titulo = "Dose registrada"
            else:
                titulo = "Dose cancelada"
            descricao = f"{nome} - {format_time_24h(hora)}"
        else:
            titulo = (
                "Compromisso concluído"
                if acao == "complete"
                else "Compromisso cancelado"
            )
            descricao = getattr(item, "titulo", "")
        return Toast(
            titulo=titulo,
            descricao=descricao,
            variante="default" if acao == "complete" else "destructive",
            acao="Desfazer",
        )
