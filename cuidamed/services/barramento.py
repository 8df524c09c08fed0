"""Barramento de eventos de compromissos (publish/subscribe em memória).

Uma instância por aplicação (``app.extensions["barramento"]``), passada
explicitamente aos serviços que publicam.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Literal, Optional, TypeVar

logger = logging.getLogger(__name__)

TipoEvento = Literal["complete", "cancel", "undo", "restore"]
TipoItem = Literal["medicacao", "consulta", "exame", "atividade"]

TIPOS_EVENTO = ("complete", "cancel", "undo", "restore")


@dataclass(frozen=True)
class CompromissoEvento:
    tipo: TipoEvento
    item_id: str
    item_tipo: TipoItem
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self):
        if self.tipo not in TIPOS_EVENTO:
            raise ValueError(f"Tipo de evento inválido: {self.tipo!r}")


E = TypeVar("E")


@dataclass
class _Inscricao:
    tipo_evento: type
    callback: Callable[[object], None]
    tipos: Optional[frozenset[str]] = None


class BarramentoEventos:
    """Entrega eventos, em ordem de inscrição, a quem se inscreveu.

    Uma falha em um ouvinte é registrada e não impede os demais.
    """

    def __init__(self):
        self._inscricoes: list[_Inscricao] = []

    def inscrever(
        self,
        tipo_evento: type[E],
        callback: Callable[[E], None],
        tipos: Optional[Iterable[str]] = None,
    ) -> Callable[[], None]:
        """Inscreve ``callback``; retorna a função que cancela a inscrição.

        ``tipos`` restringe a entrega a ``evento.tipo`` específicos
        (ex.: só ``"complete"``).
        """
        inscricao = _Inscricao(
            tipo_evento=tipo_evento,
            callback=callback,  # type: ignore[arg-type]
            tipos=frozenset(tipos) if tipos is not None else None,
        )
        self._inscricoes.append(inscricao)

        def cancelar() -> None:
            try:
                self._inscricoes.remove(inscricao)
            except ValueError:
                pass  # já removida

        return cancelar

    def publicar(self, evento: object) -> int:
        """Publica ``evento``; retorna quantos ouvintes o receberam."""
        entregues = 0
        for inscricao in list(self._inscricoes):
            if not isinstance(evento, inscricao.tipo_evento):
                continue
            if inscricao.tipos is not None and (
                getattr(evento, "tipo", None) not in inscricao.tipos
            ):
                continue
            try:
                inscricao.callback(evento)
                entregues += 1
            except Exception:
                logger.exception("Falha em ouvinte do barramento: %r", evento)
        return entregues

    def __len__(self) -> int:
        return len(self._inscricoes)
