"""Interpretação de gestos de arrastar sobre um card de ocorrência.

Recebe posições de ponteiro/toque e decide entre deslizar na horizontal
(concluir para a direita, cancelar para a esquerda), rolar na vertical
(devolvido à rolagem nativa) ou tocar (abrir edição).
"""
from __future__ import annotations

import math
import time
from collections.abc import Callable
from enum import Enum
from typing import Any, Optional

# Limiares em pixels / segundos
LIMIAR_DIRECAO = 15
LIMIAR_ACAO = 100
LIMIAR_DICA = 20
TAP_DISTANCIA_MAX = 16
TAP_DURACAO_MAX = 0.35
TAP_DEBOUNCE = 0.05
OPACIDADE_DISTANCIA = 80
TRANSLATE_FATOR = 0.4
TRANSLATE_MAX = 120


class EstadoGesto(str, Enum):
    IDLE = "idle"
    TRACKING = "tracking"
    HORIZONTAL_SWIPE = "horizontal_swipe"
    VERTICAL_SCROLL = "vertical_scroll"


class ResultadoGesto(str, Enum):
    NENHUM = "none"
    COMPLETE = "complete"
    REMOVE = "remove"
    TAP = "tap"


class InterpretadorGestos:
    """Máquina de estados de um gesto sobre o card.

    Sem ``agendar``, a edição do toque fica com prazo marcado e é disparada
    por :meth:`processar`, chamado pelo laço de eventos de quem usa a classe.
    """

    def __init__(
        self,
        on_complete: Optional[Callable[[], None]] = None,
        on_remove: Optional[Callable[[], None]] = None,
        on_edit: Optional[Callable[[], None]] = None,
        agendar: Optional[Callable[[float, Callable[[], None]], Any]] = None,
        relogio: Callable[[], float] = time.monotonic,
        disabled: bool = False,
    ):
        self.on_complete = on_complete
        self.on_remove = on_remove
        self.on_edit = on_edit
        self.agendar = agendar
        self.relogio = relogio
        self.disabled = disabled

        self.estado = EstadoGesto.IDLE
        self._x0 = self._y0 = 0.0
        self._t0 = 0.0
        self.dx = self.dy = 0.0
        self._edicao_agendada: Any = None
        self._prazo_edicao: Optional[float] = None

    # ----------------------------------
    # Eventos
    # ----------------------------------

    def start(self, x: float, y: float, t: Optional[float] = None) -> None:
        if self.disabled:
            return
        self.estado = EstadoGesto.TRACKING
        self._x0, self._y0 = x, y
        self._t0 = self.relogio() if t is None else t
        self.dx = self.dy = 0.0

    def move(self, x: float, y: float) -> bool:
        """Atualiza a posição; True quando a rolagem nativa deve ser
        bloqueada (gesto horizontal em andamento)."""
        if self.disabled or self.estado in (
            EstadoGesto.IDLE,
            EstadoGesto.VERTICAL_SCROLL,
        ):
            return False
        self.dx, self.dy = x - self._x0, y - self._y0

        if self.estado == EstadoGesto.TRACKING:
            if abs(self.dx) > LIMIAR_DIRECAO and abs(self.dx) > abs(self.dy):
                self.estado = EstadoGesto.HORIZONTAL_SWIPE
            elif abs(self.dy) > LIMIAR_DIRECAO:
                self.estado = EstadoGesto.VERTICAL_SCROLL
                self.dx = 0.0
                return False
        return self.estado == EstadoGesto.HORIZONTAL_SWIPE

    def end(
        self,
        x: Optional[float] = None,
        y: Optional[float] = None,
        t: Optional[float] = None,
    ) -> ResultadoGesto:
        if self.disabled or self.estado == EstadoGesto.IDLE:
            return ResultadoGesto.NENHUM
        if x is not None and y is not None:
            self.move(x, y)
        fim = self.relogio() if t is None else t
        duracao = fim - self._t0
        estado, dx, dy = self.estado, self.dx, self.dy
        self.cancel()

        if estado == EstadoGesto.HORIZONTAL_SWIPE:
            if abs(dx) <= LIMIAR_ACAO:
                return ResultadoGesto.NENHUM
            if dx > 0:
                if self.on_complete:
                    self.on_complete()
                return ResultadoGesto.COMPLETE
            if self.on_remove:
                self.on_remove()
            return ResultadoGesto.REMOVE

        if (
            estado == EstadoGesto.TRACKING
            and math.hypot(dx, dy) <= TAP_DISTANCIA_MAX
            and duracao <= TAP_DURACAO_MAX
        ):
            self._agendar_edicao(fim)
            return ResultadoGesto.TAP
        return ResultadoGesto.NENHUM

    def cancel(self) -> None:
        self.estado = EstadoGesto.IDLE
        self.dx = self.dy = 0.0

    # ----------------------------------
    # Feedback visual
    # ----------------------------------

    @property
    def translate_x(self) -> float:
        if self.estado != EstadoGesto.HORIZONTAL_SWIPE:
            return 0.0
        return max(
            -TRANSLATE_MAX, min(TRANSLATE_MAX, self.dx * TRANSLATE_FATOR)
        )

    @property
    def overlay_opacidade(self) -> float:
        if self.estado != EstadoGesto.HORIZONTAL_SWIPE:
            return 0.0
        return min(1.0, abs(self.dx) / OPACIDADE_DISTANCIA)

    @property
    def dica_acao(self) -> Optional[ResultadoGesto]:
        if (
            self.estado != EstadoGesto.HORIZONTAL_SWIPE
            or abs(self.dx) <= LIMIAR_DICA
        ):
            return None
        return ResultadoGesto.COMPLETE if self.dx > 0 else ResultadoGesto.REMOVE

    # ----------------------------------

    def _agendar_edicao(self, fim: float) -> None:
        # Um novo toque dentro do debounce substitui o anterior
        anterior = self._edicao_agendada
        if anterior is not None and hasattr(anterior, "cancel"):
            anterior.cancel()
        if self.agendar is None:
            self._prazo_edicao = fim + TAP_DEBOUNCE
            return
        self._edicao_agendada = self.agendar(TAP_DEBOUNCE, self._disparar_edicao)

    def processar(self, t: Optional[float] = None) -> bool:
        """Dispara a edição pendente se o debounce já passou."""
        agora = self.relogio() if t is None else t
        if self._prazo_edicao is None or agora < self._prazo_edicao:
            return False
        self._disparar_edicao()
        return True

    def _disparar_edicao(self) -> None:
        self._edicao_agendada = None
        self._prazo_edicao = None
        if self.on_edit and not self.disabled:
            self.on_edit()
