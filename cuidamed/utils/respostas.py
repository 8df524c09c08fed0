from __future__ import annotations

from typing import Any

from flask import current_app, jsonify

from cuidamed.services.barramento import BarramentoEventos
from cuidamed.services.convite_service import ConviteErro
from cuidamed.services.ocorrencias import TransicaoInvalida
from cuidamed.services.perfil_service import PermissaoNegada
from cuidamed.utils.validacao import ValidacaoError


def erro_json(exc: Exception):
    """Converte exceções de domínio em resposta JSON com o status adequado.

    - ValidacaoError -> 400 (com ``campos``)
    - PermissaoNegada -> 403
    - LookupError -> 404
    - TransicaoInvalida -> 409
    - ConviteErro -> status do serviço de convites (502 se indisponível)
    - ValueError -> 400
    """
    payload: dict[str, Any] = {"error": str(exc)}
    if isinstance(exc, ValidacaoError):
        payload["campos"] = exc.erros
        return jsonify(payload), 400
    if isinstance(exc, PermissaoNegada):
        return jsonify(payload), 403
    if isinstance(exc, LookupError):
        return jsonify(payload), 404
    if isinstance(exc, TransicaoInvalida):
        return jsonify(payload), 409
    if isinstance(exc, ConviteErro):
        return jsonify({"error": exc.mensagem}), exc.status_code
    return jsonify(payload), 400


def barramento_atual() -> BarramentoEventos:
    return current_app.extensions["barramento"]
