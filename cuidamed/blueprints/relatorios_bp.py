from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from cuidamed.services import relatorio_service
from cuidamed.utils.decorators import contexto_required
from cuidamed.utils.respostas import erro_json
from cuidamed.utils.tempo import parse_data

relatorios_bp = Blueprint(
    "relatorios_bp", __name__, url_prefix="/api/relatorios"
)


@relatorios_bp.get("/resumo")
@contexto_required
def resumo():
    """Totais de adesão do período (``hoje``, ``semana``, ``mes`` ou
    ``personalizado`` com ``inicio``/``fim``)."""
    args = request.args
    try:
        dados = relatorio_service.resumo_relatorio(
            g.contexto_id,
            periodo=args.get("periodo") or "hoje",
            categoria=args.get("categoria") or "todas",
            inicio=parse_data(args.get("inicio")),
            fim=parse_data(args.get("fim")),
            tz_nome=args.get("tz"),
        )
    except ValueError as e:
        return erro_json(e)
    return jsonify(dados)
