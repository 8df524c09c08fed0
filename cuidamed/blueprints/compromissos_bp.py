from __future__ import annotations

from datetime import date

from flask import Blueprint, g, jsonify, request

from cuidamed.services import compromisso_service, filtros, medicacao_service
from cuidamed.utils.decorators import contexto_required
from cuidamed.utils.respostas import barramento_atual, erro_json
from cuidamed.utils.tempo import (
    hoje_local,
    obter_fuso,
    parse_data,
    parse_iso_to_utc,
)

compromissos_bp = Blueprint("compromissos_bp", __name__, url_prefix="/api")


@compromissos_bp.get("/compromissos")
@contexto_required
def listar():  # pragma: no cover - thin controller
    try:
        itens = compromisso_service.listar_compromissos_completos(
            g.contexto_id,
            aba=request.args.get("aba") or "todas",
            busca=request.args.get("busca"),
            categoria=request.args.get("categoria"),
            tz_nome=request.args.get("tz"),
        )
    except ValueError as e:
        return erro_json(e)
    return jsonify([c.to_dict() for c in itens])


@compromissos_bp.get("/compromissos/agenda")
@contexto_required
def agenda():
    """Listagem paginada por intervalo (ISO-8601), categoria, status e busca."""
    args = request.args
    try:
        inicio = parse_iso_to_utc(args["inicio"]) if args.get("inicio") else None
        fim = parse_iso_to_utc(args["fim"]) if args.get("fim") else None
        rows = compromisso_service.listar_compromissos(
            g.contexto_id,
            inicio=inicio,
            fim=fim,
            categoria=args.get("categoria") or None,
            status=args.get("status") or None,
            busca=args.get("busca"),
            pagina=int(args.get("pagina") or 1),
            por_pagina=int(
                args.get("por_pagina") or compromisso_service.POR_PAGINA_PADRAO
            ),
        )
    except ValueError as e:
        return erro_json(e)
    return jsonify([c.to_dict() for c in rows])


@compromissos_bp.post("/compromissos")
@contexto_required
def criar():  # pragma: no cover - thin controller
    try:
        c = compromisso_service.criar_compromisso(
            g.contexto_id, request.get_json(silent=True) or {}
        )
    except ValueError as e:
        return erro_json(e)
    return jsonify(c.to_dict()), 201


@compromissos_bp.put("/compromissos/<compromisso_id>")
@contexto_required
def atualizar(compromisso_id: str):  # pragma: no cover - thin controller
    try:
        c = compromisso_service.atualizar_compromisso(
            compromisso_id, g.contexto_id, request.get_json(silent=True) or {}
        )
    except (ValueError, LookupError) as e:
        return erro_json(e)
    return jsonify(c.to_dict())


@compromissos_bp.delete("/compromissos/<compromisso_id>")
@contexto_required
def excluir(compromisso_id: str):  # pragma: no cover - thin controller
    """Soft delete: o compromisso fica cancelado."""
    try:
        item = compromisso_service.cancelar_compromisso(
            compromisso_id, g.contexto_id, barramento_atual()
        )
    except (ValueError, LookupError) as e:
        return erro_json(e)
    return jsonify(item.to_dict())


@compromissos_bp.post("/compromissos/<compromisso_id>/concluir")
@contexto_required
def concluir(compromisso_id: str):  # pragma: no cover - thin controller
    dados = request.get_json(silent=True) or {}
    try:
        item = compromisso_service.concluir_compromisso(
            compromisso_id,
            g.contexto_id,
            barramento_atual(),
            resultado=dados.get("resultado"),
        )
    except (ValueError, LookupError) as e:
        return erro_json(e)
    return jsonify(item.to_dict())


@compromissos_bp.post("/compromissos/<compromisso_id>/cancelar")
@contexto_required
def cancelar(compromisso_id: str):  # pragma: no cover - thin controller
    try:
        item = compromisso_service.cancelar_compromisso(
            compromisso_id, g.contexto_id, barramento_atual()
        )
    except (ValueError, LookupError) as e:
        return erro_json(e)
    return jsonify(item.to_dict())


@compromissos_bp.post("/compromissos/<compromisso_id>/desfazer")
@contexto_required
def desfazer(compromisso_id: str):  # pragma: no cover - thin controller
    try:
        c = compromisso_service.desfazer_compromisso(
            compromisso_id, g.contexto_id
        )
    except (ValueError, LookupError) as e:
        return erro_json(e)
    return jsonify(c.to_dict())


@compromissos_bp.get("/compromissos/contagem-dia")
@contexto_required
def contagem_dia():
    """Contagem de agendados por dia/categoria (``ano`` e ``mes``)."""
    hoje = date.today()
    try:
        ano = int(request.args.get("ano") or hoje.year)
        mes = int(request.args.get("mes") or hoje.month)
        if not 1 <= mes <= 12:
            raise ValueError("Mês inválido")
    except ValueError as e:
        return erro_json(e)
    counts = compromisso_service.contagem_por_dia(
        g.contexto_id, ano, mes, request.args.get("tz")
    )
    return jsonify({"counts": counts})


@compromissos_bp.get("/compromissos/do-dia")
@contexto_required
def do_dia():
    """Resumo do dia: doses e compromissos (total/concluídos/restantes)."""
    tz_nome = request.args.get("tz")
    try:
        dia = parse_data(request.args.get("data")) or hoje_local(
            obter_fuso(tz_nome)
        )
    except ValueError as e:
        return erro_json(e)
    meds = medicacao_service.listar_medicacoes(
        g.contexto_id, aba="hoje", tz_nome=tz_nome, dia=dia
    )
    comps = compromisso_service.listar_compromissos_completos(
        g.contexto_id, aba="hoje", tz_nome=tz_nome, dia=dia
    )
    return jsonify(filtros.resumo_do_dia(meds, comps, dia).to_dict())
