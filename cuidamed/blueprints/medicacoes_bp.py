from __future__ import annotations

from flask import Blueprint, g, jsonify, request
from flask_login import current_user

from cuidamed.services import medicacao_service
from cuidamed.utils.decorators import contexto_required
from cuidamed.utils.respostas import barramento_atual, erro_json

medicacoes_bp = Blueprint("medicacoes_bp", __name__, url_prefix="/api")


def _tz() -> str | None:
    dados = request.get_json(silent=True) or {}
    return request.args.get("tz") or dados.get("tz") or None


@medicacoes_bp.get("/medicacoes")
@contexto_required
def listar():  # pragma: no cover - thin controller
    try:
        meds = medicacao_service.listar_medicacoes(
            g.contexto_id,
            aba=request.args.get("aba") or "todas",
            busca=request.args.get("busca"),
            tz_nome=_tz(),
        )
    except ValueError as e:
        return erro_json(e)
    return jsonify([m.to_dict() for m in meds])


@medicacoes_bp.post("/medicacoes")
@contexto_required
def criar():  # pragma: no cover - thin controller
    dados = request.get_json(silent=True) or {}
    try:
        med = medicacao_service.criar_medicacao(g.contexto_id, dados, _tz())
        completa = medicacao_service.medicacao_completa(med, tz_nome=_tz())
    except (ValueError, LookupError) as e:
        return erro_json(e)
    return jsonify(completa.to_dict()), 201


@medicacoes_bp.put("/medicacoes/<medicacao_id>")
@contexto_required
def atualizar(medicacao_id: str):  # pragma: no cover - thin controller
    dados = request.get_json(silent=True) or {}
    try:
        med = medicacao_service.atualizar_medicacao(
            medicacao_id, g.contexto_id, dados, _tz()
        )
        completa = medicacao_service.medicacao_completa(med, tz_nome=_tz())
    except (ValueError, LookupError) as e:
        return erro_json(e)
    return jsonify(completa.to_dict())


@medicacoes_bp.delete("/medicacoes/<medicacao_id>")
@contexto_required
def excluir(medicacao_id: str):  # pragma: no cover - thin controller
    try:
        medicacao_service.excluir_medicacao(medicacao_id, g.contexto_id)
    except LookupError as e:
        return erro_json(e)
    return jsonify({"ok": True})


def _finalizar(medicacao_id: str, acao: str):
    dados = request.get_json(silent=True) or {}
    finalizar = (
        medicacao_service.concluir_dose
        if acao == "concluir"
        else medicacao_service.cancelar_dose
    )
    try:
        med = finalizar(
            medicacao_id,
            g.contexto_id,
            hora=dados.get("hora"),
            usuario_id=current_user.get_id(),
            barramento=barramento_atual(),
            tz_nome=_tz(),
        )
    except (ValueError, LookupError) as e:
        return erro_json(e)
    return jsonify(med.to_dict())


@medicacoes_bp.post("/medicacoes/<medicacao_id>/concluir")
@contexto_required
def concluir(medicacao_id: str):  # pragma: no cover - thin controller
    return _finalizar(medicacao_id, "concluir")


@medicacoes_bp.post("/medicacoes/<medicacao_id>/cancelar")
@contexto_required
def cancelar(medicacao_id: str):  # pragma: no cover - thin controller
    return _finalizar(medicacao_id, "cancelar")


@medicacoes_bp.post("/medicacoes/<medicacao_id>/proxima")
@contexto_required
def marcar_proxima(medicacao_id: str):  # pragma: no cover - thin controller
    """Conclui/exclui a dose pendente mais próxima do horário atual."""
    dados = request.get_json(silent=True) or {}
    try:
        med = medicacao_service.marcar_ocorrencia_proxima(
            medicacao_id,
            g.contexto_id,
            acao=dados.get("acao") or "concluir",
            usuario_id=current_user.get_id(),
            barramento=barramento_atual(),
            tz_nome=_tz(),
        )
    except (ValueError, LookupError) as e:
        return erro_json(e)
    return jsonify(med.to_dict())


@medicacoes_bp.post("/ocorrencias/<occurrence_id>/desfazer")
@contexto_required
def desfazer(occurrence_id: str):  # pragma: no cover - thin controller
    try:
        occ = medicacao_service.desfazer_ocorrencia(occurrence_id, g.contexto_id)
    except (ValueError, LookupError) as e:
        return erro_json(e)
    return jsonify(occ.to_dict())
