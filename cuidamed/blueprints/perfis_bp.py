from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import login_required

from cuidamed.services import perfil_service
from cuidamed.utils.decorators import get_perfil_logado
from cuidamed.utils.respostas import erro_json

perfis_bp = Blueprint("perfis_bp", __name__, url_prefix="/api/perfis")

_ERROS = (ValueError, LookupError, PermissionError)


def _sem_perfil():
    return jsonify({"error": "Conta sem perfil vinculado"}), 403


@perfis_bp.get("")
@login_required
def listar():  # pragma: no cover - thin controller
    perfil = get_perfil_logado()
    if perfil is None:
        return _sem_perfil()
    perfis = perfil_service.listar_perfis(perfil)
    return jsonify(
        [
            {
                **p.to_dict(),
                "pode_gerenciar": perfil_service.pode_gerenciar(perfil, p),
            }
            for p in perfis
        ]
    )


@perfis_bp.post("")
@login_required
def criar():  # pragma: no cover - thin controller
    perfil = get_perfil_logado()
    if perfil is None:
        return _sem_perfil()
    try:
        novo = perfil_service.criar_perfil(
            request.get_json(silent=True) or {}, perfil
        )
    except _ERROS as e:
        return erro_json(e)
    return jsonify(novo.to_dict()), 201


@perfis_bp.put("/<perfil_id>")
@login_required
def atualizar(perfil_id: str):  # pragma: no cover - thin controller
    perfil = get_perfil_logado()
    if perfil is None:
        return _sem_perfil()
    try:
        p = perfil_service.atualizar_perfil(
            perfil_id, request.get_json(silent=True) or {}, perfil
        )
    except _ERROS as e:
        return erro_json(e)
    return jsonify(p.to_dict())


@perfis_bp.delete("/<perfil_id>")
@login_required
def remover(perfil_id: str):  # pragma: no cover - thin controller
    perfil = get_perfil_logado()
    if perfil is None:
        return _sem_perfil()
    try:
        perfil_service.remover_perfil(perfil_id, perfil)
    except _ERROS as e:
        return erro_json(e)
    return jsonify({"ok": True})


@perfis_bp.post("/<perfil_id>/gestor")
@login_required
def gestor(perfil_id: str):  # pragma: no cover - thin controller
    perfil = get_perfil_logado()
    if perfil is None:
        return _sem_perfil()
    dados = request.get_json(silent=True) or {}
    try:
        p = perfil_service.definir_gestor(
            perfil_id, perfil, ativo=bool(dados.get("ativo", True))
        )
    except _ERROS as e:
        return erro_json(e)
    return jsonify(p.to_dict())


@perfis_bp.post("/<perfil_id>/status")
@login_required
def status(perfil_id: str):  # pragma: no cover - thin controller
    """Define ``status``; sem corpo, alterna ativo/inativo."""
    perfil = get_perfil_logado()
    if perfil is None:
        return _sem_perfil()
    dados = request.get_json(silent=True) or {}
    try:
        p = perfil_service.alterar_status(
            perfil_id, perfil, dados.get("status")
        )
    except _ERROS as e:
        return erro_json(e)
    return jsonify(p.to_dict())


@perfis_bp.get("/codigo/<codigo>")
@login_required
def por_codigo(codigo: str):  # pragma: no cover - thin controller
    try:
        p = perfil_service.buscar_por_codigo(codigo)
    except _ERROS as e:
        return erro_json(e)
    # Apenas dados públicos do perfil encontrado
    return jsonify(
        {"id": p.id, "nome": p.nome, "codigo": p.codigo, "papel": p.papel.value}
    )
