from __future__ import annotations

from flask import Blueprint, jsonify, request, session
from flask_login import current_user, login_required, login_user, logout_user

from cuidamed import db
from cuidamed.models import Perfil
from cuidamed.services import convite_service, perfil_service
from cuidamed.utils.decorators import (
    CONTEXTO_SESSION_KEY,
    get_contexto_id,
    get_perfil_logado,
    pode_acessar_contexto,
)
from cuidamed.utils.respostas import erro_json

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/auth")


@auth_bp.post("/login")
def login():  # pragma: no cover - thin controller
    dados = request.get_json(silent=True) or request.form
    user = perfil_service.authenticate_user(
        dados.get("email") or "", dados.get("senha") or ""
    )
    if user is None:
        return jsonify({"error": "E-mail ou senha inválidos"}), 401
    login_user(user)
    session.pop(CONTEXTO_SESSION_KEY, None)
    perfil = user.perfil
    return jsonify(
        {
            "usuario_id": user.id,
            "perfil": perfil.to_dict() if perfil else None,
            "contexto_id": get_contexto_id(),
        }
    )


@auth_bp.post("/logout")
@login_required
def logout():  # pragma: no cover - thin controller
    logout_user()
    session.pop(CONTEXTO_SESSION_KEY, None)
    return jsonify({"ok": True})


@auth_bp.post("/cadastro")
def cadastro():  # pragma: no cover - thin controller
    """Cadastro público de paciente."""
    try:
        perfil = perfil_service.criar_perfil(request.get_json(silent=True) or {})
    except (ValueError, LookupError, PermissionError) as e:
        return erro_json(e)
    return jsonify({"perfil": perfil.to_dict()}), 201


@auth_bp.get("/contexto")
@login_required
def contexto_atual():  # pragma: no cover - thin controller
    perfil = get_perfil_logado()
    contexto_id = get_contexto_id()
    paciente = db.session.get(Perfil, contexto_id) if contexto_id else None
    return jsonify(
        {
            "contexto_id": contexto_id,
            "paciente": paciente.to_dict() if paciente else None,
            "perfil": perfil.to_dict() if perfil else None,
        }
    )


@auth_bp.post("/contexto")
@login_required
def trocar_contexto():  # pragma: no cover - thin controller
    """Seleciona o paciente cujos dados serão exibidos."""
    dados = request.get_json(silent=True) or {}
    contexto_id = str(dados.get("contexto_id") or "")
    perfil = get_perfil_logado()
    if not contexto_id or not pode_acessar_contexto(perfil, contexto_id):
        return jsonify({"error": "Contexto não permitido"}), 403
    if db.session.get(Perfil, contexto_id) is None:
        return jsonify({"error": "Paciente não encontrado"}), 404
    session[CONTEXTO_SESSION_KEY] = contexto_id
    return jsonify({"contexto_id": contexto_id})


@auth_bp.get("/convites/<token>")
def validar_convite(token: str):  # pragma: no cover - thin controller
    try:
        convite = convite_service.validar_convite(token)
    except (ValueError, convite_service.ConviteErro) as e:
        return erro_json(e)
    return jsonify({"invitation": convite})


@auth_bp.post("/convites/<token>")
def aceitar_convite(token: str):  # pragma: no cover - thin controller
    if getattr(current_user, "is_authenticated", False):
        return jsonify({"error": "Encerre a sessão atual antes"}), 409
    dados = request.get_json(silent=True) or {}
    try:
        resultado = convite_service.aceitar_convite(
            token, dados.get("senha") or "", dados.get("confirmar_senha") or ""
        )
    except (ValueError, convite_service.ConviteErro) as e:
        return erro_json(e)
    return jsonify(resultado)
