from __future__ import annotations

from functools import wraps
from typing import Any, Callable

from flask import g, jsonify, session
from flask_login import current_user

from cuidamed import db
from cuidamed.models import PapelEnum, Perfil, StatusPerfilEnum

CONTEXTO_SESSION_KEY = "contexto_id"


def get_perfil_logado() -> Perfil | None:
    """Perfil vinculado à conta autenticada (ou None)."""
    if not getattr(current_user, "is_authenticated", False):
        return None
    return getattr(current_user, "perfil", None)


def get_contexto_id() -> str | None:
    """Id do paciente cujo prontuário está sendo visualizado.

    Ordem: contexto escolhido na sessão; senão o paciente vinculado ao
    perfil logado (para pacientes, o próprio perfil).
    """
    escolhido = session.get(CONTEXTO_SESSION_KEY)
    if escolhido:
        return str(escolhido)
    perfil = get_perfil_logado()
    if perfil is None:
        return None
    return perfil.paciente_id or perfil.id


def pode_acessar_contexto(perfil: Perfil | None, paciente_id: str) -> bool:
    """Um perfil acessa o próprio prontuário ou o do paciente que acompanha."""
    if perfil is None:
        return False
    if perfil.papel == PapelEnum.ADMIN:
        return True
    if perfil.status != StatusPerfilEnum.ATIVO:
        return False
    if perfil.id == paciente_id or perfil.paciente_id == paciente_id:
        return True
    return False


def contexto_required(func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator para rotas que operam sobre o paciente do contexto atual.

    - Requires authenticated user with a profile.
    - Resolves the current context into ``g.contexto_id``.
    - Otherwise answers 401/403 JSON.
    """
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        if not getattr(current_user, "is_authenticated", False):
            return jsonify({"error": "Autenticação necessária"}), 401
        contexto_id = get_contexto_id()
        perfil = get_perfil_logado()
        if not contexto_id or not pode_acessar_contexto(perfil, contexto_id):
            return jsonify({"error": "Contexto não permitido"}), 403
        if db.session.get(Perfil, contexto_id) is None:
            return jsonify({"error": "Paciente não encontrado"}), 404
        g.contexto_id = contexto_id
        g.perfil = perfil
        return func(*args, **kwargs)
    return wrapper
