from __future__ import annotations

import random
import secrets
import string
from collections.abc import Collection, Mapping
from typing import Any, Optional

from flask import current_app
from werkzeug.security import check_password_hash, generate_password_hash

from cuidamed import db
from cuidamed.models import (
    PapelEnum,
    Perfil,
    StatusPerfilEnum,
    Usuario,
)
from cuidamed.utils.sanitization import sanitizar_input, texto_ou_none
from cuidamed.utils.validacao import (
    CODIGO_RE,
    ValidacaoError,
    formatar_celular,
    normalizar_codigo,
    validar_perfil,
)

ALFABETO_CODIGO = string.ascii_uppercase + string.digits
TAMANHO_CODIGO = 6
MAX_TENTATIVAS = 1000


class PermissaoNegada(PermissionError):
    """O perfil logado não pode gerenciar o perfil alvo."""


# ----------------------------------
# Códigos
# ----------------------------------


def gerar_codigo_unico(
    existentes: Collection[str], rng: Optional[random.Random] = None
) -> str:
    """Código de 6 caracteres ``[A-Z0-9]`` fora de ``existentes``.

    Sem ``rng``, usa :mod:`secrets`.
    """
    escolher = rng.choice if rng is not None else secrets.choice
    for _ in range(MAX_TENTATIVAS):
        codigo = "".join(
            escolher(ALFABETO_CODIGO) for _ in range(TAMANHO_CODIGO)
        )
        if codigo not in existentes:
            return codigo
    raise RuntimeError("Não foi possível gerar um código único")


def gerar_codigos_unicos(
    quantidade: int,
    existentes: Collection[str] = (),
    rng: Optional[random.Random] = None,
) -> list[str]:
    usados = set(existentes)
    codigos = []
    for _ in range(quantidade):
        codigo = gerar_codigo_unico(usados, rng)
        usados.add(codigo)
        codigos.append(codigo)
    return codigos


def _codigos_existentes() -> set[str]:
    return {c for (c,) in db.session.query(Perfil.codigo).all()}


# ----------------------------------
# Autenticação
# ----------------------------------


def authenticate_user(email: str, senha: str) -> Usuario | None:
    """Returns the Usuario if credentials are valid and the user is active."""
    email = (sanitizar_input(email) or "").lower()
    user = db.session.query(Usuario).filter_by(email=email).first()
    if not user:
        return None
    if not getattr(user, "is_active", False):
        return None
    if not check_password_hash(user.password_hash, senha or ""):
        return None
    return user


# ----------------------------------
# Consultas e permissões
# ----------------------------------


def get_perfil(perfil_id: str) -> Perfil:
    p = db.session.get(Perfil, str(perfil_id))
    if p is None:
        raise LookupError("Perfil não encontrado")
    return p


def _paciente_do(perfil: Perfil) -> str:
    return perfil.paciente_id or perfil.id


def listar_perfis(perfil_logado: Perfil) -> list[Perfil]:
    """Perfis visíveis: admin vê todos; os demais veem o prontuário do
    próprio paciente (paciente + acompanhantes + cuidadores)."""
    q = db.session.query(Perfil)
    if perfil_logado.papel != PapelEnum.ADMIN:
        paciente_id = _paciente_do(perfil_logado)
        q = q.filter(
            (Perfil.id == paciente_id) | (Perfil.paciente_id == paciente_id)
        )
    return q.order_by(Perfil.created_at.asc()).all()


def pode_gerenciar(perfil_logado: Perfil, alvo: Perfil) -> bool:
    if perfil_logado.papel == PapelEnum.ADMIN:
        return True
    if alvo.id == perfil_logado.id:
        return True
    if _paciente_do(alvo) != _paciente_do(perfil_logado):
        return False
    if alvo.papel == PapelEnum.PACIENTE:
        return False
    return perfil_logado.papel == PapelEnum.PACIENTE or bool(
        perfil_logado.is_gestor
    )


def _exigir_gerencia(perfil_logado: Perfil, alvo: Perfil) -> None:
    if not pode_gerenciar(perfil_logado, alvo):
        raise PermissaoNegada("Sem permissão para gerenciar este perfil")


def buscar_por_codigo(codigo: str) -> Perfil:
    normalizado = normalizar_codigo(codigo)
    if not CODIGO_RE.match(normalizado):
        raise ValidacaoError({"codigo": "Código deve ter 6 letras ou números"})
    p = db.session.query(Perfil).filter_by(codigo=normalizado).first()
    if p is None:
        raise LookupError("Código não encontrado")
    return p


# ----------------------------------
# Escrita
# ----------------------------------


def criar_perfil(
    dados: Mapping[str, Any], perfil_logado: Optional[Perfil] = None
) -> Perfil:
    """Cria conta + perfil.

    Sem ``perfil_logado`` (cadastro), cria um paciente dono do próprio
    prontuário. Com ``perfil_logado``, cria um colaborador no prontuário do
    paciente dele.
    """
    dados = dict(dados)
    if dados.get("celular"):
        dados["celular"] = formatar_celular(str(dados["celular"]))
    erros = validar_perfil(dados)
    email = (sanitizar_input(dados.get("email")) or "").lower()
    if email and db.session.query(Usuario).filter_by(email=email).first():
        erros.setdefault("email", "E-mail já cadastrado")
    if erros:
        raise ValidacaoError(erros)

    papel = PapelEnum(dados.get("papel") or "paciente")
    if perfil_logado is None and papel != PapelEnum.PACIENTE:
        raise ValidacaoError({"papel": "Cadastro público apenas de pacientes"})
    if perfil_logado is not None:
        if papel == PapelEnum.ADMIN and perfil_logado.papel != PapelEnum.ADMIN:
            raise PermissaoNegada("Apenas administradores criam admins")
        if perfil_logado.papel not in (
            PapelEnum.PACIENTE,
            PapelEnum.ADMIN,
        ) and not perfil_logado.is_gestor:
            raise PermissaoNegada("Sem permissão para criar perfis")

    try:
        user = Usuario()
        user.email = email
        user.password_hash = generate_password_hash(dados["senha"])
        db.session.add(user)
        db.session.flush()

        p = Perfil()
        p.usuario_id = user.id
        p.nome = sanitizar_input(dados.get("nome")) or ""
        p.email = email
        p.celular = texto_ou_none(dados.get("celular"))
        p.papel = papel
        p.status = StatusPerfilEnum(dados.get("status") or "ativo")
        p.codigo = gerar_codigo_unico(_codigos_existentes())
        if perfil_logado is not None and papel != PapelEnum.PACIENTE:
            p.paciente_id = _paciente_do(perfil_logado)
        db.session.add(p)
        db.session.flush()
        if p.paciente_id is None:
            p.paciente_id = p.id
        db.session.commit()
        current_app.logger.info(
            f"Perfil criado: {p.id} ({p.papel.value}) codigo={p.codigo}"
        )
        return p
    except Exception:
        db.session.rollback()
        raise


def atualizar_perfil(
    perfil_id: str, dados: Mapping[str, Any], perfil_logado: Perfil
) -> Perfil:
    p = get_perfil(perfil_id)
    _exigir_gerencia(perfil_logado, p)

    dados = dict(dados)
    if dados.get("celular"):
        dados["celular"] = formatar_celular(str(dados["celular"]))
    mesclado = {**p.to_dict(), **{k: v for k, v in dados.items() if v}}
    erros = validar_perfil(mesclado, editando=True)
    email = (sanitizar_input(mesclado.get("email")) or "").lower()
    if email != (p.email or ""):
        outro = db.session.query(Usuario).filter_by(email=email).first()
        if outro is not None and outro.id != p.usuario_id:
            erros.setdefault("email", "E-mail já cadastrado")
    if erros:
        raise ValidacaoError(erros)

    try:
        p.nome = sanitizar_input(mesclado.get("nome")) or p.nome
        p.email = email
        p.celular = texto_ou_none(mesclado.get("celular"))
        if "papel" in dados and dados["papel"]:
            novo_papel = PapelEnum(dados["papel"])
            if novo_papel != p.papel and (
                p.papel == PapelEnum.PACIENTE
                or novo_papel == PapelEnum.PACIENTE
            ):
                raise ValidacaoError(
                    {"papel": "O papel de paciente não pode ser alterado"}
                )
            p.papel = novo_papel
        if p.usuario is not None:
            p.usuario.email = email
            if dados.get("senha"):
                p.usuario.password_hash = generate_password_hash(
                    dados["senha"]
                )
        db.session.commit()
        return p
    except Exception:
        db.session.rollback()
        raise


def definir_gestor(
    perfil_id: str, perfil_logado: Perfil, ativo: bool = True
) -> Perfil:
    """Marca (ou desmarca) o gestor do prontuário; no máximo um por paciente."""
    p = get_perfil(perfil_id)
    if perfil_logado.papel not in (PapelEnum.PACIENTE, PapelEnum.ADMIN):
        raise PermissaoNegada("Apenas o paciente define o gestor")
    _exigir_gerencia(perfil_logado, p)
    if ativo and p.status != StatusPerfilEnum.ATIVO:
        raise ValidacaoError({"status": "Apenas perfis ativos podem ser gestores"})
    try:
        if ativo:
            paciente_id = _paciente_do(p)
            (
                db.session.query(Perfil)
                .filter(
                    Perfil.is_gestor.is_(True),
                    Perfil.id != p.id,
                    (Perfil.paciente_id == paciente_id)
                    | (Perfil.id == paciente_id),
                )
                .update({Perfil.is_gestor: False}, synchronize_session="fetch")
            )
        p.is_gestor = ativo
        db.session.commit()
        current_app.logger.info(f"Gestor do perfil {p.id}: {ativo}")
        return p
    except Exception:
        db.session.rollback()
        raise


def alterar_status(
    perfil_id: str, perfil_logado: Perfil, status: Optional[str] = None
) -> Perfil:
    """Define o status; sem ``status`` alterna entre ativo e inativo."""
    p = get_perfil(perfil_id)
    _exigir_gerencia(perfil_logado, p)
    if status is None:
        novo = (
            StatusPerfilEnum.INATIVO
            if p.status == StatusPerfilEnum.ATIVO
            else StatusPerfilEnum.ATIVO
        )
    else:
        try:
            novo = StatusPerfilEnum(status)
        except ValueError:
            raise ValidacaoError({"status": "Status inválido"}) from None
    if p.papel == PapelEnum.PACIENTE and novo != StatusPerfilEnum.ATIVO:
        raise ValidacaoError(
            {"status": "O perfil principal do paciente não pode ser inativado"}
        )
    try:
        p.status = novo
        if novo != StatusPerfilEnum.ATIVO:
            p.is_gestor = False
        db.session.commit()
        return p
    except Exception:
        db.session.rollback()
        raise


def remover_perfil(perfil_id: str, perfil_logado: Perfil) -> None:
    p = get_perfil(perfil_id)
    if p.papel == PapelEnum.PACIENTE:
        raise ValidacaoError(
            {"papel": "Não é possível remover o perfil principal do paciente."}
        )
    _exigir_gerencia(perfil_logado, p)
    try:
        usuario = p.usuario
        db.session.delete(p)
        if usuario is not None:
            # Soft-delete da conta
            usuario.is_active = False
        db.session.commit()
        current_app.logger.info(f"Perfil removido: {perfil_id}")
    except Exception:
        db.session.rollback()
        raise
