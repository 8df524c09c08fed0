"""Cliente dos endpoints externos de convite (cadastro de administradores)."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Optional

import httpx
from flask import current_app

from cuidamed.utils.validacao import SENHA_FORTE_RE, ValidacaoError

ROTA_VALIDAR = "/admin-invite-validate"
ROTA_ACEITAR = "/admin-signup-accept"


class ConviteErro(Exception):
    """Resposta de erro do serviço de convites (4xx)."""

    def __init__(self, mensagem: str, status_code: int = 400):
        super().__init__(mensagem)
        self.mensagem = mensagem
        self.status_code = status_code


class ConviteIndisponivel(ConviteErro):
    """Falha de rede ou 5xx; sem nova tentativa automática."""

    def __init__(self, mensagem: str = "Serviço de convites indisponível"):
        super().__init__(mensagem, 502)


@contextmanager
def _cliente(client: Optional[httpx.Client]) -> Iterator[httpx.Client]:
    if client is not None:
        yield client
        return
    base_url = current_app.config.get("CONVITES_API_URL") or ""
    if not base_url:
        raise ConviteIndisponivel("CONVITES_API_URL não configurada")
    timeout = float(current_app.config.get("CONVITES_TIMEOUT", 8.0))
    with httpx.Client(base_url=base_url, timeout=timeout) as novo:
        yield novo


def _interpretar(resp: httpx.Response) -> dict[str, Any]:
    try:
        payload = resp.json()
    except ValueError:
        payload = {}
    if resp.status_code >= 500:
        current_app.logger.error(
            f"Convites: erro {resp.status_code} em {resp.request.url}"
        )
        raise ConviteIndisponivel(
            payload.get("error") or "Serviço de convites indisponível"
        )
    if resp.status_code >= 400:
        raise ConviteErro(
            payload.get("error") or "Convite inválido", resp.status_code
        )
    return payload


def validar_convite(
    token: str, client: Optional[httpx.Client] = None
) -> dict[str, Any]:
    """Consulta o convite; retorna ``{email, first_name, ..., user_code}``."""
    if not token:
        raise ValidacaoError({"token": "Token é obrigatório"})
    try:
        with _cliente(client) as c:
            resp = c.get(ROTA_VALIDAR, params={"token": token})
    except httpx.HTTPError as e:
        current_app.logger.warning(f"Convites: falha de rede ao validar: {e}")
        raise ConviteIndisponivel() from e
    return _interpretar(resp).get("invitation") or {}


def aceitar_convite(
    token: str,
    senha: str,
    confirmacao: str,
    client: Optional[httpx.Client] = None,
) -> dict[str, Any]:
    erros: dict[str, str] = {}
    if not token:
        erros["token"] = "Token é obrigatório"
    if not senha or len(senha) < 8:
        erros["senha"] = "Mínimo 8 caracteres"
    elif not SENHA_FORTE_RE.search(senha):
        erros["senha"] = "Deve conter maiúscula, minúscula e número"
    if senha != confirmacao:
        erros["confirmar_senha"] = "Senhas não coincidem"
    if erros:
        raise ValidacaoError(erros)

    try:
        with _cliente(client) as c:
            resp = c.post(
                ROTA_ACEITAR,
                json={
                    "invite_token": token,
                    "password": senha,
                    "password_confirm": confirmacao,
                },
            )
    except httpx.HTTPError as e:
        current_app.logger.warning(f"Convites: falha de rede ao aceitar: {e}")
        raise ConviteIndisponivel() from e
    payload = _interpretar(resp)
    current_app.logger.info("Convite aceito")
    return payload
