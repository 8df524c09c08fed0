"""Validação de formulários (perfil, medicação, compromisso).

Os validadores nunca lançam exceção: retornam um dicionário
``{campo: mensagem}`` vazio quando tudo está correto. Os serviços usam
:class:`ValidacaoError` para bloquear a gravação quando há erros.
"""
from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
CELULAR_RE = re.compile(r"^\(\d{2}\)\s\d{4,5}-\d{4}$")
HORARIO_RE = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")
SENHA_FORTE_RE = re.compile(r"(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")
CODIGO_RE = re.compile(r"^[A-Z0-9]{6}$")

PAPEIS_VALIDOS = ("paciente", "acompanhante", "cuidador", "admin")
STATUS_PERFIL_VALIDOS = ("ativo", "inativo", "pendente")
TIPOS_COMPROMISSO = ("consulta", "exame", "atividade")


class ValidacaoError(ValueError):
    """Erro de validação com mensagens por campo."""

    def __init__(self, erros: Mapping[str, str]):
        self.erros = dict(erros)
        primeira = next(iter(self.erros.values()), "Dados inválidos")
        super().__init__(primeira)


def _texto(dados: Mapping[str, Any], campo: str) -> str:
    valor = dados.get(campo)
    return valor.strip() if isinstance(valor, str) else ""


def formatar_celular(valor: str) -> str:
    """Aplica a máscara ``(81) 98888-8888`` quando há 10 ou 11 dígitos."""
    numeros = re.sub(r"\D", "", valor or "")
    if 10 <= len(numeros) <= 11:
        return re.sub(r"(\d{2})(\d{4,5})(\d{4})", r"(\1) \2-\3", numeros)
    return valor


def normalizar_codigo(valor: str) -> str:
    """Mantém apenas ``[A-Z0-9]`` em maiúsculas, limitado a 6 caracteres."""
    return re.sub(r"[^A-Z0-9]", "", (valor or "").upper())[:6]


def validar_perfil(
    dados: Mapping[str, Any], editando: bool = False
) -> dict[str, str]:
    erros: dict[str, str] = {}

    if not _texto(dados, "nome"):
        erros["nome"] = "Nome é obrigatório"

    email = _texto(dados, "email")
    if not email:
        erros["email"] = "E-mail é obrigatório"
    elif not EMAIL_RE.match(email):
        erros["email"] = "E-mail inválido"

    celular = _texto(dados, "celular")
    if not celular:
        erros["celular"] = "Celular é obrigatório"
    elif not CELULAR_RE.match(celular):
        erros["celular"] = "Formato: (81) 98888-8888"

    # Senha (apenas se não estiver editando ou se preencheu senha)
    senha = dados.get("senha") or ""
    if not editando or senha:
        if not senha:
            erros["senha"] = "Senha é obrigatória"
        elif len(senha) < 8:
            erros["senha"] = "Mínimo 8 caracteres"
        elif not SENHA_FORTE_RE.search(senha):
            erros["senha"] = "Deve conter maiúscula, minúscula e número"
        if senha != (dados.get("confirmar_senha") or ""):
            erros["confirmar_senha"] = "Senhas não coincidem"

    papel = dados.get("papel")
    if papel is not None and papel not in PAPEIS_VALIDOS:
        erros["papel"] = "Papel inválido"
    status = dados.get("status")
    if status is not None and status not in STATUS_PERFIL_VALIDOS:
        erros["status"] = "Status inválido"
    return erros


def validar_medicacao(dados: Mapping[str, Any]) -> dict[str, str]:
    erros: dict[str, str] = {}
    for campo, rotulo in (
        ("nome", "Nome"),
        ("dosagem", "Dosagem"),
        ("forma", "Forma"),
        ("frequencia", "Frequência"),
    ):
        if not _texto(dados, campo):
            erros[campo] = f"{rotulo} é obrigatório"

    horarios = dados.get("horarios")
    if horarios is not None:
        if not isinstance(horarios, list):
            erros["horarios"] = "Horários devem ser uma lista"
        else:
            for h in horarios:
                hora = h.get("hora") if isinstance(h, Mapping) else h
                if not isinstance(hora, str) or not HORARIO_RE.match(hora):
                    erros["horarios"] = "Formato de horário inválido. Use HH:mm"
                    break

    estoque = dados.get("estoque")
    if estoque not in (None, ""):
        try:
            if int(estoque) < 0:
                erros["estoque"] = "Estoque não pode ser negativo"
        except (TypeError, ValueError):
            erros["estoque"] = "Estoque deve ser um número inteiro"

    inicio, fim = dados.get("data_inicio"), dados.get("data_fim")
    if inicio and fim and str(fim) < str(inicio):
        erros["data_fim"] = "Data final anterior à data inicial"
    return erros


def validar_compromisso(dados: Mapping[str, Any]) -> dict[str, str]:
    erros: dict[str, str] = {}
    if not _texto(dados, "titulo"):
        erros["titulo"] = "Título é obrigatório"
    if not dados.get("data_agendamento"):
        erros["data_agendamento"] = "Data de agendamento é obrigatória"

    tipo = dados.get("tipo") or "consulta"
    if tipo not in TIPOS_COMPROMISSO:
        erros["tipo"] = "Tipo de compromisso inválido"

    duracao = dados.get("duracao_minutos")
    if duracao not in (None, ""):
        try:
            if int(duracao) <= 0:
                erros["duracao_minutos"] = "Duração deve ser positiva"
        except (TypeError, ValueError):
            erros["duracao_minutos"] = "Duração deve ser um número inteiro"

    dias = dados.get("dias_semana")
    if dias is not None:
        if not isinstance(dias, list) or any(
            not isinstance(d, int) or not 0 <= d <= 6 for d in dias
        ):
            erros["dias_semana"] = "Dias da semana devem estar entre 0 e 6"

    repeticao = dados.get("repeticao")
    if repeticao not in (None, "none", "weekly"):
        erros["repeticao"] = "Repetição inválida"
    elif repeticao == "weekly" and not dias:
        erros["dias_semana"] = "Informe os dias da semana da repetição"
    return erros
