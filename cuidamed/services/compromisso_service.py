from __future__ import annotations

import calendar
from collections.abc import Mapping
from datetime import date, datetime, timezone
from typing import Any, Optional

from flask import current_app
from sqlalchemy import or_

from cuidamed import db
from cuidamed.models import (
    Compromisso,
    RepeticaoEnum,
    StatusCompromissoEnum,
    TipoCompromissoEnum,
)
from cuidamed.services import filtros
from cuidamed.services.barramento import BarramentoEventos, CompromissoEvento
from cuidamed.services.conversores import (
    CompromissoCompleto,
    converter_compromisso,
    converter_compromissos,
)
from cuidamed.services.ocorrencias import MaquinaOcorrencias, TransicaoInvalida
from cuidamed.utils.sanitization import sanitizar_input, texto_ou_none
from cuidamed.utils.tempo import (
    como_utc,
    hoje_local,
    limites_dia,
    obter_fuso,
    parse_iso_to_utc,
)
from cuidamed.utils.validacao import ValidacaoError, validar_compromisso

POR_PAGINA_PADRAO = 50

_CAMPOS_TEXTO = (
    "especialidade",
    "medico_profissional",
    "tipo_exame",
    "preparo",
    "local_endereco",
    "observacoes",
    "resultado",
)


def get_compromisso(compromisso_id: str, paciente_id: str) -> Compromisso:
    c = db.session.get(Compromisso, str(compromisso_id))
    if c is None or c.paciente_id != paciente_id:
        raise LookupError("Compromisso não encontrado")
    return c


def listar_compromissos(
    paciente_id: str,
    inicio: Optional[datetime] = None,
    fim: Optional[datetime] = None,
    categoria: Optional[str] = None,
    status: Optional[str] = None,
    busca: Optional[str] = None,
    pagina: int = 1,
    por_pagina: int = POR_PAGINA_PADRAO,
) -> list[Compromisso]:
    """Compromissos do paciente em ordem cronológica.

    ``busca`` procura em título, especialidade, profissional e endereço.
    """
    q = db.session.query(Compromisso).filter(
        Compromisso.paciente_id == paciente_id
    )
    if inicio is not None:
        q = q.filter(Compromisso.data_agendamento >= inicio)
    if fim is not None:
        q = q.filter(Compromisso.data_agendamento <= fim)
    if categoria:
        q = q.filter(Compromisso.tipo == TipoCompromissoEnum(categoria))
    if status:
        q = q.filter(Compromisso.status == StatusCompromissoEnum(status))
    termo = sanitizar_input(busca)
    if termo:
        like = f"%{termo}%"
        q = q.filter(
            or_(
                Compromisso.titulo.ilike(like),
                Compromisso.especialidade.ilike(like),
                Compromisso.medico_profissional.ilike(like),
                Compromisso.local_endereco.ilike(like),
            )
        )
    pagina = max(1, int(pagina))
    por_pagina = max(1, min(int(por_pagina), 200))
    return (
        q.order_by(Compromisso.data_agendamento.asc())
        .offset((pagina - 1) * por_pagina)
        .limit(por_pagina)
        .all()
    )


def listar_compromissos_completos(
    paciente_id: str,
    aba: str = "todas",
    busca: Optional[str] = None,
    categoria: Optional[str] = None,
    tz_nome: Optional[str] = None,
    dia: Optional[date] = None,
) -> list[CompromissoCompleto]:
    tz = obter_fuso(tz_nome)
    dia = dia or hoje_local(tz)
    q = db.session.query(Compromisso).filter(
        Compromisso.paciente_id == paciente_id
    )
    if aba == "hoje":
        inicio, fim = limites_dia(dia, tz)
        q = q.filter(
            Compromisso.data_agendamento >= inicio,
            Compromisso.data_agendamento < fim,
        )
    convertidos = converter_compromissos([c.to_dict() for c in q.all()], tz)
    filtrados = filtros.filtrar_compromissos(
        convertidos, aba, busca, categoria, dia
    )
    return filtros.ordenar_compromissos(filtrados)


def _aplicar_campos(c: Compromisso, dados: Mapping[str, Any]) -> None:
    if "titulo" in dados:
        c.titulo = sanitizar_input(dados.get("titulo")) or ""
    if "tipo" in dados and dados.get("tipo"):
        c.tipo = TipoCompromissoEnum(dados["tipo"])
    for campo in _CAMPOS_TEXTO:
        if campo in dados:
            setattr(c, campo, texto_ou_none(dados.get(campo)))
    if "duracao_minutos" in dados:
        c.duracao_minutos = int(dados.get("duracao_minutos") or 60)
    if "repeticao" in dados:
        c.repeticao = RepeticaoEnum(dados.get("repeticao") or "none")
    if "dias_semana" in dados:
        c.dias_semana = sorted(set(dados.get("dias_semana") or []))
    if "data_agendamento" in dados:
        c.data_agendamento = parse_iso_to_utc(str(dados["data_agendamento"]))


def criar_compromisso(paciente_id: str, dados: Mapping[str, Any]) -> Compromisso:
    erros = validar_compromisso(dados)
    if erros:
        raise ValidacaoError(erros)
    try:
        c = Compromisso()
        c.paciente_id = paciente_id
        c.tipo = TipoCompromissoEnum(dados.get("tipo") or "consulta")
        c.status = StatusCompromissoEnum.AGENDADO
        _aplicar_campos(c, dados)
        db.session.add(c)
        db.session.commit()
        current_app.logger.info(
            f"Compromisso criado: {c.id} ({c.tipo.value}) {c.titulo!r}"
        )
        return c
    except ValueError as exc:
        db.session.rollback()
        raise ValidacaoError({"data_agendamento": str(exc)}) from exc
    except Exception:
        db.session.rollback()
        raise


def atualizar_compromisso(
    compromisso_id: str, paciente_id: str, dados: Mapping[str, Any]
) -> Compromisso:
    """Atualiza campos enviados (None é ignorado). O status só muda pelas
    transições de concluir/cancelar/desfazer."""
    c = get_compromisso(compromisso_id, paciente_id)
    limpos = {
        k: v for k, v in dados.items() if v is not None and k != "status"
    }
    erros = validar_compromisso({**c.to_dict(), **limpos})
    if erros:
        raise ValidacaoError(erros)
    try:
        _aplicar_campos(c, limpos)
        db.session.commit()
        return c
    except ValueError as exc:
        db.session.rollback()
        raise ValidacaoError({"data_agendamento": str(exc)}) from exc
    except Exception:
        db.session.rollback()
        raise


# ----------------------------------
# Transições
# ----------------------------------


def _finalizar(
    compromisso_id: str,
    paciente_id: str,
    acao: str,
    barramento: Optional[BarramentoEventos],
    resultado: Optional[str] = None,
) -> CompromissoCompleto:
    c = get_compromisso(compromisso_id, paciente_id)
    agora = datetime.now(timezone.utc)
    tz = obter_fuso()
    item = converter_compromisso(c.to_dict(), tz)

    maquina = MaquinaOcorrencias([item], agora=lambda: agora)
    if acao == "complete":
        maquina.complete(item.id)
    else:
        maquina.remove(item.id)

    try:
        if acao == "complete":
            c.status = StatusCompromissoEnum.REALIZADO
            if resultado:
                c.resultado = texto_ou_none(resultado)
        else:
            c.status = StatusCompromissoEnum.CANCELADO
        c.finalizado_em = agora
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(f"Compromisso {c.id}: {c.status.value}")
    if barramento is not None:
        barramento.publicar(
            CompromissoEvento(
                tipo="complete" if acao == "complete" else "cancel",
                item_id=c.id,
                item_tipo=item.item_tipo,  # type: ignore[arg-type]
            )
        )
    maquina.reconciliar([converter_compromisso(c.to_dict(), tz)])
    return maquina.item(c.id)  # type: ignore[return-value]


def concluir_compromisso(
    compromisso_id: str,
    paciente_id: str,
    barramento: Optional[BarramentoEventos] = None,
    resultado: Optional[str] = None,
) -> CompromissoCompleto:
    return _finalizar(
        compromisso_id, paciente_id, "complete", barramento, resultado
    )


def cancelar_compromisso(
    compromisso_id: str,
    paciente_id: str,
    barramento: Optional[BarramentoEventos] = None,
) -> CompromissoCompleto:
    """Cancela (soft delete): o registro permanece com status cancelado."""
    return _finalizar(compromisso_id, paciente_id, "remove", barramento)


def desfazer_compromisso(
    compromisso_id: str,
    paciente_id: str,
    agora: Optional[datetime] = None,
) -> Compromisso:
    c = get_compromisso(compromisso_id, paciente_id)
    if c.status == StatusCompromissoEnum.AGENDADO:
        raise TransicaoInvalida("Compromisso já está agendado")
    janela = float(current_app.config.get("UNDO_JANELA_SEGUNDOS", 5))
    agora = como_utc(agora) or datetime.now(timezone.utc)
    finalizado = como_utc(c.finalizado_em)
    if finalizado is None or (agora - finalizado).total_seconds() >= janela:
        raise TransicaoInvalida("Prazo para desfazer expirou")
    try:
        c.status = StatusCompromissoEnum.AGENDADO
        c.finalizado_em = None
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info(f"Compromisso {c.id} desfeito")
    return c


# ----------------------------------
# Calendário
# ----------------------------------


def contagem_por_dia(
    paciente_id: str, ano: int, mes: int, tz_nome: Optional[str] = None
) -> dict[str, dict[str, int]]:
    """Compromissos agendados por dia (local) e categoria no mês."""
    tz = obter_fuso(tz_nome)
    ultimo = calendar.monthrange(ano, mes)[1]
    inicio, _ = limites_dia(date(ano, mes, 1), tz)
    _, fim = limites_dia(date(ano, mes, ultimo), tz)
    rows = (
        db.session.query(Compromisso.data_agendamento, Compromisso.tipo)
        .filter(
            Compromisso.paciente_id == paciente_id,
            Compromisso.status == StatusCompromissoEnum.AGENDADO,
            Compromisso.data_agendamento >= inicio,
            Compromisso.data_agendamento < fim,
        )
        .all()
    )
    chaves = {
        TipoCompromissoEnum.CONSULTA: "consultas",
        TipoCompromissoEnum.EXAME: "exames",
        TipoCompromissoEnum.ATIVIDADE: "atividades",
    }
    contagem: dict[str, dict[str, int]] = {}
    for agendado, tipo in rows:
        dia = como_utc(agendado).astimezone(tz).date().isoformat()
        por_dia = contagem.setdefault(
            dia, {"consultas": 0, "exames": 0, "atividades": 0}
        )
        por_dia[chaves[tipo]] += 1
    return contagem
