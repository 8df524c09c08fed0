from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from flask import current_app

from cuidamed import db
from cuidamed.models import Medicacao, OcorrenciaMedicacao, StatusOcorrenciaEnum
from cuidamed.services import filtros
from cuidamed.services.barramento import BarramentoEventos, CompromissoEvento
from cuidamed.services.conversores import (
    HorarioStatus,
    MedicacaoCompleta,
    converter_medicacao,
    converter_medicacoes,
    horario_mais_proximo,
    normalizar_hora,
)
from cuidamed.services.ocorrencias import MaquinaOcorrencias, TransicaoInvalida
from cuidamed.utils.sanitization import sanitizar_input, texto_ou_none
from cuidamed.utils.tempo import (
    como_utc,
    hoje_local,
    hora_local_para_utc,
    limites_dia,
    obter_fuso,
    parse_data,
)
from cuidamed.utils.validacao import ValidacaoError, validar_medicacao

# Dias materializados à frente ao criar/editar (o job diário completa o resto)
DIAS_GERACAO = 7

_FREQ_RE = re.compile(r"(\d+)h", re.IGNORECASE)


# ----------------------------------
# Horários
# ----------------------------------


def calcular_horarios_diarios(inicio: str, frequencia: str) -> list[str]:
    """Expande um horário inicial em todas as doses do dia.

    ``"08:00"`` + ``"8h"`` -> ``["00:00", "08:00", "16:00"]``. Frequências
    sem intervalo em horas (ou >= 24h) mantêm só o horário inicial.
    """
    inicio = normalizar_hora(inicio)
    m = _FREQ_RE.search(frequencia or "")
    if not m:
        return [inicio]
    intervalo = int(m.group(1))
    if intervalo <= 0 or intervalo >= 24:
        return [inicio]

    horas, minutos = (int(p) for p in inicio.split(":"))
    base = horas * 60 + minutos
    horarios = {inicio}
    for i in range(1, 24 // intervalo):
        total = (base + i * intervalo * 60) % (24 * 60)
        horarios.add(f"{total // 60:02d}:{total % 60:02d}")
    return sorted(horarios)


def expandir_horarios(horarios: Any, frequencia: str) -> list[str]:
    """Normaliza a lista recebida do formulário em ``["HH:MM", ...]``.

    Com um único horário, aplica :func:`calcular_horarios_diarios`.
    """
    if not horarios:
        return []
    horas = [
        normalizar_hora(h.get("hora") if isinstance(h, Mapping) else h)
        for h in horarios
    ]
    if len(horas) == 1:
        return calcular_horarios_diarios(horas[0], frequencia)
    return sorted(set(horas))


# ----------------------------------
# Consultas
# ----------------------------------


def get_medicacao(medicacao_id: str, paciente_id: str) -> Medicacao:
    med = db.session.get(Medicacao, str(medicacao_id))
    if med is None or med.paciente_id != paciente_id:
        raise LookupError("Medicação não encontrada")
    return med


def _ocorrencias_do_dia(
    medicacao_ids: list[str], dia: date, tz
) -> dict[str, list[dict[str, Any]]]:
    if not medicacao_ids:
        return {}
    inicio, fim = limites_dia(dia, tz)
    rows = (
        db.session.query(OcorrenciaMedicacao)
        .filter(
            OcorrenciaMedicacao.medicacao_id.in_(medicacao_ids),
            OcorrenciaMedicacao.scheduled_at >= inicio,
            OcorrenciaMedicacao.scheduled_at < fim,
        )
        .order_by(OcorrenciaMedicacao.scheduled_at.asc())
        .all()
    )
    por_medicacao: dict[str, list[dict[str, Any]]] = {}
    for occ in rows:
        por_medicacao.setdefault(occ.medicacao_id, []).append(occ.to_dict())
    return por_medicacao


def medicacao_completa(
    med: Medicacao, dia: Optional[date] = None, tz_nome: Optional[str] = None
) -> MedicacaoCompleta:
    tz = obter_fuso(tz_nome)
    dia = dia or hoje_local(tz)
    ocorrencias = _ocorrencias_do_dia([med.id], dia, tz).get(med.id, [])
    return converter_medicacao(med.to_dict(), ocorrencias, tz)


def listar_medicacoes(
    paciente_id: str,
    aba: str = "todas",
    busca: Optional[str] = None,
    tz_nome: Optional[str] = None,
    dia: Optional[date] = None,
) -> list[MedicacaoCompleta]:
    """Medicações do paciente com o status das doses do dia."""
    tz = obter_fuso(tz_nome)
    dia = dia or hoje_local(tz)
    meds = (
        db.session.query(Medicacao)
        .filter(Medicacao.paciente_id == paciente_id)
        .order_by(Medicacao.nome.asc())
        .all()
    )
    ocorrencias = _ocorrencias_do_dia([m.id for m in meds], dia, tz)
    convertidas = converter_medicacoes(
        [m.to_dict() for m in meds], ocorrencias, tz
    )
    filtradas = filtros.filtrar_medicacoes(convertidas, aba, busca, dia)
    return filtros.ordenar_medicacoes(filtradas)


# ----------------------------------
# CRUD
# ----------------------------------


def _aplicar_campos(med: Medicacao, dados: Mapping[str, Any]) -> None:
    for campo in ("nome", "dosagem", "forma", "frequencia"):
        if campo in dados:
            setattr(med, campo, sanitizar_input(dados.get(campo)) or "")
    if "observacoes" in dados:
        med.observacoes = texto_ou_none(dados.get("observacoes"))
    if "estoque" in dados:
        med.estoque = int(dados.get("estoque") or 0)
    if "ativo" in dados:
        med.ativo = bool(dados.get("ativo"))
    for campo in ("data_inicio", "data_fim"):
        if campo in dados:
            setattr(med, campo, parse_data(dados.get(campo)))


def criar_medicacao(
    paciente_id: str, dados: Mapping[str, Any], tz_nome: Optional[str] = None
) -> Medicacao:
    erros = validar_medicacao(dados)
    if erros:
        raise ValidacaoError(erros)
    try:
        med = Medicacao()
        med.paciente_id = paciente_id
        _aplicar_campos(med, dados)
        if "ativo" not in dados:
            med.ativo = True
        med.horarios = expandir_horarios(
            dados.get("horarios"), med.frequencia
        )
        db.session.add(med)
        db.session.flush()  # ensure med.id

        if med.ativo:
            tz = obter_fuso(tz_nome)
            gerar_ocorrencias(med, hoje_local(tz), DIAS_GERACAO, tz)
        db.session.commit()
        current_app.logger.info(
            f"Medicação criada: {med.id} ({med.nome}) horarios={med.horarios}"
        )
        return med
    except Exception:
        db.session.rollback()
        raise


def atualizar_medicacao(
    medicacao_id: str,
    paciente_id: str,
    dados: Mapping[str, Any],
    tz_nome: Optional[str] = None,
) -> Medicacao:
    med = get_medicacao(medicacao_id, paciente_id)
    mesclado = {**med.to_dict(), **dados}
    erros = validar_medicacao(mesclado)
    if erros:
        raise ValidacaoError(erros)
    try:
        horarios_antes = list(med.horarios or [])
        _aplicar_campos(med, dados)
        if "horarios" in dados or "frequencia" in dados:
            med.horarios = expandir_horarios(
                dados.get("horarios", horarios_antes[:1]), med.frequencia
            )

        tz = obter_fuso(tz_nome)
        if med.horarios != horarios_antes or any(
            c in dados for c in ("data_inicio", "data_fim", "ativo")
        ):
            # Doses futuras ainda pendentes são refeitas com a nova agenda
            removidas = _remover_pendentes_futuras(med)
            criadas = 0
            if med.ativo:
                criadas = gerar_ocorrencias(
                    med, hoje_local(tz), DIAS_GERACAO, tz
                )
            current_app.logger.info(
                f"Agenda da medicação {med.id} refeita: "
                f"{removidas} removidas, {criadas} criadas"
            )
        db.session.commit()
        return med
    except Exception:
        db.session.rollback()
        raise


def excluir_medicacao(medicacao_id: str, paciente_id: str) -> None:
    med = get_medicacao(medicacao_id, paciente_id)
    try:
        db.session.query(OcorrenciaMedicacao).filter(
            OcorrenciaMedicacao.medicacao_id == med.id
        ).delete(synchronize_session=False)
        db.session.delete(med)
        db.session.commit()
        current_app.logger.info(f"Medicação excluída: {medicacao_id}")
    except Exception:
        db.session.rollback()
        raise


# ----------------------------------
# Ocorrências
# ----------------------------------


def gerar_ocorrencias(
    med: Medicacao, inicio: date, dias: int, tz=None
) -> int:
    """Materializa as doses pendentes de ``inicio`` até ``inicio + dias - 1``,
    respeitando a vigência. Não faz commit; retorna quantas foram criadas.
    """
    tz = tz or obter_fuso()
    horarios = [
        h.get("hora") if isinstance(h, Mapping) else h
        for h in (med.horarios or [])
    ]
    if not horarios or dias <= 0:
        return 0

    fim = inicio + timedelta(days=dias - 1)
    if med.data_inicio and med.data_inicio > inicio:
        inicio = med.data_inicio
    if med.data_fim and med.data_fim < fim:
        fim = med.data_fim
    if fim < inicio:
        return 0

    janela_inicio, _ = limites_dia(inicio, tz)
    _, janela_fim = limites_dia(fim, tz)
    existentes = {
        como_utc(s)
        for (s,) in db.session.query(OcorrenciaMedicacao.scheduled_at).filter(
            OcorrenciaMedicacao.medicacao_id == med.id,
            OcorrenciaMedicacao.scheduled_at >= janela_inicio,
            OcorrenciaMedicacao.scheduled_at < janela_fim,
        )
    }

    criadas = 0
    dia = inicio
    while dia <= fim:
        for hora in horarios:
            agendado = hora_local_para_utc(dia, normalizar_hora(hora), tz)
            if agendado in existentes:
                continue
            occ = OcorrenciaMedicacao()
            occ.medicacao_id = med.id
            occ.paciente_id = med.paciente_id
            occ.scheduled_at = agendado
            occ.status = StatusOcorrenciaEnum.PENDENTE
            db.session.add(occ)
            existentes.add(agendado)
            criadas += 1
        dia += timedelta(days=1)
    return criadas


def _remover_pendentes_futuras(med: Medicacao) -> int:
    agora = datetime.now(timezone.utc)
    return (
        db.session.query(OcorrenciaMedicacao)
        .filter(
            OcorrenciaMedicacao.medicacao_id == med.id,
            OcorrenciaMedicacao.status == StatusOcorrenciaEnum.PENDENTE,
            OcorrenciaMedicacao.scheduled_at >= agora,
        )
        .delete(synchronize_session=False)
    )


def gerar_ocorrencias_do_dia(dia: Optional[date] = None) -> int:
    """Job diário: garante as doses do dia para todas as medicações ativas."""
    tz = obter_fuso()
    dia = dia or hoje_local(tz)
    try:
        total = 0
        meds = db.session.query(Medicacao).filter(Medicacao.ativo.is_(True))
        for med in meds:
            total += gerar_ocorrencias(med, dia, 1, tz)
        db.session.commit()
        current_app.logger.info(
            f"Ocorrências geradas para {dia.isoformat()}: {total}"
        )
        return total
    except Exception:
        db.session.rollback()
        raise


def _publicar(
    barramento: Optional[BarramentoEventos], tipo: str, item_id: str
) -> None:
    if barramento is None:
        return
    barramento.publicar(
        CompromissoEvento(
            tipo=tipo,  # type: ignore[arg-type]
            item_id=item_id,
            item_tipo="medicacao",
        )
    )


def _finalizar_dose(
    medicacao_id: str,
    paciente_id: str,
    acao: str,
    hora: Optional[str],
    usuario_id: Optional[str],
    barramento: Optional[BarramentoEventos],
    tz_nome: Optional[str],
) -> MedicacaoCompleta:
    med = get_medicacao(medicacao_id, paciente_id)
    tz = obter_fuso(tz_nome)
    dia = hoje_local(tz)
    agora = datetime.now(timezone.utc)

    # A máquina valida a transição (pendente -> concluido/excluido)
    maquina = MaquinaOcorrencias(
        [medicacao_completa(med, dia, tz_nome)], agora=lambda: agora
    )
    if acao == "complete":
        maquina.complete(med.id, hora)
    else:
        maquina.remove(med.id, hora)
    pendente = maquina.acao_pendente
    if pendente is None:
        raise TransicaoInvalida("Nenhuma dose pendente para registrar")
    alvo: HorarioStatus = next(
        h for h in maquina.item(med.id).horarios if h.hora == pendente.hora
    )

    try:
        agendado = hora_local_para_utc(dia, alvo.hora, tz)
        occ = None
        if alvo.occurrence_id:
            occ = db.session.get(OcorrenciaMedicacao, alvo.occurrence_id)
        if occ is None:
            occ = OcorrenciaMedicacao()
            occ.medicacao_id = med.id
            occ.paciente_id = med.paciente_id
            occ.scheduled_at = agendado
            db.session.add(occ)
        elif occ.status != StatusOcorrenciaEnum.PENDENTE:
            raise TransicaoInvalida(
                f"Ocorrência das {alvo.hora} já está {occ.status.value}"
            )

        occ.finalizado_em = agora
        if acao == "complete":
            occ.status = StatusOcorrenciaEnum.CONCLUIDO
            occ.completed_at = agora
            occ.completed_by = usuario_id
        else:
            occ.status = StatusOcorrenciaEnum.EXCLUIDO
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        f"Dose {alvo.hora} da medicação {med.id}: {occ.status.value}"
    )
    _publicar(barramento, "complete" if acao == "complete" else "cancel", med.id)
    autoritativo = medicacao_completa(med, dia, tz_nome)
    maquina.reconciliar([autoritativo])
    return maquina.item(med.id)


def concluir_dose(
    medicacao_id: str,
    paciente_id: str,
    hora: Optional[str] = None,
    usuario_id: Optional[str] = None,
    barramento: Optional[BarramentoEventos] = None,
    tz_nome: Optional[str] = None,
) -> MedicacaoCompleta:
    """Conclui a dose ``hora`` de hoje (ou a próxima pendente)."""
    return _finalizar_dose(
        medicacao_id, paciente_id, "complete", hora, usuario_id, barramento,
        tz_nome,
    )


def cancelar_dose(
    medicacao_id: str,
    paciente_id: str,
    hora: Optional[str] = None,
    usuario_id: Optional[str] = None,
    barramento: Optional[BarramentoEventos] = None,
    tz_nome: Optional[str] = None,
) -> MedicacaoCompleta:
    return _finalizar_dose(
        medicacao_id, paciente_id, "remove", hora, usuario_id, barramento,
        tz_nome,
    )


def marcar_ocorrencia_proxima(
    medicacao_id: str,
    paciente_id: str,
    acao: str = "concluir",
    agora: Optional[datetime] = None,
    usuario_id: Optional[str] = None,
    barramento: Optional[BarramentoEventos] = None,
    tz_nome: Optional[str] = None,
) -> MedicacaoCompleta:
    """Marca a dose pendente mais próxima do horário atual.

    ``acao``: ``concluir`` ou ``excluir``.
    """
    if acao not in ("concluir", "excluir"):
        raise ValueError(f"Ação inválida: {acao!r}")
    med = get_medicacao(medicacao_id, paciente_id)
    tz = obter_fuso(tz_nome)
    agora_local = (como_utc(agora) or datetime.now(timezone.utc)).astimezone(
        tz
    )
    item = medicacao_completa(med, agora_local.date(), tz_nome)
    proximo = horario_mais_proximo(item.horarios, agora_local)
    if proximo is None:
        raise TransicaoInvalida("Nenhuma ocorrência pendente hoje")
    finalizar = concluir_dose if acao == "concluir" else cancelar_dose
    return finalizar(
        medicacao_id,
        paciente_id,
        hora=proximo.hora,
        usuario_id=usuario_id,
        barramento=barramento,
        tz_nome=tz_nome,
    )


def desfazer_ocorrencia(
    occurrence_id: str,
    paciente_id: str,
    agora: Optional[datetime] = None,
) -> OcorrenciaMedicacao:
    """Volta a ocorrência para ``pendente`` dentro da janela de desfazer."""
    occ = db.session.get(OcorrenciaMedicacao, str(occurrence_id))
    if occ is None or occ.paciente_id != paciente_id:
        raise LookupError("Ocorrência não encontrada")
    if occ.status == StatusOcorrenciaEnum.PENDENTE:
        raise TransicaoInvalida("Ocorrência já está pendente")

    janela = float(current_app.config.get("UNDO_JANELA_SEGUNDOS", 5))
    agora = como_utc(agora) or datetime.now(timezone.utc)
    finalizado = como_utc(occ.finalizado_em)
    if finalizado is None or (agora - finalizado).total_seconds() >= janela:
        raise TransicaoInvalida("Prazo para desfazer expirou")

    try:
        occ.status = StatusOcorrenciaEnum.PENDENTE
        occ.completed_at = None
        occ.completed_by = None
        occ.finalizado_em = None
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info(f"Ocorrência {occ.id} desfeita")
    return occ
