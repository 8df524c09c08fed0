from datetime import datetime, time, timedelta, timezone

import pytest

from cuidamed import db
from cuidamed.models import OcorrenciaMedicacao, StatusOcorrenciaEnum
from cuidamed.services import medicacao_service, relatorio_service
from cuidamed.services.barramento import BarramentoEventos, CompromissoEvento
from cuidamed.services.conversores import TODOS_CONCLUIDOS
from cuidamed.services.ocorrencias import TransicaoInvalida
from cuidamed.utils.tempo import como_utc, hoje_local
from cuidamed.utils.validacao import ValidacaoError

TZ = "UTC"


def _dados(**extra):
    dados = {
        "nome": "Metformina",
        "dosagem": "500 mg",
        "forma": "Comprimido",
        "frequencia": "12h",
        "horarios": ["08:00"],
        "estoque": 15,
    }
    dados.update(extra)
    return dados


@pytest.fixture
def med(paciente):
    return medicacao_service.criar_medicacao(paciente.id, _dados(), TZ)


@pytest.fixture
def eventos():
    return []


@pytest.fixture
def barramento(eventos):
    b = BarramentoEventos()
    b.inscrever(CompromissoEvento, eventos.append)
    return b


def _ocorrencia(item, hora):
    h = next(h for h in item.horarios if h.hora == hora)
    return db.session.get(OcorrenciaMedicacao, h.occurrence_id)


def test_calcular_horarios_diarios():
    calc = medicacao_service.calcular_horarios_diarios
    assert calc("08:00", "8h") == ["00:00", "08:00", "16:00"]
    assert calc("08:00", "12h") == ["08:00", "20:00"]
    assert calc("08:00", "1x ao dia") == ["08:00"]
    assert calc("08:00", "24h") == ["08:00"]


def test_expandir_horarios_varios_informados():
    assert medicacao_service.expandir_horarios(
        ["20:00", "8:00", "20:00"], "2x ao dia"
    ) == ["08:00", "20:00"]
    assert medicacao_service.expandir_horarios([], "12h") == []


def test_criar_medicacao_gera_ocorrencias(med):
    assert med.horarios == ["08:00", "20:00"]
    total = db.session.query(OcorrenciaMedicacao).filter_by(
        medicacao_id=med.id
    ).count()
    assert total == 2 * medicacao_service.DIAS_GERACAO


def test_criar_medicacao_inativa_nao_gera_ocorrencias(paciente):
    inativa = medicacao_service.criar_medicacao(
        paciente.id, _dados(horarios=["00:01"], ativo=False), TZ
    )
    assert inativa.ativo is False
    assert (
        db.session.query(OcorrenciaMedicacao)
        .filter_by(medicacao_id=inativa.id)
        .count()
        == 0
    )

    resumo = relatorio_service.resumo_relatorio(
        paciente.id, periodo="hoje", tz_nome=TZ
    )
    assert resumo["totals"]["planejados"] == 0
    assert resumo["totals"]["atrasados"] == 0


def test_criar_medicacao_invalida(paciente):
    with pytest.raises(ValidacaoError) as exc:
        medicacao_service.criar_medicacao(paciente.id, _dados(nome=" "), TZ)
    assert "nome" in exc.value.erros


def test_sequencia_de_doses_ate_sair_da_lista(med, paciente, barramento, eventos):
    item = medicacao_service.medicacao_completa(med, tz_nome=TZ)
    assert item.proxima_dose == "08:00"

    item = medicacao_service.concluir_dose(
        med.id, paciente.id, hora="08:00", usuario_id="u1",
        barramento=barramento, tz_nome=TZ,
    )
    assert item.horarios[0].status == "concluido"
    assert item.proxima_dose == "20:00"
    assert item.removed_from_today is False
    occ = _ocorrencia(item, "08:00")
    assert occ.completed_by == "u1"
    assert occ.completed_at is not None

    item = medicacao_service.cancelar_dose(
        med.id, paciente.id, hora="20:00", barramento=barramento, tz_nome=TZ
    )
    assert item.proxima_dose == TODOS_CONCLUIDOS
    assert item.removed_from_today is True
    assert item.removal_reason == "completed"
    assert [(e.tipo, e.item_id) for e in eventos] == [
        ("complete", med.id),
        ("cancel", med.id),
    ]


def test_dose_ja_finalizada_nao_muda(med, paciente):
    medicacao_service.concluir_dose(med.id, paciente.id, "08:00", tz_nome=TZ)
    with pytest.raises(TransicaoInvalida):
        medicacao_service.cancelar_dose(
            med.id, paciente.id, "08:00", tz_nome=TZ
        )


def test_sem_hora_conclui_a_proxima_pendente(med, paciente):
    item = medicacao_service.concluir_dose(med.id, paciente.id, tz_nome=TZ)
    assert item.horarios[0].status == "concluido"
    assert item.horarios[1].status == "pendente"


def test_medicacao_inativa_nao_registra_dose(med, paciente):
    medicacao_service.atualizar_medicacao(
        med.id, paciente.id, {"ativo": False}, TZ
    )
    with pytest.raises(TransicaoInvalida):
        medicacao_service.concluir_dose(med.id, paciente.id, tz_nome=TZ)
    hoje = medicacao_service.listar_medicacoes(paciente.id, "hoje", tz_nome=TZ)
    assert hoje == []
    todas = medicacao_service.listar_medicacoes(paciente.id, "todas", tz_nome=TZ)
    assert [m.status for m in todas] == ["inativa"]


def test_desfazer_dentro_e_fora_da_janela(med, paciente):
    item = medicacao_service.concluir_dose(
        med.id, paciente.id, "08:00", tz_nome=TZ
    )
    occ = _ocorrencia(item, "08:00")
    finalizado = como_utc(occ.finalizado_em)

    with pytest.raises(TransicaoInvalida):
        medicacao_service.desfazer_ocorrencia(
            occ.id, paciente.id, agora=finalizado + timedelta(seconds=5.1)
        )
    desfeita = medicacao_service.desfazer_ocorrencia(
        occ.id, paciente.id, agora=finalizado + timedelta(seconds=4.9)
    )
    assert desfeita.status == StatusOcorrenciaEnum.PENDENTE
    assert desfeita.completed_at is None
    item = medicacao_service.medicacao_completa(med, tz_nome=TZ)
    assert item.proxima_dose == "08:00"

    with pytest.raises(TransicaoInvalida):
        medicacao_service.desfazer_ocorrencia(occ.id, paciente.id)


def test_marcar_ocorrencia_proxima(med, paciente):
    hoje = hoje_local(timezone.utc)
    agora = datetime.combine(hoje, time(19, 0), tzinfo=timezone.utc)
    item = medicacao_service.marcar_ocorrencia_proxima(
        med.id, paciente.id, "concluir", agora=agora, tz_nome=TZ
    )
    assert [h.status for h in item.horarios] == ["pendente", "concluido"]
    with pytest.raises(ValueError):
        medicacao_service.marcar_ocorrencia_proxima(
            med.id, paciente.id, "pular", tz_nome=TZ
        )


def test_atualizar_horarios_refaz_doses_futuras(med, paciente):
    med = medicacao_service.atualizar_medicacao(
        med.id,
        paciente.id,
        {"horarios": ["09:00"], "frequencia": "1x ao dia"},
        TZ,
    )
    assert med.horarios == ["09:00"]
    agora = datetime.now(timezone.utc)
    futuras = [
        como_utc(o.scheduled_at)
        for o in db.session.query(OcorrenciaMedicacao).filter_by(
            medicacao_id=med.id
        )
        if como_utc(o.scheduled_at) >= agora
    ]
    assert futuras
    assert {(s.hour, s.minute) for s in futuras} == {(9, 0)}


def test_atualizar_so_frequencia_reexpande_primeiro_horario(med, paciente):
    med = medicacao_service.atualizar_medicacao(
        med.id, paciente.id, {"frequencia": "8h"}, TZ
    )
    assert med.horarios == ["00:00", "08:00", "16:00"]


def test_gerar_ocorrencias_do_dia_idempotente(med, app):
    app.config["TIMEZONE_PADRAO"] = TZ
    assert medicacao_service.gerar_ocorrencias_do_dia() == 0
    amanha_longe = hoje_local(timezone.utc) + timedelta(days=30)
    assert medicacao_service.gerar_ocorrencias_do_dia(amanha_longe) == 2
    assert medicacao_service.gerar_ocorrencias_do_dia(amanha_longe) == 0


def test_vigencia_limita_geracao(paciente):
    hoje = hoje_local(timezone.utc)
    med = medicacao_service.criar_medicacao(
        paciente.id,
        _dados(
            frequencia="1x ao dia",
            data_inicio=hoje.isoformat(),
            data_fim=(hoje + timedelta(days=2)).isoformat(),
        ),
        TZ,
    )
    total = db.session.query(OcorrenciaMedicacao).filter_by(
        medicacao_id=med.id
    ).count()
    assert total == 3


def test_acesso_de_outro_paciente(med):
    with pytest.raises(LookupError):
        medicacao_service.get_medicacao(med.id, "outro-paciente")


def test_excluir_medicacao_remove_ocorrencias(med, paciente):
    medicacao_service.excluir_medicacao(med.id, paciente.id)
    assert db.session.query(OcorrenciaMedicacao).count() == 0


def test_listar_busca_e_ordem(paciente):
    medicacao_service.criar_medicacao(
        paciente.id, _dados(nome="Losartana", frequencia="1x ao dia"), TZ
    )
    medicacao_service.criar_medicacao(
        paciente.id, _dados(nome="Atorvastatina", frequencia="1x ao dia"), TZ
    )
    nomes = [
        m.nome
        for m in medicacao_service.listar_medicacoes(paciente.id, tz_nome=TZ)
    ]
    assert nomes == ["Atorvastatina", "Losartana"]
    achadas = medicacao_service.listar_medicacoes(
        paciente.id, busca="losar", tz_nome=TZ
    )
    assert [m.nome for m in achadas] == ["Losartana"]
