from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from cuidamed.services.conversores import (
    TODOS_CONCLUIDOS,
    AtividadeCompleta,
    ConsultaCompleta,
    ConversaoError,
    ExameCompleto,
    HorarioLegado,
    HorarioObjeto,
    HorarioStatus,
    adaptar_horario,
    calcular_proxima_dose,
    converter_compromisso,
    converter_compromissos,
    converter_medicacao,
    converter_medicacoes,
    estado_remocao,
    horario_mais_proximo,
    normalizar_hora,
)

SP = ZoneInfo("America/Sao_Paulo")


def _med(**extra):
    registro = {
        "id": "m1",
        "nome": "Metformina",
        "dosagem": "500 mg",
        "forma": "Comprimido",
        "frequencia": "2x ao dia",
        "horarios": ["20:00", "08:00"],
        "estoque": 15,
        "ativo": True,
    }
    registro.update(extra)
    return registro


def test_normalizar_hora_completa_zeros_e_aceita_formato_h():
    assert normalizar_hora("8:05") == "08:05"
    assert normalizar_hora("12h30") == "12:30"
    with pytest.raises(ConversaoError):
        normalizar_hora("25:00")
    with pytest.raises(ConversaoError):
        normalizar_hora(800)


def test_adaptar_horario_distingue_legado_de_objeto():
    assert adaptar_horario("08:00") == HorarioLegado(hora="08:00")
    obj = adaptar_horario({"hora": "20:00", "status": "concluido"})
    assert isinstance(obj, HorarioObjeto)
    assert obj.status == "concluido"
    with pytest.raises(ConversaoError):
        adaptar_horario({"hora": "20:00", "status": "feito"})
    with pytest.raises(ConversaoError):
        adaptar_horario(["08:00"])


def test_converter_medicacao_legado_ordena_e_calcula_proxima():
    med = converter_medicacao(_med())
    assert [h.hora for h in med.horarios] == ["08:00", "20:00"]
    assert all(h.status == "pendente" for h in med.horarios)
    assert med.proximo_horario == "08:00"
    assert med.status == "ativa"
    assert med.removed_from_today is False
    assert med.removal_reason is None


def test_converter_medicacao_formato_objeto():
    med = converter_medicacao(
        _med(
            horarios=[
                {"hora": "08:00", "status": "concluido"},
                {"hora": "20:00", "status": "pendente"},
            ]
        )
    )
    assert med.proximo_horario == "20:00"
    assert med.horarios[0].status == "concluido"


def test_converter_medicacao_mescla_ocorrencias_do_dia():
    ocorrencias = [
        {
            "id": "o1",
            # 08:00 em São Paulo
            "scheduled_at": "2026-10-17T11:00:00+00:00",
            "status": "concluido",
            "completed_at": "2026-10-17T11:02:00+00:00",
        }
    ]
    med = converter_medicacao(_med(), ocorrencias, SP)
    manha, noite = med.horarios
    assert manha.status == "concluido"
    assert manha.occurrence_id == "o1"
    assert noite.status == "pendente"
    assert noite.occurrence_id is None
    assert med.proximo_horario == "20:00"


def test_converter_medicacao_sem_horarios_usa_sentinela():
    med = converter_medicacao(_med(horarios=[]))
    assert len(med.horarios) == 1
    assert med.horarios[0].hora == "-"
    assert med.horarios[0].valido is False
    assert med.proximo_horario == TODOS_CONCLUIDOS
    assert med.removed_from_today is False


def test_converter_medicacao_inativa_e_datas():
    med = converter_medicacao(
        _med(ativo=False, data_inicio="2026-10-01", data_fim="2026-10-31")
    )
    assert med.status == "inativa"
    assert med.data_inicio.isoformat() == "2026-10-01"
    assert med.to_dict()["data_fim"] == "2026-10-31"


def test_converter_medicacao_exige_id_e_nome():
    with pytest.raises(ConversaoError):
        converter_medicacao(_med(id=None))
    with pytest.raises(ConversaoError):
        converter_medicacao(_med(nome=""))


def test_converter_medicacoes_ignora_registros_malformados():
    convertidas = converter_medicacoes(
        [_med(), _med(id="m2", horarios="08:00"), "lixo", _med(id="m3")]
    )
    assert [m.id for m in convertidas] == ["m1", "m3"]


def test_to_dict_medicacao_inclui_campos_derivados():
    dados = converter_medicacao(_med(estoque=5)).to_dict()
    assert dados["tipo"] == "medicacao"
    assert dados["proxima_dose"] == "08:00"
    assert dados["estoque_baixo"] is True
    assert dados["forma_estoque"] == "comprimidos"
    assert dados["todas_concluidas"] is False
    assert dados["horarios"][0] == {
        "hora": "08:00",
        "status": "pendente",
        "occurrence_id": None,
        "scheduled_at": None,
        "completed_at": None,
    }


def test_calcular_proxima_dose():
    horarios = [
        HorarioStatus("08:00", "concluido"),
        HorarioStatus("20:00"),
        HorarioStatus("12:00", "excluido"),
    ]
    assert calcular_proxima_dose(horarios) == "20:00"
    assert calcular_proxima_dose([HorarioStatus("08:00", "excluido")]) == (
        TODOS_CONCLUIDOS
    )


def test_estado_remocao_motivo():
    assert estado_remocao([HorarioStatus("08:00")]) == (False, None)
    assert estado_remocao(
        [HorarioStatus("08:00", "excluido"), HorarioStatus("20:00", "concluido")]
    ) == (True, "completed")
    assert estado_remocao([HorarioStatus("08:00", "excluido")]) == (
        True,
        "excluded",
    )


def test_horario_mais_proximo_da_volta_no_dia():
    horarios = [HorarioStatus("08:00"), HorarioStatus("20:00")]
    agora = datetime(2026, 10, 17, 19, 0)
    assert horario_mais_proximo(horarios, agora).hora == "20:00"
    # 21h: 08:00 (11h à frente) vence 20:00 (23h à frente)
    agora = datetime(2026, 10, 17, 21, 0)
    assert horario_mais_proximo(horarios, agora).hora == "08:00"
    assert horario_mais_proximo([HorarioStatus("08:00", "concluido")], agora) is None


def test_converter_compromisso_por_tipo():
    base = {
        "id": "c1",
        "titulo": "Cardiologista",
        "data_agendamento": "2026-10-17T17:30:00Z",
        "status": "agendado",
    }
    consulta = converter_compromisso(
        {**base, "tipo": "consulta", "especialidade": "Cardiologia"}, SP
    )
    assert isinstance(consulta, ConsultaCompleta)
    assert consulta.hora == "14:30"
    assert consulta.status == "agendado"
    assert consulta.horarios[0].occurrence_id == "c1"
    assert consulta.to_dict()["especialidade"] == "Cardiologia"
    assert consulta.to_dict()["data_formatada"] == "17/10/2026 14:30"

    exame = converter_compromisso(
        {**base, "tipo": "exame", "status": "realizado"}, SP
    )
    assert isinstance(exame, ExameCompleto)
    assert exame.removed_from_today is True
    assert exame.removal_reason == "completed"

    atividade = converter_compromisso(
        {**base, "tipo": "atividade", "dias_semana": [1, 3]}, SP
    )
    assert isinstance(atividade, AtividadeCompleta)
    assert atividade.dias_semana == (1, 3)
    assert atividade.duracao_minutos == 60


def test_converter_compromissos_ignora_invalidos():
    ok = {
        "id": "c1",
        "tipo": "consulta",
        "titulo": "Consulta",
        "data_agendamento": "2026-10-17T10:00:00+00:00",
    }
    convertidos = converter_compromissos(
        [ok, {**ok, "id": "c2", "tipo": "cirurgia"}, {**ok, "id": "c3",
                                                    "status": "adiado"}]
    )
    assert [c.id for c in convertidos] == ["c1"]


def test_converter_compromisso_naive_e_tratado_como_utc():
    c = converter_compromisso(
        {
            "id": "c1",
            "titulo": "Exame",
            "tipo": "exame",
            "data_agendamento": datetime(2026, 10, 17, 12, 0),
        },
        timezone.utc,
    )
    assert c.hora == "12:00"


def test_converter_compromisso_sem_data_valida_falha():
    base = {"id": "c1", "titulo": "Consulta", "tipo": "consulta"}
    with pytest.raises(ConversaoError):
        converter_compromisso(base, timezone.utc)
    with pytest.raises(ConversaoError):
        converter_compromisso(
            {**base, "data_agendamento": "amanhã"}, timezone.utc
        )
    assert converter_compromissos([base]) == []
