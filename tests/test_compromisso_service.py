from datetime import date, datetime, timedelta, timezone

import pytest

from cuidamed.models import StatusCompromissoEnum
from cuidamed.services import compromisso_service
from cuidamed.services.barramento import BarramentoEventos, CompromissoEvento
from cuidamed.services.ocorrencias import TransicaoInvalida
from cuidamed.utils.tempo import como_utc, hoje_local
from cuidamed.utils.validacao import ValidacaoError


def _criar(paciente, **extra):
    dados = {
        "tipo": "consulta",
        "titulo": "Consulta Cardiologia",
        "especialidade": "Cardiologia",
        "medico_profissional": "Dr. Carlos Mendes",
        "local_endereco": "Hospital São Lucas",
        "data_agendamento": "2026-10-20T17:30:00Z",
    }
    dados.update(extra)
    return compromisso_service.criar_compromisso(paciente.id, dados)


def test_criar_compromisso(paciente):
    c = _criar(paciente)
    assert c.status == StatusCompromissoEnum.AGENDADO
    assert como_utc(c.data_agendamento) == datetime(
        2026, 10, 20, 17, 30, tzinfo=timezone.utc
    )


def test_criar_compromisso_data_invalida(paciente):
    with pytest.raises(ValidacaoError) as exc:
        _criar(paciente, data_agendamento="amanhã")
    assert "data_agendamento" in exc.value.erros
    with pytest.raises(ValidacaoError):
        _criar(paciente, titulo="")


def test_listar_por_intervalo_categoria_e_busca(paciente):
    _criar(paciente)
    _criar(
        paciente,
        tipo="exame",
        titulo="Hemograma",
        especialidade=None,
        medico_profissional=None,
        local_endereco="Laboratório Central",
        data_agendamento="2026-10-21T10:00:00Z",
    )
    _criar(paciente, titulo="Retorno", data_agendamento="2026-11-05T10:00:00Z")

    outubro = compromisso_service.listar_compromissos(
        paciente.id,
        inicio=datetime(2026, 10, 1, tzinfo=timezone.utc),
        fim=datetime(2026, 10, 31, tzinfo=timezone.utc),
    )
    assert [c.titulo for c in outubro] == ["Consulta Cardiologia", "Hemograma"]
    exames = compromisso_service.listar_compromissos(
        paciente.id, categoria="exame"
    )
    assert [c.titulo for c in exames] == ["Hemograma"]
    por_local = compromisso_service.listar_compromissos(
        paciente.id, busca="laborat"
    )
    assert [c.titulo for c in por_local] == ["Hemograma"]
    pagina2 = compromisso_service.listar_compromissos(
        paciente.id, pagina=2, por_pagina=2
    )
    assert [c.titulo for c in pagina2] == ["Retorno"]


def test_concluir_e_desfazer(paciente):
    c = _criar(paciente)
    eventos = []
    barramento = BarramentoEventos()
    barramento.inscrever(CompromissoEvento, eventos.append)

    item = compromisso_service.concluir_compromisso(
        c.id, paciente.id, barramento, resultado="Tudo normal"
    )
    assert item.status == "realizado"
    assert item.removed_from_today is True
    assert item.removal_reason == "completed"
    assert [(e.tipo, e.item_tipo) for e in eventos] == [("complete", "consulta")]

    with pytest.raises(TransicaoInvalida):
        compromisso_service.cancelar_compromisso(c.id, paciente.id)

    atual = compromisso_service.get_compromisso(c.id, paciente.id)
    assert atual.resultado == "Tudo normal"
    finalizado = como_utc(atual.finalizado_em)
    with pytest.raises(TransicaoInvalida):
        compromisso_service.desfazer_compromisso(
            c.id, paciente.id, agora=finalizado + timedelta(seconds=5.1)
        )
    desfeito = compromisso_service.desfazer_compromisso(
        c.id, paciente.id, agora=finalizado + timedelta(seconds=4.9)
    )
    assert desfeito.status == StatusCompromissoEnum.AGENDADO
    with pytest.raises(TransicaoInvalida):
        compromisso_service.desfazer_compromisso(c.id, paciente.id)


def test_cancelar_e_soft_delete(paciente):
    c = _criar(paciente)
    item = compromisso_service.cancelar_compromisso(c.id, paciente.id)
    assert item.status == "cancelado"
    assert item.removal_reason == "excluded"
    assert compromisso_service.get_compromisso(c.id, paciente.id) is not None


def test_atualizar_ignora_none_e_status(paciente):
    c = _criar(paciente)
    c = compromisso_service.atualizar_compromisso(
        c.id,
        paciente.id,
        {"titulo": "Retorno Cardiologia", "especialidade": None,
         "status": "realizado"},
    )
    assert c.titulo == "Retorno Cardiologia"
    assert c.especialidade == "Cardiologia"
    assert c.status == StatusCompromissoEnum.AGENDADO


def test_listar_completos_aba_hoje(paciente):
    hoje = hoje_local(timezone.utc)
    quando = datetime.combine(
        hoje, datetime.min.time(), tzinfo=timezone.utc
    ) + timedelta(hours=12)
    _criar(paciente, titulo="Hoje", data_agendamento=quando.isoformat())
    _criar(
        paciente,
        titulo="Amanhã",
        data_agendamento=(quando + timedelta(days=1)).isoformat(),
    )
    hoje_itens = compromisso_service.listar_compromissos_completos(
        paciente.id, aba="hoje", tz_nome="UTC"
    )
    assert [c.titulo for c in hoje_itens] == ["Hoje"]
    assert hoje_itens[0].to_dict()["tipo"] == "consulta"


def test_contagem_por_dia(paciente):
    _criar(paciente, data_agendamento="2026-10-20T13:00:00Z")
    _criar(
        paciente,
        tipo="exame",
        titulo="Hemograma",
        data_agendamento="2026-10-20T15:00:00Z",
    )
    cancelado = _criar(paciente, data_agendamento="2026-10-21T13:00:00Z")
    compromisso_service.cancelar_compromisso(cancelado.id, paciente.id)
    # 01:00 UTC do dia 1º de novembro ainda é 31/10 em São Paulo
    _criar(
        paciente,
        tipo="atividade",
        titulo="Caminhada",
        data_agendamento="2026-11-01T01:00:00Z",
    )

    contagem = compromisso_service.contagem_por_dia(
        paciente.id, 2026, 10, "America/Sao_Paulo"
    )
    assert contagem == {
        date(2026, 10, 20).isoformat(): {
            "consultas": 1, "exames": 1, "atividades": 0
        },
        "2026-10-31": {"consultas": 0, "exames": 0, "atividades": 1},
    }


def test_compromisso_de_outro_paciente(paciente):
    c = _criar(paciente)
    with pytest.raises(LookupError):
        compromisso_service.concluir_compromisso(c.id, "outro")
