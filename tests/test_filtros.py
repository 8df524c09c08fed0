from datetime import date

import pytest

from cuidamed.services import filtros
from cuidamed.services.conversores import (
    converter_compromisso,
    converter_medicacao,
)

DIA = date(2026, 10, 17)


def _med(med_id, nome, **extra):
    return converter_medicacao(
        {
            "id": med_id,
            "nome": nome,
            "dosagem": "10 mg",
            "forma": "Comprimido",
            "frequencia": "1x ao dia",
            "horarios": ["08:00"],
            **extra,
        }
    )


def _comp(comp_id, titulo, quando, tipo="consulta", status="agendado"):
    return converter_compromisso(
        {
            "id": comp_id,
            "tipo": tipo,
            "titulo": titulo,
            "data_agendamento": quando,
            "status": status,
        }
    )


@pytest.fixture
def medicacoes():
    return [
        _med("1", "Losartana"),
        _med("2", "Atorvastatina", ativo=False),
        _med("3", "Vitamina D", data_inicio="2026-11-01"),
        _med("4", "Ômega 3", horarios=[]),
        _med("5", "Metformina", horarios=[{"hora": "08:00", "status": "concluido"}]),
    ]


def test_aba_hoje_nunca_inclui_inativas(medicacoes):
    hoje = filtros.filtrar_medicacoes(medicacoes, "hoje", dia=DIA)
    assert {m.id for m in hoje} == {"1", "5"}
    assert all(m.status == "ativa" for m in hoje)


def test_aba_ativas_e_todas(medicacoes):
    ativas = filtros.filtrar_medicacoes(medicacoes, "ativas", dia=DIA)
    assert {m.id for m in ativas} == {"1", "3", "4", "5"}
    todas = filtros.filtrar_medicacoes(medicacoes, "todas", dia=DIA)
    assert len(todas) == 5


def test_busca_ignora_caixa(medicacoes):
    achadas = filtros.filtrar_medicacoes(medicacoes, "todas", busca=" losar ")
    assert [m.id for m in achadas] == ["1"]


def test_aba_invalida(medicacoes):
    with pytest.raises(ValueError):
        filtros.filtrar_medicacoes(medicacoes, "amanha")


def test_ordenar_medicacoes_concluidas_por_ultimo(medicacoes):
    ordenadas = filtros.ordenar_medicacoes(
        filtros.filtrar_medicacoes(medicacoes, "todas")
    )
    assert [m.nome for m in ordenadas] == [
        "Atorvastatina",
        "Losartana",
        "Vitamina D",
        "Ômega 3",
        "Metformina",
    ]


def test_filtrar_compromissos_por_dia_categoria_e_status():
    comps = [
        _comp("a", "Cardiologista", "2026-10-17T14:00:00+00:00"),
        _comp("b", "Hemograma", "2026-10-17T08:00:00+00:00", tipo="exame"),
        _comp("c", "Caminhada", "2026-10-18T08:00:00+00:00", tipo="atividade"),
        _comp(
            "d", "Dermatologista", "2026-10-17T09:00:00+00:00",
            status="cancelado",
        ),
    ]
    hoje = filtros.filtrar_compromissos(comps, "hoje", dia=DIA)
    assert {c.id for c in hoje} == {"a", "b", "d"}
    exames = filtros.filtrar_compromissos(comps, "todas", categoria="exame")
    assert [c.id for c in exames] == ["b"]
    ativos = filtros.filtrar_compromissos(comps, "ativas")
    assert {c.id for c in ativos} == {"a", "b", "c"}
    assert filtros.filtrar_compromissos(comps, "todas", categoria="todos") == comps
    with pytest.raises(ValueError):
        filtros.filtrar_compromissos(comps, "todas", categoria="cirurgia")

    ordenados = filtros.ordenar_compromissos(hoje)
    assert [c.id for c in ordenados] == ["b", "a", "d"]


def test_resumo_do_dia():
    meds = [
        _med(
            "1",
            "Metformina",
            horarios=[
                {"hora": "08:00", "status": "concluido"},
                {"hora": "20:00", "status": "pendente"},
            ],
        ),
        _med("2", "Atorvastatina", ativo=False),
    ]
    comps = [
        _comp("a", "Cardiologista", "2026-10-17T14:00:00+00:00"),
        _comp("b", "Outro dia", "2026-10-20T14:00:00+00:00"),
        _comp(
            "c", "Cancelado", "2026-10-17T10:00:00+00:00", status="cancelado"
        ),
    ]
    resumo = filtros.resumo_do_dia(meds, comps, DIA)
    assert resumo.total == 4
    assert resumo.concluidos == 2
    assert resumo.restantes == 2
    assert resumo.data_local == "17/10/2026"
    assert [i.hora for i in resumo.itens] == ["08:00", "10:00", "14:00", "20:00"]
    assert resumo.to_dict()["itens"][0]["subtitulo"] == "10 mg • Comprimido"
