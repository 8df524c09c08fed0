from datetime import datetime, timezone

import pytest

from cuidamed.services.barramento import BarramentoEventos, CompromissoEvento
from cuidamed.services.conversores import (
    TODOS_CONCLUIDOS,
    converter_compromisso,
    converter_medicacao,
)
from cuidamed.services.ocorrencias import MaquinaOcorrencias, TransicaoInvalida


class Relogio:
    def __init__(self):
        self.t = 1000.0

    def __call__(self):
        return self.t


def _metformina(**extra):
    return converter_medicacao(
        {
            "id": "m1",
            "nome": "Metformina",
            "dosagem": "500 mg",
            "forma": "Comprimido",
            "frequencia": "2x ao dia",
            "horarios": ["08:00", "20:00"],
            "estoque": 15,
            **extra,
        }
    )


def _consulta():
    return converter_compromisso(
        {
            "id": "c1",
            "tipo": "consulta",
            "titulo": "Cardiologista",
            "data_agendamento": "2026-10-17T14:30:00+00:00",
        }
    )


@pytest.fixture
def relogio():
    return Relogio()


@pytest.fixture
def eventos():
    return []


@pytest.fixture
def maquina(relogio, eventos):
    barramento = BarramentoEventos()
    barramento.inscrever(CompromissoEvento, eventos.append)
    return MaquinaOcorrencias(
        [_metformina(), _consulta()],
        barramento=barramento,
        relogio=relogio,
        agora=lambda: datetime(2026, 10, 17, 11, 0, tzinfo=timezone.utc),
    )


def test_concluir_doses_em_sequencia(maquina):
    item = maquina.complete("m1")
    assert item.horarios[0].status == "concluido"
    assert item.horarios[0].completed_at == "2026-10-17T11:00:00+00:00"
    assert item.proximo_horario == "20:00"
    assert item.removed_from_today is False
    assert item.is_optimistic is True

    item = maquina.complete("m1")
    assert item.proximo_horario == TODOS_CONCLUIDOS
    assert item.removed_from_today is True
    assert item.removal_reason == "completed"
    assert [i.id for i in maquina.removidos()] == ["m1"]
    assert [i.id for i in maquina.principais()] == ["c1"]


def test_remover_todas_as_doses_motivo_excluded(maquina):
    maquina.remove("m1", "08:00")
    item = maquina.remove("m1", "20:00")
    assert item.removal_reason == "excluded"


def test_motivo_completed_quando_ha_alguma_concluida(maquina):
    maquina.complete("m1", "08:00")
    item = maquina.remove("m1", "20:00")
    assert item.removal_reason == "completed"


def test_transicao_de_finalizada_e_rejeitada(maquina):
    maquina.complete("m1", "08:00")
    with pytest.raises(TransicaoInvalida):
        maquina.complete("m1", "08:00")
    with pytest.raises(TransicaoInvalida):
        maquina.remove("m1", "08:00")


def test_horario_desconhecido(maquina):
    with pytest.raises(LookupError):
        maquina.complete("m1", "09:00")
    with pytest.raises(LookupError):
        maquina.complete("nao-existe")


def test_medicacao_inativa_nao_transiciona(relogio):
    maquina = MaquinaOcorrencias([_metformina(ativo=False)], relogio=relogio)
    with pytest.raises(TransicaoInvalida):
        maquina.complete("m1")


def test_undo_dentro_da_janela_restaura_identico(maquina, relogio):
    original = maquina.item("m1")
    maquina.complete("m1")
    relogio.t += 4.9
    assert maquina.segundos_restantes() == pytest.approx(0.1)
    restaurado = maquina.undo()
    assert restaurado == original
    assert maquina.acao_pendente is None


def test_undo_apos_janela_nao_tem_efeito(maquina, relogio):
    maquina.complete("m1")
    relogio.t += 5.1
    assert maquina.undo() is None
    assert maquina.item("m1").horarios[0].status == "concluido"
    assert maquina.segundos_restantes() == 0.0


def test_nova_acao_substitui_undo_anterior(maquina):
    maquina.complete("m1")
    primeira = maquina.acao_pendente
    maquina.complete("c1")
    assert maquina.undo(primeira) is None
    # A mais recente continua desfazível
    assert maquina.undo().horarios[0].status == "pendente"
    assert maquina.item("m1").horarios[0].status == "concluido"


def test_eventos_publicados(maquina, eventos):
    maquina.complete("m1")
    maquina.remove("c1")
    maquina.undo()
    maquina.restore("m1")  # ainda na lista: nada a restaurar
    assert [(e.tipo, e.item_id, e.item_tipo) for e in eventos] == [
        ("complete", "m1", "medicacao"),
        ("cancel", "c1", "consulta"),
    ]


def test_restore_devolve_item_sem_limite_de_tempo(maquina, relogio, eventos):
    maquina.remove("c1")
    relogio.t += 60
    item = maquina.restore("c1")
    assert item.removed_from_today is False
    assert item.removal_reason is None
    assert eventos[-1].tipo == "restore"


def test_toasts(relogio):
    toasts = []
    maquina = MaquinaOcorrencias(
        [_metformina(), _consulta()], relogio=relogio, on_toast=toasts.append
    )
    maquina.complete("m1")
    maquina.remove("c1")
    maquina.undo()
    assert [t.titulo for t in toasts] == [
        "Dose registrada",
        "Compromisso cancelado",
        "Ação desfeita",
    ]
    assert toasts[0].descricao == "Metformina - 08h00"
    assert toasts[0].acao == "Desfazer"
    assert toasts[1].variante == "destructive"


def test_reconciliar_descarta_camada_otimista(maquina):
    maquina.complete("m1")
    assert maquina.item("m1").is_optimistic is True
    autoritativo = _metformina(
        horarios=[
            {"hora": "08:00", "status": "concluido"},
            {"hora": "20:00", "status": "pendente"},
        ]
    )
    maquina.reconciliar([autoritativo])
    item = maquina.item("m1")
    assert item.is_optimistic is False
    assert item.horarios[0].status == "concluido"


def test_descartar_reverte_e_cancela_undo(maquina):
    maquina.complete("m1")
    maquina.descartar("m1")
    assert maquina.item("m1").horarios[0].status == "pendente"
    assert maquina.acao_pendente is None
