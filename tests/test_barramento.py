import pytest

from cuidamed.services.barramento import BarramentoEventos, CompromissoEvento


def _evento(tipo="complete"):
    return CompromissoEvento(tipo=tipo, item_id="1", item_tipo="medicacao")


def test_entrega_em_ordem_de_inscricao():
    barramento = BarramentoEventos()
    recebidos = []
    barramento.inscrever(CompromissoEvento, lambda e: recebidos.append("a"))
    barramento.inscrever(CompromissoEvento, lambda e: recebidos.append("b"))
    assert barramento.publicar(_evento()) == 2
    assert recebidos == ["a", "b"]


def test_cancelar_inscricao():
    barramento = BarramentoEventos()
    recebidos = []
    cancelar = barramento.inscrever(CompromissoEvento, recebidos.append)
    cancelar()
    cancelar()  # idempotente
    assert len(barramento) == 0
    assert barramento.publicar(_evento()) == 0
    assert recebidos == []


def test_filtro_por_tipo_de_evento():
    barramento = BarramentoEventos()
    recebidos = []
    barramento.inscrever(
        CompromissoEvento, recebidos.append, tipos=["complete"]
    )
    barramento.publicar(_evento("cancel"))
    barramento.publicar(_evento("complete"))
    assert [e.tipo for e in recebidos] == ["complete"]


def test_falha_em_ouvinte_nao_impede_os_demais(caplog):
    barramento = BarramentoEventos()
    recebidos = []

    def quebra(_):
        raise RuntimeError("boom")

    barramento.inscrever(CompromissoEvento, quebra)
    barramento.inscrever(CompromissoEvento, recebidos.append)
    assert barramento.publicar(_evento()) == 1
    assert len(recebidos) == 1
    assert "Falha em ouvinte" in caplog.text


def test_ignora_eventos_de_outro_tipo():
    barramento = BarramentoEventos()
    recebidos = []
    barramento.inscrever(CompromissoEvento, recebidos.append)
    assert barramento.publicar("outro evento") == 0


def test_tipo_de_evento_invalido():
    with pytest.raises(ValueError):
        CompromissoEvento(tipo="apagar", item_id="1", item_tipo="exame")
