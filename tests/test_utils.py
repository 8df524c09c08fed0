from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from cuidamed.utils.formatadores import (
    forma_gramatical,
    format_datetime_br,
    format_frequencia,
    format_time_24h,
    parse_time_24h,
)
from cuidamed.utils.sanitization import sanitizar_input, texto_ou_none
from cuidamed.utils.tempo import (
    como_utc,
    hoje_local,
    hora_local_para_utc,
    limites_dia,
    obter_fuso,
    parse_data,
    parse_iso_to_utc,
)
from cuidamed.utils.validacao import (
    ValidacaoError,
    formatar_celular,
    normalizar_codigo,
    validar_compromisso,
    validar_medicacao,
    validar_perfil,
)

SP = ZoneInfo("America/Sao_Paulo")


def test_sanitizar_input_remove_controle_e_espacos():
    assert sanitizar_input("  Ana\x00 \x07") == "Ana"
    assert sanitizar_input(5) == 5
    assert texto_ou_none("   ") is None
    assert texto_ou_none(" x ") == "x"


def test_format_time_24h():
    assert format_time_24h("12:35") == "12h35"
    assert format_time_24h("9:05") == "09h05"
    assert format_time_24h(None) == ""
    assert parse_time_24h("12h35") == "12:35"


def test_format_frequencia_e_forma():
    assert format_frequencia("8h") == "8 em 8 horas"
    assert format_frequencia("2x ao dia") == "2x ao dia"
    assert forma_gramatical("Comprimido", 1) == "Comprimido"
    assert forma_gramatical("Cápsula", 3) == "cápsulas"
    assert forma_gramatical("Xarope", 3) == "Xarope"


def test_format_datetime_br():
    assert format_datetime_br(datetime(2026, 1, 5, 7, 9)) == "05/01/2026 07:09"
    assert format_datetime_br(None) == ""


def test_parse_iso_to_utc():
    dt = parse_iso_to_utc("2026-10-17T08:00:00-03:00")
    assert dt == datetime(2026, 10, 17, 11, 0, tzinfo=timezone.utc)
    assert parse_iso_to_utc("2026-10-17T11:00:00Z").tzinfo is not None
    naive = parse_iso_to_utc("2026-10-17T11:00:00")
    assert naive == datetime(2026, 10, 17, 11, 0, tzinfo=timezone.utc)
    with pytest.raises(ValueError):
        parse_iso_to_utc("  ")


def test_parse_data_iso_e_br():
    assert parse_data("2026-10-17") == date(2026, 10, 17)
    assert parse_data("17/10/2026") == date(2026, 10, 17)
    assert parse_data("") is None
    with pytest.raises(ValueError):
        parse_data("17-10-2026")


def test_limites_dia_e_hora_local():
    inicio, fim = limites_dia(date(2026, 10, 17), SP)
    assert inicio == datetime(2026, 10, 17, 3, 0, tzinfo=timezone.utc)
    assert fim == datetime(2026, 10, 18, 3, 0, tzinfo=timezone.utc)
    assert hora_local_para_utc(date(2026, 10, 17), "20:00", SP) == datetime(
        2026, 10, 17, 23, 0, tzinfo=timezone.utc
    )


def test_hoje_local_respeita_fuso():
    agora = datetime(2026, 10, 18, 1, 0, tzinfo=timezone.utc)
    assert hoje_local(SP, agora) == date(2026, 10, 17)
    assert hoje_local(timezone.utc, agora) == date(2026, 10, 18)


def test_como_utc_naive():
    assert como_utc(datetime(2026, 1, 1)).tzinfo == timezone.utc
    assert como_utc(None) is None


def test_obter_fuso_invalido_cai_no_padrao():
    assert str(obter_fuso("America/Recife")) == "America/Recife"
    assert str(obter_fuso("Nao/Existe")) == "America/Sao_Paulo"
    assert str(obter_fuso(None)) == "America/Sao_Paulo"


def test_formatar_celular_e_codigo():
    assert formatar_celular("81988888888") == "(81) 98888-8888"
    assert formatar_celular("8133334444") == "(81) 3333-4444"
    assert formatar_celular("123") == "123"
    assert normalizar_codigo(" ab-12c3x9 ") == "AB12C3"


def test_validar_perfil():
    ok = {
        "nome": "Ana",
        "email": "ana@example.com",
        "celular": "(81) 98888-8888",
        "senha": "Senha1234",
        "confirmar_senha": "Senha1234",
    }
    assert validar_perfil(ok) == {}
    erros = validar_perfil(
        {**ok, "email": "ana", "senha": "fraca", "celular": "81"}
    )
    assert set(erros) == {"email", "senha", "celular", "confirmar_senha"}
    assert validar_perfil({**ok, "senha": "senhafraca1",
                           "confirmar_senha": "senhafraca1"})["senha"] == (
        "Deve conter maiúscula, minúscula e número"
    )
    # Editando sem senha: não exige senha
    sem_senha = {k: v for k, v in ok.items() if "senha" not in k}
    assert validar_perfil(sem_senha, editando=True) == {}


def test_validar_medicacao():
    ok = {
        "nome": "Losartana",
        "dosagem": "50 mg",
        "forma": "Comprimido",
        "frequencia": "1x ao dia",
        "horarios": ["20:00"],
    }
    assert validar_medicacao(ok) == {}
    assert "horarios" in validar_medicacao({**ok, "horarios": ["24:00"]})
    assert "estoque" in validar_medicacao({**ok, "estoque": -1})
    assert "data_fim" in validar_medicacao(
        {**ok, "data_inicio": "2026-10-10", "data_fim": "2026-10-01"}
    )
    assert set(validar_medicacao({})) == {
        "nome", "dosagem", "forma", "frequencia"
    }


def test_validar_compromisso():
    ok = {"titulo": "Consulta", "data_agendamento": "2026-10-17T10:00:00Z"}
    assert validar_compromisso(ok) == {}
    assert "tipo" in validar_compromisso({**ok, "tipo": "cirurgia"})
    assert "dias_semana" in validar_compromisso(
        {**ok, "tipo": "atividade", "repeticao": "weekly"}
    )
    assert "dias_semana" in validar_compromisso({**ok, "dias_semana": [7]})


def test_validacao_error_primeira_mensagem():
    e = ValidacaoError({"nome": "Nome é obrigatório", "email": "x"})
    assert str(e) == "Nome é obrigatório"
    assert e.erros["email"] == "x"
    assert isinstance(e, ValueError)
