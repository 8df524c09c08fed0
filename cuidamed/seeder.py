from datetime import datetime, time, timedelta, timezone

from . import db
from .models import Usuario
from .services import compromisso_service, medicacao_service, perfil_service
from .utils.tempo import hoje_local, obter_fuso

SENHA_DEMO = "Cuida1234"
EMAIL_PACIENTE = "paciente@cuidamed.local"
EMAIL_CUIDADOR = "cuidador@cuidamed.local"

MEDICACOES_DEMO = [
    {
        "nome": "Atorvastatina",
        "dosagem": "10 mg",
        "forma": "Comprimido",
        "frequencia": "1x ao dia",
        "horarios": ["08:00"],
        "estoque": 28,
    },
    {
        "nome": "Metformina",
        "dosagem": "500 mg",
        "forma": "Comprimido",
        "frequencia": "2x ao dia",
        "horarios": ["08:00", "20:00"],
        "estoque": 15,
    },
    {
        "nome": "Losartana",
        "dosagem": "50 mg",
        "forma": "Comprimido",
        "frequencia": "1x ao dia",
        "horarios": ["20:00"],
        "estoque": 5,
    },
    {
        "nome": "Vitamina D",
        "dosagem": "2000 UI",
        "forma": "Cápsula",
        "frequencia": "1x ao dia",
        "horarios": ["12:00"],
        "estoque": 30,
    },
    {
        "nome": "Ômega 3",
        "dosagem": "1000 mg",
        "forma": "Cápsula",
        "frequencia": "1x ao dia",
        "horarios": ["19:00"],
        "estoque": 20,
    },
]


def _compromissos_demo(tz) -> list[dict]:
    hoje = hoje_local(tz)

    def _em(dias: int, hora: int, minuto: int = 0) -> str:
        local = datetime.combine(
            hoje + timedelta(days=dias), time(hora, minuto), tzinfo=tz
        )
        return local.astimezone(timezone.utc).isoformat()

    return [
        {
            "tipo": "consulta",
            "titulo": "Consulta Cardiologia",
            "especialidade": "Cardiologia",
            "medico_profissional": "Dr. Carlos Mendes",
            "local_endereco": "Hospital São Lucas - Sala 302",
            "data_agendamento": _em(0, 14, 30),
        },
        {
            "tipo": "exame",
            "titulo": "Hemograma Completo",
            "tipo_exame": "Exame de sangue",
            "preparo": "Jejum de 8 horas",
            "local_endereco": "Laboratório Central",
            "data_agendamento": _em(1, 7, 30),
        },
        {
            "tipo": "atividade",
            "titulo": "Caminhada",
            "duracao_minutos": 30,
            "repeticao": "weekly",
            "dias_semana": [1, 3, 5],
            "local_endereco": "Parque da Jaqueira",
            "data_agendamento": _em(0, 17),
        },
    ]


def seed_demo() -> None:
    """Popula paciente, cuidador, medicações e compromissos de exemplo.

    Idempotente: se o paciente demo já existir, nada é criado.
    """
    print("INFO: [seed_demo] Iniciando seed de demonstração...")
    if db.session.query(Usuario).filter_by(email=EMAIL_PACIENTE).first():
        print("INFO: [seed_demo] Dados de demonstração já existem.")
        return

    try:
        paciente = perfil_service.criar_perfil(
            {
                "nome": "Maria Silva",
                "email": EMAIL_PACIENTE,
                "celular": "81988888888",
                "senha": SENHA_DEMO,
                "confirmar_senha": SENHA_DEMO,
            }
        )
        cuidador = perfil_service.criar_perfil(
            {
                "nome": "João Souza",
                "email": EMAIL_CUIDADOR,
                "celular": "81977777777",
                "senha": SENHA_DEMO,
                "confirmar_senha": SENHA_DEMO,
                "papel": "cuidador",
            },
            paciente,
        )
        perfil_service.definir_gestor(cuidador.id, paciente)
        print(
            f"INFO: [seed_demo] Perfis criados: {paciente.codigo} (paciente), "
            f"{cuidador.codigo} (cuidador)."
        )

        for dados in MEDICACOES_DEMO:
            medicacao_service.criar_medicacao(paciente.id, dados)
        compromissos = _compromissos_demo(obter_fuso())
        for dados in compromissos:
            compromisso_service.criar_compromisso(paciente.id, dados)
        print(
            f"INFO: [seed_demo] {len(MEDICACOES_DEMO)} medicações e "
            f"{len(compromissos)} compromissos criados."
        )
    except Exception as e:
        db.session.rollback()
        print(f"ERRO: [seed_demo] Falha: {e}")
        raise
