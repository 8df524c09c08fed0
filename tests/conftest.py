import pytest

from cuidamed import create_app, db
from cuidamed.models import Perfil
from cuidamed.services import perfil_service

SENHA = "Senha1234"


@pytest.fixture
def app():
    """Application fixture for pytest-flask 'client' support.

    SQLite em memória; o schema é criado a cada teste.
    """
    app = create_app("testing")
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def app_ctx(app):
    """Application context bound to the same app used by the Flask client."""
    with app.app_context():
        yield


def dados_perfil(email, nome="Maria Silva", **extra):
    dados = {
        "nome": nome,
        "email": email,
        "celular": "(81) 98888-8888",
        "senha": SENHA,
        "confirmar_senha": SENHA,
    }
    dados.update(extra)
    return dados


@pytest.fixture
def paciente(app_ctx) -> Perfil:
    return perfil_service.criar_perfil(dados_perfil("maria@example.com"))


@pytest.fixture
def cuidador(paciente) -> Perfil:
    return perfil_service.criar_perfil(
        dados_perfil("joao@example.com", nome="João", papel="cuidador"),
        paciente,
    )


def login(client, email, senha=SENHA):
    return client.post("/auth/login", json={"email": email, "senha": senha})


@pytest.fixture
def logado(client, paciente):
    """Cliente autenticado como o paciente."""
    resp = login(client, paciente.email)
    assert resp.status_code == 200
    return client
