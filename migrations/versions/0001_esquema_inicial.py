"""esquema inicial: usuarios, perfis, medicacoes, ocorrencias, compromissos

Revision ID: 0001_esquema_inicial
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_esquema_inicial'
down_revision = None
branch_labels = None
depends_on = None

papel_enum = sa.Enum(
    'paciente', 'acompanhante', 'cuidador', 'admin', name='papel_enum'
)
status_perfil_enum = sa.Enum(
    'ativo', 'inativo', 'pendente', name='status_perfil_enum'
)
status_ocorrencia_enum = sa.Enum(
    'pendente', 'concluido', 'excluido', name='status_ocorrencia_enum'
)
tipo_compromisso_enum = sa.Enum(
    'consulta', 'exame', 'atividade', name='tipo_compromisso_enum'
)
repeticao_enum = sa.Enum('none', 'weekly', name='repeticao_enum')
status_compromisso_enum = sa.Enum(
    'agendado', 'realizado', 'cancelado', name='status_compromisso_enum'
)


def upgrade():
    op.create_table(
        'usuarios',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(254), nullable=False, unique=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column(
            'is_active', sa.Boolean(), nullable=False,
            server_default=sa.true(),
        ),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'perfis',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column(
            'usuario_id', sa.String(36), sa.ForeignKey('usuarios.id'),
            nullable=True,
        ),
        sa.Column('paciente_id', sa.String(36), nullable=True),
        sa.Column('nome', sa.String(200), nullable=False),
        sa.Column('email', sa.String(254), nullable=True),
        sa.Column('celular', sa.String(20), nullable=True),
        sa.Column('codigo', sa.String(6), nullable=False, unique=True),
        sa.Column('papel', papel_enum, nullable=False),
        sa.Column('status', status_perfil_enum, nullable=False),
        sa.Column(
            'is_gestor', sa.Boolean(), nullable=False,
            server_default=sa.false(),
        ),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_perfis_usuario_id', 'perfis', ['usuario_id'])
    op.create_index('ix_perfis_paciente_id', 'perfis', ['paciente_id'])

    op.create_table(
        'medicacoes',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column(
            'paciente_id', sa.String(36), sa.ForeignKey('perfis.id'),
            nullable=False,
        ),
        sa.Column('nome', sa.String(200), nullable=False),
        sa.Column('dosagem', sa.String(100), nullable=False),
        sa.Column('forma', sa.String(100), nullable=False),
        sa.Column('frequencia', sa.String(50), nullable=False),
        sa.Column('horarios', sa.JSON(), nullable=False),
        sa.Column('estoque', sa.Integer(), nullable=False),
        sa.Column('data_inicio', sa.Date(), nullable=True),
        sa.Column('data_fim', sa.Date(), nullable=True),
        sa.Column(
            'ativo', sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        sa.Column('observacoes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        'ix_medicacoes_paciente_id', 'medicacoes', ['paciente_id']
    )

    op.create_table(
        'ocorrencias_medicacao',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column(
            'medicacao_id', sa.String(36),
            sa.ForeignKey('medicacoes.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('paciente_id', sa.String(36), nullable=False),
        sa.Column(
            'scheduled_at', sa.DateTime(timezone=True), nullable=False
        ),
        sa.Column('status', status_ocorrencia_enum, nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_by', sa.String(36), nullable=True),
        sa.Column(
            'finalizado_em', sa.DateTime(timezone=True), nullable=True
        ),
        sa.UniqueConstraint(
            'medicacao_id', 'scheduled_at', name='uq_ocorrencia_horario'
        ),
    )
    op.create_index(
        'ix_ocorrencias_medicacao_medicacao_id',
        'ocorrencias_medicacao',
        ['medicacao_id'],
    )
    op.create_index(
        'ix_ocorrencias_medicacao_paciente_id',
        'ocorrencias_medicacao',
        ['paciente_id'],
    )

    op.create_table(
        'compromissos',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column(
            'paciente_id', sa.String(36), sa.ForeignKey('perfis.id'),
            nullable=False,
        ),
        sa.Column('tipo', tipo_compromisso_enum, nullable=False),
        sa.Column('titulo', sa.String(200), nullable=False),
        sa.Column('especialidade', sa.String(120), nullable=True),
        sa.Column('medico_profissional', sa.String(200), nullable=True),
        sa.Column('tipo_exame', sa.String(120), nullable=True),
        sa.Column('preparo', sa.Text(), nullable=True),
        sa.Column('duracao_minutos', sa.Integer(), nullable=False),
        sa.Column('repeticao', repeticao_enum, nullable=False),
        sa.Column('dias_semana', sa.JSON(), nullable=True),
        sa.Column('local_endereco', sa.String(300), nullable=True),
        sa.Column(
            'data_agendamento', sa.DateTime(timezone=True), nullable=False
        ),
        sa.Column('status', status_compromisso_enum, nullable=False),
        sa.Column(
            'finalizado_em', sa.DateTime(timezone=True), nullable=True
        ),
        sa.Column('observacoes', sa.Text(), nullable=True),
        sa.Column('resultado', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        'ix_compromissos_paciente_id', 'compromissos', ['paciente_id']
    )

    op.create_table(
        'developer_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('error_type', sa.String(200), nullable=False),
        sa.Column('traceback', sa.Text(), nullable=True),
        sa.Column('request_url', sa.String(2048), nullable=True),
        sa.Column('request_method', sa.String(10), nullable=True),
        sa.Column('request_body', sa.Text(), nullable=True),
        sa.Column('user_id', sa.String(36), nullable=True),
    )
    op.create_index(
        'ix_developer_logs_timestamp', 'developer_logs', ['timestamp']
    )


def downgrade():
    op.drop_index('ix_developer_logs_timestamp', table_name='developer_logs')
    op.drop_table('developer_logs')
    op.drop_index('ix_compromissos_paciente_id', table_name='compromissos')
    op.drop_table('compromissos')
    op.drop_index(
        'ix_ocorrencias_medicacao_paciente_id',
        table_name='ocorrencias_medicacao',
    )
    op.drop_index(
        'ix_ocorrencias_medicacao_medicacao_id',
        table_name='ocorrencias_medicacao',
    )
    op.drop_table('ocorrencias_medicacao')
    op.drop_index('ix_medicacoes_paciente_id', table_name='medicacoes')
    op.drop_table('medicacoes')
    op.drop_index('ix_perfis_paciente_id', table_name='perfis')
    op.drop_index('ix_perfis_usuario_id', table_name='perfis')
    op.drop_table('perfis')
    op.drop_table('usuarios')

    bind = op.get_bind()
    for enum in (
        status_compromisso_enum,
        repeticao_enum,
        tipo_compromisso_enum,
        status_ocorrencia_enum,
        status_perfil_enum,
        papel_enum,
    ):
        enum.drop(bind, checkfirst=True)
