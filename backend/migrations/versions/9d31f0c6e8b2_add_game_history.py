"""add game_history and game_history_player

Revision ID: 9d31f0c6e8b2
Revises: 4b7e2a91c3d0
Create Date: 2026-10-14 16:30:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '9d31f0c6e8b2'
down_revision = '4b7e2a91c3d0'
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'game_history' not in existing_tables:
        op.create_table(
            'game_history',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('host_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
            sa.Column('quiz_id', sa.Integer(), sa.ForeignKey('quiz.id'), nullable=False),
            sa.Column('quiz_title', sa.String(length=200), nullable=True),
            sa.Column('pin', sa.String(length=16), nullable=False),
            sa.Column('session_id', sa.String(length=64), nullable=False, unique=True),
            sa.Column('player_results', sa.Text(), nullable=False),
            sa.Column('total_players', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('started_at', sa.DateTime(), nullable=True),
            sa.Column('ended_at', sa.DateTime(), nullable=True),
            sa.Column('completed_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_game_history_host_id', 'game_history', ['host_id'])
        op.create_index('ix_game_history_quiz_id', 'game_history', ['quiz_id'])

    if 'game_history_player' not in existing_tables:
        op.create_table(
            'game_history_player',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('history_id', sa.Integer(), sa.ForeignKey('game_history.id'), nullable=False),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
            sa.Column('player_name', sa.String(length=64), nullable=False),
            sa.Column('rank', sa.Integer(), nullable=False),
            sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
        )
        op.create_index('ix_game_history_player_history_id', 'game_history_player', ['history_id'])
        op.create_index('ix_game_history_player_user_id', 'game_history_player', ['user_id'])


def downgrade():
    op.drop_index('ix_game_history_player_user_id', table_name='game_history_player')
    op.drop_index('ix_game_history_player_history_id', table_name='game_history_player')
    op.drop_table('game_history_player')
    op.drop_index('ix_game_history_quiz_id', table_name='game_history')
    op.drop_index('ix_game_history_host_id', table_name='game_history')
    op.drop_table('game_history')
