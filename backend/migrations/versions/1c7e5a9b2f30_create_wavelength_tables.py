"""create room, player, round and matchmaking_entry tables

Revision ID: 1c7e5a9b2f30
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1c7e5a9b2f30'
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_PHASES_SQL = "phase IN ('clue_giving', 'guessing', 'predicting', 'reveal')"


def upgrade():
    op.create_table(
        'room',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=4), nullable=False),
        sa.Column('host_token', sa.String(length=64), nullable=False),
        sa.Column('is_private', sa.Boolean(), nullable=False),
        sa.Column('password_hash', sa.String(length=128), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('mode', sa.String(length=16), nullable=False),
        sa.Column('max_players', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_room_code', 'room', ['code'], unique=True)

    op.create_table(
        'player',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('room_id', sa.Integer(), nullable=False),
        sa.Column('player_token', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('is_host', sa.Boolean(), nullable=False),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['room_id'], ['room.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('room_id', 'player_token', name='uq_player_room_token'),
    )
    op.create_index('ix_player_room_id', 'player', ['room_id'])

    op.create_table(
        'round',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('room_id', sa.Integer(), nullable=False),
        sa.Column('round_number', sa.Integer(), nullable=False),
        sa.Column('phase', sa.String(length=16), nullable=False),
        sa.Column('clue_giver_token', sa.String(length=64), nullable=False),
        sa.Column('guesser_token', sa.String(length=64), nullable=False),
        sa.Column('predictor_token', sa.String(length=64), nullable=True),
        sa.Column('left_extreme', sa.String(length=64), nullable=False),
        sa.Column('right_extreme', sa.String(length=64), nullable=False),
        sa.Column('target_center', sa.Float(), nullable=False),
        sa.Column('target_width', sa.Float(), nullable=False),
        sa.Column('clue', sa.Text(), nullable=True),
        sa.Column('guess_value', sa.Float(), nullable=True),
        sa.Column('points_awarded', sa.Integer(), nullable=True),
        sa.Column('predicted_side', sa.String(length=8), nullable=True),
        sa.Column('prediction_correct', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['room_id'], ['room.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('room_id', 'round_number', name='uq_round_room_number'),
    )
    op.create_index('ix_round_room_id', 'round', ['room_id'])
    op.create_index(
        'uq_round_room_active', 'round', ['room_id'], unique=True,
        sqlite_where=sa.text(ACTIVE_PHASES_SQL),
        postgresql_where=sa.text(ACTIVE_PHASES_SQL),
    )

    op.create_table(
        'matchmaking_entry',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('player_token', sa.String(length=64), nullable=False),
        sa.Column('player_name', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('matched_room_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['matched_room_id'], ['room.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_matchmaking_entry_player_token', 'matchmaking_entry', ['player_token'])
    op.create_index('ix_matchmaking_entry_status', 'matchmaking_entry', ['status'])


def downgrade():
    op.drop_index('ix_matchmaking_entry_status', table_name='matchmaking_entry')
    op.drop_index('ix_matchmaking_entry_player_token', table_name='matchmaking_entry')
    op.drop_table('matchmaking_entry')
    op.drop_index('uq_round_room_active', table_name='round')
    op.drop_index('ix_round_room_id', table_name='round')
    op.drop_table('round')
    op.drop_index('ix_player_room_id', table_name='player')
    op.drop_table('player')
    op.drop_index('ix_room_code', table_name='room')
    op.drop_table('room')
