"""create rooms, participants, predictions, winners

Revision ID: 3c7a9e1f5b20
Revises:
Create Date: 2026-02-20 18:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c7a9e1f5b20'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa.inspect(bind).get_table_names())

    if 'rooms' not in existing_tables:
        op.create_table(
            'rooms',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('code', sa.String(length=4), nullable=False),
            sa.Column('host_id', sa.Integer(), nullable=True),
            sa.Column('phase', sa.String(length=16), nullable=False, server_default='VOTING'),
            sa.Column('current_category_id', sa.String(length=128), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_rooms_code', 'rooms', ['code'], unique=True)

    if 'participants' not in existing_tables:
        op.create_table(
            'participants',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('room_id', sa.Integer(), sa.ForeignKey('rooms.id'), nullable=False),
            sa.Column('name', sa.String(length=64), nullable=False),
            sa.Column('is_host', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('joined_at', sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_participants_room_id', 'participants', ['room_id'])

    if 'predictions' not in existing_tables:
        op.create_table(
            'predictions',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('participant_id', sa.Integer(), sa.ForeignKey('participants.id'), nullable=False),
            sa.Column('room_id', sa.Integer(), sa.ForeignKey('rooms.id'), nullable=False),
            sa.Column('category_id', sa.String(length=128), nullable=False),
            sa.Column('nominee_id', sa.String(length=256), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('participant_id', 'category_id', name='uq_prediction_participant_category'),
        )
        op.create_index('ix_predictions_participant_id', 'predictions', ['participant_id'])
        op.create_index('ix_predictions_room_id', 'predictions', ['room_id'])

    if 'winners' not in existing_tables:
        op.create_table(
            'winners',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('room_id', sa.Integer(), sa.ForeignKey('rooms.id'), nullable=False),
            sa.Column('category_id', sa.String(length=128), nullable=False),
            sa.Column('nominee_id', sa.String(length=256), nullable=False),
            sa.Column('announced_at', sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('room_id', 'category_id', name='uq_winner_room_category'),
        )
        op.create_index('ix_winners_room_id', 'winners', ['room_id'])


def downgrade():
    op.drop_table('winners')
    op.drop_table('predictions')
    op.drop_table('participants')
    op.drop_table('rooms')
