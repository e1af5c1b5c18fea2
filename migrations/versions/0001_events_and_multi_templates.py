"""events, tickets, participants and multi-template certificates"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_events_and_multi_templates'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'events',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=255), unique=True),
        sa.Column('location', sa.String(length=255)),
        sa.Column('start_time', sa.DateTime),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
    )
    op.create_table(
        'tickets',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('event_id', sa.Integer, sa.ForeignKey('events.id', ondelete='CASCADE'), nullable=False),
        sa.Column('token', sa.String(length=255), nullable=False, unique=True),
        sa.Column('is_verified', sa.Boolean, nullable=False, server_default=sa.text('false')),
    )
    op.create_table(
        'participants',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('ticket_id', sa.Integer, sa.ForeignKey('tickets.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(length=255)),
        sa.Column('email', sa.String(length=255)),
        sa.Column('registered_at', sa.DateTime, server_default=sa.func.now()),
    )
    op.create_table(
        'certificate_templates_multi',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('event_id', sa.Integer, sa.ForeignKey('events.id', ondelete='CASCADE'), nullable=False),
        sa.Column('template_index', sa.Integer, nullable=False),
        sa.Column('template_path', sa.String(length=255)),
        sa.Column('template_fields', sa.Text, nullable=False, server_default='[]'),
        sa.Column('template_size', sa.Text),
    )
    op.create_unique_constraint(
        'uix_cert_template_multi_event_index',
        'certificate_templates_multi',
        ['event_id', 'template_index'],
    )
    op.create_table(
        'certificates',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('participant_id', sa.Integer, sa.ForeignKey('participants.id', ondelete='CASCADE')),
        sa.Column('template_id', sa.Integer, sa.ForeignKey('certificate_templates_multi.id', ondelete='SET NULL')),
        sa.Column('path', sa.String(length=255), nullable=False),
        sa.Column('sent', sa.Boolean, nullable=False, server_default=sa.text('false')),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table('certificates')
    op.drop_constraint('uix_cert_template_multi_event_index', 'certificate_templates_multi', type_='unique')
    op.drop_table('certificate_templates_multi')
    op.drop_table('participants')
    op.drop_table('tickets')
    op.drop_table('events')
