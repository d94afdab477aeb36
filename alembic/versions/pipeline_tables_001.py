"""Create completion / dispute / payout pipeline tables

Revision ID: pipeline_001
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = 'pipeline_001'
down_revision = None
branch_labels = None
depends_on = None


ENUMS = {
    'usertype': ('brand', 'influencer', 'admin'),
    'campaignstatusdb': ('pending', 'active', 'completed', 'cancelled', 'disputed'),
    'proposalstatusdb': ('pending', 'accepted', 'rejected'),
    'paymentstatusdb': ('unpaid', 'pending', 'paid', 'released', 'failed'),
    'transactiontypedb': ('credit', 'debit'),
    'transactionstatusdb': ('pending', 'approved', 'rejected'),
    'disputestatusdb': ('pending', 'needs_info', 'resolved', 'rejected', 'escalated'),
    'disputereasondb': ('quality', 'delay', 'payment', 'fraud', 'other'),
    'disputedecisiondb': ('refund_full', 'refund_partial', 'release_funds', 'redo_work', 'reject'),
    'raiserroledb': ('brand', 'influencer'),
    'evidencetypedb': ('image', 'video', 'file', 'link', 'text'),
}


def _enum(name):
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def upgrade():
    # Create enums
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(op.get_bind(), checkfirst=True)

    # Users
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('password_hash', sa.String(255)),
        sa.Column('name', sa.String(255)),
        sa.Column('user_type', _enum('usertype'), nullable=False, server_default='influencer'),
        sa.Column('paystack_recipient_code', sa.String(100)),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now())
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # Campaigns
    op.create_table(
        'campaigns',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('brand_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('category', sa.String(100)),
        sa.Column('budget_min', sa.Numeric(12, 2), nullable=False),
        sa.Column('budget_max', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), server_default='KES'),
        sa.Column('status', _enum('campaignstatusdb'), nullable=False, server_default='pending'),
        sa.Column('review_enabled', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('influencer_completed', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('influencer_completed_at', sa.DateTime()),
        sa.Column('max_influencers', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('completed_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint('budget_min <= budget_max', name='ck_campaigns_budget_range'),
        sa.CheckConstraint('max_influencers >= 1 AND max_influencers <= 3', name='ck_campaigns_max_influencers')
    )

    # Proposals (transaction links are added once transactions exists)
    op.create_table(
        'proposals',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('campaign_id', sa.String(36), sa.ForeignKey('campaigns.id', ondelete='CASCADE'), nullable=False),
        sa.Column('influencer_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('delivery_time', sa.String(100), nullable=False),
        sa.Column('message', sa.Text()),
        sa.Column('status', _enum('proposalstatusdb'), nullable=False, server_default='pending'),
        sa.Column('accepted_at', sa.DateTime()),
        sa.Column('rejected_at', sa.DateTime()),
        sa.Column('payment_status', _enum('paymentstatusdb'), nullable=False, server_default='unpaid'),
        sa.Column('payment_reference', sa.String(100)),
        sa.Column('brand_transaction_id', sa.String(36), nullable=True),
        sa.Column('payout_transaction_id', sa.String(36), nullable=True),
        sa.Column('payout_released_at', sa.DateTime()),
        sa.Column('influencer_marked_complete', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('influencer_completed_at', sa.DateTime()),
        sa.Column('admin_approved_completion', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('admin_completion_approved_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('campaign_id', 'influencer_id', name='uq_proposals_campaign_influencer')
    )
    op.create_index('ix_proposals_campaign_id', 'proposals', ['campaign_id'])

    # Transactions
    op.create_table(
        'transactions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('campaign_id', sa.String(36), sa.ForeignKey('campaigns.id'), nullable=True),
        sa.Column('proposal_id', sa.String(36), sa.ForeignKey('proposals.id'), nullable=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), server_default='KES'),
        sa.Column('transaction_type', _enum('transactiontypedb'), nullable=False),
        sa.Column('status', _enum('transactionstatusdb'), nullable=False, server_default='pending'),
        sa.Column('app_fee', sa.Numeric(12, 2), server_default='0'),
        sa.Column('influencer_amount', sa.Numeric(12, 2), server_default='0'),
        sa.Column('is_payout', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('source_transaction_id', sa.String(36), sa.ForeignKey('transactions.id'), nullable=True),
        sa.Column('payment_reference', sa.String(100), unique=True),
        sa.Column('charge_reference', sa.String(100)),
        sa.Column('transfer_code', sa.String(100)),
        sa.Column('description', sa.Text()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now())
    )
    op.create_index('ix_transactions_campaign_id', 'transactions', ['campaign_id'])
    op.create_index('ix_transactions_proposal_id', 'transactions', ['proposal_id'])
    op.create_index(
        'uq_transactions_payout_proposal', 'transactions', ['proposal_id'],
        unique=True, postgresql_where=sa.text('is_payout = true')
    )

    op.create_foreign_key('fk_proposals_brand_transaction', 'proposals', 'transactions', ['brand_transaction_id'], ['id'])
    op.create_foreign_key('fk_proposals_payout_transaction', 'proposals', 'transactions', ['payout_transaction_id'], ['id'])

    # Disputes
    op.create_table(
        'disputes',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('campaign_id', sa.String(36), sa.ForeignKey('campaigns.id', ondelete='CASCADE'), nullable=False),
        sa.Column('raised_by', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('against', sa.String(36), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('role_of_raiser', _enum('raiserroledb'), nullable=False),
        sa.Column('reason', _enum('disputereasondb'), nullable=False, server_default='other'),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('status', _enum('disputestatusdb'), nullable=False, server_default='pending'),
        sa.Column('decision', _enum('disputedecisiondb'), nullable=True),
        sa.Column('decision_by', sa.String(36), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('resolution_notes', sa.Text()),
        sa.Column('resolution_amount', sa.Numeric(12, 2)),
        sa.Column('decided_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now())
    )
    op.create_index('ix_disputes_campaign_id', 'disputes', ['campaign_id'])
    op.create_index('ix_disputes_raised_by_status', 'disputes', ['raised_by', 'status'])
    op.create_index(
        'uq_disputes_open_campaign', 'disputes', ['campaign_id'],
        unique=True, postgresql_where=sa.text("status IN ('pending', 'needs_info', 'escalated')")
    )

    op.create_table(
        'dispute_evidence',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('dispute_id', sa.String(36), sa.ForeignKey('disputes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('type', _enum('evidencetypedb'), nullable=False, server_default='file'),
        sa.Column('url', sa.String(1000)),
        sa.Column('text', sa.Text()),
        sa.Column('caption', sa.String(500)),
        sa.Column('uploaded_by', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now())
    )
    op.create_index('ix_dispute_evidence_dispute_id', 'dispute_evidence', ['dispute_id'])

    op.create_table(
        'dispute_messages',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('dispute_id', sa.String(36), sa.ForeignKey('disputes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sender_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('attachments', sa.JSON()),
        sa.Column('is_system', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now())
    )
    op.create_index('ix_dispute_messages_dispute_id', 'dispute_messages', ['dispute_id'])

    # Chat rooms consumed by the completion message
    op.create_table(
        'chat_rooms',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('campaign_id', sa.String(36), sa.ForeignKey('campaigns.id', ondelete='CASCADE'), nullable=False),
        sa.Column('brand_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('influencer_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('last_message_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now())
    )
    op.create_index('ix_chat_rooms_campaign_id', 'chat_rooms', ['campaign_id'])

    op.create_table(
        'chat_messages',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('room_id', sa.String(36), sa.ForeignKey('chat_rooms.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sender_id', sa.String(36), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('is_system', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now())
    )
    op.create_index('ix_chat_messages_room_id', 'chat_messages', ['room_id'])

    # Notifications
    op.create_table(
        'notifications',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('message', sa.Text()),
        sa.Column('action_url', sa.String(500)),
        sa.Column('data', sa.JSON()),
        sa.Column('read', sa.Boolean(), server_default='false'),
        sa.Column('read_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now())
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])


def downgrade():
    # Drop tables in reverse order
    op.drop_table('notifications')
    op.drop_table('chat_messages')
    op.drop_table('chat_rooms')
    op.drop_table('dispute_messages')
    op.drop_table('dispute_evidence')
    op.drop_table('disputes')
    op.drop_constraint('fk_proposals_payout_transaction', 'proposals', type_='foreignkey')
    op.drop_constraint('fk_proposals_brand_transaction', 'proposals', type_='foreignkey')
    op.drop_table('transactions')
    op.drop_table('proposals')
    op.drop_table('campaigns')
    op.drop_table('users')

    # Drop enums
    for name in reversed(list(ENUMS)):
        op.execute(f'DROP TYPE IF EXISTS {name}')
