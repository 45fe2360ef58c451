"""Initial marketplace schema

Revision ID: 20260101_initial
Revises:
Create Date: 2026-01-01

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20260101_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(255), nullable=False),
        sa.Column('display_name', sa.String(100), nullable=True),
        sa.Column('avatar_url', sa.String(1024), nullable=True),
        sa.Column('email', sa.String(320), nullable=True),
        sa.Column('slug', sa.String(20), nullable=True),
        sa.Column('stripe_customer_id', sa.String(255), nullable=True),
        sa.Column('stripe_account_id', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('stripe_customer_id'),
        sa.UniqueConstraint('stripe_account_id'),
    )
    # Slugs are unique regardless of case
    op.create_index('uq_users_slug_lower', 'users', [sa.text('lower(slug)')], unique=True)

    op.create_table(
        'cards',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('game_type', sa.String(50), nullable=False, server_default='POKEMON'),
        sa.Column('card_name', sa.String(255), nullable=True),
        sa.Column('set_name', sa.String(255), nullable=True),
        sa.Column('card_number', sa.String(50), nullable=True),
        sa.Column('variety', sa.String(255), nullable=True),
        sa.Column('psa_spec_id', sa.String(50), nullable=True),
        sa.Column('front_image_url', sa.String(1024), nullable=True),
        sa.Column('back_image_url', sa.String(1024), nullable=True),
        sa.Column('highest_image_grade', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_cards_psa_spec_id', 'cards', ['psa_spec_id'])

    op.create_table(
        'grading_certificates',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('grading_company', sa.String(20), nullable=False, server_default='PSA'),
        sa.Column('cert_number', sa.String(50), nullable=False),
        sa.Column('grade', sa.Float(), nullable=True),
        sa.Column('grade_label', sa.String(100), nullable=True),
        sa.Column('psa_spec_id', sa.String(50), nullable=True),
        sa.Column('card_id', sa.String(32), sa.ForeignKey('cards.id'), nullable=True),
        sa.Column('front_image_url', sa.String(1024), nullable=True),
        sa.Column('back_image_url', sa.String(1024), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('grading_company', 'cert_number', name='uq_grading_company_cert'),
    )

    op.create_table(
        'sales_data',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('card_id', sa.String(32), sa.ForeignKey('cards.id'), nullable=True),
        sa.Column('grading_certificate_id', sa.String(32), sa.ForeignKey('grading_certificates.id'), nullable=True),
        sa.Column('grading_company', sa.String(20), nullable=True),
        sa.Column('cert_number', sa.String(50), nullable=True),
        sa.Column('value', sa.Float(), nullable=False),
        sa.Column('date', sa.DateTime(), nullable=False),
        sa.Column('is_auction', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('image_url', sa.String(1024), nullable=True),
        sa.Column('title', sa.String(512), nullable=True),
        sa.Column('api_response', sa.JSON(), nullable=True),
        sa.Column('source', sa.String(50), nullable=True),
        sa.Column('source_id', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_sales_data_card_date', 'sales_data', ['card_id', 'date'])

    op.create_table(
        'listings',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('seller_id', sa.String(255), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('display_title', sa.String(255), nullable=False),
        sa.Column('asking_price_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),
        sa.Column('status', sa.String(20), nullable=False, server_default='DRAFT'),
        sa.Column('seller_notes', sa.Text(), nullable=True),
        sa.Column('image_url', sa.String(1024), nullable=True),
        sa.Column('card_id', sa.String(32), sa.ForeignKey('cards.id'), nullable=True),
        sa.Column('grading_certificate_id', sa.String(32), sa.ForeignKey('grading_certificates.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_listings_seller_created', 'listings', ['seller_id', 'created_at'])
    op.create_index('ix_listings_status', 'listings', ['status'])

    op.create_table(
        'orders',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('buyer_id', sa.String(255), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('seller_id', sa.String(255), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('seller_name', sa.String(100), nullable=True),
        sa.Column('description', sa.String(512), nullable=True),
        sa.Column('listing_id', sa.String(32), sa.ForeignKey('listings.id'), nullable=True),
        sa.Column('snapshot_listing_display_title', sa.String(255), nullable=True),
        sa.Column('snapshot_listing_image_url', sa.String(1024), nullable=True),
        sa.Column('snapshot_listing_price_cents', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('fulfillment_status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('tax_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('shipping_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),
        sa.Column('is_test_payment', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('purchase_timezone', sa.String(64), nullable=True),
        sa.Column('stripe_session_id', sa.String(255), nullable=True),
        sa.Column('stripe_payment_intent_id', sa.String(255), nullable=True),
        sa.Column('stripe_customer_id', sa.String(255), nullable=True),
        sa.Column('shipping_carrier', sa.String(50), nullable=True),
        sa.Column('tracking_number', sa.String(100), nullable=True),
        sa.Column('tracking_id', sa.String(255), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('shipped_at', sa.DateTime(), nullable=True),
        sa.Column('delivered_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('stripe_session_id'),
        sa.UniqueConstraint('stripe_payment_intent_id'),
    )
    op.create_index('ix_orders_buyer', 'orders', ['buyer_id', 'created_at'])
    op.create_index('ix_orders_seller', 'orders', ['seller_id', 'created_at'])
    op.create_index('ix_orders_tracking', 'orders', ['tracking_number', 'shipping_carrier'])
    op.create_index('ix_orders_status', 'orders', ['status'])

    op.create_table(
        'order_events',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('order_id', sa.String(32), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('type', sa.String(32), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_order_events_order_ts', 'order_events', ['order_id', 'timestamp'])

    op.create_table(
        'invitation_codes',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('code', sa.String(64), nullable=False),
        sa.Column('created_by', sa.String(255), nullable=True),
        sa.Column('used_by', sa.String(255), nullable=True),
        sa.Column('used_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        # One code per user: makes concurrent redemptions by the same user collide
        sa.UniqueConstraint('used_by'),
    )
    op.create_index('ix_invitation_codes_code', 'invitation_codes', ['code'], unique=True)

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.String(255), nullable=False),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('user_id', sa.String(255), nullable=True),
        sa.Column('changes', sa.JSON(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('user_agent', sa.String(512), nullable=True),
        sa.Column('partition_key', sa.String(7), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_logs_entity', 'audit_logs', ['entity_type', 'entity_id'])
    op.create_index('ix_audit_logs_partition', 'audit_logs', ['partition_key'])


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('invitation_codes')
    op.drop_table('order_events')
    op.drop_table('orders')
    op.drop_table('listings')
    op.drop_table('sales_data')
    op.drop_table('grading_certificates')
    op.drop_table('cards')
    op.drop_index('uq_users_slug_lower', table_name='users')
    op.drop_table('users')
