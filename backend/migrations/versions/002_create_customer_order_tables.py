"""Create customer, order, order_item, invoice and change history tables

Revision ID: 002
Revises: 001
Create Date: 2025-03-03 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None

UPDATED_AT_TABLES = ('customer', 'order', 'order_item', 'invoice')


def _id_column():
    return sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False)


def _timestamp(name):
    return sa.Column(name, sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False)


def upgrade():
    op.create_table(
        'customer',
        _id_column(),
        sa.Column('org_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('dbx_customer_id', sa.Text(), nullable=False),
        sa.Column('client_name', sa.Text(), nullable=False),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('phone', sa.Text(), nullable=True),
        sa.Column('street_address', sa.Text(), server_default='', nullable=False),
        sa.Column('city', sa.Text(), server_default='', nullable=False),
        sa.Column('state', sa.Text(), server_default='', nullable=False),
        sa.Column('zip', sa.Text(), server_default='', nullable=False),
        sa.Column('status', sa.Text(), server_default='pending_updates', nullable=False),
        sa.Column('deleted_at', sa.TIMESTAMP(timezone=True), nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['org_id'], ['org.id'], ondelete='RESTRICT'),
        sa.UniqueConstraint('org_id', 'dbx_customer_id', name='uq_customer_org_dbx_id'),
        sa.CheckConstraint("status IN ('pending_updates', 'completed')", name='ck_customer_status')
    )
    op.create_index('ix_customer_org_id', 'customer', ['org_id'])
    op.create_index('ix_customer_deleted_at', 'customer', ['deleted_at'])
    op.create_index('ix_customer_updated_at', 'customer', ['updated_at'])

    op.create_table(
        'order',
        _id_column(),
        sa.Column('org_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('order_no', sa.Text(), nullable=False),
        sa.Column('order_date', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('order_po', sa.Text(), nullable=True),
        sa.Column('order_due_date', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('order_type', sa.Text(), nullable=True),
        sa.Column('order_delivered', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('quote_expiration_date', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('order_grand_total', sa.Numeric(15, 2), server_default='0', nullable=False),
        sa.Column('progress_payments', sa.Text(), nullable=True),
        sa.Column('balance_due', sa.Numeric(15, 2), server_default='0', nullable=False),
        sa.Column('sales_rep', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), server_default='pending_updates', nullable=False),
        sa.Column('stage', sa.Text(), nullable=True),
        sa.Column('contract_date', sa.Text(), nullable=True),
        sa.Column('first_build_invoice_date', sa.Text(), nullable=True),
        sa.Column('project_start_date', sa.Text(), nullable=True),
        sa.Column('project_end_date', sa.Text(), nullable=True),
        sa.Column('original_contract_url', sa.Text(), nullable=True),
        sa.Column('eml_filename', sa.Text(), nullable=True),
        sa.Column('created_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('updated_by', postgresql.UUID(as_uuid=True), nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['org_id'], ['org.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['customer_id'], ['customer.id']),
        sa.ForeignKeyConstraint(['created_by'], ['user.id']),
        sa.ForeignKeyConstraint(['updated_by'], ['user.id']),
        sa.UniqueConstraint('org_id', 'order_no', name='uq_order_org_order_no'),
        sa.CheckConstraint("status IN ('pending_updates', 'completed')", name='ck_order_status'),
        sa.CheckConstraint(
            "stage IS NULL OR stage IN ('waiting_for_permit', 'active', 'completed')",
            name='ck_order_stage'
        )
    )
    op.create_index('ix_order_customer_id', 'order', ['customer_id'])
    op.create_index('ix_order_created_at', 'order', ['created_at'])

    op.create_table(
        'order_item',
        _id_column(),
        sa.Column('org_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('row_index', sa.Integer(), nullable=False),
        sa.Column('column_a_label', sa.Text(), nullable=True),
        sa.Column('column_b_label', sa.Text(), nullable=True),
        sa.Column('product_service', sa.Text(), server_default='', nullable=False),
        sa.Column('qty', sa.Numeric(15, 2), nullable=True),
        sa.Column('rate', sa.Numeric(15, 2), nullable=True),
        sa.Column('amount', sa.Numeric(15, 2), nullable=True),
        sa.Column('progress_overall_pct', sa.Numeric(10, 4), nullable=True),
        sa.Column('completed_amount', sa.Numeric(15, 2), nullable=True),
        sa.Column('previously_invoiced_pct', sa.Numeric(10, 4), nullable=True),
        sa.Column('previously_invoiced_amount', sa.Numeric(15, 2), nullable=True),
        sa.Column('new_progress_pct', sa.Numeric(10, 4), nullable=True),
        sa.Column('this_bill', sa.Numeric(15, 2), nullable=True),
        sa.Column('item_type', sa.Text(), server_default='item', nullable=False),
        sa.Column('main_category', sa.Text(), nullable=True),
        sa.Column('sub_category', sa.Text(), nullable=True),
        sa.Column('is_optional', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('optional_package_number', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['org_id'], ['org.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['order_id'], ['order.id']),
        sa.CheckConstraint("item_type IN ('maincategory', 'subcategory', 'item')", name='ck_order_item_type')
    )
    op.create_index('ix_order_item_order_id', 'order_item', ['order_id'])

    op.create_table(
        'invoice',
        _id_column(),
        sa.Column('org_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('invoice_number', sa.Text(), nullable=True),
        sa.Column('invoice_date', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('invoice_amount', sa.Numeric(15, 2), nullable=True),
        sa.Column('payments_received', sa.Numeric(15, 2), server_default='0', nullable=False),
        sa.Column('exclude', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('row_index', sa.Integer(), nullable=True),
        sa.Column('linked_line_items', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['org_id'], ['org.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['order_id'], ['order.id'])
    )
    op.create_index('ix_invoice_order_id', 'invoice', ['order_id'])
    op.create_index('ix_invoice_updated_at', 'invoice', ['updated_at'])

    op.create_table(
        'change_history',
        _id_column(),
        sa.Column('org_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('order_item_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('change_type', sa.Text(), nullable=False),
        sa.Column('field_name', sa.Text(), nullable=False),
        sa.Column('old_value', sa.Text(), nullable=True),
        sa.Column('new_value', sa.Text(), nullable=True),
        sa.Column('row_index', sa.Integer(), nullable=True),
        sa.Column('changed_by', postgresql.UUID(as_uuid=True), nullable=False),
        _timestamp('changed_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['org_id'], ['org.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['order_id'], ['order.id']),
        sa.ForeignKeyConstraint(['customer_id'], ['customer.id']),
        sa.ForeignKeyConstraint(['changed_by'], ['user.id'])
    )
    op.create_index('ix_change_history_customer_id', 'change_history', ['customer_id'])
    op.create_index('ix_change_history_order_id', 'change_history', ['order_id'])
    op.create_index('ix_change_history_changed_at', 'change_history', ['changed_at'])

    op.create_table(
        'alert_acknowledgment',
        _id_column(),
        sa.Column('org_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('alert_type', sa.Text(), nullable=False),
        sa.Column('acknowledged_by', postgresql.UUID(as_uuid=True), nullable=False),
        _timestamp('acknowledged_at'),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['org_id'], ['org.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['customer_id'], ['customer.id']),
        sa.ForeignKeyConstraint(['acknowledged_by'], ['user.id']),
        sa.UniqueConstraint('customer_id', 'alert_type', name='uq_alert_ack_customer_type')
    )
    op.create_index('ix_alert_ack_customer_id', 'alert_acknowledgment', ['customer_id'])

    for table in UPDATED_AT_TABLES:
        op.execute(f"""
            CREATE TRIGGER update_{table}_updated_at
            BEFORE UPDATE ON "{table}"
            FOR EACH ROW
            EXECUTE FUNCTION update_updated_at_column();
        """)


def downgrade():
    for table in UPDATED_AT_TABLES:
        op.execute(f'DROP TRIGGER IF EXISTS update_{table}_updated_at ON "{table}"')

    op.drop_table('alert_acknowledgment')
    op.drop_table('change_history')
    op.drop_table('invoice')
    op.drop_table('order_item')
    op.drop_table('order')
    op.drop_table('customer')
