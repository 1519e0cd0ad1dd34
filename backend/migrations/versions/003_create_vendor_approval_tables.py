"""Create vendor, order_approval, order_approval_item and reference sequence tables

Revision ID: 003
Revises: 002
Create Date: 2025-04-14 09:30:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '003'
down_revision = '002'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'vendor',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('org_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('phone', sa.Text(), nullable=True),
        sa.Column('contact_person', sa.Text(), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('city', sa.Text(), nullable=True),
        sa.Column('state', sa.Text(), nullable=True),
        sa.Column('zip', sa.Text(), nullable=True),
        sa.Column('category', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), server_default='active', nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('specialties', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('deleted_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['org_id'], ['org.id'], ondelete='RESTRICT'),
        sa.UniqueConstraint('org_id', 'name', name='uq_vendor_org_name'),
        sa.CheckConstraint("status IN ('active', 'inactive')", name='ck_vendor_status')
    )
    op.create_index('ix_vendor_status', 'vendor', ['status'])
    op.create_index('ix_vendor_category', 'vendor', ['category'])
    op.create_index('ix_vendor_deleted_at', 'vendor', ['deleted_at'])

    op.create_table(
        'order_approval',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('org_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('reference_no', sa.Text(), nullable=False),
        sa.Column('vendor_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('stage', sa.Text(), server_default='draft', nullable=False),
        sa.Column('pm_approved', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('vendor_approved', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('vendor_approved_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('date_created', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('created_by', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('sent_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('deleted_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['org_id'], ['org.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['vendor_id'], ['vendor.id']),
        sa.ForeignKeyConstraint(['customer_id'], ['customer.id']),
        sa.ForeignKeyConstraint(['order_id'], ['order.id']),
        sa.ForeignKeyConstraint(['created_by'], ['user.id']),
        sa.UniqueConstraint('org_id', 'reference_no', name='uq_order_approval_reference_no'),
        sa.CheckConstraint(
            "stage IN ('draft', 'sent', 'negotiating', 'approved')",
            name='ck_order_approval_stage'
        )
    )
    op.create_index('ix_order_approval_vendor_id', 'order_approval', ['vendor_id'])
    op.create_index('ix_order_approval_customer_id', 'order_approval', ['customer_id'])
    op.create_index('ix_order_approval_stage', 'order_approval', ['stage'])
    op.create_index('ix_order_approval_deleted_at', 'order_approval', ['deleted_at'])
    op.create_index('ix_order_approval_date_created', 'order_approval', ['date_created'])

    op.create_table(
        'order_approval_item',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('org_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('order_approval_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('order_item_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('product_service', sa.Text(), nullable=True),
        sa.Column('amount', sa.Numeric(15, 2), nullable=True),
        sa.Column('qty', sa.Numeric(15, 2), nullable=True),
        sa.Column('rate', sa.Numeric(15, 2), nullable=True),
        sa.Column('negotiated_vendor_amount', sa.Numeric(15, 2), nullable=True),
        sa.Column('snapshot_date', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['org_id'], ['org.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['order_approval_id'], ['order_approval.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('order_approval_id', 'order_item_id', name='uq_order_approval_item')
    )
    op.create_index('ix_order_approval_item_order_item_id', 'order_approval_item', ['order_item_id'])

    op.create_table(
        'reference_number_sequence',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('org_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('last_sequence', sa.Integer(), server_default='0', nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['org_id'], ['org.id'], ondelete='RESTRICT'),
        sa.UniqueConstraint('org_id', 'year', name='uq_reference_sequence_org_year')
    )

    for table in ('vendor', 'order_approval'):
        op.execute(f"""
            CREATE TRIGGER update_{table}_updated_at
            BEFORE UPDATE ON "{table}"
            FOR EACH ROW
            EXECUTE FUNCTION update_updated_at_column();
        """)


def downgrade():
    for table in ('order_approval', 'vendor'):
        op.execute(f'DROP TRIGGER IF EXISTS update_{table}_updated_at ON "{table}"')

    op.drop_table('reference_number_sequence')
    op.drop_table('order_approval_item')
    op.drop_table('order_approval')
    op.drop_table('vendor')
