"""initial schema: staff, customers, vouchers, campaigns

Revision ID: 1a2b3c4d5e6f
Revises:
Create Date: 2025-09-15 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1a2b3c4d5e6f'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'role' not in existing_tables:
        op.create_table(
            'role',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=50), nullable=False),
            sa.Column('permissions', sa.Text(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('name'),
        )

    if 'staff_user' not in existing_tables:
        op.create_table(
            'staff_user',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=100), nullable=False),
            sa.Column('email', sa.String(length=255), nullable=False),
            sa.Column('password_hash', sa.String(length=255), nullable=False),
            sa.Column('role_id', sa.Integer(), nullable=False),
            sa.Column('active', sa.Boolean(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(['role_id'], ['role.id']),
            sa.PrimaryKeyConstraint('id'),
        )
        with op.batch_alter_table('staff_user') as batch_op:
            batch_op.create_index(batch_op.f('ix_staff_user_email'), ['email'], unique=True)

    if 'customer' not in existing_tables:
        op.create_table(
            'customer',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('first_name', sa.String(length=100), nullable=False),
            sa.Column('last_name', sa.String(length=100), nullable=False),
            sa.Column('phone', sa.String(length=20), nullable=False),
            sa.Column('registered_at', sa.DateTime(), nullable=False),
            sa.Column('last_played_at', sa.DateTime(), nullable=True),
            sa.Column('total_games', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('games_won', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('games_lost', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('approved_extra_games', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint('id'),
        )
        with op.batch_alter_table('customer') as batch_op:
            batch_op.create_index(batch_op.f('ix_customer_phone'), ['phone'], unique=True)

    if 'voucher' not in existing_tables:
        op.create_table(
            'voucher',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('code', sa.String(length=20), nullable=False),
            sa.Column('customer_id', sa.Integer(), nullable=False),
            sa.Column('kind', sa.String(length=20), nullable=False),
            sa.Column('discount', sa.Integer(), nullable=False),
            sa.Column('won', sa.Boolean(), nullable=True),
            sa.Column('issued_at', sa.DateTime(), nullable=False),
            sa.Column('expires_at', sa.DateTime(), nullable=False),
            sa.Column('used', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('used_at', sa.DateTime(), nullable=True),
            sa.Column('redeemed_by_id', sa.Integer(), nullable=True),
            sa.Column('notes', sa.Text(), nullable=True),
            sa.ForeignKeyConstraint(['customer_id'], ['customer.id']),
            sa.ForeignKeyConstraint(['redeemed_by_id'], ['staff_user.id']),
            sa.PrimaryKeyConstraint('id'),
        )
        with op.batch_alter_table('voucher') as batch_op:
            batch_op.create_index(batch_op.f('ix_voucher_code'), ['code'], unique=True)

    if 'campaign' not in existing_tables:
        op.create_table(
            'campaign',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=200), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('discount', sa.Integer(), nullable=False),
            sa.Column('expires_at', sa.DateTime(), nullable=False),
            sa.Column('message', sa.Text(), nullable=True),
            sa.Column('created_by_id', sa.Integer(), nullable=False),
            sa.Column('active', sa.Boolean(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(['created_by_id'], ['staff_user.id']),
            sa.PrimaryKeyConstraint('id'),
        )

    if 'campaign_send' not in existing_tables:
        op.create_table(
            'campaign_send',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('campaign_id', sa.Integer(), nullable=False),
            sa.Column('customer_id', sa.Integer(), nullable=False),
            sa.Column('voucher_id', sa.Integer(), nullable=True),
            sa.Column('voucher_code', sa.String(length=20), nullable=True),
            sa.Column('sent_at', sa.DateTime(), nullable=False),
            sa.Column('status', sa.String(length=20), nullable=False),
            sa.Column('error_message', sa.Text(), nullable=True),
            sa.Column('attempts', sa.Integer(), nullable=False, server_default='1'),
            sa.ForeignKeyConstraint(['campaign_id'], ['campaign.id']),
            sa.ForeignKeyConstraint(['customer_id'], ['customer.id']),
            sa.ForeignKeyConstraint(['voucher_id'], ['voucher.id']),
            sa.PrimaryKeyConstraint('id'),
        )


def downgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    # Children first
    for table in ('campaign_send', 'campaign', 'voucher', 'customer', 'staff_user', 'role'):
        if table in existing_tables:
            op.drop_table(table)
