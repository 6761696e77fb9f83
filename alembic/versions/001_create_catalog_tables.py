"""Create products, product_variants and product_reviews tables.

Revision ID: 001
Revises:
Create Date: 2026-10-05

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create catalog tables."""
    op.create_table(
        'products',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(300), nullable=False, unique=True, index=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('brand', sa.String(100), nullable=True, index=True),
        sa.Column('category', sa.String(100), nullable=False, index=True),
        sa.Column('sub_category', sa.String(100), nullable=True, index=True),
        sa.Column('tags', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('discount', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('final_price', sa.Numeric(12, 2), nullable=False, index=True),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true', index=True),
        sa.Column('is_featured', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('is_new_arrival', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('images', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('rating', sa.Numeric(2, 1), nullable=False, server_default='0.0'),
        sa.Column('review_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
    )

    op.create_table(
        'product_variants',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('product_id', sa.String(36),
                  sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('size', sa.String(20), nullable=True),
        sa.Column('color_name', sa.String(50), nullable=True),
        sa.Column('color_hex', sa.String(7), nullable=True),
        sa.Column('sku', sa.String(100), nullable=True, unique=True),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('price', sa.Numeric(12, 2), nullable=True),
        sa.Column('images', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint('stock >= 0', name='ck_variants_stock_non_negative'),
    )

    op.create_table(
        'product_reviews',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('product_id', sa.String(36),
                  sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('user_id', sa.String(36), nullable=False, index=True),
        sa.Column('username', sa.String(30), nullable=True),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(100), nullable=True),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('images', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('status', sa.String(20), nullable=False, server_default='approved'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.UniqueConstraint('product_id', 'user_id', name='uq_review_product_user'),
    )


def downgrade() -> None:
    """Drop catalog tables."""
    op.drop_table('product_reviews')
    op.drop_table('product_variants')
    op.drop_table('products')
