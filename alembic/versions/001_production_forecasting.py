"""Production forecasting schema

Revision ID: 001_production_forecasting
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001_production_forecasting'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Catalog
    op.create_table(
        'markets',
        sa.Column('id', sa.String(64), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('is_outdoor', sa.Boolean(), nullable=True, server_default='false'),
        sa.Column('is_active', sa.Boolean(), nullable=True, server_default='true'),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'products',
        sa.Column('id', sa.String(64), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('cost', sa.Float(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=True, server_default='true'),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_products_category', 'products', ['category'])

    op.create_table(
        'product_variants',
        sa.Column('id', sa.String(64), nullable=False),
        sa.Column('product_id', sa.String(64), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('price', sa.Float(), nullable=True),  # null = product price
        sa.Column('cost', sa.Float(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True, server_default='true'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_product_variants_product_id', 'product_variants', ['product_id'])

    # Sales log and daily inventory (written by the point of sale)
    op.create_table(
        'product_sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_date', sa.Date(), nullable=False),
        sa.Column('market_id', sa.String(64), nullable=False),
        sa.Column('market_name', sa.String(200), nullable=True),
        sa.Column('product_id', sa.String(64), nullable=False),
        sa.Column('product_name', sa.String(200), nullable=True),
        sa.Column('variant_id', sa.String(64), nullable=True),
        sa.Column('variant_name', sa.String(200), nullable=True),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('quantity_sold', sa.Integer(), nullable=False),
        sa.Column('price_per_unit', sa.Float(), nullable=True),
        sa.Column('cost_per_unit', sa.Float(), nullable=True),
        sa.Column('waste_qty', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('weather_condition', sa.String(20), nullable=True),  # sunny, cloudy, rain, storm, wind, cold
        sa.Column('recorded_at', sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_product_sales_sale_date', 'product_sales', ['sale_date'])
    op.create_index('ix_product_sales_market_id', 'product_sales', ['market_id'])
    op.create_index('ix_product_sales_product_id', 'product_sales', ['product_id'])

    op.create_table(
        'daily_inventory',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_date', sa.Date(), nullable=False),
        sa.Column('product_id', sa.String(64), nullable=False),
        sa.Column('variant_id', sa.String(64), nullable=True),
        sa.Column('market_id', sa.String(64), nullable=True),  # null = every market
        sa.Column('produced_qty', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('to_shop_qty', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('sold_qty', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('waste_qty', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('leftover_qty', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_daily_inventory_business_date', 'daily_inventory', ['business_date'])
    op.create_index('ix_daily_inventory_product_id', 'daily_inventory', ['product_id'])

    op.create_table(
        'market_weather',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('market_id', sa.String(64), nullable=False),
        sa.Column('forecast_date', sa.Date(), nullable=False),
        sa.Column('condition', sa.String(20), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_market_weather_market_date', 'market_weather', ['market_id', 'forecast_date'])

    # Production forecasts (append-only)
    op.create_table(
        'production_forecasts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('product_id', sa.String(64), nullable=False),
        sa.Column('variant_id', sa.String(64), nullable=True),
        sa.Column('market_id', sa.String(64), nullable=False),
        sa.Column('forecast_for_date', sa.Date(), nullable=False),
        sa.Column('product_name', sa.String(200), nullable=False),
        sa.Column('variant_name', sa.String(200), nullable=True),
        sa.Column('market_name', sa.String(200), nullable=False),
        sa.Column('product_category', sa.String(100), nullable=True),
        sa.Column('weather_forecast', sa.String(20), nullable=True),
        sa.Column('historical_data_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('outliers_removed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sampling_mode', sa.String(20), nullable=True),  # same_weekday, all_weekdays, fallback_rate
        sa.Column('baseline_forecast', sa.Float(), nullable=False),
        sa.Column('weather_adjusted_forecast', sa.Float(), nullable=False),
        sa.Column('lambda_poisson', sa.Float(), nullable=False),
        sa.Column('optimal_quantity', sa.Integer(), nullable=False),
        sa.Column('service_level_target', sa.Float(), nullable=False),
        sa.Column('stockout_probability', sa.Float(), nullable=False),
        sa.Column('waste_probability', sa.Float(), nullable=False),
        sa.Column('confidence_level', sa.Float(), nullable=False),
        sa.Column('prediction_interval_lower', sa.Integer(), nullable=False),
        sa.Column('prediction_interval_upper', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Float(), nullable=False),
        sa.Column('unit_cost', sa.Float(), nullable=False),
        sa.Column('expected_demand', sa.Float(), nullable=False),
        sa.Column('expected_profit', sa.Float(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_production_forecasts_created_at', 'production_forecasts', ['created_at'])
    op.create_index('ix_production_forecasts_forecast_for_date', 'production_forecasts', ['forecast_for_date'])
    op.create_index('idx_forecasts_sku_date', 'production_forecasts', ['product_id', 'market_id', 'forecast_for_date'])


def downgrade():
    op.drop_table('production_forecasts')
    op.drop_table('market_weather')
    op.drop_table('daily_inventory')
    op.drop_table('product_sales')
    op.drop_table('product_variants')
    op.drop_table('products')
    op.drop_table('markets')
