"""
Flask CLI commands for inventory operations.

Commands:
- flask init-db: Create the database tables
- flask ensure-main-warehouse: Create the default warehouse if missing
- flask recompute-stock: Rebuild product stock rollups from the ledger
- flask mcg-sync-once: Run one MCG reconciliation pass
"""

import click
from flask import current_app
from backoffice.database import get_session, create_schema
from backoffice.models import Product


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables."""
        create_schema()
        click.echo(click.style('✅ Database tables created', fg='green'))

    @app.cli.command('ensure-main-warehouse')
    def ensure_main_warehouse_command():
        """Create the Main Warehouse if it does not exist."""
        from backoffice.services.warehouse_service import ensure_main_warehouse
        warehouse = ensure_main_warehouse(get_session())
        click.echo(f'Main Warehouse id: {warehouse.id}')

    @app.cli.command('recompute-stock')
    @click.option('--product-id', type=int, default=None, help='Only recompute this product')
    def recompute_stock_command(product_id):
        """Recompute Product.stock and variant stock from inventory rows."""
        from backoffice.services.inventory_service import recompute_product_stock
        session = get_session()
        if product_id:
            product_ids = [product_id]
        else:
            product_ids = [pid for (pid,) in session.query(Product.id).order_by(Product.id).all()]

        failures = 0
        for pid in product_ids:
            try:
                stock = recompute_product_stock(pid, session)
                click.echo(f'  product {pid}: stock={stock}')
            except Exception as e:
                failures += 1
                click.echo(click.style(f'❌ product {pid}: {e}', fg='red'))

        click.echo(f'Recomputed {len(product_ids) - failures}/{len(product_ids)} product(s)')
        if failures:
            raise SystemExit(1)

    @app.cli.command('mcg-sync-once')
    @click.option('--force/--no-force', default=True, help='Run even if auto-pull is disabled')
    def mcg_sync_once_command(force):
        """Run one MCG reconciliation pass and print the counters."""
        if not current_app.config.get('MCG_ENABLED'):
            click.echo(click.style('❌ MCG integration is disabled (MCG_ENABLED)', fg='red'))
            raise SystemExit(1)

        scheduler = current_app.extensions['mcg_scheduler']
        try:
            result = scheduler.run_once(force=force)
        except Exception as e:
            click.echo(click.style(f'❌ MCG sync failed: {e}', fg='red'))
            raise SystemExit(1)

        if result is None:
            click.echo('Sync skipped (already running or auto-pull disabled)')
            return
        for key, value in result.items():
            click.echo(f'  {key}: {value}')
        click.echo(click.style('✅ MCG sync finished', fg='green'))
