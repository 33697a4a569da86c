# Overview: Flask CLI command groups for bootstrap, ledger inspection, and data migration.

# backend/metaltrade/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system show-settings
#   Print effective pricing settings (config defaults plus overrides).
#
# Purchases:
# - python -m flask purchases debts
#   Outstanding supplier debt grouped by supplier.
# - python -m flask purchases migrate-legacy --dry-run
#   Report legacy (USD-only) purchases and untagged stock rows without writing.
# - python -m flask purchases migrate-legacy
#   Convert legacy purchases to the UZS schema and tag untagged stock rows as main.
#
# Inventory:
# - python -m flask inventory check-consistency
#   Compare stock rows with purchase history (differences include opening stock and sales).

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import persistence_service, settings_service
from .services.inventory_service import inventory_value, tag_legacy_rows
from .services.purchase_service import check_stock_consistency, migrate_legacy_purchase, supplier_debts


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@system_group.command('show-settings')
@with_appcontext
def show_settings():
    """Print effective pricing settings."""
    for key, value in sorted(settings_service.get_settings().items()):
        click.echo(f"{key:20} {value}")


@click.group('purchases')
def purchases_group():
    """Purchase ledger commands."""


@purchases_group.command('debts')
@with_appcontext
def debts_cli():
    """List outstanding supplier debt, largest first."""
    ctx = settings_service.get_pricing_context()
    debts = supplier_debts(persistence_service.load_purchases(), ctx.exchange_rate)
    if not debts:
        click.echo("No outstanding supplier debt.")
        return
    for row in debts:
        click.echo(f"{row['supplier_name']:30} {row['debt_usd']:>12.2f} USD  ({len(row['purchase_ids'])} purchases)")
    click.echo(f"{'TOTAL':30} {sum(r['debt_usd'] for r in debts):>12.2f} USD")


@purchases_group.command('migrate-legacy')
@click.option('--dry-run', is_flag=True, help='Report what would change without writing')
@with_appcontext
def migrate_legacy_cli(dry_run):
    """
    Bring pre-UZS data up to the current schema.

    - Legacy purchases get UZS totals and USD paid amounts at their own rate.
    - Stock rows without a warehouse are tagged main; a duplicate untagged row
      is merged into the main row at weighted-average cost.
    """
    ctx = settings_service.get_pricing_context()

    purchases = persistence_service.load_purchases()
    migrated = []
    for purchase in purchases:
        if not purchase.is_legacy:
            continue
        updated = migrate_legacy_purchase(purchase, ctx)
        if updated is not purchase:
            migrated.append(updated)
            click.echo(
                f"{purchase.id}: {purchase.total_invoice_amount:.2f} USD -> "
                f"{updated.total_invoice_amount_uzs:.0f} UZS @ {updated.exchange_rate} ({updated.payment_status})"
            )

    products = persistence_service.load_products()
    value_before = inventory_value(products)
    tagged, changed = tag_legacy_rows(products)

    if dry_run:
        click.echo(f"DRY RUN {len(migrated)} purchases and {changed} stock rows would change.")
        return

    if migrated:
        persistence_service.save_purchases(migrated)
    if changed:
        persistence_service.replace_products(tagged)
        click.echo(f"Inventory value {value_before:.2f} -> {inventory_value(tagged):.2f} USD")
    click.echo(f"PASS Migrated {len(migrated)} purchases, tagged {changed} stock rows.")


@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('check-consistency')
@with_appcontext
def check_consistency_cli():
    """
    Compare each stock row with the quantities received by purchases.

    Differences are expected for opening stock and sales; a row with more
    purchased than held and no sales points at a broken line edit.
    """
    problems = check_stock_consistency(
        persistence_service.load_products(),
        persistence_service.load_purchases(),
    )
    if not problems:
        click.echo("PASS Stock matches purchase history.")
        return
    for p in problems:
        click.echo(
            f"{p['product_id']:20} {p['warehouse']:6} expected={p['expected']:.3f} "
            f"actual={p['actual']:.3f} diff={p['difference']:+.3f}"
        )
    click.echo(f"WARN {len(problems)} stock rows differ from purchase history.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(purchases_group)
    app.cli.add_command(inventory_group)
