"""
Flask CLI commands for database setup and catalog seeding.

Commands:
- flask init-db: Create all tables
- flask create-product: Create a product, optionally with categories
"""

import click
from salesdesk.database import create_all, get_session
from salesdesk.exceptions import SalesDeskError
from salesdesk.services import catalog_service


def _parse_category(value):
    """Parse 'name:quantity:price' into a category dict."""
    parts = value.split(':')
    if len(parts) != 3:
        raise click.BadParameter(f"Category must be 'name:quantity:price', got '{value}'")
    name, quantity, price = parts
    try:
        return {'name': name.strip(), 'quantity': int(quantity), 'price': price}
    except ValueError:
        raise click.BadParameter(f"Category quantity must be an integer, got '{quantity}'")


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create database tables."""
        create_all()
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('create-product')
    @click.option('--name', prompt=True, help='Product name')
    @click.option('--price', prompt=True, type=click.FLOAT, help='Unit price')
    @click.option('--stock', default=0, type=click.INT, show_default=True, help='Overall stock')
    @click.option('--code', 'product_code', default=None, help='External product code')
    @click.option('--category', 'categories', multiple=True, help="Sub-category as 'name:quantity:price'")
    def create_product_command(name, price, stock, product_code, categories):
        """Create a product in the catalog."""
        session = get_session()
        try:
            product = catalog_service.create_product(
                session,
                name=name,
                price=price,
                stock=stock,
                product_code=product_code,
                categories=[_parse_category(c) for c in categories],
            )
        except SalesDeskError as e:
            click.echo(click.style(f'Error creating product: {e.message}', fg='red'))
            return

        click.echo(click.style(f'\nProduct created: {product.name} (ID {product.id})', fg='green', bold=True))
        click.echo(f'   Stock: {product.stock}')
        for category in product.categories:
            click.echo(f'   - {category.name} (ID {category.id}): {category.quantity} @ {category.price}')
