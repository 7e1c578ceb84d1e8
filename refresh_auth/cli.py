"""
Command line for running the service and for development helpers.

.. code-block:: bash

   $ ACCESS_TOKEN_SECRET=... REFRESH_TOKEN_SECRET=... refresh-auth serve
   $ ACCESS_TOKEN_SECRET=... refresh-auth generate-token --user-id 1 \\
         --email jane@example.com --name Jane

Use the printed token in requests to protected routes with the header
``Authorization: Bearer [token]``.
"""

import click

from . import config
from .domain import Principal
from .exceptions import ConfigurationError
from .tokens import ACCESS, REFRESH, TokenCodec


@click.group()
def main() -> None:
    """Access/refresh token authentication service."""


@main.command()
@click.option('--host', default=config.HOST, show_default=True)
@click.option('--port', default=config.PORT, show_default=True, type=int)
def serve(host: str, port: int) -> None:
    """Run the API under uvicorn."""
    import uvicorn

    from .main import create_app

    uvicorn.run(create_app(), host=host, port=port)


@main.command('generate-token')
@click.option('--user-id', prompt='Numeric user ID', type=int)
@click.option('--email', prompt='Email address')
@click.option('--name', prompt='Name', default='Jane')
@click.option('--kind', type=click.Choice([ACCESS, REFRESH]), default=ACCESS,
              show_default=True)
def generate_token(user_id: int, email: str, name: str, kind: str) -> None:
    """Generate a token for dev/testing purposes."""
    try:
        if kind == ACCESS:
            codec = TokenCodec(ACCESS, config.ACCESS_TOKEN_SECRET,
                               config.ACCESS_TOKEN_EXPIRES)
            payload = Principal(id=user_id, email=email, name=name).model_dump()
        else:
            codec = TokenCodec(REFRESH, config.REFRESH_TOKEN_SECRET,
                               config.REFRESH_TOKEN_EXPIRES)
            payload = {'id': user_id}
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e
    click.echo(codec.issue(payload))


@main.command('add-user')
@click.option('--database-url', default=config.DATABASE_URL, required=True)
@click.option('--email', prompt='Email address')
@click.option('--name', prompt='Name')
@click.password_option()
def add_user(database_url: str, email: str, name: str, password: str) -> None:
    """Add a credential to the SQL user store."""
    from sqlalchemy import create_engine

    from .userstore import add_user as _add_user, create_tables

    engine = create_engine(database_url)
    create_tables(engine)
    principal = _add_user(engine, email, name, password)
    click.echo(f'Created user {principal.id} <{principal.email}>')


if __name__ == '__main__':
    main()
