"""dbcontext - Main entry point."""

import logging

import typer
from rich.console import Console

from .commands import context
from .commands.common import (
    TLS,
    Account,
    Authenticator,
    BaseDir,
    ConnectionContext,
    ConnectionName,
    CredentialsFile,
    Database,
    DatabaseType,
    Host,
    Password,
    Port,
    ProjectID,
    Role,
    SchemaOption,
    SSLMode,
    User,
    Warehouse,
    build_config,
)
from .config import settings
from .database import supported_database_types

app = typer.Typer(
    name="dbcontext",
    help="Generate a file-based context tree describing database schemas",
    add_completion=False,
)

app.command("test-connection")(context.test_connection)
app.command("databases")(context.databases)
app.command("schemas")(context.schemas)
app.command("tables")(context.tables)
app.command("columns")(context.columns)

console = Console()


@app.command()
def config():
    """Show current configuration."""
    console.print("[bold]Current Configuration[/bold]")
    console.print(f"  Base directory: {settings.base_dir}")
    console.print(f"  Sample rows: {settings.sample_row_limit}")
    console.print(f"  Connect timeout: {settings.connect_timeout}s")
    console.print(f"  Discovery timeout: {settings.discovery_timeout}s")
    console.print(f"  Table detail timeout: {settings.table_detail_timeout}s")
    console.print(f"  Column timeout: {settings.column_timeout}s")
    console.print(f"  SSO timeout: {settings.sso_timeout}s")
    console.print(f"  Log level: {settings.log_level}")
    console.print(f"  Supported types: {', '.join(supported_database_types())}")


@app.callback()
def main(
    ctx: typer.Context,
    connection: ConnectionName = "",
    database_type: DatabaseType = "",
    database: Database = "",
    host: Host = "",
    port: Port = 0,
    user: User = "",
    password: Password = "",
    ssl_mode: SSLMode = "",
    tls: TLS = "",
    account: Account = "",
    role: Role = "",
    warehouse: Warehouse = "",
    schema: SchemaOption = "",
    authenticator: Authenticator = "",
    project_id: ProjectID = "",
    credentials_file: CredentialsFile = "",
    base_dir: BaseDir = None,
):
    """
    dbcontext - Describe database schemas as YAML and XML files for LLM agents.

    Connection options go before the command name.

    Examples:

        dbcontext -c local -t sqlite -d ./app.db schemas

        dbcontext -c wh -t postgres --host db.internal -u reader -d analytics tables -s public

        dbcontext -c sf -t snowflake --account acme --authenticator externalbrowser databases
    """
    logging.basicConfig(level=settings.log_level.upper())
    config = None
    if database_type:
        config = build_config(
            database_type,
            database=database,
            host=host,
            port=port,
            user=user,
            password=password,
            ssl_mode=ssl_mode,
            tls=tls,
            account=account,
            role=role,
            warehouse=warehouse,
            schema=schema,
            authenticator=authenticator,
            project_id=project_id,
            credentials_file=credentials_file,
        )
    ctx.obj = ConnectionContext(connection=connection, config=config, base_dir=base_dir)


if __name__ == "__main__":
    app()
