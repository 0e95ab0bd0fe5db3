"""Options and helpers shared by the context commands."""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import List, Optional, Tuple

import typer
from typing_extensions import Annotated
from rich.console import Console

from ..config import settings
from ..context import Options
from ..database.models import DatabaseConfig
from ..errors import ConfigurationError, DBContextError

logger = logging.getLogger(__name__)

console = Console()
err_console = Console(stderr=True)

ConnectionName = Annotated[str, typer.Option("--connection", "-c", help="Connection name used in the context tree")]
DatabaseType = Annotated[str, typer.Option("--type", "-t", help="postgres, redshift, snowflake, mysql, bigquery or sqlite")]
Database = Annotated[str, typer.Option("--database", "-d", help="Database name (SQLite: file path, BigQuery: project)")]
Host = Annotated[str, typer.Option("--host", help="Server host")]
Port = Annotated[int, typer.Option("--port", help="Server port (0 uses the backend default)")]
User = Annotated[str, typer.Option("--user", "-u", help="User name")]
Password = Annotated[str, typer.Option("--password", envvar="DBCONTEXT_PASSWORD", help="Password (or DBCONTEXT_PASSWORD env)")]
SSLMode = Annotated[str, typer.Option("--sslmode", help="Postgres/Redshift sslmode")]
TLS = Annotated[str, typer.Option("--tls", help="MySQL TLS: true, false, skip-verify or preferred")]
Account = Annotated[str, typer.Option("--account", help="Snowflake account")]
Role = Annotated[str, typer.Option("--role", help="Snowflake role")]
Warehouse = Annotated[str, typer.Option("--warehouse", help="Snowflake warehouse")]
SchemaOption = Annotated[str, typer.Option("--sf-schema", help="Snowflake session schema")]
Authenticator = Annotated[str, typer.Option("--authenticator", help="Snowflake authenticator: externalbrowser or snowflake")]
ProjectID = Annotated[str, typer.Option("--project-id", help="BigQuery project ID")]
CredentialsFile = Annotated[str, typer.Option("--credentials-file", help="BigQuery service account JSON file")]
BaseDir = Annotated[Optional[str], typer.Option("--base-dir", help="Context root directory (default from settings)")]
Schemas = Annotated[Optional[List[str]], typer.Option("--schema", "-s", help="Schema to include. Can be specified multiple times.")]
Tables = Annotated[Optional[List[str]], typer.Option("--table", help="Table to include as schema.table. Can be specified multiple times.")]


def build_config(
    database_type: str,
    database: str = "",
    host: str = "",
    port: int = 0,
    user: str = "",
    password: str = "",
    ssl_mode: str = "",
    tls: str = "",
    account: str = "",
    role: str = "",
    warehouse: str = "",
    schema: str = "",
    authenticator: str = "",
    project_id: str = "",
    credentials_file: str = "",
) -> DatabaseConfig:
    return DatabaseConfig(
        type=database_type.strip().lower(),
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


def build_options(connection: str, config: DatabaseConfig, base_dir: Optional[str] = None) -> Options:
    if not connection.strip():
        raise ConfigurationError("connection name is required")
    # SQLite's database field is a file path; its files live under the sentinel.
    database_name = "" if config.type == "sqlite" else config.database.strip()
    return Options(
        connection_name=connection.strip(),
        database_name=database_name,
        database_type=config.type,
        base_dir=base_dir or settings.base_dir,
    )


def connect_timeout_for(config: DatabaseConfig) -> float:
    """External-browser SSO gets the longer allowance for interactive consent."""
    if config.type == "snowflake" and config.uses_external_browser:
        return settings.sso_timeout
    return settings.connect_timeout


def announce_sso(config: DatabaseConfig):
    if config.type == "snowflake" and config.uses_external_browser:
        console.print("Opening browser for SSO authentication...")


def print_tick(elapsed: float):
    console.print(f"  Still discovering schemas... ({elapsed:.0f}s elapsed)")


@contextmanager
def handle_errors():
    """Turn dbcontext errors into a red message and a non-zero exit code."""
    try:
        yield
    except ConfigurationError as e:
        err_console.print(f"[red]Configuration error:[/red] {e.message}")
        raise typer.Exit(2)
    except DBContextError as e:
        logger.debug("Command failed: %s", e.to_dict())
        err_console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)
    except ImportError as e:
        err_console.print(f"[red]Missing driver:[/red] {e}")
        raise typer.Exit(1)


@dataclass
class ConnectionContext:
    """Connection flags collected by the top-level callback."""
    connection: str = ""
    config: Optional[DatabaseConfig] = None
    base_dir: Optional[str] = None

    def require(self) -> Tuple[DatabaseConfig, Options]:
        if self.config is None or not self.config.type:
            raise ConfigurationError("--type is required for this command")
        return self.config, build_options(self.connection, self.config, self.base_dir)


def connection_context(ctx: typer.Context) -> ConnectionContext:
    return ctx.obj if isinstance(ctx.obj, ConnectionContext) else ConnectionContext()
