#!/usr/bin/env python3
# ============================================================
# asqli - AI-assisted SQL terminal client
# main.py - Application Entry Point
# ============================================================
#
# Usage:
#   asqli                                   → Launch the TUI
#   asqli --dbtype sqlite --file app.db     → Query a SQLite file
#   asqli --provider ollama --model qwen3   → Use a local model
#   asqli version                           → Show configuration
#   asqli inspect                           → Print the database schema
#
# Every option falls back to the ASQLI_* settings (.env supported).
# ============================================================

import sys
from typing import Any, Dict, Optional

import click
from loguru import logger

from config import AIConfig, DatabaseConfig, TimeoutConfig, ai_config, app_config, db_config, timeout_config
from utils.helpers import mask_secret
from utils.logger import setup_logger


def _overrides(**values: Any) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


@click.group(invoke_without_command=True)
@click.option("--provider", help="AI provider: openai, claude, gemini, ollama.")
@click.option("--model", help="Model name (auto-detected for ollama).")
@click.option("--dbtype", help="Database type: postgres, mysql, sqlite.")
@click.option("--connection", help="Connection string (DSN, URL or SQLite path).")
@click.option("--host", help="Database host.")
@click.option("--port", type=int, help="Database port.")
@click.option("--user", help="Database user.")
@click.option("--password", help="Database password.")
@click.option("--db", "dbname", help="Database name.")
@click.option("--sslmode", help="PostgreSQL SSL mode.")
@click.option("--file", "db_file", help="SQLite database file.")
@click.option("--timeout-connection", type=float, help="Connection timeout in seconds.")
@click.option("--timeout-query", type=float, help="Query timeout in seconds.")
@click.option("--timeout-schema", type=float, help="Schema fetch timeout in seconds.")
@click.option("--timeout-ai", type=float, help="AI generation timeout in seconds.")
@click.option("--history-file", help="Prompt history file.")
@click.option("--log-level", help="Log level for the log file.")
@click.pass_context
def cli(ctx, provider, model, dbtype, connection, host, port, user, password, dbname, sslmode, db_file,
        timeout_connection, timeout_query, timeout_schema, timeout_ai, history_file, log_level):
    """asqli - ask your database questions in plain English."""
    ctx.ensure_object(dict)
    ctx.obj["db"] = db_config.model_copy(update=_overrides(
        driver=dbtype, connection=connection, host=host, port=port, user=user,
        password=password, name=dbname, sslmode=sslmode, file=db_file,
    ))
    ctx.obj["ai"] = ai_config.model_copy(update=_overrides(provider=provider, model=model))
    ctx.obj["timeouts"] = timeout_config.model_copy(update=_overrides(
        connection=timeout_connection, query=timeout_query,
        schema_fetch=timeout_schema, ai_generation=timeout_ai,
    ))
    ctx.obj["app"] = app_config.model_copy(update=_overrides(history_file=history_file, log_level=log_level))

    if ctx.invoked_subcommand is None:
        launch_tui(ctx.obj["db"], ctx.obj["ai"], ctx.obj["timeouts"], ctx.obj["app"])


@cli.command()
@click.pass_context
def version(ctx):
    """Display version and configuration info."""
    show_version(ctx.obj["db"], ctx.obj["ai"], ctx.obj["timeouts"], ctx.obj["app"])


@cli.command()
@click.pass_context
def inspect(ctx):
    """Connect to the database and print its schema."""
    run_inspect(ctx.obj["db"], ctx.obj["timeouts"], ctx.obj["app"])


# ── Launch Functions ──────────────────────────────────────────

def launch_tui(db: DatabaseConfig, ai: AIConfig, timeouts: TimeoutConfig, app_settings=app_config):
    """Start the Textual application and report a fatal startup error afterwards."""
    setup_logger(app_settings.log_file, app_settings.log_level)
    logger.info(f"Starting {app_settings.name} v{app_settings.version}")

    from core.adapters import build_adapter_registry
    from core.dispatcher import CommandDispatcher
    from core.history import PromptHistory
    from core.providers import build_provider_registry
    from core.session import Session
    from ui.tui import AsqliApp

    session = Session(
        db_config=db,
        ai_config=ai,
        timeouts=timeouts,
        adapters=build_adapter_registry(),
        providers=build_provider_registry(),
        history=PromptHistory(app_settings.history_path),
        max_query_history=app_settings.max_query_history,
        max_column_width=app_settings.max_column_width,
    )
    app = AsqliApp(session, CommandDispatcher())
    app.run()

    if session.fatal_error is not None:
        click.echo(f"❌ {session.fatal_error}", err=True)
        sys.exit(1)
    sys.exit(app.return_code or 0)


def show_version(db: DatabaseConfig, ai: AIConfig, timeouts: TimeoutConfig, app_settings=app_config):
    """Display version and configuration info."""
    from core.adapters import build_adapter_registry
    from core.providers import build_provider_registry

    click.echo(f"""
{app_settings.name} v{app_settings.version}

  Database   : {db.driver_type} {db.describe()}
  AI         : {ai.provider} ({ai.model or 'default model'})
  API key    : {mask_secret(ai.resolved_api_key())}
  Supported  : {', '.join(build_adapter_registry().drivers())} | {', '.join(build_provider_registry().providers())}
  Timeouts   : connect {timeouts.connection:g}s, query {timeouts.query:g}s, schema {timeouts.schema_fetch:g}s, AI {timeouts.ai_generation:g}s
  History    : {app_settings.history_path}
  Log file   : {app_settings.log_file}
""")


def run_inspect(db: DatabaseConfig, timeouts: TimeoutConfig, app_settings=app_config):
    """Inspect and print a database schema."""
    setup_logger(app_settings.log_file, "WARNING")

    from core.adapters import build_adapter_registry
    from core.database import open_connection
    from core.errors import AsqliError

    connection: Optional[Any] = None
    try:
        connection = open_connection(db, build_adapter_registry(), timeouts.connection)
        click.echo(f"\nInspecting {db.driver_type} database: {db.describe()}\n")
        click.echo(connection.schema())
    except AsqliError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)
    finally:
        if connection is not None:
            connection.close()


# ── Entry Point ───────────────────────────────────────────────

if __name__ == "__main__":
    cli()
