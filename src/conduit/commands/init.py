"""conduit init — scaffold a conduit.yaml in the current directory."""

from __future__ import annotations

from pathlib import Path

import click

CONFIG_FILENAME = "conduit.yaml"

TEMPLATE_YAML = """\
# Conduit configuration
version: "1"

agent:
  # Agent CLI on your PATH. Invoked as `<command> -p <prompt> --output-format json`
  # per message, and `<command> --resume <id> --output-format stream-json`
  # for resumed sessions.
  command: claude
  # Extra arguments appended to every invocation.
  args: []
  # Seconds one message may take before the agent is stopped.
  timeout: 1800
  # Directory the agent works in (relative to this file). Default: CWD.
  # working_dir: ./project
  # Environment variables hidden from the agent so it uses its own login.
  stripped_env: [ANTHROPIC_API_KEY, OPENAI_API_KEY, GOOGLE_API_KEY]

# Resumed (streaming) sessions
# streaming:
#   terminate_grace: 5    # seconds between SIGTERM and SIGKILL on /stop
#   kill_grace: 3
#   max_line_bytes: 1048576

chat:
  # Channel id used by `conduit chat`
  channel: local
  # Longest single chat message; longer replies are split
  message_limit: 2000
"""


@click.command()
@click.option(
    "--force",
    is_flag=True,
    help="Overwrite existing conduit.yaml if it exists.",
)
def init(force: bool) -> None:
    """Scaffold a conduit.yaml in the current directory."""
    config_path = Path.cwd() / CONFIG_FILENAME

    if config_path.exists() and not force:
        raise click.ClickException(
            f"{CONFIG_FILENAME} already exists. Use --force to overwrite."
        )

    try:
        config_path.write_text(TEMPLATE_YAML, encoding="utf-8")
    except OSError as exc:
        raise click.ClickException(f"Cannot write {CONFIG_FILENAME}: {exc}") from exc
    click.echo(f"  Created {CONFIG_FILENAME}")

    click.echo()
    click.echo("Next steps:")
    click.echo(f"  1. Edit {CONFIG_FILENAME} to point at your agent CLI")
    click.echo("  2. Run `conduit chat` and type /start")
