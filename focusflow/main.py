"""FocusFlow command line entry point."""

from __future__ import annotations

import asyncio

import click

from focusflow.config import Settings, load_settings
from focusflow.core.agent import AgentState, TerminationReason
from focusflow.core.coach import CoachService
from focusflow.core.llm import list_available_providers
from focusflow.core.llm.types import Message
from focusflow.errors import FocusFlowError
from focusflow.utils.logging import get_logger, setup_logging

log = get_logger(__name__)

EXIT_WORDS = {"exit", "quit", ":q"}


def _print_trace(state: AgentState) -> None:
    for record in state.records:
        mark = "ok" if record.success else "failed"
        color = "cyan" if record.success else "yellow"
        click.secho(f"  [{record.tool_name}: {mark}] {record.user_text}", fg=color)
    if state.termination is TerminationReason.MAX_ITERATIONS_REACHED:
        click.secho("  (stopped after the tool-call limit)", fg="yellow")
    elif state.termination is TerminationReason.ERROR:
        click.secho(f"  (error: {state.error})", fg="red")


async def _chat(settings: Settings, stream: bool, message: str | None) -> None:
    coach = CoachService(settings)
    history: list[Message] = []
    log.info("chat_started", provider=coach.provider.name, model=coach.provider.model)

    def on_delta(delta: str) -> None:
        click.echo(delta, nl=False)

    try:
        while True:
            if message is not None:
                text = message
            else:
                text = await asyncio.to_thread(click.prompt, "you", prompt_suffix="> ")
            if text.strip().lower() in EXIT_WORDS:
                break

            state = await coach.chat(text, history, on_delta=on_delta if stream else None)
            if stream:
                click.echo()
            else:
                click.echo(state.final_text)
            _print_trace(state)
            # Keep only the user turn and the final answer between turns
            history.append(Message.user(text))
            if state.termination is TerminationReason.ANSWERED and state.messages:
                history.append(state.messages[-1])
            else:
                history.pop()

            if message is not None:
                break
    finally:
        await coach.close()


async def _models(settings: Settings) -> None:
    coach = CoachService(settings)
    try:
        for model in await coach.list_models():
            extra: list[str] = []
            if model.context_length:
                extra.append(f"ctx {model.context_length}")
            if model.description:
                extra.append(model.description)
            line = model.id
            if extra:
                line += f"  ({'; '.join(extra)})"
            click.echo(line)
    finally:
        await coach.close()


async def _health(settings: Settings, force: bool) -> bool:
    coach = CoachService(settings)
    try:
        status = await coach.health(force_refresh=force)
    finally:
        await coach.close()
    if status.healthy:
        click.secho(f"{status.provider}/{status.model}: healthy", fg="green")
    else:
        click.secho(f"{status.provider}/{status.model}: unhealthy ({status.error})", fg="red")
    return status.healthy


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML file")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, log_level: str | None) -> None:
    """FocusFlow, an AI focus coach."""
    settings = load_settings(config_path)
    if log_level:
        settings.log_level = log_level
    setup_logging(level=settings.log_level, json_output=settings.log_json)
    ctx.obj = settings


@cli.command()
@click.option("--stream", is_flag=True, help="Print the answer as it is generated")
@click.option("-m", "--message", default=None, help="Send one message and exit")
@click.pass_obj
def chat(settings: Settings, stream: bool, message: str | None) -> None:
    """Talk to the coach (tools act on in-memory state)."""
    try:
        asyncio.run(_chat(settings, stream, message))
    except FocusFlowError as e:
        raise click.ClickException(str(e)) from e


@cli.command()
def providers() -> None:
    """List supported providers."""
    for info in list_available_providers():
        status = "available" if info.available else f"unavailable: {info.unavailable_reason}"
        key = "api key" if info.requires_api_key else "no key"
        click.echo(f"{info.id:<12} {info.name} ({key}, {status})")
        click.echo(f"{'':<12} models: {', '.join(info.default_models)}")


@cli.command()
@click.pass_obj
def models(settings: Settings) -> None:
    """List models offered by the configured provider."""
    try:
        asyncio.run(_models(settings))
    except FocusFlowError as e:
        raise click.ClickException(str(e)) from e


@cli.command()
@click.option("--force", is_flag=True, help="Ignore the cached result")
@click.pass_obj
def health(settings: Settings, force: bool) -> None:
    """Check that the configured provider is reachable."""
    try:
        healthy = asyncio.run(_health(settings, force))
    except FocusFlowError as e:
        raise click.ClickException(str(e)) from e
    if not healthy:
        raise SystemExit(1)


if __name__ == "__main__":
    cli()
