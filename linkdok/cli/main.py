#!/usr/bin/env python3
"""
LinkDok - AI tutor for your saved links
Main CLI entry point
"""

import click
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional, Tuple, List, Dict, Any
from rich.console import Console
from rich.table import Table

from linkdok.api.client import APIClient
from linkdok.core.exceptions import LinkDokError, RateLimitedError
from linkdok.utils.config import get_config_value
from linkdok.utils.logger import get_logger, setup_logging

console = Console()
logger = get_logger(__name__)

DEFAULT_API_URL = 'http://localhost:8000'


@click.group()
@click.version_option(version='1.0.0')
@click.option('--verbose', '-v', is_flag=True, help='Show debug logging')
def cli(verbose: bool):
    """LinkDok - ask an AI tutor about the links you have collected"""
    # console only; the server owns the log file
    setup_logging(level='DEBUG' if verbose else 'WARNING', log_file='')


def load_resources(paths: Tuple[str, ...]) -> List[Dict[str, Any]]:
    """Read local text files as tutor resources."""
    resources = []
    for path in paths:
        text = Path(path).read_text(encoding='utf-8', errors='replace')
        resources.append({'url': Path(path).resolve().as_uri(), 'extractedText': text, 'success': True})
        logger.debug(f"Loaded {len(text)} chars from {path}")
    return resources


@cli.command()
@click.argument('question', required=True)
@click.option('--model', '-m', default='auto', help='Model id, or "auto" to route by intent')
@click.option('--thinking', default='auto', type=click.Choice(['auto', 'on', 'off']),
              help='Thinking mode')
@click.option('--playground', is_flag=True, help='General assistant, no study materials')
@click.option('--resource', '-r', 'resources', multiple=True, type=click.Path(exists=True, dir_okay=False),
              help='Text file to use as study material (repeatable)')
@click.option('--show-reasoning', is_flag=True, help='Print reasoning tokens as they arrive')
@click.option('--format', 'output_format', default='text', type=click.Choice(['text', 'json']))
@click.option('--api-url', default=DEFAULT_API_URL, help='API server URL')
def ask(question: str, model: str, thinking: str, playground: bool, resources: Tuple[str, ...],
        show_reasoning: bool, output_format: str, api_url: str):
    """
    Ask the tutor a question

    Examples:
        linkdok ask "Explain closures" -r notes.txt
        linkdok ask "Write a quicksort in Python" --playground --model devstral
    """
    try:
        options = dict(
            resources=load_resources(resources),
            model=model,
            thinking_mode=thinking,
            playground=playground,
        )
        if output_format == 'json':
            result = asyncio.run(fetch_answer(question, api_url, options))
            console.print_json(json.dumps(result))
        else:
            asyncio.run(stream_answer(question, api_url, options, show_reasoning))
    except RateLimitedError as e:
        console.print(f"⏳ Rate limited, try again in {e.retry_after}s", style="yellow")
        sys.exit(2)
    except LinkDokError as e:
        console.print(f"❌ Error: {str(e)}", style="red")
        sys.exit(1)


async def fetch_answer(question: str, api_url: str, options: Dict[str, Any]) -> Dict[str, Any]:
    async with APIClient(base_url=api_url) as client:
        return await client.ask(question, **options)


async def stream_answer(question: str, api_url: str, options: Dict[str, Any],
                        show_reasoning: bool) -> None:
    """Print tokens as they stream in, then a footer with the model used."""
    async with APIClient(base_url=api_url) as client:
        async for event in client.stream_ask(question, **options):
            kind = event.get('type')
            if kind == 'token':
                console.print(event.get('content', ''), end='', markup=False, highlight=False)
            elif kind == 'reasoning' and show_reasoning:
                console.print(event.get('content', ''), end='', style='dim', markup=False, highlight=False)
            elif kind == 'result':
                console.print()
                if not event.get('modelUsed'):
                    console.print(event.get('answer', ''), markup=False)
                footer = [f"model: {event.get('modelUsed') or '-'}", f"intent: {event.get('intent') or '-'}"]
                if event.get('usedThinking'):
                    footer.append('thinking')
                if event.get('basedOnResources'):
                    footer.append('based on your resources')
                console.print(' | '.join(footer), style='dim')
            elif kind == 'error':
                console.print()
                if event.get('rateLimited'):
                    raise RateLimitedError(event.get('retryAfter', 60))
                raise LinkDokError(event.get('error', 'Unknown error'))


@cli.command()
@click.option('--api-url', default=DEFAULT_API_URL, help='API server URL')
def models(api_url: str):
    """List the available models"""

    async def fetch():
        async with APIClient(base_url=api_url) as client:
            return await client.models()

    try:
        catalogue = asyncio.run(fetch())
    except LinkDokError as e:
        console.print(f"❌ Error: {str(e)}", style="red")
        sys.exit(1)

    table = Table(title="Models")
    table.add_column("ID", style="cyan")
    table.add_column("Label")
    table.add_column("Thinking", justify="center")
    table.add_column("Description", style="dim")
    for entry in catalogue:
        table.add_row(
            entry['id'],
            entry['label'],
            "✓" if entry.get('supportsThinking') else "",
            entry.get('description', ''),
        )
    console.print(table)


@cli.command()
@click.option('--host', default=None, help='Bind address')
@click.option('--port', default=None, type=int, help='Port')
@click.option('--reload', is_flag=True, help='Reload on code changes')
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run the API server"""
    import uvicorn

    uvicorn.run(
        "linkdok.api.main:app",
        host=host or get_config_value('api.host', '0.0.0.0'),
        port=port or get_config_value('api.port', 8000),
        reload=reload,
        log_level="info",
    )


if __name__ == '__main__':
    cli()
