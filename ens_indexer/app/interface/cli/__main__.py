import asyncio
import inspect
import logging

import typer
from dotenv import load_dotenv
from InquirerPy import inquirer

load_dotenv()

from ens_indexer.app.config import settings  # noqa: E402
from ens_indexer.app.infrastructure.factories.scanner_factory import SCANNER_NAMES  # noqa: E402
from ens_indexer.app.interface.tasks import TASKS, run_indexer_task  # noqa: E402

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)

app = typer.Typer()
indexer_app = typer.Typer(help="cli for indexing ENS names.")
app.add_typer(indexer_app, name="indexer")


def _optional_int(message: str) -> int | None:
    value = inquirer.text(message=message, default="").execute()
    return int(value) if value.strip() else None


@indexer_app.command("run")
def run() -> None:
    """Start the scanners and the marketplace stream; stop with Ctrl+C."""
    asyncio.run(run_indexer_task())


@indexer_app.command("task")
def task() -> None:
    """Run one maintenance task."""
    task_name = inquirer.select(
        message="Select task:",
        choices=list(TASKS.keys()),
        pointer="❯",
        instruction="Use ↑/↓ to move, Enter to select",
    ).execute()

    task_fn = TASKS[task_name]
    params = inspect.signature(task_fn).parameters
    kwargs: dict[str, object] = {}

    if "contract" in params:
        kwargs["contract"] = inquirer.select(
            message="Contract:",
            choices=list(SCANNER_NAMES),
        ).execute()
    if "from_block" in params:
        kwargs["from_block"] = int(inquirer.text(message="From block (inclusive):").execute())
    if "to_block" in params:
        kwargs["to_block"] = int(inquirer.text(message="To block (inclusive):").execute())
    if "batch_size" in params:
        kwargs["batch_size"] = int(inquirer.text(message="Batch size:", default="100").execute())
    if "limit" in params:
        kwargs["limit"] = _optional_int("Limit (optional, empty = no limit):")
    if "delay_seconds" in params:
        kwargs["delay_seconds"] = float(
            inquirer.text(message="Delay between batches (seconds):", default="1").execute()
        )

    asyncio.run(task_fn(**kwargs))  # type: ignore


if __name__ == "__main__":
    typer.echo("--- ENS Indexer CLI ---")
    app()
