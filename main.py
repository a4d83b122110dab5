import asyncio
import sys

from workflows.run_harvest import run_once, run_scheduled, setup_logging
from services.harvest.config import HarvestConfig


async def main(workflow_name: str):
    """Main entry point for running workflows with default configuration."""
    config = HarvestConfig.from_env()
    if workflow_name == "scheduler":
        await run_scheduled(config)
    elif workflow_name == "run":
        if not await run_once(config):
            sys.exit(1)
    else:
        print(f"Unknown workflow: {workflow_name}")
        sys.exit(1)


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python main.py <workflow_name>")
        sys.exit(1)

    setup_logging()
    workflow_name = sys.argv[1]
    asyncio.run(main(workflow_name))
