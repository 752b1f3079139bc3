import asyncio
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

from momentum.app_config import effective_db_path, load_json_config, parse_app_config, resolve_runtime_env
from momentum.cloud.client import CloudConfig, CloudSyncClient
from momentum.engine import MomentumEngine
from momentum.logging_config import setup_logging
from momentum.memory import MemoryStore, SyncLedger
from momentum.shell import MomentumShell


async def main() -> None:
    load_dotenv()

    app = parse_app_config(load_json_config())
    env = resolve_runtime_env()

    db_path = Path(effective_db_path(app, env)).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers, log_dir=db_path.parent)

    store = MemoryStore(str(db_path), lock_timeout_seconds=app.lock_timeout_seconds)
    engine = MomentumEngine(
        store,
        default_max_tokens=app.default_max_tokens,
        injection_max_tokens=app.injection_max_tokens,
        search_max_results=app.search_max_results,
        cleanup_keep_recent=app.cleanup_keep_recent,
    )

    cloud: CloudSyncClient | None = None
    ledger: SyncLedger | None = None
    if app.cloud_sync_enabled:
        cloud_config = CloudConfig.from_env(env)
        if not cloud_config.enabled:
            logger.warning("CloudSyncEnabled is set but SUBSTRATIA_API_KEY is missing; sync disabled")
        cloud = CloudSyncClient(cloud_config)
        ledger = SyncLedger(store)

    project_path = os.getcwd()
    session_id = engine.find_session(project_path)

    shell = MomentumShell(
        engine,
        ledger=ledger,
        cloud=cloud,
        session_id=session_id,
        project_path=project_path,
        cloud_batch_size=app.cloud_batch_size,
    )

    print("momentum (type 'exit' to quit, '/help' for commands)")
    print(f"Database: {db_path}")
    if session_id:
        print(f"Resumed session for {project_path}: {session_id}")
    else:
        print("No session for this directory yet; one is created on the first /save.")
    if cloud is not None and cloud.enabled:
        print(f"Cloud sync: enabled ({env.api_url})")
    if log_descriptions:
        print(f"Logging: {', '.join(log_descriptions)}")
    print()

    try:
        while True:
            try:
                user_input = input("you> ")
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()

            if trimmed in ("exit", "quit"):
                break

            if not trimmed:
                continue

            try:
                if not await shell.run(trimmed):
                    print("momentum> Commands start with '/'. Try /help.")
            except Exception as ex:
                logger.error(f"Unhandled error: {ex}")
    finally:
        if cloud is not None:
            await cloud.aclose()
        store.close()


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    run()
