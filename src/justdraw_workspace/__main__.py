import asyncio
import sys

from dotenv import load_dotenv
from loguru import logger

from justdraw_workspace.app_config import load_json_config, parse_app_config, resolve_runtime_env
from justdraw_workspace.bootstrap import bootstrap_runtime
from justdraw_workspace.workspace_shell import WorkspaceShell


async def main() -> None:
    load_dotenv()

    app = parse_app_config(load_json_config())
    env = resolve_runtime_env(app.reply_provider)
    if env.provider_env_var and not env.provider_api_key:
        print(f"{env.provider_env_var} environment variable is required for ReplyProvider={app.reply_provider!r}.")
        sys.exit(1)

    runtime = bootstrap_runtime(app, env)
    shell = WorkspaceShell(runtime.session, runtime.canvas, runtime.agents, runtime.catalog)

    print("justdraw-workspace (type 'exit' to quit, '/help' for commands)")
    print(f"Agent: {runtime.session.active_agent_id or '-'} | Model: {runtime.catalog.active_model_name}")
    print(f"Replies: {app.reply_provider} | Recordings kept: {runtime.session.archive.capacity}")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()

    try:
        while True:
            try:
                # Read off-loop so replay steps keep firing while the prompt waits.
                user_input = await asyncio.to_thread(input, "you> ")
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()
            if trimmed in ("exit", "quit"):
                break
            if not trimmed:
                continue

            try:
                await shell.handle(trimmed)
            except Exception as ex:
                logger.error(f"Unhandled error: {ex}")
    finally:
        runtime.session.stop_replay()
        runtime.session.stop_recording()
        runtime.storage.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
