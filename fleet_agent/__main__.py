"""
Fleet Agent 主程序入口

使用方式:
    fleet-agent                      启动 Agent
    fleet-agent --status             查看注册状态
    fleet-agent --config             查看当前配置
    fleet-agent --config-file PATH   指定配置文件
    或
    python -m fleet_agent
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import typer
import yaml
from pydantic import ValidationError

from . import __version__
from .agent import FleetAgent
from .client import CollectorClient
from .config import AgentConfig, load_config, resolve_config_path
from .errors import ReconnectFailed, RegistrationError

logger = logging.getLogger(__name__)

app = typer.Typer(
    add_completion=False,
    help="fleet-agent: 向 Fleet Collector 上报心跳、错误和应用清单",
)


def setup_logging(config: AgentConfig):
    """配置日志"""
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    # 如果配置了文件日志
    if config.log_file:
        log_path = Path(config.log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(str(log_path), encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(log_format))
        logging.getLogger().addHandler(file_handler)

    # 降低第三方库日志级别
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


async def run_agent(config: AgentConfig, config_path: Optional[str] = None) -> FleetAgent:
    """运行 Agent 直到停止，返回 Agent 以便读取停止原因"""
    async with CollectorClient(
        config.server_url,
        api_key=config.api_key,
        timeout=config.request_timeout,
    ) as client:
        agent = FleetAgent(config, client=client, config_path=config_path)
        await agent.run()
        return agent


@app.command()
def main(
    status: bool = typer.Option(False, "--status", help="显示注册状态后退出"),
    show_config: bool = typer.Option(False, "--config", help="显示当前生效的配置后退出"),
    stop: bool = typer.Option(False, "--stop", help="停止说明（前台运行时使用 Ctrl-C）"),
    config_file: Optional[str] = typer.Option(None, "--config-file", help="配置文件路径"),
) -> None:
    """启动 Fleet Agent"""
    try:
        config = load_config(config_file)
    except (ValidationError, yaml.YAMLError, OSError) as e:
        typer.echo(f"Error: invalid config: {e}", err=True)
        raise typer.Exit(1)

    path = resolve_config_path(config_file)

    if status:
        typer.echo(f"fleet-agent v{__version__}")
        typer.echo(f"config={path}")
        typer.echo(f"server_url={config.server_url}")
        typer.echo(f"pc_name={config.pc_name}")
        if config.registered:
            typer.echo(f"registered=yes pc_id={config.pc_id}")
        else:
            typer.echo("registered=no")
        return

    if show_config:
        data = config.model_dump()
        if data.get("api_key"):
            data["api_key"] = data["api_key"][:8] + "..."
        typer.echo(yaml.safe_dump(data, allow_unicode=True, sort_keys=False))
        return

    if stop:
        typer.echo("fleet-agent runs in the foreground; stop it with Ctrl-C or your service manager.")
        return

    setup_logging(config)
    logger.info(f"Fleet Agent v{__version__} starting, collector={config.server_url}")

    try:
        agent = asyncio.run(run_agent(config, config_file))
    except KeyboardInterrupt:
        typer.echo("\nShutdown requested, exiting...")
        raise typer.Exit(0)
    except (ReconnectFailed, RegistrationError) as e:
        logger.error(str(e))
        raise typer.Exit(1)

    if agent.stopped:
        logger.error(f"Agent stopped: {agent.stop_reason}")
        raise typer.Exit(1)


def cli():
    """命令行入口"""
    app()


if __name__ == "__main__":
    cli()
