"""
FleetWatch 命令行入口模块。

提供 CLI 命令：serve（运行 API 服务和周期任务）、tick（执行一轮广播和伸缩并输出 JSON）
和 check（验证配置）。
"""
import asyncio
import json
import logging
import sys

import click

from fleetwatch import __version__


@click.group(invoke_without_command=True)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx, verbose):
    """FleetWatch - 告警与自动伸缩控制循环。"""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if ctx.invoked_subcommand is None:
        click.echo(f"FleetWatch v{__version__}")
        click.echo("Use --help for available commands")


@cli.command()
@click.option("--host", default="0.0.0.0", help="Bind address")
@click.option("--port", default=8000, type=int, help="Bind port")
def serve(host, port):
    """运行 API 服务，并在后台启动周期任务。"""
    import uvicorn

    from fleetwatch.main import app

    logging.getLogger("fleetwatch").info(f"Starting FleetWatch v{__version__} on {host}:{port}")
    uvicorn.run(app, host=host, port=port)


async def _tick() -> dict:
    from fleetwatch.runtime import build_runtime

    rt = await build_runtime()
    try:
        broadcast = await rt.scheduler.run_once("broadcast")
        outcomes = await rt.scheduler.run_once("scaling")
    finally:
        await rt.close()

    result = {
        "broadcast": None,
        "scaling": [o.model_dump(mode="json") for o in outcomes or []],
    }
    if broadcast is not None:
        result["broadcast"] = {
            "metrics": broadcast["metrics"].model_dump(mode="json"),
            "costs": broadcast["costs"].model_dump(mode="json"),
            "active_alerts": [a.model_dump(mode="json") for a in broadcast["alerts"]],
            "new_alerts": [a.id for a in broadcast["new_alerts"]],
        }
    return result


@cli.command()
def tick():
    """执行一轮广播和伸缩评估，输出 JSON 结果。"""
    logger = logging.getLogger("fleetwatch")
    try:
        result = asyncio.run(_tick())
    except Exception:
        logger.exception("Tick failed")
        sys.exit(1)
    click.echo(json.dumps(result, indent=2, ensure_ascii=False))


@cli.command()
def check():
    """验证配置是否正确并输出生效配置。"""
    try:
        from fleetwatch.core.config import Settings

        cfg = Settings()
    except Exception as e:
        click.echo(f"❌ Config error: {e}", err=True)
        sys.exit(1)

    click.echo("✅ Config OK")
    click.echo(f"   Store: {cfg.store_backend} ({cfg.data_dir if cfg.store_backend == 'file' else cfg.redis_url})")
    click.echo(f"   Metric source: {cfg.metric_source}")
    click.echo(f"   Executor: {cfg.executor}")
    click.echo(f"   Broadcast: every {cfg.broadcast_interval}s (budget {cfg.broadcast_timeout}s)")
    click.echo(f"   Scaling: every {cfg.scaling_interval}s (budget {cfg.scaling_timeout}s)")
    click.echo(f"   Costs: every {cfg.cost_interval}s (budget {cfg.cost_timeout}s)")


def main():
    """CLI 入口函数。"""
    cli()


if __name__ == "__main__":
    main()
