"""CLI 入口模块 - SupaCron Vault Operator 命令行接口。"""

import json
import sys

import click
from eth_account import Account

from supa_vault import __version__
from supa_vault.config import get_settings
from supa_vault.errors import ConfigurationError, ValidationError, VaultError, humanize_error
from supa_vault.payment.x402 import PaymentRequirements, sign_payment_header
from supa_vault.services import build_services
from supa_vault.utils.logging import get_logger, setup_logging


@click.group(invoke_without_command=True)
@click.option("--version", "-v", is_flag=True, help="显示版本号")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """SupaCron Vault Operator - 资金池锁仓、下单与平仓工作流。

    x402 支付校验 → AI 决策 → 交易所下单 → 合约锁仓 / 平仓 → 上报盈亏 → 解锁
    """
    if version:
        click.echo(f"supa-vault version {__version__}")
        return

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.option("--host", default=None, help="监听地址（默认读取配置）")
@click.option("--port", type=int, default=None, help="监听端口（默认读取配置）")
def serve(host: str | None, port: int | None) -> None:
    """启动 HTTP 服务。"""
    import uvicorn

    from supa_vault.api import create_app

    setup_logging()
    logger = get_logger("supa_vault.main")
    settings = get_settings()
    settings.ensure_directories()

    bind_host = host or settings.host
    bind_port = port or settings.port
    logger.info("starting_server", host=bind_host, port=bind_port)
    uvicorn.run(create_app(settings), host=bind_host, port=bind_port, log_config=None)


@cli.command()
@click.option("--payment-header", envvar="X_PAYMENT", default=None, help="Base64 X-Payment 头")
def lock(payment_header: str | None) -> None:
    """执行单次锁仓流程。

    未提供支付头时输出支付要求。
    """
    setup_logging()
    logger = get_logger("supa_vault.main")
    settings = get_settings()
    settings.ensure_directories()

    try:
        outcome = build_services(settings).lock.run(payment_header)
    except ValidationError as e:
        logger.error("lock_rejected", reason=e.reason)
        sys.exit(2)
    except VaultError as e:
        logger.error("lock_failed", error=humanize_error(e))
        sys.exit(1)

    if outcome.awaiting_payment:
        click.echo(json.dumps({"paymentRequirements": outcome.payment_requirements}, indent=2))
        return

    click.echo(
        json.dumps(
            {
                "message": outcome.message,
                "txHash": outcome.tx_hash,
                "aiAnalysis": outcome.ai_analysis,
                "orderResult": outcome.order_result,
                "warnings": outcome.warnings,
            },
            indent=2,
        )
    )


@cli.command()
def close() -> None:
    """平仓、上报盈亏并解锁资金池。"""
    setup_logging()
    logger = get_logger("supa_vault.main")
    settings = get_settings()
    settings.ensure_directories()

    try:
        outcome = build_services(settings).close.run()
    except VaultError as e:
        logger.error("close_failed", error=humanize_error(e))
        sys.exit(1)

    click.echo(
        json.dumps(
            {
                "message": outcome.message,
                "txHash": outcome.tx_hash,
                "pnl": outcome.pnl_cro,
                "pnlTxHash": outcome.pnl_tx_hash,
                "closeResult": outcome.close_result,
                "warnings": outcome.warnings,
            },
            indent=2,
        )
    )


@cli.command("sign-payment")
@click.option(
    "--payer-key",
    envvar="PAYER_PRIVATE_KEY",
    required=True,
    help="付款钱包私钥（用于手动测试）",
)
def sign_payment(payer_key: str) -> None:
    """生成 X-Payment 头（EIP-3009 授权签名）。"""
    settings = get_settings()
    if not settings.operator_private_key:
        raise click.ClickException(str(ConfigurationError("OPERATOR_PRIVATE_KEY is required")))

    pay_to = Account.from_key(settings.operator_private_key).address
    requirements = PaymentRequirements.from_settings(settings, pay_to)
    click.echo(sign_payment_header(payer_key, requirements, settings))


@cli.command()
def status() -> None:
    """显示系统状态和配置摘要。"""
    settings = get_settings()

    click.echo("=" * 50)
    click.echo("SupaCron Vault Operator - Status")
    click.echo("=" * 50)
    click.echo()

    # 交易所与 AI 配置状态
    click.echo("[API Configuration]")
    exchange_status = "[OK] Configured" if settings.has_exchange_credentials else "[--] Not configured"
    openrouter_status = "[OK] Configured" if settings.openrouter_api_key else "[--] Not configured"
    click.echo(f"   Crypto.com API: {exchange_status}")
    click.echo(f"   OpenRouter API: {openrouter_status}")
    click.echo(f"   Instrument: {settings.instrument_name}")
    click.echo(f"   LLM Model: {settings.openrouter_model}")
    click.echo()

    # 链上配置
    click.echo("[Chain]")
    click.echo(f"   RPC: {settings.rpc_url} (chain {settings.chain_id})")
    click.echo(f"   Pool contract: {settings.pool_contract_address}")
    operator = (
        Account.from_key(settings.operator_private_key).address
        if settings.operator_private_key
        else "[--] Not configured"
    )
    click.echo(f"   Operator wallet: {operator}")
    click.echo()

    # 支付参数
    click.echo("[x402 Payment]")
    click.echo(f"   Asset: {settings.wcro_address} ({settings.payment_token_name})")
    click.echo(f"   Amount: {settings.payment_amount_wei} wei")
    click.echo(f"   Timeout: {settings.payment_timeout_seconds}s")
    click.echo()

    # 日志配置
    click.echo("[Logging]")
    click.echo(f"   Log level: {settings.log_level}")
    click.echo(f"   Log format: {settings.log_format.value}")
    click.echo(f"   Journal dir: {settings.journal_dir}")
    click.echo()

    missing = settings.missing_for_operation()
    if missing:
        click.echo("[ERROR] Operator configuration incomplete, missing:")
        for key in missing:
            click.echo(f"   - {key}")
    else:
        click.echo("[OK] Operator configuration complete")

    click.echo()
    click.echo("=" * 50)


# 支持 python -m supa_vault.main 调用
if __name__ == "__main__":
    cli()
