"""配置加载模块 - 从环境变量和 .env 文件加载配置。"""

from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Cronos 测试网 WCRO 合约地址
WCRO_TESTNET_ADDRESS = "0x5C7F8A570d578ED84E63fdFA7b1eE72dEae1AE23"
SUPA_CP_TESTNET_ADDRESS = "0x0bF43245Af14F96033C81449ea867FF94039d196"


class LogFormat(str, Enum):
    """日志格式枚举。"""

    JSON = "json"
    CONSOLE = "console"


class Settings(BaseSettings):
    """系统配置设置。

    从环境变量和 .env 文件加载配置。各组件通过构造函数显式接收该对象。
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==================== Crypto.com Exchange ====================
    cryptocom_api_key: str = Field(default="", description="Crypto.com API Key")
    cryptocom_api_secret: str = Field(default="", description="Crypto.com API Secret")
    cryptocom_base_url: str = Field(
        default="https://api.crypto.com/exchange/v1",
        description="Crypto.com Exchange REST 根地址",
    )
    instrument_name: str = Field(default="CROUSD-PERP", description="交易合约名称")

    # ==================== 链上合约 ====================
    rpc_url: str = Field(default="https://evm-t3.cronos.org", description="Cronos RPC 地址")
    chain_id: int = Field(default=338, description="链 ID")
    pool_contract_address: str = Field(
        default=SUPA_CP_TESTNET_ADDRESS,
        description="SupaCapitalPool 合约地址",
    )
    operator_private_key: str = Field(default="", description="Operator 钱包私钥")
    tx_receipt_timeout: int = Field(
        default=120,
        ge=10,
        le=600,
        description="等待交易回执超时（秒）",
    )

    # ==================== x402 支付 ====================
    wcro_address: str = Field(default=WCRO_TESTNET_ADDRESS, description="支付资产地址")
    payment_token_name: str = Field(default="Wrapped CRO", description="EIP-712 域名称")
    payment_token_version: str = Field(default="1", description="EIP-712 域版本")
    payment_network: str = Field(default="cronos-testnet", description="支付网络")
    payment_scheme: str = Field(default="exact", description="支付方案")
    payment_amount_wei: str = Field(
        default="1000000000000000000",
        pattern=r"^[0-9]+$",
        description="每次锁仓收取的费用（最小单位）",
    )
    payment_timeout_seconds: int = Field(default=300, ge=30, le=86400, description="授权有效期（秒）")
    payment_description: str = Field(
        default="AI Analysis & Pool Lock Fee",
        description="支付说明",
    )

    # ==================== OpenRouter API ====================
    openrouter_api_key: str = Field(default="", description="OpenRouter API Key")
    openrouter_model: str = Field(
        default="google/gemini-2.0-flash-001",
        description="OpenRouter 模型名称",
    )
    openrouter_timeout: int = Field(default=30, ge=1, le=120, description="LLM 调用超时（秒）")

    # ==================== 价格与网络 ====================
    fallback_cro_price: float = Field(
        default=0.1,
        gt=0.0,
        description="价格源不可用时使用的 CRO/USD 静态价格",
    )
    http_timeout: float = Field(default=15.0, ge=1.0, le=60.0, description="HTTP 调用超时（秒）")

    # ==================== 日志配置 ====================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="日志级别",
    )
    log_format: LogFormat = Field(
        default=LogFormat.CONSOLE,
        description="日志输出格式",
    )

    # ==================== 数据存储 ====================
    journal_dir: Path = Field(
        default=Path("data/journal"),
        description="活动记录存储目录",
    )

    # ==================== 服务 ====================
    host: str = Field(default="127.0.0.1", description="HTTP 服务监听地址")
    port: int = Field(default=8000, ge=1, le=65535, description="HTTP 服务端口")

    @field_validator("journal_dir", mode="before")
    @classmethod
    def parse_journal_dir(cls, v: str | Path) -> Path:
        """将字符串转换为 Path 对象。"""
        return Path(v) if isinstance(v, str) else v

    def ensure_directories(self) -> None:
        """确保必要的目录存在。"""
        self.journal_dir.mkdir(parents=True, exist_ok=True)

    @property
    def has_exchange_credentials(self) -> bool:
        """是否配置了交易所密钥。"""
        return bool(self.cryptocom_api_key and self.cryptocom_api_secret)

    def missing_for_operation(self) -> list[str]:
        """验证 operator 工作流的必要配置，返回缺失项列表。"""
        missing = []
        if not self.operator_private_key:
            missing.append("OPERATOR_PRIVATE_KEY")
        if not self.pool_contract_address:
            missing.append("POOL_CONTRACT_ADDRESS")
        if not self.cryptocom_api_key:
            missing.append("CRYPTOCOM_API_KEY")
        if not self.cryptocom_api_secret:
            missing.append("CRYPTOCOM_API_SECRET")
        if not self.openrouter_api_key:
            missing.append("OPENROUTER_API_KEY")
        return missing


# 全局配置实例（延迟初始化，仅供 CLI / 服务入口使用）
_settings: Settings | None = None


def get_settings() -> Settings:
    """获取全局配置实例。"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
