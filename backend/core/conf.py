from functools import lru_cache
from typing import Any, Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from backend.core.path_conf import BASE_PATH


class Settings(BaseSettings):
    """全局配置"""

    model_config = SettingsConfigDict(
        env_file=f'{BASE_PATH}/.env',
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=True,
    )

    # .env 当前环境
    ENVIRONMENT: Literal['dev', 'prod'] = 'dev'

    # FastAPI
    FASTAPI_API_V1_PATH: str = '/api/v1'
    FASTAPI_TITLE: str = 'SubscriptionBackend'
    FASTAPI_DESCRIPTION: str = 'Subscription lifecycle and billing backend'
    FASTAPI_DOCS_URL: str | None = '/docs'
    FASTAPI_REDOC_URL: str | None = '/redoc'
    FASTAPI_OPENAPI_URL: str | None = '/openapi'

    # .env 数据库
    DATABASE_HOST: str = '127.0.0.1'
    DATABASE_PORT: int = 5432
    DATABASE_USER: str = 'postgres'
    DATABASE_PASSWORD: str = ''

    # 数据库
    DATABASE_ECHO: bool | Literal['debug'] = False
    DATABASE_POOL_ECHO: bool | Literal['debug'] = False
    DATABASE_SCHEMA: str = 'subscription_backend'

    # .env Token
    TOKEN_SECRET_KEY: str = ''  # 密钥 secrets.token_urlsafe(32)

    # Token
    TOKEN_ALGORITHM: str = 'HS256'

    # CORS
    CORS_ALLOWED_ORIGINS: list[str] = [  # 末尾不带斜杠
        'http://localhost:5173',
        'http://localhost:5174',
        'http://localhost:3000',
    ]
    MIDDLEWARE_CORS: bool = True

    # 日志
    LOG_FORMAT: str = '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s'

    # 日志（控制台）
    LOG_STD_LEVEL: str = 'INFO'

    ##################################################
    # [ Module ] Billing - Payment provider
    ##################################################
    # 'live' uses the regular keys, 'test' uses only the *_TEST keys
    PAYMENT_MODE: Literal['live', 'test'] = 'live'

    STRIPE_SECRET_KEY: str = ''  # Stripe secret key (sk_...)
    STRIPE_SECRET_KEY_TEST: str = ''
    STRIPE_HOBBYIST_PRICE_ID: str = ''  # one-time payment price
    STRIPE_HOBBYIST_PRICE_ID_TEST: str = ''
    STRIPE_PRO_PRICE_ID: str = ''  # recurring price
    STRIPE_PRO_PRICE_ID_TEST: str = ''

    STRIPE_WEBHOOK_SECRET: str = ''  # Webhook signing secret (whsec_...)
    STRIPE_WEBHOOK_SECRET_TEST: str = ''
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300  # 5 分钟

    # Public site, used for checkout success/cancel redirects
    SITE_URL: str = 'http://localhost:5173'

    # Billing constants
    BILLING_FREE_GENERATION_GRANT: int = 3
    BILLING_HOBBYIST_GENERATION_GRANT: int = 20
    BILLING_PRO_PERIOD_DAYS: int = 30
    BILLING_RECOVERY_WINDOW_DAYS: int = 7
    BILLING_RECOVERY_SCAN_LIMIT: int = 500
    BILLING_CONFIG_CACHE_TTL_SECONDS: int = 300  # 5 分钟

    @model_validator(mode='before')
    @classmethod
    def check_env(cls, values: Any) -> Any:
        """检查环境变量"""
        if values.get('ENVIRONMENT') == 'prod':
            # FastAPI
            values['FASTAPI_OPENAPI_URL'] = None
            values['FASTAPI_DOCS_URL'] = None
            values['FASTAPI_REDOC_URL'] = None

        return values

    @property
    def DATABASE_URL(self) -> str:
        return (
            f'postgresql+asyncpg://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}'
            f'@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_SCHEMA}'
        )


@lru_cache
def get_settings() -> Settings:
    """获取全局配置单例"""
    return Settings()


# 创建全局配置实例
settings = get_settings()
