import asyncio
import sys

from dataclasses import dataclass
from typing import Annotated

import cappa
import granian

from cappa.output import error_format
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table
from rich.text import Text
from watchfiles import PythonFilter

from backend import __version__
from backend.core.conf import settings
from backend.database.db import create_tables
from backend.src.billing.shared.exceptions import BillingError
from backend.utils.console import console

output_help = '\nFor more information, try "[cyan]--help[/]"'


class CustomReloadFilter(PythonFilter):
    """Custom reload filter"""

    def __init__(self) -> None:
        super().__init__(extra_extensions=['.json', '.yaml', '.yml'])


async def init() -> None:
    panel_content = Text()
    panel_content.append('Database configuration', style='bold green')
    panel_content.append('\n\n  • Host: ')
    panel_content.append(f'{settings.DATABASE_HOST}:{settings.DATABASE_PORT}', style='yellow')
    panel_content.append('\n  • Database: ')
    panel_content.append(f'{settings.DATABASE_SCHEMA}', style='yellow')
    panel_content.append('\n\nBilling configuration', style='bold green')
    panel_content.append('\n\n  • Payment mode: ')
    panel_content.append(f'{settings.PAYMENT_MODE}', style='yellow')

    console.print(
        Panel(panel_content, title=f'subscription-backend v{__version__} initialization', border_style='cyan', padding=(1, 2))
    )
    ok = Prompt.ask('Create the billing tables that do not exist yet?', choices=['y', 'n'], default='n')

    if ok.lower() == 'y':
        console.print('Initializing...', style='white')
        try:
            console.print('Creating database tables', style='white')
            await create_tables()
            console.print('Initialization completed', style='green')
            console.print('\nTry [bold cyan]subscription-backend run[/bold cyan] to start the service')
        except Exception as e:
            raise cappa.Exit(f'Initialization failed: {e}', code=1)
    else:
        console.print('Initialization cancelled', style='yellow')


def run(host: str, port: int, reload: bool, workers: int) -> None:  # noqa: FBT001
    url = f'http://{host}:{port}'
    docs_url = url + (settings.FASTAPI_DOCS_URL or '')
    redoc_url = url + (settings.FASTAPI_REDOC_URL or '')
    openapi_url = url + (settings.FASTAPI_OPENAPI_URL or '')

    panel_content = Text()
    panel_content.append('Python version:', style='bold cyan')
    panel_content.append(f'{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}', style='white')

    panel_content.append('\nAPI request address: ', style='bold cyan')
    panel_content.append(f'{url}{settings.FASTAPI_API_V1_PATH}/billing', style='blue')

    panel_content.append('\n\nEnvironment mode: ', style='bold green')
    env_style = 'yellow' if settings.ENVIRONMENT == 'dev' else 'green'
    panel_content.append(f'{settings.ENVIRONMENT.upper()}', style=env_style)

    panel_content.append('\nPayment mode: ', style='bold green')
    mode_style = 'yellow' if settings.PAYMENT_MODE == 'test' else 'green'
    panel_content.append(f'{settings.PAYMENT_MODE.upper()}', style=mode_style)

    if settings.ENVIRONMENT == 'dev':
        panel_content.append(f'\n\n📖 Swagger docs: {docs_url}', style='bold magenta')
        panel_content.append(f'\n📚 Redoc docs: {redoc_url}', style='bold magenta')
        panel_content.append(f'\n📡 OpenAPI JSON: {openapi_url}', style='bold magenta')

    console.print(Panel(panel_content, title=f'subscription-backend v{__version__}', border_style='purple', padding=(1, 2)))
    granian.Granian(
        target='backend.main:app',
        interface='asgi',
        address=host,
        port=port,
        reload=not reload,
        reload_filter=CustomReloadFilter,
        workers=workers,
    ).serve()


async def recover_payment(payment_id: str) -> None:
    from backend.src.billing.container import get_billing_services

    try:
        result = await get_billing_services().recovery.recover_by_payment_id(payment_id)
    except BillingError as e:
        raise cappa.Exit(f'{e.code}: {e.message}', code=1)

    table = Table(show_header=True, header_style='bold magenta')
    table.add_column('Field', style='cyan', no_wrap=True)
    table.add_column('Value', style='green')
    for key, value in result.to_dict().items():
        table.add_row(key, '' if value is None else str(value))
    console.print(table)


async def show_plan(user_id: str) -> None:
    from backend.src.billing.container import get_billing_services

    try:
        data = await get_billing_services().subscription_service.list_active_plans(user_id)
    except BillingError as e:
        raise cappa.Exit(f'{e.code}: {e.message}', code=1)

    console.print(Text('Resolved plan: ', style='bold green'), Text(data['plan'], style='yellow'))
    if not data['plans']:
        console.print('No active subscriptions', style='dim')
        return

    table = Table(show_header=True, header_style='bold magenta')
    table.add_column('Subscription_ID', style='cyan', no_wrap=True)
    table.add_column('Plan', style='green', no_wrap=True)
    table.add_column('Period ends', style='yellow')
    for plan in data['plans']:
        table.add_row(plan['id'], plan['plan_name'], plan['period_ends_at'] or '-')
    console.print(table)


@cappa.command(help='Initialize subscription-backend database tables', default_long=True)
@dataclass
class Init:
    async def __call__(self) -> None:
        await init()


@cappa.command(help='Run API service', default_long=True)
@dataclass
class Run:
    host: Annotated[
        str,
        cappa.Arg(
            default='127.0.0.1',
            help='提供服务的主机 IP 地址，对于本地开发，请使用 `127.0.0.1`。'
            '要启用公共访问，例如在局域网中，请使用 `0.0.0.0`',
        ),
    ]
    port: Annotated[
        int,
        cappa.Arg(default=8000, help='提供服务的主机端口号'),
    ]
    no_reload: Annotated[
        bool,
        cappa.Arg(default=False, help='禁用在（代码）文件更改时自动重新加载服务器'),
    ]
    workers: Annotated[
        int,
        cappa.Arg(default=1, help='使用多个工作进程，必须与 `--no-reload` 同时使用'),
    ]

    def __call__(self) -> None:
        run(host=self.host, port=self.port, reload=self.no_reload, workers=self.workers)


@cappa.command(help='Recover a payment whose webhook was lost', default_long=True)
@dataclass
class Recover:
    payment_id: Annotated[
        str,
        cappa.Arg(help='Payment ID issued by the payment provider'),
    ]

    async def __call__(self) -> None:
        await recover_payment(self.payment_id)


@cappa.command(help='Show the active plans of a user', default_long=True)
@dataclass
class Plan:
    user_id: Annotated[
        str,
        cappa.Arg(help='User ID'),
    ]

    async def __call__(self) -> None:
        await show_plan(self.user_id)


@cappa.command(help='An efficient subscription-backend command line interface', default_long=True)
@dataclass
class BillingCli:
    subcmd: cappa.Subcommands[Init | Run | Recover | Plan | None] = None

    async def __call__(self) -> None:
        if self.subcmd is None:
            console.print(f'subscription-backend v{__version__}{output_help}')


def main() -> None:
    output = cappa.Output(error_format=f'{error_format}\n{output_help}')
    asyncio.run(cappa.invoke_async(BillingCli, version=__version__, output=output))
