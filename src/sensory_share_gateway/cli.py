import asyncio
import typer
import logging
import sys
from typing import Optional

if sys.platform == "win32":
    # asyncpg не работает с ProactorEventLoop по умолчанию в Windows
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from rich.console import Console
from sqlalchemy.ext.asyncio import create_async_engine

from sensory_share_gateway.config import get_settings
from sensory_share_gateway import create_gateway
from sensory_share_gateway.db import Base, StorageConfigORM
from sensory_share_gateway.exceptions import GatewayError
from sensory_share_gateway.models import ProviderType
from sensory_share_gateway.utils.crypto import SecretCipher


app = typer.Typer(help="CLI for sensory-share-gateway management.")
logger = logging.getLogger(__name__)
console = Console(stderr=True)


@app.command()
def init():
    """
    Creates the metadata tables in PostgreSQL.
    """
    console.rule("[bold cyan]Service Initialization[/bold cyan]")

    with console.status("Creating PostgreSQL tables...", spinner="dots"):
        async def _create_tables():
            settings = get_settings()
            engine = create_async_engine(settings.postgres.get_pg_dsn())
            try:
                async with engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)
            finally:
                await engine.dispose()

        try:
            asyncio.run(_create_tables())
        except Exception as e:
            console.log(f"[bold red]✖[/bold red] Database initialization FAILED: {e}")
            raise typer.Exit(code=1)

    console.log("[bold green]✔[/bold green] Database tables created successfully.")
    console.print("\n[bold green]✅ Service initialized successfully![/bold green]")


@app.command()
def check():
    """Checks connectivity to PostgreSQL and to the bucket of every storage configuration."""
    console.rule("[bold cyan]Connection Check[/bold cyan]")

    async def _check() -> bool:
        gateway = create_gateway()
        try:
            statuses = await gateway.check_connections()
        finally:
            await gateway.aclose()

        healthy = True
        for name, state in statuses.items():
            label = "PostgreSQL" if name == "postgres" else f"Storage '{name[3:]}'"
            if state == "ok":
                console.print(f"[bold green]✔[/bold green] {label} connection: OK")
            else:
                healthy = False
                console.print(f"[bold red]✖[/bold red] {label} connection: FAILED ({state})")
        return healthy

    try:
        healthy = asyncio.run(_check())
    except GatewayError as e:
        console.print(f"[bold red]✖[/bold red] {e}")
        raise typer.Exit(code=1)
    if not healthy:
        raise typer.Exit(code=1)


@app.command("add-storage")
def add_storage(
    name: str = typer.Option(..., help="Display name of the configuration."),
    endpoint: str = typer.Option(..., help="S3 endpoint URL, e.g. https://s3.example.com"),
    bucket: str = typer.Option(..., help="Bucket name."),
    access_key: str = typer.Option(..., help="Access key id."),
    secret_key: str = typer.Option(..., prompt=True, hide_input=True, help="Secret access key."),
    provider: str = typer.Option(ProviderType.OTHER.value, help="Provider type, e.g. 'Backblaze B2'."),
    region: Optional[str] = typer.Option(None),
    admin_id: Optional[str] = typer.Option(None, help="Owning administrator id."),
    default_folder: str = typer.Option("", help="Prefix for every uploaded key."),
    path_style: bool = typer.Option(False, "--path-style"),
    public: bool = typer.Option(False, "--public", help="Allow API keys to use this configuration."),
    default: bool = typer.Option(False, "--default"),
    total_bytes: Optional[int] = typer.Option(None, help="Capacity ceiling in bytes."),
):
    """Registers an S3 storage configuration; the secret key is stored encrypted."""

    async def _add():
        cipher = SecretCipher(get_settings().gateway.require_encryption_secret())
        orm = StorageConfigORM(
            name=name,
            provider_type=ProviderType.parse(provider).value,
            endpoint_url=endpoint,
            region=region,
            bucket_name=bucket,
            access_key_id=access_key,
            secret_access_key=cipher.encrypt(secret_key),
            path_style=path_style,
            default_folder=default_folder,
            is_public=public,
            is_default=default,
            admin_id=admin_id,
            total_storage_bytes=total_bytes,
        )
        gateway = create_gateway()
        try:
            return await gateway.configs.save(orm)
        finally:
            await gateway.aclose()

    try:
        config = asyncio.run(_add())
    except GatewayError as e:
        console.print(f"[bold red]✖[/bold red] {e}")
        raise typer.Exit(code=1)
    console.print(f"[bold green]✔[/bold green] Storage '{config.name}' registered with id {config.id}")


@app.command()
def serve(host: str = "0.0.0.0", port: int = 8000):
    """Runs the HTTP API."""
    import uvicorn

    uvicorn.run("sensory_share_gateway.server.main:create_app", factory=True, host=host, port=port)


if __name__ == "__main__":
    app()
