"""
Quick script to verify registrar credentials and connectivity
Run this after filling in .env for the provider you want to use

Usage:
    python examples/check_registrar_connection.py
    python examples/check_registrar_connection.py --provider NAMECHEAP
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Project root on the path so ``src`` imports resolve
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from src.registrars import (
    SUPPORTED_PROVIDERS,
    BaseRegistrar,
    RegistrarConfigurationError,
    get_registrar
)
from src.utils.config import get_settings

console = Console()

TEST_DOMAINS = ["google.com", "thisisaprobablyavailabledomain12345.com"]


def _error_panel(title: str, body: str) -> Panel:
    return Panel(f"[bold red]❌ {title}[/bold red]\n\n{body}", title="Error", border_style="red")


async def check_account(registrar: BaseRegistrar) -> bool:
    """Listing the account's domains proves the credentials work"""
    console.print(f"\n[bold cyan]Checking {registrar.get_provider_name()} credentials...[/bold cyan]\n")

    info_table = Table(show_header=False, box=None)
    info_table.add_row("[cyan]Provider:[/cyan]", f"[yellow]{registrar.provider_code}[/yellow]")
    info_table.add_row("[cyan]Environment:[/cyan]", f"[yellow]{registrar.get_environment()}[/yellow]")
    console.print(info_table)
    console.print()

    console.print("[yellow]→ Fetching account domains...[/yellow]")
    result = await registrar.get_registered_domains()

    if result.error_code == "NOT_IMPLEMENTED":
        console.print(Panel(
            "[bold yellow]⚠️  This provider cannot list account domains[/bold yellow]\n\n"
            "Credentials will be exercised by the availability check instead.",
            border_style="yellow"
        ))
        return True

    if not result.success:
        hint = ""
        if result.error_code in ("401", "403", "AUTHENTICATION_FAILED"):
            hint = "\n\n[yellow]→ Please check the provider credentials in your .env file[/yellow]"
        console.print(_error_panel("Account check failed", f"{result.message}{hint}"))
        return False

    console.print(Panel(
        f"[bold green]✅ Connection Successful![/bold green]\n\n"
        f"Found [cyan]{result.total_count}[/cyan] domain(s) in your account.",
        title="Connection Test",
        border_style="green"
    ))

    if result.domains:
        domain_table = Table(show_header=True, header_style="bold magenta")
        domain_table.add_column("Domain", style="cyan")
        domain_table.add_column("Status", style="green")
        domain_table.add_column("Expires", style="yellow")
        for domain in result.domains[:5]:
            expires = domain.expiration_date.date().isoformat() if domain.expiration_date else "N/A"
            domain_table.add_row(domain.domain_name, domain.status, expires)
        console.print(domain_table)
    return True


async def check_availability(registrar: BaseRegistrar) -> bool:
    console.print("\n[bold cyan]Checking domain availability...[/bold cyan]\n")

    results_table = Table(show_header=True, header_style="bold magenta")
    results_table.add_column("Domain", style="cyan")
    results_table.add_column("Available", style="yellow")
    results_table.add_column("Message", style="green")

    healthy = True
    for domain in TEST_DOMAINS:
        console.print(f"[yellow]→ Checking {domain}...[/yellow]")
        result = await registrar.check_availability(domain)
        if not result.success:
            healthy = False
            results_table.add_row(domain, "⚠️", result.message)
            continue
        results_table.add_row(domain, "✅" if result.is_available else "❌", result.message)

    console.print()
    console.print(results_table)
    console.print()

    if healthy:
        console.print(Panel("[bold green]✅ Availability check working![/bold green]", border_style="green"))
    else:
        console.print(_error_panel("Availability check reported errors", "See the table above."))
    return healthy


async def check_tlds(registrar: BaseRegistrar) -> bool:
    console.print("\n[bold cyan]Fetching supported TLDs...[/bold cyan]\n")
    result = await registrar.get_supported_tlds(["com", "net", "org", "io"])
    if not result.success:
        console.print(_error_panel("TLD lookup failed", result.message))
        return False

    for tld in result.tlds:
        price = f"{tld.registration_price} {tld.currency}" if tld.registration_price is not None else "n/a"
        console.print(f"  .{tld.name}  [cyan]{price}[/cyan]")
    console.print(Panel(f"[bold green]✅ {len(result.tlds)} TLDs returned[/bold green]", border_style="green"))
    return True


async def run_checks(provider: str = None) -> bool:
    try:
        registrar = get_registrar(provider)
    except RegistrarConfigurationError as e:
        console.print(_error_panel(
            "Configuration Error",
            f"{e}\n\n[yellow]→ Please copy .env.example to .env and add your credentials[/yellow]"
        ))
        return False

    async with registrar:
        if not await check_account(registrar):
            console.print("\n[bold red]⚠️  Account check failed. Fix credentials before proceeding.[/bold red]")
            return False
        available_ok = await check_availability(registrar)
        tlds_ok = await check_tlds(registrar)
    return available_ok and tlds_ok


def main():
    parser = argparse.ArgumentParser(description="Check registrar credentials and connectivity")
    parser.add_argument("--provider", choices=SUPPORTED_PROVIDERS, help="Override REGISTRAR_PROVIDER")
    args = parser.parse_args()

    settings = get_settings()
    console.print(Panel.fit(
        "[bold magenta]🚀 Registrar Connection Check[/bold magenta]\n"
        f"[dim]Provider: {args.provider or settings.registrar_provider}"
        f"{' (sandbox mode)' if settings.sandbox_mode else ''}[/dim]",
        border_style="magenta"
    ))

    ok = asyncio.run(run_checks(args.provider))

    console.print("\n" + "=" * 60)
    if ok:
        console.print(Panel.fit(
            "[bold green]✅ All checks completed![/bold green]\n"
            "[dim]The registrar adapter is ready to use.[/dim]",
            border_style="green"
        ))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
