"""
Main CLI Entry Point
Unified command-line interface for:
- Domain lookups against any supported registrar
- DNS zone inspection
- The domain registration workflow
"""

import sys
import json
import asyncio
import argparse

from src.registrars import SUPPORTED_PROVIDERS, RegistrarConfigurationError, get_registrar
from src.registrars.models import ContactInformation
from src.utils.config import get_settings
from src.utils.logger import get_logger, set_log_level
from src.workflows import (
    DomainRegistrationWorkflow,
    InMemoryBillingService,
    InMemoryOrderStore,
    InMemoryProvisioningService,
    RegistrationWorkflowInput,
)

logger = get_logger(__name__)


def _registrar(args):
    provider = "SANDBOX" if getattr(args, "sandbox", False) else getattr(args, "provider", None)
    return get_registrar(provider)


def _print_header(title: str):
    print(f"\n{'='*60}")
    print(f" {title}")
    print(f"{'='*60}")


def _print_footer():
    print(f"{'='*60}\n")


def _print_errors(result):
    logger.error(f"❌ {result.message}")
    for error in result.errors:
        print(f"  - {error}")


async def _domain_check(args) -> bool:
    async with _registrar(args) as registrar:
        result = await registrar.check_availability(args.domain)

    if not result.success:
        _print_errors(result)
        return False

    _print_header(f"DOMAIN: {result.domain_name}")
    print(f"  Available:   {'YES ✅' if result.is_available else 'NO ❌'}")
    print(f"  TLD offered: {'yes' if result.is_tld_supported else 'no'}")
    if result.price is not None:
        print(f"  Price:       {result.price} {result.currency or ''}")
    if result.is_premium:
        print(f"  Premium:     {result.premium_price} {result.currency or ''}")
    _print_footer()
    return True


async def _domain_info(args) -> bool:
    async with _registrar(args) as registrar:
        result = await registrar.get_domain_info(args.domain)

    if not result.success:
        _print_errors(result)
        return False

    _print_header(f"DOMAIN DETAILS: {result.domain_name}")
    print(f"  Status:      {result.status} ({result.raw_status or 'n/a'})")
    print(f"  Created:     {result.registration_date or 'N/A'}")
    print(f"  Expires:     {result.expiration_date or 'N/A'}")
    print(f"  Auto-Renew:  {result.auto_renew}")
    print(f"  Privacy:     {result.privacy_protection}")
    print(f"  Locked:      {result.locked}")
    if result.nameservers:
        print(f"  Nameservers: {', '.join(result.nameservers)}")
    _print_footer()
    return True


async def _domain_tlds(args) -> bool:
    async with _registrar(args) as registrar:
        result = await registrar.get_supported_tlds(args.tlds or None)

    if not result.success:
        _print_errors(result)
        return False

    _print_header(f"SUPPORTED TLDS ({len(result.tlds)})")
    for tld in result.tlds:
        price = f"{tld.registration_price} {tld.currency}" if tld.registration_price is not None else "-"
        print(f"  .{tld.name:<20} {price}")
    _print_footer()
    return True


async def _domain_list(args) -> bool:
    async with _registrar(args) as registrar:
        result = await registrar.get_registered_domains()

    if not result.success:
        _print_errors(result)
        return False

    _print_header(f"OWNED DOMAINS ({result.total_count})")
    for domain in result.domains:
        expires = domain.expiration_date.date() if domain.expiration_date else "N/A"
        print(f"  {domain.domain_name:<40} Status: {domain.status:<15} Expires: {expires}")
    _print_footer()
    return True


async def _dns_show(args) -> bool:
    async with _registrar(args) as registrar:
        result = await registrar.get_dns_zone(args.domain)

    if not result.success:
        _print_errors(result)
        return False

    zone = result.zone
    _print_header(f"DNS ZONE: {result.domain_name} ({len(zone.records)} records)")
    for record in zone.records:
        priority = f" prio={record.priority}" if record.priority is not None else ""
        print(f"  {record.type:<6} {record.name:<30} {record.value} (ttl={record.ttl}{priority})")
    if zone.nameservers:
        print(f"  Nameservers: {', '.join(zone.nameservers)}")
    _print_footer()
    return True


async def _workflow_register(args) -> bool:
    with open(args.contact, "r") as f:
        contact = ContactInformation(**json.load(f))

    workflow_input = RegistrationWorkflowInput(
        domain_name=args.domain,
        years=args.years,
        auto_renew=args.auto_renew,
        privacy_protection=args.privacy,
        nameservers=args.nameservers or [],
        registrant_contact=contact,
        check_availability_first=args.check
    )

    async with _registrar(args) as registrar:
        workflow = DomainRegistrationWorkflow(
            registrar=registrar,
            billing=InMemoryBillingService(),
            provisioning=InMemoryProvisioningService(),
            store=InMemoryOrderStore()
        )
        ordered = await workflow.execute(workflow_input)
        if not ordered.success:
            _print_errors(ordered)
            return False

        # the in-memory billing has no payment step; confirm the invoice straight away
        result = await workflow.on_payment_received(ordered.order_id, ordered.invoice_id)

    _print_header(f"REGISTRATION WORKFLOW: {workflow_input.domain_name}")
    print(f"  Order:       {result.order_id}")
    print(f"  Invoice:     {result.invoice_id}")
    print(f"  State:       {result.status}")
    print(f"  Message:     {result.message}")
    if result.next_action:
        print(f"  Next action: {result.next_action}")
    for error in result.errors:
        print(f"  - {error}")
    _print_footer()
    return result.success


def _run(handler):
    def command(args):
        try:
            ok = asyncio.run(handler(args))
        except RegistrarConfigurationError as e:
            logger.error(f"❌ Configuration error: {str(e)}")
            sys.exit(2)
        except Exception as e:
            logger.error(f"❌ Command failed: {str(e)}")
            sys.exit(1)
        if not ok:
            sys.exit(1)
    command.__doc__ = handler.__doc__
    return command


cmd_domain_check = _run(_domain_check)
cmd_domain_info = _run(_domain_info)
cmd_domain_tlds = _run(_domain_tlds)
cmd_domain_list = _run(_domain_list)
cmd_dns_show = _run(_dns_show)
cmd_workflow_register = _run(_workflow_register)


def _add_provider_args(parser):
    parser.add_argument("--provider", choices=SUPPORTED_PROVIDERS, help="Registrar provider (default: from config)")
    parser.add_argument("--sandbox", action="store_true", help="Use the sandbox registrar (RDAP lookups, no real orders)")


def main():
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        description="Domain Registrar & Lifecycle CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Check availability with the configured registrar
  python main.py domain check myawesomeapp.com

  # Same check against the sandbox (RDAP lookup)
  python main.py domain check myawesomeapp.com --sandbox

  # Domain details from Namecheap
  python main.py domain info myexistingdomain.com --provider NAMECHEAP

  # Pricing for a few TLDs
  python main.py domain tlds com net io

  # List owned domains
  python main.py domain list

  # Show the DNS zone
  python main.py dns show myexistingdomain.com

  # Run the registration workflow for 2 years
  python main.py workflow register mynewdomain.com --contact contact.json --years 2 --sandbox
        """
    )

    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging (overrides LOG_LEVEL)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # ==================== DOMAIN COMMAND ====================
    domain_parser = subparsers.add_parser("domain", help="Domain lookups")
    domain_subparsers = domain_parser.add_subparsers(dest="domain_command", help="Domain operations")

    # domain check
    check_parser = domain_subparsers.add_parser("check", help="Check domain availability")
    check_parser.add_argument("domain", help="Domain name")
    _add_provider_args(check_parser)
    check_parser.set_defaults(func=cmd_domain_check)

    # domain info
    info_parser = domain_subparsers.add_parser("info", help="Get domain details")
    info_parser.add_argument("domain", help="Domain name")
    _add_provider_args(info_parser)
    info_parser.set_defaults(func=cmd_domain_info)

    # domain tlds
    tlds_parser = domain_subparsers.add_parser("tlds", help="List supported TLDs and prices")
    tlds_parser.add_argument("tlds", nargs="*", help="Only show these TLDs (default: all)")
    _add_provider_args(tlds_parser)
    tlds_parser.set_defaults(func=cmd_domain_tlds)

    # domain list
    list_parser = domain_subparsers.add_parser("list", help="List owned domains")
    _add_provider_args(list_parser)
    list_parser.set_defaults(func=cmd_domain_list)

    # ==================== DNS COMMAND ====================
    dns_parser = subparsers.add_parser("dns", help="DNS zone management")
    dns_subparsers = dns_parser.add_subparsers(dest="dns_command", help="DNS operations")

    # dns show
    show_parser = dns_subparsers.add_parser("show", help="Show the DNS zone of a domain")
    show_parser.add_argument("domain", help="Domain name")
    _add_provider_args(show_parser)
    show_parser.set_defaults(func=cmd_dns_show)

    # ==================== WORKFLOW COMMAND ====================
    workflow_parser = subparsers.add_parser("workflow", help="Domain lifecycle workflows")
    workflow_subparsers = workflow_parser.add_subparsers(dest="workflow_command", help="Workflow operations")

    # workflow register
    register_parser = workflow_subparsers.add_parser("register", help="Order, pay for and register a domain")
    register_parser.add_argument("domain", help="Domain name")
    register_parser.add_argument("--contact", required=True, help="Path to registrant contact JSON file")
    register_parser.add_argument("--years", type=int, default=1, help="Registration period in years (default: 1)")
    register_parser.add_argument("--auto-renew", action="store_true", help="Enable auto-renew")
    register_parser.add_argument("--privacy", action="store_true", help="Enable WHOIS privacy")
    register_parser.add_argument("--nameservers", nargs="*", help="Nameservers to set at registration")
    register_parser.add_argument("--check", action="store_true", help="Check availability before ordering")
    _add_provider_args(register_parser)
    register_parser.set_defaults(func=cmd_workflow_register)

    # Parse and execute
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(0)

    try:
        set_log_level("DEBUG" if args.verbose else get_settings().log_level)
    except ValueError as e:
        logger.error(f"❌ Invalid configuration: {str(e)}")
        sys.exit(2)

    if hasattr(args, "func"):
        args.func(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
