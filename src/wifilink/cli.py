"""
wifilink command line entry point.

    wifilink [-i IFACE] connect ESSID [PASSPHRASE] [IDENTITY]
    wifilink [-i IFACE] dhcp [SELECTOR]
    wifilink [-i IFACE] interfaces | scan | current | serve
"""

import argparse
import sys
from typing import List, Optional

from wifilink.config import Settings, load_settings
from wifilink.dhcp.dhclient_adapter import DhclientClient
from wifilink.dhcp.dispatcher import InterfaceDispatcher
from wifilink.dhcp.retry import RetryPolicy
from wifilink.dhcp.state_machine import LeaseStateMachine
from wifilink.errors import WifiError
from wifilink.logging import configure_logging, get_logger
from wifilink.wifi.orchestrator import ConnectionOrchestrator
from wifilink.wifi.profile_store import ProfileStore
from wifilink.wifi.wpa_adapter import WpaSupplicantAdapter

logger = get_logger("cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wifilink",
        description="Scan for, join and keep a DHCPv4 lease on Wi-Fi networks.")
    parser.add_argument("-i", "--interface", help="interface to use (default: wlan0)")
    parser.add_argument("-c", "--config", help="path to config.yaml")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("interfaces", help="list wireless interfaces")
    sub.add_parser("scan", help="list nearby networks")
    sub.add_parser("current", help="print the SSID currently joined")

    connect = sub.add_parser("connect", help="join a network and obtain a lease")
    connect.add_argument("essid")
    connect.add_argument("secrets", nargs="*", metavar="SECRET",
                         help="[passphrase] [identity]")

    dhcp = sub.add_parser("dhcp", help="obtain leases on matching interfaces")
    dhcp.add_argument("selector", nargs="?",
                      help="interface name or pattern (default: --interface)")

    sub.add_parser("serve", help="run the provisioning web UI")
    return parser


def _retry_factory(settings: Settings):
    return lambda: RetryPolicy(settings.dhcp_retries, settings.dhcp_retry_delay)


def _build_adapter(settings: Settings, client: DhclientClient) -> WpaSupplicantAdapter:
    retry_factory = _retry_factory(settings)

    def machine_factory(interface, dhcp_client, on_bound=None):
        return LeaseStateMachine(
            interface, dhcp_client,
            retry_policy=retry_factory(),
            renewal_margin=settings.renewal_margin,
            on_bound=on_bound)

    orchestrator = ConnectionOrchestrator(
        client,
        profile_store=ProfileStore(settings.profile_path),
        supplicant=settings.supplicant,
        timeout_seconds=settings.connect_timeout,
        machine_factory=machine_factory)
    return WpaSupplicantAdapter(settings.interface, orchestrator)


def run_command(args: argparse.Namespace, settings: Settings) -> int:
    client = DhclientClient(settings.dhclient, settings.dhcp_timeout)
    adapter = _build_adapter(settings, client)

    if args.command == "interfaces":
        for name in adapter.list_interfaces():
            print(name)
    elif args.command == "scan":
        for network in adapter.scan_networks():
            print(f"{network.ssid}\t{network.security.value}")
    elif args.command == "current":
        print(adapter.current_network())
    elif args.command == "connect":
        adapter.connect(args.essid, *args.secrets)
        print(f"Connected to {args.essid}")
    elif args.command == "dhcp":
        dispatcher = InterfaceDispatcher(
            client,
            match_mode=settings.interface_match,
            retry_factory=_retry_factory(settings),
            renewal_margin=settings.renewal_margin)
        summary = dispatcher.run(args.selector or settings.interface)
        print(f"{summary.attempted} dhclient attempts were sent")
        return 1 if summary.failed else 0
    elif args.command == "serve":
        from wifilink.provisioning.app import create_app
        from wifilink.provisioning.service import WifiService

        app = create_app(WifiService(adapter))
        app.run(host='0.0.0.0', port=settings.web_port, debug=False)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.config, interface=args.interface)
    except ValueError as e:
        print(f"wifilink: {e}", file=sys.stderr)
        return 1
    configure_logging(
        log_level="DEBUG" if args.verbose else settings.log_level,
        log_file=settings.log_file)

    try:
        return run_command(args, settings)
    except WifiError as e:
        logger.error(str(e))
        print(f"error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
