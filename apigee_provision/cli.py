#!/usr/bin/env python3
"""
Apigee remote-service provisioning command line.

    apigee-provision provision --org ORG --env ENV --runtime URL ...
    apigee-provision rotate --org ORG --env ENV --runtime URL --key K --secret S --kid 2
"""
import argparse
import logging
import sys
from typing import Any, Dict, List, Optional

import requests

from . import keys
from .config import ProvisionSettings, Variant
from .credentials import Credential
from .errors import ConfigurationMissing, PartialProvisioningFailure, ProvisionError
from .provision import Provisioner


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="apigee-provision",
        description="Provision your Apigee environment for remote services",
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-o", "--org", help="Apigee organization name")
    common.add_argument("-e", "--env", help="Apigee environment name")
    common.add_argument("-r", "--runtime", dest="runtime_base", help="Apigee runtime base URL")
    common.add_argument("-m", "--management", dest="management_base", help="Apigee management base URL")
    variant = common.add_mutually_exclusive_group()
    variant.add_argument("--legacy", dest="variant", action="store_const", const=Variant.LEGACY.value,
                         help="Apigee SaaS (sets management and runtime URL)")
    variant.add_argument("--opdk", dest="variant", action="store_const", const=Variant.OPDK.value,
                         help="Apigee OPDK")
    common.add_argument("-t", "--token", help="Apigee OAuth or SAML token (hybrid only)")
    common.add_argument("-u", "--username", help="Apigee username (legacy or OPDK only)")
    common.add_argument("-p", "--password", help="Apigee password (legacy or OPDK only)")
    common.add_argument("--insecure", action="store_true", default=None,
                        help="allow insecure server connections when using SSL")
    common.add_argument("--timeout", type=float, help="per-request timeout in seconds")
    common.add_argument("-c", "--config", dest="settings_file", help="YAML settings file")
    common.add_argument("--env-file", default=".env", help="dotenv file with APIGEE_* values")
    common.add_argument("-v", "--verbose", action="store_true", help="verbose output")

    subparsers = parser.add_subparsers(dest="command")

    provision = subparsers.add_parser("provision", parents=[common],
                                      help="set up kvm, credentials and proxies for remote services")
    provision.add_argument("-d", "--developer-email", dest="developer_email",
                           help="email used to create a developer (ignored for --legacy or --opdk)")
    provision.add_argument("--years", dest="cert_expiration_years", type=int,
                           help="number of years before the jwt cert expires")
    provision.add_argument("--strength", dest="cert_key_strength", type=int, help="key strength")
    provision.add_argument("-f", "--force-proxy-install", dest="force_proxy_install", action="store_true",
                           default=None, help="force new proxy install (upgrades proxy)")
    provision.add_argument("--virtual-hosts", dest="virtual_hosts", help="override proxy virtualHosts")
    provision.add_argument("--verify-only", dest="verify_only", action="store_true", default=None,
                           help="verify only, don't provision anything")
    provision.add_argument("-n", "--namespace", help="emit configuration as an Envoy ConfigMap in the namespace")
    provision.add_argument("-k", "--key", dest="provision_key", help="gateway key (for --verify-only)")
    provision.add_argument("-s", "--secret", dest="provision_secret", help="gateway secret (for --verify-only)")

    rotate = subparsers.add_parser("rotate", parents=[common], help="rotate the JWT signing key")
    rotate.add_argument("-k", "--key", dest="provision_key", required=True, help="gateway key")
    rotate.add_argument("-s", "--secret", dest="provision_secret", required=True, help="gateway secret")
    rotate.add_argument("--kid", required=True, help="new key id")
    rotate.add_argument("--years", dest="cert_expiration_years", type=int,
                        help="number of years before the jwt cert expires")
    rotate.add_argument("--strength", dest="cert_key_strength", type=int, help="key strength")
    return parser


SETTINGS_ARGS = (
    "org", "env", "runtime_base", "management_base", "variant", "token", "username", "password",
    "insecure", "timeout", "developer_email", "cert_expiration_years", "cert_key_strength",
    "force_proxy_install", "virtual_hosts", "verify_only", "namespace", "provision_key", "provision_secret",
)


def settings_from_args(args: argparse.Namespace) -> ProvisionSettings:
    overrides: Dict[str, Any] = {name: getattr(args, name, None) for name in SETTINGS_ARGS}
    if args.command == "rotate":
        # rotation only talks to the runtime
        overrides["verify_only"] = True
    settings = ProvisionSettings.from_sources(overrides, env_file=args.env_file, settings_file=args.settings_file)
    return settings.resolve()


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(levelname)-8s - %(message)s",
        stream=sys.stderr,
    )


def run_provision(settings: ProvisionSettings) -> int:
    print("=" * 60, file=sys.stderr)
    print(f"Apigee remote-service provisioning ({settings.variant.value})", file=sys.stderr)
    print(f"   Org: {settings.org}  Env: {settings.env}", file=sys.stderr)
    print("=" * 60, file=sys.stderr)

    result = Provisioner(settings).run()

    if not result.verification.ok:
        print("\n⚠️  WARNING: Apigee may not be provisioned properly.", file=sys.stderr)
        print("Unable to verify proxy endpoint(s). Errors:\n", file=sys.stderr)
        for failure in result.verification.failures:
            print(f"  ❌ {failure}", file=sys.stderr)
        print(file=sys.stderr)

    if result.config:
        print(result.config)

    if not result.ok:
        return 1
    print("✅ provisioning verified OK", file=sys.stderr)
    return 0


def run_rotate(settings: ProvisionSettings, kid: str) -> int:
    credential = Credential(settings.provision_key, settings.provision_secret)
    material = keys.generate(settings.cert_key_strength, settings.cert_expiration_years, key_id=kid)
    with requests.Session() as session:
        session.verify = not settings.insecure
        keys.rotate(settings.remote_service_proxy_url, credential, material, session=session, timeout=settings.timeout)
    print(f"✅ rotated signing key to kid {kid}", file=sys.stderr)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 2

    configure_logging(args.verbose)
    try:
        settings = settings_from_args(args)
        if args.command == "rotate":
            return run_rotate(settings, args.kid)
        return run_provision(settings)
    except ConfigurationMissing as exc:
        print(f"❌ {exc}", file=sys.stderr)
        return 1
    except PartialProvisioningFailure as exc:
        print(f"❌ provisioning incomplete: {exc}", file=sys.stderr)
        return 1
    except ProvisionError as exc:
        print(f"❌ provisioning failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
