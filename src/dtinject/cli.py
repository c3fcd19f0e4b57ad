"""dtinject Command Line Interface.

Runs the injection pipeline against pod manifests, mainly for debugging
injection decisions outside the admission webhook.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import TYPE_CHECKING

from dtinject.version import __version__

if TYPE_CHECKING:
    from argparse import Namespace

    from dtinject.webhook import MutationRequest


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="dtinject",
        description="dtinject - OneAgent code module injection for Kubernetes pods",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  dtinject check --pod pod.yaml --namespace-file ns.yaml --dynakube dk.yaml
  dtinject mutate --pod pod.yaml --namespace-file ns.yaml --dynakube dk.yaml
        """,
    )

    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (can be repeated: -v, -vv)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    for name, help_text in (
        ("check", "Show whether the pipeline would handle the pod"),
        ("mutate", "Run the pipeline and print the mutated pod"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--pod", required=True, help="Pod manifest (YAML)")
        sub.add_argument(
            "--namespace-file",
            required=True,
            help="Namespace manifest of the pod (YAML)",
        )
        sub.add_argument("--dynakube", required=True, help="DynaKube manifest (YAML)")

    subparsers.choices["mutate"].add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Deadline in seconds for the pipeline (default: settings)",
    )

    return parser


def _setup_logging(verbose: int) -> None:
    from dtinject.config.settings import get_settings
    from dtinject.observability.logging import configure_logging

    configure_logging(get_settings().observability, verbose=bool(verbose))


def _load_request(args: Namespace) -> MutationRequest:
    from dtinject.crd import DynaKube
    from dtinject.manifests import load_yaml, to_model
    from dtinject.webhook import MutationRequest, RequestContext

    pod = to_model(load_yaml(args.pod), "V1Pod")
    namespace = to_model(load_yaml(args.namespace_file), "V1Namespace")
    dynakube = DynaKube.from_kubernetes_object(load_yaml(args.dynakube))

    context = None
    if getattr(args, "timeout", None) is not None:
        context = RequestContext.with_timeout(args.timeout)

    return MutationRequest.create(pod, namespace, dynakube, context=context)


def run_check(args: Namespace) -> int:
    """Print the eligibility decision for a pod."""
    from dtinject.webhook import PodWebhook, is_enabled
    from dtinject.webhook.oneagent import effective_volume_type

    request = _load_request(args)
    webhook = PodWebhook(replicator=None, recorder=None)

    print(f"Pod: {request.pod_name} (namespace {request.namespace_name})")
    print(f"Pipeline enabled: {is_enabled(request)}")
    print(f"Volume type: {effective_volume_type(request).value}")
    for mutator in webhook.mutators:
        print(f"  {mutator.name}: enabled={mutator.is_enabled(request)}")
    print(f"Already injected: {webhook.is_injected(request)}")
    return 0


def run_mutate(args: Namespace) -> int:
    """Run the pipeline against the configured cluster."""
    from dtinject.errors import InjectionError
    from dtinject.kubernetes import load_kubernetes_config
    from dtinject.manifests import dump_yaml
    from dtinject.webhook import PodWebhook

    load_kubernetes_config()
    request = _load_request(args)

    try:
        outcome = asyncio.run(PodWebhook().handle(request))
    except InjectionError as e:
        print(f"Error: {e.to_json()}", file=sys.stderr)
        return 1

    print(f"Outcome: {outcome.value}", file=sys.stderr)
    print(dump_yaml(request.pod), end="")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    _setup_logging(args.verbose)

    command_handlers = {
        "check": run_check,
        "mutate": run_mutate,
    }

    handler = command_handlers.get(args.command)
    if handler:
        return handler(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
