#!/usr/bin/env python3
"""
KUBESTAGE CLI
-------------
Command-line front end:

    kubestage render CR.yaml [-f fragments.yaml ...]   offline model preview
    kubestage apply  CR.yaml [--namespace NS]          reconcile against a cluster

Author: KubeStage Team
Date: 2026-10-17
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from kubernetes import client
from kubernetes.client.rest import ApiException
from rich.panel import Panel

from kubestage.cli.formatter import KubeFormatter, console
from kubestage.core.config import Settings, get_settings
from kubestage.core.errors import ConfigurationError, KubeStageError
from kubestage.core.exporter import KubeExporter
from kubestage.core.models import (
    CR_KIND, DesiredStateSpec, FragmentKind, FragmentSet, InstanceRef, PlatformCapabilities,
)
from kubestage.model.assembler import ModelAssembler
from kubestage.model.registry import build_default_registry
from kubestage.reconcile.cancel import CancelToken
from kubestage.reconcile.kube_store import KubeStore, load_cluster_config, translate
from kubestage.reconcile.reconciler import Reconciler, fragment_from_body
from kubestage.reconcile.status import ConditionStatusReporter, KubeStatusReporter

VERSION = "0.1.0"

logger = logging.getLogger("kubestage.cli")


def load_manifest(path: Path) -> Tuple[InstanceRef, DesiredStateSpec, Dict[str, Any]]:
    """Reads the first Backstage document from a YAML file."""
    exporter = KubeExporter()
    for doc in exporter.load_all(path.read_text(encoding="utf-8-sig"), source=str(path)):
        if isinstance(doc, dict) and doc.get("kind") == CR_KIND:
            return InstanceRef.from_manifest(doc), DesiredStateSpec.from_dict(doc.get("spec")), doc
    raise ConfigurationError(f"No {CR_KIND} document found in {path}.")


def load_fragments(paths: List[Path]) -> FragmentSet:
    """Collects every ConfigMap and Secret document from the given files."""
    exporter = KubeExporter()
    fragments = []
    for path in paths:
        for doc in exporter.load_all(path.read_text(encoding="utf-8-sig"), source=str(path)):
            if not isinstance(doc, dict):
                continue
            if doc.get("kind") == FragmentKind.PLAIN.value:
                fragments.append(fragment_from_body(FragmentKind.PLAIN, doc))
            elif doc.get("kind") == FragmentKind.SENSITIVE.value:
                fragments.append(fragment_from_body(FragmentKind.SENSITIVE, doc))
    return FragmentSet(fragments)


class KubeStageCLI:
    """
    CLI wrapper that translates user commands into assembler and
    reconciler calls.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.formatter = KubeFormatter()
        self.parser = argparse.ArgumentParser(
            prog="kubestage",
            description="KubeStage - Backstage deployment synthesis & reconciliation",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self._setup_args()

    def _setup_args(self):
        """Configures the command-line flags and subcommands."""
        self.parser.add_argument("-v", "--version", action="version", version=f"kubestage v{VERSION}")
        self.parser.add_argument("--log-level", default=None, help="Override KUBESTAGE_LOG_LEVEL")
        subparsers = self.parser.add_subparsers(dest="command", metavar="Command")

        render_parser = subparsers.add_parser("render", help="Preview the objects for a Backstage manifest")
        render_parser.add_argument("manifest", help="Backstage custom resource YAML")
        render_parser.add_argument("-f", "--fragments", action="append", default=[],
                                   help="YAML file with referenced ConfigMaps/Secrets (repeatable)")
        render_parser.add_argument("--openshift", action="store_true", help="Target a platform with Routes")
        render_parser.add_argument("--config-dir", default=None, help="Directory with default templates")
        render_parser.add_argument("--table", action="store_true", help="Summary table instead of YAML")

        apply_parser = subparsers.add_parser("apply", help="Reconcile a Backstage manifest against the cluster")
        apply_parser.add_argument("manifest", help="Backstage custom resource YAML")
        apply_parser.add_argument("-n", "--namespace", default=None, help="Target namespace")
        apply_parser.add_argument("--openshift", action="store_true", help="Target a platform with Routes")
        apply_parser.add_argument("--config-dir", default=None, help="Directory with default templates")
        apply_parser.add_argument("--timeout", type=float, default=None, help="Deadline for the whole cycle (s)")

    def print_header(self, subtitle: str):
        console.print(Panel.fit(
            f"[bold cyan]KubeStage v{VERSION}[/bold cyan]",
            title=f"[bold white]{subtitle}[/bold white]",
            border_style="cyan"
        ))

    def _platform(self, args: argparse.Namespace) -> PlatformCapabilities:
        return PlatformCapabilities(is_openshift=args.openshift or self.settings.is_openshift)

    def _registry(self, args: argparse.Namespace):
        return build_default_registry(args.config_dir or self.settings.default_config_dir)

    def render(self, args: argparse.Namespace) -> int:
        instance, spec, _ = load_manifest(Path(args.manifest))
        fragments = load_fragments([Path(p) for p in args.fragments])

        assembler = ModelAssembler(self._registry(args), self.settings)
        model = assembler.assemble(instance, spec, fragments, platform=self._platform(args))

        self.formatter.show_warnings(model.warnings)
        title = f"{instance.name} ({len(model)} objects)"
        if args.table:
            self.formatter.show_model_table(model, title)
        else:
            self.formatter.show_manifests(model, title)
        return 0

    def apply(self, args: argparse.Namespace) -> int:
        instance, spec, _ = load_manifest(Path(args.manifest))
        if args.namespace:
            instance = InstanceRef(name=instance.name, namespace=args.namespace, uid=instance.uid,
                                   api_version=instance.api_version, kind=instance.kind)
        logger.info(f"Reconciling {instance.name} in namespace {instance.namespace}")

        load_cluster_config()
        custom = client.CustomObjectsApi()
        try:
            live = custom.get_namespaced_custom_object(
                self.settings.cr_group, self.settings.cr_version, instance.namespace,
                self.settings.cr_plural, instance.name)
            instance = InstanceRef.from_manifest(live, namespace=instance.namespace)
            reporter = KubeStatusReporter(instance, self.settings, custom)
        except ApiException as e:
            if e.status != 404:
                raise translate(e, "get", instance.kind, instance.name) from e
            console.print(f"[yellow]{CR_KIND} '{instance.name}' not found in cluster; "
                          f"applying without owner references or status.[/yellow]")
            reporter = ConditionStatusReporter()

        store = KubeStore(request_timeout=self.settings.request_timeout)
        reconciler = Reconciler(store, self._registry(args), self.settings, reporter, self._platform(args))
        result = reconciler.reconcile(instance, spec, CancelToken(args.timeout))

        self.formatter.show_warnings(result.model.warnings)
        self.formatter.print_apply_report(result.report)
        return 0

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Primary routing entry point."""
        args = self.parser.parse_args(argv)
        logging.basicConfig(level=(args.log_level or self.settings.log_level).upper())

        if args.command is None:
            self.print_header("Backstage Deployment Synthesis")
            self.parser.print_help()
            return 0

        try:
            if args.command == "render":
                return self.render(args)
            self.print_header(f"Apply: {args.manifest}")
            return self.apply(args)
        except KubeStageError as e:
            self.formatter.print_error(e)
            return 1
        except OSError as e:
            self.formatter.print_error(e)
            return 2


def main():
    """Application entry point with interrupt handling."""
    try:
        sys.exit(KubeStageCLI().run())
    except KeyboardInterrupt:
        console.print("\n[bold red]Terminated by user.[/bold red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
