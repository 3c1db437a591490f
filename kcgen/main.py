import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional

from kcgen import config
from kcgen.assembler import assemble_kubeconfig
from kcgen.cluster import ClusterConnection, check_reachable
from kcgen.descriptor import load_descriptor
from kcgen.errors import KcgenError
from kcgen.kubeconfig import default_output_path, write_kubeconfig
from kcgen.prompts import confirm_cluster, prompt_for_descriptor
from kcgen.reconciler import reconcile


def configure_logging(debug: bool = config.DEBUG, verbose: bool = config.VERBOSE):
    if debug or verbose:
        log_format = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    else:
        log_format = "%(asctime)s %(levelname)s %(message)s"
    logging.basicConfig(level=logging.DEBUG if debug else logging.INFO, format=log_format)
    if not debug:
        # The kubernetes client logs every request through urllib3
        logging.getLogger("urllib3").setLevel(logging.WARNING)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="kcgen",
        description="""Create the namespaces, roles and role bindings a user or
        service account needs on a cluster and generate a standalone kubeconfig
        for it. Without a descriptor file the missing details are asked for
        interactively.""",
    )
    parser.add_argument(
        "descriptor",
        nargs="?",
        help="Path to the YAML file describing the principal.",
    )
    parser.add_argument(
        "--kubeconfig",
        default=config.ADMIN_KUBECONFIG,
        help="The admin kubeconfig used to talk to the cluster (default: %(default)s).",
    )
    parser.add_argument(
        "--context",
        default=config.ADMIN_CONTEXT,
        help="The context of the admin kubeconfig to use instead of its current context.",
    )
    parser.add_argument(
        "-o",
        "--output",
        default=None,
        help=f"Where to write the kubeconfig (default: {config.OUTPUT_DIR}/<name>-kubeconfig.yaml).",
    )
    parser.add_argument(
        "--existing",
        action="store_true",
        help="Do not create anything on the cluster, only generate the kubeconfig.",
    )
    parser.add_argument(
        "-y",
        "--yes",
        action="store_true",
        help="Do not ask for confirmation of the target cluster.",
    )
    return parser.parse_args(argv)


def run(args, input_fn: Callable[[str], str] = input) -> Optional[Path]:
    """Provision the principal and write its kubeconfig. Returns None when the operator stops."""
    if args.descriptor:
        descriptor = load_descriptor(args.descriptor)
    else:
        descriptor = prompt_for_descriptor(input_fn)
        if descriptor is None:
            return None
    if args.existing and not descriptor.existing:
        descriptor = replace(descriptor, existing=True)

    with ClusterConnection.from_kubeconfig(
        args.kubeconfig, args.context, config.REQUEST_TIMEOUT_SECONDS
    ) as connection:
        context, server = connection.admin_cluster()
        if not args.yes and not confirm_cluster(context, server, input_fn):
            print("No changes will be made!")
            return None
        check_reachable(server, config.REACHABILITY_TIMEOUT_SECONDS)

        if descriptor.existing:
            logging.info(f"{descriptor.identity} is marked as existing, nothing will be created")
        else:
            reconcile(connection, descriptor)
        kubeconfig = assemble_kubeconfig(connection, descriptor)

    return write_kubeconfig(kubeconfig, args.output or default_output_path(descriptor.identity))


def main(argv=None):
    args = parse_args(argv)
    configure_logging()
    try:
        run(args)
    except KcgenError as err:
        logging.critical(f"{err}")
        sys.exit(1)


if __name__ == "__main__":
    main()
