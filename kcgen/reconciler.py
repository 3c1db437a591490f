import json
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from kcgen.cluster import ClusterConnection
from kcgen.descriptor import PrincipalDescriptor, PrincipalKind
from kcgen.k8s_resources import (
    cluster_role_binding_name,
    get_resource_spec,
    get_subject,
    role_binding_name,
)
from kcgen.reconcile_outcome_enum import ReconcileOutcomeEnum


@dataclass
class ReconcileResult:
    kind: str
    name: str
    namespace: Optional[str]
    outcome: ReconcileOutcomeEnum
    error: Optional[str] = None

    def describe(self):
        return describe_object(self.kind, self.name, self.namespace)


@dataclass
class ReconcileReport:
    """The outcome of every object touched by one reconciliation, in order."""

    results: List[ReconcileResult] = field(default_factory=list)

    def add(self, result: ReconcileResult):
        self.results.append(result)

    def with_outcome(self, outcome: ReconcileOutcomeEnum) -> List[ReconcileResult]:
        return [result for result in self.results if result.outcome is outcome]

    @property
    def created(self):
        return self.with_outcome(ReconcileOutcomeEnum.Created)

    @property
    def existing(self):
        return self.with_outcome(ReconcileOutcomeEnum.Existing)

    @property
    def failed(self):
        return self.with_outcome(ReconcileOutcomeEnum.Failed)

    def find(self, kind, name, namespace=None) -> List[ReconcileResult]:
        return [
            result
            for result in self.results
            if result.kind == kind and result.name == name and result.namespace == namespace
        ]


def describe_object(kind, name, namespace=None):
    if namespace is None:
        return f"{kind} {name}"
    return f"{kind} {name} in namespace {namespace}"


def error_reason(err):
    """A one line explanation of a failed API call."""
    if not isinstance(err, ApiException):
        return f"{type(err).__name__}: {err}"
    reason = f"({err.status}) {err.reason}"
    try:
        message = json.loads(err.body)["message"]
    except (TypeError, ValueError, KeyError):
        return reason
    return f"{reason}: {message}"


def ensure_exists(
    kind: str,
    name: str,
    read: Callable[[], object],
    create: Callable[[dict], object],
    build: Callable[[], dict],
    namespace: Optional[str] = None,
) -> ReconcileResult:
    """
    Create an object unless it can already be read from the cluster.

    Only a 404 on the read leads to a create, any other failure is logged and
    reported without touching the cluster. A 409 on the create means someone
    else created the object in the meantime and counts as already existing.
    """
    description = describe_object(kind, name, namespace)
    try:
        read()
    except ApiException as err:
        if err.status != 404:
            logging.error(f"Failed to check whether {description} exists: {error_reason(err)}")
            return ReconcileResult(kind, name, namespace, ReconcileOutcomeEnum.Failed, error_reason(err))
    except HTTPError as err:
        logging.error(f"Failed to check whether {description} exists: {error_reason(err)}")
        return ReconcileResult(kind, name, namespace, ReconcileOutcomeEnum.Failed, error_reason(err))
    else:
        logging.info(f"{description} already exists, skipping")
        return ReconcileResult(kind, name, namespace, ReconcileOutcomeEnum.Existing)

    try:
        create(build())
    except ApiException as err:
        if err.status == 409:
            logging.info(f"{description} was created concurrently, skipping")
            return ReconcileResult(kind, name, namespace, ReconcileOutcomeEnum.Existing)
        logging.error(f"Failed to create {description}: {error_reason(err)}")
        return ReconcileResult(kind, name, namespace, ReconcileOutcomeEnum.Failed, error_reason(err))
    except HTTPError as err:
        logging.error(f"Failed to create {description}: {error_reason(err)}")
        return ReconcileResult(kind, name, namespace, ReconcileOutcomeEnum.Failed, error_reason(err))

    logging.info(f"Created {description}")
    return ReconcileResult(kind, name, namespace, ReconcileOutcomeEnum.Created)


def reconcile(connection: ClusterConnection, descriptor: PrincipalDescriptor) -> ReconcileReport:
    """
    Make sure all namespaces and RBAC objects the descriptor asks for exist
    and bind the principal. Objects are handled one by one in a fixed order,
    a failure on one of them never stops the others.
    """
    core = connection.core
    rbac = connection.rbac
    opts = connection.request_options
    report = ReconcileReport()
    logging.info(f"Reconciling {descriptor.kind.value} {descriptor.identity}")

    for namespace in descriptor.namespaces:
        report.add(
            ensure_exists(
                "Namespace",
                namespace,
                read=lambda: core.read_namespace(name=namespace, **opts),
                create=lambda body: core.create_namespace(body=body, **opts),
                build=lambda: get_resource_spec("Namespace", name=namespace),
            )
        )

    if descriptor.kind is PrincipalKind.ServiceAccount:
        for namespace in descriptor.namespaces:
            report.add(
                ensure_exists(
                    "ServiceAccount",
                    descriptor.identity,
                    read=lambda: core.read_namespaced_service_account(
                        name=descriptor.identity, namespace=namespace, **opts
                    ),
                    create=lambda body: core.create_namespaced_service_account(
                        namespace=namespace, body=body, **opts
                    ),
                    build=lambda: get_resource_spec(
                        "ServiceAccount", name=descriptor.identity, namespace=namespace
                    ),
                    namespace=namespace,
                )
            )

    for namespace in descriptor.namespaces:
        for role in descriptor.roles:
            report.add(
                ensure_exists(
                    "Role",
                    role,
                    read=lambda: rbac.read_namespaced_role(name=role, namespace=namespace, **opts),
                    create=lambda body: rbac.create_namespaced_role(
                        namespace=namespace, body=body, **opts
                    ),
                    build=lambda: get_resource_spec("Role", name=role, namespace=namespace),
                    namespace=namespace,
                )
            )

    for namespace in descriptor.namespaces:
        for role in descriptor.roles:
            binding_name = role_binding_name(role)
            report.add(
                ensure_exists(
                    "RoleBinding",
                    binding_name,
                    read=lambda: rbac.read_namespaced_role_binding(
                        name=binding_name, namespace=namespace, **opts
                    ),
                    create=lambda body: rbac.create_namespaced_role_binding(
                        namespace=namespace, body=body, **opts
                    ),
                    build=lambda: get_resource_spec(
                        "RoleBinding",
                        name=binding_name,
                        namespace=namespace,
                        role=role,
                        subject=get_subject(descriptor, namespace),
                    ),
                    namespace=namespace,
                )
            )

    for cluster_role in descriptor.cluster_roles:
        report.add(
            ensure_exists(
                "ClusterRole",
                cluster_role,
                read=lambda: rbac.read_cluster_role(name=cluster_role, **opts),
                create=lambda body: rbac.create_cluster_role(body=body, **opts),
                build=lambda: get_resource_spec("ClusterRole", name=cluster_role),
            )
        )

    for cluster_role in descriptor.cluster_roles:
        binding_name = cluster_role_binding_name(cluster_role)
        report.add(
            ensure_exists(
                "ClusterRoleBinding",
                binding_name,
                read=lambda: rbac.read_cluster_role_binding(name=binding_name, **opts),
                create=lambda body: rbac.create_cluster_role_binding(body=body, **opts),
                build=lambda: get_resource_spec(
                    "ClusterRoleBinding",
                    name=binding_name,
                    cluster_role=cluster_role,
                    subject=get_subject(descriptor),
                ),
            )
        )

    logging.info(
        f"Reconciliation of {descriptor.identity} finished: {len(report.created)} created, "
        f"{len(report.existing)} already present, {len(report.failed)} failed"
    )
    for result in report.failed:
        logging.warning(f"Could not reconcile {result.describe()}: {result.error}")
    return report
