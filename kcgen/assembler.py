import base64
import binascii
import logging

import yaml
from kubernetes import client as k8s_client
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from kcgen import config
from kcgen.certificates import inspect_client_certificate
from kcgen.cluster import ClusterConnection
from kcgen.config_types import EndpointConfig, EndpointSource, TokenConfig, TokenSource
from kcgen.descriptor import PrincipalDescriptor, PrincipalKind
from kcgen.errors import AssemblyError, ClusterConnectionError
from kcgen.kubeconfig import AuthInfo, KubeConfig
from kcgen.reconciler import describe_object, error_reason


def assemble_kubeconfig(
    connection: ClusterConnection,
    descriptor: PrincipalDescriptor,
    token_config: TokenConfig | None = None,
    endpoint_config: EndpointConfig | None = None,
) -> KubeConfig:
    """
    Build the kubeconfig of the principal from the material in the descriptor
    and in the cluster. Anything missing raises an AssemblyError, there is no
    use for a kubeconfig without credentials.
    """
    if descriptor.kind is PrincipalKind.User:
        kubeconfig = assemble_user_kubeconfig(connection, descriptor)
    else:
        kubeconfig = assemble_service_account_kubeconfig(
            connection,
            descriptor,
            token_config or config.TOKEN,
            endpoint_config or config.ENDPOINT,
        )
    logging.info(f"Successfully generated kubeconfig for {descriptor.kind.value} {descriptor.identity}")
    return kubeconfig


def _read(kind, name, namespace, read_fn):
    """Read a cluster object the kubeconfig cannot do without."""
    description = describe_object(kind, name, namespace)
    try:
        return read_fn()
    except ApiException as err:
        if err.status == 404:
            raise AssemblyError(f"{description} not found", artifact=description) from err
        raise AssemblyError(f"Failed to read {description}: {error_reason(err)}", artifact=description) from err
    except HTTPError as err:
        raise AssemblyError(f"Failed to read {description}: {error_reason(err)}", artifact=description) from err


def read_root_ca(connection: ClusterConnection, namespace) -> bytes:
    """The cluster root CA as published in the kube-root-ca.crt config map, PEM encoded."""
    config_map = _read(
        "ConfigMap",
        config.ROOT_CA_CONFIGMAP_NAME,
        namespace,
        lambda: connection.core.read_namespaced_config_map(
            name=config.ROOT_CA_CONFIGMAP_NAME, namespace=namespace, **connection.request_options
        ),
    )
    ca_cert = (config_map.data or {}).get(config.ROOT_CA_CONFIGMAP_KEY)
    if not ca_cert:
        raise AssemblyError(
            f"CA certificate not found in ConfigMap {config.ROOT_CA_CONFIGMAP_NAME} in namespace {namespace}",
            artifact=f"{config.ROOT_CA_CONFIGMAP_NAME}/{config.ROOT_CA_CONFIGMAP_KEY}",
        )
    return ca_cert.encode()


def admin_server(connection: ClusterConnection) -> str:
    try:
        _, server = connection.admin_cluster()
    except ClusterConnectionError as err:
        raise AssemblyError(str(err), artifact=connection.admin_kubeconfig) from err
    return server


def assemble_user_kubeconfig(connection: ClusterConnection, descriptor: PrincipalDescriptor) -> KubeConfig:
    """
    A user authenticates with the client certificate from the descriptor. The
    API server address can only be taken from the admin kubeconfig.
    """
    if descriptor.credential_seed is None:
        raise AssemblyError(
            f"No client certificate and key provided for user {descriptor.identity}",
            artifact="clientcert/clientkey",
        )
    inspect_client_certificate(descriptor.credential_seed, descriptor.identity)
    ca_cert = read_root_ca(connection, config.ROOT_CA_CONFIGMAP_NAMESPACE)
    server = admin_server(connection)

    return KubeConfig.single(
        server=server,
        certificate_authority_data=ca_cert,
        user_name=descriptor.identity,
        auth_info=AuthInfo(
            client_certificate_data=descriptor.credential_seed.client_certificate,
            client_key_data=descriptor.credential_seed.client_key,
        ),
        namespace=descriptor.home_namespace,
    )


def read_secret_token(connection: ClusterConnection, secret_name, service_account, namespace):
    """Token and CA certificate (PEM) stored in a service account token secret."""
    secret = _read(
        "Secret",
        secret_name,
        namespace,
        lambda: connection.core.read_namespaced_secret(
            name=secret_name, namespace=namespace, **connection.request_options
        ),
    )
    data = secret.data or {}
    decoded = {}
    for key in ["token", "ca.crt"]:
        if not data.get(key):
            raise AssemblyError(
                f"{key} not found in secret {secret_name} for service account "
                f"{service_account} in namespace {namespace}",
                artifact=f"{secret_name}/{key}",
            )
        try:
            decoded[key] = base64.b64decode(data[key], validate=True)
        except (binascii.Error, ValueError) as err:
            raise AssemblyError(
                f"{key} in secret {secret_name} is not base64 encoded", artifact=f"{secret_name}/{key}"
            ) from err
    return decoded["token"].decode(), decoded["ca.crt"]


def request_token(connection: ClusterConnection, service_account, namespace, token_config: TokenConfig):
    """Ask the API server for a bound token with a limited lifetime."""
    body = k8s_client.AuthenticationV1TokenRequest(
        spec=k8s_client.V1TokenRequestSpec(
            audiences=token_config.audiences,
            expiration_seconds=token_config.expiration_seconds,
        )
    )
    token_request = _read(
        "TokenRequest",
        service_account,
        namespace,
        lambda: connection.core.create_namespaced_service_account_token(
            name=service_account, namespace=namespace, body=body, **connection.request_options
        ),
    )
    token = token_request.status.token if token_request.status is not None else None
    if not token:
        raise AssemblyError(
            f"The token request for service account {service_account} in namespace {namespace} "
            "returned no token",
            artifact=describe_object("TokenRequest", service_account, namespace),
        )
    logging.info(
        f"Issued a token for service account {service_account} valid until "
        f"{token_request.status.expiration_timestamp}"
    )
    return token


def cluster_info_server(connection: ClusterConnection, endpoint_config: EndpointConfig) -> str:
    """The API server address published by the cluster itself."""
    config_map = _read(
        "ConfigMap",
        endpoint_config.configmap_name,
        endpoint_config.configmap_namespace,
        lambda: connection.core.read_namespaced_config_map(
            name=endpoint_config.configmap_name,
            namespace=endpoint_config.configmap_namespace,
            **connection.request_options,
        ),
    )
    artifact = f"{endpoint_config.configmap_name}/{endpoint_config.configmap_key}"
    raw_kubeconfig = (config_map.data or {}).get(endpoint_config.configmap_key)
    if not raw_kubeconfig:
        raise AssemblyError(f"{artifact} is missing, cannot find the cluster server endpoint", artifact=artifact)
    try:
        server = yaml.safe_load(raw_kubeconfig)["clusters"][0]["cluster"]["server"]
    except (yaml.YAMLError, KeyError, IndexError, TypeError) as err:
        raise AssemblyError(f"Failed to get cluster server endpoint from {artifact}: {err}", artifact=artifact) from err
    if not server:
        raise AssemblyError(f"{artifact} does not name a cluster server endpoint", artifact=artifact)
    return server


def assemble_service_account_kubeconfig(
    connection: ClusterConnection,
    descriptor: PrincipalDescriptor,
    token_config: TokenConfig,
    endpoint_config: EndpointConfig,
) -> KubeConfig:
    """
    A service account authenticates with a bearer token, taken from its token
    secret or issued through the TokenRequest API depending on the token source.
    """
    namespace = descriptor.home_namespace
    name = descriptor.identity
    service_account = _read(
        "ServiceAccount",
        name,
        namespace,
        lambda: connection.core.read_namespaced_service_account(
            name=name, namespace=namespace, **connection.request_options
        ),
    )
    secrets = service_account.secrets or []

    if token_config.source is not TokenSource.TokenRequest and len(secrets) > 0:
        token, ca_cert = read_secret_token(connection, secrets[0].name, name, namespace)
    elif token_config.source is TokenSource.Secret:
        raise AssemblyError(
            f"No secrets found for service account {name} in namespace {namespace}",
            artifact=describe_object("ServiceAccount", name, namespace),
        )
    else:
        token = request_token(connection, name, namespace, token_config)
        ca_cert = read_root_ca(connection, namespace)

    if endpoint_config.source is EndpointSource.AdminKubeconfig:
        server = admin_server(connection)
    else:
        server = cluster_info_server(connection, endpoint_config)

    return KubeConfig.single(
        server=server,
        certificate_authority_data=ca_cert,
        user_name=name,
        auth_info=AuthInfo(token=token),
        namespace=namespace,
    )
