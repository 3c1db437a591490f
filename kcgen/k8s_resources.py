import os

import jinja2
import yaml

from kcgen import config
from kcgen.descriptor import PrincipalDescriptor, PrincipalKind


TEMPLATE_DIR = os.path.join(os.path.dirname(__file__), "templates")

# The template used for every kind of object kcgen can create
RESOURCE_TEMPLATES = {
    "Namespace": "namespace.yaml",
    "ServiceAccount": "service_account.yaml",
    "Role": "role.yaml",
    "RoleBinding": "role_binding.yaml",
    "ClusterRole": "cluster_role.yaml",
    "ClusterRoleBinding": "cluster_role_binding.yaml",
}


def role_binding_name(role):
    return f"{role}-rolebinding"


def cluster_role_binding_name(cluster_role):
    return f"{cluster_role}-clusterrolebinding"


def get_subject(descriptor: PrincipalDescriptor, namespace=None):
    """
    The RBAC subject for the principal. Service accounts always live in the
    home namespace when bound cluster wide, users only carry the namespace
    of the binding they appear in.
    """
    if descriptor.kind is PrincipalKind.ServiceAccount:
        return {
            "kind": PrincipalKind.ServiceAccount.value,
            "name": descriptor.identity,
            "namespace": namespace or descriptor.home_namespace,
        }
    subject = {
        "kind": PrincipalKind.User.value,
        "apiGroup": config.RBAC_API_GROUP,
        "name": descriptor.identity,
    }
    if namespace:
        subject["namespace"] = namespace
    return subject


def get_labels():
    return {config.MANAGED_BY_LABEL_KEY: config.MANAGED_BY_LABEL_VALUE}


def render_template(template_file, template_values):
    """
    Render a template given the template strings and return
    a python dictionary specifying the resource.
    """
    tmpl_loader = jinja2.FileSystemLoader(TEMPLATE_DIR)
    tmpl_env = jinja2.Environment(loader=tmpl_loader, undefined=jinja2.StrictUndefined)
    yaml_string = tmpl_env.get_template(template_file).render(**template_values)
    return yaml.safe_load(yaml_string)


def get_resource_spec(kind, **values):
    """
    Create the specification (as a nested python dictionary) of a single
    object kcgen manages. No validation of names happens here, we rely on
    the API server for that.
    """
    template_values = {
        "labels": get_labels(),
        "rbac_api_group": config.RBAC_API_GROUP,
        **values,
    }
    return render_template(RESOURCE_TEMPLATES[kind], template_values)
