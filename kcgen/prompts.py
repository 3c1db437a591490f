from typing import Callable, Optional

from kcgen.descriptor import PrincipalDescriptor, PrincipalKind, load_descriptor

YES_ANSWERS = ["y", "yes"]


def _ask(question, input_fn: Callable[[str], str]) -> str:
    return input_fn(question).strip()


def confirm_cluster(context, server, input_fn: Callable[[str], str] = input) -> bool:
    """Give the operator a chance to stop before anything is changed."""
    print(f"The current context in the admin kubeconfig is set to {context} with a server of {server}")
    return _ask("Is this OK? (y/N) ", input_fn).lower() in YES_ANSWERS


def prompt_for_descriptor(input_fn: Callable[[str], str] = input) -> Optional[PrincipalDescriptor]:
    """
    Interactively decide what to do when no descriptor file is given: load a
    descriptor for a new principal, or only fetch the kubeconfig of an
    existing service account. Returns None when the operator wants neither.
    """
    if _ask("Would you like to create a new user? (yes/no): ", input_fn).lower() in YES_ANSWERS:
        path = _ask("Please enter the path to the config file: ", input_fn)
        print(f"Config path set to: {path}")
        return load_descriptor(path)

    if _ask("Would you like to get the config file for an existing user? (yes/no): ", input_fn).lower() in YES_ANSWERS:
        name = _ask("What is the service account name? ", input_fn)
        namespace = _ask("What is the namespace of the service account? ", input_fn)
        return PrincipalDescriptor(
            identity=name,
            kind=PrincipalKind.ServiceAccount,
            namespaces=[namespace] if namespace else [],
            existing=True,
        )

    print("Bye!")
    return None
