import ipaddress
import re

STACK_PREFIX_PATTERN = re.compile(r"^[a-z][a-z0-9-]*$")


def stack_name(prefix: str, index: int) -> str:
    """
    Returns the name of the `index`-th lab stack, e.g. `lab01`.
    Stack indexes start at 1, index 0 is reserved for the client stack.
    """

    if not STACK_PREFIX_PATTERN.match(prefix):
        raise ValueError(
            f"name prefix '{prefix}' is invalid. Use lower-case letters, numbers and hyphens, starting with a letter."  # noqa: E501
        )
    if index < 1:
        raise ValueError(f"stack index must be >= 1, got {index}")
    return f"{prefix}{index:02d}"


def resource_name(stack: str, kind: str) -> str:
    return f"{stack}-{kind}"


def max_stack_count(base_cidr: str, prefix: int = 16) -> int:
    base = ipaddress.ip_network(base_cidr)
    if prefix < base.prefixlen:
        raise ValueError(
            f"/{prefix} blocks do not fit inside {base_cidr}"
        )
    # Block 0 belongs to the client stack.
    return 2 ** (prefix - base.prefixlen) - 1


def stack_address_space(base_cidr: str, index: int, prefix: int = 16) -> str:
    """
    Carves the `index`-th /`prefix` block out of `base_cidr`.

    With the default 10.0.0.0/8 base, stack 1 gets 10.1.0.0/16, stack 2 gets
    10.2.0.0/16 and the client stack (index 0) gets 10.0.0.0/16.
    """

    available = max_stack_count(base_cidr, prefix)
    if index < 0 or index > available:
        raise ValueError(
            f"address block {index} is out of range for {base_cidr}: only {available} /{prefix} lab blocks are available"  # noqa: E501
        )

    base = ipaddress.ip_network(base_cidr)
    block_size = 2 ** (base.max_prefixlen - prefix)
    network = ipaddress.ip_network(
        (int(base.network_address) + index * block_size, prefix)
    )
    return str(network)


def subnet_prefix(
    address_space: str, new_prefix: int = 24, position: int = 0
) -> str:
    network = ipaddress.ip_network(address_space)
    if new_prefix < network.prefixlen:
        raise ValueError(
            f"/{new_prefix} subnets do not fit inside {address_space}"
        )
    count = 2 ** (new_prefix - network.prefixlen)
    if position < 0 or position >= count:
        raise ValueError(
            f"subnet position {position} is out of range for {address_space} ({count} /{new_prefix} subnets)"  # noqa: E501
        )
    subnet = ipaddress.ip_network(
        (
            int(network.network_address)
            + position * 2 ** (network.max_prefixlen - new_prefix),
            new_prefix,
        )
    )
    return str(subnet)


def get_my_public_ip(timeout: float = 10) -> str:
    import requests

    response = requests.get("https://api.ipify.org", timeout=timeout)
    response.raise_for_status()
    my_ip = ipaddress.ip_address(response.text.strip())
    return f"{my_ip}/{my_ip.max_prefixlen}"
