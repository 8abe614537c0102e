"""Control-plane calls used to build and tear down benchmark fixtures."""

from __future__ import annotations

import ipaddress
import logging
import random
import string
from typing import Any

from .client import CloudStackClient, CloudStackError
from .config import ProvisionSettings

LOGGER = logging.getLogger("csbench.resources")

RESOURCE_TYPES = range(0, 12)
UNLIMITED = -1
DOMAIN_ADMIN_ACCOUNT_TYPE = 2


def random_name(prefix: str, length: int = 10) -> str:
    return f"{prefix}-" + "".join(random.choices(string.ascii_letters, k=length))


def create_domain(client: CloudStackClient, parent_domain_id: str) -> dict[str, Any]:
    try:
        result = client.request(
            "createDomain",
            name=random_name("Domain"),
            parentdomainid=parent_domain_id,
        )
    except CloudStackError as exc:
        LOGGER.warning("Failed to create domain due to: %s", exc)
        raise
    return result["domain"]


def delete_domain(client: CloudStackClient, domain_id: str) -> bool:
    try:
        result = client.request("deleteDomain", id=domain_id, cleanup=True)
    except CloudStackError as exc:
        LOGGER.warning("Failed to delete domain with id %s due to %s", domain_id, exc)
        return False
    return bool(result.get("success", False))


def create_account(client: CloudStackClient, domain_id: str) -> dict[str, Any]:
    name = random_name("Account")
    try:
        result = client.request(
            "createAccount",
            email="test@test",
            firstname=name,
            lastname="Account",
            password="password",
            username=name,
            domainid=domain_id,
            accounttype=DOMAIN_ADMIN_ACCOUNT_TYPE,
        )
    except CloudStackError as exc:
        LOGGER.warning("Failed to create account due to: %s", exc)
        raise
    return result["account"]


def list_subdomains(client: CloudStackClient, domain_id: str, page_size: int) -> list[dict[str, Any]]:
    # TODO: follow the "count" field to fetch the pages after the first one
    try:
        result = client.request("listDomainChildren", id=domain_id, page=1, pagesize=page_size)
    except CloudStackError as exc:
        LOGGER.warning("Failed to list domains due to: %s", exc)
        return []
    return list(result.get("domain", []))


def list_accounts(client: CloudStackClient, domain_id: str, page_size: int) -> list[dict[str, Any]]:
    try:
        result = client.request("listAccounts", domainid=domain_id, page=1, pagesize=page_size)
    except CloudStackError as exc:
        LOGGER.warning("Failed to list accounts due to: %s", exc)
        return []
    return list(result.get("account", []))


def update_limits(client: CloudStackClient, account: dict[str, Any]) -> bool:
    for resource_type in RESOURCE_TYPES:
        try:
            client.request(
                "updateResourceLimit",
                resourcetype=resource_type,
                account=account["name"],
                domainid=account["domainid"],
                max=UNLIMITED,
            )
        except CloudStackError as exc:
            LOGGER.warning("Failed to update resource limit due to: %s", exc)
            return False
    return True


def network_addresses(cidr: str, index: int) -> dict[str, str]:
    """Gateway and address range of the ``index``-th /24 inside ``cidr``."""
    base = ipaddress.ip_network(cidr, strict=False)
    if base.prefixlen > 24:
        raise ValueError(f"network_cidr {cidr} is smaller than a /24")
    subnets = 2 ** (24 - base.prefixlen)
    if index >= subnets:
        raise ValueError(f"network_cidr {cidr} has no room for network #{index + 1}")

    subnet = ipaddress.ip_network((int(base.network_address) + index * 256, 24))
    hosts = list(subnet.hosts())
    return {
        "gateway": str(hosts[0]),
        "netmask": str(subnet.netmask),
        "startip": str(hosts[1]),
        "endip": str(hosts[-1]),
    }


def create_network(
    client: CloudStackClient,
    domain_id: str,
    index: int,
    settings: ProvisionSettings,
) -> dict[str, Any]:
    name = random_name("Network")
    try:
        result = client.request(
            "createNetwork",
            name=name,
            displaytext=name,
            domainid=domain_id,
            zoneid=settings.zone_id,
            networkofferingid=settings.network_offering_id,
            acltype="Domain",
            vlan=settings.vlan_start + index,
            **network_addresses(settings.network_cidr, index),
        )
    except CloudStackError as exc:
        LOGGER.warning("Failed to create network due to: %s", exc)
        raise
    return result["network"]


def list_networks(client: CloudStackClient, domain_id: str, page_size: int) -> list[dict[str, Any]]:
    try:
        result = client.request("listNetworks", domainid=domain_id, page=1, pagesize=page_size)
    except CloudStackError as exc:
        LOGGER.warning("Failed to list networks due to: %s", exc)
        return []
    return list(result.get("network", []))


def deploy_vm(
    client: CloudStackClient,
    domain_id: str,
    network_id: str,
    account_name: str,
    settings: ProvisionSettings,
) -> dict[str, Any]:
    name = random_name("Vm")
    try:
        result = client.request(
            "deployVirtualMachine",
            name=name,
            displayname=name,
            domainid=domain_id,
            account=account_name,
            networkids=network_id,
            zoneid=settings.zone_id,
            serviceofferingid=settings.service_offering_id,
            templateid=settings.template_id,
        )
    except CloudStackError as exc:
        LOGGER.warning("Failed to deploy vm due to: %s", exc)
        raise
    return result["virtualmachine"]


def list_vms(client: CloudStackClient, domain_id: str, page_size: int) -> list[dict[str, Any]]:
    try:
        result = client.request("listVirtualMachines", domainid=domain_id, page=1, pagesize=page_size)
    except CloudStackError as exc:
        LOGGER.warning("Failed to list VMs due to: %s", exc)
        return []
    return list(result.get("virtualmachine", []))


def create_volume(
    client: CloudStackClient,
    domain_id: str,
    account_name: str,
    settings: ProvisionSettings,
) -> dict[str, Any]:
    try:
        result = client.request(
            "createVolume",
            name=random_name("Volume"),
            domainid=domain_id,
            account=account_name,
            zoneid=settings.zone_id,
            diskofferingid=settings.disk_offering_id,
        )
    except CloudStackError as exc:
        LOGGER.warning("Failed to create volume due to: %s", exc)
        raise
    return result["volume"]


def attach_volume(client: CloudStackClient, volume_id: str, vm_id: str) -> dict[str, Any]:
    try:
        result = client.request("attachVolume", id=volume_id, virtualmachineid=vm_id)
    except CloudStackError as exc:
        LOGGER.warning("Failed to attach volume due to: %s", exc)
        raise
    return result["volume"]
