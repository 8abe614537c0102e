from __future__ import annotations

import functools
import logging
import time
from typing import Any, Iterable

from . import resources
from .client import CloudStackClient
from .config import ProvisionSettings, RunOptions, Settings
from .pool import DEFAULT_WORKERS, Outcome, ProgressTracker, Task, WorkerPool

LOGGER = logging.getLogger("csbench.provision")

USABLE_VM_STATES = ("Running", "Stopped")


def run_tasks(
    tasks: Iterable[Task],
    total: int,
    workers: int,
    verb: str,
    noun: str,
) -> list[Outcome]:
    """Submit ``tasks`` to a fresh pool and block until all of them finish."""
    pool = WorkerPool(max_workers=workers)
    progress = ProgressTracker(total, verb=verb, noun=noun)
    started = time.monotonic()

    for task in tasks:
        pool.submit(task)
        progress.tick()

    outcomes = pool.wait()
    LOGGER.info("%s %d %s in %.2f seconds", verb, len(outcomes), noun, time.monotonic() - started)
    return outcomes


def _domain_with_account(client: CloudStackClient, parent_domain_id: str) -> bool:
    domain = resources.create_domain(client, parent_domain_id)
    resources.create_account(client, domain["id"])
    return True


def _network(client: CloudStackClient, domain_id: str, index: int, settings: ProvisionSettings) -> bool:
    resources.create_network(client, domain_id, index, settings)
    return True


def _vm(client: CloudStackClient, network: dict[str, Any], account_name: str, settings: ProvisionSettings) -> bool:
    resources.deploy_vm(client, network["domainid"], network["id"], account_name, settings)
    return True


def _volume(client: CloudStackClient, vm: dict[str, Any], settings: ProvisionSettings) -> bool:
    volume = resources.create_volume(client, vm["domainid"], vm["account"], settings)
    resources.attach_volume(client, volume["id"], vm["id"])
    return True


class Provisioner:
    """Creates benchmark fixtures under the configured parent domain."""

    def __init__(
        self,
        client: CloudStackClient,
        settings: Settings,
        workers: int = DEFAULT_WORKERS,
    ) -> None:
        self._client = client
        self._settings = settings
        self._provision = settings.provision
        self._workers = workers

    def run(self, options: RunOptions) -> dict[str, list[Outcome]]:
        results: dict[str, list[Outcome]] = {}
        if options.domain:
            results["domain"] = self.create_domains()
        if options.limits:
            results["limits"] = self.update_limits()
        if options.network:
            results["network"] = self.create_networks()
        if options.vm:
            results["vm"] = self.create_vms()
        if options.volume:
            results["volume"] = self.create_volumes()
        return results

    def create_domains(self) -> list[Outcome]:
        count = self._provision.num_domains
        parent = self._provision.parent_domain_id
        LOGGER.info("Creating %d domains", count)
        tasks = (functools.partial(_domain_with_account, self._client, parent) for _ in range(count))
        return run_tasks(tasks, count, self._workers, "Created", "domains")

    def update_limits(self) -> list[Outcome]:
        accounts: list[dict[str, Any]] = []
        for domain in self._subdomains():
            accounts.extend(resources.list_accounts(self._client, domain["id"], self._settings.pagesize))

        LOGGER.info("Updating limits for %d accounts", len(accounts))
        tasks = (functools.partial(resources.update_limits, self._client, account) for account in accounts)
        return run_tasks(tasks, len(accounts), self._workers, "Updated limits for", "accounts")

    def create_networks(self) -> list[Outcome]:
        domains = self._subdomains()
        LOGGER.info("Creating %d networks", len(domains))
        tasks = (
            functools.partial(_network, self._client, domain["id"], index, self._provision)
            for index, domain in enumerate(domains)
        )
        return run_tasks(tasks, len(domains), self._workers, "Created", "networks")

    def create_vms(self) -> list[Outcome]:
        domains = self._subdomains()
        LOGGER.info("Fetching accounts and networks for %d subdomains", len(domains))

        account_by_domain: dict[str, str] = {}
        networks: list[dict[str, Any]] = []
        for domain in domains:
            for account in resources.list_accounts(self._client, domain["id"], self._settings.pagesize):
                account_by_domain[account["domainid"]] = account["name"]
            networks.extend(resources.list_networks(self._client, domain["id"], self._settings.pagesize))

        usable = [network for network in networks if network["domainid"] in account_by_domain]
        if len(usable) < len(networks):
            LOGGER.warning("Skipping %d networks without an account in their domain", len(networks) - len(usable))

        per_network = self._provision.num_vms
        total = len(usable) * per_network
        LOGGER.info("Creating %d VMs", total)
        tasks = (
            functools.partial(
                _vm, self._client, network, account_by_domain[network["domainid"]], self._provision
            )
            for network in usable
            for _ in range(per_network)
        )
        return run_tasks(tasks, total, self._workers, "Created", "VMs")

    def create_volumes(self) -> list[Outcome]:
        vms: list[dict[str, Any]] = []
        for domain in self._subdomains():
            vms.extend(resources.list_vms(self._client, domain["id"], self._settings.pagesize))

        usable = [vm for vm in vms if vm.get("state") in USABLE_VM_STATES]
        if len(usable) < len(vms):
            LOGGER.warning("Found %d VMs in unsuitable state", len(vms) - len(usable))

        per_vm = self._provision.num_volumes
        total = len(usable) * per_vm
        LOGGER.info("Creating %d volumes", total)
        tasks = (
            functools.partial(_volume, self._client, vm, self._provision)
            for vm in usable
            for _ in range(per_vm)
        )
        return run_tasks(tasks, total, self._workers, "Created", "volumes")

    def teardown(self) -> int:
        domains = self._subdomains()
        LOGGER.info("Deleting %d domains", len(domains))
        deleted = 0
        for domain in domains:
            if resources.delete_domain(self._client, domain["id"]):
                deleted += 1
        LOGGER.info("Deleted %d of %d domains", deleted, len(domains))
        return deleted

    def _subdomains(self) -> list[dict[str, Any]]:
        parent = self._provision.parent_domain_id
        LOGGER.info("Fetching subdomains for domain %s", parent)
        return resources.list_subdomains(self._client, parent, self._settings.pagesize)
