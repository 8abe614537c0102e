from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Sequence

from .client import CloudStackClient
from .collector import outcomes_dataframe
from .config import Settings
from .pool import DEFAULT_WORKERS, Outcome
from .provision import run_tasks

LOGGER = logging.getLogger("csbench.apirunner")

DEFAULT_REPORT_ROOT = Path("report")

LIST_APIS: dict[str, dict[str, Any]] = {
    "listDomains": {"listall": True},
    "listAccounts": {"listall": True},
    "listUsers": {"listall": True},
    "listNetworks": {"listall": True},
    "listVirtualMachines": {"listall": True},
    "listVolumes": {"listall": True},
    "listTemplates": {"listall": True, "templatefilter": "all"},
    "listServiceOfferings": {},
    "listZones": {},
    "listHosts": {},
}


@dataclass
class BenchmarkSummary:
    apis: int = 0
    successful_apis: int = 0
    failed_apis: int = 0
    total_time_s: float = 0.0

    def record(self, outcomes: Sequence[Outcome]) -> None:
        self.apis += 1
        if outcomes and all(outcome.success for outcome in outcomes):
            self.successful_apis += 1
        else:
            self.failed_apis += 1
        if outcomes:
            self.total_time_s += sum(outcome.duration_s for outcome in outcomes) / len(outcomes)

    @property
    def average_time_s(self) -> float:
        if self.apis == 0:
            return 0.0
        return self.total_time_s / self.apis


def _call_api(client: CloudStackClient, api: str, params: Mapping[str, Any]) -> bool:
    client.request(api, **params)
    return True


class ApiRunner:
    """Times the list APIs of the management server for one profile at a time."""

    def __init__(
        self,
        settings: Settings,
        report_root: Path = DEFAULT_REPORT_ROOT,
        workers: int = DEFAULT_WORKERS,
        dbprofile: int = 0,
        apis: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> None:
        self._settings = settings
        self._report_dir = Path(report_root) / settings.host
        self._workers = workers
        self._dbprofile = dbprofile
        self._apis = dict(apis) if apis is not None else LIST_APIS
        self.summary = BenchmarkSummary()

    @property
    def report_dir(self) -> Path:
        return self._report_dir

    def run_profile(self, profile_name: str, client: CloudStackClient) -> dict[str, list[Outcome]]:
        iterations = self._settings.iterations
        results: dict[str, list[Outcome]] = {}

        for api, extra in self._apis.items():
            params = dict(extra)
            if self._settings.page > 0:
                params["page"] = self._settings.page
                params["pagesize"] = self._settings.pagesize

            LOGGER.info("Running %s %d times as %s", api, iterations, profile_name)
            tasks = (functools.partial(_call_api, client, api, params) for _ in range(iterations))
            outcomes = run_tasks(tasks, iterations, self._workers, "Ran", f"{api} calls")
            results[api] = outcomes
            self.summary.record(outcomes)
            self._write_api_report(profile_name, api, outcomes)

        return results

    def _write_api_report(self, profile_name: str, api: str, outcomes: list[Outcome]) -> Path | None:
        df = outcomes_dataframe({api: outcomes})
        df.insert(0, "profile", profile_name)
        df.insert(1, "dbprofile", self._dbprofile)
        path = self._report_dir / f"{profile_name}__{api}.csv"
        try:
            self._report_dir.mkdir(parents=True, exist_ok=True)
            df.to_csv(path, index=False)
        except OSError as exc:
            LOGGER.error("Error creating file %s: %s", path, exc)
            return None
        LOGGER.info("Saved %d %s results to %s", len(df), api, path)
        return path
