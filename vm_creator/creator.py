"""
VM Creator

Runs the clone workflow end to end over an open vCenter session:
datacenter scope -> cluster -> resource pool -> datastore -> network ->
template -> folder -> NIC translation -> clone. Each step depends on the
previous one, so the first failure ends the run.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from vm_creator.cancel import CancelToken
from vm_creator.config import Settings
from vm_creator.errors import CloneCancelledError, SubmissionFailedError, VMCreatorError
from vm_creator.mixins import CloneMixin, InspectorMixin, InventoryMixin, NetworkBackingMixin
from vm_creator.models import CloneFailure, CloneOutcome
from vm_creator.utils import _normalize_unicode, format_elapsed, utc_now_iso

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


@dataclass(frozen=True)
class CloneParameters:
    """Already-parsed invocation parameters for one clone run"""
    datacenter: str
    cluster: str
    template: str
    vm_name: str
    datastore: str
    network: str
    folder: str
    resource_pool: Optional[str] = None


@dataclass
class RunSummary:
    """Outcome of a run plus the timing data the caller logs"""
    outcome: CloneOutcome
    started_at: str
    elapsed: float = 0.0
    timings: Dict[str, float] = field(default_factory=dict)
    degraded_adapters: int = 0

    @property
    def ok(self) -> bool:
        return self.outcome.ok


class VMCreator(InventoryMixin, NetworkBackingMixin, CloneMixin, InspectorMixin):
    """Template clone workflow over one vCenter session and one datacenter scope"""

    def __init__(self, si: Any, settings: Settings, cancel_token: Optional[CancelToken] = None):
        self.si = si
        self.settings = settings
        self.cancel_token = cancel_token or CancelToken()
        self.search_scope = None
        self.timings: Dict[str, float] = {}

    def log(self, message: str, level: str = "INFO"):
        """Log through the module logger; level is INFO, WARN, ERROR or DEBUG"""
        logger.log(_LOG_LEVELS.get(level.upper(), logging.INFO), _normalize_unicode(message))

    @contextmanager
    def _step(self, name: str):
        """Time a workflow step and tag any workflow error with the step name."""
        start = time.monotonic()
        try:
            yield
        except VMCreatorError as e:
            if e.step is None:
                e.step = name
            raise
        finally:
            self.timings[name] = time.monotonic() - start

    def run_clone(self, params: CloneParameters) -> RunSummary:
        """
        Resolve everything, translate the NICs and clone.

        Returns:
            RunSummary whose outcome is CloneSuccess, or CloneFailure naming
            the step that failed

        Raises:
            SubmissionFailedError: the clone task could not be started
            CloneCancelledError: the cancel token tripped before the end
        """
        self.timings = {}
        started_at = utc_now_iso()
        start = time.monotonic()
        degraded = 0

        try:
            with self._step("datacenter"):
                self.resolve_datacenter(params.datacenter)
            self.log("Proceeding with VM cloning logic...")
            with self._step("cluster"):
                cluster = self.resolve_cluster(params.cluster)
            with self._step("resource_pool"):
                pool = self.resolve_resource_pool(params.resource_pool, cluster)
            with self._step("datastore"):
                datastore = self.resolve_datastore(params.datastore)
            with self._step("network"):
                network = self.resolve_network(params.network)
            with self._step("template"):
                template = self.resolve_template(params.template)
            with self._step("folder"):
                folder = self.resolve_folder(params.folder)
            with self._step("network_translation"):
                edits = self.translate_network(network, template)
                degraded = sum(1 for edit in edits if edit.degraded)
            with self._step("clone"):
                request = self.build_clone_request(template, folder, params.vm_name, datastore, pool, edits)
                outcome = self.clone_vm(request)
        except (SubmissionFailedError, CloneCancelledError) as e:
            self.log(f"✗ {e.step or 'clone'} step failed: {e}", "ERROR")
            raise
        except VMCreatorError as e:
            self.log(f"✗ {e.step} step failed: {e}", "ERROR")
            outcome = CloneFailure(message=e.message, platform_detail=e.platform_detail, step=e.step)

        elapsed = time.monotonic() - start
        summary = RunSummary(outcome=outcome, started_at=started_at, elapsed=elapsed,
                             timings=dict(self.timings), degraded_adapters=degraded)
        if degraded:
            self.log(f"{degraded} adapter(s) were edited through the generic VirtualEthernetCard type; "
                     f"verify their network on the new VM.", "WARN")
        self.log(f"Clone workflow finished ({'success' if summary.ok else 'failed'}) "
                 f"in {format_elapsed(elapsed)}.")
        return summary

    def run_inspect(self, datacenter: str, vm_name: str) -> List[str]:
        """Scope to the datacenter and describe the NICs of an existing VM."""
        self.timings = {}
        with self._step("datacenter"):
            self.resolve_datacenter(datacenter)
        with self._step("inspect"):
            return self.inspect_vm_network(vm_name)
