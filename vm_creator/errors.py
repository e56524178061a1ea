"""
vCenter VM Creator Errors

Exception hierarchy for the clone workflow plus the mapping of vCenter/vModl
fault types to operator-facing messages.
"""

import re
from typing import Any, Dict, Optional, Tuple


class VMCreatorError(Exception):
    """Base exception for the clone workflow"""

    def __init__(self, message: str, error_code: Optional[str] = None,
                 platform_detail: Optional[str] = None, step: Optional[str] = None):
        self.message = message
        self.error_code = error_code
        self.platform_detail = platform_detail
        self.step = step
        super().__init__(self.message)


class ConfigurationError(VMCreatorError):
    """Raised when required connection settings are missing or malformed"""

    def __init__(self, message: str):
        super().__init__(message, error_code="CONFIGURATION")


class VCenterConnectionError(VMCreatorError):
    """Raised when the vCenter session cannot be established"""

    def __init__(self, host: str, reason: str):
        super().__init__(f"Failed to connect to vCenter {host}: {reason}",
                         error_code="CONNECTION_FAILED", platform_detail=reason)
        self.host = host


class TransportError(VMCreatorError):
    """Raised when a vCenter API call fails at the transport or fault level"""

    def __init__(self, operation: str, error: Exception):
        friendly, info = parse_vcenter_error(error)
        super().__init__(f"{operation} failed: {friendly}", error_code="TRANSPORT",
                         platform_detail=info.get('original_message') if info else None)
        self.operation = operation
        self.original_error = error


class ScopeNotEstablishedError(VMCreatorError):
    """Raised when an inventory lookup runs before the datacenter scope exists"""

    def __init__(self, kind: str):
        super().__init__(f"Cannot resolve {kind}: datacenter search scope has not been established",
                         error_code="NO_SCOPE")


class ScopeConflictError(VMCreatorError):
    """Raised when a second, different datacenter scope is requested"""

    def __init__(self, active: str, requested: str):
        super().__init__(f"Search scope already bound to datacenter '{active}', refusing '{requested}'",
                         error_code="SCOPE_CONFLICT")


class ObjectNotFoundError(VMCreatorError):
    """Raised when a named inventory object does not exist in scope"""

    def __init__(self, kind: str, name: str, scope: Optional[str] = None):
        where = f" in datacenter '{scope}'" if scope else ""
        super().__init__(f"{kind} '{name}' not found{where}", error_code="NOT_FOUND")
        self.kind = kind
        self.name = name


class AmbiguousObjectError(VMCreatorError):
    """Raised when a bare name matches more than one object and strict resolution is on"""

    def __init__(self, kind: str, name: str, candidates):
        ids = ", ".join(candidates)
        super().__init__(f"{kind} name '{name}' is ambiguous: {len(candidates)} matches ({ids}); "
                         f"use a full inventory path", error_code="AMBIGUOUS")
        self.kind = kind
        self.name = name
        self.candidates = list(candidates)


class UnsupportedNetworkKindError(VMCreatorError):
    """Raised when the target network is not a distributed virtual port group"""

    def __init__(self, network_name: str, network_type: str):
        super().__init__(f"Network '{network_name}' is not a DistributedVirtualPortgroup but {network_type}; "
                         f"only distributed port groups can be used as clone targets",
                         error_code="UNSUPPORTED_NETWORK")
        self.network_name = network_name
        self.network_type = network_type


class MissingSwitchAssociationError(VMCreatorError):
    """Raised when a distributed port group has no owning switch in its config"""

    def __init__(self, portgroup_name: str):
        super().__init__(f"DVPG '{portgroup_name}' does not have an associated DistributedVirtualSwitch "
                         f"in its config property", error_code="MISSING_SWITCH")
        self.portgroup_name = portgroup_name


class SubmissionFailedError(VMCreatorError):
    """Raised when vCenter refuses to start the clone task"""

    def __init__(self, vm_name: str, error: Exception):
        friendly, info = parse_vcenter_error(error)
        detail = info.get('original_message') if info else None
        super().__init__(f"Failed to initiate clone task for '{vm_name}': {friendly}",
                         error_code="SUBMISSION_FAILED", platform_detail=detail or fault_detail(error))
        self.original_error = error


class OperationFailedError(VMCreatorError):
    """Raised when the clone task reaches the error state"""

    def __init__(self, message: str, platform_detail: Optional[str] = None, task_id: Optional[str] = None):
        super().__init__(message, error_code="OPERATION_FAILED", platform_detail=platform_detail)
        self.task_id = task_id


class UnexpectedResultShapeError(VMCreatorError):
    """Raised when a successful clone task does not return exactly one VM reference"""

    def __init__(self, result: Any):
        super().__init__(f"Clone task result is not a VirtualMachine reference, got: {type(result).__name__}",
                         error_code="UNEXPECTED_RESULT")
        self.result = result


class CloneCancelledError(VMCreatorError):
    """Raised when the caller aborts or the deadline passes before the workflow finishes"""

    def __init__(self, step: str, reason: Optional[str] = None):
        super().__init__(f"Cancelled during {step}: {reason or 'cancelled'}", error_code="CANCELLED", step=step)
        self.reason = reason


# Mapping of vCenter fault patterns to user-friendly messages
VCENTER_ERROR_MESSAGES: Dict[str, Dict[str, Any]] = {
    'vim.fault.DuplicateName': {
        'title': 'Duplicate Name',
        'message': 'A VM with this name already exists in the destination folder.',
        'severity': 'error',
    },
    'vim.fault.FileAlreadyExists': {
        'title': 'File Already Exists',
        'message': 'The VM files already exist on the target datastore. Remove the leftover directory or pick another name.',
        'severity': 'error',
    },
    'vim.fault.NoPermission': {
        'title': 'Permission Denied',
        'message': 'Insufficient permissions to perform this operation.',
        'severity': 'error',
    },
    'vim.fault.NotAuthenticated': {
        'title': 'Session Expired',
        'message': 'The vCenter session is no longer authenticated.',
        'severity': 'error',
    },
    'vim.fault.InvalidLogin': {
        'title': 'Authentication Failed',
        'message': 'Invalid credentials for vCenter connection.',
        'severity': 'error',
    },
    'vim.fault.InvalidDatastore': {
        'title': 'Invalid Datastore',
        'message': 'The target datastore is not accessible from the selected resource pool.',
        'severity': 'error',
    },
    'vim.fault.InsufficientResourcesFault': {
        'title': 'Insufficient Resources',
        'message': 'The resource pool or cluster does not have enough capacity for the clone.',
        'severity': 'error',
    },
    'vim.fault.InvalidDeviceSpec': {
        'title': 'Invalid Device Change',
        'message': 'vCenter rejected the network adapter edit. Check the adapter type and port group.',
        'severity': 'error',
    },
    'vim.fault.InvalidState': {
        'title': 'Invalid State',
        'message': 'The template or destination is in an invalid state for cloning.',
        'severity': 'error',
    },
    'vim.fault.Timedout': {
        'title': 'Operation Timeout',
        'message': 'The vCenter operation timed out.',
        'severity': 'warning',
    },
    'vmodl.fault.RequestCanceled': {
        'title': 'Task Cancelled',
        'message': 'The task was cancelled by a user in vCenter.',
        'severity': 'warning',
    },
    'vmodl.fault.ManagedObjectNotFound': {
        'title': 'Object Removed',
        'message': 'An inventory object was removed while the workflow was running.',
        'severity': 'error',
    },
}

_MSG_PATTERN = re.compile(r"msg\s*=\s*['\"]([^'\"]+)['\"]")


def fault_detail(fault: Any) -> Optional[str]:
    """Return the human-readable reason carried by a vCenter fault, if any."""
    if fault is None:
        return None
    for attr in ('localizedMessage', 'msg'):
        value = getattr(fault, attr, None)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def parse_vcenter_error(error: Exception) -> Tuple[str, Optional[Dict[str, Any]]]:
    """
    Parse a vCenter exception and return a user-friendly message.

    Returns:
        Tuple of (friendly_message, error_info_dict or None)
    """
    error_str = str(error)
    error_type = type(error).__name__

    msg_match = _MSG_PATTERN.search(error_str)
    actual_msg = fault_detail(error) or (msg_match.group(1) if msg_match else None)

    for fault_pattern, info in VCENTER_ERROR_MESSAGES.items():
        if fault_pattern in error_type or fault_pattern in error_str:
            return info['message'], {
                'title': info['title'],
                'severity': info['severity'],
                'original_message': actual_msg,
                'fault_type': fault_pattern,
            }

    if actual_msg:
        return actual_msg, None

    return error_str or error_type, None


def format_vcenter_error(error: Exception) -> str:
    """Format a vCenter error for the operator, keeping the platform reason."""
    friendly_msg, info = parse_vcenter_error(error)

    if info:
        if info.get('original_message'):
            return f"{info['title']}: {friendly_msg} ({info['original_message']})"
        return f"{info['title']}: {friendly_msg}"

    return friendly_msg
