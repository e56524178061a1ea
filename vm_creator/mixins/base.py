"""Shared plumbing for the vCenter mixins"""

import time
from typing import Any, Callable

from vm_creator.errors import TransportError, VMCreatorError


class VCenterCallMixin:
    """
    Base mixin giving every vCenter call the same cancellation check and
    error translation.

    Expects the composing class to provide:
        si: pyVmomi ServiceInstance
        cancel_token: CancelToken
        log(message, level)
    """

    _service_content = None

    @property
    def content(self) -> Any:
        """Service content, retrieved once per session"""
        if self._service_content is None:
            self._service_content = self._remote("retrieve service content", self.si.RetrieveContent)
        return self._service_content

    def _remote(self, operation: str, func: Callable[..., Any], *args, **kwargs) -> Any:
        """
        Run one vCenter call.

        Checks the cancel token first, lets workflow errors through untouched
        and wraps everything else (vmodl faults, socket and HTTP errors) in
        TransportError naming the operation.
        """
        self.cancel_token.raise_if_cancelled(operation)
        try:
            return func(*args, **kwargs)
        except VMCreatorError:
            raise
        except Exception as e:
            raise TransportError(operation, e) from e

    @staticmethod
    def _elapsed(start: float) -> float:
        return time.monotonic() - start
