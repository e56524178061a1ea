"""vCenter session setup and teardown"""

import logging
import socket
import ssl
import time
from typing import Any

from pyVim.connect import Disconnect, SmartConnect

from vm_creator.config import Settings
from vm_creator.errors import VCenterConnectionError, format_vcenter_error
from vm_creator.utils import format_elapsed

logger = logging.getLogger(__name__)


def _ssl_context(insecure: bool) -> ssl.SSLContext:
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    if insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    else:
        context.load_default_certs()
    return context


def connect_vcenter(settings: Settings) -> Any:
    """
    Open a vCenter session.

    Args:
        settings: Validated connection settings

    Returns:
        pyVmomi ServiceInstance

    Raises:
        VCenterConnectionError: login or transport failure
    """
    host = settings.host
    logger.info(f"Attempting to connect to vCenter {host}:{settings.port} "
                f"(User: {settings.vmware_username}, Insecure: {settings.vcenter_insecure})...")
    start = time.monotonic()

    # Bound the connect so an unreachable vCenter cannot hang the run
    old_timeout = socket.getdefaulttimeout()
    socket.setdefaulttimeout(settings.connect_timeout)
    try:
        si = SmartConnect(
            host=host,
            user=settings.vmware_username,
            pwd=settings.vmware_password,
            port=settings.port,
            sslContext=_ssl_context(settings.vcenter_insecure),
        )
    except Exception as e:
        logger.error(f"✗ Failed to connect to vCenter: {e}")
        raise VCenterConnectionError(host, format_vcenter_error(e)) from e
    finally:
        socket.setdefaulttimeout(old_timeout)

    logger.info(f"✓ Successfully connected to vCenter: {host} (took {format_elapsed(time.monotonic() - start)})")
    return si


def disconnect_vcenter(si: Any) -> None:
    """Log out; a failed logout is logged and otherwise ignored."""
    if si is None:
        return
    try:
        Disconnect(si)
        logger.info("Logged out of vCenter.")
    except Exception as e:
        logger.warning(f"vCenter logout failed: {e}")
