"""vCenter functionality mixins for the VM creator"""

from .inventory import InventoryMixin
from .network_backing import NetworkBackingMixin
from .clone import CloneMixin
from .inspector import InspectorMixin

__all__ = ['InventoryMixin', 'NetworkBackingMixin', 'CloneMixin', 'InspectorMixin']
