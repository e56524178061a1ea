"""
vCenter VM Creator

Clones a VM from a template and rewires its network adapters onto a
distributed port group:
- Inventory resolution scoped to one datacenter
- NIC backing translation to the target DVPG
- Clone task submission and supervision
- Read-only NIC inspection of existing VMs
"""

__version__ = "1.0.0"
