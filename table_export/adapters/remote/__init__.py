"""Remote table store adapters for Table-Export.

This module contains adapters that implement the RemoteTablePort interface.
"""

from table_export.adapters.remote.synapse_client import SynapseRestClient

__all__ = ["SynapseRestClient"]
