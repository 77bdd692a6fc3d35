"""Platform REST clients -- httpx + tenacity wrappers for Smartlead and Lemlist.

Clients return raw JSON payloads; normalisation into ActivityRecord happens
in the sync adapters.
"""

from src.outreach.clients.base import PlatformClient
from src.outreach.clients.lemlist import LemlistClient
from src.outreach.clients.smartlead import SmartleadClient

__all__ = [
    "PlatformClient",
    "SmartleadClient",
    "LemlistClient",
]
