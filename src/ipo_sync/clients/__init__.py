from .chittorgarh_client import ChittorgarhClient
from .ipopremium_client import IpoPremiumClient

__all__ = ["ChittorgarhClient", "IpoPremiumClient"]
