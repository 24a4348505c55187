from charityhub.client.api_client import DonationApiClient
from charityhub.client.wizard import DonationFormController, Notification, build_redirect_url

__all__ = ["DonationApiClient", "DonationFormController", "Notification", "build_redirect_url"]
