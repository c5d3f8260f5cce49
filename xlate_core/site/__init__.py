"""Site layout, settings and secret storage."""

from xlate_core.site.config import PricingConfig, SiteConfig, read_config, write_config
from xlate_core.site.create_site import CreatedSite, SiteInfo, create_site, load_site_info
from xlate_core.site.secrets import delete_secret, get_secret, mask_secret_value, set_secret

__all__ = [
    "CreatedSite",
    "PricingConfig",
    "SiteConfig",
    "SiteInfo",
    "create_site",
    "delete_secret",
    "get_secret",
    "load_site_info",
    "mask_secret_value",
    "read_config",
    "set_secret",
    "write_config",
]
